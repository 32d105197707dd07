"""
Listing models used as the source of escrow orders.

Models:
    Business: A seller storefront owned by a user
    Product: An item for sale, owned by a user or a business

Escrow checkout reads the price and the seller from Product and copies
title/price/location into the order snapshot, so later edits here do not
change historical orders.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class Business(UUIDPrimaryKeyMixin, BaseModel):
    """
    Seller storefront.

    Products listed under a business without a direct owner are sold by
    the business owner.
    """

    name = models.CharField(
        max_length=200,
        help_text="Public business name",
    )
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="businesses",
        help_text="User who receives escrow releases for this business",
    )

    class Meta:
        ordering = ["name"]
        verbose_name = "Business"
        verbose_name_plural = "Businesses"

    def __str__(self) -> str:
        return self.name


class Product(UUIDPrimaryKeyMixin, BaseModel):
    """
    An item listed for sale.

    Fields:
        title: Listing title
        price_kobo: Asking price in kobo (minor unit)
        city/area: Listing location, copied into escrow snapshots
        owner: Direct seller (optional when listed under a business)
        business: Owning storefront (optional)
        is_active: Inactive listings cannot start an escrow checkout
    """

    title = models.CharField(
        max_length=200,
        help_text="Listing title",
    )
    price_kobo = models.PositiveBigIntegerField(
        help_text="Asking price in kobo",
    )
    city = models.CharField(
        max_length=100,
        blank=True,
        default="",
        help_text="City where the item is located",
    )
    area = models.CharField(
        max_length=100,
        blank=True,
        default="",
        help_text="Area or neighbourhood within the city",
    )
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="products",
        help_text="User selling this product directly",
    )
    business = models.ForeignKey(
        Business,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="products",
        help_text="Business listing this product",
    )
    is_active = models.BooleanField(
        default=True,
        db_index=True,
        help_text="Whether the listing is live",
    )

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["owner", "is_active"], name="product_owner_active_idx"),
        ]

    def __str__(self) -> str:
        return f"Product({self.id}, {self.title})"

    def resolve_seller_id(self) -> int | None:
        """
        Return the id of the user who sells this product.

        Direct owner wins; otherwise the owning business's owner.
        """
        if self.owner_id:
            return self.owner_id
        if self.business_id:
            return self.business.owner_id
        return None

    def snapshot(self) -> dict:
        """Immutable copy stored on escrow orders."""
        return {
            "title": self.title,
            "price_kobo": self.price_kobo,
            "city": self.city,
            "area": self.area,
        }
