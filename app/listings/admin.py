"""
Django admin configuration for listings.
"""

from django.contrib import admin

from listings.models import Business, Product


@admin.register(Business)
class BusinessAdmin(admin.ModelAdmin):
    list_display = ("name", "owner", "created_at")
    search_fields = ("name", "owner__email")
    raw_id_fields = ("owner",)


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("title", "price_kobo", "city", "owner", "business", "is_active")
    list_filter = ("is_active", "city")
    search_fields = ("title", "owner__email", "business__name")
    raw_id_fields = ("owner", "business")
