"""
Tests for listing models.
"""

from listings.tests.factories import BusinessProductFactory, ProductFactory


class TestProductSellerResolution:
    """Tests for Product.resolve_seller_id()."""

    def test_direct_owner_is_seller(self, db):
        product = ProductFactory()

        assert product.resolve_seller_id() == product.owner_id

    def test_business_owner_is_seller_without_direct_owner(self, db):
        product = BusinessProductFactory()

        assert product.owner_id is None
        assert product.resolve_seller_id() == product.business.owner_id

    def test_unowned_product_has_no_seller(self, db):
        product = ProductFactory(owner=None)

        assert product.resolve_seller_id() is None


class TestProductSnapshot:
    """Tests for Product.snapshot()."""

    def test_snapshot_copies_title_price_and_location(self, db):
        product = ProductFactory(title="PS5", price_kobo=60_000_000, city="Abuja", area="Wuse")

        assert product.snapshot() == {
            "title": "PS5",
            "price_kobo": 60_000_000,
            "city": "Abuja",
            "area": "Wuse",
        }
