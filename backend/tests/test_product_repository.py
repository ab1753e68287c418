"""
Product repository tests: conditional stock primitives and catalog writes.
"""

import pytest

from retailpos.errors import DuplicateKey, InsufficientStock, InvalidAdjustment, ProductNotFound
from retailpos.extensions import db
from retailpos.models import Product
from retailpos.repositories import product_repository
from retailpos.validation import ValidationError


class TestStockPrimitives:

    def test_decrement_returns_new_stock(self, tenant_a, mug_a):
        assert product_repository.decrement_stock_if_available(tenant_a.id, mug_a.id, 2) == 3
        db.session.commit()
        assert product_repository.get_stock(tenant_a.id, mug_a.id) == 3

    def test_decrement_to_zero(self, tenant_a, mug_a):
        assert product_repository.decrement_stock_if_available(tenant_a.id, mug_a.id, 5) == 0

    def test_decrement_refuses_oversell(self, tenant_a, mug_a):
        with pytest.raises(InsufficientStock) as exc_info:
            product_repository.decrement_stock_if_available(tenant_a.id, mug_a.id, 6)

        assert exc_info.value.details["available"] == 5
        assert product_repository.get_stock(tenant_a.id, mug_a.id) == 5

    def test_decrement_other_tenant_is_not_found(self, tenant_b, mug_a):
        with pytest.raises(ProductNotFound):
            product_repository.decrement_stock_if_available(tenant_b.id, mug_a.id, 1)
        assert product_repository.get_stock(mug_a.tenant_id, mug_a.id) == 5

    def test_decrement_bumps_version_and_refreshes_instance(self, tenant_a, mug_a):
        product = product_repository.find_by_id(tenant_a.id, mug_a.id)
        version = product.version_id

        product_repository.decrement_stock_if_available(tenant_a.id, mug_a.id, 1)

        assert product.stock == 4
        assert product.version_id == version + 1

    def test_increment(self, tenant_a, mug_a):
        assert product_repository.increment_stock(tenant_a.id, mug_a.id, 3) == 8

    def test_increment_missing_product(self, tenant_a):
        with pytest.raises(ProductNotFound):
            product_repository.increment_stock(tenant_a.id, 99999, 1)

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_non_positive_quantities_rejected(self, tenant_a, mug_a, quantity):
        with pytest.raises(ValueError):
            product_repository.decrement_stock_if_available(tenant_a.id, mug_a.id, quantity)
        with pytest.raises(ValueError):
            product_repository.increment_stock(tenant_a.id, mug_a.id, quantity)

    def test_signed_delta(self, tenant_a, mug_a):
        assert product_repository.apply_stock_delta(tenant_a.id, mug_a.id, -5) == 0
        assert product_repository.apply_stock_delta(tenant_a.id, mug_a.id, 7) == 7

    def test_signed_delta_never_goes_negative(self, tenant_a, mug_a):
        with pytest.raises(InvalidAdjustment) as exc_info:
            product_repository.apply_stock_delta(tenant_a.id, mug_a.id, -6)
        assert exc_info.value.details["current_stock"] == 5


class TestCatalogWrites:

    def test_create_uppercases_sku(self, tenant_a):
        product = product_repository.create_product(tenant_a.id, {"sku": "tea-9", "name": "Tea", "price_cents": 500})
        assert product.sku == "TEA-9"
        assert product.stock == 0
        assert product.reorder_level == 10

    def test_create_requires_fields(self, tenant_a):
        with pytest.raises(ValidationError):
            product_repository.create_product(tenant_a.id, {"sku": "X"})

    def test_duplicate_sku_in_same_tenant(self, tenant_a, coffee_a):
        with pytest.raises(DuplicateKey):
            product_repository.create_product(tenant_a.id, {"sku": "cof-001", "name": "Dup", "price_cents": 1})

    def test_same_sku_in_other_tenant_allowed(self, tenant_b, coffee_a):
        product = product_repository.create_product(tenant_b.id, {"sku": "COF-001", "name": "Theirs", "price_cents": 1})
        assert product.tenant_id == tenant_b.id

    def test_update_rejects_stock(self, tenant_a, coffee_a):
        with pytest.raises(ValidationError):
            product_repository.update_product(tenant_a.id, coffee_a.id, {"stock": 999})

    def test_deactivate_is_soft(self, tenant_a, coffee_a):
        product_repository.deactivate_product(tenant_a.id, coffee_a.id)

        assert db.session.get(Product, coffee_a.id).is_active is False
        listed = product_repository.list_products(tenant_a.id)
        assert listed["count"] == 0
        assert product_repository.list_products(tenant_a.id, include_inactive=True)["count"] == 1

    def test_list_paginates(self, tenant_a, make_product):
        for i in range(25):
            make_product(tenant_a, f"P-{i:02d}", 100, 1)

        page = product_repository.list_products(tenant_a.id, page=2, per_page=10)

        assert page["count"] == 10
        assert page["pagination"]["total"] == 25
        assert page["pagination"]["total_pages"] == 3

    def test_low_stock(self, tenant_a, make_product):
        make_product(tenant_a, "LOW", 100, 2, reorder_level=5)
        make_product(tenant_a, "EDGE", 100, 5, reorder_level=5)
        make_product(tenant_a, "OK", 100, 50, reorder_level=5)

        skus = [p.sku for p in product_repository.low_stock(tenant_a.id)]
        assert skus == ["LOW", "EDGE"]
