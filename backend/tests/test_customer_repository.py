"""
Customer repository tests: loyalty accrual and tenant-scoped uniqueness.
"""

import pytest

from retailpos.errors import CustomerNotFound, DuplicateKey, InactiveRecord
from retailpos.extensions import db
from retailpos.models import Customer
from retailpos.repositories import customer_repository
from retailpos.validation import ValidationError


class TestAccrueLoyalty:

    def test_increments_aggregates(self, tenant_a, customer_a):
        customer_repository.accrue_loyalty(tenant_a.id, customer_a.id, 12, 1234)
        customer_repository.accrue_loyalty(tenant_a.id, customer_a.id, 3, 300)
        db.session.commit()

        customer = db.session.get(Customer, customer_a.id)
        assert customer.loyalty_points == 15
        assert customer.total_spent_cents == 1534
        assert customer.total_visits == 2
        assert customer.last_visit_at is not None

    def test_negative_deltas_rejected(self, tenant_a, customer_a):
        with pytest.raises(ValueError):
            customer_repository.accrue_loyalty(tenant_a.id, customer_a.id, -1, 0)

    def test_other_tenant_is_not_found(self, tenant_b, customer_a):
        with pytest.raises(CustomerNotFound):
            customer_repository.accrue_loyalty(tenant_b.id, customer_a.id, 1, 100)


class TestCustomerWrites:

    def test_find_inactive(self, db_session, tenant_a, customer_a):
        customer_a.is_active = False
        db_session.commit()

        assert customer_repository.find_by_id(tenant_a.id, customer_a.id).status == "inactive"
        with pytest.raises(InactiveRecord):
            customer_repository.find_by_id(tenant_a.id, customer_a.id, require_active=True)

    def test_email_unique_per_tenant_case_insensitive(self, tenant_a, tenant_b, customer_a):
        with pytest.raises(DuplicateKey):
            customer_repository.create_customer(tenant_a.id, {"name": "Ada Again", "email": "ADA@example.com"})

        other = customer_repository.create_customer(tenant_b.id, {"name": "Ada", "email": "ADA@example.com"})
        assert other.email == "ada@example.com"

    def test_update_cannot_touch_loyalty(self, tenant_a, customer_a):
        with pytest.raises(ValidationError):
            customer_repository.update_customer(tenant_a.id, customer_a.id, {"loyalty_points": 10_000})

    def test_update_contact_details(self, tenant_a, customer_a):
        updated = customer_repository.update_customer(tenant_a.id, customer_a.id, {"phone": "555-0199"})
        assert updated.phone == "555-0199"

    def test_list_searches_name_and_email(self, tenant_a, make_customer, customer_a):
        make_customer(tenant_a, "grace@example.com", name="Grace Hopper")

        result = customer_repository.list_customers(tenant_a.id, search="grace")

        assert result["total"] == 1
        assert result["items"][0]["name"] == "Grace Hopper"
