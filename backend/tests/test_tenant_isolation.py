"""
Multi-Tenant Isolation Tests

SECURITY TESTS: Prove that cross-tenant access is denied for core resources.

Two tenants each get a cashier, products and customers. Every read and
write made with tenant A's session must behave as if tenant B's records do
not exist (404, never 403, so existence is not revealed), and nothing in
tenant B may change.
"""

import pytest
from flask import g

from retailpos.errors import ProductNotFound, TenantAccessError
from retailpos.extensions import db
from retailpos.models import Customer, Product, Transaction
from retailpos.services.session_service import create_session, validate_session
from retailpos.services.tenant_service import get_current_tenant_id, require_active_tenant, scoped_query
from retailpos.services.transaction_service import post_sale

from conftest import _make_user


class TestTenantServiceHelpers:

    def test_scoped_query_filters_by_tenant(self, tenant_a, tenant_b, coffee_a, make_product):
        make_product(tenant_b, "B-1", 100, 1)

        skus = [p.sku for p in scoped_query(Product, tenant_a.id).all()]
        assert skus == ["COF-001"]

    def test_scoped_query_requires_tenant(self, db_session):
        with pytest.raises(TenantAccessError):
            scoped_query(Product, None)

    def test_current_tenant_requires_context(self, app):
        with app.app_context():
            with pytest.raises(TenantAccessError):
                get_current_tenant_id()
            g.tenant_id = 3
            assert get_current_tenant_id() == 3

    def test_inactive_tenant_rejected(self, db_session, tenant_a):
        tenant_a.is_active = False
        db_session.commit()
        with pytest.raises(TenantAccessError):
            require_active_tenant(tenant_a.id)


class TestSessionTenantContext:

    def test_session_carries_user_tenant(self, cashier_b):
        _, token = create_session(cashier_b.id)
        context = validate_session(token)
        assert context.tenant_id == cashier_b.tenant_id

    def test_session_invalid_after_tenant_deactivated(self, db_session, tenant_a, cashier_a):
        _, token = create_session(cashier_a.id)
        tenant_a.is_active = False
        db_session.commit()
        assert validate_session(token) is None


class TestCrossTenantSales:

    def test_cannot_sell_other_tenants_product(self, tenant_a, cashier_a, make_product, tenant_b):
        theirs = make_product(tenant_b, "B-1", 100, 3)

        with pytest.raises(ProductNotFound):
            post_sale(tenant_a.id, cashier_a.id, [{"product_id": theirs.id, "quantity": 1}],
                      amount_paid_cents=1000)

        assert db.session.get(Product, theirs.id).stock == 3
        assert db.session.query(Transaction).count() == 0

    def test_cannot_attach_other_tenants_customer(self, client, cashier_a, coffee_a, make_customer,
                                                 tenant_b, login_as):
        theirs = make_customer(tenant_b, "bob@beta.test")

        response = client.post('/api/transactions', headers=login_as(cashier_a), json={
            "items": [{"product_id": coffee_a.id, "quantity": 1}],
            "customer_id": theirs.id,
            "payment_method": "card",
            "amount_paid_cents": 5000,
        })

        assert response.status_code == 404
        assert db.session.get(Customer, theirs.id).total_visits == 0
        assert db.session.get(Product, coffee_a.id).stock == 10


class TestCrossTenantApi:

    def test_product_reads(self, client, cashier_a, cashier_b, coffee_a, login_as):
        headers_b = login_as(cashier_b)

        assert client.get(f'/api/products/{coffee_a.id}', headers=headers_b).status_code == 404
        assert client.get('/api/products', headers=headers_b).json['count'] == 0

    def test_transaction_reads(self, client, cashier_a, cashier_b, coffee_a, login_as):
        created = client.post('/api/transactions', headers=login_as(cashier_a), json={
            "items": [{"product_id": coffee_a.id, "quantity": 1}],
            "payment_method": "cash",
            "amount_paid_cents": 2000,
        }).json['transaction']
        headers_b = login_as(cashier_b)

        assert client.get(f"/api/transactions/{created['id']}", headers=headers_b).status_code == 404
        assert client.get('/api/transactions', headers=headers_b).json['pagination']['total'] == 0
        update = client.put(f"/api/transactions/{created['id']}", headers=headers_b,
                            json={"status": "refunded"})
        assert update.status_code == 404
        assert db.session.get(Product, coffee_a.id).stock == 9

    def test_inventory_adjustment(self, client, db_session, tenant_b, coffee_a, login_as):
        manager_b = _make_user(db_session, tenant_b, "manager_b", "manager")

        response = client.patch(f'/api/inventory/{coffee_a.id}/adjust', headers=login_as(manager_b),
                                json={"amount": 100})

        assert response.status_code == 404
        assert db.session.get(Product, coffee_a.id).stock == 10

    def test_customer_reads(self, client, cashier_b, customer_a, login_as):
        headers_b = login_as(cashier_b)
        assert client.get(f'/api/customers/{customer_a.id}', headers=headers_b).status_code == 404
        assert client.get('/api/customers', headers=headers_b).json['total'] == 0
