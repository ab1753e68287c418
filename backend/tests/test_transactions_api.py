"""
HTTP API tests for sales, reconciliation, inventory and auth.
"""

from retailpos.extensions import db
from retailpos.models import Product
from retailpos.services import transaction_service

from conftest import PASSWORD


def _sale_body(product_id, quantity=1, paid=5000, **extra):
    return {
        "items": [{"product_id": product_id, "quantity": quantity}],
        "payment_method": "cash",
        "amount_paid_cents": paid,
        **extra,
    }


class TestAuth:

    def test_login_and_me(self, client, cashier_a):
        response = client.post('/api/auth/login', json={
            'username': 'cashier_a', 'password': PASSWORD, 'tenant_code': 'ACME',
        })
        assert response.status_code == 200
        token = response.json['token']

        me = client.get('/api/auth/me', headers={'Authorization': f'Bearer {token}'})
        assert me.status_code == 200
        assert me.json['tenant_id'] == cashier_a.tenant_id

    def test_bad_password(self, client, cashier_a):
        response = client.post('/api/auth/login', json={'username': 'cashier_a', 'password': 'nope'})
        assert response.status_code == 401

    def test_logout_revokes_token(self, client, cashier_a, login_as):
        headers = login_as(cashier_a)
        assert client.post('/api/auth/logout', headers=headers).status_code == 200
        assert client.get('/api/transactions', headers=headers).status_code == 401

    def test_requires_token(self, client, db_session):
        response = client.get('/api/transactions')
        assert response.status_code == 401
        assert response.json == {'success': False, 'message': 'Authentication required'}


class TestPostTransaction:

    def test_created(self, client, cashier_a, coffee_a, customer_a, login_as):
        response = client.post('/api/transactions', headers=login_as(cashier_a),
                               json=_sale_body(coffee_a.id, 2, paid=3000, customer_id=customer_a.id))

        assert response.status_code == 201
        txn = response.json['transaction']
        assert txn['subtotal_cents'] == 2598
        assert txn['tax_cents'] == 208
        assert txn['total_cents'] == 2806
        assert txn['change_cents'] == 194
        assert txn['customer']['email'] == 'ada@example.com'
        assert txn['cashier']['username'] == 'cashier_a'
        assert txn['items'][0]['product_snapshot']['sku'] == 'COF-001'
        assert txn['items'][0]['product']['id'] == coffee_a.id

    def test_idempotent_replay_returns_200(self, client, cashier_a, coffee_a, login_as):
        headers = login_as(cashier_a)
        body = _sale_body(coffee_a.id, idempotency_key="till-7-000123")

        first = client.post('/api/transactions', headers=headers, json=body)
        second = client.post('/api/transactions', headers=headers, json=body)

        assert first.status_code == 201
        assert second.status_code == 200
        assert second.json['transaction']['id'] == first.json['transaction']['id']
        assert db.session.get(Product, coffee_a.id).stock == 9

    def test_missing_product_is_404(self, client, cashier_a, login_as):
        response = client.post('/api/transactions', headers=login_as(cashier_a), json=_sale_body(99999))

        assert response.status_code == 404
        assert response.json['success'] is False
        assert response.json['message'] == 'Product not found: 99999'
        assert response.json['errors'] == {'product_id': 99999}

    def test_insufficient_stock_is_400(self, client, cashier_a, mug_a, login_as):
        response = client.post('/api/transactions', headers=login_as(cashier_a),
                               json=_sale_body(mug_a.id, 9, paid=100_000))

        assert response.status_code == 400
        assert response.json['errors']['available'] == 5
        assert response.json['errors']['requested'] == 9

    def test_insufficient_payment_is_400(self, client, cashier_a, coffee_a, login_as):
        response = client.post('/api/transactions', headers=login_as(cashier_a),
                               json=_sale_body(coffee_a.id, paid=100))

        assert response.status_code == 400
        assert response.json['errors']['shortfall_cents'] == 1303

    def test_validation_errors(self, client, cashier_a, coffee_a, login_as):
        headers = login_as(cashier_a)

        empty = client.post('/api/transactions', headers=headers,
                            json={"items": [], "payment_method": "cash", "amount_paid_cents": 0})
        assert empty.status_code == 400
        assert empty.json['message'] == 'Items array is required and must not be empty'
        assert 'errors' not in empty.json

        decimal_money = client.post('/api/transactions', headers=headers,
                                    json=_sale_body(coffee_a.id, paid=12.5))
        assert decimal_money.status_code == 400

        bad_method = client.post('/api/transactions', headers=headers,
                                 json={**_sale_body(coffee_a.id), "payment_method": "iou"})
        assert bad_method.status_code == 400


class TestReadAndReconcile:

    def test_list_and_get(self, client, cashier_a, coffee_a, login_as):
        headers = login_as(cashier_a)
        created = client.post('/api/transactions', headers=headers, json=_sale_body(coffee_a.id)).json['transaction']

        listing = client.get('/api/transactions?status=completed', headers=headers)
        assert listing.status_code == 200
        assert listing.json['pagination']['total'] == 1
        assert 'items' not in listing.json['items'][0]

        detail = client.get(f"/api/transactions/{created['id']}", headers=headers)
        assert detail.status_code == 200
        assert detail.json['transaction']['transaction_number'] == created['transaction_number']

    def test_put_rejects_immutable_fields(self, client, cashier_a, coffee_a, login_as):
        headers = login_as(cashier_a)
        created = client.post('/api/transactions', headers=headers, json=_sale_body(coffee_a.id)).json['transaction']

        response = client.put(f"/api/transactions/{created['id']}", headers=headers, json={"total_cents": 1})

        assert response.status_code == 400
        assert response.json['errors'] == {'fields': ['total_cents']}

    def test_put_cancels_and_restocks(self, client, cashier_a, coffee_a, login_as):
        headers = login_as(cashier_a)
        created = client.post('/api/transactions', headers=headers,
                              json=_sale_body(coffee_a.id, 2)).json['transaction']

        response = client.put(f"/api/transactions/{created['id']}", headers=headers,
                              json={"status": "cancelled", "notes": "Customer changed mind"})

        assert response.status_code == 200
        assert response.json['transaction']['status'] == 'cancelled'
        assert db.session.get(Product, coffee_a.id).stock == 10

    def test_put_unknown_transaction(self, client, cashier_a, login_as):
        response = client.put('/api/transactions/4242', headers=login_as(cashier_a), json={"notes": "x"})
        assert response.status_code == 404

    def test_get_unexpected_failure_is_500(self, client, cashier_a, login_as, monkeypatch):
        def broken(tenant_id, transaction_id):
            raise RuntimeError("database went away")
        monkeypatch.setattr(transaction_service, "get_transaction", broken)

        response = client.get('/api/transactions/1', headers=login_as(cashier_a))

        assert response.status_code == 500
        assert response.json == {'success': False, 'message': 'Internal server error'}


class TestInventoryApi:

    def test_cashier_cannot_adjust(self, client, cashier_a, mug_a, login_as):
        response = client.patch(f'/api/inventory/{mug_a.id}/adjust', headers=login_as(cashier_a),
                                json={"amount": 5})
        assert response.status_code == 403
        assert response.json == {
            'success': False,
            'message': 'Permission denied',
            'errors': {'required_roles': ['admin', 'manager'], 'role': 'cashier'},
        }

    def test_manager_adjusts(self, client, manager_a, mug_a, login_as):
        response = client.patch(f'/api/inventory/{mug_a.id}/adjust', headers=login_as(manager_a),
                                json={"amount": -2})
        assert response.status_code == 200
        assert response.json['product']['stock'] == 3

    def test_negative_result_rejected(self, client, manager_a, mug_a, login_as):
        response = client.patch(f'/api/inventory/{mug_a.id}/adjust', headers=login_as(manager_a),
                                json={"amount": -50})
        assert response.status_code == 400
        assert response.json['errors']['current_stock'] == 5

    def test_low_stock_listing(self, client, cashier_a, mug_a, make_product, tenant_a, login_as):
        make_product(tenant_a, "PLENTY", 100, 500)

        response = client.get('/api/inventory/low-stock', headers=login_as(cashier_a))

        assert response.status_code == 200
        assert [p['sku'] for p in response.json['items']] == ['MUG-001']


class TestCatalogApi:

    def test_manager_creates_product(self, client, manager_a, login_as):
        response = client.post('/api/products', headers=login_as(manager_a), json={
            "sku": "new-1", "name": "New Thing", "price_cents": 250, "stock": 4,
        })
        assert response.status_code == 201
        assert response.json['product']['sku'] == 'NEW-1'

    def test_cashier_cannot_create_product(self, client, cashier_a, login_as):
        response = client.post('/api/products', headers=login_as(cashier_a), json={
            "sku": "new-1", "name": "New Thing", "price_cents": 250,
        })
        assert response.status_code == 403

    def test_product_stock_not_editable_via_put(self, client, manager_a, coffee_a, login_as):
        response = client.put(f'/api/products/{coffee_a.id}', headers=login_as(manager_a), json={"stock": 1})
        assert response.status_code == 400

    def test_cashier_registers_customer(self, client, cashier_a, login_as):
        response = client.post('/api/customers', headers=login_as(cashier_a), json={
            "name": "Grace Hopper", "email": "Grace@Example.com",
        })
        assert response.status_code == 201
        assert response.json['customer']['email'] == 'grace@example.com'
        assert response.json['customer']['loyalty_points'] == 0


def test_health(client, db_session):
    response = client.get('/health')
    assert response.status_code == 200
    assert response.json['checks']['database']['status'] == 'healthy'
