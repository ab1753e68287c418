"""
Pytest fixtures for RetailPOS backend tests.

Provides test database setup, two-tenant fixtures, and test client.
"""

import pytest

from retailpos import create_app
from retailpos.extensions import db
from retailpos.models import Customer, Product, Tenant, TenantSettings, User
from retailpos.services.auth_service import hash_password
from retailpos.services.session_service import create_session


PASSWORD = "Password123!"

# Low bcrypt cost keeps the suite fast; production uses 12
_PASSWORD_HASH = None


def _password_hash() -> str:
    global _PASSWORD_HASH
    if _PASSWORD_HASH is None:
        _PASSWORD_HASH = hash_password(PASSWORD, rounds=4)
    return _PASSWORD_HASH


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def _make_tenant(db_session, name, code, tax_rate_bps=800, loyalty_enabled=True):
    tenant = Tenant(name=name, code=code, is_active=True)
    db_session.add(tenant)
    db_session.flush()
    db_session.add(TenantSettings(
        tenant_id=tenant.id,
        tax_rate_bps=tax_rate_bps,
        loyalty_enabled=loyalty_enabled,
    ))
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def tenant_a(db_session):
    """Tenant A: 8% tax, loyalty on."""
    return _make_tenant(db_session, "Acme Corner Shop", "ACME", tax_rate_bps=800)


@pytest.fixture(scope='function')
def tenant_b(db_session):
    """Tenant B: 5% tax, loyalty on."""
    return _make_tenant(db_session, "Beta Market", "BETA", tax_rate_bps=500)


def _make_user(db_session, tenant, username, role):
    user = User(
        tenant_id=tenant.id,
        username=username,
        email=f"{username}@{tenant.code.lower()}.test",
        name=username.title(),
        role=role,
        password_hash=_password_hash(),
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def cashier_a(db_session, tenant_a):
    return _make_user(db_session, tenant_a, "cashier_a", "cashier")


@pytest.fixture(scope='function')
def manager_a(db_session, tenant_a):
    return _make_user(db_session, tenant_a, "manager_a", "manager")


@pytest.fixture(scope='function')
def cashier_b(db_session, tenant_b):
    return _make_user(db_session, tenant_b, "cashier_b", "cashier")


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product(tenant, sku, price_cents, stock, **extra)."""
    def _make(tenant, sku, price_cents, stock, **extra):
        product = Product(
            tenant_id=tenant.id,
            sku=sku,
            name=extra.pop("name", f"Product {sku}"),
            price_cents=price_cents,
            stock=stock,
            **extra,
        )
        db_session.add(product)
        db_session.commit()
        return product
    return _make


@pytest.fixture(scope='function')
def make_customer(db_session):
    """Factory: make_customer(tenant, email, **extra)."""
    def _make(tenant, email, **extra):
        customer = Customer(
            tenant_id=tenant.id,
            name=extra.pop("name", email.split("@")[0].title()),
            email=email,
            **extra,
        )
        db_session.add(customer)
        db_session.commit()
        return customer
    return _make


@pytest.fixture(scope='function')
def coffee_a(make_product, tenant_a):
    return make_product(tenant_a, "COF-001", 1299, 10, name="House Blend Coffee")


@pytest.fixture(scope='function')
def mug_a(make_product, tenant_a):
    return make_product(tenant_a, "MUG-001", 651, 5, name="Ceramic Mug")


@pytest.fixture(scope='function')
def customer_a(make_customer, tenant_a):
    return make_customer(tenant_a, "ada@example.com", name="Ada Lovelace")


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def login_as(db_session):
    """Factory returning Authorization headers for a user (skips bcrypt)."""
    def _login(user):
        _, token = create_session(user.id)
        return auth_headers(token)
    return _login
