"""
Transaction number format, uniqueness and tax rounding helpers.
"""

import re

import pytest
from sqlalchemy.exc import IntegrityError

from retailpos.extensions import db
from retailpos.models import Product, Tenant, Transaction
from retailpos.services import transaction_service
from retailpos.services.transaction_service import (
    compute_loyalty_points,
    compute_tax_cents,
    generate_transaction_number,
    post_sale,
)

NUMBER_RE = re.compile(r"^ACME-\d{13}-[0-9A-Z]{8}$")


def test_number_format():
    tenant = Tenant(id=1, name="Acme", code="acme")
    assert NUMBER_RE.match(generate_transaction_number(tenant))


def test_prefix_falls_back_to_padded_id():
    assert Tenant(id=7, name="No Code").transaction_prefix == "0007"
    assert Tenant(id=1, name="Long", code="LONGCODE").transaction_prefix == "CODE"


def test_same_millisecond_numbers_are_unique():
    tenant = Tenant(id=1, name="Acme", code="ACME")
    numbers = {generate_transaction_number(tenant, now_ms=1_760_000_000_000) for _ in range(10_000)}
    assert len(numbers) == 10_000


def test_collision_is_regenerated(monkeypatch, tenant_a, cashier_a, coffee_a):
    candidates = iter(["ACME-1-AAAAAAAA", "ACME-1-AAAAAAAA", "ACME-1-BBBBBBBB"])
    monkeypatch.setattr(transaction_service, "generate_transaction_number", lambda tenant: next(candidates))

    first = post_sale(tenant_a.id, cashier_a.id, [{"product_id": coffee_a.id, "quantity": 1}],
                      amount_paid_cents=2000).transaction
    second = post_sale(tenant_a.id, cashier_a.id, [{"product_id": coffee_a.id, "quantity": 1}],
                       amount_paid_cents=2000).transaction

    assert first.transaction_number == "ACME-1-AAAAAAAA"
    assert second.transaction_number == "ACME-1-BBBBBBBB"
    assert Transaction.query.count() == 2


def test_number_taken_at_insert_posts_again(monkeypatch, tenant_a, cashier_a, coffee_a):
    taken = post_sale(tenant_a.id, cashier_a.id, [{"product_id": coffee_a.id, "quantity": 1}],
                      amount_paid_cents=2000).transaction.transaction_number
    # The pre-insert check passed but another sale committed the same number first
    numbers = iter([taken, "ACME-1-CCCCCCCC"])
    monkeypatch.setattr(transaction_service, "_allocate_transaction_number", lambda tenant: next(numbers))

    second = post_sale(tenant_a.id, cashier_a.id, [{"product_id": coffee_a.id, "quantity": 1}],
                       amount_paid_cents=2000)

    assert second.replayed is False
    assert second.transaction.transaction_number == "ACME-1-CCCCCCCC"
    assert Transaction.query.count() == 2
    assert db.session.get(Product, coffee_a.id).stock == 8


def test_repeated_number_clash_gives_up(monkeypatch, tenant_a, cashier_a, coffee_a):
    taken = post_sale(tenant_a.id, cashier_a.id, [{"product_id": coffee_a.id, "quantity": 1}],
                      amount_paid_cents=2000).transaction.transaction_number
    monkeypatch.setattr(transaction_service, "_allocate_transaction_number", lambda tenant: taken)

    with pytest.raises(IntegrityError):
        post_sale(tenant_a.id, cashier_a.id, [{"product_id": coffee_a.id, "quantity": 1}],
                  amount_paid_cents=2000)

    assert Transaction.query.count() == 1
    assert db.session.get(Product, coffee_a.id).stock == 9


def test_tax_rounds_half_up():
    assert compute_tax_cents(3249, 800) == 260   # 259.92
    assert compute_tax_cents(5, 1000) == 1       # 0.5
    assert compute_tax_cents(4, 1000) == 0       # 0.4
    assert compute_tax_cents(1299, 825) == 107   # 107.1675
    assert compute_tax_cents(1000, 0) == 0


def test_loyalty_points_floor():
    assert compute_loyalty_points(3509) == 35
    assert compute_loyalty_points(99) == 0
    assert compute_loyalty_points(0) == 0
