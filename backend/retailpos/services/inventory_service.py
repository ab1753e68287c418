"""
Inventory adjustments: manual corrections to on-hand stock.

Receiving, shrinkage and count corrections all land here as a signed delta.
The change is one conditional UPDATE (stock + delta >= 0), so a concurrent
sale can never be overwritten by an adjustment computed from a stale read.
"""
from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Product
from ..repositories import product_repository
from .concurrency import begin_write_transaction, run_with_retry


def adjust_inventory(tenant_id: int, product_id: int, delta: int) -> Product:
    """
    Apply stock += delta and commit.

    Raises:
        InvalidAdjustment: delta == 0 or the result would be negative
        ProductNotFound: product missing or owned by another tenant
    """
    def _op():
        committed = False
        try:
            begin_write_transaction()
            new_stock = product_repository.apply_stock_delta(tenant_id, product_id, delta)
            db.session.commit()
            committed = True
            return new_stock
        finally:
            if not committed:
                db.session.rollback()

    new_stock = run_with_retry(_op)
    current_app.logger.info(
        "Inventory adjusted for product %s (tenant %s): delta=%s, stock=%s",
        product_id, tenant_id, delta, new_stock,
    )
    return product_repository.find_by_id(tenant_id, product_id)


def low_stock_products(tenant_id: int) -> list[Product]:
    return product_repository.low_stock(tenant_id)
