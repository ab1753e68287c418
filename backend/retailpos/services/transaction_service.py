"""
Transaction Engine: atomic sale posting and reconciliation

WHY: A sale touches three kinds of records (product stock, the customer's
loyalty aggregates, the transaction itself). They must move together. Posting
runs as ONE database transaction:

    1. resolve tenant, cashier, customer and products (tenant-scoped)
    2. check aggregated quantities against current stock
    3. compute subtotal, tax, discount, total, change
    4. decrement stock with conditional UPDATEs (stock >= qty)
    5. insert the transaction with per-line product snapshots
    6. accrue customer loyalty
    7. commit

Any exception before the commit (business error, database error, or an
interrupt raised mid-operation) rolls the session back, so every decrement
already applied is undone and no transaction row survives.

MONEY: integer cents throughout. Tax rate is in basis points and rounded
half-up to the cent.
"""
from __future__ import annotations

import secrets
import string
from dataclasses import dataclass
from datetime import datetime

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import (
    ImmutableFieldViolation,
    InsufficientPayment,
    InsufficientStock,
    InvalidDiscount,
    InvalidStatusTransition,
    TransactionNotFound,
)
from ..models import Tenant, Transaction, TransactionItem, User
from ..models.sales import PAYMENT_METHODS, TRANSACTION_STATUSES
from ..repositories import customer_repository, product_repository
from ..validation import MAX_QUANTITY, ValidationError, coerce_int
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .tenant_service import get_tax_rate_bps, loyalty_enabled, require_active_tenant, scoped_query
from retailpos.time_utils import epoch_millis, utcnow

_SUFFIX_ALPHABET = string.digits + string.ascii_uppercase
_SUFFIX_LENGTH = 8

# Loyalty: one point per whole currency unit of the final total
CENTS_PER_LOYALTY_POINT = 100

WRITABLE_FIELDS = frozenset({
    "status",
    "amount_paid_cents",
    "due_amount_cents",
    "is_paid",
    "payment_method",
    "notes",
})

IMMUTABLE_FIELDS = frozenset({
    "items",
    "subtotal_cents",
    "tax_cents",
    "tax_rate_bps",
    "discount_cents",
    "total_cents",
    "change_cents",
    "transaction_number",
    "customer_id",
    "cashier_id",
    "loyalty_points_earned",
    "tenant_id",
    "created_at",
})

ALLOWED_TRANSITIONS = {
    "due": {"completed", "cancelled"},
    "completed": {"refunded", "cancelled"},
    "cancelled": set(),
    "refunded": set(),
}

RESTOCKING_STATUSES = {"cancelled", "refunded"}

# Posting runs again once if the insert loses a transaction-number race
NUMBER_CLASH_ATTEMPTS = 2


@dataclass(frozen=True)
class PostedSale:
    transaction: Transaction
    replayed: bool = False


def compute_tax_cents(subtotal_cents: int, tax_rate_bps: int) -> int:
    """Tax on subtotal, rounded half-up to the cent."""
    return (subtotal_cents * tax_rate_bps + 5_000) // 10_000


def compute_loyalty_points(total_cents: int) -> int:
    return max(total_cents, 0) // CENTS_PER_LOYALTY_POINT


def generate_transaction_number(tenant: Tenant, *, now_ms: int | None = None) -> str:
    """
    Human-readable transaction id: <PREFIX>-<epoch millis>-<8 base36 chars>.

    The random suffix keeps numbers unique when several sales are posted in
    the same millisecond; uniqueness is still checked against the database.
    """
    if now_ms is None:
        now_ms = epoch_millis()
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(_SUFFIX_LENGTH))
    return f"{tenant.transaction_prefix}-{now_ms}-{suffix}"


def _allocate_transaction_number(tenant: Tenant) -> str:
    attempts = current_app.config.get("TRANSACTION_NUMBER_ATTEMPTS", 5)
    for _ in range(attempts):
        candidate = generate_transaction_number(tenant)
        taken = (
            scoped_query(Transaction, tenant.id)
            .filter(Transaction.transaction_number == candidate)
            .first()
        )
        if taken is None:
            return candidate
    raise RuntimeError(f"Could not allocate a unique transaction number after {attempts} attempts")


def _is_number_clash(exc: IntegrityError) -> bool:
    # PostgreSQL names the constraint; SQLite names the columns
    message = str(exc.orig)
    return "uq_transactions_tenant_number" in message or "transactions.transaction_number" in message


def _find_by_idempotency_key(tenant_id: int, idempotency_key: str | None) -> Transaction | None:
    if not idempotency_key:
        return None
    return (
        scoped_query(Transaction, tenant_id)
        .filter(Transaction.idempotency_key == idempotency_key)
        .first()
    )


def _aggregate_quantities(items: list[dict]) -> dict[int, int]:
    totals: dict[int, int] = {}
    for item in items:
        totals[item["product_id"]] = totals.get(item["product_id"], 0) + item["quantity"]
    return totals


def _validate_items(items) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise ValidationError("Items array is required and must not be empty")
    cleaned = []
    for index, item in enumerate(items):
        if not isinstance(item, dict) or item.get("product_id") is None:
            raise ValidationError(f"items[{index}].product_id is required")
        quantity = coerce_int(f"items[{index}].quantity", item.get("quantity"))
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        if quantity > MAX_QUANTITY:
            raise ValidationError(f"Quantity cannot exceed {MAX_QUANTITY}")
        cleaned.append({
            "product_id": coerce_int(f"items[{index}].product_id", item["product_id"]),
            "quantity": quantity,
        })
    return cleaned


def _post_sale_locked(
    tenant_id: int,
    cashier_id: int,
    items: list[dict],
    *,
    customer_id: int | None,
    payment_method: str,
    amount_paid_cents: int,
    discount_cents: int,
    on_account: bool,
    notes: str | None,
    idempotency_key: str | None,
) -> PostedSale:
    tenant = require_active_tenant(tenant_id)

    existing = _find_by_idempotency_key(tenant_id, idempotency_key)
    if existing is not None:
        return PostedSale(existing, replayed=True)

    cashier = scoped_query(User, tenant_id).filter(User.id == cashier_id).first()
    if cashier is None:
        raise ValidationError("Cashier does not belong to this store")

    customer = None
    if customer_id is not None:
        customer = customer_repository.find_by_id(tenant_id, customer_id, require_active=True)

    if on_account and customer is None:
        raise ValidationError("A customer is required for sales taken on account")

    # Resolve every product before touching stock
    products = {}
    for item in items:
        pid = item["product_id"]
        if pid not in products:
            products[pid] = product_repository.find_by_id(tenant_id, pid, require_active=True)

    requested = _aggregate_quantities(items)
    for pid, qty in requested.items():
        product = products[pid]
        if product.stock < qty:
            raise InsufficientStock(
                product_id=pid,
                product_name=product.name,
                available=product.stock,
                requested=qty,
            )

    # Snapshot prices at this moment; later product edits never reach history
    lines = []
    subtotal_cents = 0
    for line_number, item in enumerate(items, start=1):
        product = products[item["product_id"]]
        line_total = product.price_cents * item["quantity"]
        subtotal_cents += line_total
        lines.append(TransactionItem(
            line_number=line_number,
            product_id=product.id,
            product_name=product.name,
            product_sku=product.sku,
            product_price_cents=product.price_cents,
            quantity=item["quantity"],
            unit_price_cents=product.price_cents,
            total_price_cents=line_total,
        ))

    tax_rate_bps = get_tax_rate_bps(tenant_id)
    tax_cents = compute_tax_cents(subtotal_cents, tax_rate_bps)

    if discount_cents < 0:
        raise InvalidDiscount("Discount cannot be negative", {"discount_cents": discount_cents})
    if discount_cents > subtotal_cents + tax_cents:
        raise InvalidDiscount(
            "Discount cannot exceed the sale total",
            {"discount_cents": discount_cents, "max_discount_cents": subtotal_cents + tax_cents},
        )
    total_cents = subtotal_cents + tax_cents - discount_cents

    if amount_paid_cents >= total_cents:
        status = "completed"
        change_cents = amount_paid_cents - total_cents
        due_amount_cents = 0
    elif on_account:
        status = "due"
        change_cents = 0
        due_amount_cents = total_cents - amount_paid_cents
    else:
        raise InsufficientPayment(total_cents=total_cents, amount_paid_cents=amount_paid_cents)

    # The conditional UPDATE is the real guard; the check above only gives an
    # early answer against the stock we read.
    for pid, qty in requested.items():
        product_repository.decrement_stock_if_available(tenant_id, pid, qty)

    points = 0
    if customer is not None and loyalty_enabled(tenant_id):
        points = compute_loyalty_points(total_cents)

    txn = Transaction(
        tenant_id=tenant_id,
        transaction_number=_allocate_transaction_number(tenant),
        idempotency_key=idempotency_key,
        cashier_id=cashier.id,
        customer_id=customer.id if customer else None,
        subtotal_cents=subtotal_cents,
        tax_rate_bps=tax_rate_bps,
        tax_cents=tax_cents,
        discount_cents=discount_cents,
        total_cents=total_cents,
        payment_method=payment_method,
        amount_paid_cents=amount_paid_cents,
        change_cents=change_cents,
        due_amount_cents=due_amount_cents,
        is_paid=due_amount_cents == 0,
        loyalty_points_earned=points,
        status=status,
        notes=notes,
    )
    txn.items = lines
    db.session.add(txn)
    db.session.flush()

    if customer is not None:
        customer_repository.accrue_loyalty(
            tenant_id,
            customer.id,
            points,
            total_cents,
            visited_at=utcnow(),
        )

    return PostedSale(txn)


def post_sale(
    tenant_id: int,
    cashier_id: int,
    items: list[dict],
    customer_id: int | None = None,
    payment_method: str = "cash",
    amount_paid_cents: int = 0,
    discount_cents: int = 0,
    *,
    on_account: bool = False,
    notes: str | None = None,
    idempotency_key: str | None = None,
) -> PostedSale:
    """
    Post a sale atomically.

    Returns a PostedSale; replayed=True when idempotency_key matched a sale
    that was already recorded (nothing new is written in that case).

    Raises:
        ValidationError: malformed items or payment method
        ProductNotFound / CustomerNotFound: reference missing in this tenant
        InactiveRecord: product or customer deactivated
        InsufficientStock: at check time or at decrement time
        InvalidDiscount, InsufficientPayment
    """
    items = _validate_items(items)
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError("Valid payment method is required (cash, card, or digital)")
    amount_paid_cents = coerce_int("amount_paid_cents", amount_paid_cents)
    if amount_paid_cents < 0:
        raise ValidationError("Amount paid must be a non-negative number")
    discount_cents = coerce_int("discount_cents", discount_cents)

    def _op():
        committed = False
        try:
            begin_write_transaction()
            result = _post_sale_locked(
                tenant_id,
                cashier_id,
                items,
                customer_id=customer_id,
                payment_method=payment_method,
                amount_paid_cents=amount_paid_cents,
                discount_cents=discount_cents,
                on_account=on_account,
                notes=notes,
                idempotency_key=idempotency_key,
            )
            db.session.commit()
            committed = True
            return result
        finally:
            if not committed:
                db.session.rollback()

    for attempt in range(1, NUMBER_CLASH_ATTEMPTS + 1):
        try:
            result = run_with_retry(_op)
            break
        except IntegrityError as exc:
            # A concurrent retry with the same key committed first
            existing = _find_by_idempotency_key(tenant_id, idempotency_key)
            if existing is not None:
                result = PostedSale(existing, replayed=True)
                break
            # A concurrent sale took the same number between the check and the insert
            if _is_number_clash(exc) and attempt < NUMBER_CLASH_ATTEMPTS:
                current_app.logger.warning(
                    "Transaction number clash for tenant %s, posting again", tenant_id
                )
                continue
            raise
        except (InsufficientStock, InsufficientPayment) as exc:
            current_app.logger.warning("Sale rejected for tenant %s: %s", tenant_id, exc.message)
            raise

    txn = result.transaction
    if result.replayed:
        current_app.logger.info(
            "Idempotent replay of sale %s for tenant %s", txn.transaction_number, tenant_id
        )
    else:
        current_app.logger.info(
            "Posted sale %s for tenant %s: total=%s cents, status=%s",
            txn.transaction_number,
            tenant_id,
            txn.total_cents,
            txn.status,
        )
    return result


def get_transaction(tenant_id: int, transaction_id: int) -> Transaction:
    txn = scoped_query(Transaction, tenant_id).filter(Transaction.id == transaction_id).first()
    if txn is None:
        raise TransactionNotFound(transaction_id)
    return txn


def list_transactions(
    tenant_id: int,
    *,
    status: str | None = None,
    customer_id: int | None = None,
    cashier_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    page: int = 1,
    per_page: int = 20,
) -> dict:
    """Newest-first, tenant-scoped transaction listing with pagination."""
    if status is not None and status not in TRANSACTION_STATUSES:
        raise ValidationError(f"Invalid status: {status}")

    query = scoped_query(Transaction, tenant_id)
    if status:
        query = query.filter(Transaction.status == status)
    if customer_id is not None:
        query = query.filter(Transaction.customer_id == customer_id)
    if cashier_id is not None:
        query = query.filter(Transaction.cashier_id == cashier_id)
    if start is not None:
        query = query.filter(Transaction.created_at >= start)
    if end is not None:
        query = query.filter(Transaction.created_at <= end)

    per_page = min(max(per_page, 1), 100)
    page = max(page, 1)
    total = query.with_entities(func.count(Transaction.id)).scalar()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    rows = (
        query.order_by(Transaction.created_at.desc(), Transaction.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return {
        "items": [t.to_dict(include_items=False) for t in rows],
        "count": len(rows),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def _clean_patch(patch) -> dict:
    if not isinstance(patch, dict) or not patch:
        raise ValidationError("Update payload must be a non-empty object")

    touched = IMMUTABLE_FIELDS & patch.keys()
    if touched:
        raise ImmutableFieldViolation(list(touched))

    unknown = sorted(set(patch.keys()) - WRITABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown fields: {', '.join(unknown)}")

    cleaned: dict = {}
    if "status" in patch:
        if patch["status"] not in TRANSACTION_STATUSES:
            raise ValidationError(f"Invalid status: {patch['status']}")
        cleaned["status"] = patch["status"]
    for field in ("amount_paid_cents", "due_amount_cents"):
        if field in patch:
            value = coerce_int(field, patch[field])
            if value < 0:
                raise ValidationError(f"{field} must be >= 0")
            cleaned[field] = value
    if "is_paid" in patch:
        if not isinstance(patch["is_paid"], bool):
            raise ValidationError("is_paid must be a boolean")
        cleaned["is_paid"] = patch["is_paid"]
    if "payment_method" in patch:
        if patch["payment_method"] not in PAYMENT_METHODS:
            raise ValidationError("Valid payment method is required (cash, card, or digital)")
        cleaned["payment_method"] = patch["payment_method"]
    if "notes" in patch:
        notes = patch["notes"]
        if notes is not None:
            notes = str(notes).strip()
            if len(notes) > 500:
                raise ValidationError("notes exceeds max length 500")
        cleaned["notes"] = notes or None
    return cleaned


def _apply_reconciliation(txn: Transaction, patch: dict) -> None:
    current = txn.status
    requested = patch.get("status", current)

    financial = {"amount_paid_cents", "due_amount_cents", "is_paid", "payment_method"} & patch.keys()
    if current in RESTOCKING_STATUSES and (financial or requested != current):
        raise InvalidStatusTransition(current, requested)

    if "payment_method" in patch:
        txn.payment_method = patch["payment_method"]
    if "notes" in patch:
        txn.notes = patch["notes"]

    if "amount_paid_cents" in patch and patch["amount_paid_cents"] != txn.amount_paid_cents:
        if current != "due":
            raise ValidationError(
                f"Payments can only be recorded against a due transaction (status is {current})"
            )
        txn.amount_paid_cents = patch["amount_paid_cents"]
        txn.change_cents = max(txn.amount_paid_cents - txn.total_cents, 0)

    # The balance is always total - paid; a supplied value must agree with it
    due = max(txn.total_cents - txn.amount_paid_cents, 0)
    if "due_amount_cents" in patch and patch["due_amount_cents"] != due:
        raise ValidationError(
            f"due_amount_cents must equal total minus amount paid ({due} cents)"
        )
    if "is_paid" in patch and patch["is_paid"] != (due == 0):
        if patch["is_paid"]:
            raise ValidationError(f"Cannot mark a transaction paid while {due} cents are due")
        raise ValidationError("Cannot mark a fully paid transaction as unpaid")
    txn.due_amount_cents = due
    txn.is_paid = due == 0

    if requested != current:
        if requested not in ALLOWED_TRANSITIONS[current]:
            raise InvalidStatusTransition(current, requested)
        if requested == "completed" and txn.due_amount_cents > 0:
            raise InvalidStatusTransition(current, requested)
        txn.status = requested
        if requested in RESTOCKING_STATUSES:
            for item in txn.items:
                product_repository.increment_stock(txn.tenant_id, item.product_id, item.quantity)
    elif current == "due" and txn.due_amount_cents == 0:
        txn.status = "completed"


def update_transaction(tenant_id: int, transaction_id: int, patch: dict) -> Transaction:
    """
    Reconcile a recorded sale: payment fields, notes and status only.

    Items, totals, snapshots and references are immutable once posted.
    Cancelling or refunding returns every line's quantity to stock in the
    same database transaction as the status change.
    """
    cleaned = _clean_patch(patch)

    def _op():
        committed = False
        try:
            begin_write_transaction()
            txn = lock_for_update(
                scoped_query(Transaction, tenant_id).filter(Transaction.id == transaction_id)
            ).first()
            if txn is None:
                raise TransactionNotFound(transaction_id)
            previous = txn.status
            _apply_reconciliation(txn, cleaned)
            db.session.commit()
            committed = True
            if txn.status != previous:
                current_app.logger.info(
                    "Transaction %s for tenant %s moved from %s to %s",
                    txn.transaction_number, tenant_id, previous, txn.status,
                )
            return txn
        finally:
            if not committed:
                db.session.rollback()

    return run_with_retry(_op)
