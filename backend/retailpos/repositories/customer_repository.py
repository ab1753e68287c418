# backend/retailpos/repositories/customer_repository.py
"""
Customer Repository

MULTI-TENANT: tenant_id is the mandatory first argument of every function.

AGGREGATES: loyalty_points, total_spent_cents and total_visits are only ever
incremented, by one UPDATE in accrue_loyalty (no read-modify-write).
update_customer cannot touch them.
"""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, or_, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import CustomerNotFound, DuplicateKey, InactiveRecord
from ..models import Customer
from ..services.concurrency import expire_cached
from ..services.tenant_service import scoped_query
from ..validation import ValidationError
from retailpos.time_utils import utcnow

CUSTOMER_MUTABLE_FIELDS = {"name", "email", "phone", "notes", "is_active"}

_customers = Customer.__table__


def find_by_id(tenant_id: int, customer_id: int, *, require_active: bool = False) -> Customer:
    customer = scoped_query(Customer, tenant_id).filter(Customer.id == customer_id).first()
    if customer is None:
        raise CustomerNotFound(customer_id)
    if require_active and not customer.is_active:
        raise InactiveRecord(f"Customer is inactive: {customer.name}", {"customer_id": customer_id})
    return customer


def accrue_loyalty(
    tenant_id: int,
    customer_id: int,
    points_delta: int,
    spend_delta_cents: int,
    visited_at: datetime | None = None,
) -> None:
    """
    Atomically add loyalty points and spend to a customer and stamp the visit.

    Does not commit; runs inside the caller's sale transaction.
    """
    if points_delta < 0 or spend_delta_cents < 0:
        raise ValueError("loyalty accrual deltas must be non-negative")

    stmt = (
        update(_customers)
        .where(_customers.c.id == customer_id, _customers.c.tenant_id == tenant_id)
        .values(
            loyalty_points=_customers.c.loyalty_points + points_delta,
            total_spent_cents=_customers.c.total_spent_cents + spend_delta_cents,
            total_visits=_customers.c.total_visits + 1,
            last_visit_at=visited_at or utcnow(),
            version_id=_customers.c.version_id + 1,
        )
    )
    result = db.session.execute(stmt)
    expire_cached(Customer, customer_id)
    if result.rowcount != 1:
        raise CustomerNotFound(customer_id)


def _ensure_unique_email(tenant_id: int, email: str, exclude_id: int | None = None) -> None:
    query = scoped_query(Customer, tenant_id).filter(Customer.email == email)
    if exclude_id is not None:
        query = query.filter(Customer.id != exclude_id)
    if query.first() is not None:
        raise DuplicateKey("email", email)


def apply_customer_patch(c: Customer, patch: dict) -> None:
    for k, v in patch.items():
        if k not in CUSTOMER_MUTABLE_FIELDS:
            continue
        setattr(c, k, v)


def create_customer(tenant_id: int, patch: dict, *, commit: bool = True) -> Customer:
    if not patch.get("name"):
        raise ValidationError("name is required")
    email = patch.get("email")
    if not email:
        raise ValidationError("email is required")
    email = email.lower()

    _ensure_unique_email(tenant_id, email)

    c = Customer(tenant_id=tenant_id)
    apply_customer_patch(c, {**patch, "email": email})

    db.session.add(c)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise DuplicateKey("email", email)

    if commit:
        db.session.commit()
    return c


def update_customer(tenant_id: int, customer_id: int, patch: dict, *, commit: bool = True) -> Customer:
    c = find_by_id(tenant_id, customer_id)

    protected = {"loyalty_points", "total_spent_cents", "total_visits", "last_visit_at"} & set(patch)
    if protected:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(protected))}")

    if patch.get("email") is not None:
        patch = {**patch, "email": patch["email"].lower()}
        if patch["email"] != c.email:
            _ensure_unique_email(tenant_id, patch["email"], exclude_id=c.id)

    apply_customer_patch(c, patch)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise DuplicateKey("email", patch.get("email"))

    if commit:
        db.session.commit()
    return c


def list_customers(
    tenant_id: int,
    *,
    search: str | None = None,
    include_inactive: bool = False,
    page: int = 1,
    per_page: int = 20,
) -> dict:
    query = scoped_query(Customer, tenant_id)
    if not include_inactive:
        query = query.filter(Customer.is_active.is_(True))
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(Customer.name.ilike(pattern), Customer.email.ilike(pattern), Customer.phone.ilike(pattern))
        )

    per_page = min(per_page or 20, 100)
    page = max(page, 1)
    total = query.with_entities(func.count(Customer.id)).scalar()
    customers = (
        query.order_by(Customer.name.asc(), Customer.id.asc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return {
        "items": [c.to_dict() for c in customers],
        "count": len(customers),
        "total": total,
        "page": page,
        "pages": (total + per_page - 1) // per_page if total else 1,
    }
