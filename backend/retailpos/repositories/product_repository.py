# backend/retailpos/repositories/product_repository.py
"""
Product / Inventory Repository

MULTI-TENANT: tenant_id is the mandatory first argument of every function.
A product owned by another tenant is indistinguishable from a missing one.

STOCK PRIMITIVES:
Stock is changed only through single conditional UPDATE statements:

    UPDATE products SET stock = stock - :qty
     WHERE id = :id AND tenant_id = :tenant AND stock >= :qty

The database evaluates the guard and the write atomically, so two concurrent
sales of the last unit cannot both match. There is no read-then-write window
in application code. None of the stock primitives commit; the caller owns the
surrounding database transaction.
"""
from __future__ import annotations

from sqlalchemy import func, or_, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import DuplicateKey, InactiveRecord, InsufficientStock, InvalidAdjustment, ProductNotFound
from ..models import Category, Product, Supplier
from ..services.concurrency import expire_cached
from ..services.tenant_service import scoped_query
from ..validation import ValidationError

PRODUCT_MUTABLE_FIELDS = {
    "sku",
    "barcode",
    "name",
    "description",
    "price_cents",
    "cost_price_cents",
    "reorder_level",
    "category_id",
    "supplier_id",
    "is_active",
}

_products = Product.__table__


def find_by_id(tenant_id: int, product_id: int, *, require_active: bool = False) -> Product:
    product = scoped_query(Product, tenant_id).filter(Product.id == product_id).first()
    if product is None:
        raise ProductNotFound(product_id)
    if require_active and not product.is_active:
        raise InactiveRecord(f"Product is inactive: {product.name}", {"product_id": product_id})
    return product


def get_stock(tenant_id: int, product_id: int) -> int | None:
    """Current stock straight from the database (bypasses the identity map)."""
    return (
        db.session.query(Product.stock)
        .filter(Product.id == product_id, Product.tenant_id == tenant_id)
        .scalar()
    )


def _apply_conditional_update(tenant_id: int, product_id: int, delta: int, guard) -> bool:
    stmt = (
        update(_products)
        .where(
            _products.c.id == product_id,
            _products.c.tenant_id == tenant_id,
            guard,
        )
        .values(
            stock=_products.c.stock + delta,
            version_id=_products.c.version_id + 1,
        )
    )
    result = db.session.execute(stmt)
    expire_cached(Product, product_id)
    return result.rowcount == 1


def decrement_stock_if_available(tenant_id: int, product_id: int, quantity: int) -> int:
    """
    Atomically decrement stock by quantity if at least quantity is available.

    Returns the new stock.

    Raises:
        ProductNotFound: product missing or owned by another tenant
        InsufficientStock: fewer than quantity units on hand at write time
    """
    if quantity <= 0:
        raise ValueError("quantity must be positive")

    if _apply_conditional_update(tenant_id, product_id, -quantity, _products.c.stock >= quantity):
        return get_stock(tenant_id, product_id)

    row = (
        db.session.query(Product.name, Product.stock)
        .filter(Product.id == product_id, Product.tenant_id == tenant_id)
        .first()
    )
    if row is None:
        raise ProductNotFound(product_id)
    raise InsufficientStock(
        product_id=product_id,
        product_name=row.name,
        available=row.stock,
        requested=quantity,
    )


def increment_stock(tenant_id: int, product_id: int, quantity: int) -> int:
    """Return quantity units to stock (sale rollback, cancellation, refund)."""
    if quantity <= 0:
        raise ValueError("quantity must be positive")

    if not _apply_conditional_update(tenant_id, product_id, quantity, _products.c.stock >= 0):
        raise ProductNotFound(product_id)
    return get_stock(tenant_id, product_id)


def apply_stock_delta(tenant_id: int, product_id: int, delta: int) -> int:
    """
    Atomically apply stock += delta, refusing to go below zero.

    Raises:
        InvalidAdjustment: delta is zero or the result would be negative
        ProductNotFound: product missing or owned by another tenant
    """
    if delta == 0:
        raise InvalidAdjustment("Adjustment amount must be non-zero", {"product_id": product_id, "amount": 0})

    if _apply_conditional_update(tenant_id, product_id, delta, _products.c.stock + delta >= 0):
        return get_stock(tenant_id, product_id)

    current = get_stock(tenant_id, product_id)
    if current is None:
        raise ProductNotFound(product_id)
    raise InvalidAdjustment(
        f"Adjustment would make stock negative. Current: {current}, Adjustment: {delta}",
        {"product_id": product_id, "current_stock": current, "amount": delta},
    )


def _require_reference(tenant_id: int, model, field: str, value) -> None:
    if value is None:
        return
    exists = scoped_query(model, tenant_id).filter(model.id == value).first()
    if exists is None:
        raise ValidationError(f"{field} does not reference a record in this store")


def _ensure_unique_sku(tenant_id: int, sku: str, exclude_id: int | None = None) -> None:
    query = scoped_query(Product, tenant_id).filter(Product.sku == sku)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first() is not None:
        raise DuplicateKey("sku", sku)


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def create_product(tenant_id: int, patch: dict, *, commit: bool = True) -> Product:
    """
    Create a product from a validated patch.

    Initial stock may be set on create; afterwards stock only moves through
    sales and inventory adjustments.
    """
    missing = sorted(f for f in ("sku", "name", "price_cents") if patch.get(f) in (None, ""))
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    sku = patch["sku"].upper()

    _ensure_unique_sku(tenant_id, sku)
    _require_reference(tenant_id, Category, "category_id", patch.get("category_id"))
    _require_reference(tenant_id, Supplier, "supplier_id", patch.get("supplier_id"))

    p = Product(tenant_id=tenant_id, stock=patch.get("stock", 0))
    apply_product_patch(p, {**patch, "sku": sku})

    db.session.add(p)
    try:
        db.session.flush()
    except IntegrityError:
        # Lost a race with a concurrent create of the same SKU
        db.session.rollback()
        raise DuplicateKey("sku", sku)

    if commit:
        db.session.commit()
    return p


def update_product(tenant_id: int, product_id: int, patch: dict, *, commit: bool = True) -> Product:
    p = find_by_id(tenant_id, product_id)

    if "stock" in patch:
        raise ValidationError("stock cannot be edited directly; use an inventory adjustment")

    if patch.get("sku") is not None:
        patch = {**patch, "sku": patch["sku"].upper()}
        if patch["sku"] != p.sku:
            _ensure_unique_sku(tenant_id, patch["sku"], exclude_id=p.id)

    _require_reference(tenant_id, Category, "category_id", patch.get("category_id"))
    _require_reference(tenant_id, Supplier, "supplier_id", patch.get("supplier_id"))

    apply_product_patch(p, patch)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise DuplicateKey("sku", patch.get("sku"))

    if commit:
        db.session.commit()
    return p


def deactivate_product(tenant_id: int, product_id: int, *, commit: bool = True) -> Product:
    """Soft-delete only: preserve IDs and historical references."""
    p = find_by_id(tenant_id, product_id)
    if p.is_active:
        p.is_active = False
    if commit:
        db.session.commit()
    return p


def list_products(
    tenant_id: int,
    *,
    search: str | None = None,
    include_inactive: bool = False,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Tenant-scoped product listing with optional pagination.

    Returns:
        Dict with 'items', 'count', and pagination metadata if paginated.
    """
    base_query = scoped_query(Product, tenant_id)
    if not include_inactive:
        base_query = base_query.filter(Product.is_active.is_(True))
    if search:
        pattern = f"%{search.strip()}%"
        base_query = base_query.filter(
            or_(Product.name.ilike(pattern), Product.sku.ilike(pattern), Product.barcode.ilike(pattern))
        )
    base_query = base_query.order_by(Product.name.asc(), Product.id.asc())

    # If no pagination requested, return all items
    if page is None:
        products = base_query.all()
        return {
            "items": [p.to_dict() for p in products],
            "count": len(products),
        }

    per_page = min(per_page or 20, 100)  # Default 20, max 100
    page = max(page, 1)

    total = base_query.order_by(None).with_entities(func.count(Product.id)).scalar()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    products = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def low_stock(tenant_id: int) -> list[Product]:
    """Active products at or below their reorder level, most urgent first."""
    return (
        scoped_query(Product, tenant_id)
        .filter(Product.is_active.is_(True), Product.stock <= Product.reorder_level)
        .order_by((Product.stock - Product.reorder_level).asc(), Product.name.asc())
        .all()
    )
