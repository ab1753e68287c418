# backend/retailpos/routes/products.py
"""
Product management routes with multi-tenant support.

MULTI-TENANT: All product operations are scoped to the caller's tenant
(g.tenant_id, set by @require_auth).

SECURITY: All routes require authentication. Catalog writes are limited to
admins and managers.
"""
from flask import Blueprint, request

from ..decorators import require_auth, require_role
from ..errors import DomainError, error_body
from ..models import Product
from ..repositories import product_repository
from ..services.tenant_service import get_current_tenant_id
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    enforce_rules_product,
    validate_payload,
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku", "barcode", "name", "description", "price_cents", "cost_price_cents",
        "stock", "reorder_level", "category_id", "supplier_id", "is_active",
    },
    required_on_create={"sku", "name", "price_cents"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products():
    """
    List products with optional pagination.

    Query params:
    - search: str (optional) - matches name, SKU or barcode
    - include_inactive: "true" to include deactivated products
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    return product_repository.list_products(
        get_current_tenant_id(),
        search=request.args.get("search"),
        include_inactive=request.args.get("include_inactive") == "true",
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        product = product_repository.find_by_id(get_current_tenant_id(), product_id)
    except DomainError as e:
        return e.to_dict(), e.status_code
    return {"product": product.to_dict()}, 200


@products_bp.post("")
@require_auth
@require_role("admin", "manager")
def create_product_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)  # Handles price validation including max check
        created = product_repository.create_product(get_current_tenant_id(), patch)
    except DomainError as e:
        return e.to_dict(), e.status_code
    except ValidationError as e:
        return error_body(str(e)), 400

    return {"product": created.to_dict()}, 201


@products_bp.put("/<int:product_id>")
@require_auth
@require_role("admin", "manager")
def update_product_route(product_id: int):
    """
    Update product master data.

    Stock is not writable here; use PATCH /api/inventory/<id>/adjust.
    """
    payload = request.get_json(silent=True) or {}

    try:
        if "stock" in payload:
            raise ValidationError("stock cannot be edited directly; use an inventory adjustment")
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
        updated = product_repository.update_product(get_current_tenant_id(), product_id, patch)
    except DomainError as e:
        return e.to_dict(), e.status_code
    except ValidationError as e:
        return error_body(str(e)), 400

    return {"product": updated.to_dict()}, 200


@products_bp.delete("/<int:product_id>")
@require_auth
@require_role("admin", "manager")
def delete_product_route(product_id: int):
    """Soft delete: the product stays referenced by sales history."""
    try:
        product_repository.deactivate_product(get_current_tenant_id(), product_id)
    except DomainError as e:
        return e.to_dict(), e.status_code

    return {"ok": True}, 200
