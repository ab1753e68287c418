# backend/retailpos/routes/customers.py
"""
Customer routes.

Loyalty points, total spent and visit counts are read-only here; they only
move when a sale is posted.
"""
from flask import Blueprint, request

from ..decorators import require_auth, require_role
from ..errors import DomainError, error_body
from ..models import Customer
from ..repositories import customer_repository
from ..services.tenant_service import get_current_tenant_id
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    enforce_rules_customer,
    validate_payload,
)

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "email", "phone", "notes", "is_active"},
    required_on_create={"name", "email"},
)

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_auth
def list_customers_route():
    return customer_repository.list_customers(
        get_current_tenant_id(),
        search=request.args.get("search"),
        include_inactive=request.args.get("include_inactive") == "true",
        page=request.args.get("page", 1, type=int),
        per_page=request.args.get("per_page", 20, type=int),
    )


@customers_bp.get("/<int:customer_id>")
@require_auth
def get_customer_route(customer_id: int):
    try:
        customer = customer_repository.find_by_id(get_current_tenant_id(), customer_id)
    except DomainError as e:
        return e.to_dict(), e.status_code
    return {"customer": customer.to_dict()}, 200


@customers_bp.post("")
@require_auth
def create_customer_route():
    """Any signed-in user may register a customer at the till."""
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
        enforce_rules_customer(patch)
        created = customer_repository.create_customer(get_current_tenant_id(), patch)
    except DomainError as e:
        return e.to_dict(), e.status_code
    except ValidationError as e:
        return error_body(str(e)), 400

    return {"customer": created.to_dict()}, 201


@customers_bp.put("/<int:customer_id>")
@require_auth
@require_role("admin", "manager")
def update_customer_route(customer_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True)
        enforce_rules_customer(patch)
        updated = customer_repository.update_customer(get_current_tenant_id(), customer_id, patch)
    except DomainError as e:
        return e.to_dict(), e.status_code
    except ValidationError as e:
        return error_body(str(e)), 400

    return {"customer": updated.to_dict()}, 200
