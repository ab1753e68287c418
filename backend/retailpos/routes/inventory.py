# backend/retailpos/routes/inventory.py
"""Inventory API routes: stock adjustments and the low-stock listing."""

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import DomainError, error_body
from ..services import inventory_service
from ..services.tenant_service import get_current_tenant_id
from ..validation import ValidationError, parse_adjustment


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.patch("/<int:product_id>/adjust")
@require_auth
@require_role("admin", "manager")
def adjust_route(product_id: int):
    """
    Adjust on-hand stock by a signed amount.

    Body: {"amount": int}. Negative amounts remove stock; the result may not
    drop below zero.
    """
    try:
        tenant_id = get_current_tenant_id()
        amount = parse_adjustment(request.get_json(silent=True))

        product = inventory_service.adjust_inventory(tenant_id, product_id, amount)

        return jsonify({"product": product.to_dict()}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except ValidationError as e:
        return jsonify(error_body(str(e))), 400
    except Exception:
        current_app.logger.exception("Failed to adjust inventory")
        return jsonify(error_body("Internal server error")), 500


@inventory_bp.get("/low-stock")
@require_auth
def low_stock_route():
    products = inventory_service.low_stock_products(get_current_tenant_id())
    return jsonify({"items": [p.to_dict() for p in products], "count": len(products)}), 200
