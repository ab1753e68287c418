# backend/retailpos/routes/transactions.py
"""
Transactions API routes

POST creates a sale through the transaction engine (stock, loyalty and the
receipt commit together). PUT reconciles payment and status; items and totals
are immutable once posted.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..errors import DomainError, error_body
from ..services import transaction_service
from ..services.tenant_service import get_current_tenant_id
from ..validation import ValidationError, coerce_int, parse_sale_request
from retailpos.time_utils import parse_iso_datetime


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


@transactions_bp.post("")
@require_auth
def create_transaction_route():
    """
    Post a sale.

    Returns 201 with the recorded transaction, or 200 when idempotency_key
    matched a sale that was already recorded.
    """
    try:
        tenant_id = get_current_tenant_id()
        sale = parse_sale_request(request.get_json(silent=True))

        result = transaction_service.post_sale(tenant_id, g.current_user.id, **sale)

        status = 200 if result.replayed else 201
        return jsonify({"transaction": result.transaction.to_display_dict()}), status

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except ValidationError as e:
        return jsonify(error_body(str(e))), 400
    except Exception:
        current_app.logger.exception("Failed to post sale")
        return jsonify(error_body("Internal server error")), 500


@transactions_bp.get("")
@require_auth
def list_transactions_route():
    """
    List transactions, newest first.

    Query: page, per_page, status, customer_id, cashier_id, start, end (ISO 8601)
    """
    try:
        tenant_id = get_current_tenant_id()
        args = request.args

        def _opt_int(name):
            return coerce_int(name, args[name]) if args.get(name) else None

        result = transaction_service.list_transactions(
            tenant_id,
            status=args.get("status") or None,
            customer_id=_opt_int("customer_id"),
            cashier_id=_opt_int("cashier_id"),
            start=parse_iso_datetime(args.get("start")),
            end=parse_iso_datetime(args.get("end"), end_of_day=True),
            page=_opt_int("page") or 1,
            per_page=_opt_int("per_page") or 20,
        )
        return jsonify(result), 200

    except ValidationError as e:
        return jsonify(error_body(str(e))), 400
    except ValueError as e:
        return jsonify(error_body(f"Invalid date: {e}")), 400
    except Exception:
        current_app.logger.exception("Failed to list transactions")
        return jsonify(error_body("Internal server error")), 500


@transactions_bp.get("/<int:transaction_id>")
@require_auth
def get_transaction_route(transaction_id: int):
    try:
        txn = transaction_service.get_transaction(get_current_tenant_id(), transaction_id)
        return jsonify({"transaction": txn.to_display_dict()}), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load transaction %s", transaction_id)
        return jsonify(error_body("Internal server error")), 500


@transactions_bp.put("/<int:transaction_id>")
@require_auth
def update_transaction_route(transaction_id: int):
    """
    Reconcile a transaction.

    Writable: status, amount_paid_cents, due_amount_cents, is_paid,
    payment_method, notes. Anything else is rejected.
    """
    try:
        tenant_id = get_current_tenant_id()
        patch = request.get_json(silent=True)

        txn = transaction_service.update_transaction(tenant_id, transaction_id, patch)

        return jsonify({"transaction": txn.to_display_dict()}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except ValidationError as e:
        return jsonify(error_body(str(e))), 400
    except Exception:
        current_app.logger.exception("Failed to update transaction")
        return jsonify(error_body("Internal server error")), 500
