# Overview: Domain error taxonomy shared by repositories, services, and routes.

"""
Business-rule errors raised by the repositories and the transaction engine.

Every error carries a human-readable message, a ``details`` dict with the
entity ids and amounts involved, and the HTTP status the API layer should
answer with. Routes render them with ``error_body`` as
``{"success": false, "message": message, "errors": details}``; ``errors`` is
left out when there are no details.

Infrastructure failures (database unavailable, lock timeouts) are NOT part of
this hierarchy; they propagate as-is and surface as 500s.
"""

from __future__ import annotations


class DomainError(Exception):
    """Base class for business-rule failures."""

    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return error_body(self.message, self.details)


class ProductNotFound(DomainError):
    status_code = 404

    def __init__(self, product_id):
        super().__init__(f"Product not found: {product_id}", {"product_id": product_id})


class CustomerNotFound(DomainError):
    status_code = 404

    def __init__(self, customer_id):
        super().__init__(f"Customer not found: {customer_id}", {"customer_id": customer_id})


class TransactionNotFound(DomainError):
    status_code = 404

    def __init__(self, transaction_id):
        super().__init__("Transaction not found", {"transaction_id": transaction_id})


class InsufficientStock(DomainError):
    def __init__(self, *, product_id: int, product_name: str | None, available: int, requested: int):
        label = product_name or f"product {product_id}"
        super().__init__(
            f"Insufficient stock for {label}. Available: {available}, Requested: {requested}",
            {
                "product_id": product_id,
                "product_name": product_name,
                "available": available,
                "requested": requested,
            },
        )


class InsufficientPayment(DomainError):
    def __init__(self, *, total_cents: int, amount_paid_cents: int):
        super().__init__(
            f"Amount paid ({amount_paid_cents} cents) is less than total ({total_cents} cents)",
            {
                "total_cents": total_cents,
                "amount_paid_cents": amount_paid_cents,
                "shortfall_cents": total_cents - amount_paid_cents,
            },
        )


class InvalidAdjustment(DomainError):
    pass


class InvalidDiscount(DomainError):
    pass


class ImmutableFieldViolation(DomainError):
    def __init__(self, fields: list[str]):
        super().__init__(
            f"Cannot modify immutable transaction fields: {', '.join(sorted(fields))}",
            {"fields": sorted(fields)},
        )


class InvalidStatusTransition(DomainError):
    def __init__(self, current: str, requested: str):
        super().__init__(
            f"Cannot change transaction status from {current} to {requested}",
            {"current_status": current, "requested_status": requested},
        )


class InactiveRecord(DomainError):
    """Record exists but has been soft-deleted or deactivated."""


class DuplicateKey(DomainError):
    def __init__(self, field: str, value):
        super().__init__(f"{field} already exists: {value}", {"field": field, "value": value})


class TenantAccessError(DomainError):
    """Raised when the tenant context is missing, unknown, or inactive."""

    status_code = 404


def error_body(message: str, details: dict | None = None) -> dict:
    """JSON body for every failed API request."""
    body = {"success": False, "message": message}
    if details:
        body["errors"] = details
    return body
