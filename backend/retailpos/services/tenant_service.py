"""
Multi-Tenant Service: Tenant Validation and Scoping Helpers

WHY: Centralize tenant context handling. The tenant id is extracted once,
at the request boundary (@require_auth sets g.tenant_id from the session),
and then passed explicitly as the first argument of every repository and
service call. Nothing below the route layer reads g.

SECURITY INVARIANTS:
1. Every authenticated request has g.tenant_id set
2. Every query against a business table filters by tenant_id
3. A record owned by another tenant is reported as "not found", never as
   "forbidden", so its existence is not revealed

USAGE:
    from retailpos.services.tenant_service import get_current_tenant_id, scoped_query

    tenant_id = get_current_tenant_id()
    products = scoped_query(Product, tenant_id).filter_by(is_active=True).all()
"""

from flask import current_app, g

from ..extensions import db
from ..errors import TenantAccessError
from ..models import Tenant, TenantSettings


def get_current_tenant_id() -> int:
    """
    Get current tenant id from Flask g context.

    SECURITY: Raises TenantAccessError if tenant_id not set.
    This should never happen after @require_auth, but is a safety check.
    """
    tenant_id = getattr(g, "tenant_id", None)
    if tenant_id is None:
        raise TenantAccessError("Tenant context not established")
    return tenant_id


def require_active_tenant(tenant_id: int) -> Tenant:
    """
    Validate that a tenant exists and is active.

    Raises:
        TenantAccessError if tenant doesn't exist or is inactive
    """
    tenant = db.session.query(Tenant).filter_by(id=tenant_id).first()

    if not tenant:
        raise TenantAccessError("Store not found or inactive", {"tenant_id": tenant_id})

    if not tenant.is_active:
        raise TenantAccessError("Store not found or inactive", {"tenant_id": tenant_id})

    return tenant


def get_settings(tenant_id: int) -> TenantSettings | None:
    return db.session.query(TenantSettings).filter_by(tenant_id=tenant_id).first()


def get_or_create_settings(tenant_id: int, **defaults) -> TenantSettings:
    """
    Return the tenant's settings row, creating one if missing.

    defaults only apply to a newly created row; tax_rate_bps falls back to
    DEFAULT_TAX_RATE_BPS. Flushes but does not commit.
    """
    settings = get_settings(tenant_id)
    if settings is None:
        if defaults.get("tax_rate_bps") is None:
            defaults["tax_rate_bps"] = current_app.config["DEFAULT_TAX_RATE_BPS"]
        settings = TenantSettings(tenant_id=tenant_id, **defaults)
        db.session.add(settings)
        db.session.flush()
    return settings


def get_tax_rate_bps(tenant_id: int) -> int:
    """
    Tax rate applied to sales for a tenant.

    The tenant's configured rate is authoritative; DEFAULT_TAX_RATE_BPS only
    covers tenants that have never saved settings.
    """
    settings = get_settings(tenant_id)
    if settings is None:
        return current_app.config["DEFAULT_TAX_RATE_BPS"]
    return settings.tax_rate_bps


def loyalty_enabled(tenant_id: int) -> bool:
    settings = get_settings(tenant_id)
    return True if settings is None else bool(settings.loyalty_enabled)


def scoped_query(model, tenant_id: int):
    """
    Create a base query scoped to a tenant.

    Args:
        model: SQLAlchemy model class (must have tenant_id column)
        tenant_id: Tenant ID, required

    Usage:
        customers = scoped_query(Customer, tenant_id).filter_by(is_active=True).all()
    """
    if tenant_id is None:
        raise TenantAccessError("Tenant context not established")
    return db.session.query(model).filter(model.tenant_id == tenant_id)
