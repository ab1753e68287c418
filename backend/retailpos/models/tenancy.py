from __future__ import annotations

from ..extensions import db
from retailpos.time_utils import to_utc_z

class Tenant(db.Model):
    """
    Multi-tenant root: every store is a Tenant.

    WHY: Enables shared-database multi-tenancy with strict isolation.
    All products, customers, users and transactions carry tenant_id.
    No data may cross tenant boundaries.
    """
    __tablename__ = "tenants"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)  # Short code, also the transaction number prefix

    currency = db.Column(db.String(8), nullable=False, default="USD")
    locale = db.Column(db.String(16), nullable=False, default="en")

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Tenant id={self.id} name={self.name!r}>"

    @property
    def transaction_prefix(self) -> str:
        source = self.code or f"{self.id:04d}"
        return source[-4:].upper()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "currency": self.currency,
            "locale": self.locale,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class TenantSettings(db.Model):
    """
    One settings row per tenant.

    tax_rate_bps is authoritative for sale posting. When a tenant has no row,
    Config.DEFAULT_TAX_RATE_BPS applies.
    """
    __tablename__ = "tenant_settings"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", name="uq_tenant_settings_tenant"),
        db.CheckConstraint("tax_rate_bps >= 0 AND tax_rate_bps <= 10000", name="ck_tenant_settings_tax_rate"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    tax_rate_bps = db.Column(db.Integer, nullable=False, default=800)  # Basis points (e.g., 825 = 8.25%)
    currency = db.Column(db.String(8), nullable=False, default="USD")
    receipt_header = db.Column(db.String(200), nullable=True, default="Thank you for your business!")
    receipt_footer = db.Column(db.String(200), nullable=True, default="Please keep this receipt for your records")
    low_stock_threshold = db.Column(db.Integer, nullable=False, default=10)
    loyalty_enabled = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    tenant = db.relationship("Tenant", backref=db.backref("settings", uselist=False, lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "tax_rate_bps": self.tax_rate_bps,
            "currency": self.currency,
            "receipt_header": self.receipt_header,
            "receipt_footer": self.receipt_footer,
            "low_stock_threshold": self.low_stock_threshold,
            "loyalty_enabled": self.loyalty_enabled,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
