from __future__ import annotations

from ..extensions import db
from retailpos.time_utils import to_utc_z

PAYMENT_METHODS = ("cash", "card", "digital")
TRANSACTION_STATUSES = ("completed", "due", "cancelled", "refunded")


class Transaction(db.Model):
    """
    Sale record (receipt header).

    IMMUTABLE HISTORY: items and every computed total are written once by
    transaction_service.post_sale. Afterwards only the reconciliation fields
    (status, amount_paid_cents, due_amount_cents, is_paid, payment_method,
    notes) may change.

    transaction_number is the human-readable id printed on receipts:
    <tenant prefix>-<epoch millis>-<random suffix>, unique per tenant.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "transaction_number", name="uq_transactions_tenant_number"),
        db.UniqueConstraint("tenant_id", "idempotency_key", name="uq_transactions_tenant_idempotency"),
        db.CheckConstraint("total_cents >= 0", name="ck_transactions_total_nonnegative"),
        db.CheckConstraint("amount_paid_cents >= 0", name="ck_transactions_paid_nonnegative"),
        db.Index("ix_transactions_tenant_created", "tenant_id", "created_at"),
        db.Index("ix_transactions_tenant_status", "tenant_id", "status"),
        db.Index("ix_transactions_tenant_customer", "tenant_id", "customer_id"),
        db.Index("ix_transactions_tenant_cashier", "tenant_id", "cashier_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    transaction_number = db.Column(db.String(64), nullable=False)
    idempotency_key = db.Column(db.String(128), nullable=True)

    cashier_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True)

    # Totals (all amounts in cents)
    subtotal_cents = db.Column(db.Integer, nullable=False)
    tax_rate_bps = db.Column(db.Integer, nullable=False)
    tax_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    # Payment
    payment_method = db.Column(db.String(16), nullable=False)
    amount_paid_cents = db.Column(db.Integer, nullable=False)
    change_cents = db.Column(db.Integer, nullable=False, default=0)
    due_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    is_paid = db.Column(db.Boolean, nullable=False, default=True)

    loyalty_points_earned = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default="completed")
    notes = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    cashier = db.relationship("User")
    customer = db.relationship("Customer")
    items = db.relationship(
        "TransactionItem",
        back_populates="transaction",
        order_by="TransactionItem.line_number",
        lazy="selectin",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, *, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "transaction_number": self.transaction_number,
            "cashier_id": self.cashier_id,
            "customer_id": self.customer_id,
            "subtotal_cents": self.subtotal_cents,
            "tax_rate_bps": self.tax_rate_bps,
            "tax_cents": self.tax_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "amount_paid_cents": self.amount_paid_cents,
            "change_cents": self.change_cents,
            "due_amount_cents": self.due_amount_cents,
            "is_paid": self.is_paid,
            "loyalty_points_earned": self.loyalty_points_earned,
            "status": self.status,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data

    def to_display_dict(self) -> dict:
        """Serialized transaction with cashier, customer and product references resolved."""
        data = self.to_dict()
        data["cashier"] = (
            {"id": self.cashier.id, "username": self.cashier.username, "name": self.cashier.name}
            if self.cashier else None
        )
        data["customer"] = (
            {"id": self.customer.id, "name": self.customer.name, "email": self.customer.email}
            if self.customer else None
        )
        for item_data, item in zip(data["items"], self.items):
            item_data["product"] = (
                {"id": item.product.id, "name": item.product.name, "sku": item.product.sku}
                if item.product else None
            )
        return data


class TransactionItem(db.Model):
    """
    One line of a sale with an embedded product snapshot.

    product_id is the live reference used for joins and analytics;
    product_name / product_sku / product_price_cents are copied at sale time
    and never follow later product edits.
    """
    __tablename__ = "transaction_items"
    __table_args__ = (
        db.UniqueConstraint("transaction_id", "line_number", name="uq_transaction_items_line"),
        db.CheckConstraint("quantity >= 1", name="ck_transaction_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    # Snapshot at sale time
    product_name = db.Column(db.String(100), nullable=False)
    product_sku = db.Column(db.String(64), nullable=False)
    product_price_cents = db.Column(db.Integer, nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False)

    transaction = db.relationship("Transaction", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "line_number": self.line_number,
            "product_id": self.product_id,
            "product_snapshot": {
                "name": self.product_name,
                "sku": self.product_sku,
                "price_cents": self.product_price_cents,
            },
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
        }
