from __future__ import annotations

from ..extensions import db
from stoq.time_utils import to_utc_z, to_iso_date


ORDER_PENDING = "pending"
ORDER_APPROVED = "approved"
ORDER_REJECTED = "rejected"
ORDER_COMPLETED = "completed"
ORDER_STATUSES = (ORDER_PENDING, ORDER_APPROVED, ORDER_REJECTED, ORDER_COMPLETED)


class Order(db.Model):
    """
    Customer order with its embedded invoice.

    Line items are a JSON snapshot of the inventory rows at order time
    ({"item": {...}, "quantity": n}), so later price edits never rewrite
    history.

    INVOICE: not a separate entity. The invoice_* columns stay NULL until an
    admin first saves an invoice for an approved order; invoice_confirmed
    locks it and unlocks the customer download.

    All amounts in cents, tax rate in basis points.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_user_status_created", "user_id", "status", "created_at"),
        db.Index("ix_orders_invoice_number", "invoice_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    items = db.Column(db.JSON, nullable=False, default=list)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_rate_bps = db.Column(db.Integer, nullable=True)
    tax_cents = db.Column(db.Integer, nullable=True)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=ORDER_PENDING, index=True)

    # Discount: percentage keeps the entered percent, fixed stores only cents
    discount_type = db.Column(db.String(16), nullable=True)
    discount_percent = db.Column(db.Numeric(7, 3), nullable=True)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    shipping_cents = db.Column(db.Integer, nullable=False, default=0)

    shipping_address = db.Column(db.String(512), nullable=True)
    billing_address = db.Column(db.String(512), nullable=True)

    rejection_reason = db.Column(db.String(255), nullable=True)
    rejection_comment = db.Column(db.Text, nullable=True)

    # Embedded invoice
    invoice_number = db.Column(db.String(16), nullable=True)
    invoice_date = db.Column(db.Date, nullable=True)
    po_number = db.Column(db.String(16), nullable=True)
    payment_terms = db.Column(db.String(16), nullable=True)
    due_date = db.Column(db.Date, nullable=True)
    hst_number = db.Column(db.String(64), nullable=True)
    invoice_notes = db.Column(db.Text, nullable=True)
    invoice_terms = db.Column(db.Text, nullable=True)
    invoice_confirmed = db.Column(db.Boolean, nullable=False, default=False)
    invoice_confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    approved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    user = db.relationship("User", foreign_keys=[user_id], backref=db.backref("orders", lazy=True))
    approved_by = db.relationship("User", foreign_keys=[approved_by_user_id])
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def item_count(self) -> int:
        return sum(int(line.get("quantity") or 0) for line in (self.items or []))

    def invoice_dict(self) -> dict | None:
        if not self.invoice_number:
            return None
        return {
            "invoice_number": self.invoice_number,
            "invoice_date": to_iso_date(self.invoice_date),
            "po_number": self.po_number,
            "payment_terms": self.payment_terms,
            "due_date": to_iso_date(self.due_date),
            "hst_number": self.hst_number,
            "invoice_notes": self.invoice_notes,
            "invoice_terms": self.invoice_terms,
            "invoice_confirmed": bool(self.invoice_confirmed),
            "invoice_confirmed_at": to_utc_z(self.invoice_confirmed_at),
        }

    def to_dict(self, viewer_is_admin: bool = False) -> dict:
        from ..services.pricing_service import visible_totals
        from ..services.invoice_service import invoice_state

        return {
            "id": self.id,
            "user_id": self.user_id,
            "items": self.items or [],
            "item_count": self.item_count,
            "status": self.status,
            "totals": visible_totals(self, viewer_is_admin=viewer_is_admin).to_dict(),
            "shipping_address": self.shipping_address,
            "billing_address": self.billing_address,
            "rejection_reason": self.rejection_reason,
            "rejection_comment": self.rejection_comment,
            "invoice_state": invoice_state(self),
            "invoice": self.invoice_dict(),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
