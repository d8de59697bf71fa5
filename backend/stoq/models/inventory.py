from __future__ import annotations

from ..extensions import db
from stoq.time_utils import to_utc_z


GRADES = ("A", "B", "C", "D")
PRICE_CHANGES = ("up", "down", "stable")


class InventoryItem(db.Model):
    """
    One sellable device line: model + grade + storage variant.

    Prices are stored in cents. price_per_unit_cents is the unit cost,
    selling_price_cents is what the storefront charges (falls back to the
    unit cost when unset).

    LIFECYCLE: created by bulk upload or manual entry, quantity decremented
    on order approval, deactivated instead of deleted.
    """
    __tablename__ = "inventory_items"
    __table_args__ = (
        db.UniqueConstraint("device_name", "grade", "storage", name="uq_inventory_variant"),
        db.Index("ix_inventory_brand_grade", "brand", "grade"),
        db.Index("ix_inventory_active_created", "is_active", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    device_name = db.Column(db.String(255), nullable=False)
    brand = db.Column(db.String(64), nullable=True, index=True)
    grade = db.Column(db.String(1), nullable=False, default="A")
    storage = db.Column(db.String(32), nullable=False, default="")

    quantity = db.Column(db.Integer, nullable=False, default=0)

    price_per_unit_cents = db.Column(db.Integer, nullable=False, default=0)
    purchase_price_cents = db.Column(db.Integer, nullable=True)
    # HST as basis points (1300 = 13%)
    hst_bps = db.Column(db.Integer, nullable=True)
    selling_price_cents = db.Column(db.Integer, nullable=True)

    price_change = db.Column(db.String(8), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_updated = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def effective_price_cents(self) -> int:
        if self.selling_price_cents is not None:
            return self.selling_price_cents
        return self.price_per_unit_cents

    def snapshot(self) -> dict:
        """Frozen copy stored on order lines."""
        return {
            "id": self.id,
            "device_name": self.device_name,
            "brand": self.brand,
            "grade": self.grade,
            "storage": self.storage,
            "price_per_unit_cents": self.price_per_unit_cents,
            "selling_price_cents": self.effective_price_cents,
            "hst_bps": self.hst_bps,
        }

    def to_dict(self, include_cost: bool = False) -> dict:
        data = {
            "id": self.id,
            "device_name": self.device_name,
            "brand": self.brand,
            "grade": self.grade,
            "storage": self.storage,
            "quantity": self.quantity,
            "selling_price_cents": self.effective_price_cents,
            "price_change": self.price_change,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "last_updated": to_utc_z(self.last_updated),
        }
        if include_cost:
            data.update({
                "price_per_unit_cents": self.price_per_unit_cents,
                "purchase_price_cents": self.purchase_price_cents,
                "hst_bps": self.hst_bps,
            })
        return data
