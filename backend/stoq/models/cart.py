from __future__ import annotations

from ..extensions import db
from stoq.time_utils import to_utc_z


class CartItem(db.Model):
    """Server copy of a signed-in user's cart: references only, not item copies."""
    __tablename__ = "cart_items"
    __table_args__ = (
        db.UniqueConstraint("user_id", "item_id", name="uq_cart_items_user_item"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    # Deliberately not a foreign key: stale ids are dropped at read time
    item_id = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    position = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {"item_id": self.item_id, "quantity": self.quantity}


class WishlistItem(db.Model):
    """Server copy of a signed-in user's wishlist."""
    __tablename__ = "wishlist_items"
    __table_args__ = (
        db.UniqueConstraint("user_id", "item_id", name="uq_wishlist_items_user_item"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, nullable=False)
    added_at = db.Column(db.DateTime(timezone=True), nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {"item_id": self.item_id, "added_at": to_utc_z(self.added_at)}
