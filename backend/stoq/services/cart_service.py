# Overview: Service-layer operations for carts and wishlists; server persistence and the login merge.

"""
Cart / Wishlist Service

The server keeps references only ({item_id, quantity} / {item_id, added_at});
they are resolved against live inventory on every read, and ids that no
longer resolve are dropped.

LOGIN MERGE: the browser sends its locally stored list; it is merged with
the server list (local first, then server entries overwrite by item id,
first-appearance order kept, quantities never summed) and the result is
written back as the new server list.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, TypeVar

from ..extensions import db
from ..models import CartItem, WishlistItem, User
from stoq.time_utils import utcnow, parse_iso_datetime, to_utc_z
from .inventory_service import get_items_by_ids, get_item
from .order_service import available_quantity_for_user


class CartError(Exception):
    """Raised for cart and wishlist errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


@dataclass(frozen=True)
class StoredCartItem:
    item_id: int
    quantity: int

    def to_dict(self) -> dict:
        return {"item_id": self.item_id, "quantity": self.quantity}


@dataclass(frozen=True)
class StoredWishlistItem:
    item_id: int
    added_at: datetime

    def to_dict(self) -> dict:
        return {"item_id": self.item_id, "added_at": to_utc_z(self.added_at)}


T = TypeVar("T", StoredCartItem, StoredWishlistItem)


def merge_stored_items(local: Iterable[T], server: Iterable[T]) -> list[T]:
    """Server wins per item id; keeps order of first appearance."""
    merged: dict[int, T] = {}
    for entry in local:
        merged[entry.item_id] = entry
    for entry in server:
        merged[entry.item_id] = entry
    return list(merged.values())


# =============================================================================
# Payload parsing
# =============================================================================

def _require_item_id(value, index: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise CartError(f"Entry {index + 1}: item_id must be a positive integer")
    return value


def parse_cart_payload(entries) -> list[StoredCartItem]:
    if entries is None:
        return []
    if not isinstance(entries, list):
        raise CartError("items must be a list")

    parsed = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise CartError(f"Entry {index + 1} must be an object")
        item_id = _require_item_id(entry.get("item_id"), index)
        quantity = entry.get("quantity")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise CartError(f"Entry {index + 1}: quantity must be a positive integer")
        parsed.append(StoredCartItem(item_id=item_id, quantity=quantity))
    return parsed


def parse_wishlist_payload(entries) -> list[StoredWishlistItem]:
    if entries is None:
        return []
    if not isinstance(entries, list):
        raise CartError("items must be a list")

    parsed = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise CartError(f"Entry {index + 1} must be an object")
        item_id = _require_item_id(entry.get("item_id"), index)
        raw = entry.get("added_at")
        try:
            added_at = parse_iso_datetime(raw) if isinstance(raw, str) else None
        except ValueError:
            raise CartError(f"Entry {index + 1}: added_at must be an ISO-8601 datetime")
        parsed.append(StoredWishlistItem(item_id=item_id, added_at=added_at or utcnow()))
    return parsed


# =============================================================================
# Cart persistence
# =============================================================================

def load_cart(user_id: int) -> list[StoredCartItem]:
    rows = (
        db.session.query(CartItem)
        .filter_by(user_id=user_id)
        .order_by(CartItem.position.asc(), CartItem.id.asc())
        .all()
    )
    return [StoredCartItem(item_id=r.item_id, quantity=r.quantity) for r in rows]


def save_cart(user_id: int, items: list[StoredCartItem]) -> list[StoredCartItem]:
    """Replace the user's server cart."""
    db.session.query(CartItem).filter_by(user_id=user_id).delete(synchronize_session=False)
    for position, entry in enumerate(merge_stored_items(items, [])):
        db.session.add(CartItem(
            user_id=user_id,
            item_id=entry.item_id,
            quantity=entry.quantity,
            position=position,
        ))
    db.session.commit()
    return load_cart(user_id)


def merge_cart_on_login(user_id: int, local_items: list[StoredCartItem]) -> list[StoredCartItem]:
    merged = merge_stored_items(local_items, load_cart(user_id))
    return save_cart(user_id, merged)


def resolve_cart(stored: list[StoredCartItem]) -> list[dict]:
    """[{"item": {...}, "quantity": n}] for every id that still resolves."""
    inventory = get_items_by_ids([s.item_id for s in stored])
    return [
        {"item": inventory[s.item_id].to_dict(), "quantity": s.quantity}
        for s in stored
        if s.item_id in inventory
    ]


def set_cart_quantity(user: User, item_id: int, quantity: int) -> list[StoredCartItem]:
    """
    Add, change or (quantity <= 0) remove one cart line.

    The new quantity may not exceed what is left after the user's pending
    orders.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise CartError("quantity must be an integer")

    cart = load_cart(user.id)
    others = [c for c in cart if c.item_id != item_id]

    if quantity <= 0:
        return save_cart(user.id, others)

    item = get_item(item_id)
    if not item or not item.is_active:
        raise CartError("Item is no longer available", details={"item_id": item_id})

    available = available_quantity_for_user(item, user.id, others)
    if quantity > available:
        raise CartError(
            "Requested quantity exceeds available stock",
            details={"item_id": item_id, "requested_quantity": quantity, "available": available},
        )

    if any(c.item_id == item_id for c in cart):
        updated = [StoredCartItem(item_id, quantity) if c.item_id == item_id else c for c in cart]
    else:
        updated = cart + [StoredCartItem(item_id, quantity)]
    return save_cart(user.id, updated)


def clear_cart(user_id: int) -> None:
    db.session.query(CartItem).filter_by(user_id=user_id).delete(synchronize_session=False)
    db.session.commit()


# =============================================================================
# Wishlist persistence
# =============================================================================

def load_wishlist(user_id: int) -> list[StoredWishlistItem]:
    rows = (
        db.session.query(WishlistItem)
        .filter_by(user_id=user_id)
        .order_by(WishlistItem.position.asc(), WishlistItem.id.asc())
        .all()
    )
    return [StoredWishlistItem(item_id=r.item_id, added_at=r.added_at) for r in rows]


def save_wishlist(user_id: int, items: list[StoredWishlistItem]) -> list[StoredWishlistItem]:
    db.session.query(WishlistItem).filter_by(user_id=user_id).delete(synchronize_session=False)
    for position, entry in enumerate(merge_stored_items(items, [])):
        db.session.add(WishlistItem(
            user_id=user_id,
            item_id=entry.item_id,
            added_at=entry.added_at,
            position=position,
        ))
    db.session.commit()
    return load_wishlist(user_id)


def merge_wishlist_on_login(user_id: int, local_items: list[StoredWishlistItem]) -> list[StoredWishlistItem]:
    merged = merge_stored_items(local_items, load_wishlist(user_id))
    return save_wishlist(user_id, merged)


def resolve_wishlist(stored: list[StoredWishlistItem]) -> list[dict]:
    inventory = get_items_by_ids([s.item_id for s in stored])
    return [
        {"item": inventory[s.item_id].to_dict(), "added_at": to_utc_z(s.added_at)}
        for s in stored
        if s.item_id in inventory
    ]


def toggle_wishlist(user_id: int, item_id: int) -> list[StoredWishlistItem]:
    """Remove item_id if present, else append it."""
    wishlist = load_wishlist(user_id)
    if any(w.item_id == item_id for w in wishlist):
        return save_wishlist(user_id, [w for w in wishlist if w.item_id != item_id])

    item = get_item(item_id)
    if not item or not item.is_active:
        raise CartError("Item is no longer available", details={"item_id": item_id})
    return save_wishlist(user_id, wishlist + [StoredWishlistItem(item_id, utcnow())])
