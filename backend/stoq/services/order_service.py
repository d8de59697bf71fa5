# Overview: Service-layer operations for orders; placement, status transitions and stock reservation.

"""
Order Service

STATUS TRANSITIONS:
    pending  -> approved   stock decremented for every line
    pending  -> rejected   reason/comment stored, discount cleared
    approved -> completed

Anything else raises OrderError.

PLACEMENT: only approved customers may order. Lines are snapshots of the
inventory rows at order time; subtotal and tax-on-subtotal are stored and
total = subtotal + tax until an admin saves an invoice.

RESERVATION: a customer's own pending orders hold stock against them in the
storefront (available_quantity_for_user), but stock only moves on approval.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import or_, cast, String

from ..extensions import db
from ..models import Order, User, InventoryItem
from ..models.orders import (
    ORDER_PENDING,
    ORDER_APPROVED,
    ORDER_REJECTED,
    ORDER_COMPLETED,
    ORDER_STATUSES,
)
from stoq.time_utils import utcnow
from .concurrency import run_with_retry
from .inventory_service import InventoryError, decrement_stock, get_items_by_ids
from .pricing_service import calculate_order_totals
from .tax_service import tax_rate_for_user


# (from, to) pairs allowed by update_order_status
ALLOWED_TRANSITIONS = {
    (ORDER_PENDING, ORDER_APPROVED),
    (ORDER_PENDING, ORDER_REJECTED),
    (ORDER_APPROVED, ORDER_COMPLETED),
}


class OrderError(Exception):
    """Raised for order operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def _parse_lines(items) -> list[tuple[int, int]]:
    """[{"item_id", "quantity"}] -> [(item_id, quantity)], duplicates folded."""
    if not isinstance(items, list) or not items:
        raise OrderError("Order must contain at least one item")

    quantities: dict[int, int] = {}
    for index, line in enumerate(items):
        if not isinstance(line, dict):
            raise OrderError(f"Line {index + 1} must be an object")
        item_id = line.get("item_id")
        quantity = line.get("quantity")
        if isinstance(item_id, bool) or not isinstance(item_id, int):
            raise OrderError(f"Line {index + 1}: item_id must be an integer")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise OrderError(f"Line {index + 1}: quantity must be a positive integer")
        quantities[item_id] = quantities.get(item_id, 0) + quantity

    return list(quantities.items())


# =============================================================================
# Reservation
# =============================================================================

def reserved_quantity(item_id: int, user_id: int | None) -> int:
    """Units of item_id in this user's pending orders."""
    if user_id is None:
        return 0

    pending = (
        db.session.query(Order)
        .filter(Order.user_id == user_id, Order.status == ORDER_PENDING)
        .all()
    )
    total = 0
    for order in pending:
        for line in order.items or []:
            if (line.get("item") or {}).get("id") == item_id:
                total += int(line.get("quantity") or 0)
    return total


def available_quantity_for_user(item: InventoryItem, user_id: int | None, cart=None) -> int:
    """
    How many more units this user can put in their cart.

    cart is an iterable of objects with item_id/quantity (StoredCartItem).
    """
    in_cart = sum(c.quantity for c in (cart or []) if c.item_id == item.id)
    return max(0, item.quantity - reserved_quantity(item.id, user_id) - in_cart)


# =============================================================================
# Placement
# =============================================================================

def create_order(
    user: User,
    items,
    tax_rate_bps: int | None = None,
    addresses: dict | None = None,
) -> Order:
    """
    Place a pending order for an approved customer.

    items: [{"item_id": int, "quantity": int}]. Each line snapshots the live
    inventory row; a missing/inactive item or one the customer can't have
    (after their other pending orders) fails the whole order.
    """
    if not user.is_approved:
        raise OrderError(
            "Your account must be approved before placing orders",
            details={"approval_status": user.approval_status},
        )

    lines = _parse_lines(items)
    inventory = get_items_by_ids([item_id for item_id, _ in lines])

    snapshot_lines = []
    subtotal_cents = 0
    for item_id, quantity in lines:
        item = inventory.get(item_id)
        if not item:
            raise OrderError("Item is no longer available", details={"item_id": item_id})

        available = available_quantity_for_user(item, user.id)
        if quantity > available:
            raise OrderError(
                "Insufficient inventory",
                details={"item_id": item_id, "requested_quantity": quantity, "available": available},
            )

        snapshot_lines.append({"item": item.snapshot(), "quantity": quantity})
        subtotal_cents += item.effective_price_cents * quantity

    if tax_rate_bps is None:
        tax_rate_bps = tax_rate_for_user(user)
    if isinstance(tax_rate_bps, bool) or not isinstance(tax_rate_bps, int) or tax_rate_bps < 0:
        raise OrderError("tax_rate_bps must be a non-negative integer")

    # No discount or shipping yet: tax is on the subtotal
    totals = calculate_order_totals(subtotal_cents=subtotal_cents, tax_rate_bps=tax_rate_bps)

    addresses = addresses or {}
    order = Order(
        user_id=user.id,
        items=snapshot_lines,
        subtotal_cents=totals.subtotal_cents,
        tax_rate_bps=tax_rate_bps,
        tax_cents=totals.tax_cents,
        total_cents=totals.total_cents,
        status=ORDER_PENDING,
        shipping_address=(addresses.get("shipping_address") or user.shipping_address),
        billing_address=(addresses.get("billing_address") or user.billing_address),
    )
    db.session.add(order)
    db.session.commit()

    current_app.logger.info(
        "Order %s placed by user %s: %d line(s), total %d cents",
        order.id, user.id, len(snapshot_lines), order.total_cents,
    )
    return order


# =============================================================================
# Status transitions
# =============================================================================

def _decrement_for_order(order_id: int) -> None:
    def work():
        order = db.session.query(Order).filter_by(id=order_id).first()
        for line in order.items or []:
            item_id = (line.get("item") or {}).get("id")
            decrement_stock(item_id, int(line.get("quantity") or 0))
        db.session.flush()

    run_with_retry(work)


def update_order_status(
    order_id: int,
    status: str,
    actor: User,
    reason: str | None = None,
    comment: str | None = None,
) -> Order:
    """Admin status change. Approval and its stock decrement commit together."""
    if not actor.is_admin:
        raise OrderError("Only admins can change order status")
    if status not in ORDER_STATUSES:
        raise OrderError(f"status must be one of {', '.join(ORDER_STATUSES)}")

    order = db.session.query(Order).filter_by(id=order_id).first()
    if not order:
        raise OrderError("Order not found")

    previous = order.status
    if (previous, status) not in ALLOWED_TRANSITIONS:
        raise OrderError(
            f"Cannot change order from {previous} to {status}",
            details={"from": previous, "to": status},
        )

    if status == ORDER_APPROVED:
        try:
            _decrement_for_order(order.id)
        except InventoryError:
            db.session.rollback()
            raise
        # run_with_retry may have rolled back and reloaded
        order = db.session.query(Order).filter_by(id=order_id).first()
        order.rejection_reason = None
        order.rejection_comment = None
        order.approved_by_user_id = actor.id
        order.approved_at = utcnow()

    elif status == ORDER_REJECTED:
        reason = (reason or "").strip()
        if not reason:
            raise OrderError("A rejection reason is required")
        order.rejection_reason = reason[:255]
        order.rejection_comment = (comment or "").strip() or None
        order.discount_type = None
        order.discount_percent = None
        order.discount_cents = 0

    order.status = status
    db.session.commit()

    current_app.logger.info(
        "Order %s %s -> %s by user %s", order.id, previous, status, actor.id
    )
    return order


# =============================================================================
# Queries
# =============================================================================

def get_order(order_id: int) -> Order | None:
    return db.session.query(Order).filter_by(id=order_id).first()


def _paginate(query, page: int | None, per_page: int | None, viewer_is_admin: bool) -> dict:
    if page is None:
        orders = query.all()
        return {
            "orders": [o.to_dict(viewer_is_admin=viewer_is_admin) for o in orders],
            "count": len(orders),
        }

    per_page = min(per_page or 20, 100)
    page = max(page, 1)
    total = query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    orders = query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "orders": [o.to_dict(viewer_is_admin=viewer_is_admin) for o in orders],
        "count": len(orders),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def _filter_status(query, status: str | None):
    if status and status != "all":
        if status not in ORDER_STATUSES:
            raise OrderError(f"status must be one of {', '.join(ORDER_STATUSES)}")
        query = query.filter(Order.status == status)
    return query


def list_orders(
    status: str | None = None,
    search: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """Admin view of every order, newest first. search matches id or status."""
    query = _filter_status(db.session.query(Order), status)

    term = (search or "").strip()
    if term:
        query = query.filter(or_(
            cast(Order.id, String).ilike(f"%{term}%"),
            Order.status.ilike(f"%{term}%"),
        ))

    query = query.order_by(Order.created_at.desc(), Order.id.desc())
    return _paginate(query, page, per_page, viewer_is_admin=True)


def list_user_orders(
    user_id: int,
    status: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = _filter_status(db.session.query(Order).filter(Order.user_id == user_id), status)
    query = query.order_by(Order.created_at.desc(), Order.id.desc())
    return _paginate(query, page, per_page, viewer_is_admin=False)
