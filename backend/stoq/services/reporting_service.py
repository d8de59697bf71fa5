# Overview: Service-layer operations for reporting; dashboard and customer statistics.

from __future__ import annotations

from sqlalchemy import func

from stoq.extensions import db
from stoq.models import InventoryItem, Order, User
from stoq.models.auth import APPROVAL_PENDING, ROLE_USER
from stoq.models.orders import (
    ORDER_PENDING,
    ORDER_APPROVED,
    ORDER_REJECTED,
    ORDER_COMPLETED,
)
from stoq.services.inventory_service import LOW_STOCK_THRESHOLD
from stoq.services.pricing_service import visible_totals


# Orders that count as sold
REVENUE_STATUSES = (ORDER_APPROVED, ORDER_COMPLETED)


def inventory_stats() -> dict:
    """Admin dashboard tiles over active inventory."""
    price = func.coalesce(InventoryItem.selling_price_cents, InventoryItem.price_per_unit_cents)

    row = (
        db.session.query(
            func.count(InventoryItem.id),
            func.coalesce(func.sum(InventoryItem.quantity), 0),
            func.coalesce(func.sum(InventoryItem.quantity * price), 0),
        )
        .filter(InventoryItem.is_active.is_(True))
        .one()
    )

    low_stock = (
        db.session.query(func.count(InventoryItem.id))
        .filter(InventoryItem.is_active.is_(True), InventoryItem.quantity <= LOW_STOCK_THRESHOLD)
        .scalar()
    ) or 0

    return {
        "total_devices": int(row[0] or 0),
        "total_units": int(row[1] or 0),
        "total_value_cents": int(row[2] or 0),
        "low_stock_items": int(low_stock),
    }


def order_stats() -> dict:
    counts = dict(
        db.session.query(Order.status, func.count(Order.id)).group_by(Order.status).all()
    )

    revenue = (
        db.session.query(func.coalesce(func.sum(Order.total_cents), 0))
        .filter(Order.status.in_(REVENUE_STATUSES))
        .scalar()
    ) or 0

    pending_users = (
        db.session.query(func.count(User.id))
        .filter(User.role == ROLE_USER, User.approval_status == APPROVAL_PENDING)
        .scalar()
    ) or 0

    return {
        "total_orders": int(sum(counts.values())),
        "pending_orders": int(counts.get(ORDER_PENDING, 0)),
        "approved_orders": int(counts.get(ORDER_APPROVED, 0)),
        "rejected_orders": int(counts.get(ORDER_REJECTED, 0)),
        "completed_orders": int(counts.get(ORDER_COMPLETED, 0)),
        "revenue_cents": int(revenue),
        "pending_users": int(pending_users),
    }


def user_stats(user_id: int, top_brands: int = 5) -> dict:
    """
    A customer's own purchase history summary.

    Spend and items count approved/completed orders only. Spend is the
    total the customer sees on the order, so a draft discount or shipping
    charge shows up only once the invoice is confirmed.
    """
    orders = db.session.query(Order).filter(Order.user_id == user_id).all()
    sold = [o for o in orders if o.status in REVENUE_STATUSES]

    brands: dict[str, dict] = {}
    for order in sold:
        for line in order.items or []:
            item = line.get("item") or {}
            quantity = int(line.get("quantity") or 0)
            brand = item.get("brand") or "Other"
            entry = brands.setdefault(brand, {"brand": brand, "units": 0, "spent_cents": 0})
            entry["units"] += quantity
            entry["spent_cents"] += int(item.get("selling_price_cents") or 0) * quantity

    by_status = {status: 0 for status in (ORDER_PENDING, ORDER_APPROVED, ORDER_REJECTED, ORDER_COMPLETED)}
    for order in orders:
        by_status[order.status] = by_status.get(order.status, 0) + 1

    return {
        "total_orders": len(orders),
        "orders_by_status": by_status,
        "total_spent_cents": sum(visible_totals(o, viewer_is_admin=False).total_cents for o in sold),
        "total_items_purchased": sum(o.item_count for o in sold),
        "total_discount_cents": sum(
            o.discount_cents or 0 for o in orders if o.invoice_confirmed
        ),
        "top_brands": sorted(brands.values(), key=lambda b: b["units"], reverse=True)[:top_brands],
    }
