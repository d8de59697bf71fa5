# Overview: Flask API routes for order operations; parses input and returns JSON responses.

# backend/stoq/routes/orders.py
"""
Order routes.

Customers place and read their own orders; admins list everything and
move orders through pending -> approved/rejected -> completed.
"""
from flask import Blueprint, request, g, current_app

from ..services import order_service, cart_service, inventory_service
from ..services.order_service import OrderError
from ..services.inventory_service import InventoryError
from ..decorators import require_auth, require_admin, require_approved

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _error(e, status: int = 400):
    return {"error": str(e), "details": getattr(e, "details", {})}, status


@orders_bp.post("")
@require_auth
@require_approved
def create_order_route():
    """
    Place an order.

    Body: {"items": [{"item_id", "quantity"}], "shipping_address"?, "billing_address"?}
    The tax rate comes from the customer's business location. Ordered lines
    are removed from the server cart.
    """
    payload = request.get_json(silent=True) or {}
    user = g.current_user

    try:
        order = order_service.create_order(
            user=user,
            items=payload.get("items"),
            addresses={
                "shipping_address": payload.get("shipping_address"),
                "billing_address": payload.get("billing_address"),
            },
        )
    except OrderError as e:
        return _error(e, 409 if "available" in e.details else 400)

    ordered = {(line.get("item") or {}).get("id") for line in order.items}
    remaining = [c for c in cart_service.load_cart(user.id) if c.item_id not in ordered]
    cart_service.save_cart(user.id, remaining)

    return order.to_dict(viewer_is_admin=user.is_admin), 201


@orders_bp.get("/mine")
@require_auth
def list_my_orders_route():
    try:
        return order_service.list_user_orders(
            user_id=g.current_user.id,
            status=request.args.get("status"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
    except OrderError as e:
        return _error(e)


@orders_bp.get("")
@require_auth
@require_admin
def list_orders_route():
    """
    Query params: status, search (order id or status), page, per_page.
    """
    try:
        return order_service.list_orders(
            status=request.args.get("status"),
            search=request.args.get("search"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
    except OrderError as e:
        return _error(e)


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    order = order_service.get_order(order_id)
    viewer = g.current_user
    # Customers get 404 for other people's orders
    if not order or (not viewer.is_admin and order.user_id != viewer.id):
        return {"error": "Order not found"}, 404
    return order.to_dict(viewer_is_admin=viewer.is_admin)


@orders_bp.post("/<int:order_id>/status")
@require_auth
@require_admin
def update_status_route(order_id: int):
    """
    Body: {"status": "approved"|"rejected"|"completed", "reason"?, "comment"?}

    Approval decrements stock; 409 when any line is short.
    """
    payload = request.get_json(silent=True) or {}
    status = payload.get("status")
    if not status:
        return {"error": "status required"}, 400

    try:
        order = order_service.update_order_status(
            order_id=order_id,
            status=status,
            actor=g.current_user,
            reason=payload.get("reason"),
            comment=payload.get("comment"),
        )
    except InventoryError as e:
        return _error(e, 409)
    except OrderError as e:
        if str(e) == "Order not found":
            return _error(e, 404)
        return _error(e, 409 if "from" in e.details else 400)
    except Exception:
        current_app.logger.exception("Failed to update status of order %s", order_id)
        return {"error": "Internal server error"}, 500

    return order.to_dict(viewer_is_admin=True)


@orders_bp.get("/availability/<int:item_id>")
@require_auth
def availability_route(item_id: int):
    """How many more units of item_id the caller can add to their cart."""
    item = inventory_service.get_item(item_id)
    if not item or not item.is_active:
        return {"error": "Item not found"}, 404

    user_id = g.current_user.id
    cart = cart_service.load_cart(user_id)
    return {
        "item_id": item.id,
        "on_hand": item.quantity,
        "reserved": order_service.reserved_quantity(item.id, user_id),
        "in_cart": sum(c.quantity for c in cart if c.item_id == item.id),
        "available": order_service.available_quantity_for_user(item, user_id, cart),
    }
