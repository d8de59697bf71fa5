# Overview: Flask API routes for cart and wishlist operations; parses input and returns JSON responses.

from flask import Blueprint, request, g, current_app

from ..services import cart_service
from ..services.cart_service import CartError
from ..decorators import require_auth

cart_bp = Blueprint("cart", __name__, url_prefix="/api")


def _cart_response(stored):
    return {
        "items": [s.to_dict() for s in stored],
        "resolved": cart_service.resolve_cart(stored),
    }


def _wishlist_response(stored):
    return {
        "items": [s.to_dict() for s in stored],
        "resolved": cart_service.resolve_wishlist(stored),
    }


def _error(e: CartError, status: int = 400):
    return {"error": str(e), "details": e.details}, status


def _server_error(action: str):
    current_app.logger.exception("Failed to %s for user %s", action, g.current_user.id)
    return {"error": "Internal server error"}, 500


# =============================================================================
# Cart
# =============================================================================

@cart_bp.get("/cart")
@require_auth
def get_cart_route():
    try:
        return _cart_response(cart_service.load_cart(g.current_user.id))
    except Exception:
        return _server_error("load cart")


@cart_bp.put("/cart")
@require_auth
def replace_cart_route():
    """Body: {"items": [{"item_id", "quantity"}]} replaces the server cart."""
    payload = request.get_json(silent=True) or {}
    try:
        items = cart_service.parse_cart_payload(payload.get("items"))
        return _cart_response(cart_service.save_cart(g.current_user.id, items))
    except CartError as e:
        return _error(e)
    except Exception:
        return _server_error("save cart")


@cart_bp.post("/cart/merge")
@require_auth
def merge_cart_route():
    """Merge the browser's stored cart into the server cart after login."""
    payload = request.get_json(silent=True) or {}
    try:
        local = cart_service.parse_cart_payload(payload.get("items"))
        return _cart_response(cart_service.merge_cart_on_login(g.current_user.id, local))
    except CartError as e:
        return _error(e)
    except Exception:
        return _server_error("merge cart")


@cart_bp.put("/cart/items/<int:item_id>")
@require_auth
def set_cart_item_route(item_id: int):
    """Body: {"quantity": n}; n <= 0 removes the line."""
    payload = request.get_json(silent=True) or {}
    try:
        stored = cart_service.set_cart_quantity(g.current_user, item_id, payload.get("quantity"))
        return _cart_response(stored)
    except CartError as e:
        return _error(e, 409 if "available" in e.details else 400)
    except Exception:
        return _server_error(f"set cart item {item_id}")


@cart_bp.delete("/cart")
@require_auth
def clear_cart_route():
    try:
        cart_service.clear_cart(g.current_user.id)
    except Exception:
        return _server_error("clear cart")
    return {"items": [], "resolved": []}


# =============================================================================
# Wishlist
# =============================================================================

@cart_bp.get("/wishlist")
@require_auth
def get_wishlist_route():
    try:
        return _wishlist_response(cart_service.load_wishlist(g.current_user.id))
    except Exception:
        return _server_error("load wishlist")


@cart_bp.put("/wishlist")
@require_auth
def replace_wishlist_route():
    payload = request.get_json(silent=True) or {}
    try:
        items = cart_service.parse_wishlist_payload(payload.get("items"))
        return _wishlist_response(cart_service.save_wishlist(g.current_user.id, items))
    except CartError as e:
        return _error(e)
    except Exception:
        return _server_error("save wishlist")


@cart_bp.post("/wishlist/merge")
@require_auth
def merge_wishlist_route():
    payload = request.get_json(silent=True) or {}
    try:
        local = cart_service.parse_wishlist_payload(payload.get("items"))
        return _wishlist_response(cart_service.merge_wishlist_on_login(g.current_user.id, local))
    except CartError as e:
        return _error(e)
    except Exception:
        return _server_error("merge wishlist")


@cart_bp.post("/wishlist/items/<int:item_id>/toggle")
@require_auth
def toggle_wishlist_route(item_id: int):
    try:
        stored = cart_service.toggle_wishlist(g.current_user.id, item_id)
        return _wishlist_response(stored)
    except CartError as e:
        return _error(e, 404)
    except Exception:
        return _server_error(f"toggle wishlist item {item_id}")
