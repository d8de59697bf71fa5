# Overview: Flask API routes for user profiles and admin user management.

from flask import Blueprint, request, g

from ..services import user_service, tax_service
from ..services.user_service import UserError
from ..validation import ValidationError
from ..decorators import require_auth, require_admin

users_bp = Blueprint("users", __name__, url_prefix="/api/users")


def _user_error(e: UserError):
    message = str(e)
    if message == "User profile not found":
        return {"error": message}, 404
    if message.startswith("Only admins"):
        return {"error": message}, 403
    return {"error": message, "details": e.details}, 400


@users_bp.get("/profile")
@require_auth
def get_profile_route():
    user = g.current_user
    data = user.to_dict()
    data["tax"] = tax_service.get_tax_info(user.business_country, user.business_state, user.business_city)
    return data


@users_bp.put("/profile")
@require_auth
def update_profile_route():
    payload = request.get_json(silent=True) or {}
    try:
        user = user_service.update_profile(g.current_user.id, payload)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except UserError as e:
        return _user_error(e)
    return user.to_dict()


@users_bp.get("")
@require_auth
@require_admin
def list_users_route():
    """Query params: search, approval_status, page, per_page."""
    try:
        return user_service.list_users(
            search=request.args.get("search"),
            approval_status=request.args.get("approval_status"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
    except ValidationError as e:
        return {"error": str(e)}, 400


@users_bp.get("/<int:user_id>")
@require_auth
@require_admin
def get_user_route(user_id: int):
    user = user_service.get_user(user_id)
    if not user:
        return {"error": "User profile not found"}, 404
    return user.to_dict()


@users_bp.post("/<int:user_id>/approval")
@require_auth
@require_admin
def update_approval_route(user_id: int):
    """Body: {"status": "pending"|"approved"|"rejected"}"""
    payload = request.get_json(silent=True) or {}
    try:
        user = user_service.update_approval_status(user_id, payload.get("status"), g.current_user)
    except UserError as e:
        return _user_error(e)
    return {"profile": user.to_dict()}, 200


@users_bp.post("/<int:user_id>/active")
@require_auth
@require_admin
def set_active_route(user_id: int):
    """Body: {"is_active": bool}. Deactivation revokes the user's sessions."""
    payload = request.get_json(silent=True) or {}
    is_active = payload.get("is_active")
    if not isinstance(is_active, bool):
        return {"error": "is_active must be true or false"}, 400
    try:
        user = user_service.set_active(user_id, is_active, g.current_user)
    except UserError as e:
        return _user_error(e)
    return user.to_dict()
