# Overview: Flask API routes for inventory operations; parses input and returns JSON responses.

# backend/stoq/routes/inventory.py
"""
Inventory routes.

Storefront reads are public. Cost fields, inactive items and every write
are admin-only.
"""
from flask import Blueprint, request, current_app

from ..models import InventoryItem
from ..services import inventory_service
from ..services.inventory_service import INVENTORY_POLICY
from ..validation import (
    validate_payload,
    enforce_rules_inventory_item,
    ValidationError,
    ConflictError,
)
from ..decorators import require_auth, require_admin

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

FILTER_PARAMS = ("search", "brand", "grade", "storage", "price_range", "stock_status")


def _filters_from_args() -> dict:
    return {k: request.args.get(k) for k in FILTER_PARAMS if request.args.get(k)}


@inventory_bp.get("")
def list_inventory_route():
    """
    Storefront listing of active items.

    Query params:
    - search, brand, grade, storage, price_range, stock_status: filters
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    try:
        return inventory_service.list_inventory(
            filters=_filters_from_args(),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
    except ValidationError as e:
        return {"error": str(e)}, 400


@inventory_bp.get("/filters")
def filter_options_route():
    return inventory_service.filter_options()


@inventory_bp.get("/admin")
@require_auth
@require_admin
def admin_list_inventory_route():
    """Same filters as the storefront, plus cost fields and inactive items."""
    try:
        return inventory_service.list_inventory(
            filters=_filters_from_args(),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
            include_inactive=request.args.get("include_inactive", "false").lower() == "true",
            include_cost=True,
        )
    except ValidationError as e:
        return {"error": str(e)}, 400


@inventory_bp.get("/<int:item_id>")
def get_item_route(item_id: int):
    item = inventory_service.get_item(item_id)
    if not item or not item.is_active:
        return {"error": "Item not found"}, 404
    data = item.to_dict()
    data["stock_status"] = inventory_service.stock_status(item.quantity)
    return data


@inventory_bp.post("")
@require_auth
@require_admin
def create_item_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=InventoryItem, payload=payload, policy=INVENTORY_POLICY, partial=False)
        enforce_rules_inventory_item(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        item = inventory_service.create_item(patch=patch)
    except ConflictError as e:
        return {"error": str(e)}, 409

    return item.to_dict(include_cost=True), 201


@inventory_bp.put("/<int:item_id>")
@require_auth
@require_admin
def update_item_route(item_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=InventoryItem, payload=payload, policy=INVENTORY_POLICY, partial=True)
        enforce_rules_inventory_item(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        item = inventory_service.update_item(item_id=item_id, patch=patch)
    except ConflictError as e:
        return {"error": str(e)}, 409

    if not item:
        return {"error": "Item not found"}, 404

    return item.to_dict(include_cost=True), 200


@inventory_bp.delete("/<int:item_id>")
@require_auth
@require_admin
def deactivate_item_route(item_id: int):
    """Soft delete: the item disappears from the storefront, orders keep their snapshot."""
    item = inventory_service.deactivate_item(item_id)
    if not item:
        return {"error": "Item not found"}, 404
    return {"ok": True, "item": item.to_dict(include_cost=True)}, 200


@inventory_bp.post("/bulk")
@require_auth
@require_admin
def bulk_upsert_route():
    """
    Upsert parsed upload rows.

    Body: {"rows": [{device_name, grade, storage, quantity, price_per_unit_cents, ...}]}
    """
    payload = request.get_json(silent=True) or {}

    try:
        result = inventory_service.bulk_upsert_items(payload.get("rows"))
    except ValidationError as e:
        return {"error": str(e)}, 400

    current_app.logger.info(
        "Bulk upload: %d created, %d updated, %d rejected",
        result["created"], result["updated"], len(result["errors"]),
    )
    return result, 200
