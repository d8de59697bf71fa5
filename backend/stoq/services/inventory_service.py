# Overview: Service-layer operations for inventory; filtering, CRUD, bulk upsert and stock decrement.

"""
Inventory Service

Items are never hard-deleted: deactivate_item() hides them from the
storefront while old orders keep their snapshots.

STOCK STATUS (storefront badge and filter):
- in-stock:     quantity > 10
- low-stock:    5..10
- critical:     1..4
- out-of-stock: 0
"""

from __future__ import annotations

from ..extensions import db
from ..models import InventoryItem
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    ConflictError,
    validate_payload,
    enforce_rules_inventory_item,
)
from .concurrency import lock_for_update


INVENTORY_POLICY = ModelValidationPolicy(
    writable_fields={
        "device_name", "brand", "grade", "storage", "quantity",
        "price_per_unit_cents", "purchase_price_cents", "hst_bps",
        "selling_price_cents", "price_change", "is_active",
    },
    required_on_create={"device_name", "grade", "storage", "quantity", "price_per_unit_cents"},
)

LOW_STOCK_THRESHOLD = 10
CRITICAL_STOCK_THRESHOLD = 5

PRICE_RANGES = ("under200", "200-400", "400+")
STOCK_STATUSES = ("in-stock", "low-stock", "critical", "out-of-stock")


class InventoryError(Exception):
    """Raised for inventory operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def stock_status(quantity: int) -> str:
    if quantity > LOW_STOCK_THRESHOLD:
        return "in-stock"
    if quantity >= CRITICAL_STOCK_THRESHOLD:
        return "low-stock"
    if quantity > 0:
        return "critical"
    return "out-of-stock"


def _price_expr():
    return db.func.coalesce(InventoryItem.selling_price_cents, InventoryItem.price_per_unit_cents)


def _apply_filters(query, filters: dict):
    search = (filters.get("search") or "").strip()
    if search:
        query = query.filter(InventoryItem.device_name.ilike(f"%{search}%"))

    for field in ("brand", "grade", "storage"):
        value = filters.get(field)
        if value and value != "all":
            query = query.filter(getattr(InventoryItem, field) == value)

    price_range = filters.get("price_range")
    if price_range and price_range != "all":
        price = _price_expr()
        if price_range == "under200":
            query = query.filter(price < 20000)
        elif price_range == "200-400":
            query = query.filter(price >= 20000, price <= 40000)
        elif price_range == "400+":
            query = query.filter(price >= 40000)
        else:
            raise ValidationError(f"price_range must be one of {', '.join(PRICE_RANGES)}")

    status = filters.get("stock_status")
    if status and status != "all":
        qty = InventoryItem.quantity
        if status == "in-stock":
            query = query.filter(qty > LOW_STOCK_THRESHOLD)
        elif status == "low-stock":
            query = query.filter(qty >= CRITICAL_STOCK_THRESHOLD, qty <= LOW_STOCK_THRESHOLD)
        elif status == "critical":
            query = query.filter(qty > 0, qty < CRITICAL_STOCK_THRESHOLD)
        elif status == "out-of-stock":
            query = query.filter(qty == 0)
        else:
            raise ValidationError(f"stock_status must be one of {', '.join(STOCK_STATUSES)}")

    return query


def list_inventory(
    filters: dict | None = None,
    page: int | None = None,
    per_page: int | None = None,
    include_inactive: bool = False,
    include_cost: bool = False,
) -> dict:
    """
    Filtered inventory listing with optional pagination.

    Returns:
        Dict with 'items', 'count', and pagination metadata if paginated.
    """
    base_query = db.session.query(InventoryItem)
    if not include_inactive:
        base_query = base_query.filter(InventoryItem.is_active.is_(True))
    base_query = _apply_filters(base_query, filters or {})
    # Stable sort so equal created_at rows don't reshuffle between pages
    base_query = base_query.order_by(InventoryItem.created_at.desc(), InventoryItem.id.desc())

    if page is None:
        items = base_query.all()
        return {
            "items": [i.to_dict(include_cost=include_cost) for i in items],
            "count": len(items),
        }

    per_page = min(per_page or 20, 100)
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    items = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [i.to_dict(include_cost=include_cost) for i in items],
        "count": len(items),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def filter_options() -> dict:
    """Distinct values for the storefront filter bar."""
    def _distinct(column):
        rows = (
            db.session.query(column)
            .filter(InventoryItem.is_active.is_(True), column.isnot(None), column != "")
            .distinct()
            .order_by(column.asc())
            .all()
        )
        return [r[0] for r in rows]

    return {
        "brands": _distinct(InventoryItem.brand),
        "grades": _distinct(InventoryItem.grade),
        "storages": _distinct(InventoryItem.storage),
        "price_ranges": list(PRICE_RANGES),
        "stock_statuses": list(STOCK_STATUSES),
    }


def get_item(item_id: int) -> InventoryItem | None:
    return db.session.query(InventoryItem).filter_by(id=item_id).first()


def get_items_by_ids(item_ids, active_only: bool = True) -> dict[int, InventoryItem]:
    ids = {int(i) for i in item_ids}
    if not ids:
        return {}
    query = db.session.query(InventoryItem).filter(InventoryItem.id.in_(ids))
    if active_only:
        query = query.filter(InventoryItem.is_active.is_(True))
    return {item.id: item for item in query.all()}


def _find_variant(device_name: str, grade: str, storage: str) -> InventoryItem | None:
    return (
        db.session.query(InventoryItem)
        .filter_by(device_name=device_name, grade=grade, storage=storage)
        .first()
    )


def _track_price_change(item: InventoryItem, patch: dict) -> None:
    if "selling_price_cents" not in patch or "price_change" in patch:
        return
    old = item.effective_price_cents
    new = patch["selling_price_cents"]
    if new is None or old is None or new == old:
        item.price_change = "stable"
    else:
        item.price_change = "up" if new > old else "down"


def create_item(*, patch: dict) -> InventoryItem:
    """Create an item from a validated patch dict."""
    if _find_variant(patch["device_name"], patch["grade"], patch["storage"]):
        raise ConflictError("An item with this device, grade and storage already exists")

    item = InventoryItem(**patch)
    if item.price_change is None:
        item.price_change = "stable"
    db.session.add(item)
    db.session.commit()
    return item


def update_item(*, item_id: int, patch: dict) -> InventoryItem | None:
    item = get_item(item_id)
    if not item:
        return None

    keys = ("device_name", "grade", "storage")
    if any(k in patch for k in keys):
        candidate = {k: patch.get(k, getattr(item, k)) for k in keys}
        other = _find_variant(**candidate)
        if other and other.id != item.id:
            raise ConflictError("An item with this device, grade and storage already exists")

    _track_price_change(item, patch)
    for k, v in patch.items():
        setattr(item, k, v)

    db.session.commit()
    return item


def deactivate_item(item_id: int) -> InventoryItem | None:
    item = get_item(item_id)
    if not item:
        return None
    item.is_active = False
    db.session.commit()
    return item


def decrement_stock(item_id: int, quantity: int) -> InventoryItem:
    """
    Take quantity off on-hand stock. Caller owns the transaction.

    Raises InventoryError when the item is gone or short.
    """
    item = lock_for_update(db.session.query(InventoryItem).filter_by(id=item_id)).first()
    if not item:
        raise InventoryError("Inventory item not found", details={"item_id": item_id})
    if item.quantity < quantity:
        raise InventoryError(
            "Insufficient inventory",
            details={"item_id": item_id, "requested_quantity": quantity, "on_hand": item.quantity},
        )
    item.quantity -= quantity
    return item


def bulk_upsert_items(rows: list[dict]) -> dict:
    """
    Upsert already-parsed upload rows keyed by (device_name, grade, storage).

    Each row is validated with INVENTORY_POLICY; invalid rows are reported
    and skipped, valid rows are committed together.
    """
    if not isinstance(rows, list):
        raise ValidationError("rows must be a list")

    created = 0
    updated = 0
    errors = []

    for index, row in enumerate(rows):
        try:
            patch = validate_payload(model=InventoryItem, payload=row, policy=INVENTORY_POLICY, partial=False)
            enforce_rules_inventory_item(patch)
        except ValidationError as e:
            errors.append({"row": index + 1, "error": str(e)})
            continue

        existing = _find_variant(patch["device_name"], patch["grade"], patch["storage"])
        if existing:
            _track_price_change(existing, patch)
            for k, v in patch.items():
                setattr(existing, k, v)
            existing.is_active = patch.get("is_active", True)
            updated += 1
        else:
            item = InventoryItem(**patch)
            item.price_change = item.price_change or "stable"
            db.session.add(item)
            db.session.flush()
            created += 1

    db.session.commit()
    return {"created": created, "updated": updated, "errors": errors}
