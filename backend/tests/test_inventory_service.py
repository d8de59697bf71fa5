import pytest

from stoq.models import InventoryItem
from stoq.services import inventory_service
from stoq.services.inventory_service import InventoryError
from stoq.validation import ConflictError, ValidationError, enforce_rules_inventory_item


@pytest.mark.parametrize("quantity,status", [
    (25, "in-stock"),
    (11, "in-stock"),
    (10, "low-stock"),
    (5, "low-stock"),
    (4, "critical"),
    (1, "critical"),
    (0, "out-of-stock"),
])
def test_stock_status_boundaries(quantity, status):
    assert inventory_service.stock_status(quantity) == status


def _names(result):
    return sorted(i["device_name"] for i in result["items"])


@pytest.mark.parametrize("filters,expected", [
    ({}, ["Galaxy S21", "Moto G", "Pixel 7", "iPhone 13"]),
    ({"search": "pix"}, ["Pixel 7"]),
    ({"brand": "Google"}, ["Pixel 7"]),
    ({"grade": "C"}, ["Galaxy S21"]),
    ({"storage": "64GB"}, ["Moto G"]),
    ({"brand": "all"}, ["Galaxy S21", "Moto G", "Pixel 7", "iPhone 13"]),
    ({"price_range": "under200"}, ["Galaxy S21", "Moto G"]),
    ({"price_range": "200-400"}, ["Pixel 7"]),
    ({"price_range": "400+"}, ["iPhone 13"]),
    ({"stock_status": "in-stock"}, ["iPhone 13"]),
    ({"stock_status": "low-stock"}, ["Pixel 7"]),
    ({"stock_status": "critical"}, ["Galaxy S21"]),
    ({"stock_status": "out-of-stock"}, ["Moto G"]),
    ({"brand": "Apple", "price_range": "under200"}, []),
])
def test_list_filters(inventory, filters, expected):
    assert _names(inventory_service.list_inventory(filters=filters)) == expected


def test_price_range_uses_selling_price(db_session, inventory):
    pixel = inventory["pixel"]
    pixel.selling_price_cents = 45000
    db_session.commit()

    assert _names(inventory_service.list_inventory(filters={"price_range": "400+"})) == ["Pixel 7", "iPhone 13"]


def test_unknown_filter_values_rejected(inventory):
    with pytest.raises(ValidationError):
        inventory_service.list_inventory(filters={"price_range": "cheap"})
    with pytest.raises(ValidationError):
        inventory_service.list_inventory(filters={"stock_status": "plenty"})


def test_pagination(inventory):
    page1 = inventory_service.list_inventory(page=1, per_page=3)
    page2 = inventory_service.list_inventory(page=2, per_page=3)

    assert page1["count"] == 3
    assert page1["pagination"] == {
        "page": 1, "per_page": 3, "total": 4, "total_pages": 2, "has_next": True, "has_prev": False,
    }
    assert page2["count"] == 1
    assert page2["pagination"]["has_prev"] is True


def test_cost_fields_only_when_asked(inventory):
    public = inventory_service.list_inventory()["items"][0]
    admin = inventory_service.list_inventory(include_cost=True)["items"][0]
    assert "price_per_unit_cents" not in public
    assert "price_per_unit_cents" in admin


def test_filter_options(inventory):
    options = inventory_service.filter_options()
    assert options["brands"] == ["Apple", "Google", "Motorola", "Samsung"]
    assert options["grades"] == ["A", "B", "C", "D"]
    assert options["storages"] == ["128GB", "256GB", "64GB"]
    assert options["price_ranges"] == ["under200", "200-400", "400+"]


def test_update_selling_price_tracks_direction(inventory):
    iphone = inventory["iphone"]

    item = inventory_service.update_item(item_id=iphone.id, patch={"selling_price_cents": 52000})
    assert item.price_change == "up"

    item = inventory_service.update_item(item_id=iphone.id, patch={"selling_price_cents": 45000})
    assert item.price_change == "down"

    item = inventory_service.update_item(item_id=iphone.id, patch={"quantity": 3})
    assert item.price_change == "down"


def test_update_missing_item_returns_none(db_session):
    assert inventory_service.update_item(item_id=12345, patch={"quantity": 1}) is None


def test_variant_must_be_unique(inventory):
    with pytest.raises(ConflictError):
        inventory_service.create_item(patch={
            "device_name": "iPhone 13", "grade": "A", "storage": "128GB",
            "quantity": 1, "price_per_unit_cents": 1,
        })
    with pytest.raises(ConflictError):
        inventory_service.update_item(item_id=inventory["pixel"].id, patch={
            "device_name": "iPhone 13", "grade": "A", "storage": "128GB",
        })


def test_deactivate_hides_from_storefront(inventory):
    inventory_service.deactivate_item(inventory["moto"].id)

    assert "Moto G" not in _names(inventory_service.list_inventory())
    assert "Moto G" in _names(inventory_service.list_inventory(include_inactive=True))
    assert inventory_service.get_items_by_ids([inventory["moto"].id]) == {}


def test_decrement_stock(db_session, inventory):
    galaxy = inventory["galaxy"]
    inventory_service.decrement_stock(galaxy.id, 2)
    db_session.commit()
    assert db_session.get(InventoryItem, galaxy.id).quantity == 1

    with pytest.raises(InventoryError) as exc:
        inventory_service.decrement_stock(galaxy.id, 2)
    assert exc.value.details == {"item_id": galaxy.id, "requested_quantity": 2, "on_hand": 1}


def test_bulk_upsert(db_session, inventory):
    result = inventory_service.bulk_upsert_items([
        {"device_name": "Pixel 8", "brand": "Google", "grade": "a", "storage": "128GB",
         "quantity": 5, "price_per_unit_cents": 60000},
        {"device_name": "iPhone 13", "grade": "A", "storage": "128GB",
         "quantity": 30, "price_per_unit_cents": 47500},
        {"device_name": "Nokia 3310", "grade": "Z", "storage": "-",
         "quantity": 1, "price_per_unit_cents": 100},
        {"device_name": "Broken row"},
    ])

    assert result["created"] == 1
    assert result["updated"] == 1
    assert [e["row"] for e in result["errors"]] == [3, 4]

    pixel8 = db_session.query(InventoryItem).filter_by(device_name="Pixel 8").one()
    assert pixel8.grade == "A"
    assert pixel8.price_change == "stable"
    assert db_session.get(InventoryItem, inventory["iphone"].id).quantity == 30


def test_bulk_upsert_reactivates_items(db_session, inventory):
    inventory_service.deactivate_item(inventory["moto"].id)
    inventory_service.bulk_upsert_items([
        {"device_name": "Moto G", "grade": "D", "storage": "64GB", "quantity": 12, "price_per_unit_cents": 9900},
    ])
    assert db_session.get(InventoryItem, inventory["moto"].id).is_active is True


def test_bulk_upsert_requires_list(db_session):
    with pytest.raises(ValidationError):
        inventory_service.bulk_upsert_items({"device_name": "x"})


@pytest.mark.parametrize("patch", [
    {"grade": "E"},
    {"quantity": -1},
    {"price_per_unit_cents": -5},
    {"selling_price_cents": 1_000_000_000},
    {"hst_bps": 10001},
    {"price_change": "sideways"},
])
def test_inventory_rules(patch):
    with pytest.raises(ValidationError):
        enforce_rules_inventory_item(dict(patch))
