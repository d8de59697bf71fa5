"""Invoice numbering, due dates and the draft/confirm lifecycle."""

from datetime import date

import pytest
from sqlalchemy.exc import SQLAlchemyError

from stoq.extensions import db
from stoq.models import Order
from stoq.services import invoice_service, order_service
from stoq.services.invoice_service import (
    InvoiceError,
    calculate_due_date,
    format_date_suffix,
    next_invoice_number,
    next_po_number,
)
from conftest import make_item


# =============================================================================
# Due dates
# =============================================================================

@pytest.mark.parametrize("terms", ["CHQ", "EMT", "WIRE", "chq"])
def test_immediate_terms_are_due_same_day(terms):
    assert calculate_due_date("2026-01-21", terms) == "2026-01-21"


def test_net_terms_add_days():
    assert calculate_due_date("2026-01-21", "NET 15") == "2026-02-05"
    assert calculate_due_date("2026-01-21", "net 30") == "2026-02-20"
    assert calculate_due_date(date(2026, 12, 20), "NET 60") == "2027-02-18"


def test_net_terms_with_trailing_words():
    assert calculate_due_date("2026-01-21", "NET 30 days") == "2026-02-20"
    assert calculate_due_date("2026-01-21", "Net30") == "2026-02-20"


def test_unknown_terms_are_due_same_day():
    assert calculate_due_date("2026-01-21", "COD") == "2026-01-21"
    assert calculate_due_date("2026-01-21", None) == "2026-01-21"


def test_unparseable_date_returned_unchanged():
    assert calculate_due_date("not-a-date", "NET 15") == "not-a-date"


# =============================================================================
# Numbering
# =============================================================================

def test_date_suffix_is_ddmmyy():
    assert format_date_suffix(date(2026, 1, 21)) == "210126"


def test_first_invoice_of_the_day(db_session):
    assert next_invoice_number(date(2026, 1, 21)) == "#01210126"


def test_numbers_count_existing_invoices_for_the_date(db_session, customer):
    for number in ("#01210126", "#02210126", "#01220126"):
        db_session.add(Order(user_id=customer.id, items=[], subtotal_cents=0, total_cents=0,
                             invoice_number=number))
    db_session.commit()

    assert next_invoice_number(date(2026, 1, 21)) == "#03210126"
    assert next_invoice_number(date(2026, 1, 22)) == "#02220126"


def test_po_number_uses_the_same_routine(db_session):
    on = date(2026, 3, 5)
    assert next_po_number(on) == next_invoice_number(on) == "#01050326"


def test_storage_error_falls_back_to_01(db_session, monkeypatch):
    def broken_query(*args, **kwargs):
        raise SQLAlchemyError("database unavailable")

    monkeypatch.setattr(db.session, "query", broken_query)
    assert next_invoice_number(date(2026, 1, 21)) == "#01210126"


# =============================================================================
# Lifecycle
# =============================================================================

@pytest.fixture
def approved_order(db_session, customer, admin_user, ontario_hst):
    """$1000 order (2 x $500) for an Ontario customer, approved."""
    item = make_item(db_session, "iPhone 14", quantity=10, price_cents=50000)
    order = order_service.create_order(customer, [{"item_id": item.id, "quantity": 2}])
    return order_service.update_order_status(order.id, "approved", admin_user)


def test_invoice_state_starts_at_none(approved_order):
    assert invoice_service.invoice_state(approved_order) == "none"


def test_save_creates_draft_and_recomputes_totals(approved_order, admin_user):
    order = invoice_service.save_invoice(
        approved_order.id,
        {"discount_type": "percentage", "discount_value": 10, "shipping_cents": 5000},
        admin_user,
    )

    suffix = format_date_suffix(order.created_at.date())
    assert order.invoice_number == f"#01{suffix}"
    assert order.po_number == f"#01{suffix}"
    assert invoice_service.invoice_state(order) == "draft"
    assert order.payment_terms == "CHQ"
    assert order.due_date == order.invoice_date
    assert order.discount_cents == 10000
    assert order.tax_cents == 12350
    assert order.total_cents == 107350
    assert order.hst_number == "123456789RT0001"


def test_invoices_saved_the_same_day_are_numbered_in_sequence(db_session, customer, admin_user, ontario_hst):
    item = make_item(db_session, "iPhone 15", quantity=10, price_cents=50000)
    orders = []
    for _ in range(2):
        order = order_service.create_order(customer, [{"item_id": item.id, "quantity": 1}])
        orders.append(order_service.update_order_status(order.id, "approved", admin_user))

    first = invoice_service.save_invoice(orders[0].id, {}, admin_user)
    second = invoice_service.save_invoice(orders[1].id, {}, admin_user)

    suffix = format_date_suffix(first.created_at.date())
    assert first.invoice_number == f"#01{suffix}"
    assert second.invoice_number == f"#02{suffix}"
    assert second.po_number == f"#02{suffix}"


def test_failed_save_leaves_order_untouched(approved_order, admin_user):
    with pytest.raises(InvoiceError, match="hst_number exceeds max length"):
        invoice_service.save_invoice(
            approved_order.id,
            {"discount_type": "percentage", "discount_value": 10, "hst_number": "X" * 65},
            admin_user,
        )

    order = db.session.get(Order, approved_order.id)
    assert order.discount_type is None
    assert not order.discount_cents
    assert order.invoice_number is None
    assert invoice_service.invoice_state(order) == "none"


def test_draft_hides_discount_from_customer(approved_order, admin_user):
    order = invoice_service.save_invoice(
        approved_order.id,
        {"discount_type": "percentage", "discount_value": 10, "shipping_cents": 5000},
        admin_user,
    )

    assert order.to_dict(viewer_is_admin=False)["totals"]["total_cents"] == 113000
    assert order.to_dict(viewer_is_admin=True)["totals"]["total_cents"] == 107350


def test_net_terms_set_due_date(approved_order, admin_user):
    order = invoice_service.save_invoice(
        approved_order.id,
        {"invoice_date": "2026-01-21", "payment_terms": "NET 15"},
        admin_user,
    )
    assert order.due_date == date(2026, 2, 5)


def test_confirm_is_one_way(approved_order, admin_user):
    invoice_service.save_invoice(approved_order.id, {}, admin_user)
    order = invoice_service.confirm_invoice(approved_order.id, admin_user)

    assert invoice_service.invoice_state(order) == "confirmed"
    assert order.invoice_confirmed_at is not None

    with pytest.raises(InvoiceError, match="already confirmed"):
        invoice_service.save_invoice(approved_order.id, {"shipping_cents": 100}, admin_user)
    with pytest.raises(InvoiceError, match="already confirmed"):
        invoice_service.confirm_invoice(approved_order.id, admin_user)


def test_confirm_requires_a_draft(approved_order, admin_user):
    with pytest.raises(InvoiceError, match="not created"):
        invoice_service.confirm_invoice(approved_order.id, admin_user)


def test_pending_orders_cannot_be_invoiced(db_session, customer, admin_user, inventory):
    order = order_service.create_order(customer, [{"item_id": inventory["iphone"].id, "quantity": 1}])
    with pytest.raises(InvoiceError) as exc:
        invoice_service.save_invoice(order.id, {}, admin_user)
    assert exc.value.details == {"status": "pending"}


def test_customers_cannot_save_invoices(approved_order, customer):
    with pytest.raises(InvoiceError, match="Only admins"):
        invoice_service.save_invoice(approved_order.id, {}, customer)


def test_unknown_fields_rejected(approved_order, admin_user):
    with pytest.raises(InvoiceError, match="Field not allowed"):
        invoice_service.save_invoice(approved_order.id, {"total_cents": 1}, admin_user)


def test_percentage_over_100_rejected_on_save(approved_order, admin_user):
    with pytest.raises(InvoiceError):
        invoice_service.save_invoice(
            approved_order.id, {"discount_type": "percentage", "discount_value": 120}, admin_user
        )


def test_download_rules(approved_order, admin_user, customer):
    assert not invoice_service.can_download_invoice(approved_order, admin_user)

    invoice_service.save_invoice(approved_order.id, {}, admin_user)
    assert invoice_service.can_download_invoice(approved_order, admin_user)
    assert not invoice_service.can_download_invoice(approved_order, customer)
    with pytest.raises(InvoiceError):
        invoice_service.build_invoice_document(approved_order, customer)

    invoice_service.confirm_invoice(approved_order.id, admin_user)
    assert invoice_service.can_download_invoice(approved_order, customer)


def test_document_payload(approved_order, admin_user, customer):
    invoice_service.save_invoice(
        approved_order.id,
        {"discount_type": "percentage", "discount_value": 10, "shipping_cents": 5000,
         "invoice_notes": "Thanks for your business"},
        admin_user,
    )
    invoice_service.confirm_invoice(approved_order.id, admin_user)

    doc = invoice_service.build_invoice_document(approved_order, customer)

    assert doc["filename"] == f"invoice-{approved_order.invoice_number.lstrip('#')}.pdf"
    assert doc["company"]["name"] == "STOQ Test Wholesale"
    assert doc["customer"]["business_name"] == "Phone Shop Inc"
    assert doc["invoice"]["state"] == "confirmed"
    assert doc["invoice"]["notes"] == "Thanks for your business"
    assert doc["lines"] == [{
        "item_id": approved_order.items[0]["item"]["id"],
        "description": "iPhone 14 128GB",
        "grade": "A",
        "quantity": 2,
        "unit_price_cents": 50000,
        "line_total_cents": 100000,
    }]
    assert doc["totals"]["total_cents"] == 107350


def test_defaults_for_new_invoice(approved_order):
    fields = invoice_service.invoice_defaults(approved_order)
    suffix = format_date_suffix(approved_order.created_at.date())

    assert fields["invoice_number"] == f"#01{suffix}"
    assert fields["payment_terms"] == "CHQ"
    assert fields["due_date"] == fields["invoice_date"]
    assert fields["hst_number"] == "123456789RT0001"
    assert "NET 30" in fields["payment_terms_options"]
