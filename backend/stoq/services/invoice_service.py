# Overview: Service-layer operations for invoices; numbering, due dates, draft/confirm lifecycle and the document payload.

"""
Invoice Service

An invoice is a set of columns on Order, not its own table.

LIFECYCLE:
    none      -> draft      first admin save
    draft     -> draft      later admin saves
    draft     -> confirmed  explicit admin confirm (one-way)

Only a confirmed invoice is downloadable by the customer and shows them the
discounted/shipped totals. Admins can always download once an invoice exists.

NUMBERING: "#" + NN + DDMMYY where NN = (invoices already ending in DDMMYY) + 1.
This is a read-then-decide count with no lock; concurrent saves for the same
date can collide. PO numbers come from the same routine.
"""

from __future__ import annotations

import re
from datetime import date, timedelta
from decimal import Decimal

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Order, User
from ..models.orders import ORDER_APPROVED, ORDER_COMPLETED
from stoq.time_utils import utcnow, parse_iso_date, to_iso_date
from .pricing_service import (
    DISCOUNT_PERCENTAGE,
    PricingError,
    calculate_discount_cents,
    normalize_discount_type,
    totals_for_order,
    visible_totals,
)


INVOICE_NONE = "none"
INVOICE_DRAFT = "draft"
INVOICE_CONFIRMED = "confirmed"

# Payment on receipt
IMMEDIATE_TERMS = ("CHQ", "EMT", "WIRE")
PAYMENT_TERMS = ("CHQ", "EMT", "WIRE", "NET 15", "NET 30", "NET 60")
DEFAULT_PAYMENT_TERMS = "CHQ"

_NET_TERMS = re.compile(r"NET\s*(\d+)", re.IGNORECASE)

INVOICE_FIELDS = {
    "invoice_number", "invoice_date", "po_number", "payment_terms", "due_date",
    "hst_number", "invoice_notes", "invoice_terms",
    "discount_type", "discount_value", "shipping_cents",
}


class InvoiceError(Exception):
    """Raised for invoice operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


# =============================================================================
# Numbering
# =============================================================================

def format_date_suffix(order_date: date) -> str:
    """DDMMYY"""
    return order_date.strftime("%d%m%y")


def next_invoice_number(order_date: date) -> str:
    """
    Allocate "#NN" + DDMMYY for the given date.

    Falls back to "#01" on a storage error rather than failing the save.
    """
    suffix = format_date_suffix(order_date)
    try:
        count = (
            db.session.query(db.func.count(Order.id))
            .filter(Order.invoice_number.isnot(None))
            .filter(Order.invoice_number.like(f"%{suffix}"))
            .scalar()
        ) or 0
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.warning(
            "Invoice number lookup failed for %s; defaulting to #01", suffix, exc_info=True
        )
        count = 0

    return f"#{count + 1:02d}{suffix}"


def next_po_number(order_date: date) -> str:
    """PO numbers share the invoice routine and may equal the invoice number."""
    return next_invoice_number(order_date)


# =============================================================================
# Due dates
# =============================================================================

def calculate_due_date(invoice_date, payment_terms: str | None) -> str:
    """
    Due date (YYYY-MM-DD) for an invoice date and payment terms label.

    CHQ/EMT/WIRE and unknown labels are due the same day; a label containing
    "NET n" (e.g. "NET 30 days") adds n days.
    An unparseable date is returned unchanged.
    """
    try:
        parsed = parse_iso_date(invoice_date)
    except ValueError:
        parsed = None
    if parsed is None:
        return invoice_date

    terms = (payment_terms or "").strip()
    if terms.upper() in IMMEDIATE_TERMS:
        return parsed.isoformat()

    match = _NET_TERMS.search(terms)
    if match:
        days = int(match.group(1))
        if days > 0:
            return (parsed + timedelta(days=days)).isoformat()

    return parsed.isoformat()


# =============================================================================
# Lifecycle
# =============================================================================

def invoice_state(order: Order) -> str:
    if not order.invoice_number:
        return INVOICE_NONE
    if order.invoice_confirmed:
        return INVOICE_CONFIRMED
    return INVOICE_DRAFT


def can_download_invoice(order: Order, viewer: User) -> bool:
    if invoice_state(order) == INVOICE_NONE:
        return False
    if viewer.is_admin:
        return True
    return order.user_id == viewer.id and invoice_state(order) == INVOICE_CONFIRMED


def _order_date(order: Order) -> date:
    return (order.created_at or utcnow()).date()


def invoice_defaults(order: Order) -> dict:
    """
    Prefill for the admin invoice form.

    Existing invoices return their stored values; a new invoice gets fresh
    numbers for the order date, CHQ terms and the configured HST number/terms.
    """
    invoice_date = order.invoice_date or _order_date(order)
    payment_terms = order.payment_terms or DEFAULT_PAYMENT_TERMS
    due_date = to_iso_date(order.due_date) or calculate_due_date(invoice_date, payment_terms)

    if order.invoice_number:
        invoice_number = order.invoice_number
        po_number = order.po_number or ""
    else:
        invoice_number = next_invoice_number(_order_date(order))
        po_number = next_po_number(_order_date(order))

    kind = normalize_discount_type(order.discount_type)
    if kind == DISCOUNT_PERCENTAGE and order.discount_percent is not None:
        discount_value = str(order.discount_percent)
    else:
        discount_value = order.discount_cents or 0

    return {
        "invoice_number": invoice_number,
        "invoice_date": invoice_date.isoformat(),
        "po_number": po_number,
        "payment_terms": payment_terms,
        "due_date": due_date,
        "hst_number": order.hst_number or current_app.config.get("COMPANY_HST_NUMBER", ""),
        "invoice_notes": order.invoice_notes or "",
        "invoice_terms": order.invoice_terms or current_app.config.get("DEFAULT_INVOICE_TERMS", ""),
        "discount_type": kind,
        "discount_value": discount_value,
        "shipping_cents": order.shipping_cents or 0,
        "payment_terms_options": list(PAYMENT_TERMS),
    }


def _clean_text(value, field: str, max_len: int | None = None) -> str | None:
    if value is None:
        return None
    s = str(value).strip()
    if max_len and len(s) > max_len:
        raise InvoiceError(f"{field} exceeds max length {max_len}")
    return s or None


def _resolve_discount(order: Order, discount_type, discount_value) -> tuple[str, Decimal | None, int]:
    """Validated (type, percent, cents) for a discount; the order is not touched."""
    discount_value = discount_value or 0
    try:
        kind = normalize_discount_type(discount_type)
        if kind != DISCOUNT_PERCENTAGE and (
            isinstance(discount_value, bool) or not isinstance(discount_value, int)
        ):
            raise InvoiceError("Fixed discount must be an integer number of cents")
        discount_cents = calculate_discount_cents(order.subtotal_cents, kind, discount_value)
    except PricingError as e:
        raise InvoiceError(str(e), details=e.details)

    percent = None
    if kind == DISCOUNT_PERCENTAGE:
        # The form caps percentages; the calculator itself does not
        percent = Decimal(str(discount_value))
        if percent > 100:
            raise InvoiceError("Percentage discount cannot exceed 100")

    return kind, percent, discount_cents


def save_invoice(order_id: int, fields: dict, actor: User) -> Order:
    """
    Create or edit the draft invoice of an approved/completed order.

    Unknown fields are rejected. Numbers and due date are derived when
    omitted; tax and total are recomputed with the calculator.
    """
    if not actor.is_admin:
        raise InvoiceError("Only admins can edit invoices")

    fields = fields or {}
    unknown = sorted(set(fields) - INVOICE_FIELDS)
    if unknown:
        raise InvoiceError(f"Field not allowed: {', '.join(unknown)}")

    order = db.session.query(Order).filter_by(id=order_id).first()
    if not order:
        raise InvoiceError("Order not found")

    if order.status not in (ORDER_APPROVED, ORDER_COMPLETED):
        raise InvoiceError(
            "Invoices can only be created for approved orders",
            details={"status": order.status},
        )

    if order.invoice_confirmed:
        raise InvoiceError("Invoice is already confirmed")

    previous_state = invoice_state(order)

    try:
        invoice_date = parse_iso_date(fields.get("invoice_date")) or order.invoice_date or _order_date(order)
    except ValueError:
        raise InvoiceError("invoice_date must be an ISO-8601 date")

    payment_terms = _clean_text(fields.get("payment_terms"), "payment_terms", 16) \
        or order.payment_terms or DEFAULT_PAYMENT_TERMS

    if "due_date" in fields and fields["due_date"]:
        try:
            due_date = parse_iso_date(fields["due_date"])
        except ValueError:
            raise InvoiceError("due_date must be an ISO-8601 date")
    else:
        due_date = date.fromisoformat(calculate_due_date(invoice_date, payment_terms))

    invoice_number = _clean_text(fields.get("invoice_number"), "invoice_number", 16) \
        or order.invoice_number or next_invoice_number(_order_date(order))
    po_number = _clean_text(fields.get("po_number"), "po_number", 16) \
        or order.po_number or next_po_number(_order_date(order))

    shipping_cents = fields.get("shipping_cents", order.shipping_cents or 0)
    if isinstance(shipping_cents, bool) or not isinstance(shipping_cents, int) or shipping_cents < 0:
        raise InvoiceError("shipping_cents must be a non-negative integer")

    discount = None
    if "discount_type" in fields or "discount_value" in fields:
        discount = _resolve_discount(
            order, fields.get("discount_type", order.discount_type), fields.get("discount_value", 0)
        )

    hst_number = _clean_text(fields.get("hst_number"), "hst_number", 64) \
        or order.hst_number or current_app.config.get("COMPANY_HST_NUMBER") or None
    invoice_notes = order.invoice_notes
    if "invoice_notes" in fields:
        invoice_notes = _clean_text(fields.get("invoice_notes"), "invoice_notes")
    invoice_terms = order.invoice_terms
    if "invoice_terms" in fields or invoice_terms is None:
        invoice_terms = _clean_text(
            fields.get("invoice_terms", current_app.config.get("DEFAULT_INVOICE_TERMS")),
            "invoice_terms",
        )

    # Everything is validated; nothing below raises
    if discount is not None:
        order.discount_type, order.discount_percent, order.discount_cents = discount
    order.invoice_number = invoice_number
    order.invoice_date = invoice_date
    order.po_number = po_number
    order.payment_terms = payment_terms
    order.due_date = due_date
    order.hst_number = hst_number
    order.invoice_notes = invoice_notes
    order.invoice_terms = invoice_terms
    order.shipping_cents = shipping_cents
    order.invoice_confirmed = False
    order.invoice_confirmed_at = None

    totals = totals_for_order(order)
    order.tax_cents = totals.tax_cents
    order.total_cents = totals.total_cents

    db.session.commit()

    current_app.logger.info(
        "Invoice %s saved for order %s (%s -> %s)",
        order.invoice_number, order.id, previous_state, INVOICE_DRAFT,
    )
    return order


def confirm_invoice(order_id: int, actor: User) -> Order:
    """Lock a draft invoice. There is no way back to draft."""
    if not actor.is_admin:
        raise InvoiceError("Only admins can confirm invoices")

    order = db.session.query(Order).filter_by(id=order_id).first()
    if not order:
        raise InvoiceError("Order not found")

    state = invoice_state(order)
    if state == INVOICE_NONE:
        raise InvoiceError("Invoice not created yet")
    if state == INVOICE_CONFIRMED:
        raise InvoiceError("Invoice is already confirmed")

    order.invoice_confirmed = True
    order.invoice_confirmed_at = utcnow()
    db.session.commit()

    current_app.logger.info("Invoice %s confirmed for order %s", order.invoice_number, order.id)
    return order


# =============================================================================
# Document payload for the PDF renderer
# =============================================================================

def _line_rows(order: Order) -> list[dict]:
    rows = []
    for line in order.items or []:
        item = line.get("item") or {}
        quantity = int(line.get("quantity") or 0)
        unit_price = int(item.get("selling_price_cents") or item.get("price_per_unit_cents") or 0)
        rows.append({
            "item_id": item.get("id"),
            "description": " ".join(
                part for part in (item.get("device_name"), item.get("storage")) if part
            ),
            "grade": item.get("grade"),
            "quantity": quantity,
            "unit_price_cents": unit_price,
            "line_total_cents": unit_price * quantity,
        })
    return rows


def build_invoice_document(order: Order, viewer: User) -> dict:
    """
    Everything a fixed-layout renderer needs, already computed.

    Raises InvoiceError when the viewer may not download this invoice.
    """
    if invoice_state(order) == INVOICE_NONE:
        raise InvoiceError("Invoice not created yet")
    if not can_download_invoice(order, viewer):
        raise InvoiceError("Invoice is not available for download")

    customer = order.user
    config = current_app.config
    totals = visible_totals(order, viewer_is_admin=viewer.is_admin)

    return {
        "filename": f"invoice-{order.invoice_number.lstrip('#')}.pdf",
        "company": {
            "name": config.get("COMPANY_NAME"),
            "address": config.get("COMPANY_ADDRESS"),
            "hst_number": order.hst_number or config.get("COMPANY_HST_NUMBER"),
        },
        "customer": {
            "business_name": customer.business_name if customer else None,
            "business_address": customer.business_address if customer else None,
            "email": customer.email if customer else None,
            "shipping_address": order.shipping_address,
            "billing_address": order.billing_address,
        },
        "invoice": {
            "invoice_number": order.invoice_number,
            "invoice_date": to_iso_date(order.invoice_date) or _order_date(order).isoformat(),
            "po_number": order.po_number or "",
            "payment_terms": order.payment_terms or DEFAULT_PAYMENT_TERMS,
            "due_date": to_iso_date(order.due_date) or _order_date(order).isoformat(),
            "notes": order.invoice_notes,
            "terms": order.invoice_terms,
            "state": invoice_state(order),
        },
        "lines": _line_rows(order),
        "totals": totals.to_dict(),
    }
