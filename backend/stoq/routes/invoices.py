# Overview: Flask API routes for invoice operations; parses input and returns JSON responses.

# backend/stoq/routes/invoices.py
"""
Invoice routes. An invoice lives on its order, so URLs are keyed by order id.

Admin: number preview, due date preview, form defaults, save, confirm.
Customer: document download once the invoice is confirmed.
"""
from flask import Blueprint, request, g, current_app

from ..services import invoice_service, order_service
from ..services.invoice_service import InvoiceError
from ..decorators import require_auth, require_admin
from stoq.time_utils import parse_iso_date, today

invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


def _error(e: InvoiceError, status: int = 400):
    return {"error": str(e), "details": e.details}, status


def _status_for(e: InvoiceError) -> int:
    message = str(e)
    if message == "Order not found":
        return 404
    if message.startswith("Only admins"):
        return 403
    if message in ("Invoice is already confirmed", "Invoice not created yet") or "status" in e.details:
        return 409
    return 400


@invoices_bp.get("/numbers")
@require_auth
@require_admin
def next_numbers_route():
    """Preview the next invoice/PO number for ?date=YYYY-MM-DD (default today)."""
    try:
        on = parse_iso_date(request.args.get("date")) or today()
    except ValueError:
        return {"error": "date must be an ISO-8601 date"}, 400

    return {
        "invoice_number": invoice_service.next_invoice_number(on),
        "po_number": invoice_service.next_po_number(on),
    }


@invoices_bp.get("/due-date")
@require_auth
@require_admin
def due_date_route():
    invoice_date = request.args.get("invoice_date") or today().isoformat()
    payment_terms = request.args.get("payment_terms") or invoice_service.DEFAULT_PAYMENT_TERMS
    return {
        "invoice_date": invoice_date,
        "payment_terms": payment_terms,
        "due_date": invoice_service.calculate_due_date(invoice_date, payment_terms),
    }


@invoices_bp.get("/<int:order_id>")
@require_auth
@require_admin
def invoice_form_route(order_id: int):
    """Stored invoice fields, or fresh defaults for an order without one."""
    order = order_service.get_order(order_id)
    if not order:
        return {"error": "Order not found"}, 404
    return {
        "order": order.to_dict(viewer_is_admin=True),
        "state": invoice_service.invoice_state(order),
        "fields": invoice_service.invoice_defaults(order),
    }


@invoices_bp.put("/<int:order_id>")
@require_auth
@require_admin
def save_invoice_route(order_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        order = invoice_service.save_invoice(order_id, payload, g.current_user)
    except InvoiceError as e:
        return _error(e, _status_for(e))
    except Exception:
        current_app.logger.exception("Failed to save invoice for order %s", order_id)
        return {"error": "Internal server error"}, 500

    return order.to_dict(viewer_is_admin=True), 200


@invoices_bp.post("/<int:order_id>/confirm")
@require_auth
@require_admin
def confirm_invoice_route(order_id: int):
    try:
        order = invoice_service.confirm_invoice(order_id, g.current_user)
    except InvoiceError as e:
        return _error(e, _status_for(e))

    return order.to_dict(viewer_is_admin=True), 200


@invoices_bp.get("/<int:order_id>/document")
@require_auth
def invoice_document_route(order_id: int):
    """Computed invoice document for the renderer. Customers: confirmed only."""
    viewer = g.current_user
    order = order_service.get_order(order_id)
    if not order or (not viewer.is_admin and order.user_id != viewer.id):
        return {"error": "Order not found"}, 404

    try:
        return invoice_service.build_invoice_document(order, viewer)
    except InvoiceError as e:
        return _error(e, 404 if str(e) == "Invoice not created yet" else 403)
