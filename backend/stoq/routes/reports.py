# Overview: Flask API routes for reports; dashboard statistics as JSON.

from flask import Blueprint, g

from ..services import reporting_service, tax_service
from ..decorators import require_auth, require_admin

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/inventory")
@require_auth
@require_admin
def inventory_stats_route():
    return reporting_service.inventory_stats()


@reports_bp.get("/orders")
@require_auth
@require_admin
def order_stats_route():
    return reporting_service.order_stats()


@reports_bp.get("/me")
@require_auth
def my_stats_route():
    return reporting_service.user_stats(g.current_user.id)


@reports_bp.get("/tax-rates")
@require_auth
@require_admin
def tax_rates_route():
    rates = tax_service.list_tax_rates()
    return {"tax_rates": [r.to_dict() for r in rates], "count": len(rates)}
