# Overview: Service-layer operations for tax rates; location lookup and rate maintenance.

"""
Tax Rate Service

LOOKUP ORDER for (country, state, city):
1. latest city-specific row (when a city is given)
2. latest state/province-level row (city NULL)
3. 0 bps

"Latest" is the highest effective_date, so rate history can be kept.
"""

from __future__ import annotations

from ..extensions import db
from ..models import TaxRate
from ..validation import ValidationError, enforce_rules_tax_rate
from stoq.time_utils import parse_iso_date, today


def _clean(value) -> str:
    return (value or "").strip()


def _latest(query):
    return query.order_by(TaxRate.effective_date.desc(), TaxRate.id.desc()).first()


def find_tax_rate(country: str, state: str, city: str | None = None) -> TaxRate | None:
    country, state, city = _clean(country), _clean(state), _clean(city)
    if not country or not state:
        return None

    base = db.session.query(TaxRate).filter(
        TaxRate.country == country,
        TaxRate.state_province == state,
    )

    if city:
        row = _latest(base.filter(TaxRate.city == city))
        if row:
            return row

    return _latest(base.filter(TaxRate.city.is_(None)))


def get_tax_rate_bps(country: str, state: str, city: str | None = None) -> int:
    row = find_tax_rate(country, state, city)
    return row.rate_bps if row else 0


def get_tax_type(country: str, state: str) -> str:
    """Stored label for the state/province, else a country default."""
    country, state = _clean(country), _clean(state)
    if not country or not state:
        return "Tax"

    row = find_tax_rate(country, state)
    if row:
        return row.tax_type or "Tax"
    return "GST/HST" if country == "Canada" else "Sales Tax"


def get_tax_info(country: str, state: str, city: str | None = None) -> dict:
    return {
        "tax_rate_bps": get_tax_rate_bps(country, state, city),
        "tax_type": get_tax_type(country, state),
    }


def tax_rate_for_user(user) -> int:
    """Rate for the user's business location."""
    if user is None:
        return 0
    return get_tax_rate_bps(user.business_country, user.business_state, user.business_city)


def add_tax_rate(
    country: str,
    state: str,
    rate_bps: int,
    city: str | None = None,
    tax_type: str | None = None,
    effective_date=None,
) -> TaxRate:
    country, state = _clean(country), _clean(state)
    if not country or not state:
        raise ValidationError("country and state are required")
    enforce_rules_tax_rate(rate_bps)

    try:
        effective = parse_iso_date(effective_date) or today()
    except ValueError:
        raise ValidationError("effective_date must be an ISO-8601 date")

    row = TaxRate(
        country=country,
        state_province=state,
        city=_clean(city) or None,
        rate_bps=rate_bps,
        tax_type=_clean(tax_type) or None,
        effective_date=effective,
    )
    db.session.add(row)
    db.session.commit()
    return row


def list_tax_rates(country: str | None = None) -> list[TaxRate]:
    query = db.session.query(TaxRate)
    if country:
        query = query.filter(TaxRate.country == country)
    return query.order_by(
        TaxRate.country.asc(),
        TaxRate.state_province.asc(),
        TaxRate.city.asc(),
        TaxRate.effective_date.desc(),
    ).all()
