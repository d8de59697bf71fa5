# Overview: Order total calculator; the one place discount, shipping and tax are combined.

"""
Pricing Service - order financial breakdown

Every caller that shows or stores an order total goes through
calculate_order_totals(): order placement, invoice save, order
serialization and the invoice document.

FORMULA:
1. discount = subtotal * value / 100 (percentage) or value (fixed cents)
2. result   = subtotal - discount + shipping
3. tax      = result * rate
4. total    = result + tax

Tax is charged on the post-discount, post-shipping amount. Nothing is
clamped until display: display_total_cents = max(0, total_cents).

UNITS: money in integer cents, tax rate in basis points (1300 = 13%).
Fractions of a cent are rounded half-up.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation


DISCOUNT_PERCENTAGE = "percentage"
DISCOUNT_FIXED = "fixed"
DISCOUNT_TYPES = (DISCOUNT_PERCENTAGE, DISCOUNT_FIXED)

# Older rows and clients label fixed discounts by currency
_DISCOUNT_ALIASES = {"cad": DISCOUNT_FIXED}

BPS_DENOMINATOR = Decimal(10000)


class PricingError(Exception):
    """Raised for invalid pricing inputs."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


@dataclass(frozen=True)
class OrderTotals:
    subtotal_cents: int
    discount_type: str
    discount_value: str
    discount_cents: int
    shipping_cents: int
    result_cents: int
    tax_rate_bps: int
    tax_cents: int
    total_cents: int

    @property
    def display_total_cents(self) -> int:
        return max(0, self.total_cents)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["display_total_cents"] = self.display_total_cents
        return data


def _round_cents(value: Decimal) -> int:
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def _to_decimal(value, field: str) -> Decimal:
    if isinstance(value, bool):
        raise PricingError(f"{field} must be a number")
    try:
        dec = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise PricingError(f"{field} must be a number")
    if not dec.is_finite():
        raise PricingError(f"{field} must be a finite number")
    return dec


def _require_cents(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise PricingError(f"{field} must be an integer number of cents")
    if value < 0:
        raise PricingError(f"{field} must be >= 0")
    return value


def normalize_discount_type(discount_type: str | None) -> str:
    """Map None and legacy labels onto DISCOUNT_TYPES."""
    if discount_type is None or discount_type == "":
        return DISCOUNT_FIXED
    key = str(discount_type).strip().lower()
    key = _DISCOUNT_ALIASES.get(key, key)
    if key not in DISCOUNT_TYPES:
        raise PricingError(
            f"Unknown discount type: {discount_type}",
            details={"allowed": list(DISCOUNT_TYPES)},
        )
    return key


def calculate_discount_cents(subtotal_cents: int, discount_type: str | None, discount_value) -> int:
    """
    Resolve a discount into cents.

    Percentage values are not capped at 100 here; the admin form enforces
    that, and an over-100 discount just yields a negative result.
    """
    subtotal_cents = _require_cents(subtotal_cents, "subtotal_cents")
    kind = normalize_discount_type(discount_type)
    value = _to_decimal(discount_value or 0, "discount_value")
    if value < 0:
        raise PricingError("discount_value must be >= 0")

    if kind == DISCOUNT_PERCENTAGE:
        return _round_cents(Decimal(subtotal_cents) * value / Decimal(100))
    return _round_cents(value)


def calculate_tax_cents(amount_cents: int, tax_rate_bps: int | None) -> int:
    """Tax on an amount that may be negative (an over-discounted invoice)."""
    rate = tax_rate_bps or 0
    if isinstance(rate, bool) or not isinstance(rate, int) or rate < 0:
        raise PricingError("tax_rate_bps must be a non-negative integer")
    return _round_cents(Decimal(amount_cents) * Decimal(rate) / BPS_DENOMINATOR)


def calculate_order_totals(
    subtotal_cents: int,
    discount_type: str | None = None,
    discount_value=0,
    shipping_cents: int = 0,
    tax_rate_bps: int | None = 0,
) -> OrderTotals:
    """Deterministic breakdown for one order."""
    subtotal_cents = _require_cents(subtotal_cents, "subtotal_cents")
    shipping_cents = _require_cents(shipping_cents or 0, "shipping_cents")
    kind = normalize_discount_type(discount_type)

    discount_cents = calculate_discount_cents(subtotal_cents, kind, discount_value)
    result_cents = subtotal_cents - discount_cents + shipping_cents
    tax_cents = calculate_tax_cents(result_cents, tax_rate_bps)

    return OrderTotals(
        subtotal_cents=subtotal_cents,
        discount_type=kind,
        discount_value=str(_to_decimal(discount_value or 0, "discount_value")),
        discount_cents=discount_cents,
        shipping_cents=shipping_cents,
        result_cents=result_cents,
        tax_rate_bps=tax_rate_bps or 0,
        tax_cents=tax_cents,
        total_cents=result_cents + tax_cents,
    )


def discount_inputs_for_order(order) -> tuple[str, object]:
    """(discount_type, discount_value) as stored on an Order row."""
    kind = normalize_discount_type(order.discount_type)
    if kind == DISCOUNT_PERCENTAGE and order.discount_percent is not None:
        return kind, order.discount_percent
    return DISCOUNT_FIXED, order.discount_cents or 0


def totals_for_order(order) -> OrderTotals:
    """Full breakdown from the stored discount, shipping and tax rate."""
    kind, value = discount_inputs_for_order(order)
    return calculate_order_totals(
        subtotal_cents=order.subtotal_cents or 0,
        discount_type=kind,
        discount_value=value,
        shipping_cents=order.shipping_cents or 0,
        tax_rate_bps=order.tax_rate_bps or 0,
    )


def visible_totals(order, viewer_is_admin: bool) -> OrderTotals:
    """
    Breakdown a given viewer may see.

    Customers see subtotal + tax-on-subtotal until the invoice is confirmed,
    so negotiated discounts and shipping stay hidden while still in draft.
    """
    if viewer_is_admin or order.invoice_confirmed:
        return totals_for_order(order)
    return calculate_order_totals(
        subtotal_cents=order.subtotal_cents or 0,
        tax_rate_bps=order.tax_rate_bps or 0,
    )
