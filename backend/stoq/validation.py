# Overview: JSON payload allowlisting and coercion against model columns, plus inventory/tax rules.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Integer, String, Text

from stoq.time_utils import parse_iso_datetime


MAX_PRICE_CENTS = 999_999_999  # $9,999,999.99
MAX_RATE_BPS = 10_000  # 100%

PRICE_FIELDS = ("price_per_unit_cents", "purchase_price_cents", "selling_price_cents")


class ValidationError(ValueError):
    """Bad input; routes answer 400."""


class ConflictError(ValueError):
    """Input clashes with stored data (e.g. a duplicate device variant); routes answer 409."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """Which columns a client may write, and which a create must supply."""
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)


def _to_int(key: str, value: Any) -> int:
    # bool is an int subclass; JSON true must not become 1
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{key} must be an integer")

    text = value.strip()
    if "e" in text.lower():
        raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
    if "." in text:
        raise ValidationError(f"{key} must be an integer (no decimals)")
    try:
        return int(text)
    except ValueError:
        raise ValidationError(f"{key} must be an integer")


def _to_bool(key: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f"{key} must be true or false")
    return value


def _to_datetime(key: str, value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a datetime")
    try:
        parsed = parse_iso_datetime(value)
    except ValueError:
        parsed = None
    if parsed is None:
        raise ValidationError(f"{key} must be an ISO-8601 datetime")
    return parsed


def _coerce(column, value: Any):
    kind = column.type
    if isinstance(kind, Integer):
        return _to_int(column.key, value)
    if isinstance(kind, Boolean):
        return _to_bool(column.key, value)
    if isinstance(kind, DateTime):
        return _to_datetime(column.key, value)
    if isinstance(kind, (String, Text)):
        text = str(value).strip()
        if text == "" and not column.nullable:
            raise ValidationError(f"{column.key} cannot be blank")
        limit = getattr(kind, "length", None)
        if limit and len(text) > limit:
            raise ValidationError(f"{column.key} exceeds max length {limit}")
        return text
    return value


def validate_payload(*, model, payload: dict, policy: ModelValidationPolicy, partial: bool) -> dict:
    """
    Turn a client JSON object into a patch dict for ``model``.

    Every key must be in ``policy.writable_fields`` and be a real column.
    Values are coerced by column type and checked against nullability and
    String length. With ``partial=False`` (create) the policy's
    ``required_on_create`` keys must all be present; with ``partial=True``
    only the keys given are looked at.
    """
    payload = {} if payload is None else payload
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(set(policy.required_on_create) - set(payload))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    columns = {c.key: c for c in model.__mapper__.columns}
    patch: dict = {}

    for key, raw in payload.items():
        if key not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {key}")
        column = columns.get(key)
        if column is None:
            raise ValidationError(f"Unknown field: {key}")

        if raw is None:
            if not column.nullable:
                raise ValidationError(f"{key} cannot be null")
            patch[key] = None
        else:
            patch[key] = _coerce(column, raw)

    return patch


def enforce_rules_inventory_item(patch: dict) -> None:
    """
    Inventory rules column metadata can't express. Normalizes grade to
    upper case in place.
    """
    from .models.inventory import GRADES, PRICE_CHANGES

    if "grade" in patch:
        grade = (patch["grade"] or "").upper()
        if grade not in GRADES:
            raise ValidationError(f"grade must be one of {', '.join(GRADES)}")
        patch["grade"] = grade

    quantity = patch.get("quantity")
    if quantity is not None and quantity < 0:
        raise ValidationError("quantity must be >= 0")

    for name in PRICE_FIELDS:
        cents = patch.get(name)
        if cents is None:
            continue
        if cents < 0:
            raise ValidationError(f"{name} must be >= 0")
        if cents > MAX_PRICE_CENTS:
            raise ValidationError(f"{name} cannot exceed {MAX_PRICE_CENTS} (${MAX_PRICE_CENTS / 100:,.2f})")

    hst = patch.get("hst_bps")
    if hst is not None and not 0 <= hst <= MAX_RATE_BPS:
        raise ValidationError(f"hst_bps must be between 0 and {MAX_RATE_BPS}")

    change = patch.get("price_change")
    if change is not None and change not in PRICE_CHANGES:
        raise ValidationError(f"price_change must be one of {', '.join(PRICE_CHANGES)}")


def enforce_rules_tax_rate(rate_bps: int) -> None:
    if isinstance(rate_bps, bool) or not isinstance(rate_bps, int):
        raise ValidationError("rate_bps must be an integer")
    if not 0 <= rate_bps <= MAX_RATE_BPS:
        raise ValidationError(f"rate_bps must be between 0 and {MAX_RATE_BPS}")
