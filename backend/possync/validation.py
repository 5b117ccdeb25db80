from __future__ import annotations
from datetime import datetime
from possync.time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from possync.money import to_cents


# Maximum price: $9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999


class ValidationError(ValueError):
    """400-level input problem."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def parse_int(value: Any, name: str) -> int:
    """Strict integer parse: rejects bools, floats and scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{name} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{name} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{name} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{name} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{name} must be an integer, not a decimal")
    raise ValidationError(f"{name} must be an integer")


def parse_amount_cents(value: Any, name: str) -> int:
    """Decimal money input ("10.50", 10.5) -> cents."""
    try:
        cents = to_cents(value)
    except ValueError:
        raise ValidationError(f"{name} is not a valid amount")
    if cents < 0:
        raise ValidationError(f"{name} must be >= 0")
    if cents > MAX_PRICE_CENTS:
        raise ValidationError(f"{name} cannot exceed {MAX_PRICE_CENTS / 100:,.2f}")
    return cents


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return parse_int(value, col.key)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be true or false")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                return parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
        raise ValidationError(f"{col.key} must be a datetime")

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # JSON and friends: leave as-is
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def enforce_rules_product_patch(patch: dict) -> None:
    """Price range checks for cached product edits."""
    for key in ("regular_price_cents", "sale_price_cents"):
        price = patch.get(key)
        if price is None:
            continue
        if price < 0:
            raise ValidationError(f"{key} must be >= 0")
        if price > MAX_PRICE_CENTS:
            raise ValidationError(f"{key} cannot exceed {MAX_PRICE_CENTS} ({MAX_PRICE_CENTS / 100:,.2f})")
    for key in ("categories", "images"):
        if key in patch and patch[key] is not None and not isinstance(patch[key], list):
            raise ValidationError(f"{key} must be a list")


def enforce_rules_settings(patch: dict) -> None:
    minutes = patch.get("cache_duration_minutes")
    if minutes is not None and minutes <= 0:
        raise ValidationError("cache_duration_minutes must be > 0")
    policy = patch.get("catalog_miss_policy")
    if policy is not None and policy not in ("single", "bulk"):
        raise ValidationError("catalog_miss_policy must be 'single' or 'bulk'")
