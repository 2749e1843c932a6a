from __future__ import annotations

import math
from datetime import date, datetime
from typing import Any

from sqlalchemy import Boolean, Date, Float, Integer, String, Text

from .errors import ValidationError
from .models import Product, PRODUCT_FIELDS
from .time_utils import parse_day


REQUIRED_PRODUCT_FIELDS = ("itemCode", "itemName")


def _columns_by_key(model) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(value: Any, field: str) -> int:
    """Strict integer: rejects floats with a fraction, scientific notation and bools."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if value.is_integer():
            return int(value)
        raise ValidationError(f"{field} must be an integer, not a decimal")
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    raise ValidationError(f"{field} must be an integer")


def coerce_number(value: Any, field: str) -> float:
    """Finite float; NaN and infinities are rejected like any other non-number."""
    if value is None or value == "":
        return 0.0
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            raise ValidationError(f"{field} must be a number")
    else:
        raise ValidationError(f"{field} must be a number")
    if not math.isfinite(number):
        raise ValidationError(f"{field} must be a finite number")
    return number


def coerce_positive_quantity(value: Any, field: str = "qty") -> int:
    qty = coerce_int(value, field)
    if qty <= 0:
        raise ValidationError(f"{field} must be > 0")
    return qty


def _coerce_value(col, field: str, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(value, field)

    if isinstance(coltype, Float):
        return coerce_number(value, field)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "y")
        # fallback: truthiness (0/1 from older exports)
        return bool(value)

    if isinstance(coltype, Date):
        if isinstance(value, (date, datetime)):
            return parse_day(value)
        try:
            return parse_day(value)
        except (TypeError, ValueError):
            raise ValidationError(f"{field} must be an ISO-8601 date")

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_product_fields(payload: Any, *, partial: bool) -> dict:
    """
    Validates + normalizes an external (camelCase) product payload.

    Returns a patch keyed by Product attribute name. Unknown keys, derived
    aliases (productCode, productName, sellingPrice) and timestamps are
    dropped silently: older callers still send them and they are re-derived.

    partial=False: create semantics (itemCode and itemName required)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid product payload")

    if not partial:
        missing = [f for f in REQUIRED_PRODUCT_FIELDS if not str(payload.get(f) or "").strip()]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(Product)
    patch: dict = {}

    for field, raw in payload.items():
        attr = PRODUCT_FIELDS.get(field)
        if attr is None:
            continue
        col = cols[attr]

        if raw is None:
            if not col.nullable:
                if col.default is not None and not partial:
                    continue
                raise ValidationError(f"{field} cannot be null")
            patch[attr] = None
            continue

        val = _coerce_value(col, field, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable and field in REQUIRED_PRODUCT_FIELDS:
            if val == "":
                raise ValidationError(f"{field} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{field} exceeds max length {col.type.length}")

        patch[attr] = val

    enforce_rules_product(patch)
    return patch


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    """
    if patch.get("stock_quantity") is not None and patch["stock_quantity"] < 0:
        raise ValidationError("stockQuantity must be >= 0")

    for attr, field in (
        ("purchase_price", "purchasePrice"),
        ("selling_price_tab", "sellingPriceTab"),
        ("mrp", "mrp"),
    ):
        if patch.get(attr) is not None and patch[attr] < 0:
            raise ValidationError(f"{field} must be >= 0")

    for attr, field in (("cgst_rate", "cgstRate"), ("sgst_rate", "sgstRate"), ("igst_rate", "igstRate")):
        if patch.get(attr) is not None and not (0 <= patch[attr] <= 100):
            raise ValidationError(f"{field} must be between 0 and 100")


def enforce_rules_stock_adjust(payload: dict) -> dict:
    """Normalize a stock adjustment request: code, batch, qty, direction."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    code = str(payload.get("code") or payload.get("itemCode") or "").strip()
    if not code:
        raise ValidationError("code is required")

    direction = str(payload.get("direction") or "").strip().lower()
    if direction not in ("increase", "decrease"):
        raise ValidationError("direction must be 'increase' or 'decrease'")

    return {
        "code": code,
        "batch": payload.get("batch"),
        "qty": coerce_positive_quantity(payload.get("qty"), "qty"),
        "direction": direction,
    }
