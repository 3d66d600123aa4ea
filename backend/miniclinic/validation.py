from __future__ import annotations
from datetime import date, datetime
from .time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any, Callable

from sqlalchemy import Boolean, Date, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta


# Maximum amount: 9,999,999.99 (999,999,999 minor units)
# This prevents database overflow issues and nonsensical prices
MAX_AMOUNT_CENTS = 999_999_999


class ValidationError(ValueError):
    """
    400-level input problem.

    Carries every violation found in the payload, never a partial list.
    """

    def __init__(self, errors: str | list[str]):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__(f"Validation failed: {', '.join(self.errors)}")


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate SKU)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - rules: business rules run on the coerced patch; they append messages
      to the shared error list instead of raising
    """
    writable_fields: frozenset[str]
    required_on_create: frozenset[str] = frozenset()
    rules: tuple[Callable[[dict, list[str]], None], ...] = ()


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        # Already an int (but not bool which is a subclass of int)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        # String input - must be plain digits (with optional leading minus)
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer")
            # Reject scientific notation (e.g., "1e15", "1E10")
            if 'e' in stripped.lower():
                raise ValidationError(f"{col.key} must be a plain integer (scientific notation not allowed)")
            # Reject decimal points (e.g., "12.5")
            if '.' in stripped:
                raise ValidationError(f"{col.key} must be an integer (no decimals)")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        # Reject floats explicitly
        if isinstance(value, float):
            raise ValidationError(f"{col.key} must be an integer, not a decimal")
        # Other types
        raise ValidationError(f"{col.key} must be an integer")

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        # fallback: truthiness
        return bool(value)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    # Plain dates (YYYY-MM-DD)
    if isinstance(coltype, Date):
        if isinstance(value, date) and not isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                return date.fromisoformat(value.strip())
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 date")
        raise ValidationError(f"{col.key} must be a date")

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
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
    - the policy's business rules
    Returns a cleaned patch dict with only writable fields.

    Every problem is collected first; a single ValidationError listing all of
    them is raised at the end.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    errors: list[str] = []

    if not partial:
        missing = sorted(f for f in policy.required_on_create if payload.get(f) is None)
        for f in missing:
            errors.append(f"{f} is required")

    cols = _columns_by_key(model)

    patch: dict = {}

    for k, raw in payload.items():
        # Reject unknown / non-writable fields
        if k not in policy.writable_fields:
            errors.append(f"Field not allowed: {k}")
            continue
        if k not in cols:
            errors.append(f"Unknown field: {k}")
            continue

        col = cols[k]

        # NULL handling (missing required fields were reported above)
        if raw is None:
            if not col.nullable and (partial or k not in policy.required_on_create):
                errors.append(f"{k} cannot be null")
            elif col.nullable:
                patch[k] = None
            continue

        try:
            val = _coerce_value(col, raw)
        except ValidationError as e:
            errors.extend(e.errors)
            continue

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                errors.append(f"{k} cannot be blank")
                continue

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                errors.append(f"{k} exceeds max length {col.type.length}")
                continue

        patch[k] = val

    for rule in policy.rules:
        rule(patch, errors)

    if errors:
        raise ValidationError(errors)

    return patch


def _check_amount(patch: dict, field: str, errors: list[str], *, allow_zero: bool = True) -> None:
    value = patch.get(field)
    if value is None:
        return
    if value < 0 or (value == 0 and not allow_zero):
        errors.append(f"{field} must be {'non-negative' if allow_zero else 'positive'}")
    elif value > MAX_AMOUNT_CENTS:
        errors.append(f"{field} cannot exceed {MAX_AMOUNT_CENTS}")


def _check_choice(patch: dict, field: str, choices, errors: list[str]) -> None:
    value = patch.get(field)
    if value is not None and value not in choices:
        errors.append(f"{field} must be one of: {', '.join(choices)}")


def rules_sale(patch: dict, errors: list[str]) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    if patch.get("product_id") is not None and patch["product_id"] <= 0:
        errors.append("Invalid product ID")
    if patch.get("quantity") is not None and patch["quantity"] <= 0:
        errors.append("Quantity must be positive")
    if patch.get("unit_price_cents") is not None and patch["unit_price_cents"] < 0:
        errors.append("Unit price must be non-negative")
    if patch.get("cost_price_cents") is not None and patch["cost_price_cents"] < 0:
        errors.append("Cost price must be non-negative")


def rules_product(patch: dict, errors: list[str]) -> None:
    _check_amount(patch, "price_cents", errors)
    _check_amount(patch, "cost_price_cents", errors)
    if patch.get("stock_quantity") is not None and patch["stock_quantity"] < 0:
        errors.append("stock_quantity must be >= 0")
    if patch.get("quantity_per_pack") is not None and patch["quantity_per_pack"] < 1:
        errors.append("quantity_per_pack must be >= 1")
    if patch.get("reorder_level") is not None and patch["reorder_level"] < 0:
        errors.append("reorder_level must be >= 0")


def rules_inventory_item(patch: dict, errors: list[str]) -> None:
    if patch.get("stock_quantity") is not None and patch["stock_quantity"] < 0:
        errors.append("stock_quantity must be >= 0")
    if patch.get("reorder_level") is not None and patch["reorder_level"] < 0:
        errors.append("reorder_level must be >= 0")


def rules_payment_plan(patch: dict, errors: list[str]) -> None:
    from .models.patients import PLAN_TYPES, PLAN_FREQUENCIES, PLAN_STATUSES

    _check_amount(patch, "total_amount_cents", errors, allow_zero=False)
    _check_amount(patch, "amount_per_installment_cents", errors, allow_zero=False)
    _check_choice(patch, "type", PLAN_TYPES, errors)
    _check_choice(patch, "payment_frequency", PLAN_FREQUENCIES, errors)
    _check_choice(patch, "status", PLAN_STATUSES, errors)


def rules_payment(patch: dict, errors: list[str]) -> None:
    from .models.patients import PAYMENT_METHODS, PAYMENT_STATUSES

    _check_amount(patch, "amount_cents", errors, allow_zero=False)
    _check_choice(patch, "method", PAYMENT_METHODS, errors)
    _check_choice(patch, "status", PAYMENT_STATUSES, errors)


# Longest bookable slot; also bounds the overlap search window
MAX_APPOINTMENT_MINUTES = 8 * 60


def rules_appointment(patch: dict, errors: list[str]) -> None:
    from .models.scheduling import APPOINTMENT_STATUSES, APPOINTMENT_TYPES

    duration = patch.get("duration_minutes")
    if duration is not None and not 0 < duration <= MAX_APPOINTMENT_MINUTES:
        errors.append(f"duration_minutes must be between 1 and {MAX_APPOINTMENT_MINUTES}")
    _check_choice(patch, "status", APPOINTMENT_STATUSES, errors)
    _check_choice(patch, "type", APPOINTMENT_TYPES, errors)


def rules_unavailability(patch: dict, errors: list[str]) -> None:
    start, end = patch.get("start_time"), patch.get("end_time")
    if start is not None and end is not None and end <= start:
        errors.append("end_time must be after start_time")


def rules_expense(patch: dict, errors: list[str]) -> None:
    _check_amount(patch, "amount_cents", errors, allow_zero=False)
    if patch.get("category") is not None:
        patch["category"] = patch["category"].lower()
