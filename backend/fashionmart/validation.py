from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError

# SQLite INTEGER is a signed 64-bit value
MAX_DB_INT = 2**63 - 1
MIN_DB_INT = -(2**63)

MAX_PAGE = 1_000_000


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: JSON key -> model column key that clients may set (security boundary)
    - required_on_create: JSON keys required for POST
    """
    writable_fields: dict[str, str]
    required_on_create: set[str] = field(default_factory=set)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, key: str, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        return coerce_int(value, key)

    # Booleans
    if isinstance(coltype, Boolean):
        return coerce_bool(value, key)

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        if isinstance(value, (dict, list)):
            raise ValidationError(f"{key} must be a string")
        return str(value).strip()

    # Default: leave as-is
    return value


def coerce_int(value: Any, key: str) -> int:
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return _check_int_range(value, key)
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            value = int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
        return _check_int_range(value, key)
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def _check_int_range(value: int, key: str) -> int:
    if not MIN_DB_INT <= value <= MAX_DB_INT:
        raise ValidationError(f"{key} is out of range")
    return value


def coerce_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    # multipart forms send strings
    if isinstance(value, str) and value.strip().lower() in {"true", "1", "yes"}:
        return True
    if isinstance(value, str) and value.strip().lower() in {"false", "0", "no"}:
        return False
    raise ValidationError(f"{key} must be a boolean")


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
    ignore_unknown: bool = False,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict keyed by model column.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = [f for f in sorted(policy.required_on_create) if payload.get(f) in (None, "")]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)
    patch: dict = {}

    for key, raw in payload.items():
        column_key = policy.writable_fields.get(key)
        if column_key is None:
            if ignore_unknown:
                continue
            raise ValidationError(f"Field not allowed: {key}")
        col = cols[column_key]

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{key} cannot be null")
            patch[column_key] = None
            continue

        val = _coerce_value(col, key, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{key} cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{key} exceeds max length {col.type.length}")

        patch[column_key] = val

    return patch


def require_json_object(payload: Any) -> dict:
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def parse_positive_int(value: Any, key: str) -> int:
    number = coerce_int(value, key)
    if number <= 0:
        raise ValidationError(f"{key} must be a positive integer")
    return number


def parse_choice(value: Any, key: str, choices) -> str:
    if not isinstance(value, str) or value not in choices:
        raise ValidationError(f"{key} must be one of: {', '.join(choices)}")
    return value


def parse_pagination(args, *, default_limit: int = 20, max_limit: int = 100) -> tuple[int, int]:
    """Read page/limit query args; limit is clamped to max_limit."""
    page = coerce_int(args.get("page", 1), "page")
    limit = coerce_int(args.get("limit", default_limit), "limit")
    if page < 1:
        raise ValidationError("page must be >= 1")
    if page > MAX_PAGE:
        raise ValidationError(f"page must be <= {MAX_PAGE}")
    if limit < 1:
        raise ValidationError("limit must be >= 1")
    return page, min(limit, max_limit)


def parse_optional_bool(args, key: str) -> bool | None:
    value = args.get(key)
    if value in (None, ""):
        return None
    return coerce_bool(value, key)
