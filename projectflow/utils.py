"""
projectflow/utils.py

Utility functions shared across the app:
- Input parsing for JSON / form payloads. ``parse_*`` helpers return None for
  empty input; ``require_*`` helpers raise ValidationError naming the field.
- api_response: the JSON success envelope.
- json_payload / form_payload: request bodies as plain dicts.
- get_or_404: primary-key lookup raising the domain NotFound.
"""

from __future__ import annotations

import json
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional

from flask import jsonify, request

from .errors import NotFound, ValidationError
from .extensions import db

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


# ---------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------
def parse_decimal(value: Any, field: str = "value") -> Optional[Decimal]:
    """Parse decimal from user input (accepts comma or dot)."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, Decimal):
        return value
    raw = str(value).strip().replace(",", ".")
    if raw == "":
        return None
    try:
        number = Decimal(raw)
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number") from None
    if not number.is_finite():
        raise ValidationError(f"{field} must be a number")
    return number


def require_decimal(value: Any, field: str, *, min_value: Optional[Decimal] = Decimal("0")) -> Decimal:
    number = parse_decimal(value, field)
    if number is None:
        raise ValidationError(f"{field} is required")
    if min_value is not None and number < min_value:
        raise ValidationError(f"{field} must be at least {min_value}")
    return number


def parse_optional_int(value: Any, field: str = "value") -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    raw = str(value).strip()
    if raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{field} must be an integer") from None


def require_int(value: Any, field: str) -> int:
    number = parse_optional_int(value, field)
    if number is None:
        raise ValidationError(f"{field} is required")
    return number


def parse_bool(value: Any, field: str) -> bool:
    """Strict boolean: JSON true/false (or "true"/"false" from forms)."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise ValidationError(f"{field} must be a boolean")


def parse_date(value: Any, field: str) -> Optional[date]:
    """ISO date (YYYY-MM-DD); a full ISO datetime is truncated to its date."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raw = str(value).strip()
    try:
        return date.fromisoformat(raw[:10])
    except ValueError:
        raise ValidationError(f"{field} must be a date (YYYY-MM-DD)") from None


def require_date(value: Any, field: str) -> date:
    parsed = parse_date(value, field)
    if parsed is None:
        raise ValidationError(f"{field} is required")
    return parsed


def parse_time(value: Any, field: str, default: str) -> str:
    """HH:MM (24h)."""
    if value is None or value == "":
        return default
    raw = str(value).strip()
    if not _TIME_RE.match(raw):
        raise ValidationError(f"{field} must be in HH:MM format")
    return raw


def require_text(value: Any, field: str, *, max_length: Optional[int] = None) -> str:
    text = (str(value) if value is not None else "").strip()
    if not text:
        raise ValidationError(f"{field} is required")
    if max_length is not None and len(text) > max_length:
        raise ValidationError(f"{field} cannot exceed {max_length} characters")
    return text


def optional_text(value: Any) -> Optional[str]:
    text = (str(value) if value is not None else "").strip()
    return text or None


def parse_list(value: Any, field: str) -> List[Any]:
    """
    List input. Multipart requests carry lists as JSON strings, so a string
    is decoded first.
    """
    if value is None or value == "":
        return []
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            raise ValidationError(f"{field} must be a JSON array") from None
    if not isinstance(value, list):
        raise ValidationError(f"{field} must be an array")
    return value


def parse_id_list(value: Any, field: str) -> List[int]:
    ids = []
    for raw in parse_list(value, field):
        ids.append(require_int(raw, field))
    # Keep first occurrence order
    return list(dict.fromkeys(ids))


def string_list(value: Any, field: str) -> List[str]:
    return [s for s in (optional_text(v) for v in parse_list(value, field)) if s]


# ---------------------------------------------------------------------
# Responses / lookups
# ---------------------------------------------------------------------
def api_response(data: Any = None, message: str = "OK", status: int = 200):
    return jsonify({"success": True, "message": message, "data": data}), status


def get_or_404(model, object_id: Any, label: Optional[str] = None):
    instance = db.session.get(model, object_id) if object_id is not None else None
    if instance is None:
        raise NotFound(f"{label or model.__name__} not found")
    return instance


def json_payload() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload


def form_payload() -> dict:
    """
    Multipart body: either a single ``data`` field holding JSON, or plain
    form fields (list fields then carry JSON strings).
    """
    if request.mimetype != "multipart/form-data" and request.is_json:
        return json_payload()
    raw = request.form.get("data")
    if raw:
        try:
            payload = json.loads(raw)
        except ValueError:
            raise ValidationError("data must be a JSON object") from None
        if not isinstance(payload, dict):
            raise ValidationError("data must be a JSON object")
        return payload
    return request.form.to_dict()
