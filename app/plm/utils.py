from __future__ import annotations

from typing import Any

from flask import request

from app.plm.errors import ValidationError


def json_body() -> dict[str, Any]:
    """Request JSON as a dict. A missing or unparseable body reads as empty."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object", details={"body": type(data).__name__})
    return data


def str_field(data: dict[str, Any], key: str, default: str | None = None) -> str | None:
    """Optional string field; null reads as ``default``, any other non-string is rejected."""
    value = data.get(key)
    if value is None:
        return default
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string", details={key: type(value).__name__})
    return value


def optional_int(value: Any, field: str) -> int | None:
    if value in (None, ""):
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", details={field: value})
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", details={field: value}) from None
