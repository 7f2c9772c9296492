"""API error type, response envelope and input coercion helpers."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from bson import ObjectId
from bson.errors import InvalidId
from flask import Response, jsonify, request


@dataclass
class ApiError(Exception):
    message: str
    status: int = 400
    code: str = "bad_request"
    details: Optional[Dict[str, Any]] = None


def ok(message: str = "successful", payload: Dict[str, Any] | None = None,
       status: int = 200) -> Tuple[Response, int]:
    data: Dict[str, Any] = {"status": True, "message": message}
    if payload:
        data.update(payload)
    return jsonify(data), status


def fail(err: ApiError) -> Tuple[Response, int]:
    data = {"status": False, "message": err.message, "code": err.code}
    if err.details:
        data["details"] = err.details
    return jsonify(data), err.status


def not_found(message: str) -> ApiError:
    return ApiError(message, 404, "not_found")


def forbidden(message: str = "Forbidden.") -> ApiError:
    return ApiError(message, 403, "forbidden")


def conflict(message: str, details: Optional[Dict[str, Any]] = None) -> ApiError:
    return ApiError(message, 409, "conflict", details)


def require_json() -> Dict[str, Any]:
    if not request.is_json:
        raise ApiError("Request must be JSON.", 415, "unsupported_media_type")
    data = request.get_json(silent=True)
    if data is None:
        raise ApiError("Invalid JSON payload.", 400, "invalid_json")
    if not isinstance(data, dict):
        raise ApiError("JSON body must be an object.", 400, "invalid_json")
    return data


def require_str(data: Dict[str, Any], field: str) -> str:
    value = data.get(field)
    if not isinstance(value, str) or not value.strip():
        raise ApiError(f"{field} is required.", 400, "validation_error", {"field": field})
    return value.strip()


def safe_int(value: Any, field: str, min_value: Optional[int] = None) -> int:
    # bool is an int subclass; "true" is not a quantity
    if isinstance(value, bool):
        raise ApiError(f"{field} must be an integer.", 400, "validation_error", {"field": field})
    try:
        n = int(value)
    except (TypeError, ValueError):
        raise ApiError(f"{field} must be an integer.", 400, "validation_error", {"field": field})
    if isinstance(value, float) and n != value:
        raise ApiError(f"{field} must be an integer.", 400, "validation_error", {"field": field})
    if min_value is not None and n < min_value:
        raise ApiError(f"{field} must be >= {min_value}.", 400, "validation_error", {"field": field})
    return n


def safe_float(value: Any, field: str, min_value: Optional[float] = None) -> float:
    if isinstance(value, bool):
        raise ApiError(f"{field} must be a number.", 400, "validation_error", {"field": field})
    try:
        n = float(value)
    except (TypeError, ValueError):
        raise ApiError(f"{field} must be a number.", 400, "validation_error", {"field": field})
    if min_value is not None and n < min_value:
        raise ApiError(f"{field} must be >= {min_value}.", 400, "validation_error", {"field": field})
    return n


def to_oid(value: str, field: str = "id") -> ObjectId:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise ApiError(f"invalid {field}", 400, "validation_error", {"field": field})


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def iso_now() -> str:
    return now_utc().isoformat()
