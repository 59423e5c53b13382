from __future__ import annotations

from enum import Enum
from typing import Any

from fastapi import HTTPException


class ErrorCode(str, Enum):
    SUCCESS = "SUCCESS"
    VALIDATION_ERROR = "V001"
    NOT_AUTHENTICATED = "A001"
    AUTH_TOKEN_INVALID = "A002"
    INVALID_CREDENTIALS = "A003"
    NO_PERMISSION = "P001"
    NOT_FOUND = "N001"
    CONFLICT = "C001"
    STATE_CONFLICT = "C002"
    BAD_REQUEST = "B001"
    INTERNAL_ERROR = "I001"


def create_error_detail(
    code: ErrorCode | str,
    message: str,
    data: Any | None = None,
    *,
    errors: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    code_value = code.value if isinstance(code, ErrorCode) else str(code)
    detail: dict[str, Any] = {"success": False, "code": code_value, "message": message, "data": data}
    if errors is not None:
        detail["errors"] = errors
    return detail


def http_exception(
    status_code: int,
    code: ErrorCode | str,
    message: str,
    *,
    data: Any | None = None,
    headers: dict[str, str] | None = None,
) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail=create_error_detail(code, message, data),
        headers=headers,
    )


def validation_errors(raw_errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Flatten pydantic error entries into ``{field, message}`` pairs."""
    flattened: list[dict[str, Any]] = []
    for error in raw_errors:
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        flattened.append(
            {
                "field": ".".join(location) or None,
                "message": error.get("msg", "Invalid value"),
                "type": error.get("type"),
            }
        )
    return flattened
