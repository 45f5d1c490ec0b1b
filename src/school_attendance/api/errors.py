from __future__ import annotations

from typing import Any, Optional

import httpx

from ..core.enums import ErrorKind
from ..core.exceptions import (
    ERRORS_BY_KIND,
    AuthenticationRequired,
    Conflict,
    DomainError,
    Expired,
    NetworkError,
    NotFound,
    PermissionDenied,
    ServerError,
    TooManyAttempts,
    ValidationError,
)

_BY_STATUS: dict[int, type[DomainError]] = {
    400: ValidationError,
    401: AuthenticationRequired,
    403: PermissionDenied,
    404: NotFound,
    409: Conflict,
    410: Expired,
    422: ValidationError,
    429: TooManyAttempts,
}


def _body(response: httpx.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _message(data: dict[str, Any]) -> Optional[str]:
    for key in ("detail", "error", "message", "reason"):
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def kind_from_code(code: Any) -> Optional[ErrorKind]:
    """Backend bodies may carry an explicit ``code`` naming the error kind."""
    if not isinstance(code, str):
        return None
    try:
        return ErrorKind(code.strip().lower())
    except ValueError:
        return None


def error_from_response(response: httpx.Response) -> DomainError:
    data = _body(response)
    message = _message(data)
    status = response.status_code

    kind = kind_from_code(data.get("code"))
    if kind is not None:
        return ERRORS_BY_KIND[kind](message, status_code=status)

    if status >= 500:
        return ServerError(None, status_code=status)
    cls = _BY_STATUS.get(status, ValidationError)
    return cls(message, status_code=status)


def error_from_transport(exc: httpx.HTTPError) -> DomainError:
    if isinstance(exc, httpx.TimeoutException):
        return NetworkError("Request timed out. Check your connection.")
    return NetworkError()
