"""Utilities for translating gateway errors into HTTP responses."""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException, status

from ..errors import ProviderError, ProviderResolutionError, ResponseContentError, RetryableError
from ..retry import is_retryable


def error_payload(exc: Exception, provider: str | None = None) -> dict[str, Any]:
    """JSON body describing ``exc``; also used for in-stream error events."""

    retryable = is_retryable(exc)
    inner = exc.error if isinstance(exc, RetryableError) else exc

    code = "internal_error"
    upstream_status = getattr(inner, "status_code", None)
    if isinstance(inner, ProviderResolutionError):
        code = "provider_not_configured"
    elif upstream_status in (401, 403):
        code = "upstream_auth_error"
    elif upstream_status == 429:
        code = "upstream_rate_limited"
    elif upstream_status and upstream_status >= 500:
        code = "upstream_unavailable"
    elif isinstance(inner, ProviderError):
        code = "provider_error"
    elif isinstance(inner, ResponseContentError):
        code = "invalid_upstream_content"

    return {
        "message": str(exc),
        "code": code,
        "provider": provider,
        "retryable": retryable,
        "upstream_status": upstream_status,
        "provider_request_id": getattr(inner, "provider_request_id", None),
    }


def map_exception(exc: Exception, provider: str | None = None) -> HTTPException:
    detail = {"error": error_payload(exc, provider)}
    code = detail["error"]["code"]

    if code == "provider_not_configured":
        http_status = status.HTTP_424_FAILED_DEPENDENCY
    elif code == "upstream_rate_limited":
        http_status = status.HTTP_429_TOO_MANY_REQUESTS
    elif code == "internal_error":
        http_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    else:
        http_status = status.HTTP_502_BAD_GATEWAY

    return HTTPException(status_code=http_status, detail=detail)
