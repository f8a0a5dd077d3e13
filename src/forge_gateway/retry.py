"""Retryable vs. fatal classification of gateway errors."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog

from .errors import (
    ProviderResolutionError,
    RetryableError,
    TransportError,
    UpstreamError,
)
from .settings import RetryConfig

logger = structlog.get_logger(__name__)

T = TypeVar("T")

RETRYABLE_UPSTREAM_TYPES = frozenset({"overloaded_error", "rate_limit_error", "api_error"})


def classify(error: Exception, config: RetryConfig) -> Exception:
    """Wrap ``error`` in ``RetryableError`` when a retry may succeed."""

    if isinstance(error, (RetryableError, ProviderResolutionError)):
        return error
    if _is_transient(error, config):
        return RetryableError(error)
    return error


def is_retryable(error: BaseException) -> bool:
    return isinstance(error, RetryableError)


def _is_transient(error: Exception, config: RetryConfig) -> bool:
    if isinstance(error, TransportError):
        return True
    status_code = getattr(error, "status_code", None)
    if status_code is not None and status_code in config.retry_status_codes:
        return True
    if isinstance(error, UpstreamError):
        if error.error_type in RETRYABLE_UPSTREAM_TYPES:
            return True
        if isinstance(error.code, int) and error.code in config.retry_status_codes:
            return True
    return False


async def retry_async(
    call: Callable[[], Awaitable[T]],
    config: RetryConfig,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Await ``call()`` again after each ``RetryableError``, per ``config.delays()``."""

    for attempt, delay in enumerate(config.delays(), start=1):
        try:
            return await call()
        except RetryableError as exc:
            logger.warning("retry.scheduled", attempt=attempt, delay_s=delay, error=str(exc))
            await sleep(delay)
    return await call()
