"""Bounded retry with exponential backoff around a single provider call.

Only transient failures are retried: a ProviderError flagged retryable (5xx,
429, provider-declared server errors) or a network-level httpx failure
(timeout, connection reset, DNS). Every other httpx failure becomes a
non-retryable ProviderError; anything else propagates on the first attempt.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from studio.providers.base import ProviderError, compact_error_text

logger = structlog.get_logger()

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 2
RETRY_WAIT = wait_exponential(multiplier=1, max=8)

Sleep = Callable[[float], Awaitable[None]]

# httpx raises InvalidURL outside the HTTPError hierarchy
HTTPX_ERRORS = (httpx.HTTPError, httpx.InvalidURL)


def as_provider_error(exc: BaseException, label: str) -> ProviderError:
    """Translate httpx failures into ProviderErrors.

    Timeouts and transport failures are retryable; redirect loops, decoding
    failures and invalid URLs are not.
    """
    if isinstance(exc, ProviderError):
        return exc
    if isinstance(exc, httpx.TimeoutException):
        return ProviderError(f"{label} request timed out. Please retry.", retryable=True)
    if isinstance(exc, httpx.TransportError):
        return ProviderError(
            f"{label} network error: {type(exc).__name__}. Please retry.",
            retryable=True,
        )
    detail = compact_error_text(exc) or type(exc).__name__
    return ProviderError(f"{label} request failed: {detail}")


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, ProviderError) and exc.retryable


def _log_retry(label: str, max_attempts: int) -> Callable[[RetryCallState], None]:
    def before_sleep(state: RetryCallState) -> None:
        error = state.outcome.exception() if state.outcome else None
        logger.warning(
            "provider_call_retrying",
            provider=label,
            attempt=state.attempt_number,
            max_attempts=max_attempts,
            delay_seconds=state.next_action.sleep if state.next_action else None,
            error=getattr(error, "message", str(error)),
        )

    return before_sleep


async def call_with_retries(
    operation: Callable[[], Awaitable[T]],
    *,
    label: str,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    sleep: Sleep = asyncio.sleep,
) -> T:
    """Run `operation` up to `max_attempts` times.

    The last error is raised once attempts run out or a non-retryable error
    is seen.
    """

    async def attempt() -> T:
        try:
            return await operation()
        except HTTPX_ERRORS as exc:
            raise as_provider_error(exc, label) from exc

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=RETRY_WAIT,
        retry=retry_if_exception(_is_retryable),
        before_sleep=_log_retry(label, max_attempts),
        sleep=sleep,
        reraise=True,
    )
    return await retrying(attempt)
