"""LangSmith tracing for provider calls, zero-cost when LANGSMITH_API_KEY is unset.

The env var is checked when a decorator is built, not at import time, so
tests and local runs without a key get the undecorated function back.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from typing import Any

import structlog
from langsmith import traceable as _langsmith_traceable

_log = structlog.get_logger("tracing")


def tracing_enabled() -> bool:
    return bool(os.environ.get("LANGSMITH_API_KEY", "").strip())


def _identity(fn: Callable[..., Any]) -> Callable[..., Any]:
    return fn


def traceable(**kwargs: Any) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Decorator for tracing arbitrary functions. No-op without LANGSMITH_API_KEY."""
    if not tracing_enabled():
        return _identity
    try:
        return _langsmith_traceable(**kwargs)
    except (TypeError, ValueError) as exc:
        _log.error(
            "langsmith_traceable_failed",
            error=str(exc),
            error_type=type(exc).__name__,
            reason="langsmith decorator failed; continuing without tracing",
        )
        return _identity


def hide_secrets(inputs: dict[str, Any]) -> dict[str, Any]:
    """Trace-input filter: drop the ProviderCall key before anything leaves the process."""
    call = inputs.get("call")
    if call is None or not hasattr(call, "api_key"):
        return inputs
    return {
        **inputs,
        "call": {
            "model": call.model,
            "prompt": call.prompt,
            "size": call.size,
            "has_source_image": call.source_image_url is not None,
        },
    }
