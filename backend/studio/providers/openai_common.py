"""Pieces shared by the OpenAI image and text adapters."""

from __future__ import annotations

from typing import Any

import httpx

from studio.providers.base import (
    ProviderError,
    compact_error_text,
    is_retryable_status,
    parse_json_safe,
)

OPENAI_API_BASE = "https://api.openai.com/v1"
OPENAI_TIMEOUT_SECONDS = 60.0
OPENAI_MAX_ATTEMPTS = 2

_REQUEST_ID_HEADERS = ("x-request-id", "openai-request-id", "request-id")


def auth_headers(api_key: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {api_key}"}


def request_id_from(response: httpx.Response) -> str | None:
    for header in _REQUEST_ID_HEADERS:
        value = response.headers.get(header)
        if value:
            return value
    return None


def openai_http_error(response: httpx.Response, *, operation: str) -> ProviderError:
    """Map a non-2xx OpenAI response onto a ProviderError.

    Retryable when the status is 5xx/429 or OpenAI labels the error
    `server_error`. The request id is appended for support lookups.
    """
    raw = response.text
    payload = parse_json_safe(raw)
    error: Any = payload.get("error") if isinstance(payload, dict) else None
    error = error if isinstance(error, dict) else {}

    provider_message = error.get("message")
    if not isinstance(provider_message, str):
        provider_message = compact_error_text(raw) or (
            f"OpenAI {operation} failed ({response.status_code})."
        )
    retryable = is_retryable_status(response.status_code) or error.get("type") == "server_error"
    request_id = request_id_from(response)

    parts = [
        "OpenAI temporary server error." if retryable else "OpenAI request failed.",
        compact_error_text(provider_message),
        f"Request ID: {request_id}." if request_id else "",
    ]
    return ProviderError(
        " ".join(part for part in parts if part),
        retryable=retryable,
        request_id=request_id,
    )


def filter_params(raw: Any, allowed: frozenset[str]) -> dict[str, Any]:
    if not isinstance(raw, dict):
        return {}
    return {key: value for key, value in raw.items() if key in allowed}
