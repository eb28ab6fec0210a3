"""Model discovery: lists the models a provider key can see.

Backs the provider connection test. Each call is a lightweight authenticated
GET with a short timeout; a failure means "the key or provider is not usable",
which the caller reports without raising.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

import anthropic
import httpx
import structlog

from studio.providers.base import Provider, ProviderError, compact_error_text, parse_provider

logger = structlog.get_logger()

DISCOVERY_TIMEOUT_SECONDS = 12.0

OPENAI_MODELS_URL = "https://api.openai.com/v1/models"
GEMINI_MODELS_URL = "https://generativelanguage.googleapis.com/v1beta/models"
REPLICATE_MODELS_URL = "https://api.replicate.com/v1/models"
STABILITY_ENGINES_URL = "https://api.stability.ai/v1/engines/list"


@dataclass(frozen=True)
class DiscoveryResult:
    ok: bool
    message: str
    models: list[str] = field(default_factory=list)


async def _get_json(
    http_client: httpx.AsyncClient,
    url: str,
    label: str,
    headers: dict[str, str] | None = None,
) -> Any:
    try:
        response = await http_client.get(url, headers=headers, timeout=DISCOVERY_TIMEOUT_SECONDS)
    except httpx.TimeoutException as exc:
        raise ProviderError(f"{label} model listing timed out.", retryable=True) from exc
    except httpx.TransportError as exc:
        raise ProviderError(f"{label} network error: {type(exc).__name__}.", retryable=True) from exc
    if response.status_code >= 400:
        raise ProviderError(
            compact_error_text(response.text) or f"{label} API error ({response.status_code})."
        )
    try:
        return response.json()
    except ValueError as exc:
        raise ProviderError(f"{label} returned an unreadable model list.") from exc


def _ids(entries: Any, key: str) -> list[str]:
    if not isinstance(entries, list):
        return []
    return [
        entry[key]
        for entry in entries
        if isinstance(entry, dict) and isinstance(entry.get(key), str) and entry[key]
    ]


async def _openai_models(http_client: httpx.AsyncClient, api_key: str) -> list[str]:
    payload = await _get_json(
        http_client, OPENAI_MODELS_URL, "OpenAI", {"Authorization": f"Bearer {api_key}"}
    )
    return _ids(payload.get("data") if isinstance(payload, dict) else None, "id")


async def _anthropic_models(api_key: str) -> list[str]:
    try:
        async with anthropic.AsyncAnthropic(
            api_key=api_key, timeout=DISCOVERY_TIMEOUT_SECONDS, max_retries=0
        ) as client:
            page = await client.models.list(limit=100)
    except anthropic.APIStatusError as exc:
        raise ProviderError(
            compact_error_text(exc.message) or f"Anthropic API error ({exc.status_code})."
        ) from exc
    except anthropic.APIError as exc:
        raise ProviderError(f"Anthropic model listing failed: {compact_error_text(exc)}") from exc
    return [model.id for model in page.data if model.id]


async def _gemini_models(http_client: httpx.AsyncClient, api_key: str) -> list[str]:
    payload = await _get_json(
        http_client, f"{GEMINI_MODELS_URL}?key={quote(api_key, safe='')}", "Gemini"
    )
    names = _ids(payload.get("models") if isinstance(payload, dict) else None, "name")
    return [name.removeprefix("models/") for name in names]


async def _replicate_models(http_client: httpx.AsyncClient, api_key: str) -> list[str]:
    payload = await _get_json(
        http_client, REPLICATE_MODELS_URL, "Replicate", {"Authorization": f"Token {api_key}"}
    )
    results = payload.get("results") if isinstance(payload, dict) else None
    return [
        f"{entry['owner']}/{entry['name']}"
        for entry in results or []
        if isinstance(entry, dict)
        and isinstance(entry.get("owner"), str)
        and isinstance(entry.get("name"), str)
    ]


async def _stability_models(http_client: httpx.AsyncClient, api_key: str) -> list[str]:
    payload = await _get_json(
        http_client,
        STABILITY_ENGINES_URL,
        "Stability",
        {"Authorization": f"Bearer {api_key}", "Accept": "application/json"},
    )
    return _ids(payload, "id")


async def discover_models(
    http_client: httpx.AsyncClient, provider_name: str, api_key: str
) -> DiscoveryResult:
    """List models for a provider. Raises ProviderError when the listing fails."""
    if not provider_name or not api_key:
        return DiscoveryResult(ok=False, message="Provider and API key are required.")

    provider = parse_provider(provider_name)
    if provider is None:
        raise ProviderError(f"Unsupported provider: {provider_name}")
    if provider is Provider.CUSTOM_HTTP:
        return DiscoveryResult(
            ok=True, message="Custom HTTP does not support automatic model discovery."
        )

    if provider is Provider.OPENAI:
        models = await _openai_models(http_client, api_key)
    elif provider is Provider.ANTHROPIC:
        models = await _anthropic_models(api_key)
    elif provider is Provider.GEMINI:
        models = await _gemini_models(http_client, api_key)
    elif provider is Provider.REPLICATE:
        models = await _replicate_models(http_client, api_key)
    else:
        models = await _stability_models(http_client, api_key)

    models = sorted(models)
    logger.info("models_discovered", provider=provider.value, count=len(models))
    return DiscoveryResult(
        ok=True,
        models=models,
        message=(
            f"Discovered {len(models)} models." if models else "No models returned by provider."
        ),
    )
