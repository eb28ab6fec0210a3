"""OpenAI Responses adapter for text-mode answers."""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
import structlog

from studio.generation.normalizer import extract_response_text
from studio.generation.retry import Sleep, call_with_retries
from studio.providers.base import ProviderCall, ProviderError, ProviderText
from studio.providers.openai_common import (
    OPENAI_API_BASE,
    OPENAI_MAX_ATTEMPTS,
    OPENAI_TIMEOUT_SECONDS,
    auth_headers,
    filter_params,
    openai_http_error,
)

logger = structlog.get_logger()

OPENAI_RESPONSES_URL = f"{OPENAI_API_BASE}/responses"

DEFAULT_TEXT_MODEL = "gpt-4.1-mini"

TEXT_PARAM_KEYS = frozenset({"temperature", "max_output_tokens", "top_p"})

TEXT_SYSTEM_INSTRUCTION = (
    "You are an industrial product development assistant. "
    "Return clear Markdown with this exact structure: "
    "## Recommendation, ## Why, ## Action Plan. "
    "Use bullet points and numbered steps on separate lines. "
    "Do not output one long paragraph. Keep it concise and practical."
)


def resolve_text_model(model: str) -> str:
    raw = (model or "").strip()
    lowered = raw.lower()
    if not raw or "image" in lowered or lowered.startswith("dall-e"):
        return DEFAULT_TEXT_MODEL
    return raw


def resolve_text_model_from_params(model: str, default_params: dict[str, Any]) -> str:
    """`default_params.openaiText.model` overrides the organization's model."""
    text_params = default_params.get("openaiText")
    configured = ""
    if isinstance(text_params, dict) and isinstance(text_params.get("model"), str):
        configured = text_params["model"].strip()
    return resolve_text_model(configured or model)


class OpenAITextProvider:
    label = "OpenAI text"

    def __init__(self, http_client: httpx.AsyncClient, *, sleep: Sleep = asyncio.sleep) -> None:
        self._http = http_client
        self._sleep = sleep

    async def respond(self, call: ProviderCall) -> ProviderText:
        model = resolve_text_model_from_params(call.model, call.default_params)
        params = filter_params(call.default_params.get("openaiText"), TEXT_PARAM_KEYS)
        body = {
            "model": model,
            "input": [
                {"role": "system", "content": TEXT_SYSTEM_INSTRUCTION},
                {"role": "user", "content": call.prompt},
            ],
            **params,
        }
        logger.info("openai_text_start", model=model)

        async def attempt() -> ProviderText:
            response = await self._http.post(
                OPENAI_RESPONSES_URL,
                headers=auth_headers(call.api_key),
                json=body,
                timeout=OPENAI_TIMEOUT_SECONDS,
            )
            if response.status_code >= 400:
                raise openai_http_error(response, operation="text response")
            try:
                payload = response.json()
            except ValueError as exc:
                raise ProviderError("OpenAI returned an unreadable text response.") from exc

            text = extract_response_text(payload)
            if not text:
                raise ProviderError("OpenAI returned no text response.")
            return ProviderText(response_text=text, model_used=model)

        return await call_with_retries(
            attempt,
            label=self.label,
            max_attempts=OPENAI_MAX_ATTEMPTS,
            sleep=self._sleep,
        )
