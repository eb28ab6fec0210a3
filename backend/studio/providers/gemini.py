"""Gemini generateContent adapter (REST, API key in the query string).

Single attempt. The response is a candidates → content → parts tree where
the image arrives as an inlineData part next to optional text parts.
"""

from __future__ import annotations

from urllib.parse import quote

import httpx
import structlog

from studio.generation.normalizer import extract_image, extract_inline_text
from studio.generation.retry import call_with_retries
from studio.providers.base import (
    ProviderCall,
    ProviderError,
    ProviderImage,
    compact_error_text,
    error_from_response,
    param_object,
)

logger = structlog.get_logger()

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta/models"
DEFAULT_GEMINI_IMAGE_MODEL = "gemini-2.5-flash-image"
GEMINI_TIMEOUT_SECONDS = 30.0


def endpoint_model(model: str) -> str:
    return (model or "").removeprefix("models/") or DEFAULT_GEMINI_IMAGE_MODEL


def generate_content_url(model: str, api_key: str) -> str:
    return (
        f"{GEMINI_API_BASE}/{quote(endpoint_model(model), safe='')}:generateContent"
        f"?key={quote(api_key, safe='')}"
    )


class GeminiProvider:
    label = "Gemini"

    def __init__(self, http_client: httpx.AsyncClient) -> None:
        self._http = http_client

    async def generate(self, call: ProviderCall) -> ProviderImage:
        body = {
            "contents": [{"role": "user", "parts": [{"text": call.prompt}]}],
            "generationConfig": {
                "responseModalities": ["TEXT", "IMAGE"],
                **param_object(call.default_params, "geminiGenerationConfig"),
            },
            **param_object(call.default_params, "gemini"),
        }
        logger.info("gemini_generate_start", model=endpoint_model(call.model))

        async def attempt() -> ProviderImage:
            response = await self._http.post(
                generate_content_url(call.model, call.api_key),
                json=body,
                timeout=GEMINI_TIMEOUT_SECONDS,
            )
            if response.status_code >= 400:
                raise error_from_response(
                    response, f"Gemini image generation failed ({response.status_code})."
                )
            try:
                payload = response.json()
            except ValueError as exc:
                raise ProviderError("Gemini returned an unreadable response.") from exc

            image = extract_image(payload)
            if image:
                return ProviderImage(image_url=image, model_used=call.model)

            text = extract_inline_text(payload)
            if text:
                logger.warning("gemini_text_only_response", gemini_text=text[:300])
                raise ProviderError(
                    f"Gemini returned text instead of an image: {compact_error_text(text)}"
                )
            raise ProviderError("Gemini returned no image content.")

        return await call_with_retries(attempt, label=self.label, max_attempts=1)
