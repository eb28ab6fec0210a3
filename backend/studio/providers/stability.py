"""Stability AI v1 text-to-image adapter."""

from __future__ import annotations

from urllib.parse import quote

import httpx
import structlog

from studio.generation.normalizer import extract_image
from studio.generation.retry import call_with_retries
from studio.providers.base import (
    ProviderCall,
    ProviderError,
    ProviderImage,
    error_from_response,
    param_object,
    parse_size,
)

logger = structlog.get_logger()

STABILITY_API_BASE = "https://api.stability.ai/v1/generation"
STABILITY_TIMEOUT_SECONDS = 45.0


class StabilityProvider:
    label = "Stability AI"

    def __init__(self, http_client: httpx.AsyncClient) -> None:
        self._http = http_client

    async def generate(self, call: ProviderCall) -> ProviderImage:
        dims = parse_size(call.size)
        url = f"{STABILITY_API_BASE}/{quote(call.model, safe='')}/text-to-image"
        body = {
            "text_prompts": [{"text": call.prompt}],
            "width": dims.width,
            "height": dims.height,
            "samples": 1,
            **param_object(call.default_params, "stability"),
        }
        headers = {"Authorization": f"Bearer {call.api_key}", "Accept": "application/json"}
        logger.info("stability_generate_start", model=call.model, width=dims.width, height=dims.height)

        async def attempt() -> ProviderImage:
            response = await self._http.post(
                url, headers=headers, json=body, timeout=STABILITY_TIMEOUT_SECONDS
            )
            if response.status_code >= 400:
                raise error_from_response(
                    response, f"Stability AI generation failed ({response.status_code})."
                )
            try:
                payload = response.json()
            except ValueError as exc:
                raise ProviderError("Stability AI returned an unreadable response.") from exc

            artifacts = payload.get("artifacts") if isinstance(payload, dict) else None
            image = extract_image(artifacts if artifacts is not None else payload)
            if not image:
                raise ProviderError("Stability AI returned no image content.")
            return ProviderImage(image_url=image, model_used=call.model)

        return await call_with_retries(attempt, label=self.label, max_attempts=1)
