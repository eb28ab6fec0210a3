"""OpenAI Images adapter: plain generation or reference-image edits.

With a source image the request goes to /images/edits as multipart form data
and the prompt is wrapped in a preservation instruction, unless the user is
explicitly asking for a redesign. Without one it is a JSON call to
/images/generations.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

import httpx
import structlog

from studio.generation.normalizer import extract_image
from studio.generation.retry import Sleep, call_with_retries
from studio.providers.base import ProviderCall, ProviderError, ProviderImage
from studio.providers.openai_common import (
    OPENAI_API_BASE,
    OPENAI_MAX_ATTEMPTS,
    OPENAI_TIMEOUT_SECONDS,
    auth_headers,
    filter_params,
    openai_http_error,
)
from studio.utils.http import fetch_source_image

logger = structlog.get_logger()

GENERATIONS_URL = f"{OPENAI_API_BASE}/images/generations"
EDITS_URL = f"{OPENAI_API_BASE}/images/edits"

DEFAULT_IMAGE_MODEL = "gpt-image-1"

IMAGE_PARAM_KEYS = frozenset(
    {
        "quality",
        "background",
        "output_format",
        "output_compression",
        "moderation",
        "n",
        "style",
        "user",
    }
)

REDESIGN_SIGNALS: tuple[str, ...] = (
    "redesign",
    "completely new",
    "start over",
    "from scratch",
    "ignore reference",
    "different concept",
    "new concept",
    "reimagine",
)

_EDIT_PREAMBLE = (
    "Use the provided image as the base.",
    "Preserve overall composition, camera angle, product geometry, background, and lighting.",
    "Preserve the same product category and form factor as the reference image "
    "unless the user explicitly requests a category change.",
    "Apply only the requested modification unless explicitly asked to redesign.",
)


def resolve_image_model(model: str) -> str:
    """Text-only model names are not valid on the images endpoints."""
    raw = (model or "").strip()
    lowered = raw.lower()
    if not raw:
        return DEFAULT_IMAGE_MODEL
    if "image" in lowered or lowered.startswith("dall-e"):
        return raw
    return DEFAULT_IMAGE_MODEL


def wants_full_redesign(prompt: str) -> bool:
    normalized = prompt.lower()
    return any(signal in normalized for signal in REDESIGN_SIGNALS)


def build_edit_prompt(prompt: str) -> str:
    return " ".join([*_EDIT_PREAMBLE, f"Requested change: {prompt}"])


def _form_value(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int | float):
        return str(value)
    return json.dumps(value)


class OpenAIImageProvider:
    label = "OpenAI image"

    def __init__(self, http_client: httpx.AsyncClient, *, sleep: Sleep = asyncio.sleep) -> None:
        self._http = http_client
        self._sleep = sleep

    async def generate(self, call: ProviderCall) -> ProviderImage:
        model = resolve_image_model(call.model)
        params = filter_params(call.default_params.get("openai"), IMAGE_PARAM_KEYS)
        is_edit = call.source_image_url is not None
        prompt = (
            build_edit_prompt(call.prompt)
            if is_edit and not wants_full_redesign(call.prompt)
            else call.prompt
        )
        logger.info("openai_image_start", model=model, edit=is_edit)

        async def attempt() -> ProviderImage:
            if call.source_image_url:
                response = await self._post_edit(call, model, prompt, params)
            else:
                response = await self._post_generation(call, model, prompt, params)
            if response.status_code >= 400:
                raise openai_http_error(response, operation="image generation")
            try:
                payload = response.json()
            except ValueError as exc:
                raise ProviderError("OpenAI returned an unreadable image response.") from exc

            data = payload.get("data") if isinstance(payload, dict) else None
            image = extract_image(data[0] if isinstance(data, list) and data else payload)
            if not image:
                raise ProviderError("OpenAI returned no image content.")
            return ProviderImage(image_url=image, model_used=model)

        return await call_with_retries(
            attempt,
            label=self.label,
            max_attempts=OPENAI_MAX_ATTEMPTS,
            sleep=self._sleep,
        )

    async def _post_generation(
        self, call: ProviderCall, model: str, prompt: str, params: dict[str, Any]
    ) -> httpx.Response:
        return await self._http.post(
            GENERATIONS_URL,
            headers=auth_headers(call.api_key),
            json={"model": model, "prompt": prompt, "size": call.size, **params},
            timeout=OPENAI_TIMEOUT_SECONDS,
        )

    async def _post_edit(
        self, call: ProviderCall, model: str, prompt: str, params: dict[str, Any]
    ) -> httpx.Response:
        source = await fetch_source_image(self._http, call.source_image_url or "")
        form = {"model": model, "prompt": prompt, "size": call.size}
        for key, value in params.items():
            encoded = _form_value(value)
            if encoded is not None:
                form[key] = encoded
        return await self._http.post(
            EDITS_URL,
            headers=auth_headers(call.api_key),
            data=form,
            files={"image": (source.filename, source.data, source.mime_type)},
            timeout=OPENAI_TIMEOUT_SECONDS,
        )
