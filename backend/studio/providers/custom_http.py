"""Operator-defined HTTP endpoint adapter.

Everything comes from the organization's default_params:

    {
      "endpoint": "https://images.example.com/v1/render",
      "method": "POST",
      "headers": {"X-Team": "studio"},
      "authHeader": "X-Api-Key",
      "body": {"input": {"text": "{{prompt}}", "size": "{{size}}"}}
    }

`{{prompt}}`, `{{size}}` and `{{model}}` are substituted anywhere inside the
body. The response may be raw image bytes, JSON, or text that contains a URL.
"""

from __future__ import annotations

import base64
import json
import re
from typing import Any

import httpx
import structlog

from studio.generation.normalizer import extract_image, to_data_url
from studio.generation.retry import call_with_retries
from studio.providers.base import (
    ProviderCall,
    ProviderError,
    ProviderImage,
    error_from_response,
    is_plain_object,
)

logger = structlog.get_logger()

CUSTOM_HTTP_TIMEOUT_SECONDS = 60.0

_PLACEHOLDER_RE = re.compile(r"\{\{\s*(prompt|size|model)\s*\}\}")


def apply_template(value: Any, replacements: dict[str, str]) -> Any:
    """Substitute {{prompt}}/{{size}}/{{model}} recursively through JSON values."""
    if isinstance(value, str):
        return _PLACEHOLDER_RE.sub(lambda m: replacements.get(m.group(1), ""), value)
    if isinstance(value, list):
        return [apply_template(entry, replacements) for entry in value]
    if is_plain_object(value):
        return {key: apply_template(entry, replacements) for key, entry in value.items()}
    return value


def _has_header(headers: dict[str, str], name: str) -> bool:
    return any(key.lower() == name.lower() for key in headers)


def build_headers(default_params: dict[str, Any], api_key: str) -> dict[str, str]:
    raw = default_params.get("headers")
    headers = {
        key: value
        for key, value in (raw.items() if is_plain_object(raw) else [])
        if isinstance(value, str)
    }
    if not _has_header(headers, "authorization"):
        auth_header = default_params.get("authHeader")
        name = auth_header.strip() if isinstance(auth_header, str) and auth_header.strip() else "Authorization"
        headers[name] = f"Bearer {api_key}" if name.lower() == "authorization" else api_key
    return headers


class CustomHttpProvider:
    label = "Custom HTTP"

    def __init__(self, http_client: httpx.AsyncClient) -> None:
        self._http = http_client

    async def generate(self, call: ProviderCall) -> ProviderImage:
        params = call.default_params
        endpoint = str(params.get("endpoint") or params.get("url") or "").strip()
        if not endpoint:
            raise ProviderError("Custom HTTP requires `endpoint` in Advanced Params JSON.")

        method = str(params.get("method") or "POST").upper()
        headers = build_headers(params, call.api_key)
        body = params.get("body")
        if body is None:
            body = {"prompt": call.prompt, "size": call.size, "model": call.model}
        templated = apply_template(
            body, {"prompt": call.prompt, "size": call.size, "model": call.model}
        )

        content: str | None = None
        if method != "GET":
            if not _has_header(headers, "content-type"):
                headers["Content-Type"] = "application/json"
            content = templated if isinstance(templated, str) else json.dumps(templated)

        logger.info("custom_http_start", method=method, endpoint=endpoint)

        async def attempt() -> ProviderImage:
            response = await self._http.request(
                method,
                endpoint,
                headers=headers,
                content=content,
                timeout=CUSTOM_HTTP_TIMEOUT_SECONDS,
            )
            if response.status_code >= 400:
                raise error_from_response(
                    response, f"Custom HTTP generation failed ({response.status_code})."
                )
            return ProviderImage(image_url=self._read_image(response), model_used=call.model)

        return await call_with_retries(attempt, label=self.label, max_attempts=1)

    def _read_image(self, response: httpx.Response) -> str:
        content_type = response.headers.get("content-type", "")
        if content_type.startswith("image/"):
            mime = content_type.split(";")[0].strip() or "image/png"
            return to_data_url(base64.b64encode(response.content).decode("ascii"), mime)

        if "application/json" in content_type:
            try:
                payload = response.json()
            except ValueError as exc:
                raise ProviderError("Custom HTTP returned invalid JSON.") from exc
            image = extract_image(payload)
            if not image:
                raise ProviderError("Custom HTTP response did not include an image field.")
            return image

        image = extract_image(response.text)
        if image:
            return image
        raise ProviderError("Custom HTTP response did not include an image URL.")
