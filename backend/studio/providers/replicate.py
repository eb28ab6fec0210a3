"""Replicate predictions adapter: create, then poll until terminal.

The create call asks Replicate to hold the connection (`Prefer: wait=60`);
slow models still come back `starting`/`processing`, in which case the
prediction's `urls.get` is polled on a fixed interval for a bounded number of
attempts.
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
import structlog

from studio.generation.normalizer import extract_image
from studio.generation.retry import Sleep, call_with_retries
from studio.providers.base import (
    ProviderCall,
    ProviderError,
    ProviderImage,
    compact_error_text,
    error_from_response,
    param_object,
    parse_size,
)

logger = structlog.get_logger()

PREDICTIONS_URL = "https://api.replicate.com/v1/predictions"
CREATE_TIMEOUT_SECONDS = 60.0
POLL_TIMEOUT_SECONDS = 30.0
POLL_INTERVAL_SECONDS = 1.5
MAX_POLL_ATTEMPTS = 20

PENDING_STATUSES = frozenset({"starting", "processing"})
TERMINAL_STATUSES = frozenset({"succeeded", "failed", "canceled"})


def _read_json(response: httpx.Response) -> dict[str, Any]:
    try:
        payload = response.json()
    except ValueError as exc:
        raise ProviderError("Replicate returned an unreadable response.") from exc
    return payload if isinstance(payload, dict) else {}


class ReplicateProvider:
    label = "Replicate"

    def __init__(self, http_client: httpx.AsyncClient, *, sleep: Sleep = asyncio.sleep) -> None:
        self._http = http_client
        self._sleep = sleep

    def _headers(self, api_key: str) -> dict[str, str]:
        return {"Authorization": f"Token {api_key}"}

    async def generate(self, call: ProviderCall) -> ProviderImage:
        return await call_with_retries(
            lambda: self._run_prediction(call), label=self.label, max_attempts=1
        )

    async def _run_prediction(self, call: ProviderCall) -> ProviderImage:
        body = {
            "version": call.model,
            "input": {
                "prompt": call.prompt,
                "aspect_ratio": parse_size(call.size).aspect_ratio,
                **param_object(call.default_params, "input"),
            },
            **param_object(call.default_params, "replicate"),
        }
        response = await self._http.post(
            PREDICTIONS_URL,
            headers={**self._headers(call.api_key), "Prefer": "wait=60"},
            json=body,
            timeout=CREATE_TIMEOUT_SECONDS,
        )
        if response.status_code >= 400:
            raise error_from_response(
                response, f"Replicate prediction failed ({response.status_code})."
            )

        payload = _read_json(response)
        status = payload.get("status")
        poll_url = (payload.get("urls") or {}).get("get")
        logger.info("replicate_prediction_created", status=status, model=call.model)

        if status in PENDING_STATUSES and poll_url:
            payload = await self._poll(poll_url, call.api_key, payload)
            status = payload.get("status")

        if status != "succeeded":
            raise ProviderError(
                compact_error_text(payload.get("error"))
                or f"Replicate prediction ended with status: {status}."
            )

        output = payload.get("output")
        image = extract_image(output if output is not None else payload)
        if not image:
            raise ProviderError("Replicate returned no image content.")
        return ProviderImage(image_url=image, model_used=call.model)

    async def _poll(self, poll_url: str, api_key: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Poll until a terminal status or MAX_POLL_ATTEMPTS, whichever is first."""
        for attempt in range(MAX_POLL_ATTEMPTS):
            await self._sleep(POLL_INTERVAL_SECONDS)
            response = await self._http.get(
                poll_url, headers=self._headers(api_key), timeout=POLL_TIMEOUT_SECONDS
            )
            if response.status_code >= 400:
                raise error_from_response(response, "Replicate polling failed.")

            payload = _read_json(response)
            if payload.get("status") in TERMINAL_STATUSES:
                logger.info(
                    "replicate_prediction_finished",
                    status=payload.get("status"),
                    polls=attempt + 1,
                )
                return payload

        logger.warning("replicate_poll_exhausted", polls=MAX_POLL_ATTEMPTS)
        return payload
