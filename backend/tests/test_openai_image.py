"""Tests for the OpenAI Images adapter (generation, edits, error mapping)."""

from __future__ import annotations

import json

import httpx
import pytest
import respx

from studio.providers.base import ProviderCall, ProviderError
from studio.providers.openai_image import (
    EDITS_URL,
    GENERATIONS_URL,
    OpenAIImageProvider,
    build_edit_prompt,
    resolve_image_model,
    wants_full_redesign,
)


def _call(**overrides) -> ProviderCall:
    fields = {
        "api_key": "sk-test",
        "model": "gpt-image-1",
        "prompt": "a ceramic mug with a bamboo lid",
        "size": "1024x1024",
        "default_params": {},
        "source_image_url": None,
    }
    fields.update(overrides)
    return ProviderCall(**fields)


class TestHelpers:
    @pytest.mark.parametrize(
        ("model", "expected"),
        [
            ("", "gpt-image-1"),
            ("gpt-4.1-mini", "gpt-image-1"),
            ("dall-e-3", "dall-e-3"),
            ("gpt-image-1", "gpt-image-1"),
        ],
    )
    def test_resolve_image_model(self, model: str, expected: str) -> None:
        assert resolve_image_model(model) == expected

    def test_redesign_signals(self) -> None:
        assert wants_full_redesign("Start over with a completely new shape")
        assert not wants_full_redesign("change the color to blue")

    def test_edit_prompt_keeps_request_last(self) -> None:
        prompt = build_edit_prompt("change the color to blue")
        assert prompt.startswith("Use the provided image as the base.")
        assert prompt.endswith("Requested change: change the color to blue")


class TestGenerate:
    @respx.mock
    async def test_plain_generation_json_body(self, no_sleep) -> None:
        route = respx.post(GENERATIONS_URL).mock(
            return_value=httpx.Response(200, json={"data": [{"b64_json": "QUJD"}]})
        )
        async with httpx.AsyncClient() as http:
            result = await OpenAIImageProvider(http, sleep=no_sleep).generate(
                _call(default_params={"openai": {"quality": "high", "ignored": 1}})
            )

        assert result.image_url == "data:image/png;base64,QUJD"
        assert result.model_used == "gpt-image-1"
        sent = route.calls.last.request
        assert sent.headers["Authorization"] == "Bearer sk-test"
        assert json.loads(sent.content) == {
            "model": "gpt-image-1",
            "prompt": "a ceramic mug with a bamboo lid",
            "size": "1024x1024",
            "quality": "high",
        }

    @respx.mock(assert_all_called=False)
    async def test_source_image_uses_edit_with_preservation_prefix(
        self, respx_mock, no_sleep, png_data_url
    ) -> None:
        edit_route = respx_mock.post(EDITS_URL).mock(
            return_value=httpx.Response(200, json={"data": [{"url": "https://img.example.com/e.png"}]})
        )
        generation_route = respx_mock.post(GENERATIONS_URL).mock(
            return_value=httpx.Response(200, json={"data": [{"b64_json": "QUJD"}]})
        )
        async with httpx.AsyncClient() as http:
            result = await OpenAIImageProvider(http, sleep=no_sleep).generate(
                _call(prompt="change the color to blue", source_image_url=png_data_url)
            )

        assert result.image_url == "https://img.example.com/e.png"
        assert edit_route.call_count == 1
        assert generation_route.call_count == 0

        sent = edit_route.calls.last.request
        sent.read()
        assert sent.headers["Content-Type"].startswith("multipart/form-data")
        assert b"Use the provided image as the base." in sent.content
        assert b"Requested change: change the color to blue" in sent.content
        assert b'name="image"; filename="source.png"' in sent.content

    @respx.mock
    async def test_redesign_request_sends_raw_prompt(self, no_sleep, png_data_url) -> None:
        route = respx.post(EDITS_URL).mock(
            return_value=httpx.Response(200, json={"data": [{"b64_json": "QUJD"}]})
        )
        async with httpx.AsyncClient() as http:
            await OpenAIImageProvider(http, sleep=no_sleep).generate(
                _call(prompt="redesign it from scratch", source_image_url=png_data_url)
            )
        sent = route.calls.last.request
        sent.read()
        assert b"Use the provided image as the base." not in sent.content
        assert b"redesign it from scratch" in sent.content

    @respx.mock
    async def test_remote_source_image_fetched(self, no_sleep, png_bytes) -> None:
        respx.get("https://cdn.example.com/ref.png").mock(
            return_value=httpx.Response(200, content=png_bytes, headers={"Content-Type": "image/png"})
        )
        route = respx.post(EDITS_URL).mock(
            return_value=httpx.Response(200, json={"data": [{"b64_json": "QUJD"}]})
        )
        async with httpx.AsyncClient() as http:
            await OpenAIImageProvider(http, sleep=no_sleep).generate(
                _call(source_image_url="https://cdn.example.com/ref.png")
            )
        assert route.call_count == 1

    @respx.mock(assert_all_called=False)
    async def test_corrupt_source_image_fails_without_calling_openai(self, respx_mock, no_sleep) -> None:
        route = respx_mock.post(EDITS_URL).mock(return_value=httpx.Response(200, json={}))
        async with httpx.AsyncClient() as http:
            with pytest.raises(ProviderError, match="corrupt"):
                await OpenAIImageProvider(http, sleep=no_sleep).generate(
                    _call(source_image_url="data:image/png;base64,bm90IGFuIGltYWdl")
                )
        assert route.call_count == 0


class TestErrors:
    @respx.mock
    async def test_500_retried_exactly_once(self, no_sleep) -> None:
        route = respx.post(GENERATIONS_URL).mock(
            return_value=httpx.Response(
                500,
                json={"error": {"message": "The server had an error", "type": "server_error"}},
                headers={"x-request-id": "req_123"},
            )
        )
        async with httpx.AsyncClient() as http:
            with pytest.raises(ProviderError) as exc_info:
                await OpenAIImageProvider(http, sleep=no_sleep).generate(_call())

        assert route.call_count == 2
        error = exc_info.value
        assert error.retryable is True
        assert error.request_id == "req_123"
        assert error.message == (
            "OpenAI temporary server error. The server had an error Request ID: req_123."
        )

    @respx.mock
    async def test_400_not_retried(self, no_sleep) -> None:
        route = respx.post(GENERATIONS_URL).mock(
            return_value=httpx.Response(
                400,
                json={"error": {"message": "Invalid size", "type": "invalid_request_error"}},
            )
        )
        async with httpx.AsyncClient() as http:
            with pytest.raises(ProviderError) as exc_info:
                await OpenAIImageProvider(http, sleep=no_sleep).generate(_call())

        assert route.call_count == 1
        assert exc_info.value.retryable is False
        assert exc_info.value.message == "OpenAI request failed. Invalid size"

    @respx.mock
    async def test_500_then_success(self, no_sleep) -> None:
        route = respx.post(GENERATIONS_URL).mock(
            side_effect=[
                httpx.Response(503, text="upstream unavailable"),
                httpx.Response(200, json={"data": [{"url": "https://img.example.com/ok.png"}]}),
            ]
        )
        async with httpx.AsyncClient() as http:
            result = await OpenAIImageProvider(http, sleep=no_sleep).generate(_call())
        assert route.call_count == 2
        assert result.image_url == "https://img.example.com/ok.png"

    @respx.mock
    async def test_server_error_type_on_4xx_is_retryable(self, no_sleep) -> None:
        route = respx.post(GENERATIONS_URL).mock(
            return_value=httpx.Response(
                400, json={"error": {"message": "try again", "type": "server_error"}}
            )
        )
        async with httpx.AsyncClient() as http:
            with pytest.raises(ProviderError):
                await OpenAIImageProvider(http, sleep=no_sleep).generate(_call())
        assert route.call_count == 2

    @respx.mock
    async def test_missing_image_is_not_retried(self, no_sleep) -> None:
        route = respx.post(GENERATIONS_URL).mock(
            return_value=httpx.Response(200, json={"data": [{"revised_prompt": "x"}]})
        )
        async with httpx.AsyncClient() as http:
            with pytest.raises(ProviderError, match="no image content"):
                await OpenAIImageProvider(http, sleep=no_sleep).generate(_call())
        assert route.call_count == 1

    @respx.mock
    async def test_long_error_bodies_are_compacted(self, no_sleep) -> None:
        respx.post(GENERATIONS_URL).mock(
            return_value=httpx.Response(422, text="bad   \n\n input " + "x" * 1000)
        )
        async with httpx.AsyncClient() as http:
            with pytest.raises(ProviderError) as exc_info:
                await OpenAIImageProvider(http, sleep=no_sleep).generate(_call())
        message = exc_info.value.message
        assert "\n" not in message
        assert "bad input" in message
        assert len(message) <= len("OpenAI request failed. ") + 320
