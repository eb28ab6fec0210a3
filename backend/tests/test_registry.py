"""Tests for provider names, dispatch and the unsupported-provider paths."""

from __future__ import annotations

import httpx
import pytest

from studio.providers.anthropic import UNSUPPORTED_IMAGE_MESSAGE, AnthropicImageProvider
from studio.providers.base import (
    Provider,
    ProviderCall,
    ProviderError,
    compact_error_text,
    default_model_for,
    normalize_provider_name,
    parse_size,
)
from studio.providers.custom_http import CustomHttpProvider
from studio.providers.gemini import GeminiProvider
from studio.providers.openai_image import OpenAIImageProvider
from studio.providers.openai_text import OpenAITextProvider
from studio.providers.registry import ProviderRegistry, UnconfiguredTextProvider
from studio.providers.replicate import ReplicateProvider
from studio.providers.stability import StabilityProvider


class TestProviderNames:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("openai", "OpenAI"),
            (" Claude ", "Anthropic"),
            ("google", "Google Gemini"),
            ("Gemini", "Google Gemini"),
            ("stability", "Stability AI"),
            ("custom", "Custom HTTP"),
            ("Midjourney", "Midjourney"),
            (None, ""),
        ],
    )
    def test_normalize(self, raw, expected: str) -> None:
        assert normalize_provider_name(raw) == expected

    def test_default_models(self) -> None:
        assert default_model_for("OpenAI") == "gpt-image-1"
        assert default_model_for("replicate") == "black-forest-labs/flux-schnell"
        assert default_model_for("unknown") == ""


class TestHelpers:
    def test_parse_size_fallbacks(self) -> None:
        assert parse_size("640x480").aspect_ratio == "4:3"
        assert (parse_size("0x480").width, parse_size("0x480").height) == (1024, 480)
        assert parse_size("garbage").aspect_ratio == "1:1"

    def test_compact_error_text(self) -> None:
        assert compact_error_text("  a \n\t b  ") == "a b"
        assert len(compact_error_text("x" * 1000)) == 320
        assert compact_error_text(None) == ""


class TestRegistry:
    @pytest.mark.parametrize(
        ("name", "adapter"),
        [
            ("OpenAI", OpenAIImageProvider),
            ("gemini", GeminiProvider),
            ("Replicate", ReplicateProvider),
            ("Stability AI", StabilityProvider),
            ("custom http", CustomHttpProvider),
            ("claude", AnthropicImageProvider),
        ],
    )
    async def test_image_dispatch(self, name: str, adapter: type) -> None:
        async with httpx.AsyncClient() as http:
            assert isinstance(ProviderRegistry(http).image_provider(name), adapter)

    async def test_unknown_provider(self) -> None:
        async with httpx.AsyncClient() as http:
            with pytest.raises(ProviderError, match="Unsupported provider: Midjourney"):
                ProviderRegistry(http).image_provider("Midjourney")

    async def test_text_dispatch(self) -> None:
        async with httpx.AsyncClient() as http:
            registry = ProviderRegistry(http)
            assert isinstance(registry.text_provider("openai"), OpenAITextProvider)
            assert isinstance(registry.text_provider("Replicate"), UnconfiguredTextProvider)

    async def test_unconfigured_text_reply_names_provider(self) -> None:
        call = ProviderCall(api_key="k", model="flux", prompt="why?", size="1024x1024")
        result = await UnconfiguredTextProvider(Provider.REPLICATE.value).respond(call)
        assert "not configured for Replicate" in result.response_text
        assert result.model_used == "flux"

    async def test_anthropic_image_fails_fast(self) -> None:
        call = ProviderCall(api_key="k", model="claude", prompt="p", size="1024x1024")
        with pytest.raises(ProviderError) as exc_info:
            await AnthropicImageProvider().generate(call)
        assert exc_info.value.message == UNSUPPORTED_IMAGE_MESSAGE
        assert exc_info.value.retryable is False
