"""Provider → adapter dispatch.

The router only ever sees ImageProvider/TextProvider; which concrete adapter
answers is decided here from the Provider enum.
"""

from __future__ import annotations

import asyncio

import httpx

from studio.generation.retry import Sleep
from studio.providers.anthropic import AnthropicImageProvider
from studio.providers.base import (
    ImageProvider,
    Provider,
    ProviderCall,
    ProviderError,
    ProviderText,
    TextProvider,
    parse_provider,
)
from studio.providers.custom_http import CustomHttpProvider
from studio.providers.gemini import GeminiProvider
from studio.providers.openai_image import OpenAIImageProvider
from studio.providers.openai_text import OpenAITextProvider
from studio.providers.replicate import ReplicateProvider
from studio.providers.stability import StabilityProvider


def text_not_configured_message(provider: str) -> str:
    return (
        f"Text assistant replies are not configured for {provider}. "
        "Ask for an image iteration or switch provider to OpenAI for text-mode chat."
    )


class UnconfiguredTextProvider:
    """Answers text requests for providers that have no text adapter."""

    def __init__(self, provider: str) -> None:
        self.provider = provider

    async def respond(self, call: ProviderCall) -> ProviderText:
        return ProviderText(
            response_text=text_not_configured_message(self.provider),
            model_used=call.model,
        )


class ProviderRegistry:
    def __init__(self, http_client: httpx.AsyncClient, *, sleep: Sleep = asyncio.sleep) -> None:
        self._http = http_client
        self._sleep = sleep

    def image_provider(self, provider_name: str) -> ImageProvider:
        provider = parse_provider(provider_name)
        if provider is Provider.OPENAI:
            return OpenAIImageProvider(self._http, sleep=self._sleep)
        if provider is Provider.GEMINI:
            return GeminiProvider(self._http)
        if provider is Provider.REPLICATE:
            return ReplicateProvider(self._http, sleep=self._sleep)
        if provider is Provider.STABILITY:
            return StabilityProvider(self._http)
        if provider is Provider.CUSTOM_HTTP:
            return CustomHttpProvider(self._http)
        if provider is Provider.ANTHROPIC:
            return AnthropicImageProvider()
        raise ProviderError(f"Unsupported provider: {provider_name}")

    def text_provider(self, provider_name: str) -> TextProvider:
        if parse_provider(provider_name) is Provider.OPENAI:
            return OpenAITextProvider(self._http, sleep=self._sleep)
        return UnconfiguredTextProvider(provider_name)
