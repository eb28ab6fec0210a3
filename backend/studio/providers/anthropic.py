"""Anthropic has no image generation endpoint; requests routed here fail fast."""

from __future__ import annotations

from studio.providers.base import ProviderCall, ProviderError, ProviderImage

UNSUPPORTED_IMAGE_MESSAGE = (
    "Anthropic/Claude does not provide direct image generation in this endpoint. "
    "Use OpenAI, Replicate, Stability AI, Gemini, or Custom HTTP."
)


class AnthropicImageProvider:
    label = "Anthropic"

    async def generate(self, call: ProviderCall) -> ProviderImage:
        raise ProviderError(UNSUPPORTED_IMAGE_MESSAGE)
