"""Generation request router.

One request flows straight through:

    settings lookup → decrypt → classify → adapter (inside retry) → meter

An organization without a complete provider configuration, or whose stored
key cannot be decrypted, gets the placeholder fallback instead of an error.
Provider failures after retries surface as GenerationFailed, which the HTTP
layer turns into a 502.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace
from typing import Protocol

import httpx
import structlog

from studio.generation.intent import (
    DEFAULT_SIGNALS,
    IntentSignals,
    classify_intent,
    classify_remotely,
)
from studio.generation.placeholder import (
    PLACEHOLDER_MODEL,
    PLACEHOLDER_PROVIDER,
    UNCONFIGURED_TEXT_REPLY,
    build_placeholder_url,
)
from studio.generation.retry import HTTPX_ERRORS, as_provider_error
from studio.models.contracts import (
    ContextMessage,
    GenerationRequest,
    GenerationResult,
    OutputType,
    ProviderConfig,
    RequestedMode,
)
from studio.providers.base import (
    Provider,
    ProviderCall,
    ProviderError,
    ProviderImage,
    ProviderText,
    default_model_for,
    normalize_provider_name,
    parse_provider,
)
from studio.providers.registry import ProviderRegistry
from studio.services.secrets import SecretDecryptionError
from studio.services.settings_store import ProviderSettingsStore
from studio.services.usage import UsageMeter
from studio.utils.tracing import hide_secrets, traceable

logger = structlog.get_logger()

FALLBACK_MODEL = "default"


class Decryptor(Protocol):
    def decrypt(self, payload: str) -> str: ...


class GenerationFailed(Exception):
    """A configured provider could not produce a result."""

    def __init__(self, message: str, *, provider_used: str, model_used: str) -> None:
        super().__init__(message)
        self.message = message
        self.provider_used = provider_used
        self.model_used = model_used
        self.configured = True


def prompt_with_context(prompt: str, context_messages: Sequence[ContextMessage]) -> str:
    if not context_messages:
        return prompt
    lines = "\n".join(
        f"{'Assistant' if m.role == 'assistant' else 'User'}: {m.content}"
        for m in context_messages
    )
    return f"{prompt}\n\nConversation context:\n{lines}"


class GenerationRouter:
    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient,
        settings_store: ProviderSettingsStore,
        usage_meter: UsageMeter,
        registry: ProviderRegistry,
        secrets: Decryptor,
        placeholder_salt: str,
        remote_classification_enabled: bool = True,
        signals: IntentSignals = DEFAULT_SIGNALS,
    ) -> None:
        self._http = http_client
        self._settings = settings_store
        self._usage = usage_meter
        self._registry = registry
        self._secrets = secrets
        self._salt = placeholder_salt
        self._remote_classification = remote_classification_enabled
        self._signals = signals

    async def generate(
        self, request: GenerationRequest, organization_id: str | None
    ) -> GenerationResult:
        output_type = classify_intent(request.prompt, request.mode, self._signals)

        config = await self._settings.get(organization_id) if organization_id else None
        if organization_id and config is not None and config.is_complete:
            api_key = self._decrypt(config, organization_id)
            if api_key:
                return await self._generate_configured(
                    request, organization_id, config, api_key, output_type
                )

        return await self._placeholder(request, organization_id, output_type)

    def _decrypt(self, config: ProviderConfig, organization_id: str) -> str | None:
        try:
            key = self._secrets.decrypt(config.encrypted_api_key).strip()
        except SecretDecryptionError as exc:
            logger.warning(
                "secret_decrypt_failed", organization_id=organization_id, error=str(exc)
            )
            return None
        if not key:
            logger.warning(
                "secret_decrypt_failed", organization_id=organization_id, error="empty key"
            )
            return None
        return key

    async def _generate_configured(
        self,
        request: GenerationRequest,
        organization_id: str,
        config: ProviderConfig,
        api_key: str,
        output_type: OutputType,
    ) -> GenerationResult:
        provider_used = normalize_provider_name(config.provider)
        model_used = config.model or default_model_for(provider_used) or FALLBACK_MODEL

        if (
            self._remote_classification
            and request.mode is RequestedMode.AUTO
            and output_type is OutputType.IMAGE
            and parse_provider(provider_used) is Provider.OPENAI
        ):
            remote = await classify_remotely(
                self._http,
                api_key=api_key,
                model=model_used,
                prompt=request.prompt,
                default_params=config.default_params,
                context_messages=request.context_messages,
            )
            output_type = remote or output_type

        call = ProviderCall(
            api_key=api_key,
            model=model_used,
            prompt=request.prompt,
            size=request.size,
            default_params=config.default_params,
            source_image_url=request.source_image_url,
        )
        logger.info(
            "generation_dispatch",
            organization_id=organization_id,
            provider=provider_used,
            model=model_used,
            output_type=output_type.value,
            has_source_image=request.source_image_url is not None,
        )

        try:
            if output_type is OutputType.TEXT:
                text_prompt = prompt_with_context(request.prompt, request.context_messages)
                text = await self._respond_text(provider_used, replace(call, prompt=text_prompt))
                await self._usage.increment_usage(organization_id, image_generated=False)
                return GenerationResult(
                    output_type=OutputType.TEXT,
                    response_text=text.response_text,
                    provider_used=provider_used,
                    model_used=text.model_used or model_used,
                    configured=True,
                )

            image = await self._generate_image(provider_used, call)
        except (ProviderError, *HTTPX_ERRORS) as raw:
            exc = as_provider_error(raw, provider_used)
            logger.warning(
                "generation_failed",
                organization_id=organization_id,
                provider=provider_used,
                model=model_used,
                retryable=exc.retryable,
                request_id=exc.request_id,
                error=exc.message,
            )
            raise GenerationFailed(
                exc.message, provider_used=provider_used, model_used=model_used
            ) from raw

        await self._usage.increment_usage(organization_id, image_generated=True)
        return GenerationResult(
            output_type=OutputType.IMAGE,
            image_url=image.image_url,
            provider_used=provider_used,
            model_used=image.model_used or model_used,
            configured=True,
        )

    @traceable(name="provider_image", run_type="llm", process_inputs=hide_secrets)
    async def _generate_image(self, provider: str, call: ProviderCall) -> ProviderImage:
        return await self._registry.image_provider(provider).generate(call)

    @traceable(name="provider_text", run_type="llm", process_inputs=hide_secrets)
    async def _respond_text(self, provider: str, call: ProviderCall) -> ProviderText:
        return await self._registry.text_provider(provider).respond(call)

    async def _placeholder(
        self,
        request: GenerationRequest,
        organization_id: str | None,
        output_type: OutputType,
    ) -> GenerationResult:
        image_generated = output_type is OutputType.IMAGE
        if organization_id:
            await self._usage.increment_usage(organization_id, image_generated=image_generated)

        logger.info(
            "generation_placeholder",
            organization_id=organization_id,
            output_type=output_type.value,
        )
        if not image_generated:
            return GenerationResult(
                output_type=OutputType.TEXT,
                response_text=UNCONFIGURED_TEXT_REPLY,
                provider_used=PLACEHOLDER_PROVIDER,
                model_used=PLACEHOLDER_MODEL,
                configured=False,
            )
        return GenerationResult(
            output_type=OutputType.IMAGE,
            image_url=build_placeholder_url(
                request.prompt,
                request.size,
                PLACEHOLDER_PROVIDER,
                PLACEHOLDER_MODEL,
                salt=self._salt,
            ),
            provider_used=PLACEHOLDER_PROVIDER,
            model_used=PLACEHOLDER_MODEL,
            configured=False,
        )
