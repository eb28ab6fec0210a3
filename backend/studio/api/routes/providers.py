"""Provider connection test for organization admins.

Resolves a key (from the request body, else the stored encrypted key), lists
the provider's models with it, and reports whether the organization is
configured. Discovery failures are a normal 200 response with `ok: false`.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from studio.api.container import Container, get_container
from studio.models.contracts import (
    ErrorResponse,
    ProviderConfig,
    ProviderTestRequest,
    ProviderTestResponse,
)
from studio.providers.base import ProviderError, default_model_for, normalize_provider_name
from studio.providers.discovery import discover_models
from studio.services.membership import bearer_token
from studio.services.secrets import SecretDecryptionError

logger = structlog.get_logger()

router = APIRouter(tags=["providers"])

NOT_CONFIGURED_MESSAGE = "Provider and API key are required. Placeholder mode will be used."


def _error(status: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content=ErrorResponse(error=code, message=message, retryable=False).model_dump(
            exclude_none=True
        ),
    )


def _stored_key(container: Container, stored: ProviderConfig | None) -> str:
    if stored is None or not stored.encrypted_api_key:
        return ""
    try:
        return container.secrets.decrypt(stored.encrypted_api_key).strip()
    except SecretDecryptionError as exc:
        logger.warning("secret_decrypt_failed", error=str(exc))
        return ""


@router.post(
    "/providers/test",
    response_model=ProviderTestResponse,
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
async def test_provider_connection(
    body: ProviderTestRequest,
    request: Request,
    container: Container = Depends(get_container),
):
    token = bearer_token(request.headers.get("Authorization"))
    if token is None:
        return _error(401, "unauthorized", "Missing bearer token.")
    membership = await container.membership.resolve(token)
    if membership is None:
        return _error(401, "unauthorized", "Invalid auth token.")
    if membership.role != "admin":
        return _error(403, "forbidden", "Admin role is required.")

    stored = await container.settings_store.get(membership.organization_id)
    provider = normalize_provider_name(body.provider or (stored.provider if stored else ""))
    stored_model = stored.model if stored else ""
    api_key = body.api_key.strip() or _stored_key(container, stored)

    if not provider or not api_key:
        return ProviderTestResponse(
            ok=False,
            status="Not Configured",
            message=NOT_CONFIGURED_MESSAGE,
            provider=provider,
            model=stored_model,
        ).model_dump(by_alias=True)

    try:
        discovery = await discover_models(container.http_client, provider, api_key)
    except ProviderError as exc:
        logger.info("provider_test_failed", provider=provider, error=exc.message)
        return ProviderTestResponse(
            ok=False,
            status="Not Configured",
            message=exc.message or "Connection test failed.",
            provider=provider,
            model=stored_model or default_model_for(provider),
        ).model_dump(by_alias=True)

    model = (
        body.model.strip()
        or stored_model
        or (discovery.models[0] if discovery.models else "")
        or default_model_for(provider)
    )
    logger.info("provider_test_passed", provider=provider, ok=discovery.ok)
    return ProviderTestResponse(
        ok=discovery.ok,
        status="Configured" if discovery.ok else "Not Configured",
        message=discovery.message
        or f"Connection test passed for {provider}{f' ({model})' if model else ''}.",
        provider=provider,
        model=model,
        models=discovery.models,
    ).model_dump(by_alias=True)
