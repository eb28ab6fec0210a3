"""Generation endpoint: prompt in, image URL or text answer out."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from studio.api.container import Container, get_container
from studio.generation.router import GenerationFailed
from studio.models.contracts import (
    ErrorResponse,
    GenerateImageBody,
    GenerationFailureResponse,
    GenerationRequest,
    InvalidGenerationRequest,
)
from studio.services.membership import bearer_token

logger = structlog.get_logger()

router = APIRouter(tags=["generation"])


def _error(status: int, code: str, message: str, *, retryable: bool = False) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content=ErrorResponse(error=code, message=message, retryable=retryable).model_dump(
            exclude_none=True
        ),
    )


@router.post(
    "/generate-image",
    responses={
        400: {"model": ErrorResponse},
        502: {"model": GenerationFailureResponse},
    },
)
async def generate_image(
    body: GenerateImageBody,
    request: Request,
    container: Container = Depends(get_container),
):
    """Generate an image (or a text answer) for the caller's organization.

    Anonymous callers and organizations without a provider get placeholder
    output with `configured: false`.
    """
    try:
        generation = GenerationRequest.from_body(body)
    except InvalidGenerationRequest as exc:
        return _error(400, "validation_error", str(exc))

    membership = await container.membership.resolve(
        bearer_token(request.headers.get("Authorization"))
    )
    organization_id = membership.organization_id if membership else None

    try:
        result = await container.router.generate(generation, organization_id)
    except GenerationFailed as exc:
        failure = GenerationFailureResponse(
            error=exc.message or "Configured provider failed to generate an image.",
            configured=exc.configured,
            provider_used=exc.provider_used,
            model_used=exc.model_used,
        )
        return JSONResponse(status_code=502, content=failure.model_dump(by_alias=True))

    logger.info(
        "generation_completed",
        organization_id=organization_id,
        output_type=result.output_type.value,
        provider=result.provider_used,
        configured=result.configured,
    )
    return result.to_response()
