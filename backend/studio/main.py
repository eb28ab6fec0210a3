import uuid
from contextlib import asynccontextmanager

import httpx
import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from studio import __version__
from studio.api.container import build_container
from studio.api.routes import generate, health, providers
from studio.config import settings
from studio.logging import configure_logging

configure_logging()

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """One shared outbound HTTP client per process, closed on shutdown.

    A container already on app.state (set by tests) is left alone.
    """
    if getattr(app.state, "container", None) is not None:
        yield
        return

    async with httpx.AsyncClient(follow_redirects=True) as http_client:
        container = build_container(settings, http_client)
        app.state.container = container
        logger.info(
            "studio_started",
            environment=settings.environment,
            use_database=settings.use_database,
        )
        try:
            yield
        finally:
            if container.engine is not None:
                await container.engine.dispose()
            app.state.container = None


app = FastAPI(
    title="Studio Generation API",
    version=__version__,
    docs_url="/docs",
    redoc_url=None,
    lifespan=lifespan,
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Attach a unique request ID to every request for log correlation.

    Sets the ID in structlog context vars (appears in all log entries for the
    request) and returns it in the X-Request-ID response header so the web
    client can report it when a generation fails.
    """
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Return ErrorResponse JSON for structurally invalid request bodies.

    FastAPI's default 422 returns {"detail": [...]}; the client expects the
    same {error, message, retryable} shape as every other failure.
    """
    messages = []
    for err in exc.errors():
        loc = " → ".join(str(part) for part in err["loc"])
        messages.append(f"{loc}: {err['msg']}")
    response = JSONResponse(
        status_code=422,
        content={
            "error": "validation_error",
            "message": "; ".join(messages),
            "retryable": False,
        },
    )
    response.headers["X-Request-ID"] = getattr(
        request.state, "request_id", request.headers.get("X-Request-ID", "")
    )
    return response


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Consistent ErrorResponse JSON instead of a bare 500."""
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error_type=type(exc).__name__,
        exc_info=exc,
    )
    response = JSONResponse(
        status_code=500,
        content={
            "error": "internal_error",
            "message": "An unexpected error occurred",
            "retryable": True,
        },
    )
    response.headers["X-Request-ID"] = getattr(
        request.state, "request_id", request.headers.get("X-Request-ID", "")
    )
    return response


app.include_router(health.router)
app.include_router(generate.router, prefix="/api/v1")
app.include_router(providers.router, prefix="/api/v1")
