"""studioflow - task lifecycle engine for creative agencies."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from studioflow.core.db_client import close_connection, init_db
from studioflow.core.errors import (
    AccessDeniedError,
    DependencyFailureError,
    InvalidTransitionError,
    NotFoundError,
    ValidationFailedError,
    classify_error_with_response,
)
from studioflow.core.logging import configure_logfire, instrument_fastapi
from studioflow.core.redis_client import redis_client
from studioflow.interface.notification_router import router as notification_router
from studioflow.interface.task_router import router as task_router
from studioflow.services import notification_service


logger = logging.getLogger(__name__)


async def check_redis_connectivity() -> None:
    """Verify Redis connectivity (optional service).

    Only checks if Redis is configured. Logs a warning if unavailable; real-time
    push then degrades to persisted notifications only.
    """
    if not redis_client.is_available:
        logger.info("startup_validation", extra={"service": "redis", "status": "disabled"})
        return

    if await redis_client.ping():
        logger.info("startup_validation", extra={"service": "redis", "status": "ok"})
    else:
        logger.warning("startup_validation", extra={"service": "redis", "status": "unavailable"})


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager."""
    # Configure logging first so startup logs are captured
    configure_logfire()

    await init_db()
    logger.info("Database initialized")

    await check_redis_connectivity()
    yield

    await notification_service.drain()
    await redis_client.close()
    await close_connection()


app = FastAPI(
    title="studioflow",
    description="Task lifecycle engine for creative agencies",
    version="0.1.0",
    lifespan=lifespan,
)

# Instrument FastAPI with Logfire
instrument_fastapi(app)


async def handle_domain_error(_request: Request, exc: Exception) -> JSONResponse:
    """Render a domain exception as the standard error envelope."""
    response = classify_error_with_response(exc)
    if response.status_code >= 500:  # noqa: PLR2004
        logger.error("request_failed", extra={"code": response.code, "error": str(exc)})
    else:
        logger.info("request_rejected", extra={"code": response.code, "error": str(exc)})

    content = {
        "success": False,
        "error": response.message,
        "code": response.code,
        "suggestion": response.suggestion,
    }
    if response.details:
        content["details"] = response.details
    return JSONResponse(content=content, status_code=response.status_code)


async def handle_request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed request bodies and parameters in the validation envelope."""
    violations = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        violations.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return await handle_domain_error(request, ValidationFailedError(violations))


async def handle_http_error(_request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(content={"success": False, "error": exc.detail}, status_code=exc.status_code)


for exception_class in (
    ValidationFailedError,
    InvalidTransitionError,
    NotFoundError,
    AccessDeniedError,
    DependencyFailureError,
):
    app.add_exception_handler(exception_class, handle_domain_error)
app.add_exception_handler(RequestValidationError, handle_request_validation_error)  # type: ignore[arg-type]
app.add_exception_handler(HTTPException, handle_http_error)  # type: ignore[arg-type]

# Register routers
app.include_router(task_router)
app.include_router(notification_router)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(content={"status": "healthy", "redis": redis_client.get_health_status()}, status_code=200)
