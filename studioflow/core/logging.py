"""Logging and observability configuration using Pydantic Logfire.

All modules use Python's standard logging library (logging.getLogger(__name__)),
and Logfire captures and enriches these logs once configured.

Standard usage:
    import logging
    logger = logging.getLogger(__name__)
    logger.info("Message", extra={"key": "value"})

Structured logging utilities:
    log_with_context(logger, "info", "Message", task_id="123", organization_id="org")
"""

import logging

import logfire
from fastapi import FastAPI

from studioflow.core.config import settings


def configure_logfire() -> None:
    """Configure Pydantic Logfire with token from environment.

    Raises ValueError in production when no token is configured.
    """
    token = settings.logfire_token
    if settings.is_production:
        token = settings.require_credential("logfire_token", "Logfire")
    logfire.configure(
        token=token,
        service_name="studioflow",
        service_version="0.1.0",
        environment=settings.environment,
        send_to_logfire="if-token-present",
    )

    logger = logging.getLogger(__name__)
    logger.info("Logfire configured successfully")


def instrument_fastapi(app: FastAPI) -> None:
    """Add Logfire instrumentation to FastAPI application."""
    logfire.instrument_fastapi(app)
    logger = logging.getLogger(__name__)
    logger.info("FastAPI instrumentation configured")


def span(name: str) -> logfire.LogfireSpan:
    """Create a custom span for service layer functions.

    Usage:
        with span("task_service.create_task"):
            ...
    """
    return logfire.span(name)


def log_with_context(
    logger: logging.Logger,
    level: str,
    message: str,
    **context: object,
) -> None:
    """Log a message with structured context fields.

    Args:
        logger: Logger instance to use
        level: Log level ("debug", "info", "warning", "error", "critical")
        message: Log message
        **context: Additional context fields (task_id, user_id, organization_id, etc.)
    """
    log_method = getattr(logger, level.lower())
    log_method(message, extra=context)


def log_with_actor_context(
    logger: logging.Logger,
    level: str,
    message: str,
    *,
    organization_id: str | None = None,
    user_id: str | None = None,
    **extra: object,
) -> None:
    """Log a message tagged with the acting user and tenant.

    Usage:
        log_with_actor_context(logger, "info", "Status set", organization_id="o1", user_id="u1", task_id="t1")
    """
    context: dict[str, object] = dict(extra)
    if organization_id:
        context["organization_id"] = organization_id
    if user_id:
        context["user_id"] = user_id
    log_with_context(logger, level, message, **context)
