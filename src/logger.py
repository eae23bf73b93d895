# logger.py

import sys
import uuid
import logging
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog
from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


class LogConfig:
    """Centralized logging configuration."""

    APP_NAME = "Club Document Approvals"
    ENVIRONMENT = "development"


def add_request_id(logger: logging.Logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add request ID to log context."""
    request_id = request_id_var.get()
    if request_id:
        event_dict["request_id"] = request_id
    return event_dict


def add_app_context(logger: logging.Logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add application context to logs."""
    event_dict["app"] = LogConfig.APP_NAME
    event_dict["environment"] = LogConfig.ENVIRONMENT
    return event_dict


def setup_logging(
    log_level: str = "INFO",
    use_json: bool = False,
    app_name: str = "Club Document Approvals",
    environment: str = "development",
) -> None:
    """
    Configure structlog for the application

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        use_json: Use JSON format (True) or plain console output (False)
        app_name: Application name for log context
        environment: Environment name (development, staging, production)
    """
    LogConfig.APP_NAME = app_name
    LogConfig.ENVIRONMENT = environment

    logging.root.handlers = []

    shared_processors: List[Any] = [
        structlog.contextvars.merge_contextvars,
        add_request_id,
        add_app_context,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if use_json:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=False,
            exception_formatter=structlog.dev.plain_traceback
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, log_level.upper()))
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
            foreign_pre_chain=shared_processors,
        )
    )

    logging.root.setLevel(getattr(logging, log_level.upper()))
    logging.root.addHandler(handler)

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: Optional[str] = None) -> structlog.BoundLogger:
    """Get a configured logger instance."""
    return structlog.get_logger(name)


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware for request/response logging and request ID injection
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        token = request_id_var.set(request_id)
        logger = get_logger("api.access")
        start_time = datetime.now(timezone.utc)

        try:
            logger.info(
                "request_started",
                method=request.method,
                path=request.url.path,
            )
            response = await call_next(request)

            duration_ms = (datetime.now(timezone.utc) - start_time).total_seconds() * 1000
            logger.info(
                "request_completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration_ms, 2)
            )
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            request_id_var.reset(token)


def setup_app_logging(app: FastAPI, log_level: str = "INFO", use_json: bool = False,
                      environment: str = "development") -> None:
    """Setup logging for a FastAPI application and install the request middleware."""
    setup_logging(
        log_level=log_level,
        use_json=use_json,
        app_name=app.title,
        environment=environment,
    )
    app.add_middleware(LoggingMiddleware)
