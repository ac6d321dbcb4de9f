"""Structured logging configuration.

Features:
- JSON and text format support
- Reconcile pass correlation (reconcile id, integration, cluster)
- Service context injection
"""

import logging
import sys
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from shared.config import LogFormat, LogLevel, get_settings

# Context variables for reconcile tracking
reconcile_id_var: ContextVar[str | None] = ContextVar("reconcile_id", default=None)
integration_var: ContextVar[str | None] = ContextVar("integration", default=None)
cluster_var: ContextVar[str | None] = ContextVar("cluster", default=None)


def add_service_context(
    logger: logging.Logger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Add service context to log events."""
    settings = get_settings()
    event_dict["service"] = settings.app_name
    event_dict["environment"] = settings.environment.value
    return event_dict


def add_reconcile_context(
    logger: logging.Logger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Add reconcile context from context variables."""
    if reconcile_id := reconcile_id_var.get():
        event_dict.setdefault("reconcile_id", reconcile_id)
    if integration := integration_var.get():
        event_dict.setdefault("integration", integration)
    if cluster := cluster_var.get():
        event_dict.setdefault("cluster", cluster)
    return event_dict


def add_timestamp(
    logger: logging.Logger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Add ISO 8601 timestamp."""
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def setup_logging(
    log_level: LogLevel | None = None,
    log_format: LogFormat | None = None,
) -> None:
    """Configure structured logging for the application.

    Args:
        log_level: Override log level (defaults to settings.log_level)
        log_format: Override log format (defaults to settings.log_format)
    """
    settings = get_settings()

    level = log_level or settings.log_level
    fmt = log_format or settings.log_format

    # Convert LogLevel enum to logging constant (handle both enum and string)
    level_str = level.value if hasattr(level, "value") else str(level).upper()
    numeric_level = getattr(logging, level_str)

    logging.basicConfig(
        level=numeric_level,
        stream=sys.stdout,
        format="%(message)s",
    )

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_timestamp,
        add_service_context,
        add_reconcile_context,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    fmt_str = fmt.value if hasattr(fmt, "value") else str(fmt).lower()
    if fmt_str == LogFormat.JSON.value:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.plain_traceback,
            ),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Suppress noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("kubernetes").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Args:
        name: Logger name (defaults to module name)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


class ReconcileContext:
    """Context manager for pass-scoped logging context.

    Usage:
        async with ReconcileContext(integration="default/argocd"):
            logger.info("Probing targets")  # Includes reconcile_id and integration
    """

    def __init__(
        self,
        reconcile_id: str | None = None,
        integration: str | None = None,
        cluster: str | None = None,
    ):
        self.reconcile_id = reconcile_id
        self.integration = integration
        self.cluster = cluster
        self._tokens: list[tuple[ContextVar[str | None], Token]] = []

    def __enter__(self) -> "ReconcileContext":
        for var, value in (
            (reconcile_id_var, self.reconcile_id),
            (integration_var, self.integration),
            (cluster_var, self.cluster),
        ):
            if value:
                self._tokens.append((var, var.set(value)))
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()

    async def __aenter__(self) -> "ReconcileContext":
        return self.__enter__()

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.__exit__(exc_type, exc_val, exc_tb)


def log_probe_start(
    logger: structlog.stdlib.BoundLogger,
    cluster: str,
    operation: str,
) -> None:
    """Log start of a remote cluster call."""
    logger.debug(
        "Cluster call started",
        cluster=cluster,
        operation=operation,
    )


def log_probe_end(
    logger: structlog.stdlib.BoundLogger,
    cluster: str,
    operation: str,
    success: bool,
    duration_ms: float,
    error: str | None = None,
) -> None:
    """Log completion of a remote cluster call."""
    log_data = {
        "cluster": cluster,
        "operation": operation,
        "success": success,
        "duration_ms": round(duration_ms, 2),
    }
    if error:
        log_data["error"] = error

    if success:
        logger.debug("Cluster call completed", **log_data)
    else:
        logger.warning("Cluster call failed", **log_data)
