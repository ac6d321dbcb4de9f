"""Observability module for structured logging."""

from .logging import (
    ReconcileContext,
    cluster_var,
    get_logger,
    integration_var,
    log_probe_end,
    log_probe_start,
    reconcile_id_var,
    setup_logging,
)

__all__ = [
    # Setup
    "setup_logging",
    "get_logger",
    # Context
    "ReconcileContext",
    "reconcile_id_var",
    "integration_var",
    "cluster_var",
    # Logging helpers
    "log_probe_start",
    "log_probe_end",
]
