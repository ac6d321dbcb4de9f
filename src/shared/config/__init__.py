"""Configuration management module.

This module provides:
- Environment-based configuration with validation
- Grouped settings for the control-plane, reconcile loop and health monitor
- Cached settings access via get_settings()
"""

from .settings import (
    ClusterHealthSettings,
    Environment,
    KubernetesSettings,
    LogFormat,
    LogLevel,
    ObservabilitySettings,
    ReconcileSettings,
    Settings,
    StoreBackend,
    get_settings,
)

__all__ = [
    # Main settings
    "Settings",
    "get_settings",
    # Enums
    "Environment",
    "LogLevel",
    "LogFormat",
    "StoreBackend",
    # Component settings
    "KubernetesSettings",
    "ReconcileSettings",
    "ClusterHealthSettings",
    "ObservabilitySettings",
]
