"""Configuration management with Pydantic Settings.

Environment variables are loaded from:
1. Environment variables (highest priority)
2. .env file (development)
3. Defaults (lowest priority)
"""

from enum import Enum
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Deployment environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    """Logging level."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Logging format."""

    JSON = "json"
    TEXT = "text"


class StoreBackend(str, Enum):
    """Where Integration declarations and statuses live."""

    KUBERNETES = "kubernetes"  # Custom resources on the control-plane cluster
    MEMORY = "memory"  # Local development and tests


class KubernetesSettings(BaseSettings):
    """Control-plane cluster access and custom resource coordinates."""

    model_config = SettingsConfigDict(env_prefix="KUBE_")

    kubeconfig: str | None = Field(
        default=None,
        description="Path to kubeconfig (in-cluster config is tried first)",
    )
    context: str | None = Field(default=None, description="Kubeconfig context to use")
    api_group: str = Field(default="ksit.io", description="Custom resource API group")
    api_version: str = Field(default="v1alpha1", description="Custom resource API version")
    integration_plural: str = Field(default="integrations")
    target_plural: str = Field(default="integrationtargets")
    watch_namespace: str | None = Field(
        default=None,
        description="Namespace to read declarations from (all namespaces when unset)",
    )
    credentials_namespace: str = Field(
        default="ksit-system",
        description="Namespace holding cluster credential Secrets",
    )
    credentials_label_selector: str = Field(
        default="ksit.io/cluster-credentials=true",
        description="Label selector identifying cluster credential Secrets",
    )
    request_timeout_seconds: float = Field(
        default=10.0, description="Timeout for control-plane API calls"
    )


class ReconcileSettings(BaseSettings):
    """Integration reconciliation loop configuration."""

    model_config = SettingsConfigDict(env_prefix="RECONCILE_")

    interval_seconds: float = Field(
        default=30.0, description="Fixed periodic requeue interval"
    )
    resync_seconds: float = Field(
        default=5.0,
        description="How often declarations are polled for generation changes",
    )
    pass_deadline_seconds: float = Field(
        default=120.0,
        description="Overall deadline for one reconciliation pass",
    )
    probe_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout for one probe attempt against one cluster, slot wait included",
    )
    retry_count: int = Field(
        default=3, description="Probe attempts per cluster before it is marked not ready"
    )
    retry_backoff_seconds: float = Field(
        default=2.0, description="Initial delay between probe attempts"
    )
    retry_max_backoff_seconds: float = Field(
        default=30.0, description="Upper bound for the probe retry delay"
    )
    workers: int = Field(
        default=4, description="Concurrent reconciliation workers per resource kind"
    )
    max_concurrent_probes: int = Field(
        default=16, description="Process-wide bound on in-flight cluster probes"
    )

    @field_validator("workers", "max_concurrent_probes", "retry_count")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Ensure pool sizes and attempt counts are at least 1."""
        return max(1, v)


class ClusterHealthSettings(BaseSettings):
    """Cluster registry health monitoring configuration."""

    model_config = SettingsConfigDict(env_prefix="CLUSTER_")

    health_check_interval_seconds: float = Field(
        default=30.0, description="Interval between fleet health checks"
    )
    health_check_timeout_seconds: float = Field(
        default=10.0, description="Timeout for one cluster health probe"
    )
    stale_max_age_seconds: float = Field(
        default=900.0,
        description="Entries not seen for this long are evicted from the registry",
    )
    credential_ttl_seconds: float = Field(
        default=86400.0,
        description="Age after which registered credentials are reported as stale",
    )
    failures_before_disconnected: int = Field(
        default=3,
        description="Consecutive failed refreshes before a cluster is Disconnected",
    )
    max_concurrent_checks: int = Field(
        default=16, description="Concurrent cluster health probes"
    )


class ObservabilitySettings(BaseSettings):
    """Observability configuration."""

    model_config = SettingsConfigDict(env_prefix="")

    metrics_enabled: bool = Field(default=True, description="Expose Prometheus metrics")


class Settings(BaseSettings):
    """Main application settings.

    All settings can be overridden via environment variables.
    For nested settings, use the appropriate prefix (e.g., RECONCILE_WORKERS).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application metadata
    app_name: str = Field(default="ksit-controller", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        alias="ENV",
        description="Deployment environment",
    )

    # Logging configuration
    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")
    log_format: LogFormat = Field(default=LogFormat.JSON, description="Logging format")

    # Server configuration
    host: str = Field(default="0.0.0.0", description="Server bind host")
    port: int = Field(default=8080, description="Server bind port")

    # Optional subsystems
    store_backend: StoreBackend = Field(
        default=StoreBackend.KUBERNETES, description="Declaration store backend"
    )
    health_monitor_enabled: bool = Field(
        default=True, description="Run the background cluster health monitor"
    )

    # Nested settings
    kubernetes: KubernetesSettings = Field(default_factory=KubernetesSettings)
    reconcile: ReconcileSettings = Field(default_factory=ReconcileSettings)
    cluster_health: ClusterHealthSettings = Field(default_factory=ClusterHealthSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses LRU cache to avoid re-parsing environment variables.
    """
    return Settings()
