"""Pytest configuration and shared fixtures."""

import os
from datetime import datetime, timezone
from typing import Any

import pytest

# Set test environment before importing settings
os.environ["ENV"] = "development"
os.environ["LOG_LEVEL"] = "DEBUG"
os.environ["LOG_FORMAT"] = "text"


@pytest.fixture
def sample_integration_resource() -> dict[str, Any]:
    """Integration custom resource as served by the API server."""
    return {
        "apiVersion": "ksit.io/v1alpha1",
        "kind": "Integration",
        "metadata": {"name": "argocd", "namespace": "platform", "generation": 3},
        "spec": {
            "type": "argocd",
            "enabled": True,
            "targetClusters": ["prod-east", "staging/dev-west"],
            "config": {"namespace": "gitops", "replicas": 2},
        },
        "status": {
            "phase": "Running",
            "reason": "all 2 target clusters ready",
            "clusterStatuses": [
                {
                    "cluster": "platform/prod-east",
                    "ready": True,
                    "reason": "argocd is installed and healthy",
                    "lastProbeTime": "2026-01-01T00:00:00Z",
                }
            ],
            "observedGeneration": 3,
        },
    }


@pytest.fixture
def sample_target_resource() -> dict[str, Any]:
    """IntegrationTarget custom resource as served by the API server."""
    return {
        "apiVersion": "ksit.io/v1alpha1",
        "kind": "IntegrationTarget",
        "metadata": {"name": "prod-east", "namespace": "platform", "generation": 1},
        "spec": {
            "clusterName": "prod-east",
            "namespace": "clusters",
            "labels": {"env": "prod"},
        },
    }


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


# =============================================================================
# Markers
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (no external dependencies)")
    config.addinivalue_line(
        "markers", "integration: Integration tests (require external services)"
    )
