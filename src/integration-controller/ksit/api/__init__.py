"""API routers for the integration controller."""

from . import clusters, health, integrations

__all__ = ["clusters", "health", "integrations"]
