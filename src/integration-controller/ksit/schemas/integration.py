"""Integration response schemas."""

from __future__ import annotations

from pydantic import BaseModel

from shared.models import IntegrationDeclaration, IntegrationStatus


class IntegrationStatusResponse(BaseModel):
    """Integration declaration summary plus its last written status."""

    namespace: str
    name: str
    type: str
    enabled: bool
    generation: int
    target_clusters: list[str]
    status: IntegrationStatus | None = None

    @classmethod
    def build(
        cls, declaration: IntegrationDeclaration, status: IntegrationStatus | None
    ) -> IntegrationStatusResponse:
        return cls(
            namespace=declaration.namespace,
            name=declaration.name,
            type=declaration.type,
            enabled=declaration.enabled,
            generation=declaration.generation,
            target_clusters=list(declaration.target_clusters),
            status=status,
        )


class IntegrationListResponse(BaseModel):
    items: list[IntegrationStatusResponse]
    total: int


class ReconcileTriggerResponse(BaseModel):
    integration: str
    queued: bool
