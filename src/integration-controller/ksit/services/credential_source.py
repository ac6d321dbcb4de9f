"""Cluster credentials loaded from Secrets on the control-plane cluster.

A credential Secret carries either a ``kubeconfig`` key, or ``server`` plus
``token`` (with an optional ``ca.crt``). Secret labels prefixed with
``cluster.ksit.io/`` become cluster labels. The cluster identity defaults to
the Secret name in the ``default`` namespace and can be overridden with the
``ksit.io/cluster-name`` / ``ksit.io/cluster-namespace`` annotations.

Secrets are read at startup and on explicit reload only.
"""

from __future__ import annotations

import asyncio
import base64
from dataclasses import dataclass, field
from typing import Any, Protocol

from kubernetes import client
from kubernetes.client.exceptions import ApiException

from shared.config import KubernetesSettings
from shared.models import (
    DEFAULT_CLUSTER_NAMESPACE,
    AuthType,
    ClusterCredentials,
    ClusterIdentity,
)
from shared.observability import get_logger

from ..errors import ControlPlaneError, InvalidCredentialsError, KsitError
from ..utils import strip_label_prefix
from .cluster_registry import ClusterRegistry

logger = get_logger(__name__)

CLUSTER_LABEL_PREFIX = "cluster.ksit.io/"
CLUSTER_NAME_ANNOTATION = "ksit.io/cluster-name"
CLUSTER_NAMESPACE_ANNOTATION = "ksit.io/cluster-namespace"


@dataclass(frozen=True)
class ClusterSecret:
    """Registration input decoded from one credential Secret."""

    identity: ClusterIdentity
    credentials: ClusterCredentials
    labels: dict[str, str] = field(default_factory=dict)


class CredentialSource(Protocol):
    async def load_all(self) -> list[ClusterSecret]: ...

    async def load(self, identity: ClusterIdentity) -> ClusterSecret | None: ...


def parse_secret(
    name: str,
    data: dict[str, str],
    labels: dict[str, str] | None = None,
    annotations: dict[str, str] | None = None,
) -> ClusterSecret:
    """Decode a credential Secret (``data`` values are base64, as served by the API).

    Raises:
        InvalidCredentialsError: required keys are missing or not base64
    """
    annotations = annotations or {}
    identity = ClusterIdentity(
        name=annotations.get(CLUSTER_NAME_ANNOTATION) or name,
        namespace=annotations.get(CLUSTER_NAMESPACE_ANNOTATION) or DEFAULT_CLUSTER_NAMESPACE,
    )

    try:
        decoded = {k: base64.b64decode(v).decode() for k, v in (data or {}).items()}
    except (ValueError, UnicodeDecodeError) as e:
        raise InvalidCredentialsError(identity.key, f"Secret {name!r} has undecodable data") from e

    if decoded.get("kubeconfig"):
        credentials = ClusterCredentials(
            auth_type=AuthType.KUBECONFIG,
            kubeconfig=decoded["kubeconfig"],
            api_server_url=decoded.get("server") or None,
            context=decoded.get("context") or None,
        )
    elif decoded.get("server") and decoded.get("token"):
        credentials = ClusterCredentials(
            auth_type=AuthType.TOKEN,
            api_server_url=decoded["server"],
            token=decoded["token"].strip(),
            ca_cert=decoded.get("ca.crt") or None,
        )
    else:
        raise InvalidCredentialsError(
            identity.key, f"Secret {name!r} needs a kubeconfig key or server and token keys"
        )

    return ClusterSecret(
        identity=identity,
        credentials=credentials,
        labels=strip_label_prefix(labels or {}, CLUSTER_LABEL_PREFIX),
    )


class SecretCredentialSource:
    """Reads labelled credential Secrets through ``CoreV1Api``."""

    def __init__(self, settings: KubernetesSettings, api_client: client.ApiClient):
        self.settings = settings
        self.api = client.CoreV1Api(api_client)

    async def _list_secrets(self) -> list[Any]:
        try:
            result = await asyncio.to_thread(
                self.api.list_namespaced_secret,
                self.settings.credentials_namespace,
                label_selector=self.settings.credentials_label_selector,
                _request_timeout=self.settings.request_timeout_seconds,
            )
        except ApiException as e:
            raise ControlPlaneError(
                f"Cannot list credential secrets: {e.status} {e.reason}"
            ) from e
        except Exception as e:
            raise ControlPlaneError(f"Cannot list credential secrets: {e}") from e
        return list(result.items or [])

    async def load_all(self) -> list[ClusterSecret]:
        secrets = []
        for secret in await self._list_secrets():
            metadata = secret.metadata
            try:
                secrets.append(
                    parse_secret(
                        metadata.name,
                        secret.data or {},
                        labels=metadata.labels,
                        annotations=metadata.annotations,
                    )
                )
            except InvalidCredentialsError as e:
                logger.warning(
                    "Skipping invalid credential secret", secret=metadata.name, error=str(e)
                )
        return secrets

    async def load(self, identity: ClusterIdentity) -> ClusterSecret | None:
        for secret in await self.load_all():
            if secret.identity == identity:
                return secret
        return None


class StaticCredentialSource:
    """Fixed set of credentials, for memory-backed deployments and tests."""

    def __init__(self, secrets: list[ClusterSecret] | None = None):
        self.secrets = list(secrets or [])

    async def load_all(self) -> list[ClusterSecret]:
        return list(self.secrets)

    async def load(self, identity: ClusterIdentity) -> ClusterSecret | None:
        for secret in self.secrets:
            if secret.identity == identity:
                return secret
        return None


async def register_all(
    registry: ClusterRegistry, source: CredentialSource
) -> dict[str, str | None]:
    """Register every cluster the source knows about.

    Returns ``{cluster key: None on success, or the failure reason}``. One
    failing cluster never blocks the others.
    """
    secrets = await source.load_all()

    async def register(secret: ClusterSecret) -> str | None:
        try:
            await registry.register(secret.identity, secret.credentials, secret.labels)
        except KsitError as e:
            logger.warning(
                "Cluster registration from secret failed",
                cluster=secret.identity.key,
                error=str(e),
            )
            return e.reason
        return None

    results = await asyncio.gather(*(register(s) for s in secrets))
    outcome = {s.identity.key: r for s, r in zip(secrets, results)}
    logger.info(
        "Clusters registered from secrets",
        total=len(outcome),
        failed=sum(1 for r in outcome.values() if r is not None),
    )
    return outcome
