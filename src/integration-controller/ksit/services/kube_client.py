"""Kubernetes REST access to member clusters.

``ClusterEndpoint`` is the immutable connection handle the registry hands
out; ``KubeClient`` is a short-lived async HTTP session built from it.
"""

from __future__ import annotations

import base64
import os
import ssl
import tempfile
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import httpx
import yaml
from kubernetes import client, config
from kubernetes.config.config_exception import ConfigException

from shared.models import AuthType, ClusterCredentials
from shared.observability import get_logger, log_probe_end, log_probe_start

from ..errors import ClusterConnectivityError, InvalidCredentialsError

logger = get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


@dataclass(frozen=True)
class ClusterEndpoint:
    """Everything needed to open a session against one cluster API server."""

    cluster: str
    url: str
    headers: tuple[tuple[str, str], ...] = ()
    verify: bool = True
    ca_data: str | None = field(default=None, repr=False)
    client_cert_data: str | None = field(default=None, repr=False)
    client_key_data: str | None = field(default=None, repr=False)

    @classmethod
    def from_credentials(cls, cluster: str, credentials: ClusterCredentials) -> ClusterEndpoint:
        """Build a handle from registration credentials.

        Raises:
            InvalidCredentialsError: credentials are malformed or incomplete
        """
        auth_type = AuthType(credentials.auth_type)
        if auth_type == AuthType.KUBECONFIG:
            return cls._from_kubeconfig(cluster, credentials)

        url = (credentials.api_server_url or "").rstrip("/")
        if not url.startswith(("https://", "http://")):
            raise InvalidCredentialsError(cluster, "api_server_url must be an http(s) URL")

        headers: dict[str, str] = {}
        cert = key = None
        if auth_type == AuthType.TOKEN:
            if not credentials.token:
                raise InvalidCredentialsError(cluster, "token auth requires a token")
            headers["Authorization"] = f"Bearer {credentials.token}"
        elif auth_type == AuthType.BASIC:
            if not credentials.username or not credentials.password:
                raise InvalidCredentialsError(cluster, "basic auth requires username and password")
            encoded = base64.b64encode(
                f"{credentials.username}:{credentials.password}".encode()
            ).decode()
            headers["Authorization"] = f"Basic {encoded}"
        elif auth_type == AuthType.CERTIFICATE:
            if not credentials.client_cert or not credentials.client_key:
                raise InvalidCredentialsError(
                    cluster, "certificate auth requires client_cert and client_key"
                )
            cert, key = credentials.client_cert, credentials.client_key

        return cls(
            cluster=cluster,
            url=url,
            headers=tuple(sorted(headers.items())),
            verify=not credentials.skip_tls_verify,
            ca_data=credentials.ca_cert,
            client_cert_data=cert,
            client_key_data=key,
        )

    @classmethod
    def _from_kubeconfig(cls, cluster: str, credentials: ClusterCredentials) -> ClusterEndpoint:
        if not credentials.kubeconfig:
            raise InvalidCredentialsError(cluster, "kubeconfig auth requires kubeconfig content")
        try:
            doc = yaml.safe_load(credentials.kubeconfig)
        except yaml.YAMLError as e:
            raise InvalidCredentialsError(cluster, f"kubeconfig is not valid YAML: {e}") from e
        if not isinstance(doc, dict):
            raise InvalidCredentialsError(cluster, "kubeconfig is not a mapping")

        # The kubernetes loader resolves contexts, exec plugins, auth
        # providers, token files and file or inline TLS material
        loaded = client.Configuration()
        try:
            config.load_kube_config_from_dict(
                doc,
                context=credentials.context,
                client_configuration=loaded,
                persist_config=False,
            )
        except (ConfigException, KeyError, TypeError, ValueError) as e:
            raise InvalidCredentialsError(cluster, f"kubeconfig rejected: {e}") from e

        url = (credentials.api_server_url or loaded.host or "").rstrip("/")
        if not url.startswith(("https://", "http://")):
            raise InvalidCredentialsError(cluster, "kubeconfig cluster has no server URL")

        headers: dict[str, str] = {}
        authorization = (loaded.api_key or {}).get("authorization")
        if authorization:
            headers["Authorization"] = authorization

        cert = _read_pem(cluster, loaded.cert_file)
        key = _read_pem(cluster, loaded.key_file)
        if not headers and not (cert and key):
            raise InvalidCredentialsError(cluster, "kubeconfig user has no usable credentials")

        return cls(
            cluster=cluster,
            url=url,
            headers=tuple(sorted(headers.items())),
            verify=not credentials.skip_tls_verify and bool(loaded.verify_ssl),
            ca_data=credentials.ca_cert or _read_pem(cluster, loaded.ssl_ca_cert),
            client_cert_data=cert,
            client_key_data=key,
        )

    def ssl_verify(self) -> ssl.SSLContext | bool:
        """Value for httpx ``verify``: an SSL context when custom TLS material is set."""
        if not self.verify and not self.client_cert_data:
            return False
        if not self.ca_data and not self.client_cert_data:
            return True

        ctx = ssl.create_default_context(cadata=self.ca_data) if self.ca_data else (
            ssl.create_default_context()
        )
        if not self.verify:
            ctx.check_hostname = False
            ctx.verify_mode = ssl.CERT_NONE
        if self.client_cert_data and self.client_key_data:
            _load_client_cert(ctx, self.client_cert_data, self.client_key_data)
        return ctx


def _read_pem(cluster: str, path: str | None) -> str | None:
    if not path:
        return None
    try:
        with open(path) as f:
            return f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise InvalidCredentialsError(cluster, f"kubeconfig TLS file {path!r} unreadable") from e


def _load_client_cert(ctx: ssl.SSLContext, cert: str, key: str) -> None:
    # load_cert_chain only accepts paths
    with tempfile.TemporaryDirectory(prefix="ksit-") as tmp:
        cert_path = os.path.join(tmp, "client.crt")
        key_path = os.path.join(tmp, "client.key")
        with open(cert_path, "w") as f:
            f.write(cert)
        with open(key_path, "w") as f:
            f.write(key)
        ctx.load_cert_chain(cert_path, key_path)


class KubeClient:
    """Async Kubernetes REST session against one member cluster.

    Not-found lookups return ``None`` / ``[]``. Transport failures, timeouts
    and rejected credentials raise ``ClusterConnectivityError``.

    Usage:
        async with KubeClient(endpoint) as kube:
            version = await kube.get_version()
    """

    def __init__(
        self,
        endpoint: ClusterEndpoint,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.endpoint = endpoint
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> KubeClient:
        try:
            verify = self.endpoint.ssl_verify()
        except (ssl.SSLError, OSError) as e:
            raise ClusterConnectivityError(
                self.endpoint.cluster, f"TLS setup failed: {e}", reason="cluster TLS setup failed"
            ) from e
        self._client = httpx.AsyncClient(
            base_url=self.endpoint.url,
            headers=dict(self.endpoint.headers),
            verify=verify,
            timeout=self.timeout,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _get(self, path: str, params: dict[str, str] | None = None) -> dict[str, Any] | None:
        if self._client is None:
            raise RuntimeError("KubeClient used outside of its async context")

        cluster = self.endpoint.cluster
        log_probe_start(logger, cluster, path)
        start = time.perf_counter()
        try:
            response = await self._client.get(path, params=params)
        except httpx.TimeoutException as e:
            log_probe_end(logger, cluster, path, False, _elapsed_ms(start), "timeout")
            raise ClusterConnectivityError(
                cluster, f"Timed out calling {path}", reason="cluster API timed out"
            ) from e
        except httpx.TransportError as e:
            log_probe_end(logger, cluster, path, False, _elapsed_ms(start), str(e))
            raise ClusterConnectivityError(cluster, f"Cannot connect to cluster: {e!s}") from e

        duration_ms = _elapsed_ms(start)
        if response.status_code == 404:
            log_probe_end(logger, cluster, path, True, duration_ms)
            return None
        if response.status_code in (401, 403):
            log_probe_end(logger, cluster, path, False, duration_ms, "unauthorized")
            raise ClusterConnectivityError(
                cluster,
                f"Cluster rejected credentials ({response.status_code})",
                reason="cluster rejected credentials",
            )
        if response.status_code >= 400:
            log_probe_end(logger, cluster, path, False, duration_ms, str(response.status_code))
            raise ClusterConnectivityError(
                cluster,
                f"Unexpected status code {response.status_code} from {path}",
                reason=f"cluster API returned {response.status_code}",
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ClusterConnectivityError(
                cluster, f"Invalid JSON from {path}", reason="cluster API returned invalid JSON"
            ) from e
        log_probe_end(logger, cluster, path, True, duration_ms)
        return data

    async def get_version(self) -> str:
        data = await self._get("/version")
        if not data or not data.get("gitVersion"):
            raise ClusterConnectivityError(
                self.endpoint.cluster,
                "Version endpoint returned no gitVersion",
                reason="cluster version unavailable",
            )
        return data["gitVersion"]

    async def count_nodes(self) -> int:
        data = await self._get("/api/v1/nodes")
        return len((data or {}).get("items") or [])

    async def list_api_groups(self) -> set[str]:
        data = await self._get("/apis")
        return {g["name"] for g in (data or {}).get("groups") or [] if g.get("name")}

    async def get_deployment(self, namespace: str, name: str) -> dict[str, Any] | None:
        return await self._get(f"/apis/apps/v1/namespaces/{namespace}/deployments/{name}")

    async def list_deployments(self, namespace: str, label_selector: str) -> list[dict[str, Any]]:
        data = await self._get(
            f"/apis/apps/v1/namespaces/{namespace}/deployments",
            params={"labelSelector": label_selector},
        )
        return list((data or {}).get("items") or [])

    async def get_statefulset(self, namespace: str, name: str) -> dict[str, Any] | None:
        return await self._get(f"/apis/apps/v1/namespaces/{namespace}/statefulsets/{name}")

    async def list_statefulsets(self, namespace: str, label_selector: str) -> list[dict[str, Any]]:
        data = await self._get(
            f"/apis/apps/v1/namespaces/{namespace}/statefulsets",
            params={"labelSelector": label_selector},
        )
        return list((data or {}).get("items") or [])


ClientFactory = Callable[[ClusterEndpoint], KubeClient]


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000
