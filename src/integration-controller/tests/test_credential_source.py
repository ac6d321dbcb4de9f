"""Tests for credential Secret parsing and bulk registration."""

import base64
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from kubernetes.client.exceptions import ApiException

from shared.config import KubernetesSettings
from shared.models import AuthType, ClusterIdentity

from ksit.errors import ControlPlaneError, InvalidCredentialsError
from ksit.services import (
    ClusterSecret,
    SecretCredentialSource,
    StaticCredentialSource,
    parse_secret,
    register_all,
)


def encode(**values: str) -> dict[str, str]:
    return {k.replace("_", "."): base64.b64encode(v.encode()).decode() for k, v in values.items()}


def secret_object(name, data, labels=None, annotations=None):
    return SimpleNamespace(
        metadata=SimpleNamespace(name=name, labels=labels, annotations=annotations),
        data=data,
    )


class TestParseSecret:
    def test_token_secret(self) -> None:
        secret = parse_secret(
            "prod-east",
            encode(server="https://prod:6443", token="abc\n", ca_crt="CA"),
            labels={"cluster.ksit.io/env": "prod", "app": "ignored"},
        )

        assert secret.identity == ClusterIdentity(name="prod-east", namespace="default")
        assert secret.credentials.auth_type == AuthType.TOKEN
        assert secret.credentials.token == "abc"
        assert secret.credentials.ca_cert == "CA"
        assert secret.labels == {"env": "prod"}

    def test_kubeconfig_secret(self) -> None:
        secret = parse_secret("dev", encode(kubeconfig="apiVersion: v1\n", context="dev-admin"))
        assert secret.credentials.auth_type == AuthType.KUBECONFIG
        assert secret.credentials.context == "dev-admin"
        assert secret.credentials.api_server_url is None

    def test_identity_annotations(self) -> None:
        secret = parse_secret(
            "creds-1",
            encode(server="https://x:6443", token="t"),
            annotations={"ksit.io/cluster-name": "edge", "ksit.io/cluster-namespace": "fleet"},
        )
        assert secret.identity.key == "fleet/edge"

    def test_missing_keys(self) -> None:
        with pytest.raises(InvalidCredentialsError) as exc:
            parse_secret("broken", encode(server="https://x:6443"))
        assert exc.value.cluster == "default/broken"

    def test_undecodable_data(self) -> None:
        with pytest.raises(InvalidCredentialsError):
            parse_secret("broken", {"token": "%%% not base64 %%%"})


class TestSecretCredentialSource:
    @pytest.fixture
    def source(self) -> SecretCredentialSource:
        source = SecretCredentialSource(KubernetesSettings(), api_client=MagicMock())
        source.api = MagicMock()
        return source

    async def test_load_all_skips_invalid(self, source) -> None:
        source.api.list_namespaced_secret.return_value = SimpleNamespace(
            items=[
                secret_object("good", encode(server="https://good:6443", token="t")),
                secret_object("bad", encode(server="https://bad:6443")),
            ]
        )

        secrets = await source.load_all()

        assert [s.identity.key for s in secrets] == ["default/good"]
        args, kwargs = source.api.list_namespaced_secret.call_args
        assert args == ("ksit-system",)
        assert kwargs["label_selector"] == "ksit.io/cluster-credentials=true"

    async def test_load_by_identity(self, source) -> None:
        source.api.list_namespaced_secret.return_value = SimpleNamespace(
            items=[secret_object("good", encode(server="https://good:6443", token="t"))]
        )
        assert (await source.load(ClusterIdentity(name="good"))) is not None
        assert (await source.load(ClusterIdentity(name="other"))) is None

    async def test_api_failure_is_control_plane_error(self, source) -> None:
        source.api.list_namespaced_secret.side_effect = ApiException(status=403, reason="Forbidden")
        with pytest.raises(ControlPlaneError):
            await source.load_all()


async def test_register_all_isolates_failures(registry, fleet) -> None:
    fleet.add("a")
    fleet.add("b").down = True
    source = StaticCredentialSource(
        [
            ClusterSecret(ClusterIdentity(name="a"), fleet.credentials("a"), {"env": "prod"}),
            ClusterSecret(ClusterIdentity(name="b"), fleet.credentials("b")),
        ]
    )

    outcome = await register_all(registry, source)

    assert outcome == {"default/a": None, "default/b": "cluster unreachable"}
    assert await registry.keys() == ["default/a"]
    assert (await registry.get("default/a")).labels == {"env": "prod"}
