import os
import ssl
import sys
from unittest.mock import MagicMock

import pytest
import yaml
from kubernetes import client

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from radome.config.provider import KubeSettings
from radome.errors import BackendUnavailable, ClusterQueryError
from radome.modules.kube import KubeModule, TunnelCredentials, call_kube

from fixtures.kube_objects import not_found, server_error

KUBECONFIG = {
    "apiVersion": "v1",
    "kind": "Config",
    "clusters": [
        {"name": "test", "cluster": {"server": "https://k8s.test:6443"}},
        {"name": "other", "cluster": {"server": "https://other.test:6443"}},
    ],
    "contexts": [
        {"name": "test", "context": {"cluster": "test", "user": "agent"}},
        {"name": "other", "context": {"cluster": "other", "user": "agent"}},
    ],
    "current-context": "test",
    "users": [{"name": "agent", "user": {"token": "abc"}}],
}


def settings(**overrides):
    values = dict(config_path=None, config_string=None, context=None, insecure_skip_tls_verify=False)
    values.update(overrides)
    return KubeSettings(**values)


# =============================================================================
# call_kube
# =============================================================================


class TestCallKube:
    """Test separation of absence from failure."""

    def test_result_passed_through(self):
        assert call_kube(lambda name: f"got {name}", "x") == "got x"

    def test_not_found_is_none(self):
        call = MagicMock(side_effect=not_found())
        assert call_kube(call, "x") is None

    def test_not_found_raises_when_disallowed(self):
        call = MagicMock(side_effect=not_found())
        with pytest.raises(ClusterQueryError) as exc_info:
            call_kube(call, allow_missing=False)
        assert exc_info.value.kube_status == 404

    def test_api_error(self):
        call = MagicMock(side_effect=server_error(401, "Unauthorized"))
        with pytest.raises(ClusterQueryError, match="401"):
            call_kube(call)

    def test_transport_error(self):
        call = MagicMock(side_effect=ConnectionRefusedError("refused"))
        with pytest.raises(ClusterQueryError, match="unreachable"):
            call_kube(call)

    def test_kwargs_forwarded(self):
        call = MagicMock(return_value="ok")
        call_kube(call, "ns", label_selector="radome.instance")
        call.assert_called_once_with("ns", label_selector="radome.instance")


# =============================================================================
# Configuration loading
# =============================================================================


class TestKubeModuleLoad:
    """Test configuration source precedence."""

    def test_embedded_kubeconfig(self):
        kube = KubeModule(settings(config_string=yaml.safe_dump(KUBECONFIG)))

        assert kube.load() is True
        assert kube.source == "embedded kubeconfig"
        assert kube.configuration.host == "https://k8s.test:6443"
        assert isinstance(kube.core_api, client.CoreV1Api)
        assert isinstance(kube.apps_api, client.AppsV1Api)

    def test_context_selection(self):
        kube = KubeModule(settings(config_string=yaml.safe_dump(KUBECONFIG), context="other"))

        assert kube.load() is True
        assert kube.configuration.host == "https://other.test:6443"

    def test_path_takes_precedence(self, tmp_path):
        path = tmp_path / "config"
        path.write_text(yaml.safe_dump({**KUBECONFIG, "current-context": "other"}))
        kube = KubeModule(settings(config_path=str(path), config_string=yaml.safe_dump(KUBECONFIG)))

        assert kube.load() is True
        assert kube.source == f"kubeconfig file {path}"
        assert kube.configuration.host == "https://other.test:6443"

    def test_insecure_flag_disables_verification(self):
        kube = KubeModule(
            settings(config_string=yaml.safe_dump(KUBECONFIG), insecure_skip_tls_verify=True)
        )

        kube.load()

        assert kube.configuration.verify_ssl is False
        assert kube.tunnel_credentials().verify is False

    def test_invalid_embedded_config(self):
        kube = KubeModule(settings(config_string="clusters: [unterminated"))

        assert kube.load() is False
        assert kube.load_error
        with pytest.raises(ClusterQueryError):
            kube.core_api

    def test_missing_config_file(self, tmp_path):
        kube = KubeModule(settings(config_path=str(tmp_path / "absent")))

        assert kube.load() is False
        with pytest.raises(BackendUnavailable):
            kube.tunnel_credentials()


# =============================================================================
# Tunnel credentials
# =============================================================================


class TestTunnelCredentials:
    """Test API server credentials derived from the client configuration."""

    def test_bearer_token_from_kubeconfig(self):
        kube = KubeModule(settings(config_string=yaml.safe_dump(KUBECONFIG)))
        kube.load()

        credentials = kube.tunnel_credentials()

        assert credentials.server == "https://k8s.test:6443"
        assert credentials.auth_headers() == {"Authorization": "Bearer abc"}
        assert kube.tunnel_credentials() is credentials

    def test_basic_auth(self):
        configuration = client.Configuration()
        configuration.host = "https://k8s.test"
        configuration.username = "admin"
        configuration.password = "secret"

        headers = TunnelCredentials(server="https://k8s.test", configuration=configuration).auth_headers()

        assert headers["Authorization"].startswith("Basic ")

    def test_static_headers(self):
        credentials = TunnelCredentials(server="https://k8s.test", static_headers={"X-Tenant": "a"})
        assert credentials.auth_headers() == {"X-Tenant": "a"}

    def test_ssl_context_cached_and_unverified(self):
        credentials = TunnelCredentials(server="https://k8s.test", verify=False)

        context = credentials.ssl_context()

        assert context is credentials.ssl_context()
        assert context.verify_mode == ssl.CERT_NONE
        assert context.check_hostname is False
