"""
Shared pytest fixtures for Radome tests.

This module provides common fixtures including:
- FakeCluster: In-memory stand-in for the CoreV1Api/AppsV1Api calls Radome makes
- Redis mocks for catalog tests
- Directory and proxy configuration helpers
"""

import os
import sys
from typing import Dict, List
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from kubernetes import client

from radome.config.provider import KubeSettings, ProxyConfig
from radome.modules.directory import InstanceDirectory
from radome.modules.kube import KubeModule

from fixtures.kube_objects import (
    deployment_list,
    not_found,
    pod_list,
    service_list,
)


# =============================================================================
# Kubernetes Fake Infrastructure
# =============================================================================

class FakeCluster:
    """
    In-memory cluster backing MagicMock CoreV1Api/AppsV1Api objects.

    Objects are stored by name; reads of unknown names raise a 404
    ApiException like the real client. Any API method can be made to fail
    by registering an exception in ``failures``.

    Usage:
        def test_something(fake_cluster, directory):
            fake_cluster.add_service(make_service("abc"))
            fake_cluster.failures["list_namespaced_pod"] = server_error()
    """

    def __init__(self):
        self.services: Dict[str, client.V1Service] = {}
        self.deployments: Dict[str, client.V1Deployment] = {}
        self.pods: Dict[str, List[client.V1Pod]] = {}
        self.failures: Dict[str, Exception] = {}

        self.core_api = MagicMock(spec=client.CoreV1Api)
        self.apps_api = MagicMock(spec=client.AppsV1Api)

        self.core_api.read_namespaced_service.side_effect = self._read_service
        self.core_api.list_namespaced_service.side_effect = self._list_services
        self.core_api.create_namespaced_service.side_effect = self._create_service
        self.core_api.delete_namespaced_service.side_effect = self._delete_service
        self.core_api.list_namespaced_pod.side_effect = self._list_pods

        self.apps_api.read_namespaced_deployment.side_effect = self._read_deployment
        self.apps_api.list_namespaced_deployment.side_effect = self._list_deployments
        self.apps_api.create_namespaced_deployment.side_effect = self._create_deployment
        self.apps_api.delete_namespaced_deployment.side_effect = self._delete_deployment

    # Seeding

    def add_service(self, service: client.V1Service) -> "FakeCluster":
        self.services[service.metadata.name] = service
        return self

    def add_deployment(self, deployment: client.V1Deployment) -> "FakeCluster":
        self.deployments[deployment.metadata.name] = deployment
        return self

    def set_pods(self, instance_id: str, pods: List[client.V1Pod]) -> "FakeCluster":
        self.pods[instance_id] = pods
        return self

    # Fake API methods

    def _check(self, method: str) -> None:
        failure = self.failures.get(method)
        if failure is not None:
            raise failure

    def _read_service(self, name, namespace, **kwargs):
        self._check("read_namespaced_service")
        if name not in self.services:
            raise not_found()
        return self.services[name]

    def _list_services(self, namespace, label_selector=None, **kwargs):
        self._check("list_namespaced_service")
        return service_list(list(self.services.values()))

    def _create_service(self, namespace, body, **kwargs):
        self._check("create_namespaced_service")
        self.services[body.metadata.name] = body
        return body

    def _delete_service(self, name, namespace, **kwargs):
        self._check("delete_namespaced_service")
        if self.services.pop(name, None) is None:
            raise not_found()

    def _list_pods(self, namespace, label_selector=None, **kwargs):
        self._check("list_namespaced_pod")
        instance_id = (label_selector or "").split("=", 1)[-1]
        return pod_list(self.pods.get(instance_id, []))

    def _read_deployment(self, name, namespace, **kwargs):
        self._check("read_namespaced_deployment")
        if name not in self.deployments:
            raise not_found()
        return self.deployments[name]

    def _list_deployments(self, namespace, label_selector=None, **kwargs):
        self._check("list_namespaced_deployment")
        return deployment_list(list(self.deployments.values()))

    def _create_deployment(self, namespace, body, **kwargs):
        self._check("create_namespaced_deployment")
        self.deployments[body.metadata.name] = body
        return body

    def _delete_deployment(self, name, namespace, **kwargs):
        self._check("delete_namespaced_deployment")
        if self.deployments.pop(name, None) is None:
            raise not_found()


@pytest.fixture
def fake_cluster():
    """Empty fake cluster."""
    return FakeCluster()


@pytest.fixture
def kube_settings():
    return KubeSettings(
        config_path=None,
        config_string=None,
        context=None,
        insecure_skip_tls_verify=False,
    )


@pytest.fixture
def kube_module(fake_cluster, kube_settings):
    """KubeModule wired to the fake cluster with a tunnel-capable configuration."""
    configuration = client.Configuration()
    configuration.host = "https://api.cluster.test:6443"
    configuration.api_key = {"authorization": "tunnel-token"}
    configuration.api_key_prefix = {"authorization": "Bearer"}
    return KubeModule(
        kube_settings,
        core_api=fake_cluster.core_api,
        apps_api=fake_cluster.apps_api,
        configuration=configuration,
    )


@pytest.fixture
def directory(kube_module):
    """InstanceDirectory over the fake cluster in the 'default' namespace."""
    return InstanceDirectory(kube_module, namespace="default")


# =============================================================================
# Configuration Helpers
# =============================================================================

@pytest.fixture
def proxy_config():
    return ProxyConfig(
        base_domain="radome.local",
        path_prefix="/instances",
        target_mode="direct",
        routing_precedence="subdomain",
    )


def make_proxy_config(
    target_mode: str = "direct",
    routing_precedence: str = "subdomain",
    path_prefix: str = "/instances",
    base_domain: str = "radome.local",
) -> ProxyConfig:
    return ProxyConfig(
        base_domain=base_domain,
        path_prefix=path_prefix,
        target_mode=target_mode,
        routing_precedence=routing_precedence,
    )


# =============================================================================
# Redis Mocking Infrastructure
# =============================================================================

@pytest.fixture
def mock_redis():
    """Create a mock async Redis client."""
    redis = AsyncMock()

    # Hash operations
    redis.hset = AsyncMock()
    redis.hget = AsyncMock(return_value=None)
    redis.hgetall = AsyncMock(return_value={})
    redis.hlen = AsyncMock(return_value=0)
    redis.hdel = AsyncMock()

    redis.ping = AsyncMock(return_value=True)
    return redis


@pytest.fixture
def mock_redis_with_data():
    """
    Redis mock with in-memory hash storage for more realistic tests.

    This allows testing code that reads back what it writes.
    """
    storage: Dict[str, Dict[str, str]] = {}

    redis = AsyncMock()

    async def mock_hset(key, field=None, value=None, mapping=None):
        bucket = storage.setdefault(key, {})
        if mapping:
            bucket.update(mapping)
        if field is not None:
            bucket[field] = value
        return len(mapping or {}) + (1 if field is not None else 0)

    async def mock_hget(key, field):
        return storage.get(key, {}).get(field)

    async def mock_hgetall(key):
        return dict(storage.get(key, {}))

    async def mock_hlen(key):
        return len(storage.get(key, {}))

    redis.hset = mock_hset
    redis.hget = mock_hget
    redis.hgetall = mock_hgetall
    redis.hlen = mock_hlen
    redis._storage = storage  # Expose for test assertions

    return redis


# =============================================================================
# Test Markers Configuration
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: Integration tests requiring infrastructure"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take a long time to run"
    )
