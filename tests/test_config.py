import logging
import os
import sys

import pytest

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from radome.config.provider import EnvConfigProvider, normalize_path_prefix
from radome.logging_config import HealthCheckFilter, get_logging_config
from radome.modules.config import ConfigModule


class TestProxyConfig:
    """Test proxy routing settings from the environment."""

    def test_defaults(self, monkeypatch):
        for name in (
            "RADOME_BASE_DOMAIN",
            "RADOME_PATH_PREFIX",
            "RADOME_PROXY_TARGET",
            "RADOME_ROUTING_PRECEDENCE",
        ):
            monkeypatch.delenv(name, raising=False)

        config = EnvConfigProvider().get_proxy_config()

        assert config.base_domain == "radome.local"
        assert config.path_prefix == "/instances"
        assert config.target_mode == "direct"
        assert config.routing_precedence == "subdomain"
        assert config.is_tunnel is False

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("RADOME_BASE_DOMAIN", "Agents.Example.com")
        monkeypatch.setenv("RADOME_PATH_PREFIX", "a/")
        monkeypatch.setenv("RADOME_PROXY_TARGET", "TUNNEL")
        monkeypatch.setenv("RADOME_ROUTING_PRECEDENCE", "path")

        config = EnvConfigProvider().get_proxy_config()

        assert config.base_domain == "agents.example.com"
        assert config.path_prefix == "/a"
        assert config.is_tunnel is True
        assert config.routing_precedence == "path"

    def test_invalid_target_mode(self, monkeypatch):
        monkeypatch.setenv("RADOME_PROXY_TARGET", "sidecar")

        with pytest.raises(ValueError, match="RADOME_PROXY_TARGET"):
            EnvConfigProvider().get_proxy_config()

    def test_invalid_precedence(self, monkeypatch):
        monkeypatch.delenv("RADOME_PROXY_TARGET", raising=False)
        monkeypatch.setenv("RADOME_ROUTING_PRECEDENCE", "header")

        with pytest.raises(ValueError, match="RADOME_ROUTING_PRECEDENCE"):
            EnvConfigProvider().get_proxy_config()

    @pytest.mark.parametrize(
        "prefix,expected",
        [(None, ""), ("", ""), ("/", ""), ("/instances", "/instances"), ("instances/", "/instances")],
    )
    def test_normalize_path_prefix(self, prefix, expected):
        assert normalize_path_prefix(prefix) == expected


def test_kube_settings(monkeypatch):
    monkeypatch.setenv("RADOME_KUBE_CONFIG_PATH", "/etc/kube/config")
    monkeypatch.setenv("RADOME_KUBE_CONTEXT", "staging")
    monkeypatch.setenv("RADOME_KUBE_INSECURE_SKIP_TLS_VERIFY", "true")
    monkeypatch.delenv("RADOME_KUBE_CONFIG", raising=False)

    settings = EnvConfigProvider().get_kube_settings()

    assert settings.config_path == "/etc/kube/config"
    assert settings.config_string is None
    assert settings.context == "staging"
    assert settings.insecure_skip_tls_verify is True


def test_auth_config(monkeypatch):
    monkeypatch.setenv("RADOME_API_KEYS", " a:1 , ,2 ")
    assert EnvConfigProvider().get_auth_config().api_keys == ["a:1", "2"]

    monkeypatch.setenv("RADOME_API_KEYS", "")
    assert EnvConfigProvider().get_auth_config().enabled is False


def test_config_module(monkeypatch):
    monkeypatch.setenv("REDIS_PORT", "tcp://10.0.0.5:6380")
    monkeypatch.setenv("RADOME_STATUS_POLL_INTERVAL", "2.5")
    monkeypatch.setenv("RADOME_KUBE_NAMESPACE", "agents")
    monkeypatch.setenv("RADOME_SYNC_ON_START", "false")

    config = ConfigModule()

    assert config.get("redis_port") == 6380
    assert config.get("status_poll_interval") == 2.5
    assert config.get("namespace") == "agents"
    assert config.get("sync_on_start") is False
    assert config.get("proxy_port") == int(os.getenv("RADOME_PROXY_PORT", "8080"))
    assert "namespace" in ConfigModule.get_config_schema()["required"]


def test_health_check_filter():
    health_filter = HealthCheckFilter()

    def record(message, name="uvicorn.access"):
        return logging.LogRecord(name, logging.INFO, __file__, 1, message, None, None)

    assert health_filter.filter(record('127.0.0.1 - "GET /healthz HTTP/1.1" 200')) is False
    assert health_filter.filter(record('127.0.0.1 - "GET /health HTTP/1.1" 200')) is False
    assert health_filter.filter(record('127.0.0.1 - "GET /instances HTTP/1.1" 200')) is True
    assert health_filter.filter(record("GET /healthz ", name="radome")) is True


def test_health_check_filter_uses_access_args():
    health_filter = HealthCheckFilter()

    def access(method, path):
        return logging.LogRecord(
            "uvicorn.access", logging.INFO, __file__, 1,
            '%s - "%s %s HTTP/%s" %d', ("127.0.0.1:5000", method, path, "1.1", 200), None,
        )

    assert health_filter.filter(access("GET", "/healthz")) is False
    assert health_filter.filter(access("GET", "/health?verbose=1")) is False
    assert health_filter.filter(access("POST", "/health")) is True
    assert health_filter.filter(access("GET", "/instances/health")) is True


def test_logging_config_levels():
    config = get_logging_config("debug")

    assert config["loggers"]["radome"]["level"] == "DEBUG"
    assert config["loggers"]["kubernetes.client.rest"]["level"] == "WARNING"
    assert config["handlers"]["access"]["filters"] == ["health_check_filter"]


@pytest.mark.parametrize(
    "name,value,message",
    [
        ("RADOME_PROXY_PORT", "70000", "proxy_port"),
        ("RADOME_PROXY_PORT", "3000", "must differ"),
        ("RADOME_STATUS_POLL_INTERVAL", "-1", "must not be negative"),
        ("LOG_LEVEL", "chatty", "LOG_LEVEL"),
    ],
)
def test_config_module_rejects_bad_values(monkeypatch, name, value, message):
    monkeypatch.setenv("RADOME_CONTROL_PORT", "3000")
    monkeypatch.setenv(name, value)

    with pytest.raises(ValueError, match=message):
        ConfigModule()
