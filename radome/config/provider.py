"""Configuration provider following Black Box Design principles."""
import os
from dataclasses import dataclass
from typing import List, Optional, Protocol

TARGET_MODES = ("direct", "tunnel")
ROUTING_PRECEDENCES = ("subdomain", "path")


def normalize_path_prefix(prefix: Optional[str]) -> str:
    """Normalize a path prefix to '/segment' form; empty string disables it."""
    if not prefix:
        return ""
    trimmed = prefix.strip().strip("/")
    if not trimmed:
        return ""
    return f"/{trimmed}"


@dataclass
class ProxyConfig:
    """Proxy routing configuration."""
    base_domain: str
    path_prefix: str
    target_mode: str
    routing_precedence: str

    @property
    def is_tunnel(self) -> bool:
        """Check if workloads are reached through the API server."""
        return self.target_mode == "tunnel"


@dataclass
class KubeSettings:
    """Kubernetes client configuration sources."""
    config_path: Optional[str]
    config_string: Optional[str]
    context: Optional[str]
    insecure_skip_tls_verify: bool


@dataclass
class AuthConfig:
    """Control API authentication configuration."""
    api_keys: List[str]

    @property
    def enabled(self) -> bool:
        """Check if API key auth is enforced."""
        return bool(self.api_keys)


class ConfigProvider(Protocol):
    """Protocol for configuration providers."""

    def get_proxy_config(self) -> ProxyConfig:
        """Get proxy routing configuration."""
        ...

    def get_kube_settings(self) -> KubeSettings:
        """Get Kubernetes client configuration."""
        ...

    def get_auth_config(self) -> AuthConfig:
        """Get control API authentication configuration."""
        ...


class EnvConfigProvider:
    """Environment-based configuration provider."""

    def get_proxy_config(self) -> ProxyConfig:
        """Get proxy routing configuration from environment variables."""
        target_mode = os.getenv("RADOME_PROXY_TARGET", "direct").lower()
        if target_mode not in TARGET_MODES:
            raise ValueError(
                f"RADOME_PROXY_TARGET must be one of {', '.join(TARGET_MODES)}, got '{target_mode}'"
            )

        precedence = os.getenv("RADOME_ROUTING_PRECEDENCE", "subdomain").lower()
        if precedence not in ROUTING_PRECEDENCES:
            raise ValueError(
                f"RADOME_ROUTING_PRECEDENCE must be one of {', '.join(ROUTING_PRECEDENCES)}, "
                f"got '{precedence}'"
            )

        return ProxyConfig(
            base_domain=os.getenv("RADOME_BASE_DOMAIN", "radome.local").strip().lower(),
            path_prefix=normalize_path_prefix(os.getenv("RADOME_PATH_PREFIX", "/instances")),
            target_mode=target_mode,
            routing_precedence=precedence,
        )

    def get_kube_settings(self) -> KubeSettings:
        """Get Kubernetes client configuration from environment variables."""
        return KubeSettings(
            config_path=os.getenv("RADOME_KUBE_CONFIG_PATH") or None,
            config_string=os.getenv("RADOME_KUBE_CONFIG") or None,
            context=os.getenv("RADOME_KUBE_CONTEXT") or None,
            insecure_skip_tls_verify=(
                os.getenv("RADOME_KUBE_INSECURE_SKIP_TLS_VERIFY", "false").lower() == "true"
            ),
        )

    def get_auth_config(self) -> AuthConfig:
        """Get control API authentication configuration from environment variables."""
        api_keys = os.getenv("RADOME_API_KEYS", "").split(",")
        return AuthConfig(api_keys=[key.strip() for key in api_keys if key.strip()])
