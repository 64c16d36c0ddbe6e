"""
Config Module - Black Box Interface

Purpose: Process configuration management
Interface: get_config(), ConfigModule.get(), ConfigModule.get_config_schema()
Hidden: Config sources, validation logic, environment parsing

Can be replaced with different config systems (Consul, etcd, AWS Parameter Store).
"""

import os
from typing import Any, Dict


# Configuration Contract: Required and Optional Keys

REQUIRED_CONFIG_KEYS = {
    "redis_host": "Redis server hostname",
    "redis_port": "Redis server port number",
    "redis_db": "Redis database number",
    "host": "Bind address for the control API and proxy listeners",
    "control_port": "Control API port",
    "proxy_port": "Proxy listener port",
    "log_level": "Logging level (DEBUG, INFO, WARNING, ERROR)",
    "namespace": "Kubernetes namespace workloads are provisioned in",
    "status_poll_interval": "Seconds between background status refreshes (0 disables)",
}

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

OPTIONAL_CONFIG_KEYS = {
    "redis_password": {
        "description": "Redis authentication password",
        "default": None,
    },
    "sync_on_start": {
        "description": "Rebuild the instance directory from the cluster at startup",
        "default": True,
    },
    "image_pull_secret": {
        "description": "Existing docker-registry secret referenced by new Deployments",
        "default": None,
    },
}


class ConfigModule:
    """Configuration management module."""

    def __init__(self):
        """Initialize with environment variables."""
        self._config = self._load_from_env()
        self._validate_required_keys()
        self._validate_values()

    def _validate_required_keys(self) -> None:
        """
        Validate that all required configuration keys are present.

        Raises:
            ValueError: If required keys are missing
        """
        missing_keys = []
        for key in REQUIRED_CONFIG_KEYS:
            if key not in self._config or self._config[key] is None:
                missing_keys.append(key)

        if missing_keys:
            raise ValueError(
                f"Missing required configuration keys: {', '.join(missing_keys)}. "
                f"Check environment variables and deployment configuration."
            )

    def _validate_values(self) -> None:
        """Reject values the listeners or poller cannot use."""
        for key in ("redis_port", "control_port", "proxy_port"):
            if not 1 <= self._config[key] <= 65535:
                raise ValueError(f"{key} must be between 1 and 65535, got {self._config[key]}")
        if self._config["control_port"] == self._config["proxy_port"]:
            raise ValueError("RADOME_CONTROL_PORT and RADOME_PROXY_PORT must differ")
        if self._config["status_poll_interval"] < 0:
            raise ValueError("RADOME_STATUS_POLL_INTERVAL must not be negative")
        if self._config["log_level"].upper() not in LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}")

    def _load_from_env(self) -> Dict[str, Any]:
        """Load configuration from environment."""
        # K8s service links inject REDIS_PORT as tcp://host:port
        redis_port_env = os.getenv("REDIS_PORT", "6379")
        if redis_port_env.startswith("tcp://"):
            redis_port = int(redis_port_env.split(":")[-1])
        else:
            redis_port = int(redis_port_env)

        return {
            # Redis settings
            "redis_host": os.getenv("REDIS_HOST", "radome-redis-master"),
            "redis_port": redis_port,
            "redis_db": int(os.getenv("REDIS_DB", "0")),
            "redis_password": os.getenv("REDIS_PASSWORD"),
            # Listener settings
            "host": os.getenv("RADOME_HOST", "0.0.0.0"),
            "control_port": int(os.getenv("RADOME_CONTROL_PORT", "3000")),
            "proxy_port": int(os.getenv("RADOME_PROXY_PORT", "8080")),
            "log_level": os.getenv("LOG_LEVEL", "INFO"),
            # Workload settings
            "namespace": os.getenv("RADOME_KUBE_NAMESPACE", "default"),
            "image_pull_secret": os.getenv("RADOME_IMAGE_PULL_SECRET") or None,
            "status_poll_interval": float(os.getenv("RADOME_STATUS_POLL_INTERVAL", "15")),
            "sync_on_start": os.getenv("RADOME_SYNC_ON_START", "true").lower() == "true",
        }

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value."""
        return self._config.get(key, default)

    @staticmethod
    def get_config_schema() -> Dict[str, Any]:
        """
        Get the configuration schema (contract) for this module.

        Returns:
            Dictionary with 'required' and 'optional' key specifications

        Example:
            >>> schema = ConfigModule.get_config_schema()
            >>> print(schema['required']['namespace'])
            'Kubernetes namespace workloads are provisioned in'
        """
        return {
            "required": REQUIRED_CONFIG_KEYS.copy(),
            "optional": OPTIONAL_CONFIG_KEYS.copy(),
        }


# Singleton instance
_instance = None


def get_config() -> ConfigModule:
    """Get the configuration module singleton."""
    global _instance
    if _instance is None:
        _instance = ConfigModule()
    return _instance


__all__ = ["get_config", "ConfigModule"]
