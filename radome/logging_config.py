"""
Logging configuration shared by the control API and proxy listeners.

Both uvicorn servers and the radome loggers write to stdout. Probe traffic
(/health, /healthz) is dropped from the access log so proxied requests stay
readable.
"""

import logging
import logging.config
from typing import Any, Dict

HEALTH_PATHS = ("/health", "/healthz")

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Third-party loggers that are noisy below WARNING
QUIET_LOGGERS = ("kubernetes.client.rest", "websockets", "httpx", "httpcore")


class HealthCheckFilter(logging.Filter):
    """Filter to suppress health check endpoint logs."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name != "uvicorn.access":
            return True

        # uvicorn passes (client, method, path, http_version, status)
        args = record.args
        if isinstance(args, tuple) and len(args) >= 3:
            method, path = args[1], str(args[2]).split("?", 1)[0]
            return not (method == "GET" and path in HEALTH_PATHS)

        message = record.getMessage()
        return not ("GET" in message and any(f"{path} " in message for path in HEALTH_PATHS))


def _logger(handler: str, level: str) -> Dict[str, Any]:
    return {"handlers": [handler], "level": level, "propagate": False}


def get_logging_config(level: str = "INFO") -> Dict[str, Any]:
    """
    Build a dictConfig for both listeners.

    Args:
        level: Level for uvicorn and radome loggers (case-insensitive)
    """
    level = level.upper()
    loggers = {
        "uvicorn": _logger("default", level),
        "uvicorn.error": _logger("default", level),
        "uvicorn.access": _logger("access", level),
        "radome": _logger("default", level),
    }
    for name in QUIET_LOGGERS:
        loggers[name] = _logger("default", "WARNING")

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "health_check_filter": {"()": HealthCheckFilter},
        },
        "formatters": {
            "default": {"format": DEFAULT_FORMAT},
            "access": {"format": "%(message)s"},
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": "ext://sys.stdout",
            },
            "access": {
                "class": "logging.StreamHandler",
                "formatter": "access",
                "stream": "ext://sys.stdout",
                "filters": ["health_check_filter"],
            },
        },
        "loggers": loggers,
        "root": {"level": level, "handlers": ["default"]},
    }
