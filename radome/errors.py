"""
Radome error taxonomy.

Every failure the proxy core produces maps to one of these exceptions. Each
carries the HTTP status code it is surfaced as, so the proxy and control
API can render them without knowing where they were raised.
"""

from typing import Optional


class RadomeError(Exception):
    """Base class for all Radome errors."""

    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def body(self) -> str:
        """Plain-text body sent to the client."""
        return self.message


class MissingIdentifier(RadomeError):
    """No instance identifier in the Host header or path."""

    status_code = 400

    def __init__(self, message: str = "Missing instance identifier in subdomain or path prefix."):
        super().__init__(message)


class InstanceNotFound(RadomeError):
    """Identifier resolved but no such instance exists."""

    status_code = 404

    def __init__(self, instance_id: str):
        super().__init__("Instance not found.")
        self.instance_id = instance_id


class BackendUnavailable(RadomeError):
    """The backend target cannot be resolved (no cluster/context)."""

    status_code = 500


class UpstreamTransportError(RadomeError):
    """The upstream request failed at the transport level."""

    status_code = 502

    def body(self) -> str:
        return f"Proxy error: {self.message}"


class ClusterQueryError(RadomeError):
    """A Kubernetes API call failed with something other than 404."""

    status_code = 500

    def __init__(self, message: str, kube_status: Optional[int] = None):
        super().__init__(message)
        self.kube_status = kube_status
