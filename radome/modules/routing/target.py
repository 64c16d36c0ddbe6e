"""
Backend target resolution.

Direct mode reaches a workload through its in-cluster Service DNS name.
Tunnel mode goes through the API server's service-proxy subresource, which
is the only option when the proxy runs outside the cluster network.
"""

from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlsplit

from radome.errors import BackendUnavailable
from radome.modules.api.models import TargetMode, WorkloadInstance
from radome.modules.kube import KubeModule, TunnelCredentials

from .identifier import RoutedIdentifier


@dataclass(frozen=True)
class ProxyRoutingContext:
    """Routing decisions for one request, needed again when rewriting the response."""

    instance_id: str
    target_mode: TargetMode
    client_base_path: str
    upstream_base_path: Optional[str] = None


@dataclass(frozen=True)
class BackendTarget:
    """Where and how to send one proxied request."""

    base_url: str
    upstream_path: str
    context: ProxyRoutingContext
    credentials: Optional[TunnelCredentials] = None

    @property
    def url(self) -> str:
        return f"{self.base_url}{self.upstream_path}"

    @property
    def websocket_url(self) -> str:
        if self.base_url.startswith("https://"):
            return f"wss://{self.base_url[len('https://'):]}{self.upstream_path}"
        if self.base_url.startswith("http://"):
            return f"ws://{self.base_url[len('http://'):]}{self.upstream_path}"
        return self.url


def service_proxy_base(instance: WorkloadInstance) -> str:
    """API server path that proxies to an instance's Service."""
    return (
        f"/api/v1/namespaces/{instance.namespace}"
        f"/services/{instance.service_name}:{instance.container_port}/proxy"
    )


def tunnel_path(base: str, client_path: str) -> str:
    """
    Append a client path (with query) to the service-proxy base.

    The root maps to ``<base>/``: the API server treats ``.../proxy`` and
    ``.../proxy/`` differently.
    """
    parts = urlsplit(client_path or "/")
    path = parts.path or "/"
    if not path.startswith("/"):
        path = f"/{path}"
    upstream = f"{base}{path}"
    if parts.query:
        upstream = f"{upstream}?{parts.query}"
    return upstream


class BackendTargetResolver:
    """Turns an instance plus routed identifier into a BackendTarget."""

    def __init__(self, mode: TargetMode, kube: Optional[KubeModule] = None):
        """
        Initialize resolver.

        Args:
            mode: Static addressing mode for every request
            kube: Kubernetes module supplying tunnel credentials (tunnel mode)
        """
        self.mode = TargetMode(mode)
        self.kube = kube

    def resolve(self, instance: WorkloadInstance, routed: RoutedIdentifier) -> BackendTarget:
        """
        Resolve the backend target for a request.

        Raises:
            BackendUnavailable: Tunnel mode without a resolvable cluster
        """
        if self.mode == TargetMode.DIRECT:
            context = ProxyRoutingContext(
                instance_id=instance.id,
                target_mode=TargetMode.DIRECT,
                client_base_path=routed.client_base_path,
            )
            return BackendTarget(
                base_url=f"http://{instance.service_host}:{instance.container_port}",
                upstream_path=routed.path or "/",
                context=context,
            )

        if self.kube is None:
            raise BackendUnavailable("Tunnel mode requires a Kubernetes configuration")
        credentials = self.kube.tunnel_credentials()

        # Some API servers are published below a path (e.g. behind Rancher)
        server = urlsplit(credentials.server)
        upstream_base = f"{server.path.rstrip('/')}{service_proxy_base(instance)}"
        context = ProxyRoutingContext(
            instance_id=instance.id,
            target_mode=TargetMode.TUNNEL,
            client_base_path=routed.client_base_path,
            upstream_base_path=upstream_base,
        )
        return BackendTarget(
            base_url=f"{server.scheme}://{server.netloc}",
            upstream_path=tunnel_path(upstream_base, routed.path),
            context=context,
            credentials=credentials,
        )
