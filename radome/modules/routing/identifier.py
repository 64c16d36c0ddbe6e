"""
Identifier resolution.

Works out which instance an inbound request targets, either from the
left-most label under the base domain (``abc123.radome.local``) or from the
first path segment after the configured prefix (``/instances/abc123/...``).
"""

from dataclasses import dataclass
from typing import Optional, Tuple
from urllib.parse import urlsplit

from radome.config.provider import ProxyConfig, normalize_path_prefix
from radome.errors import MissingIdentifier

SUBDOMAIN = "subdomain"
PATH = "path"


@dataclass(frozen=True)
class RoutedIdentifier:
    """Outcome of identifier resolution for one request."""

    instance_id: str
    path: str  # path and query to forward downstream
    source: str  # SUBDOMAIN or PATH
    client_base_path: str  # prefix the client used; "" for subdomain routing


def extract_subdomain(host: Optional[str], base_domain: str) -> Optional[str]:
    """
    Return the label in front of the base domain, if there is exactly one.

    ``abc.radome.local`` -> ``abc``; ``radome.local``, ``a.b.radome.local``
    and ``evilradome.local`` yield nothing.
    """
    if not host or not base_domain:
        return None
    normalized_host = host.split(":")[0].strip().lower()
    normalized_base = base_domain.strip().lower()
    if not normalized_host.endswith(normalized_base):
        return None

    prefix = normalized_host[: -len(normalized_base)]
    if not prefix.endswith("."):
        return None
    label = prefix[:-1]
    # Instance ids are single DNS labels, so nested subdomains are not ids
    if not label or "." in label:
        return None
    return label


def extract_path_identifier(raw_path: str, path_prefix: str) -> Optional[Tuple[str, str]]:
    """
    Split ``<prefix>/<id>/<rest>?<query>`` into ``(id, "/<rest>?<query>")``.

    The rewritten path defaults to ``/`` and the query string is kept as is.
    """
    prefix = normalize_path_prefix(path_prefix)
    if not prefix:
        return None

    parts = urlsplit(raw_path or "/")
    path = parts.path
    if not path.startswith(f"{prefix}/"):
        return None

    remainder = path[len(prefix) + 1:]
    instance_id, _, rest = remainder.partition("/")
    if not instance_id:
        return None

    rewritten = f"/{rest}" if rest else "/"
    if parts.query:
        rewritten = f"{rewritten}?{parts.query}"
    return instance_id, rewritten


def resolve_identifier(
    host: Optional[str],
    raw_path: str,
    base_domain: str,
    path_prefix: str = "",
    precedence: str = SUBDOMAIN,
) -> RoutedIdentifier:
    """
    Resolve the instance identifier for a request.

    Args:
        host: Host header (port suffix allowed)
        raw_path: Request path including query string
        base_domain: Domain instances are published under
        path_prefix: Path prefix for path routing ("" disables it)
        precedence: Which candidate wins when both are present

    Raises:
        MissingIdentifier: If neither candidate is present
    """
    subdomain = extract_subdomain(host, base_domain)
    path_match = extract_path_identifier(raw_path, path_prefix)
    raw_path = raw_path or "/"

    from_subdomain = None
    if subdomain:
        from_subdomain = RoutedIdentifier(subdomain, raw_path, SUBDOMAIN, "")

    from_path = None
    if path_match:
        instance_id, rewritten = path_match
        client_base = f"{normalize_path_prefix(path_prefix)}/{instance_id}"
        from_path = RoutedIdentifier(instance_id, rewritten, PATH, client_base)

    if precedence == PATH:
        routed = from_path or from_subdomain
    else:
        routed = from_subdomain or from_path

    if routed is None:
        raise MissingIdentifier()
    return routed


class IdentifierResolver:
    """Identifier resolution bound to the proxy configuration."""

    def __init__(self, proxy_config: ProxyConfig):
        self.base_domain = proxy_config.base_domain
        self.path_prefix = proxy_config.path_prefix
        self.precedence = proxy_config.routing_precedence

    def resolve(self, host: Optional[str], raw_path: str) -> RoutedIdentifier:
        return resolve_identifier(
            host, raw_path, self.base_domain, self.path_prefix, self.precedence
        )
