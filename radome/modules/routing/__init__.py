"""
Routing Module - Black Box Interface

Purpose: Decide where a proxied request goes and how its response is fixed up
Interface: IdentifierResolver.resolve(), BackendTargetResolver.resolve(),
           rewrite_response_headers(), cors_headers()
Hidden: Host/path parsing, API server service-proxy paths, Location mapping

Pure functions plus small configuration holders; no I/O.
"""

from .identifier import (
    PATH,
    SUBDOMAIN,
    IdentifierResolver,
    RoutedIdentifier,
    extract_path_identifier,
    extract_subdomain,
    resolve_identifier,
)
from .rewrite import (
    HOP_BY_HOP_HEADERS,
    apply_cors,
    cors_headers,
    rewrite_location,
    rewrite_response_headers,
)
from .target import (
    BackendTarget,
    BackendTargetResolver,
    ProxyRoutingContext,
    service_proxy_base,
    tunnel_path,
)

__all__ = [
    "PATH",
    "SUBDOMAIN",
    "BackendTarget",
    "BackendTargetResolver",
    "HOP_BY_HOP_HEADERS",
    "IdentifierResolver",
    "ProxyRoutingContext",
    "RoutedIdentifier",
    "apply_cors",
    "cors_headers",
    "extract_path_identifier",
    "extract_subdomain",
    "resolve_identifier",
    "rewrite_location",
    "rewrite_response_headers",
    "service_proxy_base",
    "tunnel_path",
]
