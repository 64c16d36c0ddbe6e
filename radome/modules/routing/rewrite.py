"""
Response rewriting.

Maps tunnel redirects back into client-visible paths and stamps CORS
headers on every response the proxy emits.
"""

from typing import Dict, Iterable, List, Mapping, Optional, Tuple
from urllib.parse import urlsplit, urlunsplit

from radome.modules.api.models import TargetMode

from .target import ProxyRoutingContext

CORS_ALLOW_METHODS = "GET,POST,PUT,PATCH,DELETE,OPTIONS"
CORS_DEFAULT_HEADERS = "Content-Type, Authorization"

# Never copied between client and upstream (RFC 7230 section 6.1)
HOP_BY_HOP_HEADERS = frozenset({
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "proxy-connection",
    "te",
    "trailer",
    "trailers",
    "transfer-encoding",
    "upgrade",
})

HeaderList = List[Tuple[str, str]]


def rewrite_location(location: str, context: ProxyRoutingContext) -> str:
    """
    Rewrite an upstream redirect target for the client.

    Only tunnel-mode locations under the upstream base path are touched; the
    result is a relative URL keeping query and fragment. Anything else is
    returned unchanged.
    """
    if context.target_mode != TargetMode.TUNNEL or not context.upstream_base_path:
        return location

    parts = urlsplit(location)
    base = context.upstream_base_path
    path = parts.path
    if path != base and not path.startswith(f"{base}/"):
        return location

    new_path = f"{context.client_base_path}{path[len(base):]}" or "/"
    return urlunsplit(("", "", new_path, parts.query, parts.fragment))


def cors_headers(request_headers: Mapping[str, str]) -> Dict[str, str]:
    """CORS headers reflecting the request's Origin and requested headers."""
    return {
        "Access-Control-Allow-Origin": request_headers.get("origin") or "*",
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Allow-Methods": CORS_ALLOW_METHODS,
        "Access-Control-Allow-Headers": (
            request_headers.get("access-control-request-headers") or CORS_DEFAULT_HEADERS
        ),
    }


def _merge_vary(existing: Optional[str]) -> str:
    if not existing:
        return "Origin"
    values = [v.strip() for v in existing.split(",") if v.strip()]
    if any(v == "*" or v.lower() == "origin" for v in values):
        return ", ".join(values)
    return ", ".join(values + ["Origin"])


def apply_cors(headers: Iterable[Tuple[str, str]], request_headers: Mapping[str, str]) -> HeaderList:
    """Replace any access-control headers with ours and add Origin to Vary."""
    result: HeaderList = []
    vary = None
    for name, value in headers:
        lower = name.lower()
        if lower.startswith("access-control-allow-"):
            continue
        if lower == "vary":
            vary = f"{vary}, {value}" if vary else value
            continue
        result.append((name, value))

    result.extend(cors_headers(request_headers).items())
    result.append(("Vary", _merge_vary(vary)))
    return result


def rewrite_response_headers(
    upstream_headers: Iterable[Tuple[str, str]],
    context: ProxyRoutingContext,
    request_headers: Mapping[str, str],
) -> HeaderList:
    """
    Post-process upstream response headers.

    Drops hop-by-hop headers, rewrites Location for tunnel mode and applies
    CORS. Repeated headers such as Set-Cookie are preserved.
    """
    filtered: HeaderList = []
    for name, value in upstream_headers:
        lower = name.lower()
        if lower in HOP_BY_HOP_HEADERS:
            continue
        if lower == "location":
            value = rewrite_location(value, context)
        filtered.append((name, value))
    return apply_cors(filtered, request_headers)
