import asyncio
import logging
from typing import AsyncIterator, Iterable, List, Mapping, Optional, Tuple

import httpx
from fastapi import Request, WebSocket, WebSocketDisconnect
from fastapi.responses import PlainTextResponse, Response, StreamingResponse
from websockets.asyncio.client import ClientConnection
from websockets.asyncio.client import connect as websocket_connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from radome.errors import InstanceNotFound, RadomeError, UpstreamTransportError
from radome.modules.api.models import TargetMode
from radome.modules.directory import InstanceStore
from radome.modules.routing import (
    HOP_BY_HOP_HEADERS,
    BackendTarget,
    BackendTargetResolver,
    IdentifierResolver,
    apply_cors,
    rewrite_response_headers,
)

logger = logging.getLogger("radome.proxy")

HeaderList = List[Tuple[str, str]]

# Only the connect phase is bounded; agent sessions stream indefinitely
DEFAULT_TIMEOUT = httpx.Timeout(5.0, read=None, write=None, pool=None)

# Set by the websockets client itself during the handshake
WEBSOCKET_HANDSHAKE_HEADERS = frozenset({
    "sec-websocket-key",
    "sec-websocket-version",
    "sec-websocket-extensions",
    "sec-websocket-protocol",
    "sec-websocket-accept",
})

# Close codes that must never be sent on the wire
RESERVED_CLOSE_CODES = frozenset({1005, 1006, 1015})

BODYLESS_METHODS = frozenset({"GET", "HEAD", "DELETE", "OPTIONS", "TRACE"})


def request_target(scope: Mapping) -> str:
    """Original request path (still percent-encoded) plus query string."""
    raw_path = scope.get("raw_path")
    path = raw_path.decode("latin-1").split("?", 1)[0] if raw_path else scope.get("path", "/")
    query = scope.get("query_string", b"")
    if query:
        return f"{path}?{query.decode('latin-1')}"
    return path or "/"


def encode_headers(headers: Iterable[Tuple[str, str]]) -> List[Tuple[bytes, bytes]]:
    return [(k.lower().encode("latin-1"), v.encode("latin-1")) for k, v in headers]


class ProxyDispatcher:
    """
    Forwards inbound requests to the workload they target.

    Stages run in a fixed order for every request: identifier resolution,
    directory lookup (hydrating on a miss), backend target resolution,
    forwarding, response rewriting.
    """

    def __init__(
        self,
        directory: InstanceStore,
        identifiers: IdentifierResolver,
        targets: BackendTargetResolver,
        http_client: Optional[httpx.AsyncClient] = None,
        tunnel_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize dispatcher.

        Args:
            directory: Instance store used for lookups
            identifiers: Identifier resolver bound to proxy config
            targets: Backend target resolver
            http_client: Client for direct-mode upstreams
            tunnel_client: Client for the API server (built lazily from tunnel credentials)
        """
        self.directory = directory
        self.identifiers = identifiers
        self.targets = targets
        self._http_client = http_client
        self._tunnel_client = tunnel_client

    async def aclose(self) -> None:
        for http_client in (self._http_client, self._tunnel_client):
            if http_client is not None:
                await http_client.aclose()

    def _client_for(self, target: BackendTarget) -> httpx.AsyncClient:
        if target.context.target_mode == TargetMode.TUNNEL:
            if self._tunnel_client is None:
                self._tunnel_client = httpx.AsyncClient(
                    verify=target.credentials.ssl_context(),
                    timeout=DEFAULT_TIMEOUT,
                    follow_redirects=False,
                )
            return self._tunnel_client
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=DEFAULT_TIMEOUT, follow_redirects=False)
        return self._http_client

    # Pipeline stages

    async def resolve(self, host: Optional[str], raw_path: str) -> BackendTarget:
        """
        Resolve a request to its backend target.

        Raises:
            MissingIdentifier, InstanceNotFound, BackendUnavailable, ClusterQueryError
        """
        routed = self.identifiers.resolve(host, raw_path)
        instance = await self.directory.lookup_or_hydrate(routed.instance_id)
        if instance is None:
            raise InstanceNotFound(routed.instance_id)
        return self.targets.resolve(instance, routed)

    def upstream_headers(
        self,
        inbound: Iterable[Tuple[str, str]],
        target: BackendTarget,
        drop: frozenset = frozenset(),
    ) -> HeaderList:
        """
        Headers sent upstream.

        Host, hop-by-hop headers and anything named in Connection are
        dropped. In tunnel mode API server auth headers are added unless the
        client already sent them.
        """
        inbound = list(inbound)
        connection_tokens = set()
        for name, value in inbound:
            if name.lower() == "connection":
                connection_tokens.update(t.strip().lower() for t in value.split(","))

        headers: HeaderList = []
        for name, value in inbound:
            lower = name.lower()
            if lower == "host" or lower in HOP_BY_HOP_HEADERS or lower in connection_tokens:
                continue
            if lower in drop:
                continue
            headers.append((name, value))

        if target.context.target_mode == TargetMode.TUNNEL and target.credentials is not None:
            present = {name.lower() for name, _ in headers}
            for name, value in target.credentials.auth_headers().items():
                if name.lower() not in present:
                    headers.append((name, value))
        return headers

    # HTTP

    def error_response(self, error: RadomeError, request_headers: Mapping[str, str]) -> Response:
        response = PlainTextResponse(error.body(), status_code=error.status_code)
        response.raw_headers = encode_headers(
            apply_cors(
                [(k.decode("latin-1"), v.decode("latin-1")) for k, v in response.raw_headers],
                request_headers,
            )
        )
        return response

    def preflight_response(self, request_headers: Mapping[str, str]) -> Response:
        response = Response(status_code=204)
        response.raw_headers = encode_headers(apply_cors([], request_headers))
        return response

    async def handle(self, request: Request) -> Response:
        """Entry point for plain HTTP requests."""
        if request.method == "OPTIONS":
            return self.preflight_response(request.headers)

        try:
            return await self.forward(request)
        except RadomeError as e:
            if e.status_code >= 500:
                logger.warning(f"{request.method} {request.url.path} -> {e.status_code}: {e.message}")
            else:
                logger.debug(f"{request.method} {request.url.path} -> {e.status_code}: {e.message}")
            return self.error_response(e, request.headers)

    async def forward(self, request: Request) -> Response:
        target = await self.resolve(request.headers.get("host"), request_target(request.scope))
        headers = self.upstream_headers(request.headers.items(), target)

        has_body = (
            "content-length" in request.headers
            or "transfer-encoding" in request.headers
            or request.method not in BODYLESS_METHODS
        )
        http_client = self._client_for(target)
        upstream_request = http_client.build_request(
            request.method,
            target.url,
            headers=headers,
            content=request.stream() if has_body else None,
        )

        try:
            upstream = await http_client.send(upstream_request, stream=True)
        except httpx.HTTPError as e:
            raise UpstreamTransportError(str(e) or e.__class__.__name__) from e

        logger.debug(
            f"{request.method} {target.context.instance_id} -> {target.url} ({upstream.status_code})"
        )
        response_headers = rewrite_response_headers(
            upstream.headers.multi_items(), target.context, request.headers
        )
        response = StreamingResponse(self._relay_body(upstream), status_code=upstream.status_code)
        response.raw_headers = encode_headers(response_headers)
        return response

    async def _relay_body(self, upstream: httpx.Response) -> AsyncIterator[bytes]:
        """Stream raw upstream bytes; closing happens even on client disconnect."""
        try:
            async for chunk in upstream.aiter_raw():
                yield chunk
        except httpx.HTTPError as e:
            logger.warning(f"Upstream stream from {upstream.request.url} broke: {e}")
        finally:
            await upstream.aclose()

    # WebSocket

    async def handle_websocket(self, websocket: WebSocket) -> None:
        """Relay a WebSocket session to the workload."""
        try:
            target = await self.resolve(
                websocket.headers.get("host"), request_target(websocket.scope)
            )
        except RadomeError as e:
            logger.debug(f"WebSocket rejected ({e.status_code}): {e.message}")
            await websocket.close(code=1008 if e.status_code < 500 else 1011, reason=e.message[:120])
            return

        headers = self.upstream_headers(
            websocket.headers.items(), target, drop=WEBSOCKET_HANDSHAKE_HEADERS
        )
        subprotocols = websocket.scope.get("subprotocols") or None
        ssl_context = None
        if target.context.target_mode == TargetMode.TUNNEL and target.credentials is not None:
            ssl_context = target.credentials.ssl_context()

        try:
            upstream = await websocket_connect(
                target.websocket_url,
                additional_headers=headers,
                subprotocols=subprotocols,
                ssl=ssl_context,
                ping_interval=None,
                max_size=None,
            )
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            message = UpstreamTransportError(str(e) or e.__class__.__name__).body()
            logger.warning(f"WebSocket connect to {target.websocket_url} failed: {e}")
            await websocket.close(code=1011, reason=message[:120])
            return

        async with upstream:
            await websocket.accept(subprotocol=upstream.subprotocol)
            logger.debug(f"WebSocket opened for instance {target.context.instance_id}")
            await self._relay_websocket(websocket, upstream)

    async def _relay_websocket(self, websocket: WebSocket, upstream: ClientConnection) -> None:
        async def client_to_upstream() -> None:
            try:
                while True:
                    message = await websocket.receive()
                    if message["type"] == "websocket.disconnect":
                        return
                    if message.get("text") is not None:
                        await upstream.send(message["text"])
                    elif message.get("bytes") is not None:
                        await upstream.send(message["bytes"])
            except (WebSocketDisconnect, ConnectionClosed):
                return

        async def upstream_to_client() -> None:
            try:
                async for message in upstream:
                    if isinstance(message, str):
                        await websocket.send_text(message)
                    else:
                        await websocket.send_bytes(message)
            except (WebSocketDisconnect, ConnectionClosed):
                return

        tasks = [
            asyncio.create_task(client_to_upstream()),
            asyncio.create_task(upstream_to_client()),
        ]
        try:
            await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        close_code = upstream.close_code
        if close_code is None or close_code in RESERVED_CLOSE_CODES:
            close_code = 1000
        try:
            await websocket.close(code=close_code)
        except (RuntimeError, WebSocketDisconnect, OSError):
            logger.debug("Client WebSocket already closed")
