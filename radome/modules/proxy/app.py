from fastapi import FastAPI, Request, WebSocket
from fastapi.responses import Response

from .dispatcher import ProxyDispatcher

PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


def create_proxy_app(dispatcher: ProxyDispatcher) -> FastAPI:
    """
    Build the proxy listener application.

    Every path belongs to the proxied workloads, so the OpenAPI and docs
    routes are disabled.
    """
    app = FastAPI(
        title="Radome Proxy",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.dispatcher = dispatcher

    @app.api_route("/{full_path:path}", methods=PROXY_METHODS, include_in_schema=False)
    async def proxy_http(request: Request, full_path: str) -> Response:
        return await dispatcher.handle(request)

    @app.websocket("/{full_path:path}")
    async def proxy_websocket(websocket: WebSocket, full_path: str) -> None:
        await dispatcher.handle_websocket(websocket)

    return app
