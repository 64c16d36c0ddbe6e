"""
Proxy Module - Black Box Interface

Purpose: Forward inbound requests (HTTP and WebSocket) to provisioned workloads
Interface: ProxyDispatcher.handle(), handle_websocket(), create_proxy_app()
Hidden: httpx/websockets clients, header filtering, streaming

Transport failures surface as a single 502; nothing is retried.
"""

from .app import create_proxy_app
from .dispatcher import ProxyDispatcher, request_target

__all__ = ["ProxyDispatcher", "create_proxy_app", "request_target"]
