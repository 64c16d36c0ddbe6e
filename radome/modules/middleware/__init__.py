"""
Authentication Middleware Module - Black Box Interface

Purpose: Protect the control API with static API keys
Interface: AuthMiddleware, create_api_key_middleware(), parse_api_keys()
Hidden: Header extraction, constant-time comparison, error formatting

Session/user authentication is owned elsewhere; this only gates the
control API when operators configure keys.
"""

import logging
import secrets
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

DEFAULT_SKIP_PATHS = {
    "/health": ["GET"],
    "/healthz": ["GET"],
}


def parse_api_keys(entries: List[str]) -> Dict[str, str]:
    """
    Map API keys to service identities.

    Entries are either ``service:key`` or a bare ``key``.
    """
    keys: Dict[str, str] = {}
    for index, entry in enumerate(entries):
        if ":" in entry:
            service, key = entry.split(":", 1)
        else:
            service, key = f"api-key-{index + 1}", entry
        if key:
            keys[key] = service or f"api-key-{index + 1}"
    return keys


class AuthMiddleware:
    """
    Configurable authentication middleware for FastAPI applications.

    Simply provide an auth validator function and optional configuration.
    """

    def __init__(
        self,
        auth_validator: Callable[[str], Awaitable[Tuple[bool, Optional[str]]]],
        header_names: Optional[list] = None,
        skip_paths: Optional[Dict[str, list]] = None,
        log_attempts: bool = True
    ):
        """
        Initialize authentication middleware.

        Args:
            auth_validator: Async function that validates API key, returns (is_valid, identity)
            header_names: List of header names to check for API key (default: X-API-Key)
            skip_paths: Dict of {path: [methods]} to skip authentication
            log_attempts: Whether to log authentication attempts
        """
        self.auth_validator = auth_validator
        self.header_names = header_names or ["x-api-key"]
        self.skip_paths = DEFAULT_SKIP_PATHS if skip_paths is None else skip_paths
        self.log_attempts = log_attempts

    def should_skip_auth(self, request: Request) -> bool:
        """Check if authentication should be skipped for this request."""
        method = request.method.upper()
        if method == "OPTIONS":
            return True

        path = str(request.url.path)
        if path in self.skip_paths:
            allowed_methods = self.skip_paths[path]
            if "*" in allowed_methods or method in allowed_methods:
                return True

        return False

    def extract_api_key(self, request: Request) -> Optional[str]:
        """Extract API key from request headers."""
        for header_name in self.header_names:
            api_key = request.headers.get(header_name)
            if api_key:
                return api_key
        return None

    async def __call__(self, request: Request, call_next):
        """Process the request through authentication middleware."""
        if self.should_skip_auth(request):
            return await call_next(request)

        api_key = self.extract_api_key(request)
        if not api_key:
            if self.log_attempts:
                logger.warning(f"Request to {request.url.path} without API key")
            return JSONResponse(
                status_code=401,
                content={"error": "Authentication required: API key not provided"}
            )

        is_valid, service_identity = await self.auth_validator(api_key)
        if not is_valid:
            if self.log_attempts:
                logger.warning(f"Invalid API key attempted: {api_key[:4]}...")
            return JSONResponse(
                status_code=401,
                content={"error": "Authentication failed: Invalid API key"}
            )

        if self.log_attempts:
            logger.debug(f"Request authenticated for service: {service_identity}")

        request.state.service_identity = service_identity
        return await call_next(request)


def create_api_key_middleware(
    api_keys: List[str],
    skip_paths: Optional[Dict[str, list]] = None,
) -> AuthMiddleware:
    """
    Factory function to create API key authentication middleware.

    Args:
        api_keys: Configured entries (``key`` or ``service:key``)
        skip_paths: Paths to skip authentication {"/path": ["GET", "POST"]}

    Returns:
        Configured AuthMiddleware instance
    """
    keys = parse_api_keys(api_keys)

    async def validator(api_key: str) -> Tuple[bool, Optional[str]]:
        """Validate API key in constant time against every configured key."""
        identity = None
        for known_key, service in keys.items():
            if secrets.compare_digest(api_key.encode(), known_key.encode()):
                identity = service
        return identity is not None, identity

    return AuthMiddleware(auth_validator=validator, skip_paths=skip_paths)


# Module interface - what this module provides
__all__ = [
    "AuthMiddleware",
    "create_api_key_middleware",
    "parse_api_keys",
]
