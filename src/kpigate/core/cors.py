"""
Origin allow-listing and CORS headers.

Preflight requests carry no credentials, so they are answered here before
any authentication runs.
"""

from typing import Awaitable, Callable, Dict, List, Optional, Sequence
from urllib.parse import urlsplit

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse, Response
from starlette.types import ASGIApp

from ..config import CorsSettings
from .exceptions import OriginNotAllowedError

logger = structlog.get_logger(__name__)

ErrorHandler = Callable[[Request, Exception], Awaitable[Response]]


def _split_origin(value: str) -> tuple:
    """Split an origin or bare host into (scheme, host, port)."""
    value = value.strip().lower().rstrip("/")
    if "://" not in value:
        value = "//" + value
    try:
        parts = urlsplit(value)
        return parts.scheme, parts.hostname or "", parts.port
    except ValueError:
        return "", "", None


class OriginGuard:
    """
    Decides which origins may call the API and builds CORS headers.

    An empty allow-list permits every origin. In development mode an origin
    matches when it contains an allow-list entry, which tolerates port
    variants; otherwise hosts must be equal, and the scheme and port too
    when the entry names them.
    """

    def __init__(
        self,
        allowed_origins: Sequence[str] = (),
        development_mode: bool = False,
        allow_headers: Sequence[str] = ("authorization", "x-client-info", "apikey", "content-type", "x-admin-password"),
        allow_methods: Sequence[str] = ("POST", "OPTIONS"),
        max_age: int = 86400,
    ) -> None:
        self.allowed_origins: List[str] = [o.strip() for o in allowed_origins if o.strip()]
        self.development_mode = development_mode
        self.allow_headers = ", ".join(allow_headers)
        self.allow_methods = ", ".join(allow_methods)
        self.max_age = max_age

    @classmethod
    def from_settings(cls, settings: CorsSettings) -> "OriginGuard":
        return cls(
            allowed_origins=settings.allowed_origins,
            development_mode=settings.development_mode,
            allow_headers=settings.allow_headers,
            allow_methods=settings.allow_methods,
            max_age=settings.max_age,
        )

    @property
    def open_mode(self) -> bool:
        return not self.allowed_origins

    def _matches(self, origin: str, entry: str) -> bool:
        if self.development_mode:
            return entry in origin

        scheme, host, port = _split_origin(origin)
        entry_scheme, entry_host, entry_port = _split_origin(entry)
        if not host or host != entry_host:
            return False
        if entry_scheme and scheme != entry_scheme:
            return False
        if entry_port is not None and port != entry_port:
            return False
        return True

    def is_allowed(self, origin: Optional[str]) -> bool:
        """Report whether a request from ``origin`` may proceed."""
        if self.open_mode:
            return True
        # No Origin header means no browser context to protect
        if not origin:
            return True
        return any(self._matches(origin, entry) for entry in self.allowed_origins)

    def headers_for(self, origin: Optional[str]) -> Dict[str, str]:
        """Build the CORS response headers for a request origin."""
        if self.open_mode:
            allow_origin = origin or "*"
        elif origin and self.is_allowed(origin):
            allow_origin = origin
        else:
            allow_origin = "null"

        return {
            "Access-Control-Allow-Origin": allow_origin,
            "Access-Control-Allow-Headers": self.allow_headers,
            "Access-Control-Allow-Methods": self.allow_methods,
            "Access-Control-Max-Age": str(self.max_age),
            "Vary": "Origin",
        }


class OriginGuardMiddleware(BaseHTTPMiddleware):
    """
    Answers preflight requests and decorates every response with CORS headers.

    Non-preflight requests from a disallowed origin are rejected with 403.
    Unexpected errors from the app are rendered by ``error_handler`` here so
    the 500 still carries CORS headers; without one they propagate.
    """

    def __init__(self, app: ASGIApp, guard: OriginGuard, error_handler: Optional[ErrorHandler] = None) -> None:
        super().__init__(app)
        self.guard = guard
        self.error_handler = error_handler

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        origin = request.headers.get("origin")
        headers = self.guard.headers_for(origin)

        if request.method == "OPTIONS":
            return PlainTextResponse("ok", status_code=200, headers=headers)

        if not self.guard.is_allowed(origin):
            logger.warning("Rejected request from disallowed origin", origin=origin, path=request.url.path)
            exc = OriginNotAllowedError(origin or "")
            return JSONResponse(
                status_code=exc.status_code,
                content={"error": exc.error_code, "message": str(exc), "details": exc.details},
                headers=headers,
            )

        try:
            response = await call_next(request)
        except Exception as error:
            if self.error_handler is None:
                raise
            response = await self.error_handler(request, error)

        for name, value in headers.items():
            response.headers[name] = value
        return response
