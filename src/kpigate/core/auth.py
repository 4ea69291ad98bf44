"""
Authentication and rate limiting for inbound requests.

Every request re-authenticates: the caller sends the dashboard password
in a header and it is checked against all credential records. There is
no server-side session.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

import structlog
from fastapi import Request

from ..config import RateLimitBudget, SecuritySettings
from .exceptions import AuthenticationError, InvalidCredentialError, RateLimitError
from .metrics import MetricsCollector
from .rate_limit import FixedWindowRateLimiter
from .storage import StorageGateway

logger = structlog.get_logger(__name__)

UNKNOWN_CALLER = "unknown"


class RateLimitScope(str, Enum):
    """Independent rate-limit budgets per endpoint class."""

    AUTH = "auth"
    READ = "read"
    WRITE = "write"


@dataclass(frozen=True)
class AuthenticatedCaller:
    """Result of a successful credential check."""
    name: Optional[str]
    is_management: bool
    legacy_plaintext: bool = False


class AuthGate:
    """
    Decides whether an inbound request may proceed.

    Order per request: rate limit by caller identity, require a
    credential, verify it against every stored record.
    """

    def __init__(
        self,
        storage: StorageGateway,
        rate_limiter: FixedWindowRateLimiter,
        settings: SecuritySettings,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        self.storage = storage
        self.rate_limiter = rate_limiter
        self.settings = settings
        self.metrics = metrics

    def caller_identity(self, request: Request) -> str:
        """
        Client IP from proxy headers, or the shared unknown bucket.

        With ``trusted_proxy_hops`` at 0 the first ``X-Forwarded-For`` entry
        is used. Otherwise the entry that many hops from the right is used,
        which is the address the outermost trusted proxy saw and cannot be
        spoofed by prepending entries.
        """
        hops = [hop.strip() for hop in request.headers.get("x-forwarded-for", "").split(",")]
        hops = [hop for hop in hops if hop]
        if hops:
            depth = self.settings.trusted_proxy_hops
            if depth <= 0:
                return hops[0]
            return hops[max(len(hops) - depth, 0)]
        real_ip = request.headers.get("x-real-ip", "").strip()
        return real_ip or UNKNOWN_CALLER

    def budget_for(self, scope: RateLimitScope) -> RateLimitBudget:
        if scope is RateLimitScope.AUTH:
            return self.settings.auth_rate_limit
        if scope is RateLimitScope.READ:
            return self.settings.read_rate_limit
        return self.settings.write_rate_limit

    async def enforce_rate_limit(self, identity: str, scope: RateLimitScope) -> None:
        """
        Count this request against the caller's budget for ``scope``.

        Raises RateLimitError if limit exceeded.
        """
        budget = self.budget_for(scope)
        key = f"{scope.value}:{identity}"

        if await self.rate_limiter.allow(key, budget.max_requests, budget.window_ms):
            return

        retry_after = await self.rate_limiter.retry_after(key)
        logger.warning(
            "Rate limit exceeded",
            caller=identity,
            scope=scope.value,
            retry_after=retry_after,
        )
        if self.metrics is not None:
            self.metrics.record_rate_limited(scope.value)
        raise RateLimitError(retry_after=retry_after)

    def extract_credential(self, request: Request) -> str:
        credential = request.headers.get(self.settings.credential_header, "")
        if not credential.strip():
            raise AuthenticationError()
        return credential

    async def authenticate(self, password: str) -> AuthenticatedCaller:
        """
        Check a password against every credential record; first match wins.

        Records without a hash fall back to an exact plaintext comparison.
        """
        records = await self.storage.fetch_credentials()

        for record in records:
            match = record.matches(password)
            if not match.matched:
                continue

            if match.used_legacy_plaintext:
                logger.warning(
                    "User authenticated with plain text password. Please migrate to hashed passwords.",
                    record_id=record.id,
                    name=record.name,
                )
            if self.metrics is not None:
                self.metrics.record_auth_attempt("success")
            logger.debug("Credential verified", name=record.name, management=record.is_management)
            return AuthenticatedCaller(
                name=record.name,
                is_management=record.is_management,
                legacy_plaintext=match.used_legacy_plaintext,
            )

        if self.metrics is not None:
            self.metrics.record_auth_attempt("invalid")
        raise InvalidCredentialError()

    async def authorize(self, request: Request, scope: RateLimitScope) -> AuthenticatedCaller:
        """Run rate limiting and credential checks for a data request."""
        identity = self.caller_identity(request)
        await self.enforce_rate_limit(identity, scope)

        password = self.extract_credential(request)
        try:
            return await self.authenticate(password)
        except InvalidCredentialError:
            logger.warning("Authentication failed: invalid credential", caller=identity, path=request.url.path)
            raise


def get_auth_gate(request: Request) -> AuthGate:
    """Dependency to get the auth gate from app state."""
    return request.app.state.auth_gate


def require_caller(scope: RateLimitScope) -> Callable[[Request], Awaitable[AuthenticatedCaller]]:
    """Build a dependency that authorizes the request under ``scope``."""

    async def dependency(request: Request) -> AuthenticatedCaller:
        gate = get_auth_gate(request)
        return await gate.authorize(request, scope)

    return dependency
