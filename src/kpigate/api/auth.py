"""
Authentication endpoint.

POST /v1/admin-auth checks a password and reports whether the matched
record carries the management flag. The client keeps the password and
sends it with every later data request.
"""

from typing import Any

import structlog
from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError as PydanticValidationError

from ..core.auth import AuthGate, RateLimitScope, get_auth_gate
from ..core.exceptions import KPIGateException, ValidationError
from ..models.requests import ErrorResponse, LoginRequest, LoginResponse

logger = structlog.get_logger(__name__)

router = APIRouter()


async def _read_password(request: Request, max_length: int) -> str:
    try:
        body: Any = await request.json()
    except ValueError:
        body = {}

    try:
        payload = LoginRequest.model_validate(body if isinstance(body, dict) else {})
    except PydanticValidationError:
        raise ValidationError("Invalid password format")

    if len(payload.password) > max_length:
        raise ValidationError("Invalid password format")
    return payload.password


@router.post(
    "/admin-auth",
    response_model=LoginResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Malformed password"},
        401: {"model": ErrorResponse, "description": "Invalid password"},
        429: {"model": ErrorResponse, "description": "Too many attempts"},
        500: {"model": ErrorResponse, "description": "Internal server error"},
    },
    summary="Authenticate with the dashboard password",
    description="""
    Verify a dashboard password against the stored credential records.

    **Checks, in order:**
    1. Rate limit per caller IP (login budget)
    2. Password format (1 to the configured maximum characters)
    3. PBKDF2 verification against each record; legacy plaintext records
       are still accepted but logged for migration

    Error bodies carry `authenticated: false`.
    """,
)
async def authenticate(
    request: Request,
    gate: AuthGate = Depends(get_auth_gate),
) -> LoginResponse:
    identity = gate.caller_identity(request)
    max_length = request.app.state.settings.security.password_max_length

    try:
        await gate.enforce_rate_limit(identity, RateLimitScope.AUTH)
        password = await _read_password(request, max_length)
        caller = await gate.authenticate(password)
    except KPIGateException as e:
        if e.status_code == 401:
            logger.warning("Login failed", caller=identity)
        e.extra["authenticated"] = False
        raise
    except Exception as e:
        logger.error("Login failed unexpectedly", caller=identity, error_type=type(e).__name__, exc_info=True)
        error = KPIGateException("Internal server error", error_code="internal_server_error")
        error.extra["authenticated"] = False
        raise error from e

    logger.info("Login succeeded", caller=identity, name=caller.name, management=caller.is_management)
    return LoginResponse(
        authenticated=True,
        isArtemisManagement=caller.is_management,
        userName=caller.name,
    )
