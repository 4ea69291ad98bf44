"""
Data endpoints.

- POST /v1/data-read: getKPIs, list, get
- POST /v1/data-write: create, update, delete
- POST /v1/pipeline-notes:save: batch save of the note list

All require the dashboard password in the credential header.
"""

import uuid
from typing import Any, Dict

import structlog
from fastapi import APIRouter, Depends, Request

from ..core.auth import AuthenticatedCaller, RateLimitScope, require_caller
from ..core.exceptions import ForbiddenError
from ..core.notes import sync_pipeline_notes
from ..core.router import RequestRouter
from ..models.requests import DataRequest, ErrorResponse, NoteSyncRequest, NoteSyncResponse

logger = structlog.get_logger(__name__)

router = APIRouter()


def get_request_router(request: Request) -> RequestRouter:
    """Dependency to get the request router from app state."""
    return request.app.state.request_router


@router.post(
    "/data-read",
    responses={
        400: {"model": ErrorResponse, "description": "Invalid operation, table or missing id"},
        401: {"model": ErrorResponse, "description": "Missing or invalid credential"},
        404: {"model": ErrorResponse, "description": "Record not found"},
        429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
        500: {"model": ErrorResponse, "description": "Internal server error"},
    },
    summary="Read dashboard data",
    description="""
    Read-side operations.

    - `getKPIs`: aggregated KPI snapshot
    - `list`: rows of a table, with optional equality filters on whitelisted columns
    - `get`: one row by id
    """,
)
async def read_data(
    payload: DataRequest,
    caller: AuthenticatedCaller = Depends(require_caller(RateLimitScope.READ)),
    data_router: RequestRouter = Depends(get_request_router),
) -> Dict[str, Any]:
    request_id = str(uuid.uuid4())
    logger.debug(
        "Processing read request",
        request_id=request_id,
        operation=payload.operation,
        table=payload.table,
        caller=caller.name,
    )
    return await data_router.handle_read(payload)


@router.post(
    "/data-write",
    responses={
        400: {"model": ErrorResponse, "description": "Invalid operation, table, fields or missing id"},
        401: {"model": ErrorResponse, "description": "Missing or invalid credential"},
        404: {"model": ErrorResponse, "description": "Record not found"},
        429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
        500: {"model": ErrorResponse, "description": "Internal server error"},
    },
    summary="Write dashboard data",
    description="""
    Write-side operations: `create`, `update`, `delete`.

    Payload fields outside the table's whitelist are dropped before storage.
    The record id is never taken from an update payload.
    """,
)
async def write_data(
    payload: DataRequest,
    caller: AuthenticatedCaller = Depends(require_caller(RateLimitScope.WRITE)),
    data_router: RequestRouter = Depends(get_request_router),
) -> Dict[str, Any]:
    request_id = str(uuid.uuid4())
    logger.info(
        "Processing write request",
        request_id=request_id,
        operation=payload.operation,
        table=payload.table,
        caller=caller.name,
    )
    return await data_router.handle_write(payload)


@router.post(
    "/pipeline-notes:save",
    response_model=NoteSyncResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Malformed note list"},
        401: {"model": ErrorResponse, "description": "Missing or invalid credential"},
        403: {"model": ErrorResponse, "description": "Management access required"},
        429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
        500: {"model": ErrorResponse, "description": "Internal server error"},
    },
    summary="Save the pipeline note list",
    description="""
    Replace the stored pipeline notes with the submitted ordered list.

    Removed notes are deleted first, then notes are created or updated in
    list order. Writes are not atomic across notes; failures are listed in
    `failed` and the same list can be resubmitted safely.
    """,
)
async def save_pipeline_notes(
    payload: NoteSyncRequest,
    request: Request,
    caller: AuthenticatedCaller = Depends(require_caller(RateLimitScope.WRITE)),
) -> NoteSyncResponse:
    if not caller.is_management:
        logger.warning("Note save rejected for non-management caller", caller=caller.name)
        raise ForbiddenError()

    storage = request.app.state.storage
    metrics = getattr(request.app.state, "metrics", None)
    result = await sync_pipeline_notes(storage, payload.notes, metrics=metrics)
    return NoteSyncResponse.model_validate(result.to_dict())
