"""
API request and response models.

Operation and table names are deliberately plain strings here: the
request router owns their whitelists so that unknown values surface as
``invalid_operation`` / ``invalid_table`` rather than schema errors.
"""

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    """Body of the authenticate call."""

    password: str = Field(min_length=1, description="Dashboard password")


class LoginResponse(BaseModel):
    """Successful authentication result."""

    authenticated: bool = Field(description="Always true on success")
    isArtemisManagement: bool = Field(default=False, description="Caller may edit dashboard data")
    userName: Optional[str] = Field(default=None, description="Display name of the matched record")


class DataRequest(BaseModel):
    """
    Read or write request against one table.

    ``id`` is only used as the lookup predicate; it is never written
    through an update.
    """

    operation: Optional[str] = Field(default=None, description="getKPIs|list|get or create|update|delete")
    table: Optional[str] = Field(default=None, description="Target table name")
    id: Optional[Union[str, int]] = Field(default=None, description="Target record id")
    data: Optional[Dict[str, Any]] = Field(default=None, description="Column values for create/update")
    filters: Optional[Dict[str, Any]] = Field(default=None, description="Equality filters for list")


class NoteInput(BaseModel):
    """One note in the desired, ordered note list."""

    id: Optional[str] = Field(default=None, description="Existing or client-generated id")
    content: str = Field(default="", max_length=10000, description="Note text")


class NoteSyncRequest(BaseModel):
    """Full desired state of the pipeline note list."""

    notes: List[NoteInput] = Field(default_factory=list, max_length=500)


class NoteSyncFailure(BaseModel):
    id: str
    action: str
    error: str


class NoteSyncResponse(BaseModel):
    """Outcome of a batch note save; failed steps are listed, not raised."""

    success: bool
    deleted: List[str] = Field(default_factory=list)
    created: List[str] = Field(default_factory=list)
    updated: List[str] = Field(default_factory=list)
    failed: List[NoteSyncFailure] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    """
    Standard error response model.
    """

    error: str = Field(description="Error code")
    message: str = Field(description="Human-readable error message")
    details: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Additional error details"
    )
