"""
Data models package.

Contains:
- Pydantic API request/response models
- KPI snapshot models
- SQLAlchemy table models (``tables``, imported on demand)
"""

from .kpi import CustomerSummary, KPISnapshot, PipelineCell, PipelineClientView
from .requests import (
    DataRequest,
    ErrorResponse,
    LoginRequest,
    LoginResponse,
    NoteInput,
    NoteSyncRequest,
    NoteSyncResponse,
)

__all__ = [
    # API models
    "DataRequest",
    "ErrorResponse",
    "LoginRequest",
    "LoginResponse",
    "NoteInput",
    "NoteSyncRequest",
    "NoteSyncResponse",

    # KPI snapshot models
    "CustomerSummary",
    "KPISnapshot",
    "PipelineCell",
    "PipelineClientView",
]
