"""
API endpoints package.

Contains FastAPI routers for all service endpoints:
- /v1/admin-auth - Password authentication
- /v1/data-read, /v1/data-write - Whitelisted table access
- /v1/pipeline-notes:save - Batch note save
- /metrics - Prometheus metrics
- /healthz, /readyz - Health checks
"""
from .auth import router as auth_router
from .data import router as data_router
from .healthz import router as healthz_router
from .metrics import router as metrics_router

__all__ = ["auth_router", "data_router", "healthz_router", "metrics_router"]
