"""Health check endpoints."""

from fastapi import APIRouter
from pydantic import BaseModel

from rentalsync.api.deps import OrchestratorDep
from rentalsync.infrastructure.database.connection import check_database
from rentalsync.shared.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["Health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str


class ReadyResponse(BaseModel):
    """Readiness check response."""

    ready: bool
    checks: dict[str, bool]


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Basic health check - always returns OK if service is running."""
    from rentalsync import __version__

    return HealthResponse(status="healthy", version=__version__)


@router.get("/ready", response_model=ReadyResponse)
async def readiness_check(orchestrator: OrchestratorDep) -> ReadyResponse:
    """Readiness check - verifies the database and the search backend."""
    checks: dict[str, bool] = {}

    try:
        checks["database"] = await check_database()
    except Exception as e:
        logger.warning("database_health_check_failed", error=str(e))
        checks["database"] = False

    # connect() reports failure instead of raising
    checks["search"] = await orchestrator.test_connection()

    return ReadyResponse(ready=all(checks.values()), checks=checks)
