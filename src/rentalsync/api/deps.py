"""FastAPI dependencies for API routes."""

import hmac
from typing import Annotated

from fastapi import Depends, Header, Request

from rentalsync.config import get_settings
from rentalsync.domain.search.sync import SyncOrchestrator
from rentalsync.shared.exceptions import UnauthorizedError

ADMIN_TOKEN_HEADER = "X-Admin-Token"


def get_orchestrator(request: Request) -> SyncOrchestrator:
    """The process-wide orchestrator built in the app lifespan."""
    orchestrator: SyncOrchestrator = request.app.state.sync_orchestrator
    return orchestrator


async def require_admin(
    x_admin_token: Annotated[str | None, Header(alias=ADMIN_TOKEN_HEADER)] = None,
) -> None:
    """Guard sync triggers when ADMIN_TOKEN is configured."""
    expected = get_settings().admin_token
    if not expected:
        return
    if not x_admin_token or not hmac.compare_digest(x_admin_token, expected):
        raise UnauthorizedError(f"Missing or invalid {ADMIN_TOKEN_HEADER} header")


OrchestratorDep = Annotated[SyncOrchestrator, Depends(get_orchestrator)]

__all__ = [
    "ADMIN_TOKEN_HEADER",
    "OrchestratorDep",
    "get_orchestrator",
    "require_admin",
]
