"""Dependency injection for API endpoints."""

import secrets
from typing import Annotated

from fastapi import Depends, Header

from vpsdeploy.config import settings
from vpsdeploy.core.exceptions import AuthenticationError
from vpsdeploy.core.guard import DeploymentGuard, get_deployment_guard
from vpsdeploy.core.history import HistoryStore, get_history_store
from vpsdeploy.core.orchestrator import DeploymentOrchestrator, get_orchestrator


async def get_guard() -> DeploymentGuard:
    """Get the deployment guard."""
    return get_deployment_guard()


async def get_history() -> HistoryStore:
    """Get the deployment history store."""
    return get_history_store()


async def get_deployment_orchestrator() -> DeploymentOrchestrator:
    """Get the deployment orchestrator."""
    return get_orchestrator()


async def require_admin(
    authorization: Annotated[str | None, Header()] = None,
    x_admin_token: Annotated[str | None, Header()] = None,
) -> None:
    """Reject callers that don't present the admin token.

    Accepts ``Authorization: Bearer <token>`` or ``X-Admin-Token: <token>``.
    With no token configured, only development mode lets requests through.
    """
    expected = settings.admin_token
    if not expected:
        if settings.is_development:
            return
        raise AuthenticationError()

    presented = x_admin_token
    if authorization and authorization.lower().startswith("bearer "):
        presented = authorization[len("bearer "):].strip()

    if not presented or not secrets.compare_digest(presented, expected):
        raise AuthenticationError()


# Type aliases for cleaner signatures
GuardDep = Annotated[DeploymentGuard, Depends(get_guard)]
HistoryDep = Annotated[HistoryStore, Depends(get_history)]
OrchestratorDep = Annotated[DeploymentOrchestrator, Depends(get_deployment_orchestrator)]
AdminDep = Depends(require_admin)
