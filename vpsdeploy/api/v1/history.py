"""Deployment history endpoints."""

from typing import Annotated

from fastapi import APIRouter, Query, status

from vpsdeploy.api.deps import HistoryDep
from vpsdeploy.models.deployment import (
    DeploymentHistoryCreate,
    DeploymentHistoryEntry,
    DeploymentHistoryUpdate,
)

router = APIRouter()


@router.get(
    "",
    response_model=list[DeploymentHistoryEntry],
    summary="List deployment history",
)
async def list_history(
    history: HistoryDep,
    limit: Annotated[int | None, Query(ge=1, le=500)] = None,
) -> list[DeploymentHistoryEntry]:
    """Most recent first."""
    return await history.list(limit=limit)


@router.post(
    "",
    response_model=DeploymentHistoryEntry,
    status_code=status.HTTP_201_CREATED,
    summary="Record a deployment attempt",
)
async def create_history_entry(
    data: DeploymentHistoryCreate,
    history: HistoryDep,
) -> DeploymentHistoryEntry:
    return await history.create(data.to_entry())


@router.patch(
    "/{entry_id}",
    response_model=DeploymentHistoryEntry,
    summary="Update a deployment attempt",
)
async def update_history_entry(
    entry_id: str,
    data: DeploymentHistoryUpdate,
    history: HistoryDep,
) -> DeploymentHistoryEntry:
    """Partially update an entry; 404 if it does not exist."""
    return await history.update(entry_id, data.changes())
