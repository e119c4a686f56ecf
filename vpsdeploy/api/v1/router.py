"""Main router for API v1."""

from fastapi import APIRouter

from vpsdeploy.api.deps import AdminDep
from vpsdeploy.api.v1 import deploy, health, history

router = APIRouter(prefix="/v1")

# Include sub-routers
router.include_router(health.router, tags=["health"])
router.include_router(
    deploy.router,
    prefix="/deploy",
    tags=["deploy"],
    dependencies=[AdminDep],
)
router.include_router(
    history.router,
    prefix="/deployment-history",
    tags=["deployment-history"],
    dependencies=[AdminDep],
)
