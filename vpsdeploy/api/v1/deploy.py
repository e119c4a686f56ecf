"""Deployment endpoints."""

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse, StreamingResponse

from vpsdeploy.api.deps import GuardDep, OrchestratorDep
from vpsdeploy.core.coolify import CoolifyClient
from vpsdeploy.core.events import ndjson_stream
from vpsdeploy.core.exceptions import VpsDeployError
from vpsdeploy.core.orchestrator import DeploymentRun
from vpsdeploy.models.deployment import (
    CamelModel,
    ConnectionTestResult,
    CoolifyDeployResult,
    DeploymentConfig,
)
from vpsdeploy.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()

STREAM_MEDIA_TYPE = "text/plain; charset=utf-8"


class DeployStatusResponse(CamelModel):
    """Whether a deployment-class run holds the guard."""

    in_progress: bool


class ResetResponse(DeployStatusResponse):
    """Response for a forced reset."""

    message: str = "Deployment status reset"


def _stream(run: DeploymentRun) -> StreamingResponse:
    """Serve a run's events as newline-delimited JSON."""
    return StreamingResponse(
        ndjson_stream(run.channel),
        media_type=STREAM_MEDIA_TYPE,
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )


def _start_failed(message: str, exc: Exception) -> JSONResponse:
    logger.error("deploy.start_failed", error=str(exc), exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"message": message, "error": str(exc)},
    )


@router.post(
    "",
    summary="Run a full deployment",
    description="Streams newline-delimited JSON progress events until the run ends.",
    response_class=StreamingResponse,
)
async def start_deployment(config: DeploymentConfig, orchestrator: OrchestratorDep):
    """Build, ship and start the application on the VPS."""
    try:
        run = await orchestrator.start_deployment(config)
    except VpsDeployError:
        raise
    except Exception as exc:
        return _start_failed("Deployment failed", exc)
    return _stream(run)


@router.post(
    "/setup-nginx",
    summary="Configure nginx and TLS only",
    response_class=StreamingResponse,
)
async def setup_nginx(config: DeploymentConfig, orchestrator: OrchestratorDep):
    """Install the reverse proxy and request a certificate for the domain."""
    try:
        run = await orchestrator.start_nginx_setup(config)
    except VpsDeployError:
        raise
    except Exception as exc:
        return _start_failed("Nginx setup failed", exc)
    return _stream(run)


@router.post("/reset", response_model=ResetResponse, summary="Force-clear the guard")
async def reset_deployment(guard: GuardDep) -> ResetResponse:
    """Clear the in-progress flag. Running remote work is not interrupted."""
    guard.reset()
    return ResetResponse(in_progress=False)


@router.get("/status", response_model=DeployStatusResponse, summary="Deployment status")
async def deployment_status(guard: GuardDep) -> DeployStatusResponse:
    return DeployStatusResponse(in_progress=guard.in_progress)


@router.post(
    "/test",
    response_model=ConnectionTestResult,
    summary="Test SSH connectivity",
)
async def test_connection(config: DeploymentConfig, orchestrator: OrchestratorDep):
    """Connect, run ``whoami`` and disconnect."""
    try:
        return await orchestrator.test_connection(config)
    except Exception as exc:
        error = getattr(exc, "message", None) or str(exc)
        logger.warning("deploy.test_failed", host=config.host, error=error)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"message": "Connection test failed", "error": error},
        )


@router.post(
    "/coolify",
    response_model=CoolifyDeployResult,
    summary="Trigger a Coolify deployment",
)
async def deploy_coolify():
    """Ask the configured Coolify instance to redeploy the application."""
    try:
        return await CoolifyClient().trigger_deploy()
    except VpsDeployError as exc:
        if exc.status_code < 500:
            raise
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "success": False,
                "message": "Coolify deployment failed",
                "error": exc.message,
            },
        )
