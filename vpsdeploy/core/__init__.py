"""Core functionality for vpsdeploy."""

from vpsdeploy.core.exceptions import (
    AdvisoryFailure,
    AuthenticationError,
    ConflictError,
    HistoryEntryNotFoundError,
    PreconditionError,
    RemoteCommandError,
    StepFailure,
    VpsDeployError,
)
from vpsdeploy.core.guard import DeploymentGuard, get_deployment_guard
from vpsdeploy.core.history import HistoryStore, get_history_store
from vpsdeploy.core.orchestrator import DeploymentOrchestrator, get_orchestrator

__all__ = [
    "AdvisoryFailure",
    "AuthenticationError",
    "ConflictError",
    "HistoryEntryNotFoundError",
    "PreconditionError",
    "RemoteCommandError",
    "StepFailure",
    "VpsDeployError",
    "DeploymentGuard",
    "get_deployment_guard",
    "HistoryStore",
    "get_history_store",
    "DeploymentOrchestrator",
    "get_orchestrator",
]
