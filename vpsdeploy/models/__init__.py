"""Data models for vpsdeploy."""

from vpsdeploy.models.deployment import (
    ConnectionTestResult,
    CoolifyDeployResult,
    DeploymentConfig,
    DeploymentHistoryCreate,
    DeploymentHistoryEntry,
    DeploymentHistoryUpdate,
    DeploymentStatus,
    DeploymentType,
    RunState,
)

__all__ = [
    "ConnectionTestResult",
    "CoolifyDeployResult",
    "DeploymentConfig",
    "DeploymentHistoryCreate",
    "DeploymentHistoryEntry",
    "DeploymentHistoryUpdate",
    "DeploymentStatus",
    "DeploymentType",
    "RunState",
]
