"""Client side of the deployment panel."""

from vpsdeploy.client.http import DeploymentClient, DeploymentClientError
from vpsdeploy.client.panel import DeploymentPanel, Notification, PanelState, format_duration
from vpsdeploy.client.stream import NDJSONStreamParser

__all__ = [
    "DeploymentClient",
    "DeploymentClientError",
    "DeploymentPanel",
    "NDJSONStreamParser",
    "Notification",
    "PanelState",
    "format_duration",
]
