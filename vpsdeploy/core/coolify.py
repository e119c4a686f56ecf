"""Trigger deployments through a Coolify instance."""

import httpx

from vpsdeploy.config import Settings, settings
from vpsdeploy.core.exceptions import CoolifyError, PreconditionError
from vpsdeploy.models.deployment import CoolifyDeployResult
from vpsdeploy.utils.logging import get_logger

logger = get_logger("coolify")


class CoolifyClient:
    """Minimal client for Coolify's deploy endpoint."""

    def __init__(
        self,
        config: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 30.0,
    ):
        config = config or settings
        self.api_url = (config.coolify_api_url or "").rstrip("/")
        self.token = config.coolify_api_token
        self.app_uuid = config.coolify_app_uuid
        self._transport = transport
        self._timeout = timeout

    async def trigger_deploy(self) -> CoolifyDeployResult:
        if not (self.api_url and self.token and self.app_uuid):
            raise PreconditionError(
                "Coolify is not configured. Set COOLIFY_API_URL, "
                "COOLIFY_API_TOKEN and COOLIFY_APP_UUID"
            )

        async with httpx.AsyncClient(
            base_url=self.api_url,
            timeout=self._timeout,
            transport=self._transport,
        ) as client:
            try:
                response = await client.post(
                    "/api/v1/deploy",
                    json={"uuid": self.app_uuid},
                    headers={"Authorization": f"Bearer {self.token}"},
                )
            except httpx.HTTPError as exc:
                raise CoolifyError(f"Coolify request failed: {exc}") from exc

        if response.status_code != 200:
            logger.error("coolify.deploy_rejected", status_code=response.status_code)
            raise CoolifyError(f"Coolify API returned status {response.status_code}")

        logger.info("coolify.deploy_triggered", app_uuid=self.app_uuid)
        try:
            payload = response.json()
        except ValueError:
            payload = response.text
        return CoolifyDeployResult(
            success=True,
            message="Deployment triggered via Coolify API",
            response=payload,
        )
