"""Async HTTP client for the deployment API."""

import asyncio
from typing import Any

import httpx

from vpsdeploy.client.panel import HISTORY_PAGE_SIZE, DeploymentPanel
from vpsdeploy.client.stream import NDJSONStreamParser
from vpsdeploy.core.exceptions import VpsDeployError
from vpsdeploy.models.deployment import DeploymentConfig
from vpsdeploy.utils.logging import get_logger

logger = get_logger("client")

HEALTH_POLL_INTERVAL = 30.0
HEALTH_POLL_ATTEMPTS = 24
HEALTH_CHECK_TIMEOUT = 5.0


class DeploymentClientError(VpsDeployError):
    """The API answered with an error status."""

    def __init__(self, status_code: int, message: str, error: str | None = None):
        super().__init__(message, {"error": error} if error else None)
        self.status_code = status_code


def _error_from(response: httpx.Response) -> DeploymentClientError:
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    message = body.get("message") or response.reason_phrase or "Request failed"
    return DeploymentClientError(response.status_code, message, body.get("error"))


class DeploymentClient:
    """Talks to ``/v1/deploy`` and ``/v1/deployment-history``."""

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float | None = None,
    ):
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        # Runs may take many minutes, so reads never time out by default
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            transport=transport,
            timeout=httpx.Timeout(timeout, connect=10.0),
        )

    async def __aenter__(self) -> "DeploymentClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _json(self, method: str, path: str, **kwargs: Any) -> Any:
        response = await self._client.request(method, path, **kwargs)
        if response.status_code >= 400:
            raise _error_from(response)
        return response.json()

    async def status(self) -> bool:
        data = await self._json("GET", "/v1/deploy/status")
        return bool(data["inProgress"])

    async def reset(self, panel: DeploymentPanel | None = None) -> bool:
        data = await self._json("POST", "/v1/deploy/reset")
        if panel is not None:
            panel.reset()
        return bool(data["inProgress"])

    async def test_connection(self, config: DeploymentConfig) -> str:
        data = await self._json(
            "POST", "/v1/deploy/test", json=config.model_dump(by_alias=True, exclude_none=True)
        )
        return data["message"]

    async def history(self, limit: int | None = HISTORY_PAGE_SIZE) -> list[dict[str, Any]]:
        params = {"limit": limit} if limit else None
        return await self._json("GET", "/v1/deployment-history", params=params)

    async def deploy(
        self, config: DeploymentConfig, panel: DeploymentPanel | None = None
    ) -> DeploymentPanel:
        """Run a full deployment, mirroring its events into ``panel``."""
        return await self._stream("/v1/deploy", config, panel or DeploymentPanel(), "Deployment")

    async def setup_nginx(
        self, config: DeploymentConfig, panel: DeploymentPanel | None = None
    ) -> DeploymentPanel:
        """Run the nginx/TLS setup, mirroring its events into ``panel``."""
        return await self._stream(
            "/v1/deploy/setup-nginx", config, panel or DeploymentPanel(), "Nginx setup"
        )

    async def coolify(
        self,
        health_url: str,
        panel: DeploymentPanel | None = None,
        poll_interval: float = HEALTH_POLL_INTERVAL,
        max_attempts: int = HEALTH_POLL_ATTEMPTS,
    ) -> DeploymentPanel:
        """Trigger a Coolify redeploy, then wait for ``health_url`` to answer.

        Coolify builds asynchronously, so the site health endpoint is the
        only signal that the new release is live.
        """
        panel = panel or DeploymentPanel()
        panel.begin("Starting deployment via Coolify API...")
        panel.percentage = 10

        try:
            await self._json("POST", "/v1/deploy/coolify")
        except DeploymentClientError as exc:
            panel.fail(exc.message, title="Coolify deployment failed")
            raise

        panel.logs.append("Deployment triggered successfully")
        panel.percentage = 25
        panel.logs.append("Building application from the repository...")
        panel.percentage = 50

        if await self._wait_for_site(health_url, panel, poll_interval, max_attempts):
            panel.logs.append("Site is responding - deployment complete")
            panel.finish(title="Coolify deployment succeeded")
        else:
            panel.logs.append(
                "WARNING: Deployment taking longer than expected - check the Coolify dashboard"
            )
            panel.finish(title="Coolify deployment still building")
        return panel

    async def _wait_for_site(
        self,
        health_url: str,
        panel: DeploymentPanel,
        poll_interval: float,
        max_attempts: int,
    ) -> bool:
        for attempt in range(1, max_attempts + 1):
            panel.percentage = int(50 + attempt / max_attempts * 45)
            try:
                response = await self._client.head(health_url, timeout=HEALTH_CHECK_TIMEOUT)
                if response.is_success:
                    return True
            except httpx.HTTPError as exc:
                logger.debug("client.site_not_ready", url=health_url, error=str(exc))

            if attempt % 4 == 0:
                elapsed = int(attempt * poll_interval)
                panel.logs.append(f"Still building... ({elapsed}s elapsed)")
            await asyncio.sleep(poll_interval)
        return False

    async def _stream(
        self, path: str, config: DeploymentConfig, panel: DeploymentPanel, label: str
    ) -> DeploymentPanel:
        parser = NDJSONStreamParser()
        panel.begin()
        payload = config.model_dump(by_alias=True, exclude_none=True)

        try:
            async with self._client.stream("POST", path, json=payload) as response:
                if response.status_code != 200:
                    await response.aread()
                    error = _error_from(response)
                    panel.fail(error.message, title=f"{label} failed")
                    raise error

                async for chunk in response.aiter_bytes():
                    for item in parser.feed(chunk):
                        panel.apply(item)
        except httpx.HTTPError as exc:
            logger.warning("client.stream_interrupted", path=path, error=str(exc))
            panel.fail(f"Connection lost: {exc}", title=f"{label} failed")
            return panel

        for item in parser.flush():
            panel.apply(item)
        panel.finish(title=f"{label} succeeded")
        return panel
