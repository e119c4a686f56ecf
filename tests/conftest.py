"""Pytest configuration and fixtures."""

from pathlib import Path
from typing import Callable

import pytest
from httpx import ASGITransport, AsyncClient

from vpsdeploy.api.deps import get_deployment_orchestrator, get_guard, get_history
from vpsdeploy.config import settings
from vpsdeploy.core.exceptions import StepFailure
from vpsdeploy.core.guard import DeploymentGuard
from vpsdeploy.core.history import HistoryStore
from vpsdeploy.core.orchestrator import DeploymentOrchestrator
from vpsdeploy.core.packaging import BuildOutput
from vpsdeploy.core.remote import CommandResult, SSHCredentials
from vpsdeploy.main import app
from vpsdeploy.models.deployment import DeploymentConfig


class FakeRemote:
    """Records every remote call instead of talking to a host.

    ``failures`` maps a command substring to ``(exit_code, stderr)``.
    """

    def __init__(
        self,
        host: str = "203.0.113.10",
        failures: dict[str, tuple[int, str]] | None = None,
        connect_error: Exception | None = None,
    ):
        self.host = host
        self.failures = failures or {}
        self.connect_error = connect_error
        self.connected = False
        self.close_calls = 0
        self.commands: list[str] = []
        self.cwds: list[str | None] = []
        self.uploads: list[tuple[Path, str]] = []
        self.files: dict[str, tuple[str, int]] = {}

    async def connect(self) -> None:
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True

    async def run(self, command: str, cwd: str | None = None) -> CommandResult:
        self.commands.append(command)
        self.cwds.append(cwd)
        for pattern, (exit_code, stderr) in self.failures.items():
            if pattern in command:
                return CommandResult(command, exit_code, "", stderr)
        stdout = "deploy\n" if command == "whoami" else ""
        return CommandResult(command, 0, stdout, "")

    async def put_file(self, local_path: Path, remote_path: str) -> None:
        self.uploads.append((local_path, remote_path))

    async def write_file(self, remote_path: str, content: str, mode: int = 0o644) -> None:
        self.files[remote_path] = (content, mode)

    async def close(self) -> None:
        self.close_calls += 1
        self.connected = False


class FakeBuilder:
    """Stands in for the local npm build."""

    def __init__(self, fail_build: bool = False):
        self.fail_build = fail_build
        self.built = False
        self.archives: list[Path] = []

    async def build(self) -> BuildOutput:
        if self.fail_build:
            raise StepFailure("build", "Build failed with exit code 1: tsc error")
        self.built = True
        return BuildOutput(stdout="vite build done", stderr="")

    async def package(self, archive_path) -> int:
        path = Path(archive_path)
        path.write_bytes(b"archive")
        self.archives.append(path)
        return path.stat().st_size


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep tests away from real credentials and paths."""
    monkeypatch.setattr(settings, "app_env", "development")
    monkeypatch.setattr(settings, "admin_token", "")
    monkeypatch.setattr(settings, "local_archive_path", str(tmp_path / "deployment.tar.gz"))
    monkeypatch.setattr(settings, "acme_email", None)


@pytest.fixture
def guard() -> DeploymentGuard:
    """Create a fresh guard for tests."""
    return DeploymentGuard()


@pytest.fixture
def history(tmp_path: Path) -> HistoryStore:
    """History store backed by a temporary database."""
    return HistoryStore(tmp_path / "history.db")


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def builder() -> FakeBuilder:
    return FakeBuilder()


@pytest.fixture
def make_orchestrator(
    guard: DeploymentGuard, history: HistoryStore, builder: FakeBuilder
) -> Callable[..., DeploymentOrchestrator]:
    """Build an orchestrator wired to fakes; pass a remote to script failures."""

    def _make(
        remote: FakeRemote | None = None,
        credentials: SSHCredentials | None = None,
    ) -> DeploymentOrchestrator:
        session = remote or FakeRemote()
        return DeploymentOrchestrator(
            guard=guard,
            history=history,
            builder=builder,
            executor_factory=lambda config: session,
            credentials=credentials or SSHCredentials(password="hunter2"),
        )

    return _make


@pytest.fixture
def orchestrator(make_orchestrator, remote: FakeRemote) -> DeploymentOrchestrator:
    return make_orchestrator(remote)


@pytest.fixture
def deploy_config() -> DeploymentConfig:
    return DeploymentConfig(
        host="203.0.113.10",
        username="root",
        deploy_path="/var/www/memopyk",
        domain="new.memopyk.com",
    )


@pytest.fixture
async def client(
    orchestrator: DeploymentOrchestrator,
    guard: DeploymentGuard,
    history: HistoryStore,
) -> AsyncClient:
    """Create an async test client wired to the fake orchestrator."""
    app.dependency_overrides[get_deployment_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_guard] = lambda: guard
    app.dependency_overrides[get_history] = lambda: history

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    # Cleanup after test
    app.dependency_overrides.clear()
