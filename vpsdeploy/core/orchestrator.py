"""Deployment Orchestrator.

Drives a deployment-class run through a fixed table of steps and streams
progress events while it goes.

Full deployment:
    building -> packaging -> connecting -> transferring -> installing
    -> starting_service -> configuring_proxy -> provisioning_tls
    -> cleaning_up -> completed

nginx/TLS setup:
    connecting -> installing -> configuring_proxy -> provisioning_tls
    -> completed

Any step failure moves the run to ``failed`` except for steps flagged as
advisory, whose failures are reported as warnings. Nothing is retried or
rolled back.
"""

import asyncio
import shlex
import time
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Awaitable, Callable
from uuid import uuid4

from vpsdeploy.config import settings
from vpsdeploy.core.events import EventChannel, ProgressEmitter
from vpsdeploy.core.exceptions import (
    AdvisoryFailure,
    ConflictError,
    PreconditionError,
    StepFailure,
)
from vpsdeploy.core.guard import DeploymentGuard, get_deployment_guard
from vpsdeploy.core.history import HistoryStore, get_history_store
from vpsdeploy.core.packaging import LocalBuilder
from vpsdeploy.core.remote import RemoteExecutor, SSHCredentials, SSHExecutor
from vpsdeploy.core.templates import render_env_file, render_nginx_site
from vpsdeploy.models.deployment import (
    ConnectionTestResult,
    DeploymentConfig,
    DeploymentHistoryEntry,
    DeploymentStatus,
    DeploymentType,
    RunState,
)
from vpsdeploy.utils.logging import bound_context, get_logger

logger = get_logger("orchestrator")

ExecutorFactory = Callable[[DeploymentConfig], RemoteExecutor]

REMOTE_ARCHIVE_NAME = "deployment.tar.gz"
PROXY_PACKAGES = "nginx certbot python3-certbot-nginx"

CONFLICT_MESSAGE = (
    "Deployment already in progress. Please wait or reset the deployment status."
)


@dataclass
class RunContext:
    """Mutable state shared by the steps of one run."""

    kind: DeploymentType
    config: DeploymentConfig
    emitter: ProgressEmitter
    deploy_path: str
    domain: str
    archive_path: Path
    executor: RemoteExecutor | None = None
    state: RunState = RunState.IDLE
    warnings: list[AdvisoryFailure] = field(default_factory=list)

    @property
    def remote(self) -> RemoteExecutor:
        if self.executor is None:
            raise StepFailure(self.state.value, "No remote session is open")
        return self.executor

    @property
    def remote_archive(self) -> str:
        return f"{self.deploy_path.rstrip('/')}/{REMOTE_ARCHIVE_NAME}"


StepAction = Callable[[RunContext], Awaitable[None]]


@dataclass(frozen=True)
class Step:
    """One row of a run's transition table.

    ``enter`` is the checkpoint emitted when the step starts, ``done`` the one
    emitted when it finishes. An advisory step's failure becomes a warning
    and the run moves on; any other failure ends the run.
    """

    state: RunState
    action: StepAction
    enter: tuple[str, int] | None = None
    done: tuple[str, int] | None = None
    advisory: bool = False


@dataclass
class Plan:
    """A complete run description for one deployment type."""

    kind: DeploymentType
    steps: list[Step]
    initial: tuple[str, int]
    final: tuple[str, int]
    failure_prefix: str
    success_message: Callable[[RunContext], str]


@dataclass
class DeploymentRun:
    """Handle on an accepted run: its event channel and background task."""

    run_id: str
    kind: DeploymentType
    channel: EventChannel
    emitter: ProgressEmitter
    history_id: str | None = None
    task: asyncio.Task | None = None
    state: RunState = RunState.IDLE

    async def wait(self) -> RunState:
        if self.task is not None:
            await asyncio.shield(self.task)
        return self.state


class DeploymentOrchestrator:
    """Owns the run lifecycle: guard, steps, events and history."""

    def __init__(
        self,
        guard: DeploymentGuard | None = None,
        history: HistoryStore | None = None,
        builder: LocalBuilder | None = None,
        executor_factory: ExecutorFactory | None = None,
        credentials: SSHCredentials | None = None,
    ):
        self.guard = guard or get_deployment_guard()
        self.history = history or get_history_store()
        self.builder = builder or LocalBuilder()
        self.credentials = credentials or SSHCredentials.from_settings()
        self.executor_factory = executor_factory or self._ssh_executor
        self.logger = logger
        self._tasks: set[asyncio.Task] = set()

    def _ssh_executor(self, config: DeploymentConfig) -> RemoteExecutor:
        return SSHExecutor(config.host, config.username, credentials=self.credentials)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def start_deployment(self, config: DeploymentConfig) -> DeploymentRun:
        """Accept a full deployment or raise before any side effect."""
        return await self._start(self.full_deploy_plan(), config)

    async def start_nginx_setup(self, config: DeploymentConfig) -> DeploymentRun:
        """Accept an nginx/TLS-only setup or raise before any side effect."""
        return await self._start(self.nginx_setup_plan(), config)

    async def test_connection(self, config: DeploymentConfig) -> ConnectionTestResult:
        """Open a session, run ``whoami`` and close it again."""
        self.credentials.auth_method()
        executor = self.executor_factory(config)
        try:
            await executor.connect()
            result = await executor.run("whoami")
        finally:
            await executor.close()

        result.check("test", "SSH test failed")
        user = result.stdout.strip()
        return ConnectionTestResult(
            success=True,
            message=f"Connection successful. Connected as: {user}",
            user=user,
        )

    async def _start(self, plan: Plan, config: DeploymentConfig) -> DeploymentRun:
        if not config.domain:
            raise PreconditionError("Host, username, and domain are required")
        self.credentials.auth_method()

        run_id = uuid4().hex
        if not self.guard.try_acquire(run_id):
            self.logger.warning("orchestrator.run.rejected", kind=plan.kind.value)
            raise ConflictError(CONFLICT_MESSAGE)

        started = time.monotonic()
        channel = EventChannel()
        run = DeploymentRun(
            run_id=run_id,
            kind=plan.kind,
            channel=channel,
            emitter=ProgressEmitter(channel),
        )
        try:
            entry = await self.history.create(DeploymentHistoryEntry(type=plan.kind))
        except Exception:
            self.guard.release(run_id)
            raise
        run.history_id = entry.id

        ctx = RunContext(
            kind=plan.kind,
            config=config,
            emitter=run.emitter,
            deploy_path=config.deploy_path or settings.default_deploy_path,
            domain=config.domain,
            archive_path=Path(settings.local_archive_path),
        )

        # Runs in its own task so a client disconnect cannot cancel it
        run.task = asyncio.create_task(self._execute(plan, ctx, run, started))
        self._tasks.add(run.task)
        run.task.add_done_callback(self._tasks.discard)

        self.logger.info(
            "orchestrator.run.started",
            run_id=run_id,
            kind=plan.kind.value,
            host=config.host,
            domain=config.domain,
        )
        return run

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def _execute(
        self, plan: Plan, ctx: RunContext, run: DeploymentRun, started: float
    ) -> None:
        with bound_context(run_id=run.run_id, kind=plan.kind.value):
            await self._drive(plan, ctx, run, started)

    async def _drive(
        self, plan: Plan, ctx: RunContext, run: DeploymentRun, started: float
    ) -> None:
        emitter = ctx.emitter
        error: str | None = None
        try:
            emitter.log(
                "Starting deployment process..."
                if plan.kind == DeploymentType.DEPLOYMENT
                else "Starting nginx and SSL setup..."
            )
            emitter.progress(*plan.initial)

            for step in plan.steps:
                await self._run_step(step, ctx)

            ctx.state = RunState.COMPLETED
            emitter.progress(*plan.final)
            emitter.success(plan.success_message(ctx))

        except Exception as exc:
            ctx.state = RunState.FAILED
            error = getattr(exc, "message", None) or str(exc) or type(exc).__name__
            self.logger.error(
                "orchestrator.run.failed",
                run_id=run.run_id,
                kind=plan.kind.value,
                error=error,
                exc_info=not isinstance(exc, StepFailure),
            )
            emitter.error(f"{plan.failure_prefix}: {error}")

        finally:
            if ctx.executor is not None:
                try:
                    await ctx.executor.close()
                except Exception:
                    self.logger.exception("orchestrator.session_close_failed", run_id=run.run_id)

            run.state = ctx.state
            duration = int(time.monotonic() - started)
            await self._record_outcome(run, ctx, duration, error)
            self.guard.release(run.run_id)
            run.channel.close()

            self.logger.info(
                "orchestrator.run.finished",
                run_id=run.run_id,
                kind=plan.kind.value,
                state=ctx.state.value,
                duration_s=duration,
                warnings=len(ctx.warnings),
            )

    async def _run_step(self, step: Step, ctx: RunContext) -> None:
        ctx.state = step.state
        if step.enter:
            ctx.emitter.progress(*step.enter)

        self.logger.debug("orchestrator.step.started", state=step.state.value)
        try:
            await step.action(ctx)
        except StepFailure as exc:
            if not step.advisory:
                raise
            advisory = AdvisoryFailure.from_failure(exc)
            ctx.warnings.append(advisory)
            self.logger.warning(
                "orchestrator.step.advisory_failure",
                state=step.state.value,
                error=advisory.message,
            )
            ctx.emitter.warning(advisory.message)
            return

        if step.done:
            ctx.emitter.progress(*step.done)

    async def _record_outcome(
        self, run: DeploymentRun, ctx: RunContext, duration: int, error: str | None
    ) -> None:
        if run.history_id is None:
            return
        status = (
            DeploymentStatus.SUCCESS
            if ctx.state == RunState.COMPLETED
            else DeploymentStatus.FAILED
        )
        try:
            await self.history.update(
                run.history_id,
                {"status": status, "duration": duration, "message": error},
            )
        except Exception:
            self.logger.exception("orchestrator.history_update_failed", run_id=run.run_id)

    # ------------------------------------------------------------------
    # Plans
    # ------------------------------------------------------------------

    def full_deploy_plan(self) -> Plan:
        return Plan(
            kind=DeploymentType.DEPLOYMENT,
            initial=("Initializing", 5),
            steps=[
                Step(
                    RunState.BUILDING,
                    self._build,
                    enter=("Building frontend and backend", 20),
                    done=("Build complete", 40),
                ),
                Step(
                    RunState.PACKAGING,
                    self._package,
                    enter=("Creating deployment archive", 50),
                    done=("Archive created", 60),
                ),
                Step(RunState.CONNECTING, self._connect, enter=("Connecting to VPS", 65)),
                Step(
                    RunState.TRANSFERRING,
                    self._transfer,
                    enter=("Transferring files to VPS", 70),
                    done=("Files transferred", 80),
                ),
                Step(RunState.INSTALLING, self._install, enter=("Installing dependencies", 85)),
                Step(
                    RunState.STARTING_SERVICE,
                    self._start_service,
                    enter=("Setting up application", 90),
                ),
                Step(
                    RunState.CONFIGURING_PROXY,
                    self._configure_proxy,
                    enter=("Configuring web server", 95),
                ),
                Step(
                    RunState.PROVISIONING_TLS,
                    self._provision_certificate,
                    enter=("Installing SSL certificate", 98),
                    advisory=True,
                ),
                Step(RunState.PROVISIONING_TLS, self._enable_renewal),
                Step(RunState.CLEANING_UP, self._cleanup),
            ],
            final=("Deployment complete", 100),
            failure_prefix="Deployment failed",
            success_message=lambda ctx: (
                f"Deployment completed! Application is now live at https://{ctx.domain}"
            ),
        )

    def nginx_setup_plan(self) -> Plan:
        return Plan(
            kind=DeploymentType.NGINX_CONFIG,
            initial=("Starting nginx and SSL setup", 0),
            steps=[
                Step(RunState.CONNECTING, self._connect, enter=("Connecting to VPS", 10)),
                Step(
                    RunState.INSTALLING,
                    self._install_proxy_tooling,
                    enter=("Installing nginx and certbot", 30),
                ),
                Step(
                    RunState.CONFIGURING_PROXY,
                    self._write_proxy_site,
                    enter=("Executing nginx setup", 50),
                ),
                Step(
                    RunState.PROVISIONING_TLS,
                    self._provision_certificate,
                    enter=("Setting up SSL certificate", 80),
                    advisory=True,
                ),
                Step(RunState.PROVISIONING_TLS, self._enable_renewal),
            ],
            final=("Setup complete", 100),
            failure_prefix="Setup failed",
            success_message=lambda ctx: (
                f"Nginx and SSL setup completed! Website available at https://{ctx.domain}"
            ),
        )

    # ------------------------------------------------------------------
    # Step actions
    # ------------------------------------------------------------------

    async def _build(self, ctx: RunContext) -> None:
        ctx.emitter.log("Building project...")
        output = await self.builder.build()
        ctx.emitter.log(f"Build completed: {output.stdout.strip()[-2000:]}")
        if output.stderr.strip():
            ctx.emitter.log(f"Build warnings: {output.stderr.strip()[-2000:]}")

    async def _package(self, ctx: RunContext) -> None:
        ctx.emitter.log("Preparing deployment package...")
        size = await self.builder.package(ctx.archive_path)
        ctx.emitter.log(f"Archive created: {size} bytes")

    async def _connect(self, ctx: RunContext) -> None:
        ctx.emitter.log(f"Connecting to VPS at {ctx.config.host}...")
        ctx.emitter.log(f"Using SSH {self.credentials.auth_method()} authentication")
        ctx.executor = self.executor_factory(ctx.config)
        await ctx.executor.connect()
        ctx.emitter.log("SSH connection established")

    async def _transfer(self, ctx: RunContext) -> None:
        path = shlex.quote(ctx.deploy_path)
        (await ctx.remote.run(f"mkdir -p {path}")).check(
            "transfer", "Could not create deployment directory"
        )
        ctx.emitter.log(f"Created deployment directory: {ctx.deploy_path}")

        await ctx.remote.put_file(ctx.archive_path, ctx.remote_archive)
        ctx.emitter.log("Archive transferred to VPS")

    async def _install(self, ctx: RunContext) -> None:
        ctx.emitter.log("Extracting files on VPS...")
        (
            await ctx.remote.run(f"tar -xzf {REMOTE_ARCHIVE_NAME}", cwd=ctx.deploy_path)
        ).check("install", "Archive extraction failed")
        ctx.emitter.log("Files extracted successfully")

        ctx.emitter.log("Installing dependencies on VPS...")
        (await ctx.remote.run(settings.install_command, cwd=ctx.deploy_path)).check(
            "install", "Dependency installation failed"
        )
        ctx.emitter.log("Dependencies installed successfully")

        ctx.emitter.log("Setting up environment configuration...")
        await ctx.remote.write_file(
            f"{ctx.deploy_path.rstrip('/')}/.env",
            render_env_file(settings.remote_environment()),
            mode=0o600,
        )
        ctx.emitter.log("Environment configuration created")

    async def _start_service(self, ctx: RunContext) -> None:
        ctx.emitter.log("Setting up application service...")
        name = shlex.quote(settings.app_name)
        entrypoint = shlex.quote(settings.app_entrypoint)
        remote = ctx.remote

        (await remote.run("command -v pm2 || npm install -g pm2")).check(
            "service", "Could not install pm2"
        )
        await remote.run(f"pm2 delete {name} || true", cwd=ctx.deploy_path)
        (
            await remote.run(f"pm2 start {entrypoint} --name {name}", cwd=ctx.deploy_path)
        ).check("service", "Application failed to start")
        (await remote.run("pm2 save")).check("service", "Could not save pm2 process list")
        ctx.emitter.log("Application service started with PM2")

    async def _configure_proxy(self, ctx: RunContext) -> None:
        ctx.emitter.log("Setting up nginx reverse proxy...")
        await self._install_proxy_tooling(ctx)
        await self._write_proxy_site(ctx)

    async def _install_proxy_tooling(self, ctx: RunContext) -> None:
        (
            await ctx.remote.run(
                "export DEBIAN_FRONTEND=noninteractive && apt-get update "
                f"&& apt-get install -y {PROXY_PACKAGES}"
            )
        ).check("proxy", "Could not install nginx and certbot")
        ctx.emitter.log("nginx and certbot installed")

    async def _write_proxy_site(self, ctx: RunContext) -> None:
        site = shlex.quote(settings.app_name)
        available = f"/etc/nginx/sites-available/{settings.app_name}"
        remote = ctx.remote

        await remote.write_file(available, render_nginx_site(ctx.domain))
        (
            await remote.run(f"ln -sf /etc/nginx/sites-available/{site} /etc/nginx/sites-enabled/")
        ).check("proxy", "Could not enable nginx site")
        await remote.run("rm -f /etc/nginx/sites-enabled/default")

        (await remote.run("nginx -t")).check("proxy", "Nginx configuration error")
        ctx.emitter.log("Nginx configuration created and tested")

        (
            await remote.run("systemctl enable nginx && systemctl reload-or-restart nginx")
        ).check("proxy", "Nginx reload failed")
        ctx.emitter.log("Nginx reloaded")

    async def _provision_certificate(self, ctx: RunContext) -> None:
        ctx.emitter.log("Setting up SSL certificate...")
        domain = shlex.quote(ctx.domain)
        www = shlex.quote(f"www.{ctx.domain}")
        email = shlex.quote(settings.acme_email or f"admin@{ctx.domain}")
        result = await ctx.remote.run(
            f"certbot --nginx -d {domain} -d {www} --non-interactive "
            f"--agree-tos --email {email} --redirect"
        )
        if not result.ok:
            ctx.emitter.log(
                "You may need to configure DNS first and retry: sudo certbot --nginx"
            )
        result.check("tls", "SSL certificate setup warning")
        ctx.emitter.log("SSL certificate installed successfully")

    async def _enable_renewal(self, ctx: RunContext) -> None:
        result = await ctx.remote.run("systemctl enable --now certbot.timer")
        if result.ok:
            ctx.emitter.log("Automatic SSL renewal configured")
        else:
            ctx.emitter.log(f"Could not enable certbot.timer: {result.stderr.strip()}")

    async def _cleanup(self, ctx: RunContext) -> None:
        await ctx.remote.run(f"rm -f {shlex.quote(ctx.remote_archive)}")
        await ctx.remote.close()
        ctx.archive_path.unlink(missing_ok=True)
        ctx.emitter.log(f"Application running on VPS at {ctx.deploy_path}")


_orchestrator: DeploymentOrchestrator | None = None


@lru_cache
def get_orchestrator() -> DeploymentOrchestrator:
    """Get the orchestrator singleton."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = DeploymentOrchestrator()
    return _orchestrator
