"""Remote command execution over a single SSH session."""

import asyncio
import io
import shlex
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import paramiko

from vpsdeploy.config import Settings, settings
from vpsdeploy.core.exceptions import PreconditionError, RemoteCommandError, StepFailure
from vpsdeploy.utils.logging import get_logger

logger = get_logger("remote")

_RECV_CHUNK = 32768
_POLL_INTERVAL = 0.05

_KEY_CLASSES: tuple[type[paramiko.PKey], ...] = (
    paramiko.RSAKey,
    paramiko.ECDSAKey,
    paramiko.Ed25519Key,
)


@dataclass
class CommandResult:
    """Exit status and output of one remote command."""

    command: str
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def check(self, step: str, message: str) -> "CommandResult":
        """Raise RemoteCommandError unless the command succeeded."""
        if not self.ok:
            raise RemoteCommandError(step, message, self.exit_code, self.stderr or self.stdout)
        return self


@dataclass
class SSHCredentials:
    """Authentication material, password first."""

    password: str | None = None
    private_key: str | None = None
    passphrase: str | None = None

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> "SSHCredentials":
        config = config or settings
        return cls(
            password=config.ssh_password or None,
            private_key=config.ssh_private_key or None,
            passphrase=config.ssh_private_key_passphrase or None,
        )

    def auth_method(self) -> str:
        """Name the method that will be used; raise if none is configured."""
        if self.password:
            return "password"
        if self.private_key:
            return "private key"
        raise PreconditionError(
            "No SSH credentials provided. Please set SSH_PASSWORD or SSH_PRIVATE_KEY"
        )

    def load_key(self) -> paramiko.PKey:
        for key_cls in _KEY_CLASSES:
            try:
                return key_cls.from_private_key(
                    io.StringIO(self.private_key or ""), password=self.passphrase
                )
            except paramiko.SSHException:
                continue
        raise PreconditionError("Unsupported or invalid SSH private key")


class RemoteExecutor(Protocol):
    """What the orchestrator needs from a remote session."""

    host: str

    async def connect(self) -> None: ...

    async def run(self, command: str, cwd: str | None = None) -> CommandResult: ...

    async def put_file(self, local_path: Path, remote_path: str) -> None: ...

    async def write_file(self, remote_path: str, content: str, mode: int = 0o644) -> None: ...

    async def close(self) -> None: ...


class SSHExecutor:
    """One authenticated paramiko session, used sequentially then closed once.

    paramiko is blocking, so every call runs in a worker thread.
    """

    def __init__(
        self,
        host: str,
        username: str,
        credentials: SSHCredentials | None = None,
        port: int | None = None,
        timeout: float | None = None,
    ):
        self.host = host
        self.username = username
        self.credentials = credentials or SSHCredentials.from_settings()
        self.port = port or settings.ssh_port
        self.timeout = timeout or settings.ssh_connect_timeout
        self._client: paramiko.SSHClient | None = None
        self._closed = False

    async def __aenter__(self) -> "SSHExecutor":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def connect(self) -> None:
        method = self.credentials.auth_method()
        await asyncio.to_thread(self._connect_blocking)
        logger.info(
            "remote.connected",
            host=self.host,
            username=self.username,
            auth=method,
        )

    def _connect_blocking(self) -> None:
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        kwargs = {
            "port": self.port,
            "username": self.username,
            "timeout": self.timeout,
            "banner_timeout": self.timeout,
            "auth_timeout": self.timeout,
            "look_for_keys": False,
            "allow_agent": False,
        }
        if self.credentials.password:
            kwargs["password"] = self.credentials.password
        else:
            kwargs["pkey"] = self.credentials.load_key()
        try:
            client.connect(self.host, **kwargs)
        except (paramiko.SSHException, OSError) as exc:
            client.close()
            raise StepFailure("connect", f"SSH connection failed: {exc}") from exc
        self._client = client

    def _require_client(self) -> paramiko.SSHClient:
        if self._client is None:
            raise RuntimeError("SSH session is not connected")
        return self._client

    async def run(self, command: str, cwd: str | None = None) -> CommandResult:
        """Run a command; never raises on non-zero exit."""
        if cwd:
            command = f"cd {shlex.quote(cwd)} && {command}"
        result = await asyncio.to_thread(self._run_blocking, command)
        logger.debug(
            "remote.command",
            host=self.host,
            command=command,
            exit_code=result.exit_code,
        )
        return result

    def _run_blocking(self, command: str) -> CommandResult:
        client = self._require_client()
        _, stdout, stderr = client.exec_command(command)
        channel = stdout.channel
        out: list[bytes] = []
        err: list[bytes] = []

        # Drain both streams while the command runs so neither window fills
        while not channel.exit_status_ready():
            received = False
            if channel.recv_ready():
                out.append(channel.recv(_RECV_CHUNK))
                received = True
            if channel.recv_stderr_ready():
                err.append(channel.recv_stderr(_RECV_CHUNK))
                received = True
            if not received:
                time.sleep(_POLL_INTERVAL)

        out.append(stdout.read())
        err.append(stderr.read())
        exit_code = channel.recv_exit_status()
        return CommandResult(
            command=command,
            exit_code=exit_code,
            stdout=b"".join(out).decode("utf-8", errors="replace"),
            stderr=b"".join(err).decode("utf-8", errors="replace"),
        )

    async def put_file(self, local_path: Path, remote_path: str) -> None:
        await asyncio.to_thread(self._put_blocking, local_path, remote_path)
        logger.info("remote.file_transferred", host=self.host, remote_path=remote_path)

    def _put_blocking(self, local_path: Path, remote_path: str) -> None:
        sftp = self._require_client().open_sftp()
        try:
            sftp.put(str(local_path), remote_path)
        finally:
            sftp.close()

    async def write_file(self, remote_path: str, content: str, mode: int = 0o644) -> None:
        """Write text content to a remote file without going through a shell."""
        await asyncio.to_thread(self._write_blocking, remote_path, content, mode)
        logger.info("remote.file_written", host=self.host, remote_path=remote_path)

    def _write_blocking(self, remote_path: str, content: str, mode: int) -> None:
        sftp = self._require_client().open_sftp()
        try:
            with sftp.file(remote_path, "w") as f:
                f.write(content)
            sftp.chmod(remote_path, mode)
        finally:
            sftp.close()

    async def close(self) -> None:
        """Dispose of the session. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        if self._client is not None:
            await asyncio.to_thread(self._client.close)
            self._client = None
            logger.info("remote.disconnected", host=self.host)
