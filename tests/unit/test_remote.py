"""Unit tests for remote command execution helpers."""

import pytest

from vpsdeploy.core.exceptions import PreconditionError, RemoteCommandError
from vpsdeploy.core.remote import CommandResult, SSHCredentials, SSHExecutor


class TestCommandResult:
    """Tests for CommandResult."""

    def test_check_passes_on_zero_exit(self):
        result = CommandResult("nginx -t", 0, "ok", "")

        assert result.check("proxy", "Nginx configuration error") is result

    def test_check_raises_with_stderr(self):
        result = CommandResult("nginx -t", 1, "", "  unknown directive  \n")

        with pytest.raises(RemoteCommandError) as exc_info:
            result.check("proxy", "Nginx configuration error")

        assert exc_info.value.message == "Nginx configuration error: unknown directive"
        assert exc_info.value.exit_code == 1
        assert exc_info.value.step == "proxy"

    def test_check_falls_back_to_stdout(self):
        result = CommandResult("npm ci", 1, "npm ERR! code E404", "")

        with pytest.raises(RemoteCommandError, match="E404"):
            result.check("install", "Dependency installation failed")


class TestSSHCredentials:
    """Tests for SSHCredentials."""

    def test_password_preferred(self):
        creds = SSHCredentials(password="pw", private_key="-----BEGIN KEY-----")

        assert creds.auth_method() == "password"

    def test_private_key(self):
        assert SSHCredentials(private_key="key").auth_method() == "private key"

    def test_missing_credentials(self):
        with pytest.raises(PreconditionError, match="SSH_PASSWORD or SSH_PRIVATE_KEY"):
            SSHCredentials().auth_method()

    def test_invalid_key_rejected(self):
        with pytest.raises(PreconditionError):
            SSHCredentials(private_key="not a key").load_key()


class TestSSHExecutor:
    """Tests for SSHExecutor that do not open a connection."""

    @pytest.mark.asyncio
    async def test_run_prefixes_quoted_cwd(self, monkeypatch: pytest.MonkeyPatch):
        executor = SSHExecutor("203.0.113.10", "root", SSHCredentials(password="pw"))
        monkeypatch.setattr(
            executor, "_run_blocking", lambda command: CommandResult(command, 0)
        )

        result = await executor.run("npm ci --production", cwd="/var/www/my app")

        assert result.command == "cd '/var/www/my app' && npm ci --production"

    @pytest.mark.asyncio
    async def test_close_without_connect(self):
        executor = SSHExecutor("203.0.113.10", "root", SSHCredentials(password="pw"))

        await executor.close()
        await executor.close()

    @pytest.mark.asyncio
    async def test_run_before_connect_fails(self):
        executor = SSHExecutor("203.0.113.10", "root", SSHCredentials(password="pw"))

        with pytest.raises(RuntimeError):
            await executor.run("whoami")


class ScriptedChannel:
    """Channel whose command only exits once both streams are drained."""

    def __init__(self, stdout_chunks: list[bytes], stderr_chunks: list[bytes], exit_code: int):
        self.stdout_chunks = list(stdout_chunks)
        self.stderr_chunks = list(stderr_chunks)
        self.exit_code = exit_code

    def exit_status_ready(self) -> bool:
        return not self.stdout_chunks and not self.stderr_chunks

    def recv_ready(self) -> bool:
        return bool(self.stdout_chunks)

    def recv(self, nbytes: int) -> bytes:
        return self.stdout_chunks.pop(0)

    def recv_stderr_ready(self) -> bool:
        return bool(self.stderr_chunks)

    def recv_stderr(self, nbytes: int) -> bytes:
        return self.stderr_chunks.pop(0)

    def recv_exit_status(self) -> int:
        return self.exit_code


class ScriptedFile:
    def __init__(self, channel: ScriptedChannel):
        self.channel = channel

    def read(self) -> bytes:
        return b""


class ScriptedClient:
    def __init__(self, channel: ScriptedChannel):
        self.channel = channel
        self.commands: list[str] = []

    def exec_command(self, command: str):
        self.commands.append(command)
        stream = ScriptedFile(self.channel)
        return None, stream, stream


class TestCommandOutputCollection:
    """Tests for reading command output off the SSH channel."""

    def test_stderr_drained_alongside_stdout(self):
        noisy = [b"npm WARN deprecated pkg@1.0.0\n" * 2000 for _ in range(50)]
        channel = ScriptedChannel([b"added 812 packages\n"], noisy, exit_code=1)
        executor = SSHExecutor("203.0.113.10", "root", SSHCredentials(password="pw"))
        executor._client = ScriptedClient(channel)

        result = executor._run_blocking("npm ci --production")

        assert result.exit_code == 1
        assert result.stdout == "added 812 packages\n"
        assert result.stderr == b"".join(noisy).decode()
        assert len(result.stderr) > 2 * 1024 * 1024
