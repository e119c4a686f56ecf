"""Custom exceptions for vpsdeploy."""

from typing import Any


class VpsDeployError(Exception):
    """Base exception for vpsdeploy."""

    status_code: int = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class PreconditionError(VpsDeployError):
    """A request cannot start: missing fields or missing credentials."""

    status_code = 400


class AuthenticationError(VpsDeployError):
    """Caller is not an authenticated admin."""

    status_code = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class ConflictError(VpsDeployError):
    """Another deployment-class run holds the guard."""

    status_code = 409


class HistoryEntryNotFoundError(VpsDeployError):
    """Deployment history entry not found."""

    status_code = 404

    def __init__(self, entry_id: str):
        super().__init__(
            "Deployment history entry not found",
            {"entry_id": entry_id},
        )


class StepFailure(VpsDeployError):
    """A deployment step failed; the run is aborted."""

    def __init__(self, step: str, message: str, stderr: str | None = None):
        details: dict[str, Any] = {"step": step}
        if stderr:
            details["stderr"] = stderr
        super().__init__(message, details)
        self.step = step


class AdvisoryFailure(StepFailure):
    """A step failed but the run may continue (TLS issuance)."""

    @classmethod
    def from_failure(cls, exc: StepFailure) -> "AdvisoryFailure":
        return cls(exc.step, exc.message, exc.details.get("stderr"))


class RemoteCommandError(StepFailure):
    """A remote command exited with a non-zero status."""

    def __init__(self, step: str, message: str, exit_code: int, stderr: str):
        stderr = stderr.strip()
        super().__init__(step, f"{message}: {stderr}" if stderr else message, stderr)
        self.exit_code = exit_code


class CoolifyError(VpsDeployError):
    """Coolify API rejected the deployment trigger."""
