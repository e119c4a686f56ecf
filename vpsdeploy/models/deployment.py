"""Deployment data models."""

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, field_validator
from pydantic.alias_generators import to_camel

RequiredStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]

DOMAIN_PATTERN = re.compile(r"(?=.{1,253}$)([a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?\.)+[a-z]{2,63}")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC; aware ones are converted."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys, accepting either form."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DeploymentType(str, Enum):
    """Kind of deployment-class run."""

    DEPLOYMENT = "deployment"
    NGINX_CONFIG = "nginx-config"


class DeploymentStatus(str, Enum):
    """Lifecycle status of a history entry."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class RunState(str, Enum):
    """Orchestrator states."""

    IDLE = "idle"
    BUILDING = "building"
    PACKAGING = "packaging"
    CONNECTING = "connecting"
    TRANSFERRING = "transferring"
    INSTALLING = "installing"
    STARTING_SERVICE = "starting_service"
    CONFIGURING_PROXY = "configuring_proxy"
    PROVISIONING_TLS = "provisioning_tls"
    CLEANING_UP = "cleaning_up"
    COMPLETED = "completed"
    FAILED = "failed"


class DeploymentConfig(CamelModel):
    """Connection and target parameters supplied by the client.

    Credentials are never part of this model; they come from the process
    environment.
    """

    host: RequiredStr
    username: RequiredStr
    deploy_path: str | None = None
    domain: str | None = None

    @field_validator("deploy_path", "domain", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip() or None
        return value

    @field_validator("domain")
    @classmethod
    def _bare_domain(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.lower().removeprefix("https://").removeprefix("http://").rstrip("/")
        value = value.removeprefix("www.")
        if not DOMAIN_PATTERN.fullmatch(value):
            raise ValueError(f"Invalid domain: {value!r}")
        return value


class ConnectionTestResult(BaseModel):
    """Result of a reachability check."""

    success: bool
    message: str
    user: str | None = None


class DeploymentHistoryEntry(CamelModel):
    """A persisted record of one deployment attempt."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    type: DeploymentType
    status: DeploymentStatus = DeploymentStatus.PENDING
    start_time: datetime = Field(default_factory=utcnow)
    duration: int | None = None  # seconds
    message: str | None = None

    @field_validator("start_time")
    @classmethod
    def _start_time_utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class DeploymentHistoryCreate(CamelModel):
    """Request model for creating a history entry."""

    type: DeploymentType
    status: DeploymentStatus = DeploymentStatus.PENDING
    start_time: datetime | None = None
    duration: int | None = Field(default=None, ge=0)
    message: str | None = None

    @field_validator("start_time")
    @classmethod
    def _start_time_utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value) if value is not None else None

    def to_entry(self) -> DeploymentHistoryEntry:
        data = self.model_dump(exclude_none=True)
        return DeploymentHistoryEntry(**data)


class DeploymentHistoryUpdate(CamelModel):
    """Partial update for a history entry."""

    status: DeploymentStatus | None = None
    duration: int | None = Field(default=None, ge=0)
    message: str | None = None

    @field_validator("status")
    @classmethod
    def _status_not_null(cls, value: DeploymentStatus | None) -> DeploymentStatus:
        # Omit the field to keep the current status
        if value is None:
            raise ValueError("status cannot be null")
        return value

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class CoolifyDeployResult(BaseModel):
    """Response returned after triggering a Coolify deployment."""

    success: bool
    message: str
    response: Any = None
