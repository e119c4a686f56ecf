"""Unit tests for data models."""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from vpsdeploy.models.deployment import (
    DeploymentConfig,
    DeploymentHistoryCreate,
    DeploymentHistoryEntry,
    DeploymentHistoryUpdate,
    DeploymentStatus,
    DeploymentType,
)


class TestDeploymentConfig:
    """Tests for DeploymentConfig."""

    def test_accepts_camel_case(self):
        config = DeploymentConfig.model_validate(
            {"host": "203.0.113.10", "username": "root", "deployPath": "/srv/app"}
        )

        assert config.deploy_path == "/srv/app"
        assert config.domain is None

    def test_domain_normalized(self):
        config = DeploymentConfig(
            host="h", username="u", domain="https://www.New.Memopyk.com/"
        )

        assert config.domain == "new.memopyk.com"

    @pytest.mark.parametrize("domain", ["not a domain", "example.com; rm -rf /", "localhost"])
    def test_domain_rejected(self, domain: str):
        with pytest.raises(ValidationError):
            DeploymentConfig(host="h", username="u", domain=domain)

    def test_blank_optional_fields_become_none(self):
        config = DeploymentConfig(host="h", username="u", deploy_path="  ", domain="")

        assert config.deploy_path is None
        assert config.domain is None

    @pytest.mark.parametrize("field", ["host", "username"])
    def test_required_fields(self, field: str):
        data = {"host": "h", "username": "u"}
        data[field] = "   "

        with pytest.raises(ValidationError):
            DeploymentConfig(**data)


class TestHistoryModels:
    """Tests for history entry models."""

    def test_entry_defaults(self):
        entry = DeploymentHistoryEntry(type=DeploymentType.NGINX_CONFIG)

        assert entry.status == DeploymentStatus.PENDING
        assert entry.id
        assert entry.start_time.tzinfo is not None

    def test_serialized_with_camel_case(self):
        entry = DeploymentHistoryEntry(type=DeploymentType.DEPLOYMENT, duration=3)

        data = entry.model_dump(by_alias=True, mode="json")

        assert data["type"] == "deployment"
        assert "startTime" in data
        assert data["duration"] == 3

    def test_create_to_entry(self):
        entry = DeploymentHistoryCreate(type=DeploymentType.DEPLOYMENT).to_entry()

        assert entry.status == DeploymentStatus.PENDING
        assert entry.start_time is not None

    def test_update_only_set_fields(self):
        update = DeploymentHistoryUpdate.model_validate({"status": "success"})

        assert update.changes() == {"status": DeploymentStatus.SUCCESS}

    def test_negative_duration_rejected(self):
        with pytest.raises(ValidationError):
            DeploymentHistoryUpdate(duration=-1)

    def test_null_status_rejected(self):
        with pytest.raises(ValidationError):
            DeploymentHistoryUpdate.model_validate({"status": None})

    def test_naive_start_time_taken_as_utc(self):
        entry = DeploymentHistoryCreate.model_validate(
            {"type": "deployment", "startTime": "2026-01-01T08:30:00"}
        ).to_entry()

        assert entry.start_time.utcoffset() == timedelta(0)
        assert entry.start_time.hour == 8
