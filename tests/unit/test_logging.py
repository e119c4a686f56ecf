"""Unit tests for logging helpers."""

from structlog.contextvars import get_contextvars

from vpsdeploy.utils.logging import REDACTED, bound_context, redact_secrets


class TestRedactSecrets:
    """Tests for the credential-masking processor."""

    def test_masks_credentials(self):
        event = redact_secrets(
            None,
            "info",
            {"event": "remote.connected", "password": "hunter2", "Authorization": "Bearer x"},
        )

        assert event["password"] == REDACTED
        assert event["Authorization"] == REDACTED
        assert event["event"] == "remote.connected"

    def test_leaves_other_fields(self):
        event = redact_secrets(None, "info", {"host": "203.0.113.10", "token": ""})

        assert event == {"host": "203.0.113.10", "token": ""}


class TestBoundContext:
    """Tests for context binding."""

    def test_binds_only_inside_block(self):
        with bound_context(run_id="run-1", kind="deployment"):
            assert get_contextvars()["run_id"] == "run-1"
            with bound_context(request_id="req-9"):
                assert get_contextvars() == {
                    "run_id": "run-1",
                    "kind": "deployment",
                    "request_id": "req-9",
                }
            assert "request_id" not in get_contextvars()

        assert "run_id" not in get_contextvars()
