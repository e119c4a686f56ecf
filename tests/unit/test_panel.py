"""Unit tests for the client deployment panel."""

from vpsdeploy.client.panel import DeploymentPanel, PanelState, format_duration
from vpsdeploy.core.events import ProgressEvent


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestDeploymentPanel:
    """Tests for DeploymentPanel."""

    def test_progress_updates_bar_and_log(self):
        panel = DeploymentPanel()
        panel.begin()

        panel.apply(ProgressEvent(type="progress", message="Build complete", percentage=40))

        assert panel.percentage == 40
        assert panel.logs == ["PROGRESS: Build complete (40%)"]

    def test_labels(self):
        panel = DeploymentPanel()
        panel.begin()

        panel.apply(ProgressEvent(type="log", message="Extracting files on VPS..."))
        panel.apply(ProgressEvent(type="warning", message="SSL certificate setup warning"))
        panel.apply(ProgressEvent(type="success", message="live"))
        panel.apply("raw output")

        assert panel.logs == [
            "Extracting files on VPS...",
            "WARNING: SSL certificate setup warning",
            "SUCCESS: live",
            "raw output",
        ]
        assert panel.percentage == 100

    def test_error_resets_progress_and_notifies(self):
        panel = DeploymentPanel()
        panel.begin()
        panel.apply(ProgressEvent(type="progress", message="Installing dependencies", percentage=85))

        panel.apply(ProgressEvent(type="error", message="Deployment failed: boom"))
        panel.finish()

        assert panel.state == PanelState.FAILED
        assert panel.percentage == 0
        assert panel.in_progress is False
        assert panel.logs[-1] == "ERROR: Deployment failed: boom"
        assert len(panel.notifications) == 1
        assert panel.notifications[0].variant == "destructive"
        assert panel.notifications[0].description == "Deployment failed: boom"

    def test_finish_without_error_is_success(self):
        panel = DeploymentPanel()
        panel.begin()

        panel.finish()

        assert panel.state == PanelState.SUCCEEDED
        assert panel.percentage == 100
        assert panel.notifications[0].variant == "default"

    def test_elapsed_timer(self):
        clock = FakeClock()
        panel = DeploymentPanel(clock=clock)
        panel.begin()

        clock.now += 75

        assert panel.elapsed_seconds == 75
        assert panel.elapsed_display == "1:15"

        panel.finish()
        assert panel.elapsed_seconds == 0

    def test_reset_clears_everything(self):
        panel = DeploymentPanel()
        panel.begin()
        panel.apply(ProgressEvent(type="progress", message="x", percentage=50))

        panel.reset()

        assert panel.state == PanelState.IDLE
        assert panel.logs == []
        assert panel.percentage == 0
        assert panel.started_at is None

    def test_copy_logs(self):
        panel = DeploymentPanel()
        panel.begin()
        panel.apply("a")
        panel.apply("b")

        assert panel.copy_logs() == "a\nb"

    def test_recent_history_keeps_first_five(self):
        entries = [{"id": str(i)} for i in range(8)]

        recent = DeploymentPanel.recent_history(entries)

        assert [e["id"] for e in recent] == ["0", "1", "2", "3", "4"]

    def test_describe_history_entry(self):
        line = DeploymentPanel.describe_history_entry(
            {
                "type": "deployment",
                "status": "success",
                "startTime": "2024-05-01T12:30:05Z",
                "duration": 125,
            }
        )

        assert line == "deployment success 01/05/2024 12:30:05 (2:05)"


class TestFormatDuration:
    def test_formats(self):
        assert format_duration(0) == "0:00"
        assert format_duration(59) == "0:59"
        assert format_duration(3601) == "60:01"
