"""Client-side deployment panel state."""

import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Iterable, Literal, TypeVar

from vpsdeploy.core.events import ProgressEvent

T = TypeVar("T")

HISTORY_PAGE_SIZE = 5


class PanelState(str, Enum):
    """Lifecycle of the panel for one run."""

    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class Notification:
    """A toast shown to the operator."""

    title: str
    description: str
    variant: Literal["default", "destructive"] = "default"


def format_duration(seconds: int) -> str:
    """Format seconds as m:ss."""
    minutes, secs = divmod(max(0, int(seconds)), 60)
    return f"{minutes}:{secs:02d}"


class DeploymentPanel:
    """Log buffer, progress bar and elapsed timer for one run at a time.

    Nothing here survives a reload; every run starts from a clean slate.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self.state = PanelState.IDLE
        self.logs: list[str] = []
        self.percentage = 0
        self.started_at: float | None = None
        self.finished_at: float | None = None
        self.notifications: list[Notification] = []
        self.error: str | None = None

    @property
    def in_progress(self) -> bool:
        return self.state == PanelState.RUNNING

    @property
    def elapsed_seconds(self) -> int:
        if not self.in_progress or self.started_at is None:
            return 0
        return int(self._clock() - self.started_at)

    @property
    def elapsed_display(self) -> str:
        return format_duration(self.elapsed_seconds)

    def begin(self, label: str | None = None) -> None:
        """Start tracking a new run."""
        self.state = PanelState.RUNNING
        self.logs = [label] if label else []
        self.percentage = 0
        self.error = None
        self.started_at = self._clock()
        self.finished_at = None

    def apply(self, item: ProgressEvent | str) -> None:
        """Render one parsed stream line."""
        if isinstance(item, str):
            self.logs.append(item)
            return

        if item.type == "progress":
            self.percentage = item.percentage or 0
            self.logs.append(f"PROGRESS: {item.message} ({item.percentage}%)")
        elif item.type == "log":
            self.logs.append(item.message)
        elif item.type == "warning":
            self.logs.append(f"WARNING: {item.message}")
        elif item.type == "success":
            self.logs.append(f"SUCCESS: {item.message}")
            self.percentage = 100
        elif item.type == "error":
            self.logs.append(f"ERROR: {item.message}")
            self.fail(item.message)

    def finish(self, title: str = "Deployment succeeded") -> None:
        """The stream closed. Without an error event that means success."""
        if self.state != PanelState.RUNNING:
            return
        self.state = PanelState.SUCCEEDED
        self.percentage = 100
        self.finished_at = self._clock()
        self.notifications.append(
            Notification(title=title, description="The run completed successfully")
        )

    def fail(self, message: str, title: str = "Deployment failed") -> None:
        if self.state == PanelState.FAILED:
            return
        self.state = PanelState.FAILED
        self.error = message
        self.percentage = 0
        self.finished_at = self._clock()
        self.notifications.append(
            Notification(title=title, description=message, variant="destructive")
        )

    def reset(self) -> None:
        """Forget the current run. The remote side is not touched."""
        self.state = PanelState.IDLE
        self.logs = []
        self.percentage = 0
        self.error = None
        self.started_at = None
        self.finished_at = None

    def copy_logs(self) -> str:
        return "\n".join(self.logs)

    @staticmethod
    def recent_history(entries: Iterable[T], limit: int = HISTORY_PAGE_SIZE) -> list[T]:
        """The first ``limit`` entries of a most-recent-first history list."""
        result: list[T] = []
        for entry in entries:
            if len(result) >= limit:
                break
            result.append(entry)
        return result

    @staticmethod
    def describe_history_entry(entry: dict[str, Any]) -> str:
        """One display line for a history entry as returned by the API."""
        started = entry.get("startTime")
        when = (
            datetime.fromisoformat(started.replace("Z", "+00:00")).strftime("%d/%m/%Y %H:%M:%S")
            if isinstance(started, str)
            else "?"
        )
        duration = entry.get("duration")
        took = format_duration(duration) if isinstance(duration, int) else "-"
        return f"{entry.get('type')} {entry.get('status')} {when} ({took})"
