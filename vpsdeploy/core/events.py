"""Progress events and the newline-delimited JSON stream they travel on."""

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Literal

EventType = Literal["log", "progress", "warning", "error", "success"]

EVENT_TYPES: tuple[str, ...] = ("log", "progress", "warning", "error", "success")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _isoformat(ts: datetime) -> str:
    return ts.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class ProgressEvent:
    """A single progress event."""

    type: EventType
    message: str
    percentage: int | None = None
    timestamp: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type, "message": self.message}
        if self.percentage is not None:
            data["percentage"] = self.percentage
        data["timestamp"] = _isoformat(self.timestamp)
        return data

    def to_line(self) -> str:
        """Serialize as one NDJSON line, newline included."""
        return json.dumps(self.to_dict(), ensure_ascii=False) + "\n"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProgressEvent":
        event_type = data.get("type")
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type: {event_type!r}")

        raw_ts = data.get("timestamp")
        timestamp = (
            datetime.fromisoformat(raw_ts.replace("Z", "+00:00"))
            if isinstance(raw_ts, str)
            else _utcnow()
        )
        percentage = data.get("percentage")
        return cls(
            type=event_type,
            message=str(data.get("message", "")),
            percentage=int(percentage) if percentage is not None else None,
            timestamp=timestamp,
        )


class EventChannel:
    """One-directional, single-consumer channel of progress events.

    The producer closes the channel when the run ends; closing is the only
    end-of-stream signal and never reaches the wire.
    """

    _CLOSED = object()

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def put(self, event: ProgressEvent) -> None:
        if self._closed:
            raise RuntimeError("Channel is closed")
        self._queue.put_nowait(event)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(self._CLOSED)

    async def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        while True:
            item = await self._queue.get()
            if item is self._CLOSED:
                return
            yield item


class ProgressEmitter:
    """Turns lifecycle calls into events on a channel.

    Percentages never go backwards within one emitter: a lower checkpoint is
    raised to the highest one already sent.
    """

    def __init__(self, channel: EventChannel):
        self.channel = channel
        self._percentage = 0

    @property
    def percentage(self) -> int:
        return self._percentage

    def emit(
        self, event_type: EventType, message: str, percentage: int | None = None
    ) -> ProgressEvent:
        if event_type == "progress":
            if percentage is None:
                raise ValueError("progress events need a percentage")
            percentage = max(self._percentage, min(100, percentage))
            self._percentage = percentage

        event = ProgressEvent(type=event_type, message=message, percentage=percentage)
        self.channel.put(event)
        return event

    def log(self, message: str, percentage: int | None = None) -> ProgressEvent:
        return self.emit("log", message, percentage)

    def progress(self, message: str, percentage: int) -> ProgressEvent:
        return self.emit("progress", message, percentage)

    def warning(self, message: str) -> ProgressEvent:
        return self.emit("warning", message)

    def error(self, message: str) -> ProgressEvent:
        return self.emit("error", message)

    def success(self, message: str) -> ProgressEvent:
        return self.emit("success", message)


async def ndjson_stream(channel: EventChannel) -> AsyncIterator[bytes]:
    """Serialize each event to one line as soon as it arrives."""
    async for event in channel:
        yield event.to_line().encode("utf-8")
