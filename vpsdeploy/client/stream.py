"""Incremental parsing of newline-delimited JSON progress streams."""

import codecs
import json

from vpsdeploy.core.events import ProgressEvent

ParsedLine = ProgressEvent | str


class NDJSONStreamParser:
    """Reassembles lines across arbitrary chunk boundaries.

    Each complete line becomes a ProgressEvent; a line that is not a valid
    event is returned verbatim as a string so the caller can show it as a
    plain log entry.
    """

    def __init__(self, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""

    def feed(self, chunk: bytes | str) -> list[ParsedLine]:
        """Consume one transport chunk, return the lines it completed."""
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        self._buffer += chunk

        *complete, self._buffer = self._buffer.split("\n")
        return [parsed for line in complete if (parsed := self._parse(line)) is not None]

    def flush(self) -> list[ParsedLine]:
        """Parse whatever is left once the connection has closed."""
        self._buffer += self._decoder.decode(b"", final=True)
        remainder, self._buffer = self._buffer, ""
        parsed = self._parse(remainder)
        return [parsed] if parsed is not None else []

    @staticmethod
    def _parse(line: str) -> ParsedLine | None:
        line = line.strip()
        if not line:
            return None
        try:
            data = json.loads(line)
            if not isinstance(data, dict):
                return line
            return ProgressEvent.from_dict(data)
        except (TypeError, ValueError):
            return line
