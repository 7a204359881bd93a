"""Minimal server-sent events (text/event-stream) parser."""

from dataclasses import dataclass
from typing import List, Optional, Union


@dataclass
class ServerSentEvent:
    """One dispatched event."""
    data: str
    event: str = "message"
    id: Optional[str] = None


class ServerSentEventParser:
    """Incremental parser fed one line at a time.

    Follows the HTML event-stream rules: ``data`` lines are joined with
    newlines, lines starting with ``:`` are comments, unknown fields are
    ignored and a blank line dispatches the pending event.
    """

    def __init__(self):
        self._data: List[str] = []
        self._event = ""
        self.last_event_id: Optional[str] = None

    def feed_line(self, line: Union[bytes, str]) -> Optional[ServerSentEvent]:
        """Consume one line; return an event when the line completes one."""
        if isinstance(line, bytes):
            line = line.decode("utf-8", errors="replace")
        line = line.rstrip("\r\n")

        if not line:
            return self._dispatch()
        if line.startswith(":"):
            return None

        field, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if field == "data":
            self._data.append(value)
        elif field == "event":
            self._event = value
        elif field == "id" and "\0" not in value:
            self.last_event_id = value
        return None

    def _dispatch(self) -> Optional[ServerSentEvent]:
        if not self._data:
            self._event = ""
            return None
        event = ServerSentEvent(
            data="\n".join(self._data),
            event=self._event or "message",
            id=self.last_event_id,
        )
        self._data = []
        self._event = ""
        return event
