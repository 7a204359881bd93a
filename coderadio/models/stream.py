"""Network stream models."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class StreamState(Enum):
    """Connection state of an audio stream."""
    CONNECTING = "connecting"
    STREAMING = "streaming"
    DISCONNECTED = "disconnected"
    FAILED = "failed"


@dataclass
class StreamHandle:
    """One network connection to an audio source.

    A handle lives for a single connection attempt. Reconnecting creates a new
    handle, so ``bytes_received`` always counts from the start of the current
    connection.
    """
    url: str
    state: StreamState = StreamState.CONNECTING
    bytes_received: int = 0
    chunks_received: int = 0
    error: Optional[str] = None
