"""Now-playing metadata models."""

from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class MetadataEvent:
    """A "now playing" update received from the metadata feed."""
    title: str
    artist: str
    station_id: str
    duration: Optional[float]  # None when the server does not know the length
    elapsed: float             # Server-reported position at event time
    timestamp: Optional[float] = None  # Server time of the event (unix seconds)
    album: str = ""
    listeners: Optional[int] = None

    @property
    def track_identity(self) -> Tuple[str, str, str]:
        return (self.title, self.artist, self.station_id)


@dataclass(frozen=True)
class NowPlayingState:
    """Display state derived from metadata events and rendered audio."""
    station_id: str
    title: str = ""
    artist: str = ""
    album: str = ""
    elapsed: float = 0.0
    duration: Optional[float] = None
    listeners: Optional[int] = None
    healthy: bool = True
    has_track: bool = False

    @property
    def track_identity(self) -> Tuple[str, str, str]:
        return (self.title, self.artist, self.station_id)

    @property
    def remaining(self) -> Optional[float]:
        if self.duration is None:
            return None
        return self.duration - self.elapsed
