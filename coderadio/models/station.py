"""Station models."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Station:
    """A radio station: where to get its audio and its metadata."""
    id: str
    name: str
    audio_url: str
    metadata_url: str
    bitrate: Optional[int] = None
    format: Optional[str] = None
