"""Data models for the Code Radio client."""

from .audio import AudioFrame, VolumeLevel, MIN_VOLUME, MAX_VOLUME
from .metadata import MetadataEvent, NowPlayingState
from .session import PlaybackSession
from .station import Station
from .stream import StreamHandle, StreamState

__all__ = [
    "AudioFrame",
    "VolumeLevel",
    "MIN_VOLUME",
    "MAX_VOLUME",
    "MetadataEvent",
    "NowPlayingState",
    "PlaybackSession",
    "Station",
    "StreamHandle",
    "StreamState",
]
