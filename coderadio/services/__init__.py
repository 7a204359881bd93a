"""Services layer for Code Radio playback."""

from .catalog import StationCatalog
from .publisher import NowPlayingPublisher
from .reconciler import NowPlayingReconciler
from .supervisor import PlaybackSupervisor

__all__ = [
    "StationCatalog",
    "NowPlayingPublisher",
    "NowPlayingReconciler",
    "PlaybackSupervisor"
]
