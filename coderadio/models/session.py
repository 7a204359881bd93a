"""Session-related data models."""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from .metadata import NowPlayingState
from .station import Station
from .stream import StreamHandle

if TYPE_CHECKING:
    from ..audio.decoder import FrameDecoder
    from ..audio.playback import PlaybackSink
    from ..net.metadata_subscriber import MetadataSubscriber
    from ..services.reconciler import NowPlayingReconciler


@dataclass
class PlaybackSession:
    """Everything owned by one playing station."""
    station: Station
    decoder: "FrameDecoder"
    sink: "PlaybackSink"
    subscriber: "MetadataSubscriber"
    reconciler: "NowPlayingReconciler"
    start_time: datetime = field(default_factory=datetime.now)
    stream_handle: Optional[StreamHandle] = None
    tasks: List[asyncio.Task] = field(default_factory=list)
    reconnects: int = 0

    @property
    def state(self) -> NowPlayingState:
        return self.reconciler.snapshot()
