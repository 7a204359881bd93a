"""Reconciles metadata events and rendered audio into one now-playing state."""

import asyncio
import logging
from dataclasses import replace
from enum import Enum
from typing import Any, Callable, Dict, NamedTuple, Optional

from ..models.metadata import MetadataEvent, NowPlayingState

logger = logging.getLogger(__name__)


class MessageKind(Enum):
    METADATA = "metadata"
    PROGRESS = "progress"
    HEALTH = "health"


class ReconcilerMessage(NamedTuple):
    kind: MessageKind
    payload: Any


def clamp_elapsed(elapsed: float, duration: Optional[float]) -> float:
    """Keep elapsed within [0, duration]; unknown duration has no upper bound."""
    elapsed = max(0.0, float(elapsed))
    if duration is not None:
        elapsed = min(elapsed, duration)
    return elapsed


class NowPlayingReconciler:
    """Single owner of the NowPlayingState.

    Both network chains talk to it through ``post_*`` messages; ``run()``
    applies them one at a time, so the elapsed estimate has exactly one
    writer. Readers get immutable snapshots.

    The server is trusted at track boundaries: a new track resets elapsed to
    the position reported by the event. In between, elapsed only advances by
    the duration of audio actually rendered, so a network stall that stops
    playback also stops the clock.
    """

    def __init__(
        self,
        station_id: str,
        on_track_change: Optional[Callable[[NowPlayingState], None]] = None,
    ):
        self._state = NowPlayingState(station_id=station_id)
        self._inbox: asyncio.Queue = asyncio.Queue()
        self._health: Dict[str, bool] = {}
        self._last_timestamp: Optional[float] = None
        self.on_track_change = on_track_change

        self.track_changes = 0
        self.stale_events = 0

    def snapshot(self) -> NowPlayingState:
        """Current state; safe to call from any thread."""
        return self._state

    # Message-passing interface, used by the concurrent chains

    def post_metadata(self, event: MetadataEvent) -> None:
        self._inbox.put_nowait(ReconcilerMessage(MessageKind.METADATA, event))

    def post_progress(self, seconds: float) -> None:
        self._inbox.put_nowait(ReconcilerMessage(MessageKind.PROGRESS, seconds))

    def post_health(self, source: str, healthy: bool) -> None:
        self._inbox.put_nowait(ReconcilerMessage(MessageKind.HEALTH, (source, healthy)))

    @property
    def pending_messages(self) -> int:
        return self._inbox.qsize()

    async def run(self) -> None:
        """Apply posted messages until cancelled."""
        while True:
            message = await self._inbox.get()
            self.apply(message)

    def apply(self, message: ReconcilerMessage) -> NowPlayingState:
        if message.kind is MessageKind.METADATA:
            return self.on_metadata_event(message.payload)
        if message.kind is MessageKind.PROGRESS:
            return self.on_playback_progress(message.payload)
        source, healthy = message.payload
        return self.on_connection_health(source, healthy)

    # State transitions

    def on_metadata_event(self, event: MetadataEvent) -> NowPlayingState:
        """Apply a metadata event.

        A different track identity replaces the track and resets elapsed to
        the server-reported position. Re-delivery of the current track keeps
        the locally tracked elapsed time. Events older than the last accepted
        one are dropped.
        """
        if event.timestamp is not None and self._last_timestamp is not None:
            if event.timestamp < self._last_timestamp:
                self.stale_events += 1
                logger.debug(f"Dropping stale metadata event for '{event.title}'")
                return self._state
        if event.timestamp is not None:
            self._last_timestamp = event.timestamp

        state = self._state
        listeners = event.listeners if event.listeners is not None else state.listeners

        if state.has_track and event.track_identity == state.track_identity:
            duration = state.duration if state.duration is not None else event.duration
            self._state = replace(
                state,
                listeners=listeners,
                duration=duration,
                elapsed=clamp_elapsed(state.elapsed, duration),
            )
            return self._state

        self._state = replace(
            state,
            station_id=event.station_id,
            title=event.title,
            artist=event.artist,
            album=event.album,
            duration=event.duration,
            elapsed=clamp_elapsed(event.elapsed, event.duration),
            listeners=listeners,
            has_track=True,
        )
        self.track_changes += 1
        logger.info(f"Now playing: {event.artist} - {event.title}")
        if self.on_track_change:
            try:
                self.on_track_change(self._state)
            except Exception as e:
                logger.error(f"Track change callback failed: {e}", exc_info=True)
        return self._state

    def on_playback_progress(self, seconds: float) -> NowPlayingState:
        """Advance elapsed by the duration of audio that was just rendered."""
        if seconds < 0:
            raise ValueError(f"Playback progress cannot be negative: {seconds}")
        state = self._state
        if not state.has_track or seconds == 0:
            return state
        self._state = replace(state, elapsed=clamp_elapsed(state.elapsed + seconds, state.duration))
        return self._state

    def on_connection_health(self, source: str, healthy: bool) -> NowPlayingState:
        """Record the health of one connection; the state is healthy when all are."""
        self._health[source] = healthy
        overall = all(self._health.values())
        if overall != self._state.healthy:
            logger.info(f"Connection health changed: {'ok' if overall else 'degraded'} ({source})")
            self._state = replace(self._state, healthy=overall)
        return self._state
