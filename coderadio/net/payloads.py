"""Wire formats of the Code Radio (AzuraCast) API and their conversion to events."""

import json
import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError

from ..errors import MalformedEventError
from ..models.metadata import MetadataEvent

logger = logging.getLogger(__name__)

FLAT_EVENT_KEYS = ("title", "artist", "duration", "elapsed")


class SongPayload(BaseModel):
    id: str = ""
    title: str = ""
    artist: str = ""
    album: str = ""


class NowPlayingPayload(BaseModel):
    elapsed: float = 0
    duration: float = 0
    played_at: Optional[float] = None
    song: SongPayload


class ListenersPayload(BaseModel):
    current: int = 0
    total: int = 0
    unique: int = 0


class MountPayload(BaseModel):
    """A mount point or remote relay of a station."""
    id: int
    name: str
    url: str
    bitrate: Optional[int] = None
    format: Optional[str] = None


class StationPayload(BaseModel):
    id: int = 0
    name: str = ""
    shortcode: str = ""
    listen_url: str = ""
    mounts: List[MountPayload] = Field(default_factory=list)
    remotes: List[MountPayload] = Field(default_factory=list)


class CodeRadioMessage(BaseModel):
    """The "nowplaying" message served by the REST and SSE APIs."""
    station: StationPayload
    listeners: ListenersPayload = Field(default_factory=ListenersPayload)
    now_playing: NowPlayingPayload
    is_online: bool = True


class FlatNowPlayingPayload(BaseModel):
    """A plain now-playing object, as sent by simpler metadata endpoints."""
    title: str
    artist: str
    duration: float
    elapsed: float
    album: str = ""
    station: Optional[str] = None
    timestamp: Optional[float] = None
    listeners: Optional[int] = None


def _known_duration(duration: float) -> Optional[float]:
    # The API reports 0 when the track length is unknown
    return duration if duration > 0 else None


def event_from_message(message: CodeRadioMessage, station_id: str) -> MetadataEvent:
    """Build a MetadataEvent from a full now-playing message."""
    now_playing = message.now_playing
    timestamp = None
    if now_playing.played_at:
        timestamp = now_playing.played_at + now_playing.elapsed
    return MetadataEvent(
        title=now_playing.song.title,
        artist=now_playing.song.artist,
        album=now_playing.song.album,
        station_id=station_id,
        duration=_known_duration(now_playing.duration),
        elapsed=now_playing.elapsed,
        timestamp=timestamp,
        listeners=message.listeners.current,
    )


def _unwrap(payload: Dict[str, Any]) -> Any:
    """Strip the Centrifugo envelope: {"pub": {"data": {"np": message}}}."""
    if "pub" in payload:
        payload = payload["pub"]
        if not isinstance(payload, dict):
            raise MalformedEventError("Envelope field 'pub' is not an object")
        payload = payload.get("data", payload)
    if isinstance(payload, dict) and "np" in payload:
        payload = payload["np"]
    if not isinstance(payload, dict):
        raise MalformedEventError("Envelope does not contain an object")
    return payload


def parse_metadata_payload(data: str, station_id: str) -> Optional[MetadataEvent]:
    """Parse the JSON payload of one metadata event.

    Args:
        data: Event payload text
        station_id: Station the feed belongs to, used unless the payload names one

    Returns:
        The event, or None for payloads that carry no now-playing data
        (connection handshakes, keepalives).

    Raises:
        MalformedEventError: if the payload is not valid now-playing data
    """
    try:
        payload = json.loads(data)
    except json.JSONDecodeError as e:
        raise MalformedEventError(f"Event payload is not JSON: {e}") from e
    if not isinstance(payload, dict):
        raise MalformedEventError(f"Event payload is a JSON {type(payload).__name__}, not an object")

    payload = _unwrap(payload)

    try:
        if "now_playing" in payload:
            message = CodeRadioMessage.model_validate(payload)
            return event_from_message(message, station_id)

        if any(key in payload for key in FLAT_EVENT_KEYS):
            flat = FlatNowPlayingPayload.model_validate(payload)
            return MetadataEvent(
                title=flat.title,
                artist=flat.artist,
                album=flat.album,
                station_id=flat.station or station_id,
                duration=_known_duration(flat.duration),
                elapsed=flat.elapsed,
                timestamp=flat.timestamp,
                listeners=flat.listeners,
            )
    except ValidationError as e:
        raise MalformedEventError(f"Invalid now-playing payload: {e.error_count()} error(s)") from e

    logger.debug(f"Ignoring event without now-playing data (keys: {sorted(payload)})")
    return None
