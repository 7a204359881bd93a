"""Client for the Code Radio REST API."""

import logging
from typing import List

import aiohttp
from pydantic import ValidationError

from ..errors import SessionFatalError, StreamInterrupted
from ..models.metadata import MetadataEvent
from ..models.station import Station
from .http import TRANSPORT_ERRORS, USER_AGENT, check_response_status
from .payloads import CodeRadioMessage, event_from_message

logger = logging.getLogger(__name__)

DEFAULT_REST_URL = "https://coderadio-admin-v2.freecodecamp.org/api/nowplaying_static/coderadio.json"
DEFAULT_SSE_URL = (
    "https://coderadio-admin-v2.freecodecamp.org/api/live/nowplaying/sse"
    "?cf_connect=%7B%22subs%22%3A%7B%22station%3Acoderadio%22%3A%7B%7D%7D%7D"
)


def stations_from_message(message: CodeRadioMessage, metadata_url: str) -> List[Station]:
    """All stations (remote relays and mount points) of a message, sorted by id."""
    stations = [
        Station(
            id=str(mount.id),
            name=mount.name,
            audio_url=mount.url,
            metadata_url=metadata_url,
            bitrate=mount.bitrate,
            format=mount.format,
        )
        for mount in [*message.station.remotes, *message.station.mounts]
    ]
    stations.sort(key=lambda s: int(s.id))
    return stations


class CodeRadioApi:
    """Fetches the static now-playing message.

    The event stream can take a while to deliver its first message, so the
    REST endpoint is used for the station list and the initial state.
    """

    def __init__(
        self,
        http_session: aiohttp.ClientSession,
        rest_url: str = DEFAULT_REST_URL,
        sse_url: str = DEFAULT_SSE_URL,
        timeout: float = 15.0,
    ):
        self.http_session = http_session
        self.rest_url = rest_url
        self.sse_url = sse_url
        self.timeout = timeout

    async def get_message(self) -> CodeRadioMessage:
        """Get the current now-playing message.

        Raises:
            SessionFatalError: if the API cannot be reached or answers garbage
        """
        logger.debug(f"Fetching now-playing message from {self.rest_url}")
        try:
            async with self.http_session.get(
                self.rest_url,
                headers={"User-Agent": USER_AGENT},
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as response:
                check_response_status(response)
                data = await response.json(content_type=None)
        except StreamInterrupted as e:
            raise SessionFatalError(f"Code Radio is unavailable: {e}") from e
        except TRANSPORT_ERRORS as e:
            raise SessionFatalError(f"Could not reach Code Radio: {e}") from e
        except ValueError as e:
            raise SessionFatalError(f"Code Radio returned invalid JSON: {e}") from e

        try:
            return CodeRadioMessage.model_validate(data)
        except ValidationError as e:
            raise SessionFatalError(f"Unexpected Code Radio API response: {e}") from e

    async def get_stations(self) -> List[Station]:
        message = await self.get_message()
        return stations_from_message(message, self.sse_url)

    def now_playing_event(self, message: CodeRadioMessage, station_id: str) -> MetadataEvent:
        return event_from_message(message, station_id)
