"""Subscribes to the live now-playing feed (server-sent events)."""

import asyncio
import logging
from contextlib import aclosing
from typing import AsyncIterator, Callable, Optional

import aiohttp

from ..errors import MalformedEventError, StreamInterrupted
from ..models.metadata import MetadataEvent
from .http import TRANSPORT_ERRORS, USER_AGENT, check_response_status, make_timeout
from .payloads import parse_metadata_payload
from .retry import ReconnectPolicy
from .sse import ServerSentEventParser

logger = logging.getLogger(__name__)


class MetadataSubscriber:
    """Keeps an event-stream connection open and yields MetadataEvents.

    Reconnects by itself, with the same policy as the audio stream but
    independently of it. Malformed events are logged and skipped.
    """

    def __init__(
        self,
        url: str,
        http_session: aiohttp.ClientSession,
        station_id: str,
        policy: Optional[ReconnectPolicy] = None,
        on_connection_change: Optional[Callable[[bool], None]] = None,
        connect_timeout: Optional[float] = 10.0,
    ):
        """Initialize the subscriber.

        Args:
            url: Event-stream endpoint
            http_session: aiohttp session used for the connection
            station_id: Station whose metadata the feed carries
            policy: Reconnect policy (defaults to ReconnectPolicy())
            on_connection_change: Called with True on connect and False on
                disconnect
            connect_timeout: Seconds allowed for establishing a connection
        """
        self.url = url
        self.http_session = http_session
        self.station_id = station_id
        self.policy = policy or ReconnectPolicy()
        self.on_connection_change = on_connection_change
        self.connect_timeout = connect_timeout

        self.connected = False
        self.connections = 0
        self.events_received = 0
        self.events_dropped = 0

    async def events(self) -> AsyncIterator[MetadataEvent]:
        """Yield now-playing events forever, reconnecting as needed.

        Raises:
            ReconnectExhaustedError: if the policy has a limit and it is reached
            SessionFatalError: if the endpoint rejects the subscription
        """
        backoff = self.policy.start("metadata feed")
        while True:
            try:
                async with aclosing(self._stream_once()) as stream:
                    async for event in stream:
                        backoff.reset()
                        yield event
                raise StreamInterrupted("Metadata feed closed by server")
            except StreamInterrupted as e:
                self._set_connected(False)
                delay = backoff.next_delay()
                logger.warning(f"Metadata feed interrupted ({e}); reconnecting in {delay:.1f}s")
                await asyncio.sleep(delay)

    async def _stream_once(self) -> AsyncIterator[MetadataEvent]:
        logger.info(f"Connecting to metadata feed {self.url}")
        try:
            async with self.http_session.get(
                self.url,
                headers={"Accept": "text/event-stream", "User-Agent": USER_AGENT},
                timeout=make_timeout(self.connect_timeout),
            ) as response:
                check_response_status(response, self.station_id)
                self.connections += 1
                self._set_connected(True)

                parser = ServerSentEventParser()
                async for line in response.content:
                    sse = parser.feed_line(line)
                    if sse is None:
                        continue
                    event = self._parse(sse.data)
                    if event is not None:
                        self.events_received += 1
                        yield event
        except TRANSPORT_ERRORS as e:
            raise StreamInterrupted(f"{type(e).__name__}: {e}") from e

    def _parse(self, data: str) -> Optional[MetadataEvent]:
        try:
            return parse_metadata_payload(data, self.station_id)
        except MalformedEventError as e:
            self.events_dropped += 1
            logger.warning(f"Dropping malformed metadata event: {e}")
            return None

    def _set_connected(self, connected: bool) -> None:
        if connected == self.connected:
            return
        self.connected = connected
        if connected:
            logger.info("Metadata feed connected")
        if self.on_connection_change:
            self.on_connection_change(connected)
