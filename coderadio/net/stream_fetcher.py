"""Fetches the raw audio byte stream of a station over HTTP."""

import logging
from typing import AsyncIterator, Optional

import aiohttp

from ..errors import StreamInterrupted
from ..models.stream import StreamHandle, StreamState
from .http import TRANSPORT_ERRORS, USER_AGENT, check_response_status, make_timeout

logger = logging.getLogger(__name__)


class StreamFetcher:
    """Reads one audio stream connection chunk by chunk.

    ``chunks()`` connects and yields bytes as they arrive. It does not
    reconnect by itself: when the connection fails or the server ends the
    stream it raises ``StreamInterrupted`` and the caller decides whether to
    try again with a new fetcher. The next network read only happens when the
    consumer asks for the next chunk, so nothing is buffered here beyond the
    chunk in flight.
    """

    def __init__(
        self,
        url: str,
        http_session: aiohttp.ClientSession,
        chunk_size: int = 4096,
        connect_timeout: Optional[float] = 10.0,
        station_id: Optional[str] = None,
    ):
        self.url = url
        self.http_session = http_session
        self.chunk_size = chunk_size
        self.connect_timeout = connect_timeout
        self.station_id = station_id
        self.handle = StreamHandle(url=url)

    async def chunks(self) -> AsyncIterator[bytes]:
        """Yield raw chunks until the stream breaks.

        Raises:
            StreamInterrupted: on transport errors, retryable HTTP errors or
                end of stream
            SessionFatalError: when the server says the stream does not exist
        """
        handle = self.handle
        handle.state = StreamState.CONNECTING
        logger.info(f"Connecting to audio stream {self.url}")

        try:
            async with self.http_session.get(
                self.url,
                headers={"User-Agent": USER_AGENT, "Icy-MetaData": "0"},
                timeout=make_timeout(self.connect_timeout),
            ) as response:
                check_response_status(response, self.station_id)
                handle.state = StreamState.STREAMING
                logger.info(f"Audio stream connected ({response.headers.get('Content-Type', 'unknown type')})")

                async for chunk in response.content.iter_chunked(self.chunk_size):
                    handle.bytes_received += len(chunk)
                    handle.chunks_received += 1
                    yield chunk

        except StreamInterrupted as e:
            self._mark_interrupted(str(e))
            raise
        except TRANSPORT_ERRORS as e:
            self._mark_interrupted(f"{type(e).__name__}: {e}")
            raise StreamInterrupted(f"Audio stream connection failed: {e}") from e
        except Exception:
            handle.state = StreamState.FAILED
            raise

        self._mark_interrupted("server closed the stream")
        raise StreamInterrupted(f"Audio stream ended after {handle.bytes_received} bytes")

    def _mark_interrupted(self, reason: str) -> None:
        self.handle.state = StreamState.DISCONNECTED
        self.handle.error = reason
        logger.warning(f"Audio stream interrupted: {reason}")
