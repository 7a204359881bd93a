"""HTTP helpers shared by the stream fetcher, the metadata feed and the REST API."""

import asyncio
import logging
from typing import Optional

import aiohttp

from ..errors import SessionFatalError, StationNotFoundError, StreamInterrupted

logger = logging.getLogger(__name__)

USER_AGENT = "code-radio-cli (Python)"

# Client errors that are worth retrying
RETRYABLE_CLIENT_STATUSES = (408, 425, 429)

# Exceptions that mean "the connection failed", not "the program is broken"
TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, ConnectionError)


def check_response_status(response: aiohttp.ClientResponse, station_id: Optional[str] = None) -> None:
    """Raise the right Code Radio error for an unsuccessful response.

    Raises:
        StationNotFoundError: 404 or 410 (the station is gone)
        SessionFatalError: any other non-retryable 4xx
        StreamInterrupted: 5xx and retryable 4xx
    """
    status = response.status
    if status < 400:
        return
    if status in (404, 410):
        raise StationNotFoundError(station_id or str(response.url))
    if status < 500 and status not in RETRYABLE_CLIENT_STATUSES:
        raise SessionFatalError(f"{response.url} rejected the request: HTTP {status} {response.reason}")
    raise StreamInterrupted(f"{response.url} answered HTTP {status} {response.reason}")


def make_timeout(connect_timeout: Optional[float]) -> aiohttp.ClientTimeout:
    """Timeout for long-lived streams: bounded connect, unbounded reads."""
    return aiohttp.ClientTimeout(total=None, sock_connect=connect_timeout, sock_read=None)
