"""Network clients for the Code Radio audio stream and metadata feed."""

from .api import CodeRadioApi
from .metadata_subscriber import MetadataSubscriber
from .retry import Backoff, ReconnectPolicy
from .stream_fetcher import StreamFetcher

__all__ = [
    "CodeRadioApi",
    "MetadataSubscriber",
    "Backoff",
    "ReconnectPolicy",
    "StreamFetcher",
]
