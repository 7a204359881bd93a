"""Now-playing publisher module for pub/sub event publishing."""

import logging
from typing import Callable

from pubsub import pub

from ..models.metadata import NowPlayingState

logger = logging.getLogger(__name__)

TRACK_CHANGED_TOPIC = "nowplaying.track_changed"


class NowPlayingPublisher:
    """Publishes track changes using pubsub.pub."""

    def __init__(self, topic: str = TRACK_CHANGED_TOPIC):
        """Initialize the publisher.

        Args:
            topic: Pub/sub topic name for track changes
        """
        self.topic = topic
        logger.info(f"NowPlayingPublisher initialized with topic: {topic}")

    def publish_track_change(self, state: NowPlayingState) -> None:
        """Publish the state right after a new track started.

        Args:
            state: NowPlayingState of the new track
        """
        pub.sendMessage(self.topic, state=state)
        logger.debug(f"Published track change: {state.artist} - {state.title}")

    def get_callback(self) -> Callable[[NowPlayingState], None]:
        """Get the callback to hand to NowPlayingReconciler."""
        return self.publish_track_change
