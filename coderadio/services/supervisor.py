"""Playback supervisor: runs and owns every concurrent activity of a session."""

import asyncio
import logging
from contextlib import aclosing
from typing import Callable, Optional, Union

import aiohttp

from ..audio.decoder import FrameDecoder
from ..audio.playback import PlaybackSink
from ..config import CodeRadioConfig
from ..errors import PlaybackStoppedError, SessionFatalError, StreamInterrupted
from ..models.audio import VolumeLevel
from ..models.metadata import MetadataEvent, NowPlayingState
from ..models.session import PlaybackSession
from ..net.metadata_subscriber import MetadataSubscriber
from ..net.retry import ReconnectPolicy
from ..net.stream_fetcher import StreamFetcher
from .catalog import StationCatalog
from .publisher import NowPlayingPublisher
from .reconciler import NowPlayingReconciler

logger = logging.getLogger(__name__)

AUDIO_SOURCE = "audio"
METADATA_SOURCE = "metadata"


class PlaybackSupervisor:
    """Starts, controls and shuts down a PlaybackSession.

    Two independent chains run as asyncio tasks: fetch -> decode -> play, and
    the metadata feed. They only meet in the reconciler (through messages)
    and in the sink's volume. Transient failures are handled inside the
    chains; anything else ends the session and is raised from ``wait()``.
    """

    def __init__(
        self,
        catalog: StationCatalog,
        config: Optional[CodeRadioConfig] = None,
        http_session: Optional[aiohttp.ClientSession] = None,
        sink_factory: Optional[Callable[..., PlaybackSink]] = None,
        decoder_factory: Optional[Callable[[], FrameDecoder]] = None,
        publisher: Optional[NowPlayingPublisher] = None,
    ):
        """Initialize the supervisor.

        Args:
            catalog: Stations that can be played
            config: Configuration; defaults are used when None
            http_session: Shared aiohttp session. When None the supervisor
                creates one and closes it on shutdown.
            sink_factory: Builds the PlaybackSink (keyword arguments
                ``max_queue_frames``, ``volume``, ``on_frame_rendered``)
            decoder_factory: Builds the FrameDecoder
            publisher: Receives track changes
        """
        self.catalog = catalog
        self.config = config or CodeRadioConfig()
        self.policy = ReconnectPolicy.from_config(self.config)
        self.publisher = publisher or NowPlayingPublisher()

        self._http_session = http_session
        self._owns_http_session = http_session is None
        self._sink_factory = sink_factory or PlaybackSink
        self._decoder_factory = decoder_factory or self._create_decoder

        self.session: Optional[PlaybackSession] = None
        self._audio_task: Optional[asyncio.Task] = None
        self._shutdown_requested = asyncio.Event()
        self._shutdown_lock = asyncio.Lock()
        self._shutdown_done = False
        self._fatal_error: Optional[BaseException] = None

    def _create_decoder(self) -> FrameDecoder:
        return FrameDecoder(
            corruption_warning_threshold=self.config.get("decoder.corruption_warning_threshold", 8),
            corruption_window_frames=self.config.get("decoder.corruption_window_frames", 100),
        )

    @property
    def connect_timeout(self) -> Optional[float]:
        return self.config.get("network.connect_timeout", 10.0)

    @property
    def fatal_error(self) -> Optional[BaseException]:
        return self._fatal_error

    async def start(self, station_id: str, initial_event: Optional[MetadataEvent] = None) -> PlaybackSession:
        """Create the session for ``station_id`` and start playing.

        Args:
            station_id: Catalog id of the station
            initial_event: Now-playing data already known (e.g. from the REST
                API), shown until the feed delivers its first event

        Raises:
            StationNotFoundError: unknown station
            AudioDeviceError: no usable audio output
            RuntimeError: a session was already started
        """
        if self.session is not None or self._shutdown_done:
            raise RuntimeError("A playback session was already started")

        station = self.catalog.get(station_id)
        logger.info(f"Starting playback of station {station.id} ({station.name})")

        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()

        reconciler = NowPlayingReconciler(station.id, on_track_change=self.publisher.get_callback())
        sink = self._sink_factory(
            max_queue_frames=self.config.get("audio.queue_frames", 64),
            volume=self.config.get("audio.volume", 9),
            on_frame_rendered=lambda frame: reconciler.post_progress(frame.duration),
        )
        subscriber = MetadataSubscriber(
            station.metadata_url,
            self._http_session,
            station.id,
            policy=self.policy,
            on_connection_change=lambda ok: reconciler.post_health(METADATA_SOURCE, ok),
            connect_timeout=self.connect_timeout,
        )
        session = PlaybackSession(
            station=station,
            decoder=self._decoder_factory(),
            sink=sink,
            subscriber=subscriber,
            reconciler=reconciler,
        )

        if initial_event is not None:
            # Nothing else writes to the reconciler before its task starts
            reconciler.on_metadata_event(initial_event)

        try:
            await sink.open()
        except BaseException:
            await self._close_http_session()
            raise

        self.session = session
        self._audio_task = asyncio.create_task(self._run_audio_chain(session), name="audio-chain")
        session.tasks = [
            self._audio_task,
            asyncio.create_task(self._run_metadata_chain(session), name="metadata-chain"),
            asyncio.create_task(reconciler.run(), name="reconciler"),
            asyncio.create_task(sink.join(), name="sink-watch"),
        ]
        for task in session.tasks:
            task.add_done_callback(self._on_task_done)
        return session

    def _require_session(self) -> PlaybackSession:
        if self.session is None:
            raise RuntimeError("No playback session has been started")
        return self.session

    def snapshot(self) -> Optional[NowPlayingState]:
        """Read-only now-playing state, or None before ``start``."""
        if self.session is None:
            return None
        return self.session.reconciler.snapshot()

    @property
    def volume(self) -> Optional[VolumeLevel]:
        if self.session is None:
            return None
        return self.session.sink.volume

    @property
    def paused(self) -> bool:
        return self.session is not None and self.session.sink.paused

    def set_volume(self, level: Union[int, VolumeLevel]) -> VolumeLevel:
        return self._require_session().sink.set_volume(level)

    def pause(self) -> None:
        self._require_session().sink.pause()

    def resume(self) -> None:
        self._require_session().sink.resume()

    async def stop(self) -> None:
        """Stop audio output. The metadata feed keeps running."""
        session = self._require_session()
        if self._audio_task is not None and not self._audio_task.done():
            self._audio_task.cancel()
            await asyncio.gather(self._audio_task, return_exceptions=True)
        await session.sink.stop()

    def request_shutdown(self) -> None:
        """Ask ``wait()`` to finish. Must be called on the event loop thread."""
        self._shutdown_requested.set()

    async def wait(self) -> None:
        """Run until shutdown is requested or the session fails.

        Raises:
            SessionFatalError: if a chain failed; the session is already shut
                down when this is raised
        """
        await self._shutdown_requested.wait()
        await self.shutdown()

        error = self._fatal_error
        if error is None:
            return
        if isinstance(error, SessionFatalError):
            raise error
        raise SessionFatalError(f"Playback failed unexpectedly: {error}") from error

    async def shutdown(self) -> None:
        """Cancel every activity, wait for them and release all resources.

        Calling it again has no effect.
        """
        async with self._shutdown_lock:
            if self._shutdown_done:
                return
            self._shutdown_done = True
            self._shutdown_requested.set()
            logger.info("Shutting down playback")

            session = self.session
            if session is not None:
                for task in session.tasks:
                    task.cancel()
                await asyncio.gather(*session.tasks, return_exceptions=True)
                await session.sink.stop()

            await self._close_http_session()
            logger.info("Playback shut down")

    async def _close_http_session(self) -> None:
        if self._owns_http_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    def _on_task_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is None or isinstance(error, PlaybackStoppedError):
            return
        if self._fatal_error is None:
            self._fatal_error = error
            logger.error(f"Playback session failed in {task.get_name()}: {error}", exc_info=error)
        self._shutdown_requested.set()

    async def _run_audio_chain(self, session: PlaybackSession) -> None:
        """Fetch -> decode -> enqueue, reconnecting on interruptions."""
        station = session.station
        reconciler = session.reconciler
        backoff = self.policy.start("audio stream")

        while True:
            fetcher = StreamFetcher(
                station.audio_url,
                self._http_session,
                chunk_size=self.config.get("audio.chunk_size", 4096),
                connect_timeout=self.connect_timeout,
                station_id=station.id,
            )
            session.stream_handle = fetcher.handle
            session.decoder.reset()
            connected = False

            try:
                async with aclosing(fetcher.chunks()) as chunks:
                    async for chunk in chunks:
                        if not connected:
                            connected = True
                            backoff.reset()
                            reconciler.post_health(AUDIO_SOURCE, True)
                        for frame in session.decoder.feed(chunk):
                            await session.sink.enqueue(frame)
            except StreamInterrupted as e:
                reconciler.post_health(AUDIO_SOURCE, False)
                delay = backoff.next_delay()
                session.reconnects += 1
                logger.warning(f"Audio stream lost ({e}); reconnecting in {delay:.1f}s")
                await asyncio.sleep(delay)
            except PlaybackStoppedError:
                logger.info("Playback stopped; closing audio stream")
                return

    async def _run_metadata_chain(self, session: PlaybackSession) -> None:
        async with aclosing(session.subscriber.events()) as events:
            async for event in events:
                session.reconciler.post_metadata(event)
