"""Audio playback sink with a bounded frame queue and real-time rendering."""

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional, Tuple, Union

import numpy as np
import pyaudio

from ..errors import AudioDeviceError, PlaybackStoppedError
from ..models.audio import AudioFrame, VolumeLevel, MAX_VOLUME

logger = logging.getLogger(__name__)


def apply_volume(samples: np.ndarray, amplitude: float) -> np.ndarray:
    """Scale int16 samples by ``amplitude`` without wrapping around."""
    if amplitude >= 1.0:
        return samples
    if amplitude <= 0.0:
        return np.zeros_like(samples)
    scaled = samples.astype(np.float32) * amplitude
    return np.clip(scaled, -32768, 32767).astype(np.int16)


class PlaybackSink:
    """Owns the audio output device and plays queued frames in order.

    Frames wait in a bounded queue; ``enqueue`` suspends while it is full, so
    producers are throttled to the playback rate. The volume is read when a
    frame is rendered, so a change affects the next frame written and never
    the one currently being written.
    """

    def __init__(
        self,
        max_queue_frames: int = 64,
        volume: Union[int, VolumeLevel] = MAX_VOLUME,
        on_frame_rendered: Optional[Callable[[AudioFrame], None]] = None,
        format: int = pyaudio.paInt16,
    ):
        """Initialize the sink. The device is acquired by ``open()``.

        Args:
            max_queue_frames: Frames buffered before ``enqueue`` blocks
            volume: Initial volume level (0-9)
            on_frame_rendered: Called on the event loop after each frame is written
            format: PyAudio sample format matching the frames' samples
        """
        if max_queue_frames < 1:
            raise ValueError("max_queue_frames must be at least 1")

        self.max_queue_frames = max_queue_frames
        self.on_frame_rendered = on_frame_rendered
        self.format = format

        self._volume = volume if isinstance(volume, VolumeLevel) else VolumeLevel(volume)
        self._volume_lock = threading.Lock()

        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue_frames)
        self._resumed = asyncio.Event()
        self._resumed.set()
        self._stop_lock = asyncio.Lock()

        self._render_task: Optional[asyncio.Task] = None
        self._writer: Optional[ThreadPoolExecutor] = None

        # PyAudio handles
        self.pyaudio_instance: Optional[pyaudio.PyAudio] = None
        self._stream: Optional[pyaudio.Stream] = None
        self._stream_format: Optional[Tuple[int, int]] = None

        self.is_open = False
        self._stopped = False

        # Statistics
        self.frames_enqueued = 0
        self.frames_rendered = 0
        self.seconds_rendered = 0.0

    async def __aenter__(self) -> "PlaybackSink":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    @property
    def volume(self) -> VolumeLevel:
        with self._volume_lock:
            return self._volume

    @property
    def paused(self) -> bool:
        return not self._resumed.is_set()

    @property
    def stopped(self) -> bool:
        return self._stopped

    @property
    def queued_frames(self) -> int:
        return self._queue.qsize()

    async def open(self) -> None:
        """Acquire the audio device and start rendering."""
        if self.is_open:
            return
        if self._stopped:
            raise PlaybackStoppedError("Playback sink was already stopped")

        logger.info("Initializing audio device")
        try:
            # Creating PyAudio can take several seconds on first run
            self.pyaudio_instance = await asyncio.to_thread(pyaudio.PyAudio)
            self.pyaudio_instance.get_default_output_device_info()
        except OSError as e:
            self._release_device()
            raise AudioDeviceError(f"Audio device initialization failed: {e}") from e

        self._writer = ThreadPoolExecutor(max_workers=1, thread_name_prefix="PlaybackWriter")
        self._render_task = asyncio.create_task(self._render_loop(), name="playback-render")
        self.is_open = True

    async def enqueue(self, frame: AudioFrame) -> None:
        """Queue a frame for playback, waiting while the queue is full."""
        if self._stopped:
            raise PlaybackStoppedError("Playback sink is stopped")

        await self._queue.put(frame)

        if self._stopped:
            self._drain_queue()
            raise PlaybackStoppedError("Playback sink stopped while waiting for queue space")
        self.frames_enqueued += 1

    def set_volume(self, level: Union[int, VolumeLevel]) -> VolumeLevel:
        """Change the volume for frames rendered from now on.

        Raises:
            InvalidVolumeError: if ``level`` is outside 0-9
        """
        volume = level if isinstance(level, VolumeLevel) else VolumeLevel(level)
        with self._volume_lock:
            previous = self._volume
            self._volume = volume
        if previous != volume:
            logger.info(f"Volume set to {volume}/{MAX_VOLUME}")
        return volume

    def pause(self) -> None:
        if self.paused:
            return
        logger.info("Playback paused")
        self._resumed.clear()

    def resume(self) -> None:
        if not self.paused:
            return
        logger.info("Playback resumed")
        self._resumed.set()

    async def stop(self) -> None:
        """Stop rendering, drop queued frames and release the device.

        Safe to call any number of times; the device is released once.
        """
        async with self._stop_lock:
            if self._stopped:
                return
            self._stopped = True
            logger.info("Stopping playback")

            if self._render_task is not None and not self._render_task.done():
                self._render_task.cancel()
            if self._render_task is not None:
                await asyncio.gather(self._render_task, return_exceptions=True)

            if self._writer is not None:
                # Let an in-flight device write finish before closing the stream
                await asyncio.to_thread(self._writer.shutdown, True)
                self._writer = None

            dropped = self._drain_queue()
            self._resumed.set()
            self._release_device()
            logger.info(
                f"Playback stopped. Frames rendered: {self.frames_rendered}, "
                f"dropped from queue: {dropped}"
            )

    async def join(self) -> None:
        """Wait until rendering ends.

        Returns normally when the sink was stopped and re-raises the error if
        rendering failed, e.g. ``AudioDeviceError`` when the device was lost.
        """
        if self._render_task is None:
            return
        await asyncio.wait([self._render_task])
        if not self._render_task.cancelled() and self._render_task.exception() is not None:
            raise self._render_task.exception()

    async def _render_loop(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            await self._resumed.wait()
            frame = await self._queue.get()

            with self._volume_lock:
                amplitude = self._volume.amplitude
            data = apply_volume(frame.samples, amplitude).tobytes()

            await loop.run_in_executor(self._writer, self._write, frame, data)

            self.frames_rendered += 1
            self.seconds_rendered += frame.duration
            if self.on_frame_rendered:
                self.on_frame_rendered(frame)

    def _write(self, frame: AudioFrame, data: bytes) -> None:
        """Write one frame to the device. Runs on the writer thread."""
        stream_format = (frame.sample_rate, frame.channels)
        try:
            if self._stream is None or stream_format != self._stream_format:
                self._open_stream(*stream_format)
            self._stream.write(data)
        except OSError as e:
            raise AudioDeviceError(f"Audio device write failed: {e}") from e

    def _open_stream(self, sample_rate: int, channels: int) -> None:
        if self._stream is not None:
            logger.info("Stream format changed, reopening output stream")
            self._close_stream()

        self._stream = self.pyaudio_instance.open(
            format=self.format,
            channels=channels,
            rate=sample_rate,
            output=True,
        )
        self._stream_format = (sample_rate, channels)
        logger.info(f"Audio output opened: {sample_rate}Hz, {channels} channel(s)")

    def _close_stream(self) -> None:
        try:
            self._stream.stop_stream()
            self._stream.close()
        except OSError as e:
            logger.warning(f"Error closing audio stream: {e}")
        self._stream = None
        self._stream_format = None

    def _release_device(self) -> None:
        if self._stream is not None:
            self._close_stream()
        if self.pyaudio_instance is not None:
            self.pyaudio_instance.terminate()
            self.pyaudio_instance = None
        self.is_open = False

    def _drain_queue(self) -> int:
        dropped = 0
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return dropped
            dropped += 1
