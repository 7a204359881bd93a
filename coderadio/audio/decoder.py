"""Incremental MP3 stream decoding.

Network chunks never line up with MP3 frames, so decoding happens in two
steps. ``Mp3FrameSplitter`` keeps a carry-over buffer of bytes that do not yet
form a complete frame and cuts the stream into whole frames, resynchronising on
the next frame header when it meets garbage. ``PyAVMp3Codec`` then turns each
complete frame into 16-bit PCM. ``FrameDecoder`` ties both together and keeps
corruption statistics.
"""

import logging
from collections import deque
from dataclasses import dataclass
from typing import Deque, List, NamedTuple, Optional, Tuple

import av
import numpy as np
from av.error import FFmpegError

from ..errors import CorruptFrameError
from ..models.audio import AudioFrame

logger = logging.getLogger(__name__)

HEADER_SIZE = 4
ID3_HEADER_SIZE = 10

# Layer III bitrates in kbps by bitrate index; index 0 (free format) and 15 are invalid
_BITRATES_MPEG1 = (0, 32, 40, 48, 56, 64, 80, 96, 112, 128, 160, 192, 224, 256, 320, 0)
_BITRATES_MPEG2 = (0, 8, 16, 24, 32, 40, 48, 56, 64, 80, 96, 112, 128, 144, 160, 0)

# Keyed by the 2-bit version id from the header
_SAMPLE_RATES = {
    3: (44100, 48000, 32000),  # MPEG-1
    2: (22050, 24000, 16000),  # MPEG-2
    0: (11025, 12000, 8000),   # MPEG-2.5
}

MPEG1 = 3


@dataclass(frozen=True)
class Mp3FrameHeader:
    """Fields of an MPEG audio Layer III frame header."""
    version: int
    bitrate: int
    sample_rate: int
    padding: bool
    channels: int
    frame_length: int

    @property
    def samples_per_frame(self) -> int:
        return 1152 if self.version == MPEG1 else 576

    @property
    def duration(self) -> float:
        return self.samples_per_frame / self.sample_rate


def parse_frame_header(data, offset: int = 0) -> Optional[Mp3FrameHeader]:
    """Parse a Layer III frame header at ``offset``.

    Args:
        data: bytes-like buffer
        offset: Position of the candidate sync word

    Returns:
        The header, or None if the four bytes at ``offset`` are not a valid
        Layer III header (or fewer than four bytes are available).
    """
    if len(data) - offset < HEADER_SIZE:
        return None

    b0, b1, b2, b3 = data[offset:offset + HEADER_SIZE]
    if b0 != 0xFF or (b1 & 0xE0) != 0xE0:
        return None

    version = (b1 >> 3) & 0x03
    layer = (b1 >> 1) & 0x03
    bitrate_index = b2 >> 4
    sample_rate_index = (b2 >> 2) & 0x03
    emphasis = b3 & 0x03

    # version 1 is reserved, layer 1 is Layer III
    if version == 1 or layer != 1:
        return None
    if bitrate_index in (0, 15) or sample_rate_index == 3 or emphasis == 2:
        return None

    table = _BITRATES_MPEG1 if version == MPEG1 else _BITRATES_MPEG2
    bitrate = table[bitrate_index] * 1000
    sample_rate = _SAMPLE_RATES[version][sample_rate_index]
    padding = bool((b2 >> 1) & 0x01)
    channels = 1 if (b3 >> 6) == 3 else 2
    coefficient = 144 if version == MPEG1 else 72
    frame_length = coefficient * bitrate // sample_rate + int(padding)

    return Mp3FrameHeader(
        version=version,
        bitrate=bitrate,
        sample_rate=sample_rate,
        padding=padding,
        channels=channels,
        frame_length=frame_length,
    )


class Mp3FrameSplitter:
    """Cuts an MP3 byte stream into complete frames.

    Bytes that do not yet make up a whole frame stay in ``_buffer`` and are
    prefixed to the next chunk. While the splitter is not locked onto the
    stream (at the start, or after corrupt data) a header only counts once the
    header right after its frame also parses. If that next header has not
    arrived yet the splitter waits for more data instead of guessing, which
    makes the output independent of how the stream was chunked.
    """

    def __init__(self):
        self._buffer = bytearray()
        self._locked = False
        self._at_stream_start = True

        self.frames_found = 0
        self.bytes_skipped = 0
        self.resyncs = 0

    @property
    def pending_bytes(self) -> int:
        return len(self._buffer)

    @property
    def locked(self) -> bool:
        return self._locked

    def feed(self, chunk: bytes) -> List[Tuple[Mp3FrameHeader, bytes]]:
        """Append a chunk and return every frame completed by it."""
        self._buffer.extend(chunk)
        return self._drain(final=False)

    def flush(self) -> List[Tuple[Mp3FrameHeader, bytes]]:
        """Return remaining complete frames and discard any partial tail."""
        frames = self._drain(final=True)
        if self._buffer:
            logger.debug(f"Discarding {len(self._buffer)} trailing bytes of a partial frame")
            self.bytes_skipped += len(self._buffer)
            self._buffer.clear()
        return frames

    def reset(self) -> None:
        """Forget buffered bytes and sync state, e.g. for a new connection."""
        self._buffer.clear()
        self._locked = False
        self._at_stream_start = True

    def _drain(self, final: bool) -> List[Tuple[Mp3FrameHeader, bytes]]:
        frames: List[Tuple[Mp3FrameHeader, bytes]] = []

        if self._at_stream_start and not self._skip_id3_tag(final):
            return frames

        buf = self._buffer
        pos = 0
        while len(buf) - pos >= HEADER_SIZE:
            header = parse_frame_header(buf, pos)
            if header is None:
                pos = self._skip_to_next_sync(pos)
                continue

            end = pos + header.frame_length
            if end > len(buf):
                break

            if not self._locked:
                if len(buf) - end >= HEADER_SIZE:
                    if parse_frame_header(buf, end) is None:
                        pos = self._skip_to_next_sync(pos)
                        continue
                elif not final:
                    break

            frames.append((header, bytes(buf[pos:end])))
            self.frames_found += 1
            self._locked = True
            pos = end

        del buf[:pos]
        return frames

    def _skip_to_next_sync(self, pos: int) -> int:
        if self._locked:
            self.resyncs += 1
            self._locked = False
        next_sync = self._buffer.find(b"\xff", pos + 1)
        if next_sync == -1:
            next_sync = len(self._buffer)
        self.bytes_skipped += next_sync - pos
        return next_sync

    def _skip_id3_tag(self, final: bool) -> bool:
        """Drop a leading ID3v2 tag. Returns False while more bytes are needed."""
        buf = self._buffer
        prefix = bytes(buf[:3])
        if not b"ID3".startswith(prefix):
            self._at_stream_start = False
            return True

        if len(buf) < ID3_HEADER_SIZE:
            if final:
                self._at_stream_start = False
                return True
            return False

        size = 0
        for byte in buf[6:10]:
            size = (size << 7) | (byte & 0x7F)
        total = ID3_HEADER_SIZE + size
        if buf[5] & 0x10:
            total += ID3_HEADER_SIZE  # footer

        if len(buf) < total and not final:
            return False

        skipped = min(total, len(buf))
        logger.debug(f"Skipping {skipped} byte ID3v2 tag at stream start")
        del buf[:skipped]
        self._at_stream_start = False
        return True


class PcmBlock(NamedTuple):
    """Interleaved signed 16-bit samples produced by a codec."""
    samples: np.ndarray
    sample_rate: int
    channels: int


class PyAVMp3Codec:
    """Decodes single MP3 frames into packed s16 PCM with PyAV."""

    def __init__(self):
        self._context = av.CodecContext.create("mp3", "r")
        self._resampler: Optional[av.AudioResampler] = None
        self._resampler_key: Optional[Tuple[str, str, int]] = None

    def decode(self, header: Mp3FrameHeader, payload: bytes) -> List[PcmBlock]:
        """Decode one complete frame.

        Raises:
            CorruptFrameError: if FFmpeg rejects the frame
        """
        try:
            decoded = self._context.decode(av.Packet(payload))
            blocks = []
            for frame in decoded:
                for out in self._resample(frame):
                    samples = out.to_ndarray().reshape(-1).astype(np.int16, copy=False)
                    blocks.append(PcmBlock(samples, out.sample_rate, len(out.layout.channels)))
            return blocks
        except (FFmpegError, ValueError) as e:
            raise CorruptFrameError(f"Could not decode {header.frame_length} byte frame: {e}") from e

    def _resample(self, frame: av.AudioFrame) -> List[av.AudioFrame]:
        key = (frame.format.name, frame.layout.name, frame.sample_rate)
        if self._resampler is None or key != self._resampler_key:
            self._resampler = av.AudioResampler(
                format="s16",
                layout=frame.layout.name,
                rate=frame.sample_rate,
            )
            self._resampler_key = key
        return self._resampler.resample(frame)

    def reset(self) -> None:
        self._context = av.CodecContext.create("mp3", "r")
        self._resampler = None
        self._resampler_key = None


class FrameDecoder:
    """Turns raw stream chunks into AudioFrames, in arrival order."""

    def __init__(
        self,
        codec=None,
        corruption_warning_threshold: int = 8,
        corruption_window_frames: int = 100,
    ):
        """Initialize the decoder.

        Args:
            codec: Object with ``decode(header, payload) -> List[PcmBlock]`` and
                ``reset()``; defaults to ``PyAVMp3Codec``
            corruption_warning_threshold: Corruptions within the window that
                trigger a warning
            corruption_window_frames: Size of the corruption window in frames
        """
        self.codec = codec if codec is not None else PyAVMp3Codec()
        self.splitter = Mp3FrameSplitter()
        self.corruption_warning_threshold = corruption_warning_threshold
        self.corruption_window_frames = corruption_window_frames

        self.frames_decoded = 0
        self.corrupt_frames = 0
        self.corruption_warnings = 0
        self._frames_seen = 0
        self._next_sequence = 0
        self._recent_corruptions: Deque[int] = deque()

    def feed(self, chunk: bytes) -> List[AudioFrame]:
        """Decode every frame completed by ``chunk``."""
        resyncs_before = self.splitter.resyncs
        frames = self.splitter.feed(chunk)
        self._record_resyncs(resyncs_before)
        return self._decode_frames(frames)

    def flush(self) -> List[AudioFrame]:
        """Decode what is left at the end of a stream."""
        resyncs_before = self.splitter.resyncs
        frames = self.splitter.flush()
        self._record_resyncs(resyncs_before)
        return self._decode_frames(frames)

    def reset(self) -> None:
        """Prepare for a new connection. Sequence numbers keep counting."""
        if self.splitter.pending_bytes:
            logger.debug(f"Dropping {self.splitter.pending_bytes} carry-over bytes on reset")
        self.splitter.reset()
        self.codec.reset()

    def _decode_frames(self, frames: List[Tuple[Mp3FrameHeader, bytes]]) -> List[AudioFrame]:
        decoded: List[AudioFrame] = []
        for header, payload in frames:
            self._frames_seen += 1
            try:
                blocks = self.codec.decode(header, payload)
            except CorruptFrameError as e:
                logger.debug(f"Dropping frame: {e}")
                self.corrupt_frames += 1
                self._record_corruption()
                continue

            for block in blocks:
                decoded.append(AudioFrame(
                    samples=block.samples,
                    sample_rate=block.sample_rate,
                    channels=block.channels,
                    sequence_number=self._next_sequence,
                ))
                self._next_sequence += 1
                self.frames_decoded += 1
        return decoded

    def _record_resyncs(self, resyncs_before: int) -> None:
        for _ in range(self.splitter.resyncs - resyncs_before):
            logger.debug("Lost MP3 frame sync, skipping to next frame header")
            self._record_corruption()

    def _record_corruption(self) -> None:
        position = self._frames_seen
        self._recent_corruptions.append(position)
        while self._recent_corruptions and self._recent_corruptions[0] <= position - self.corruption_window_frames:
            self._recent_corruptions.popleft()

        if len(self._recent_corruptions) >= self.corruption_warning_threshold:
            self.corruption_warnings += 1
            logger.warning(
                f"Persistent audio corruption: {len(self._recent_corruptions)} bad frames "
                f"in the last {self.corruption_window_frames} frames"
            )
            self._recent_corruptions.clear()
