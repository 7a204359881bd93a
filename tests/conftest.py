"""Pytest configuration and fixtures for Code Radio tests."""

import asyncio
import pytest
import tempfile
import logging
from unittest.mock import Mock, patch
import numpy as np

from coderadio.audio.decoder import PcmBlock
from coderadio.errors import CorruptFrameError
from coderadio.models.audio import AudioFrame


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# MPEG-1 Layer III, 128 kbps, 44.1 kHz, stereo: 417 bytes per frame (418 padded)
MP3_HEADER = b"\xff\xfb\x90\x00"
MP3_HEADER_PADDED = b"\xff\xfb\x92\x00"
MP3_FRAME_LENGTH = 417


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests of a single component")
    config.addinivalue_line("markers", "integration: tests wiring several components together")


@pytest.fixture
def temp_data_dir():
    """Create temporary directory for test data."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


@pytest.fixture
def mock_pyaudio():
    """Mock PyAudio for testing without actual audio hardware."""
    with patch('pyaudio.PyAudio') as mock_pyaudio_class:
        mock_pyaudio_instance = Mock()
        mock_stream = Mock()

        # Configure mock stream
        mock_stream.write.return_value = None
        mock_stream.stop_stream.return_value = None
        mock_stream.close.return_value = None

        # Configure mock PyAudio instance
        mock_pyaudio_instance.open.return_value = mock_stream
        mock_pyaudio_instance.terminate.return_value = None
        mock_pyaudio_instance.get_default_output_device_info.return_value = {"name": "mock output"}

        # Configure mock PyAudio class
        mock_pyaudio_class.return_value = mock_pyaudio_instance

        yield {
            'class': mock_pyaudio_class,
            'instance': mock_pyaudio_instance,
            'stream': mock_stream
        }


@pytest.fixture
def mp3_frame():
    """Build a synthetic MP3 frame whose fifth byte carries a tag."""
    def build(tag: int = 0, padded: bool = False) -> bytes:
        header = MP3_HEADER_PADDED if padded else MP3_HEADER
        length = MP3_FRAME_LENGTH + int(padded)
        body = bytearray(length - len(header))
        body[0] = tag & 0x7F
        return header + bytes(body)

    return build


@pytest.fixture
def mp3_stream(mp3_frame):
    """Build a stream of tagged frames, every third one padded."""
    def build(count: int, first_tag: int = 0) -> bytes:
        return b"".join(
            mp3_frame(tag=first_tag + i, padded=(i % 3 == 2)) for i in range(count)
        )

    return build


class FakeCodec:
    """Stands in for PyAVMp3Codec: one silent-ish PCM block per frame.

    Each block is filled with the frame's tag so tests can tell frames apart.
    """

    def __init__(self, corrupt_tags=()):
        self.corrupt_tags = set(corrupt_tags)
        self.decoded_tags = []
        self.resets = 0

    def decode(self, header, payload):
        tag = payload[4]
        if tag in self.corrupt_tags:
            raise CorruptFrameError(f"frame {tag} is corrupt")
        self.decoded_tags.append(tag)
        samples = np.full(header.samples_per_frame * header.channels, tag, dtype=np.int16)
        return [PcmBlock(samples, header.sample_rate, header.channels)]

    def reset(self):
        self.resets += 1


@pytest.fixture
def codec_factory():
    """The FakeCodec class, for tests that need to configure corruption."""
    return FakeCodec


@pytest.fixture
def fake_codec():
    return FakeCodec()


@pytest.fixture
def make_audio_frame():
    """Build an AudioFrame of constant samples."""
    def build(value: int = 1000, samples_per_channel: int = 1152, channels: int = 2,
              sample_rate: int = 44100, sequence_number: int = 0) -> AudioFrame:
        return AudioFrame(
            samples=np.full(samples_per_channel * channels, value, dtype=np.int16),
            sample_rate=sample_rate,
            channels=channels,
            sequence_number=sequence_number,
        )

    return build


@pytest.fixture
def wait_until():
    """Poll a condition on the running loop until it holds or time runs out."""
    async def wait(predicate, timeout: float = 2.0, interval: float = 0.01):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("Condition not met in time")
            await asyncio.sleep(interval)

    return wait


@pytest.fixture
def code_radio_message():
    """Build a Code Radio now-playing message as served by the API."""
    def build(title="Song 1", elapsed=30, duration=200, played_at=1700000000, listeners=42):
        return {
            "station": {
                "id": 1,
                "name": "freeCodeCamp.org Code Radio",
                "shortcode": "coderadio",
                "listen_url": "https://coderadio-relay-nyc.freecodecamp.org/radio/8010/radio.mp3",
                "mounts": [
                    {"id": 1, "name": "HQ", "url": "https://example.org/radio/8000/radio.mp3", "bitrate": 128, "format": "mp3"},
                    {"id": 2, "name": "LQ", "url": "https://example.org/radio/8000/low.mp3", "bitrate": 64, "format": "mp3"},
                ],
                "remotes": [
                    {"id": 5, "name": "NYC", "url": "https://coderadio-relay-nyc.freecodecamp.org/radio/8010/radio.mp3", "bitrate": 128, "format": "mp3"},
                ],
            },
            "listeners": {"current": listeners, "total": listeners, "unique": listeners},
            "now_playing": {
                "elapsed": elapsed,
                "duration": duration,
                "played_at": played_at,
                "song": {"id": "abc", "title": title, "artist": "Artist 1", "album": "Album 1"},
            },
        }

    return build
