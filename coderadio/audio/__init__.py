"""MP3 decoding and audio playback module."""

from .decoder import FrameDecoder, Mp3FrameSplitter, PyAVMp3Codec
from .playback import PlaybackSink

__all__ = [
    'FrameDecoder',
    'Mp3FrameSplitter',
    'PyAVMp3Codec',
    'PlaybackSink'
]
