"""Audio-related data models."""

from dataclasses import dataclass

import numpy as np

from ..errors import InvalidVolumeError

MIN_VOLUME = 0
MAX_VOLUME = 9


@dataclass
class AudioFrame:
    """A decoded block of interleaved 16-bit PCM."""
    samples: np.ndarray  # int16, interleaved by channel
    sample_rate: int
    channels: int
    sequence_number: int = 0

    @property
    def sample_count(self) -> int:
        """Samples per channel."""
        return len(self.samples) // self.channels

    @property
    def duration(self) -> float:
        """Playback duration in seconds."""
        return self.sample_count / self.sample_rate


@dataclass(frozen=True)
class VolumeLevel:
    """User-facing volume between 0 and 9."""
    level: int

    def __post_init__(self):
        if isinstance(self.level, bool) or not isinstance(self.level, int):
            raise InvalidVolumeError(f"Volume must be an integer, got {self.level!r}")
        if not MIN_VOLUME <= self.level <= MAX_VOLUME:
            raise InvalidVolumeError(
                f"Volume must be between {MIN_VOLUME} and {MAX_VOLUME}, got {self.level}"
            )

    @property
    def amplitude(self) -> float:
        """Map the level to an amplitude multiplier in [0.0, 1.0].

        Each step down from the maximum attenuates by 20%, and 0 is silence.
        """
        if self.level == 0:
            return 0.0
        return 0.8 ** (MAX_VOLUME - self.level)

    def __str__(self) -> str:
        return str(self.level)
