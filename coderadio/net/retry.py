"""Reconnect policy shared by the audio stream and the metadata feed.

A dropped connection is retried immediately a few times, then with an
exponential backoff that is capped at ``max_delay``. Without ``max_attempts``
it keeps retrying forever, which is what a radio left playing all day needs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from ..errors import ReconnectExhaustedError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconnectPolicy:
    """Tunable reconnect parameters.

    immediate_retries: Attempts made without any delay.
    initial_delay: First backoff delay in seconds.
    multiplier: Growth factor between consecutive backoff delays.
    max_delay: Upper bound for any delay.
    max_attempts: Total attempts before giving up; None retries forever.
    """
    immediate_retries: int = 3
    initial_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 30.0
    max_attempts: Optional[int] = None

    def __post_init__(self):
        if self.immediate_retries < 0:
            raise ValueError("immediate_retries must be >= 0")
        if self.initial_delay < 0 or self.max_delay < self.initial_delay:
            raise ValueError("need 0 <= initial_delay <= max_delay")
        if self.multiplier < 1:
            raise ValueError("multiplier must be >= 1")
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1 or None")

    @classmethod
    def from_config(cls, config) -> "ReconnectPolicy":
        return cls(
            immediate_retries=int(config.get("network.immediate_retries", 3)),
            initial_delay=float(config.get("network.initial_delay", 1.0)),
            multiplier=float(config.get("network.backoff_multiplier", 2.0)),
            max_delay=float(config.get("network.max_delay", 30.0)),
            max_attempts=config.get("network.max_attempts"),
        )

    def delay_for(self, attempt: int) -> float:
        """Delay in seconds before reconnect attempt number ``attempt`` (1-based)."""
        if attempt < 1:
            raise ValueError("attempt is 1-based")
        if attempt <= self.immediate_retries:
            return 0.0
        exponent = attempt - self.immediate_retries - 1
        # Clamp the exponent so huge attempt counts cannot overflow
        delay = self.initial_delay * self.multiplier ** min(exponent, 64)
        return min(delay, self.max_delay)

    def start(self, name: str = "stream") -> "Backoff":
        return Backoff(self, name)


class Backoff:
    """Tracks consecutive failures of one connection under a policy."""

    def __init__(self, policy: ReconnectPolicy, name: str = "stream"):
        self.policy = policy
        self.name = name
        self.attempt = 0
        self.total_failures = 0

    def next_delay(self) -> float:
        """Register a failure and return how long to wait before reconnecting.

        Raises:
            ReconnectExhaustedError: once ``max_attempts`` is used up
        """
        self.attempt += 1
        self.total_failures += 1
        max_attempts = self.policy.max_attempts
        if max_attempts is not None and self.attempt > max_attempts:
            raise ReconnectExhaustedError(
                f"Gave up reconnecting {self.name} after {max_attempts} attempts"
            )
        delay = self.policy.delay_for(self.attempt)
        logger.debug(f"{self.name}: reconnect attempt {self.attempt} in {delay:.1f}s")
        return delay

    def reset(self) -> None:
        """Mark the connection healthy again."""
        if self.attempt:
            logger.debug(f"{self.name}: connection recovered after {self.attempt} attempt(s)")
        self.attempt = 0
