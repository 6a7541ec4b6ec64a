"""
Silence endpointing for the trainee's recording turn.

The endpointer watches a stream of level samples (0-255 scale) and decides
when the speaker has stopped talking. A run of sub-threshold levels lasting
``quiet_duration`` seconds ends the utterance. The end is signalled exactly
once; the endpointer then ignores further samples until ``rearm()``.

Timing is taken from the timestamps passed in (or from the injected clock),
so the state machine can be driven deterministically in tests.
"""

import logging
import time
from collections import deque
from enum import Enum
from typing import Callable, Deque, Optional

from voicerelay.config.constants import (
    DEFAULT_QUIET_DURATION,
    DEFAULT_SILENCE_THRESHOLD,
    DEFAULT_SMOOTHING_WINDOW,
    LOGGER_NAME,
)

logger = logging.getLogger(LOGGER_NAME)


class EndpointerState(Enum):
    SPEAKING = "speaking"
    SILENCE_PENDING = "silence_pending"
    TRIGGERED = "triggered"


class UtteranceEndpointer:
    """
    Detects end of utterance from sustained low level.

    Attributes:
        silence_threshold: Levels below this count as silence
        quiet_duration: Seconds of continuous silence that end the utterance
        smoothing_window: Number of recent levels averaged before comparison
        on_end: Optional callback invoked once when the utterance ends

    Example:
        >>> ep = UtteranceEndpointer(silence_threshold=10, quiet_duration=1.5)
        >>> ep.update(50, now=0.0)
        False
        >>> ep.update(5, now=0.1)
        False
        >>> ep.update(5, now=1.6)
        True
    """

    def __init__(
        self,
        silence_threshold: float = DEFAULT_SILENCE_THRESHOLD,
        quiet_duration: float = DEFAULT_QUIET_DURATION,
        smoothing_window: int = DEFAULT_SMOOTHING_WINDOW,
        on_end: Optional[Callable[[], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if quiet_duration <= 0:
            raise ValueError(f"quiet_duration must be positive, got: {quiet_duration}")
        if smoothing_window < 1:
            raise ValueError(f"smoothing_window must be at least 1, got: {smoothing_window}")

        self.silence_threshold = silence_threshold
        self.quiet_duration = quiet_duration
        self.smoothing_window = smoothing_window
        self.on_end = on_end
        self._clock = clock

        self.state = EndpointerState.SPEAKING
        self._levels: Deque[float] = deque(maxlen=smoothing_window)
        self._silence_started_at: Optional[float] = None
        self.trigger_count = 0

    @classmethod
    def from_config(cls, config, **kwargs) -> "UtteranceEndpointer":
        """Build from an ``EndpointerConfig``."""
        return cls(
            silence_threshold=config.silence_threshold,
            quiet_duration=config.quiet_duration,
            smoothing_window=config.smoothing_window,
            **kwargs,
        )

    @property
    def average_level(self) -> float:
        if not self._levels:
            return 0.0
        return sum(self._levels) / len(self._levels)

    @property
    def triggered(self) -> bool:
        return self.state == EndpointerState.TRIGGERED

    def update(self, level: float, now: Optional[float] = None) -> bool:
        """
        Feed one level sample.

        Args:
            level: Frame level on the 0-255 scale
            now: Sample timestamp in seconds; the clock is read when omitted

        Returns:
            bool: True only for the call that ends the utterance
        """
        if self.state == EndpointerState.TRIGGERED:
            return False

        now = self._clock() if now is None else now
        self._levels.append(float(level))

        if self.average_level >= self.silence_threshold:
            if self.state == EndpointerState.SILENCE_PENDING:
                logger.debug("Speech resumed; silence timer cancelled")
            self.state = EndpointerState.SPEAKING
            self._silence_started_at = None
            return False

        if self._silence_started_at is None:
            self._silence_started_at = now
            self.state = EndpointerState.SILENCE_PENDING

        return self.check(now)

    def check(self, now: Optional[float] = None) -> bool:
        """
        Fire the pending silence timer if it has run out.

        Lets a caller end the utterance while no new samples are arriving.

        Returns:
            bool: True only for the call that ends the utterance
        """
        if self.state != EndpointerState.SILENCE_PENDING:
            return False

        now = self._clock() if now is None else now
        if now - self._silence_started_at < self.quiet_duration:
            return False

        self.state = EndpointerState.TRIGGERED
        self.trigger_count += 1
        logger.info(
            f"End of utterance after {now - self._silence_started_at:.2f}s of silence"
        )
        if self.on_end is not None:
            self.on_end()
        return True

    def rearm(self) -> None:
        """Reset for the next utterance."""
        self.state = EndpointerState.SPEAKING
        self._levels.clear()
        self._silence_started_at = None
