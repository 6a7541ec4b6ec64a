"""
Backoff helpers for the trainee client.

The relay itself never retries: a failed connect is surfaced to the poller,
and the client decides when to try again.
"""

from voicerelay.config.constants import MAX_POLL_BACKOFF


class RetryUtils:
    """Shared retry utility functions."""

    @staticmethod
    def calculate_backoff_delay(
        attempt: int,
        base_delay: float = 1.0,
        max_delay: float = MAX_POLL_BACKOFF,
        backoff_factor: float = 2.0,
    ) -> float:
        """
        Calculate delay for exponential backoff.

        Args:
            attempt (int): Current attempt number (0-based)
            base_delay (float): Initial delay
            max_delay (float): Maximum delay
            backoff_factor (float): Factor to multiply delay by

        Returns:
            float: Delay in seconds
        """
        delay = base_delay * (backoff_factor ** max(attempt, 0))
        return min(delay, max_delay)
