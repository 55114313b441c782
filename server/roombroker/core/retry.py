"""Exponential backoff policy used by the downstream push client."""

from dataclasses import dataclass


@dataclass(frozen=True)
class BackoffPolicy:
    """
    Exponential backoff with a cap.

    Attempt numbers start at 1 for the first retry, so with the defaults the
    waits are 1s then 2s, for three attempts in total.
    """

    base_delay: float = 1.0
    max_delay: float = 30.0
    max_retries: int = 2

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay(self, attempt: int) -> float:
        """Seconds to wait before retry number ``attempt``."""
        if attempt < 1:
            return 0.0
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)

    def should_retry(self, attempt: int) -> bool:
        """True while another attempt is allowed after ``attempt`` attempts."""
        return attempt <= self.max_retries
