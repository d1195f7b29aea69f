"""
Retry backoff policy for failed postings.

Exponential backoff with a ceiling and a maximum attempt count:

    delay(n) = min(base_delay * multiplier ** (n - 1), max_delay)

where ``n`` is the number of attempts already made.  The delay applies only
to the batch retry path (RetryService.retry_due); an explicit
``process_event`` call is never refused because of backoff.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    max_attempts: int = 5
    base_delay_seconds: float = 30.0
    multiplier: float = 2.0
    max_delay_seconds: float = 3600.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay_seconds < 0 or self.max_delay_seconds < 0:
            raise ValueError("delays must not be negative")
        if self.multiplier < 1:
            raise ValueError("multiplier must be >= 1")

    def delay_for(self, attempts_made: int) -> timedelta:
        exponent = max(attempts_made - 1, 0)
        seconds = min(
            self.base_delay_seconds * (self.multiplier ** exponent),
            self.max_delay_seconds,
        )
        return timedelta(seconds=seconds)

    def can_retry(self, attempts_made: int) -> bool:
        return attempts_made < self.max_attempts

    def next_retry_at(self, now: datetime, attempts_made: int) -> datetime | None:
        """When the batch path may try again, or None once attempts are exhausted."""
        if not self.can_retry(attempts_made):
            return None
        return now + self.delay_for(attempts_made)
