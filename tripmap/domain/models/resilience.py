"""Domain models for the API resilience context.

`RateLimitState` is the long-lived, per endpoint class record shared by the
throttle and the cooldown tracker. `RetryState` lives for one orchestrated
call only.
"""

from dataclasses import dataclass
from typing import Optional

from tripmap.domain.models.common import EndpointClass


@dataclass
class RateLimitState:
    """Throttle and circuit state for one endpoint class."""
    endpoint_class: EndpointClass
    last_request_at: Optional[float] = None
    consecutive_rate_limit_signals: int = 0
    cooldown_until: Optional[float] = None


@dataclass
class RetryState:
    """Ephemeral retry bookkeeping for a single orchestrated call."""
    attempts_remaining: int
    next_delay: float
    max_delay: float
    attempts_made: int = 0

    def consume_delay(self) -> float:
        """Returns the delay to wait before the next attempt and advances the backoff.

        The delay doubles after each retry and never exceeds `max_delay`.
        """
        delay = min(self.next_delay, self.max_delay)
        self.attempts_remaining -= 1
        self.next_delay = min(self.next_delay * 2, self.max_delay)
        return delay
