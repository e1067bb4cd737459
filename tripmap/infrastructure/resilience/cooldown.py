"""Cooldown tracker: a two-state circuit breaker per endpoint class.

Consecutive rate-limit signals open the circuit for a fixed window. Once the
window has elapsed the next call is let through as a probe: a further
rate-limit signal reopens the circuit with a fresh window, a success closes
it and resets the counter.

All methods are synchronous and never await, so under asyncio each one is
an atomic read-modify-write of the class's state.
"""

import logging
from typing import Optional

from tripmap.domain.events.api_events import CircuitOpened, EventSink
from tripmap.domain.models.common import EndpointClass
from tripmap.infrastructure.resilience.state import RateLimitRegistry

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 2
DEFAULT_COOLDOWN_WINDOW_SECONDS = 60.0


def _log_event(event) -> None:
    logger.debug(f"EVENT: {event}")


class CooldownTracker:
    """Opens an endpoint class's circuit after repeated rate-limit signals."""

    def __init__(
        self,
        registry: RateLimitRegistry,
        threshold: int = DEFAULT_THRESHOLD,
        window: float = DEFAULT_COOLDOWN_WINDOW_SECONDS,
        event_sink: Optional[EventSink] = None,
    ):
        """Initializes the tracker.

        Args:
            registry: Shared rate-limit state registry.
            threshold: Consecutive rate-limit signals that open the circuit.
            window: Seconds the circuit stays open.
            event_sink: Receives CircuitOpened events (default: debug log).
        """
        if threshold < 1 or window <= 0:
            raise ValueError("Threshold must be >= 1 and window must be positive.")
        self.registry = registry
        self.clock = registry.clock
        self.threshold = threshold
        self.window = window
        self.dispatch_event = event_sink or _log_event
        logger.info(f"CooldownTracker initialized: threshold={threshold}, window={window}s")

    def _open(self, endpoint_class: EndpointClass, until: float) -> None:
        state = self.registry.state(endpoint_class)
        state.cooldown_until = until
        logger.warning(
            f"Circuit for '{endpoint_class}' opened for {until - self.clock.now():.0f}s "
            f"after {state.consecutive_rate_limit_signals} rate-limit signal(s)."
        )
        self.dispatch_event(CircuitOpened(
            endpoint_class=endpoint_class,
            cooldown_until=until,
            consecutive_signals=state.consecutive_rate_limit_signals,
        ))

    def report_rate_limited(self, endpoint_class: EndpointClass) -> None:
        """Records a rate-limit signal; opens (or reopens) the circuit at the threshold."""
        state = self.registry.state(endpoint_class)
        state.consecutive_rate_limit_signals += 1
        logger.debug(
            f"Rate-limit signal for '{endpoint_class}': "
            f"{state.consecutive_rate_limit_signals}/{self.threshold}"
        )
        if state.consecutive_rate_limit_signals >= self.threshold:
            self._open(endpoint_class, self.clock.now() + self.window)

    def report_success(self, endpoint_class: EndpointClass) -> None:
        """Resets the counter and closes the circuit."""
        state = self.registry.state(endpoint_class)
        if state.consecutive_rate_limit_signals or state.cooldown_until is not None:
            logger.info(f"Circuit for '{endpoint_class}' reset after a successful call.")
        state.consecutive_rate_limit_signals = 0
        state.cooldown_until = None

    def trip(self, endpoint_class: EndpointClass) -> None:
        """Opens the circuit regardless of the counter.

        Used when rate limiting is inferred by the caller rather than observed
        as a 429. An already longer window is kept.
        """
        state = self.registry.state(endpoint_class)
        state.consecutive_rate_limit_signals = max(state.consecutive_rate_limit_signals, self.threshold)
        until = self.clock.now() + self.window
        if state.cooldown_until is not None and state.cooldown_until >= until:
            return
        self._open(endpoint_class, until)

    def is_open(self, endpoint_class: EndpointClass) -> bool:
        """True while the cooldown window has not elapsed."""
        cooldown_until = self.registry.state(endpoint_class).cooldown_until
        return cooldown_until is not None and self.clock.now() < cooldown_until

    def remaining(self, endpoint_class: EndpointClass) -> float:
        """Seconds of cooldown left (0 when the circuit is closed)."""
        cooldown_until = self.registry.state(endpoint_class).cooldown_until
        if cooldown_until is None:
            return 0.0
        return max(0.0, cooldown_until - self.clock.now())
