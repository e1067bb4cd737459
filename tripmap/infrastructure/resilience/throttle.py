"""Per endpoint class request throttle.

Controls the spacing of outgoing requests to prevent hitting upstream rate
limits: consecutive dispatches to the same endpoint class are separated by
at least that class's minimum interval, and `slot()` keeps at most one call
in flight per class.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional

from tripmap.domain.models.common import EndpointClass
from tripmap.infrastructure.resilience.state import RateLimitRegistry

logger = logging.getLogger(__name__)

DEFAULT_MIN_INTERVAL_SECONDS = 1.0


class Throttle:
    """Minimum-interval throttle keyed by endpoint class."""

    def __init__(
        self,
        registry: RateLimitRegistry,
        min_intervals: Optional[Dict[EndpointClass, float]] = None,
        default_min_interval: float = DEFAULT_MIN_INTERVAL_SECONDS,
    ):
        """Initializes the throttle.

        Args:
            registry: Shared rate-limit state registry (owns the clock and locks).
            min_intervals: Minimum seconds between dispatches, per endpoint class.
            default_min_interval: Interval for classes missing from `min_intervals`.
        """
        if default_min_interval < 0:
            raise ValueError("Minimum interval must not be negative.")
        self.registry = registry
        self.clock = registry.clock
        self.min_intervals = dict(min_intervals or {})
        self.default_min_interval = default_min_interval
        logger.info(f"Throttle initialized: intervals={self.min_intervals}, default={default_min_interval}s")

    def min_interval(self, endpoint_class: EndpointClass) -> float:
        return self.min_intervals.get(endpoint_class, self.default_min_interval)

    def wait_time(self, endpoint_class: EndpointClass) -> float:
        """Seconds until a request to this class may be dispatched (0 if immediately)."""
        state = self.registry.state(endpoint_class)
        if state.last_request_at is None:
            return 0.0
        elapsed = self.clock.now() - state.last_request_at
        return max(0.0, self.min_interval(endpoint_class) - elapsed)

    async def _wait_and_record(self, endpoint_class: EndpointClass) -> None:
        wait = self.wait_time(endpoint_class)
        if wait > 0:
            logger.debug(f"Throttling '{endpoint_class}' for {wait:.2f} seconds.")
            await self.clock.sleep(wait)
        self.registry.state(endpoint_class).last_request_at = self.clock.now()

    async def acquire(self, endpoint_class: EndpointClass) -> None:
        """Waits until a request to this class is permitted, then records it."""
        async with self.registry.lock(endpoint_class):
            await self._wait_and_record(endpoint_class)

    @asynccontextmanager
    async def slot(self, endpoint_class: EndpointClass) -> AsyncIterator[None]:
        """Acquires the class for one dispatch and holds it until the call completes.

        Usage:
            async with throttle.slot("geocode"):
                response = await client.get(...)
        """
        async with self.registry.lock(endpoint_class):
            await self._wait_and_record(endpoint_class)
            yield
