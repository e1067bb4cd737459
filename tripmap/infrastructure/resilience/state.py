"""Process-wide registry of per endpoint class rate-limit state.

The registry is the single owner of every `RateLimitState` and of the
per-class lock that serialises read-modify-write sequences on it. The
throttle and the cooldown tracker share one registry.
"""

import asyncio
import copy
import logging
from typing import Dict, Optional

from tripmap.domain.models.common import EndpointClass
from tripmap.domain.models.resilience import RateLimitState
from tripmap.infrastructure.resilience.clock import Clock

logger = logging.getLogger(__name__)


class RateLimitRegistry:
    """Holds one RateLimitState and one asyncio.Lock per endpoint class."""

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or Clock()
        self._states: Dict[EndpointClass, RateLimitState] = {}
        self._locks: Dict[EndpointClass, asyncio.Lock] = {}

    def state(self, endpoint_class: EndpointClass) -> RateLimitState:
        """Returns the live state record for a class, creating it on first use."""
        state = self._states.get(endpoint_class)
        if state is None:
            state = RateLimitState(endpoint_class=endpoint_class)
            self._states[endpoint_class] = state
            logger.debug(f"Created rate-limit state for endpoint class '{endpoint_class}'")
        return state

    def lock(self, endpoint_class: EndpointClass) -> asyncio.Lock:
        """Returns the lock guarding dispatches for a class."""
        lock = self._locks.get(endpoint_class)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[endpoint_class] = lock
        return lock

    def snapshot(self) -> Dict[EndpointClass, RateLimitState]:
        """Returns copies of all known states (safe to display)."""
        return {name: copy.copy(state) for name, state in self._states.items()}
