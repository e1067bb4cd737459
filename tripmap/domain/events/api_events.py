"""Domain Events related to upstream calls and resilience.

Examples include events for when calls are deferred, retried, fail, or
succeed, when a circuit opens and when a map render degrades a tier.
"""

import time
from dataclasses import dataclass, field
from typing import Callable, Optional


@dataclass
class DomainEvent:
    """Base class for domain events."""
    pass


# --- Specific API Events ---

@dataclass
class ApiCallInitiated(DomainEvent):
    """Event triggered when an upstream call is about to be dispatched."""
    endpoint_class: str  # e.g., 'chat', 'geocode'
    attempt_number: int
    timestamp: float = field(default_factory=time.time)


@dataclass
class ApiCallSucceeded(DomainEvent):
    """Event triggered when an upstream call succeeds."""
    endpoint_class: str
    attempt_number: int
    latency_ms: float
    timestamp: float = field(default_factory=time.time)


@dataclass
class ApiCallFailed(DomainEvent):
    """Event triggered when an upstream call fails definitively (after retries)."""
    endpoint_class: str
    error_type: str
    error_message: str
    attempts: int
    timestamp: float = field(default_factory=time.time)


@dataclass
class ApiCallDeferred(DomainEvent):
    """Event triggered when a call is refused because the endpoint's circuit is open."""
    endpoint_class: str
    wait_time_seconds: float
    timestamp: float = field(default_factory=time.time)


@dataclass
class RetryScheduled(DomainEvent):
    """Event triggered when a retry is scheduled for a failed upstream call."""
    endpoint_class: str
    attempt_number: int
    delay_seconds: float
    reason: str  # 'rate_limited' or 'unavailable'
    timestamp: float = field(default_factory=time.time)


@dataclass
class CircuitOpened(DomainEvent):
    """Event triggered when repeated rate-limit signals open an endpoint's circuit."""
    endpoint_class: str
    cooldown_until: float
    consecutive_signals: int
    timestamp: float = field(default_factory=time.time)


@dataclass
class MapTierDegraded(DomainEvent):
    """Event triggered when a map render drops to a lower fallback tier."""
    from_tier: str
    to_tier: str
    reason: str
    location_name: Optional[str] = None
    timestamp: float = field(default_factory=time.time)


EventSink = Callable[[DomainEvent], None]
