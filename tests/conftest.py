import asyncio
from typing import Any, Callable, List, Optional

import httpx
import pytest
from typer.testing import CliRunner

from tripmap.domain.models.common import CHAT, GEOCODE, MAP, OSM, STATIC_MAP, EndpointPolicy
from tripmap.infrastructure.config.settings import clear_test_config
from tripmap.infrastructure.resilience.api_retry import RetryOrchestrator
from tripmap.infrastructure.resilience.clock import Clock
from tripmap.infrastructure.resilience.cooldown import CooldownTracker
from tripmap.infrastructure.resilience.state import RateLimitRegistry
from tripmap.infrastructure.resilience.throttle import Throttle


class FakeClock(Clock):
    """Deterministic clock: sleeping advances time instantly and is recorded."""

    def __init__(self, start: float = 1000.0):
        self.current = start
        self.sleeps: List[float] = []

    def now(self) -> float:
        return self.current

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        if seconds > 0:
            self.current += seconds
        # Let other tasks run, like a real sleep would
        await asyncio.sleep(0)

    def advance(self, seconds: float) -> None:
        self.current += seconds


@pytest.fixture(scope="session")
def runner():
    """Provides a Typer CliRunner instance."""
    return CliRunner()


@pytest.fixture(autouse=True)
def clean_test_config():
    yield
    clear_test_config()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def registry(fake_clock):
    return RateLimitRegistry(clock=fake_clock)


@pytest.fixture
def events():
    """Collects every domain event emitted during a test."""
    return []


@pytest.fixture
def cooldown(registry, events):
    return CooldownTracker(registry, threshold=2, window=60.0, event_sink=events.append)


@pytest.fixture
def policies():
    """Same retry shape as the defaults, with no spacing so sleeps are backoff only."""
    return {
        CHAT: EndpointPolicy(min_interval=0.0, max_retries=3, initial_delay=1.0, max_delay=10.0),
        GEOCODE: EndpointPolicy(min_interval=0.0, max_retries=2, initial_delay=2.0, max_delay=10.0),
        MAP: EndpointPolicy(min_interval=0.0, max_retries=2, initial_delay=2.0, max_delay=10.0),
        STATIC_MAP: EndpointPolicy(min_interval=0.0, max_retries=2, initial_delay=2.0, max_delay=10.0),
        OSM: EndpointPolicy(min_interval=0.0, max_retries=0, initial_delay=1.0, max_delay=1.0),
    }


@pytest.fixture
def throttle(registry):
    return Throttle(registry, default_min_interval=0.0)


@pytest.fixture
def orchestrator(throttle, cooldown, policies, events):
    return RetryOrchestrator(throttle, cooldown, policies, event_sink=events.append)


def make_response(status_code: int = 200, json: Any = None, content: Optional[bytes] = None,
                  headers: Optional[dict] = None) -> httpx.Response:
    request = httpx.Request("GET", "https://upstream.test/")
    if json is not None:
        return httpx.Response(status_code, json=json, headers=headers, request=request)
    return httpx.Response(status_code, content=content or b"", headers=headers, request=request)


@pytest.fixture
def response():
    """Factory building httpx responses: response(429), response(200, json={...})."""
    return make_response


@pytest.fixture
def scripted_call(fake_clock):
    """Factory for a zero-argument call that plays back a script of outcomes.

    Each item is an HTTP status, an httpx.Response or an exception to raise.
    The returned call records the clock time of every attempt in `.times`.
    """
    def factory(*outcomes: Any) -> Callable:
        script = list(outcomes)

        async def call():
            call.times.append(fake_clock.now())
            outcome = script.pop(0) if len(script) > 1 else script[0]
            if isinstance(outcome, BaseException):
                raise outcome
            if isinstance(outcome, int):
                return make_response(outcome, json={"ok": outcome})
            return outcome

        call.times = []
        return call

    return factory
