import asyncio

import httpx
import openai
import pytest

from tripmap.core.exceptions import (
    BadRequest,
    CircuitOpen,
    MalformedResponse,
    RateLimited,
    UpstreamError,
    UpstreamUnavailable,
)
from tripmap.domain.events.api_events import ApiCallDeferred, ApiCallFailed, ApiCallSucceeded, RetryScheduled
from tripmap.infrastructure.resilience.api_retry import RetryOrchestrator
from tripmap.infrastructure.resilience.throttle import Throttle

REQUEST = httpx.Request("POST", "https://upstream.test/chat")


def test_success_returns_parsed_json(orchestrator, scripted_call, events):
    call = scripted_call(200)

    body = asyncio.run(orchestrator.execute(call, "geocode"))

    assert body == {"ok": 200}
    assert len(call.times) == 1
    assert isinstance(events[-1], ApiCallSucceeded)


def test_custom_parse_is_applied(orchestrator, scripted_call):
    call = scripted_call(200)

    body = asyncio.run(orchestrator.execute(call, "geocode", parse=lambda r: r.status_code))

    assert body == 200


def test_attempts_never_exceed_max_retries_plus_one(orchestrator, scripted_call, fake_clock):
    call = scripted_call(503)

    with pytest.raises(UpstreamUnavailable) as exc_info:
        asyncio.run(orchestrator.execute(call, "geocode"))

    assert len(call.times) == 3
    assert exc_info.value.attempts == 3
    assert exc_info.value.status_code == 503
    assert fake_clock.sleeps == [2.0, 4.0]


def test_backoff_doubles_and_is_capped(orchestrator, scripted_call, fake_clock):
    call = scripted_call(503)

    with pytest.raises(UpstreamUnavailable):
        asyncio.run(orchestrator.execute(call, "chat", max_retries=5, initial_delay=1.0, max_delay=5.0))

    assert len(call.times) == 6
    assert fake_clock.sleeps == [1.0, 2.0, 4.0, 5.0, 5.0]
    gaps = [later - earlier for earlier, later in zip(call.times, call.times[1:])]
    assert gaps == [min(1.0 * 2 ** (k - 1), 5.0) for k in range(1, 6)]


def test_retry_then_success(orchestrator, scripted_call, events):
    call = scripted_call(502, 200)

    body = asyncio.run(orchestrator.execute(call, "map"))

    assert body == {"ok": 200}
    assert [e.reason for e in events if isinstance(e, RetryScheduled)] == ["unavailable"]


def test_two_rate_limits_then_success_returns_real_body(orchestrator, scripted_call, cooldown):
    call = scripted_call(429, 429, 200)

    body = asyncio.run(orchestrator.execute(call, "chat"))

    assert body == {"ok": 200}
    assert len(call.times) == 3
    state = cooldown.registry.state("chat")
    assert state.consecutive_rate_limit_signals == 0
    assert not cooldown.is_open("chat")


def test_exhausted_rate_limit_raises_rate_limited(orchestrator, scripted_call):
    call = scripted_call(429)

    with pytest.raises(RateLimited) as exc_info:
        asyncio.run(orchestrator.execute(call, "geocode"))

    assert not isinstance(exc_info.value, CircuitOpen)
    assert exc_info.value.status_code == 429


def test_circuit_opens_after_two_rate_limited_calls(orchestrator, scripted_call, events):
    call = scripted_call(429, 429, 200)

    async def scenario():
        outcomes = []
        for _ in range(3):
            try:
                await orchestrator.execute(call, "geocode", max_retries=0)
                outcomes.append("ok")
            except CircuitOpen:
                outcomes.append("circuit open")
            except RateLimited:
                outcomes.append("rate limited")
        return outcomes

    outcomes = asyncio.run(scenario())

    assert outcomes == ["rate limited", "rate limited", "circuit open"]
    assert len(call.times) == 2
    assert any(isinstance(e, ApiCallDeferred) for e in events)


def test_probe_is_sent_exactly_at_cooldown_end(orchestrator, scripted_call, cooldown, fake_clock):
    call = scripted_call(429, 429, 429, 200)

    async def scenario():
        with pytest.raises(RateLimited):
            await orchestrator.execute(call, "geocode")
        with pytest.raises(CircuitOpen):
            await orchestrator.execute(call, "geocode")
        fake_clock.current = cooldown.registry.state("geocode").cooldown_until
        return await orchestrator.execute(call, "geocode")

    body = asyncio.run(scenario())

    assert body == {"ok": 200}
    assert len(call.times) == 4
    assert not cooldown.is_open("geocode")


def test_open_circuit_makes_no_call(orchestrator, scripted_call, cooldown):
    cooldown.trip("map")
    call = scripted_call(200)

    with pytest.raises(CircuitOpen) as exc_info:
        asyncio.run(orchestrator.execute(call, "map"))

    assert call.times == []
    assert exc_info.value.retry_after == pytest.approx(60.0)


def test_client_error_is_not_retried(orchestrator, scripted_call, fake_clock, events):
    call = scripted_call(404)

    with pytest.raises(BadRequest) as exc_info:
        asyncio.run(orchestrator.execute(call, "geocode"))

    assert len(call.times) == 1
    assert exc_info.value.status_code == 404
    assert fake_clock.sleeps == []
    assert isinstance(events[-1], ApiCallFailed)


def test_unparseable_success_is_malformed(orchestrator, scripted_call, response):
    call = scripted_call(response(200, content=b"<html>not json</html>"))

    with pytest.raises(MalformedResponse):
        asyncio.run(orchestrator.execute(call, "geocode"))

    assert len(call.times) == 1


def test_network_errors_are_retried(orchestrator, scripted_call):
    call = scripted_call(httpx.ConnectError("connection refused", request=REQUEST), 200)

    body = asyncio.run(orchestrator.execute(call, "geocode"))

    assert body == {"ok": 200}
    assert len(call.times) == 2


@pytest.mark.parametrize("error", [TypeError("unexpected keyword 'qeury'"), KeyError("deployment")])
def test_programming_errors_in_call_fail_fast(orchestrator, scripted_call, fake_clock, events, error):
    call = scripted_call(error, 200)

    with pytest.raises(type(error)):
        asyncio.run(orchestrator.execute(call, "geocode"))

    assert len(call.times) == 1
    assert fake_clock.sleeps == []
    assert isinstance(events[-1], ApiCallFailed)
    assert events[-1].error_type == type(error).__name__


def test_other_unexpected_errors_are_retried(orchestrator, scripted_call):
    call = scripted_call(RuntimeError("event loop hiccup"), 200)

    body = asyncio.run(orchestrator.execute(call, "geocode"))

    assert body == {"ok": 200}
    assert len(call.times) == 2


def test_sdk_rate_limit_errors_feed_cooldown(orchestrator, scripted_call, cooldown):
    error = openai.RateLimitError("slow down", response=httpx.Response(429, request=REQUEST), body=None)
    call = scripted_call(error)

    with pytest.raises(RateLimited):
        asyncio.run(orchestrator.execute(call, "chat"))

    assert len(call.times) == 4
    assert cooldown.is_open("chat")


def test_sdk_connection_errors_end_unavailable(orchestrator, scripted_call):
    call = scripted_call(openai.APIConnectionError(request=REQUEST))

    with pytest.raises(UpstreamUnavailable):
        asyncio.run(orchestrator.execute(call, "chat", max_retries=1))

    assert len(call.times) == 2


def test_upstream_errors_from_the_call_propagate_unchanged(orchestrator, scripted_call):
    call = scripted_call(BadRequest("Query parameter is required", endpoint_class="geocode"))

    with pytest.raises(BadRequest, match="Query parameter is required"):
        asyncio.run(orchestrator.execute(call, "geocode"))

    assert len(call.times) == 1


def test_cancellation_propagates_without_touching_state(orchestrator, scripted_call, cooldown):
    call = scripted_call(asyncio.CancelledError())

    async def scenario():
        try:
            await orchestrator.execute(call, "chat")
        except asyncio.CancelledError:
            return "cancelled"

    assert asyncio.run(scenario()) == "cancelled"
    state = cooldown.registry.state("chat")
    assert state.consecutive_rate_limit_signals == 0
    assert state.cooldown_until is None


def test_dispatches_respect_min_interval(registry, cooldown, policies, scripted_call, fake_clock):
    throttle = Throttle(registry, min_intervals={"chat": 1.5})
    orchestrator = RetryOrchestrator(throttle, cooldown, policies)
    call = scripted_call(200)

    async def scenario():
        for _ in range(4):
            await orchestrator.execute(call, "chat")

    asyncio.run(scenario())

    gaps = [later - earlier for earlier, later in zip(call.times, call.times[1:])]
    assert gaps and all(gap >= 1.5 for gap in gaps)


def test_upstream_error_hierarchy():
    assert issubclass(CircuitOpen, RateLimited)
    assert RateLimited.recoverable and UpstreamUnavailable.recoverable
    assert not BadRequest.recoverable and not MalformedResponse.recoverable
    assert all(issubclass(cls, UpstreamError) for cls in (RateLimited, BadRequest, MalformedResponse))


def gated_call(fake_clock, *statuses):
    """A call that blocks on `call.gate` so several callers can be admitted before any answer."""
    script = list(statuses)

    async def call():
        call.times.append(fake_clock.now())
        await call.gate.wait()
        status = script.pop(0)
        return httpx.Response(status, json={"ok": status}, request=REQUEST)

    call.times = []
    return call


async def overlapping_probes(orchestrator, cooldown, fake_clock, call):
    """Opens the geocode circuit, lets it expire, then sends two overlapping calls."""
    cooldown.report_rate_limited("geocode")
    cooldown.report_rate_limited("geocode")
    fake_clock.current = cooldown.registry.state("geocode").cooldown_until
    call.gate = asyncio.Event()

    async def attempt():
        try:
            await orchestrator.execute(call, "geocode", max_retries=0)
            return "ok"
        except RateLimited:
            return "rate limited"

    tasks = [asyncio.create_task(attempt()) for _ in range(2)]
    for _ in range(5):
        await asyncio.sleep(0)
    call.gate.set()
    return await asyncio.gather(*tasks)


def test_calls_admitted_during_probe_proceed_and_last_report_wins(orchestrator, cooldown, fake_clock):
    call = gated_call(fake_clock, 429, 200)

    outcomes = asyncio.run(overlapping_probes(orchestrator, cooldown, fake_clock, call))

    # Both were admitted while the circuit was closed; the failed probe does not cancel the second
    assert outcomes == ["rate limited", "ok"]
    assert len(call.times) == 2
    assert not cooldown.is_open("geocode")
    assert cooldown.registry.state("geocode").consecutive_rate_limit_signals == 0


def test_rate_limit_after_successful_probe_counts_from_zero(orchestrator, cooldown, fake_clock):
    call = gated_call(fake_clock, 200, 429)

    outcomes = asyncio.run(overlapping_probes(orchestrator, cooldown, fake_clock, call))

    assert outcomes == ["ok", "rate limited"]
    assert not cooldown.is_open("geocode")
    assert cooldown.registry.state("geocode").consecutive_rate_limit_signals == 1
