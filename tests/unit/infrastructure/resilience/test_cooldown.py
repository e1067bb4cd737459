import pytest

from tripmap.domain.events.api_events import CircuitOpened
from tripmap.infrastructure.resilience.cooldown import CooldownTracker


def test_single_signal_keeps_circuit_closed(cooldown):
    cooldown.report_rate_limited("chat")

    assert not cooldown.is_open("chat")
    assert cooldown.registry.state("chat").consecutive_rate_limit_signals == 1


def test_threshold_opens_circuit_for_window(cooldown, fake_clock, events):
    cooldown.report_rate_limited("chat")
    cooldown.report_rate_limited("chat")

    state = cooldown.registry.state("chat")
    assert cooldown.is_open("chat")
    assert state.cooldown_until == fake_clock.now() + 60.0
    assert cooldown.remaining("chat") == pytest.approx(60.0)
    assert [type(e) for e in events] == [CircuitOpened]
    assert events[0].consecutive_signals == 2


def test_circuit_closes_exactly_at_cooldown_until(cooldown, fake_clock):
    cooldown.report_rate_limited("geocode")
    cooldown.report_rate_limited("geocode")

    fake_clock.advance(59.5)
    assert cooldown.is_open("geocode")
    fake_clock.advance(0.5)
    assert not cooldown.is_open("geocode")
    assert cooldown.remaining("geocode") == 0.0


def test_signal_after_expiry_reopens_with_fresh_window(cooldown, fake_clock):
    cooldown.report_rate_limited("geocode")
    cooldown.report_rate_limited("geocode")
    fake_clock.advance(60)

    cooldown.report_rate_limited("geocode")

    assert cooldown.is_open("geocode")
    assert cooldown.registry.state("geocode").cooldown_until == fake_clock.now() + 60.0


def test_success_resets_counter_and_closes(cooldown):
    cooldown.report_rate_limited("map")
    cooldown.report_rate_limited("map")

    cooldown.report_success("map")

    state = cooldown.registry.state("map")
    assert state.consecutive_rate_limit_signals == 0
    assert state.cooldown_until is None
    assert not cooldown.is_open("map")


def test_success_between_signals_prevents_opening(cooldown):
    cooldown.report_rate_limited("map")
    cooldown.report_success("map")
    cooldown.report_rate_limited("map")

    assert not cooldown.is_open("map")


def test_classes_do_not_share_state(cooldown):
    cooldown.report_rate_limited("chat")
    cooldown.report_rate_limited("chat")

    assert cooldown.is_open("chat")
    assert not cooldown.is_open("geocode")


def test_trip_opens_without_signals(cooldown, fake_clock):
    cooldown.trip("chat")

    assert cooldown.is_open("chat")
    assert cooldown.remaining("chat") == pytest.approx(60.0)


def test_trip_never_shortens_existing_window(registry, fake_clock):
    tracker = CooldownTracker(registry, threshold=2, window=60.0)
    registry.state("chat").cooldown_until = fake_clock.now() + 300

    tracker.trip("chat")

    assert tracker.remaining("chat") == pytest.approx(300)


@pytest.mark.parametrize("threshold, window", [(0, 60.0), (2, 0)])
def test_invalid_configuration_is_rejected(registry, threshold, window):
    with pytest.raises(ValueError):
        CooldownTracker(registry, threshold=threshold, window=window)
