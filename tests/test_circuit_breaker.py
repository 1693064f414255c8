"""Tests for the circuit breaker state machine."""

from isbn_resolver.services.circuit_breaker import CircuitBreaker, CircuitState


def _breaker(clock, threshold=3, recovery=30.0, probes=1):
    return CircuitBreaker(
        failure_threshold=threshold,
        recovery_timeout=recovery,
        half_open_max_calls=probes,
        clock=clock,
    )


def test_starts_closed_and_allows_requests(clock):
    breaker = _breaker(clock)
    assert breaker.state is CircuitState.CLOSED
    assert breaker.allow_request()


def test_opens_after_threshold_failures(clock):
    breaker = _breaker(clock)
    for _ in range(3):
        assert breaker.allow_request()
        breaker.record_failure()

    snapshot = breaker.snapshot()
    assert snapshot.state is CircuitState.OPEN
    assert snapshot.consecutive_failures == 3
    assert snapshot.last_failure_at == clock.now
    assert not breaker.allow_request()


def test_success_resets_failure_count_while_closed(clock):
    breaker = _breaker(clock)
    breaker.record_failure()
    breaker.record_failure()
    breaker.record_success()

    assert breaker.snapshot().consecutive_failures == 0
    breaker.record_failure()
    breaker.record_failure()
    assert breaker.state is CircuitState.CLOSED


def test_stays_open_until_cool_down_elapses(clock):
    breaker = _breaker(clock)
    for _ in range(3):
        breaker.record_failure()

    clock.advance(29)
    assert not breaker.allow_request()
    assert breaker.state is CircuitState.OPEN


def test_half_open_probe_success_closes(clock):
    breaker = _breaker(clock)
    for _ in range(3):
        breaker.record_failure()

    clock.advance(30)
    assert breaker.allow_request()
    assert breaker.state is CircuitState.HALF_OPEN
    # Only one probe allowed at a time
    assert not breaker.allow_request()

    breaker.record_success()

    assert breaker.state is CircuitState.CLOSED
    assert breaker.snapshot().consecutive_failures == 0
    assert breaker.allow_request()
    assert breaker.allow_request()


def test_half_open_probe_failure_reopens_and_restarts_cool_down(clock):
    breaker = _breaker(clock)
    for _ in range(3):
        breaker.record_failure()

    clock.advance(30)
    assert breaker.allow_request()
    breaker.record_failure()

    assert breaker.state is CircuitState.OPEN
    clock.advance(29)
    assert not breaker.allow_request()
    clock.advance(1)
    assert breaker.allow_request()


def test_late_failure_while_open_does_not_extend_cool_down(clock):
    breaker = _breaker(clock)
    for _ in range(3):
        breaker.record_failure()
    opened_at = clock.now

    # A call admitted before the circuit opened fails afterwards
    clock.advance(20)
    breaker.record_failure()

    snapshot = breaker.snapshot()
    assert snapshot.last_failure_at == opened_at
    assert snapshot.consecutive_failures == 3
    clock.advance(10)
    assert breaker.allow_request()
    assert breaker.state is CircuitState.HALF_OPEN


def test_half_open_allows_configured_number_of_probes(clock):
    breaker = _breaker(clock, probes=2)
    for _ in range(3):
        breaker.record_failure()

    clock.advance(30)
    assert breaker.allow_request()
    assert breaker.allow_request()
    assert not breaker.allow_request()


def test_reset_forces_closed(clock):
    breaker = _breaker(clock)
    for _ in range(3):
        breaker.record_failure()

    breaker.reset()

    snapshot = breaker.snapshot()
    assert snapshot.state is CircuitState.CLOSED
    assert snapshot.consecutive_failures == 0
    assert snapshot.last_failure_at is None
    assert breaker.allow_request()


def test_snapshot_to_dict_uses_state_name(clock):
    breaker = _breaker(clock)
    data = breaker.snapshot().to_dict()
    assert data == {
        "state": "CLOSED",
        "consecutive_failures": 0,
        "last_failure_at": None,
        "half_open_probes_remaining": 0,
    }
