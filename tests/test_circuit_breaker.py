"""Tests for the circuit breaker and its registry."""

import pytest

from qualitygate.evaluation.circuit_breaker import BreakerState, CircuitBreaker, CircuitBreakerRegistry


@pytest.fixture
def breaker(clock):
    return CircuitBreaker("openai", failure_threshold=3, reset_timeout=60, clock=clock)


def trip(breaker, times):
    for _ in range(times):
        breaker.record_failure()


class TestCircuitBreaker:
    def test_starts_closed(self, breaker):
        assert breaker.state == BreakerState.CLOSED
        assert breaker.allow_request()

    def test_opens_at_threshold(self, breaker):
        trip(breaker, 2)
        assert breaker.state == BreakerState.CLOSED
        breaker.record_failure()
        assert breaker.is_open()
        assert not breaker.allow_request()

    def test_success_resets_failure_count(self, breaker):
        trip(breaker, 2)
        breaker.record_success()
        assert breaker.failure_count() == 0
        trip(breaker, 2)
        assert breaker.state == BreakerState.CLOSED

    def test_remaining_open_time(self, breaker, clock):
        trip(breaker, 3)
        clock.advance(20)
        assert breaker.remaining_open_time() == pytest.approx(40)

    def test_admits_exactly_one_trial_after_timeout(self, breaker, clock):
        trip(breaker, 3)
        clock.advance(59)
        assert not breaker.allow_request()

        clock.advance(1)
        assert breaker.state == BreakerState.HALF_OPEN
        assert breaker.allow_request()
        assert not breaker.allow_request()

    def test_trial_success_closes(self, breaker, clock):
        trip(breaker, 3)
        clock.advance(60)
        assert breaker.allow_request()
        breaker.record_success()
        assert breaker.state == BreakerState.CLOSED
        assert breaker.allow_request()

    def test_trial_failure_reopens(self, breaker, clock):
        trip(breaker, 3)
        clock.advance(60)
        assert breaker.allow_request()
        breaker.record_failure()
        assert breaker.is_open()
        assert breaker.remaining_open_time() == pytest.approx(60)

    def test_old_failures_expire(self, breaker, clock):
        trip(breaker, 2)
        clock.advance(breaker.failure_window)
        breaker.record_failure()
        assert breaker.state == BreakerState.CLOSED
        assert breaker.failure_count() == 1

    def test_snapshot(self, breaker, clock):
        trip(breaker, 1)
        snapshot = breaker.snapshot()
        assert snapshot.state == BreakerState.CLOSED
        assert snapshot.failure_count == 1
        assert snapshot.last_failure_time == clock.now
        assert snapshot.failure_threshold == 3

    def test_reset(self, breaker):
        trip(breaker, 3)
        breaker.reset()
        assert breaker.state == BreakerState.CLOSED
        assert breaker.failure_count() == 0


class TestCircuitBreakerRegistry:
    def test_same_provider_and_credential_share_a_breaker(self, breakers):
        assert breakers.get("openai", "key-a") is breakers.get("openai", "key-a")

    def test_credentials_are_isolated(self, breakers):
        trip(breakers.get("openai", "key-a"), 5)
        assert breakers.get("openai", "key-a").is_open()
        assert not breakers.get("openai", "key-b").is_open()

    def test_credential_is_not_in_name(self, breakers):
        breaker = breakers.get("openai", "sk-secret")
        assert "sk-secret" not in breaker.name
        assert all("sk-secret" not in name for name in breakers.snapshots())

    def test_reset_all(self, breakers):
        trip(breakers.get("openai", "key-a"), 5)
        breakers.reset_all()
        assert not breakers.get("openai", "key-a").is_open()
