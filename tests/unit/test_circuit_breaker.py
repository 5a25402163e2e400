"""
Unit tests for the circuit breaker and retry statistics.
"""

import pytest

from tracksync.core.models import CircuitState
from tracksync.resilience.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from tracksync.resilience.stats import RetryStatsRegistry
from tracksync.state.circuit_store import FileCircuitStateStore, InMemoryCircuitStateStore


@pytest.fixture
def breaker(epoch_clock):
    return CircuitBreaker(
        InMemoryCircuitStateStore(),
        CircuitBreakerConfig(threshold=3, reset_timeout=300),
        clock=epoch_clock,
    )


class TestCircuitBreaker:
    """Tests for CircuitBreaker state transitions."""

    def test_starts_closed(self, breaker):
        state = breaker.get_state("update-task")

        assert state.state == CircuitState.CLOSED
        assert breaker.allow_request("update-task")
        assert breaker.retry_after("update-task") is None

    def test_opens_at_threshold(self, breaker):
        """Test that threshold consecutive failures open the circuit."""
        breaker.record_failure("update-task")
        breaker.record_failure("update-task")
        assert breaker.allow_request("update-task")

        state = breaker.record_failure("update-task")

        assert state.state == CircuitState.OPEN
        assert state.failure_count == 3
        assert not breaker.allow_request("update-task")

    def test_success_resets_failure_count(self, breaker):
        """Test that failures must be consecutive."""
        breaker.record_failure("update-task")
        breaker.record_failure("update-task")
        breaker.record_success("update-task")
        breaker.record_failure("update-task")

        state = breaker.get_state("update-task")

        assert state.state == CircuitState.CLOSED
        assert state.failure_count == 1

    def test_half_open_after_reset_timeout(self, breaker, epoch_clock):
        for _ in range(3):
            breaker.record_failure("update-task")

        epoch_clock.advance(299)
        assert breaker.get_state("update-task").state == CircuitState.OPEN
        assert breaker.retry_after("update-task") == pytest.approx(1.0)

        epoch_clock.advance(1)
        assert breaker.get_state("update-task").state == CircuitState.HALF_OPEN
        assert breaker.allow_request("update-task")

    def test_half_open_success_closes(self, breaker, epoch_clock):
        for _ in range(3):
            breaker.record_failure("update-task")
        epoch_clock.advance(300)
        breaker.get_state("update-task")

        state = breaker.record_success("update-task")

        assert state.state == CircuitState.CLOSED
        assert state.failure_count == 0

    def test_half_open_failure_reopens_and_restarts_timer(self, breaker, epoch_clock):
        for _ in range(3):
            breaker.record_failure("update-task")
        epoch_clock.advance(300)
        breaker.get_state("update-task")

        state = breaker.record_failure("update-task")

        assert state.state == CircuitState.OPEN
        assert state.last_failure_at == epoch_clock.now
        epoch_clock.advance(299)
        assert not breaker.allow_request("update-task")

    def test_keys_are_independent(self, breaker):
        for _ in range(3):
            breaker.record_failure("update-task")

        assert not breaker.allow_request("update-task")
        assert breaker.allow_request("fetch-task")


class TestHalfOpenTrialCall:
    """Tests for the single call let through a half-open circuit."""

    @pytest.fixture
    def tripped(self, epoch_clock):
        breaker = CircuitBreaker(
            InMemoryCircuitStateStore(),
            CircuitBreakerConfig(threshold=2, reset_timeout=300),
            clock=epoch_clock,
        )
        breaker.record_failure("update-task")
        breaker.record_failure("update-task")
        epoch_clock.advance(301)
        return breaker

    def test_only_one_caller_is_admitted(self, tripped):
        decisions = [tripped.allow_request("update-task") for _ in range(5)]

        assert decisions.count(True) == 1
        assert decisions[0] is True
        assert tripped.get_state("update-task").state == CircuitState.HALF_OPEN

    def test_rejected_callers_get_retry_after(self, tripped, epoch_clock):
        tripped.allow_request("update-task")
        epoch_clock.advance(10)

        assert not tripped.allow_request("update-task")
        assert tripped.retry_after("update-task") == pytest.approx(290.0)

    def test_success_closes_for_everyone(self, tripped):
        tripped.allow_request("update-task")

        tripped.record_success("update-task")

        assert all(tripped.allow_request("update-task") for _ in range(3))
        assert tripped.get_state("update-task").trial_started_at is None

    def test_failure_reopens_and_clears_claim(self, tripped, epoch_clock):
        tripped.allow_request("update-task")

        state = tripped.record_failure("update-task")

        assert state.state == CircuitState.OPEN
        assert state.trial_started_at is None
        epoch_clock.advance(300)
        assert tripped.allow_request("update-task")
        assert not tripped.allow_request("update-task")

    def test_abandoned_claim_expires(self, tripped, epoch_clock):
        tripped.allow_request("update-task")
        epoch_clock.advance(299)
        assert not tripped.allow_request("update-task")

        epoch_clock.advance(1)

        assert tripped.allow_request("update-task")
        assert not tripped.allow_request("update-task")

    def test_release_lets_next_caller_in(self, tripped):
        tripped.allow_request("update-task")

        tripped.release_trial("update-task")

        assert tripped.get_state("update-task").state == CircuitState.HALF_OPEN
        assert tripped.allow_request("update-task")

    def test_release_on_closed_circuit_is_noop(self, breaker):
        breaker.release_trial("fetch-task")

        state = breaker.get_state("fetch-task")
        assert state.state == CircuitState.CLOSED
        assert state.updated_at is None

    def test_claim_survives_persistence(self, tmp_path, epoch_clock):
        """Test that a second breaker over the same state file sees the claim."""
        path = tmp_path / "circuits.json"
        config = CircuitBreakerConfig(threshold=1, reset_timeout=300)
        first = CircuitBreaker(FileCircuitStateStore(path), config, clock=epoch_clock)
        second = CircuitBreaker(FileCircuitStateStore(path), config, clock=epoch_clock)
        first.record_failure("update-task")
        epoch_clock.advance(300)

        assert first.allow_request("update-task")
        assert not second.allow_request("update-task")


class TestRetryStatsRegistry:
    """Tests for RetryStatsRegistry."""

    def test_counts_operations_and_retries(self, epoch_clock):
        stats = RetryStatsRegistry(clock=epoch_clock)

        stats.record_attempt("fetch-task", 1, False)
        stats.record_attempt("fetch-task", 2, True)

        result = stats.get("fetch-task")
        assert result.total_attempts == 2
        assert result.total_operations == 1
        assert result.retry_count == 1
        assert result.success_count == 1
        assert result.failure_count == 1
        assert result.success_rate == 0.5
        assert result.last_attempt_at == epoch_clock.now

    def test_get_returns_copy(self):
        stats = RetryStatsRegistry()
        stats.record_attempt("fetch-task", 1, True)

        stats.get("fetch-task").total_attempts = 99

        assert stats.get("fetch-task").total_attempts == 1

    def test_reset(self):
        stats = RetryStatsRegistry()
        stats.record_attempt("fetch-task", 1, True)
        stats.record_attempt("update-task", 1, True)

        stats.reset("fetch-task")
        assert stats.get("fetch-task").total_attempts == 0
        assert set(stats.all()) == {"update-task"}

        stats.reset()
        assert stats.all() == {}
