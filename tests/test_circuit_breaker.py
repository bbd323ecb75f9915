import pytest
import asyncio
from pageschema.circuit_breaker import CircuitBreaker, CircuitBreakerRegistry, CircuitState
from pageschema.errors import CircuitOpenError, NetworkError, is_retryable

class TestCircuitBreaker:
    def test_initial_state(self):
        cb = CircuitBreaker()
        assert cb.state == CircuitState.CLOSED
        assert cb.allow_request() is True

    def test_failure_threshold(self):
        cb = CircuitBreaker(failure_threshold=2)

        # First failure
        cb.record_failure()
        assert cb.state == CircuitState.CLOSED
        assert cb.allow_request() is True

        # Second failure -> OPEN
        cb.record_failure()
        assert cb.state == CircuitState.OPEN
        assert cb.allow_request() is False

    def test_recovery(self, fake_clock):
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=10, clock=fake_clock)

        # Fail to open
        cb.record_failure()
        assert cb.state == CircuitState.OPEN
        assert cb.retry_after() == pytest.approx(10)

        # Wait for recovery
        fake_clock.advance(10)

        # Should be HALF_OPEN
        assert cb.state == CircuitState.HALF_OPEN
        assert cb.allow_request() is True

        # Success -> CLOSED
        cb.record_success()
        assert cb.state == CircuitState.CLOSED
        assert cb.failures == 0

    def test_half_open_failure(self, fake_clock):
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=10, clock=fake_clock)

        # Fail to open
        cb.record_failure()
        fake_clock.advance(11)
        assert cb.state == CircuitState.HALF_OPEN

        # Fail again -> OPEN immediately, with a fresh timeout
        cb.record_failure()
        assert cb.state == CircuitState.OPEN
        assert cb.opened_at == fake_clock.now

    def test_half_open_admits_single_trial(self, fake_clock):
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=5, clock=fake_clock)
        cb.record_failure()
        fake_clock.advance(5)

        assert cb.allow_request() is True
        assert cb.allow_request() is False
        assert cb.allow_request() is False

    def test_success_resets_failure_count(self):
        cb = CircuitBreaker(failure_threshold=3)
        cb.record_failure()
        cb.record_failure()
        cb.record_success()
        cb.record_failure()
        cb.record_failure()
        assert cb.state == CircuitState.CLOSED

    def test_success_while_open_is_ignored(self, fake_clock):
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=30, clock=fake_clock)
        cb.record_failure()
        cb.record_success()
        assert cb.state == CircuitState.OPEN

    def test_snapshot(self, fake_clock):
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=30, clock=fake_clock)
        cb.record_failure()
        fake_clock.advance(10)
        snap = cb.snapshot()
        assert snap["state"] == "OPEN"
        assert snap["failures"] == 1
        assert snap["retry_after"] == pytest.approx(20)


class TestCircuitBreakerCall:
    @pytest.mark.asyncio
    async def test_call_rejected_when_open(self):
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=60, name="example.com")
        cb.record_failure()

        called = False

        async def fn():
            nonlocal called
            called = True

        with pytest.raises(CircuitOpenError) as exc_info:
            await cb.call(fn)
        assert called is False
        assert exc_info.value.key == "example.com"
        assert exc_info.value.retry_after > 0

    @pytest.mark.asyncio
    async def test_call_counts_failures(self):
        cb = CircuitBreaker(failure_threshold=2)

        async def boom():
            raise NetworkError("down")

        for _ in range(2):
            with pytest.raises(NetworkError):
                await cb.call(boom)
        assert cb.state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_non_failure_errors_count_as_success(self):
        cb = CircuitBreaker(failure_threshold=1)

        async def not_found():
            raise NetworkError("HTTP 404", status=404, retryable=False)

        with pytest.raises(NetworkError):
            await cb.call(not_found, is_failure=is_retryable)
        assert cb.state == CircuitState.CLOSED
        assert cb.failures == 0

    @pytest.mark.asyncio
    async def test_cancelled_trial_releases_slot(self, fake_clock):
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=1, clock=fake_clock)
        cb.record_failure()
        fake_clock.advance(1)

        async def slow():
            await asyncio.sleep(10)

        task = asyncio.create_task(cb.call(slow))
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert cb.state == CircuitState.HALF_OPEN
        assert cb.allow_request() is True


class TestCircuitBreakerRegistry:
    def test_breakers_are_per_host(self):
        registry = CircuitBreakerRegistry(failure_threshold=1)
        registry.get_breaker("a.com").record_failure()

        assert registry.get_breaker("a.com").state == CircuitState.OPEN
        assert registry.get_breaker("b.com").state == CircuitState.CLOSED
        assert registry.get_breaker("a.com") is registry.get_breaker("a.com")
        assert registry.states() == {"a.com": "OPEN", "b.com": "CLOSED"}

    def test_reset(self):
        registry = CircuitBreakerRegistry(failure_threshold=1)
        registry.get_breaker("a.com").record_failure()
        registry.get_breaker("b.com")

        registry.reset("a.com")
        assert "a.com" not in registry.states()

        registry.reset()
        assert registry.states() == {}
