"""
Retry with exponential backoff, circuit breaking and partial-result batches.
"""
from __future__ import annotations
import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, TypeVar

from .circuit_breaker import CircuitBreakerRegistry
from .config import ResilienceConfig
from .errors import CircuitOpenError, is_retryable
from .models import BatchOutcome

logger = logging.getLogger(__name__)

T = TypeVar("T")
Sleep = Callable[[float], Awaitable[Any]]


def backoff_delay(attempt: int, base_delay: float = 1.0, max_delay: float = 30.0, jitter: bool = True) -> float:
    """Delay before retry number `attempt + 1`: base * 2^attempt, capped, optionally +/-20%."""
    delay = min(base_delay * (2 ** attempt), max_delay)
    if jitter:
        delay += delay * 0.2 * (random.random() * 2 - 1)
    return max(0.0, delay)


async def retry_with_backoff(fn: Callable[[], Awaitable[T]], max_retries: int = 3, base_delay: float = 1.0,
                             max_delay: float = 30.0, jitter: bool = True,
                             retryable: Callable[[BaseException], bool] = is_retryable,
                             sleep: Sleep = asyncio.sleep,
                             on_retry: Optional[Callable[[int, BaseException, float], None]] = None) -> T:
    """Call `fn` once, then retry up to `max_retries` more times on retryable errors.

    Non-retryable errors propagate immediately; the last retryable error
    propagates once retries are exhausted.
    """
    attempt = 0
    while True:
        try:
            return await fn()
        except Exception as e:
            if not retryable(e) or attempt >= max_retries:
                raise
            delay = backoff_delay(attempt, base_delay, max_delay, jitter)
            if on_retry:
                on_retry(attempt, e, delay)
            logger.warning("Attempt %d failed (%s), retrying in %.2fs", attempt + 1, e, delay)
            await sleep(delay)
            attempt += 1


class ResilienceController:
    """Breaker + retry around any fallible async step, one breaker per key."""

    def __init__(self, breakers: Optional[CircuitBreakerRegistry] = None, max_retries: int = 3,
                 base_delay: float = 1.0, max_delay: float = 30.0, jitter: bool = True,
                 retryable: Callable[[BaseException], bool] = is_retryable, sleep: Sleep = asyncio.sleep):
        self.breakers = breakers or CircuitBreakerRegistry()
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter = jitter
        self.retryable = retryable
        self._sleep = sleep
        self._stats = self._empty_stats()

    @classmethod
    def from_config(cls, cfg: ResilienceConfig, max_retries: int = 3,
                    breakers: Optional[CircuitBreakerRegistry] = None) -> "ResilienceController":
        return cls(
            breakers=breakers or CircuitBreakerRegistry(
                failure_threshold=cfg.circuit_breaker_threshold,
                recovery_timeout=cfg.circuit_breaker_timeout,
            ),
            max_retries=max_retries,
            base_delay=cfg.base_delay,
            max_delay=cfg.max_delay,
            jitter=cfg.jitter,
        )

    @staticmethod
    def _empty_stats() -> Dict[str, int]:
        return {
            "total_attempts": 0,
            "successful_retries": 0,
            "failed_retries": 0,
            "circuit_rejections": 0,
            "partial_results": 0,
        }

    async def retry(self, fn: Callable[[], Awaitable[T]], max_retries: Optional[int] = None) -> T:
        retries_used = 0

        async def _attempt():
            self._stats["total_attempts"] += 1
            return await fn()

        def _on_retry(attempt, error, delay):
            nonlocal retries_used
            retries_used = attempt + 1

        limit = self.max_retries if max_retries is None else max_retries
        try:
            result = await retry_with_backoff(
                _attempt, max_retries=limit, base_delay=self.base_delay, max_delay=self.max_delay,
                jitter=self.jitter, retryable=self.retryable, sleep=self._sleep, on_retry=_on_retry,
            )
        except Exception:
            if retries_used:
                self._stats["failed_retries"] += 1
            raise
        if retries_used:
            self._stats["successful_retries"] += 1
        return result

    async def run(self, key: str, fn: Callable[[], Awaitable[T]], max_retries: Optional[int] = None) -> T:
        """Retry `fn` behind the breaker for `key`. A whole exhausted retry series is one breaker failure."""
        breaker = self.breakers.get_breaker(key)
        try:
            return await breaker.call(lambda: self.retry(fn, max_retries), is_failure=self.retryable)
        except CircuitOpenError:
            self._stats["circuit_rejections"] += 1
            raise

    async def batch_with_partial_results(self, items: Iterable[Any], fn: Callable[[Any, int], Awaitable[Any]],
                                         key: Optional[Callable[[Any], str]] = None) -> List[BatchOutcome]:
        """Run every item through retry (and the breaker when `key` is given). Never stops early."""
        outcomes = []
        for index, item in enumerate(items):
            call = lambda item=item, index=index: fn(item, index)
            try:
                if key is not None:
                    result = await self.run(key(item), call)
                else:
                    result = await self.retry(call)
                outcomes.append(BatchOutcome(index=index, item=item, result=result))
            except Exception as e:
                logger.debug("Batch item %d failed: %s", index, e)
                outcomes.append(BatchOutcome(index=index, item=item, error=e))

        if any(not o.ok for o in outcomes):
            self._stats["partial_results"] += 1
        return outcomes

    async def with_fallback(self, fn: Callable[[], Awaitable[T]],
                            fallback: Callable[[BaseException], Awaitable[T]]) -> T:
        try:
            return await self.retry(fn)
        except Exception as e:
            logger.warning("Primary call failed, using fallback: %s", e)
            return await fallback(e)

    def stats(self) -> Dict[str, Any]:
        total = self._stats["total_attempts"]
        return {
            **self._stats,
            "success_rate": round(self._stats["successful_retries"] / total, 4) if total else 0.0,
            "circuits": self.breakers.states(),
        }

    def reset_stats(self) -> None:
        self._stats = self._empty_stats()
