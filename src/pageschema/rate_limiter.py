from __future__ import annotations
import asyncio
import inspect
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple, Union

from .config import RateLimitConfig
from .models import BatchOutcome
from .parse import get_domain

logger = logging.getLogger(__name__)

Task = Callable[[], Union[Awaitable[Any], Any]]
ProgressCallback = Callable[[str, int, int], None]


@dataclass
class RateLimitWindow:
    """Fixed request window for one domain."""
    window_start: Optional[float] = None
    count: int = 0
    pending: int = 0
    last_request: Optional[float] = None
    # Held by whichever request is waiting for a slot; asyncio.Lock wakes waiters in FIFO order
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)


async def _call(fn: Task) -> Any:
    result = fn()
    if inspect.isawaitable(result):
        result = await result
    return result


class DomainRateLimiter:
    """Per-domain fixed-window throttling. Requests over the limit wait, they are never dropped."""

    def __init__(self, max_requests: int = 10, window: float = 60.0, enabled: bool = True,
                 backoff: str = "exponential", max_retries: int = 3, backoff_base: float = 1.0,
                 clock: Callable[[], float] = time.monotonic):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window <= 0:
            raise ValueError("window must be positive")
        self.max_requests = max_requests
        self.window = window
        self.enabled = enabled
        self.backoff = backoff
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self._clock = clock
        self.windows: Dict[str, RateLimitWindow] = {}
        self._stats = self._empty_stats()

    @classmethod
    def from_config(cls, cfg: RateLimitConfig) -> "DomainRateLimiter":
        return cls(
            max_requests=cfg.max_requests,
            window=cfg.window,
            enabled=cfg.enabled,
            backoff=cfg.backoff,
            max_retries=cfg.max_retries,
        )

    @staticmethod
    def _empty_stats() -> Dict[str, int]:
        return {"total": 0, "allowed": 0, "limited": 0, "retries": 0}

    @staticmethod
    def domain_key(domain_or_url: str) -> str:
        if "://" in domain_or_url:
            return get_domain(domain_or_url) or "unknown"
        return domain_or_url.strip().lower() or "unknown"

    def _window(self, domain: str) -> RateLimitWindow:
        window = self.windows.get(domain)
        if window is None:
            window = self.windows[domain] = RateLimitWindow()
        return window

    async def acquire(self, domain: str) -> float:
        """Wait until `domain` has a free slot in its window. Returns the seconds spent waiting."""
        self._stats["total"] += 1
        if not self.enabled:
            self._stats["allowed"] += 1
            return 0.0

        key = self.domain_key(domain)
        window = self._window(key)
        started = self._clock()
        window.pending += 1
        try:
            async with window.lock:
                while True:
                    now = self._clock()
                    if window.window_start is None or now >= window.window_start + self.window:
                        window.window_start = now
                        window.count = 0
                    if window.count < self.max_requests:
                        window.count += 1
                        window.last_request = now
                        break
                    wait_time = window.window_start + self.window - now
                    self._stats["limited"] += 1
                    logger.debug("Rate limit reached for %s, waiting %.2fs", key, wait_time)
                    await asyncio.sleep(wait_time)
        finally:
            window.pending -= 1

        self._stats["allowed"] += 1
        return self._clock() - started

    async def execute(self, domain: str, fn: Task) -> Any:
        await self.acquire(domain)
        return await _call(fn)

    def backoff_delay(self, attempt: int) -> float:
        if self.backoff == "exponential":
            return min(self.backoff_base * (2 ** attempt), 30.0)
        return min(self.backoff_base * attempt, 10.0)

    async def enqueue(self, domain: str, fn: Task) -> Any:
        """Like execute(), but failed calls are retried up to `max_retries` times with backoff."""
        attempt = 0
        while True:
            try:
                return await self.execute(domain, fn)
            except Exception as e:
                attempt += 1
                if attempt > self.max_retries:
                    raise
                self._stats["retries"] += 1
                delay = self.backoff_delay(attempt)
                logger.warning("Retrying request for %s in %.2fs (attempt %d/%d): %s",
                               self.domain_key(domain), delay, attempt, self.max_retries, e)
                await asyncio.sleep(delay)

    async def batch_process(self, pairs: Iterable[Tuple[str, Task]], concurrency: int = 3,
                            on_progress: Optional[ProgressCallback] = None) -> List[BatchOutcome]:
        """Run (domain, fn) pairs with at most `concurrency` in flight. One outcome per pair, in input order."""
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        items = list(pairs)
        total = len(items)
        semaphore = asyncio.Semaphore(concurrency)
        completed = 0

        async def _run(index: int, domain: str, fn: Task) -> BatchOutcome:
            nonlocal completed
            async with semaphore:
                try:
                    outcome = BatchOutcome(index=index, item=domain, result=await self.execute(domain, fn))
                except Exception as e:
                    outcome = BatchOutcome(index=index, item=domain, error=e)
            completed += 1
            if on_progress:
                on_progress(domain, completed, total)
            return outcome

        return list(await asyncio.gather(*(_run(i, d, fn) for i, (d, fn) in enumerate(items))))

    def domain_stats(self, domain: str) -> Optional[Dict[str, Any]]:
        key = self.domain_key(domain)
        window = self.windows.get(key)
        if window is None:
            return None

        now = self._clock()
        active = window.window_start is not None and now < window.window_start + self.window
        current = window.count if active else 0
        return {
            "domain": key,
            "current_requests": current,
            "max_requests": self.max_requests,
            "remaining": self.max_requests - current,
            "pending": window.pending,
            "resets_in": round(window.window_start + self.window - now, 3) if active else 0.0,
            "last_request": window.last_request,
        }

    def stats(self) -> Dict[str, Any]:
        total = self._stats["total"]
        return {
            **self._stats,
            "domains": len(self.windows),
            "pending": sum(w.pending for w in self.windows.values()),
            "limit_rate": round(self._stats["limited"] / total, 4) if total else 0.0,
        }

    def reset_domain(self, domain: str) -> None:
        self.windows.pop(self.domain_key(domain), None)

    def reset_all(self) -> None:
        self.windows.clear()
        self._stats = self._empty_stats()
