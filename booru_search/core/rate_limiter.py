"""Per-source admission control.

Every source gets its own :class:`SourceAdmission`: a semaphore bounding
in-flight requests plus a token bucket bounding request starts per
interval.  The contexts are built once at startup by
:class:`AdmissionRegistry` and handed to the fetch scheduler, so one
saturated source never delays another.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Dict, Iterable, Mapping, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceLimits:
    """Throughput limits published by a source adapter."""

    max_concurrency: int = 2
    requests_per_interval: int = 1
    interval_ms: int = 1000
    max_pages: int = 50

    def __post_init__(self) -> None:
        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        if self.requests_per_interval < 1:
            raise ValueError("requests_per_interval must be at least 1")
        if self.interval_ms <= 0:
            raise ValueError("interval_ms must be positive")
        if self.max_pages < 1:
            raise ValueError("max_pages must be at least 1")

    @property
    def requests_per_second(self) -> float:
        return self.requests_per_interval * 1000.0 / self.interval_ms

    def with_overrides(self, overrides: Mapping[str, object]) -> "SourceLimits":
        """Return a copy with any of the four limits replaced from config."""
        values = {
            name: int(overrides[name])  # type: ignore[call-overload]
            for name in ("max_concurrency", "requests_per_interval", "interval_ms", "max_pages")
            if overrides.get(name) is not None
        }
        if not values:
            return self
        return SourceLimits(
            max_concurrency=values.get("max_concurrency", self.max_concurrency),
            requests_per_interval=values.get("requests_per_interval", self.requests_per_interval),
            interval_ms=values.get("interval_ms", self.interval_ms),
            max_pages=values.get("max_pages", self.max_pages),
        )


class TokenBucket:
    """Token bucket rate limiter implementation."""

    def __init__(
        self,
        rate: float,
        burst_size: int = 1,
    ) -> None:
        """Initialize token bucket.

        Args:
            rate: Tokens added per second
            burst_size: Maximum tokens that can accumulate
        """
        self.rate = rate
        self.burst_size = burst_size
        self.tokens = float(burst_size)
        self.last_update = time.monotonic()
        self._lock = asyncio.Lock()

    async def acquire(self, tokens: int = 1) -> float:
        """Acquire tokens, waiting if necessary.

        Args:
            tokens: Number of tokens to acquire

        Returns:
            Time waited in seconds
        """
        async with self._lock:
            waited = 0.0

            while True:
                now = time.monotonic()
                elapsed = now - self.last_update
                self.tokens = min(
                    self.burst_size,
                    self.tokens + elapsed * self.rate,
                )
                self.last_update = now

                if self.tokens >= tokens:
                    self.tokens -= tokens
                    return waited

                needed = tokens - self.tokens
                wait_time = needed / self.rate
                waited += wait_time
                await asyncio.sleep(wait_time)


class SourceAdmission:
    """Admission context for one source: concurrency cap plus start-rate cap."""

    def __init__(self, source: str, limits: SourceLimits) -> None:
        self.source = source
        self.limits = limits
        self._semaphore = asyncio.Semaphore(limits.max_concurrency)
        # A full bucket allows one interval's worth of starts at once
        self._bucket = TokenBucket(
            rate=limits.requests_per_second,
            burst_size=limits.requests_per_interval,
        )
        self.logger = logging.getLogger(self.__class__.__name__)
        self._in_flight = 0
        self._peak_in_flight = 0
        self._requests = 0
        self._total_wait = 0.0

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[float]:
        """Hold one request slot for the duration of the block.

        Yields the time in seconds spent waiting on the start-rate limit.
        """
        async with self._semaphore:
            waited = await self._bucket.acquire()
            self._requests += 1
            self._total_wait += waited
            self._in_flight += 1
            self._peak_in_flight = max(self._peak_in_flight, self._in_flight)
            if waited > 0.1:
                self.logger.debug("Rate limited %s: waited %.2fs", self.source, waited)
            try:
                yield waited
            finally:
                self._in_flight -= 1

    def get_stats(self) -> Dict[str, float]:
        return {
            "requests": self._requests,
            "in_flight": self._in_flight,
            "peak_in_flight": self._peak_in_flight,
            "total_wait_seconds": round(self._total_wait, 3),
            "avg_wait_seconds": (
                round(self._total_wait / self._requests, 3) if self._requests > 0 else 0
            ),
        }


class AdmissionRegistry:
    """Owns one long-lived :class:`SourceAdmission` per source."""

    def __init__(self, limits: Optional[Mapping[str, SourceLimits]] = None) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)
        self._contexts: Dict[str, SourceAdmission] = {}
        for source, source_limits in (limits or {}).items():
            self.register(source, source_limits)

    def register(self, source: str, limits: SourceLimits) -> SourceAdmission:
        """Create (or replace) the admission context for ``source``."""
        context = SourceAdmission(source, limits)
        self._contexts[source] = context
        self.logger.debug(
            "Admission for %s: %d concurrent, %d req / %dms",
            source,
            limits.max_concurrency,
            limits.requests_per_interval,
            limits.interval_ms,
        )
        return context

    def get(self, source: str) -> SourceAdmission:
        try:
            return self._contexts[source]
        except KeyError:
            raise KeyError(f"No admission context registered for source '{source}'") from None

    def __contains__(self, source: object) -> bool:
        return source in self._contexts

    @property
    def sources(self) -> Iterable[str]:
        return tuple(self._contexts)

    def get_stats(self) -> Dict[str, Dict[str, float]]:
        return {source: ctx.get_stats() for source, ctx in self._contexts.items()}
