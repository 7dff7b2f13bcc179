"""Tests for per-source admission control."""

import asyncio
import time

import pytest

from booru_search.core.rate_limiter import (
    AdmissionRegistry,
    SourceAdmission,
    SourceLimits,
    TokenBucket,
)


class TestSourceLimits:
    """Tests for SourceLimits."""

    def test_defaults(self):
        limits = SourceLimits()
        assert limits.max_concurrency == 2
        assert limits.requests_per_interval == 1
        assert limits.interval_ms == 1000
        assert limits.max_pages == 50

    def test_requests_per_second(self):
        assert SourceLimits(requests_per_interval=3, interval_ms=1000).requests_per_second == 3.0
        assert SourceLimits(requests_per_interval=1, interval_ms=500).requests_per_second == 2.0

    def test_validation(self):
        with pytest.raises(ValueError):
            SourceLimits(max_concurrency=0)
        with pytest.raises(ValueError):
            SourceLimits(interval_ms=0)

    def test_overrides(self):
        limits = SourceLimits(max_concurrency=5, max_pages=100)
        updated = limits.with_overrides({"max_pages": "20", "enabled": True})
        assert updated.max_pages == 20
        assert updated.max_concurrency == 5
        assert limits.with_overrides({}) is limits


class TestTokenBucket:
    """Tests for TokenBucket class."""

    def test_init(self):
        """Test initialization."""
        bucket = TokenBucket(rate=5.0, burst_size=3)
        assert bucket.rate == 5.0
        assert bucket.burst_size == 3
        assert bucket.tokens == 3.0  # Starts full

    @pytest.mark.asyncio
    async def test_acquire_immediate(self):
        """Test acquiring tokens immediately when available."""
        bucket = TokenBucket(rate=10.0, burst_size=5)
        waited = await bucket.acquire(1)
        assert waited == 0.0

    @pytest.mark.asyncio
    async def test_acquire_waits(self):
        """Test that acquire waits when tokens not available."""
        bucket = TokenBucket(rate=10.0, burst_size=1)
        await bucket.acquire(1)

        start = time.monotonic()
        waited = await bucket.acquire(1)
        elapsed = time.monotonic() - start

        assert waited >= 0.08  # ~0.1s at 10/s
        assert elapsed >= 0.08


class TestSourceAdmission:
    """Tests for SourceAdmission."""

    @pytest.mark.asyncio
    async def test_concurrency_cap(self):
        """Test that no more than max_concurrency requests are in flight."""
        admission = SourceAdmission(
            "danbooru",
            SourceLimits(max_concurrency=2, requests_per_interval=100, interval_ms=1000),
        )
        observed = []

        async def request():
            async with admission.slot():
                observed.append(admission.in_flight)
                await asyncio.sleep(0.01)

        await asyncio.gather(*(request() for _ in range(6)))

        assert max(observed) <= 2
        stats = admission.get_stats()
        assert stats["requests"] == 6
        assert stats["peak_in_flight"] == 2
        assert stats["in_flight"] == 0

    @pytest.mark.asyncio
    async def test_start_rate(self):
        """Test that request starts are paced to requests_per_interval."""
        admission = SourceAdmission(
            "yandere",
            SourceLimits(max_concurrency=5, requests_per_interval=2, interval_ms=200),
        )

        async def request():
            async with admission.slot():
                pass

        start = time.monotonic()
        await asyncio.gather(*(request() for _ in range(4)))
        elapsed = time.monotonic() - start

        # Two starts from the full bucket, two more at 10/s
        assert elapsed >= 0.15


class TestAdmissionRegistry:
    """Tests for AdmissionRegistry."""

    def test_register_and_get(self):
        registry = AdmissionRegistry({"safebooru": SourceLimits(max_concurrency=5)})
        assert "safebooru" in registry
        assert registry.get("safebooru").limits.max_concurrency == 5
        assert tuple(registry.sources) == ("safebooru",)

    def test_unknown_source(self):
        with pytest.raises(KeyError):
            AdmissionRegistry().get("nowhere")

    @pytest.mark.asyncio
    async def test_sources_are_independent(self):
        """Test that a saturated source does not block another one."""
        registry = AdmissionRegistry(
            {
                "slow": SourceLimits(max_concurrency=1, requests_per_interval=100),
                "fast": SourceLimits(max_concurrency=1, requests_per_interval=100),
            }
        )
        release = asyncio.Event()

        async def hold_slow():
            async with registry.get("slow").slot():
                await release.wait()

        holder = asyncio.create_task(hold_slow())
        await asyncio.sleep(0)

        async with registry.get("fast").slot():
            assert registry.get("slow").in_flight == 1

        release.set()
        await holder
        assert registry.get_stats()["fast"]["requests"] == 1
