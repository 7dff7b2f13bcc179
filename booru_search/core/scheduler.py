"""Per-source page fetching.

:class:`FetchScheduler` pulls every available page for one (source, tag)
pair.  Requests pass through the source's admission context, each page has
its own timeout, and any failure turns into an empty page, so
:meth:`FetchScheduler.fetch_all` never raises.

How far to page is a strategy chosen at construction time:

``FixedSweep``
    Request pages ``1..N`` at once and let admission control pace them.
``AdaptiveSweep``
    Request pages in waves and stop after a number of consecutive waves
    that returned no images.  This is the default.

``N`` is ``min(source max_pages, global page cap)`` in both cases.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Dict, List, Mapping, Optional

from booru_search.core.data_models import ImageRecord
from booru_search.core.error_recovery import PageOutcome, SourceFetchReport, absorb_failures
from booru_search.core.http_client import AsyncHTTPClient
from booru_search.core.rate_limiter import AdmissionRegistry
from booru_search.sources.base import SourceAdapter

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100
DEFAULT_GLOBAL_PAGE_CAP = 200
DEFAULT_WAVE_SIZE = 10
DEFAULT_MAX_EMPTY_WAVES = 1

PageFetcher = Callable[[int], Awaitable[PageOutcome]]


class SweepStrategy(ABC):
    """Decides which pages to request for one source."""

    name: str = ""

    @abstractmethod
    async def sweep(self, fetch_page: PageFetcher, page_count: int) -> List[PageOutcome]:
        """Fetch pages ``1..page_count`` (or a prefix of them).

        Args:
            fetch_page: Coroutine function fetching one 1-based page; never raises
            page_count: Highest page number that may be requested

        Returns:
            Outcomes of every page that was requested
        """

    def describe(self) -> Dict[str, object]:
        return {"name": self.name}


class FixedSweep(SweepStrategy):
    """Request every page up front."""

    name = "fixed"

    async def sweep(self, fetch_page: PageFetcher, page_count: int) -> List[PageOutcome]:
        return list(await asyncio.gather(*(fetch_page(page) for page in range(1, page_count + 1))))


class AdaptiveSweep(SweepStrategy):
    """Request pages in waves, stopping once the results run dry."""

    name = "adaptive"

    def __init__(
        self,
        wave_size: int = DEFAULT_WAVE_SIZE,
        max_empty_waves: int = DEFAULT_MAX_EMPTY_WAVES,
    ) -> None:
        if wave_size < 1:
            raise ValueError("wave_size must be at least 1")
        if max_empty_waves < 1:
            raise ValueError("max_empty_waves must be at least 1")
        self.wave_size = wave_size
        self.max_empty_waves = max_empty_waves

    async def sweep(self, fetch_page: PageFetcher, page_count: int) -> List[PageOutcome]:
        outcomes: List[PageOutcome] = []
        empty_waves = 0
        for first in range(1, page_count + 1, self.wave_size):
            last = min(first + self.wave_size - 1, page_count)
            wave = await asyncio.gather(*(fetch_page(page) for page in range(first, last + 1)))
            outcomes.extend(wave)

            if any(outcome.images for outcome in wave):
                empty_waves = 0
                continue
            empty_waves += 1
            if empty_waves >= self.max_empty_waves:
                logger.debug(
                    "Stopping sweep after page %d: %d empty wave(s)", last, empty_waves
                )
                break
        return outcomes

    def describe(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "wave_size": self.wave_size,
            "max_empty_waves": self.max_empty_waves,
        }


def build_strategy(
    name: str,
    wave_size: int = DEFAULT_WAVE_SIZE,
    max_empty_waves: int = DEFAULT_MAX_EMPTY_WAVES,
) -> SweepStrategy:
    """Create a sweep strategy by name (``"adaptive"`` or ``"fixed"``)."""
    key = (name or "").strip().lower()
    if key == AdaptiveSweep.name:
        return AdaptiveSweep(wave_size=wave_size, max_empty_waves=max_empty_waves)
    if key == FixedSweep.name:
        return FixedSweep()
    raise ValueError(f"Unknown fetch strategy '{name}' (expected 'adaptive' or 'fixed')")


class FetchScheduler:
    """Fetches all pages of a tag from a source under its admission policy."""

    def __init__(
        self,
        sources: Mapping[str, SourceAdapter],
        http_client: AsyncHTTPClient,
        admission: Optional[AdmissionRegistry] = None,
        strategy: Optional[SweepStrategy] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        global_page_cap: int = DEFAULT_GLOBAL_PAGE_CAP,
        timeout: float = 5.0,
    ) -> None:
        """Initialize the scheduler.

        Args:
            sources: Enabled source adapters
            http_client: Shared, opened HTTP client
            admission: Long-lived admission contexts; built from the
                adapters' limits when omitted
            strategy: Page sweep strategy, ``AdaptiveSweep`` by default
            page_size: Images requested per page
            global_page_cap: Upper bound on pages per source
            timeout: Per-page request timeout in seconds
        """
        self.sources = dict(sources)
        self.http = http_client
        self.admission = admission or AdmissionRegistry()
        for source_id, adapter in self.sources.items():
            if source_id not in self.admission:
                self.admission.register(source_id, adapter.limits)
        self.strategy = strategy or AdaptiveSweep()
        self.page_size = page_size
        self.global_page_cap = global_page_cap
        self.timeout = timeout
        self.logger = logging.getLogger(self.__class__.__name__)

    def page_count(self, source_id: str) -> int:
        return min(self.sources[source_id].limits.max_pages, self.global_page_cap)

    async def fetch_page(self, source_id: str, tag: str, page: int) -> PageOutcome:
        """Fetch and parse one page; failures give an absorbed, empty outcome."""
        adapter = self.sources[source_id]
        images: List[ImageRecord] = []
        async with absorb_failures(source_id, page) as absorber:
            url = adapter.build_query_url(tag, page, self.page_size)
            async with self.admission.get(source_id).slot():
                raw = await self.http.get_json(url, timeout=self.timeout)
            images = adapter.parse_response(raw)
        if absorber.failure is not None:
            return PageOutcome.absorbed(page, absorber.failure)
        return PageOutcome.ok(page, images)

    async def fetch_report(self, source_id: str, tag: str) -> SourceFetchReport:
        """Run the sweep for one source and return the detailed report."""
        report = SourceFetchReport(source=source_id, tag=tag)
        if source_id not in self.sources:
            self.logger.warning("Unknown source '%s', contributing nothing", source_id)
            report.mark_complete()
            return report

        async def fetch(page: int) -> PageOutcome:
            return await self.fetch_page(source_id, tag, page)

        for outcome in await self.strategy.sweep(fetch, self.page_count(source_id)):
            report.add(outcome)
        report.mark_complete()

        self.logger.info(
            "[%s] Fetched %d images for '%s' (%d pages, %d absorbed failures, %.2fs)",
            source_id,
            len(report.images),
            tag,
            report.pages_requested,
            len(report.failures),
            report.elapsed_seconds,
        )
        return report

    async def fetch_all(self, source_id: str, tag: str) -> List[ImageRecord]:
        """Every image the source returned for ``tag``, in page order."""
        report = await self.fetch_report(source_id, tag)
        return report.images
