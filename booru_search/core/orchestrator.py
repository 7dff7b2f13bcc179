"""Central orchestrator for booru_search.

This module defines the ``QueryOrchestrator`` class, the entry point used by
the CLI and the web API.  A search first consults the result cache; on a
miss it resolves per-source tags, fans out to every source concurrently,
merges and ranks the results, writes the merged set through to the cache
and returns the requested page.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import Any, Dict, List, Mapping, Optional

from booru_search.core.aggregation import ImageAggregator
from booru_search.core.cache import ResultCache
from booru_search.core.config import Config, get_config
from booru_search.core.data_models import PaginatedResult, ResolvedTagSet, SearchResultSet
from booru_search.core.error_recovery import InvalidQueryError, SourceFetchReport
from booru_search.core.http_client import AsyncHTTPClient
from booru_search.core.logging_setup import QueryLogger, log_stage
from booru_search.core.rate_limiter import AdmissionRegistry
from booru_search.core.scheduler import FetchScheduler, SweepStrategy, build_strategy
from booru_search.core.tag_resolution import TagResolver
from booru_search.core.variant_generator import make_query_key, normalize_name
from booru_search.sources.base import SourceAdapter
from booru_search.sources.registry import build_aliases, build_sources

DEFAULT_PAGE_SIZE = 100


def make_cache_key(character_name: str, series_name: Optional[str] = None) -> str:
    """Image cache key: normalised character and series joined by ``:``."""
    return make_query_key(character_name, series_name)


def validate_query(character_name: Optional[str], page: int = 1, page_size: int = 1) -> None:
    """Reject queries that cannot be served.

    Raises:
        InvalidQueryError: On a missing character name or a non-positive
            page or page size
    """
    if character_name is None or not str(character_name).strip():
        raise InvalidQueryError("Character name required")
    if not normalize_name(character_name):
        raise InvalidQueryError("Character name must contain at least one letter or digit")
    if page < 1:
        raise InvalidQueryError("page must be at least 1")
    if page_size < 1:
        raise InvalidQueryError("page size must be at least 1")


def paginate(
    data: SearchResultSet,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
    cached: bool = False,
) -> PaginatedResult:
    """Slice one page out of a result set.

    ``total_pages`` is never below 1, and a page past the end is an empty
    slice rather than an error.
    """
    if page < 1 or page_size < 1:
        raise InvalidQueryError("page and page size must be at least 1")
    total = data.total_images
    start = (page - 1) * page_size
    return PaginatedResult(
        images=list(data.images[start : start + page_size]),
        total_images=total,
        total_pages=max(1, math.ceil(total / page_size)),
        source_counts=dict(data.source_counts),
        cached=cached,
        page=page,
        page_size=page_size,
    )


class QueryOrchestrator:
    """Coordinates tag resolution, fetching, aggregation and caching."""

    def __init__(
        self,
        config: Optional[Config] = None,
        *,
        sources: Optional[Mapping[str, SourceAdapter]] = None,
        cache: Optional[ResultCache] = None,
        http_client: Optional[AsyncHTTPClient] = None,
        admission: Optional[AdmissionRegistry] = None,
        strategy: Optional[SweepStrategy] = None,
        query_logger: Optional[QueryLogger] = None,
    ) -> None:
        """Initialize the orchestrator.

        Every collaborator can be injected; anything omitted is built from
        ``config``.

        Args:
            config: Configuration (the global config when omitted)
            sources: Source adapters in aggregation order
            cache: Result cache shared across queries
            http_client: HTTP client; an owned client is created when omitted
            admission: Long-lived per-source admission contexts
            strategy: Page sweep strategy
            query_logger: Receives one record per search and per source
        """
        self.config = config or get_config()
        self.logger = logging.getLogger(self.__class__.__name__)

        self.sources: Dict[str, SourceAdapter] = dict(
            sources if sources is not None else build_sources(self.config)
        )
        self.aliases = build_aliases(self.sources, self.config)
        self.cache = cache if cache is not None else ResultCache.from_config(self.config)

        self._owns_http = http_client is None
        self.http = http_client or AsyncHTTPClient(
            timeout=self.config.get_float("http.timeout_seconds", 5.0),
            user_agent=self.config.get("http.user_agent"),
            max_connections=self.config.get_int("http.max_connections", 200),
            max_keepalive_connections=self.config.get_int("http.max_keepalive_connections", 50),
        )

        self.admission = admission or AdmissionRegistry(
            {source_id: adapter.limits for source_id, adapter in self.sources.items()}
        )
        self.strategy = strategy or build_strategy(
            str(self.config.get("fetch.strategy", "adaptive")),
            wave_size=self.config.get_int("fetch.wave_size", 10),
            max_empty_waves=self.config.get_int("fetch.max_empty_waves", 1),
        )
        self.query_logger = query_logger

        self.resolver = TagResolver(
            self.sources,
            self.http,
            cache=self.cache,
            aliases=self.aliases,
            admission=self.admission,
            tag_timeout=self.config.get_float("http.tag_timeout_seconds", 3.0),
        )
        self.scheduler = FetchScheduler(
            self.sources,
            self.http,
            admission=self.admission,
            strategy=self.strategy,
            page_size=self.config.get_int("fetch.page_size", DEFAULT_PAGE_SIZE),
            global_page_cap=self.config.get_int("fetch.global_page_cap", 200),
            timeout=self.config.get_float("http.timeout_seconds", 5.0),
        )
        self.aggregator = ImageAggregator(source_order=list(self.sources))

    async def __aenter__(self) -> "QueryOrchestrator":
        await self.http.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client if this orchestrator created it."""
        if self._owns_http:
            await self.http.close()

    async def _ensure_http(self) -> None:
        if not self.http.is_open:
            await self.http.open()

    async def discover_tags(
        self, character_name: str, series_name: Optional[str] = None
    ) -> ResolvedTagSet:
        """Resolve the tag each source will be searched with.

        Raises:
            InvalidQueryError: If no character name is given
        """
        validate_query(character_name)
        await self._ensure_http()
        return await self.resolver.resolve(character_name, series_name or None)

    async def fetch_sources(self, tags: Mapping[str, str], fallback: str) -> List[SourceFetchReport]:
        """Sweep every source concurrently with its resolved tag."""
        return list(
            await asyncio.gather(
                *(
                    self.scheduler.fetch_report(source_id, tags.get(source_id) or fallback)
                    for source_id in self.sources
                )
            )
        )

    async def search(
        self,
        character_name: str,
        series_name: Optional[str] = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> PaginatedResult:
        """Search every source for a character and return one page.

        Args:
            character_name: Character to search for
            series_name: Optional series used to disambiguate the character
            page: 1-based page of the merged result set
            page_size: Images per returned page

        Returns:
            PaginatedResult, ``cached=True`` when served from the cache

        Raises:
            InvalidQueryError: On a missing character name or bad paging
        """
        validate_query(character_name, page, page_size)
        series_name = series_name or None
        key = make_cache_key(character_name, series_name)

        cached = self.cache.get_images(key)
        if cached is not None:
            self.logger.info("Cache hit for %s", key)
            if self.query_logger is not None:
                self.query_logger.log_cache_hit(key)
            return paginate(cached, page, page_size, cached=True)

        self.logger.info("Fetching %s from %d sources...", key, len(self.sources))
        await self._ensure_http()
        start_time = time.monotonic()

        with log_stage("resolve", key, self.logger):
            tags = await self.resolver.resolve(character_name, series_name)
        with log_stage("fetch", key, self.logger):
            reports = await self.fetch_sources(tags, normalize_name(character_name))
        with log_stage("aggregate", key, self.logger):
            result = self.aggregator.aggregate({report.source: report.images for report in reports})

        self.cache.set_images(key, result)
        self.logger.info(
            "Found %d unique images for %s; sources: %s",
            result.total_images,
            key,
            dict(result.source_counts),
        )

        if self.query_logger is not None:
            self.query_logger.log_search(
                key,
                (time.monotonic() - start_time) * 1000,
                result,
                reports,
                self.strategy.name,
            )

        return paginate(result, page, page_size, cached=False)

    def stats(self) -> Dict[str, Any]:
        """Cache, admission and HTTP statistics."""
        return {
            "cache": self.cache.stats(),
            "sources": self.admission.get_stats(),
            "http": self.http.stats,
            "strategy": self.strategy.describe(),
        }

    def clear_cache(self) -> None:
        self.cache.clear()
