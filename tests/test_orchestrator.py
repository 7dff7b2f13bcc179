"""Tests for the query orchestrator and pagination."""

from unittest.mock import MagicMock

import pytest

from booru_search.core.cache import ResultCache
from booru_search.core.config import Config
from booru_search.core.data_models import ImageRecord, SearchResultSet
from booru_search.core.error_recovery import InvalidQueryError
from booru_search.core.orchestrator import (
    QueryOrchestrator,
    make_cache_key,
    paginate,
    validate_query,
)
from booru_search.core.scheduler import FixedSweep


def _result_set(count: int) -> SearchResultSet:
    images = [
        ImageRecord(id=str(i), url=f"https://img.test/{i}.jpg", source_name="Safebooru")
        for i in range(count)
    ]
    return SearchResultSet(images=images, source_counts={"safebooru": count})


class TestPaginate:
    """Tests for paginate."""

    def test_middle_page(self):
        page = paginate(_result_set(25), page=2, page_size=10)
        assert [img.id for img in page.images] == [str(i) for i in range(10, 20)]
        assert page.total_pages == 3
        assert page.total_images == 25

    def test_last_partial_page(self):
        page = paginate(_result_set(25), page=3, page_size=10)
        assert [img.id for img in page.images] == [str(i) for i in range(20, 25)]

    def test_page_out_of_range_is_empty(self):
        page = paginate(_result_set(25), page=10, page_size=10)
        assert page.images == []
        assert page.total_pages == 3

    def test_empty_set_has_one_page(self):
        page = paginate(_result_set(0), page=1, page_size=10)
        assert page.images == []
        assert page.total_pages == 1

    def test_rejects_bad_paging(self):
        with pytest.raises(InvalidQueryError):
            paginate(_result_set(5), page=0, page_size=10)


class TestValidateQuery:
    """Tests for validate_query."""

    @pytest.mark.parametrize("character", [None, "", "   ", "!!!"])
    def test_invalid_character(self, character):
        with pytest.raises(InvalidQueryError):
            validate_query(character)

    def test_missing_character_message(self):
        with pytest.raises(InvalidQueryError, match="Character name required"):
            validate_query("  ")

    def test_invalid_paging(self):
        with pytest.raises(InvalidQueryError):
            validate_query("rem", page=0)
        with pytest.raises(InvalidQueryError):
            validate_query("rem", page_size=0)


def test_cache_key():
    assert make_cache_key("Anya Forger", "Spy x Family") == "anya_forger:spy_x_family"
    assert make_cache_key("Anya Forger", None) == make_cache_key(" anya  forger ", "")


class TestQueryOrchestrator:
    """Tests for QueryOrchestrator against a fake network."""

    def _orchestrator(self, network, make_source, client, **kwargs):
        sources = {
            "alpha": make_source("alpha", max_pages=3),
            "beta": make_source("beta", max_pages=3),
        }
        return QueryOrchestrator(
            Config(),
            sources=sources,
            cache=kwargs.pop("cache", ResultCache()),
            http_client=client,
            strategy=FixedSweep(),
            **kwargs,
        )

    @pytest.mark.asyncio
    async def test_search_merges_sources(self, network, make_source):
        """Test a cache miss resolves, fetches, merges and paginates."""
        network.add_posts("alpha", "rem", 1, 3, score=5)
        network.add_posts("beta", "rem", 1, 2, score=9)
        # Same image on both boards
        network.posts[("beta", "rem")][1].append(
            {"id": "dup", "url": "https://img.test/alpha-1-0.jpg", "score": 100}
        )

        async with network.client() as client:
            orchestrator = self._orchestrator(network, make_source, client)
            result = await orchestrator.search("Rem", page=1, page_size=10)

        assert result.cached is False
        assert result.total_images == 5
        assert result.total_pages == 1
        assert result.source_counts == {"alpha": 3, "beta": 2}
        assert sum(result.source_counts.values()) == result.total_images
        urls = [img.url for img in result.images]
        assert len(urls) == len(set(urls))
        assert [img.score for img in result.images] == [9, 9, 5, 5, 5]

    @pytest.mark.asyncio
    async def test_second_search_served_from_cache(self, network, make_source):
        network.add_posts("alpha", "rem", 1, 25)

        async with network.client() as client:
            orchestrator = self._orchestrator(network, make_source, client)
            first = await orchestrator.search("Rem", page=1, page_size=10)
            request_count = len(network.requests)
            second = await orchestrator.search("  REM ", page=2, page_size=10)

        assert first.cached is False
        assert second.cached is True
        assert len(network.requests) == request_count
        assert second.total_pages == 3
        assert len(second.images) == 10

    @pytest.mark.asyncio
    async def test_no_reachable_sources_gives_empty_result(self, network, make_source):
        network.tag_errors.update({"alpha", "beta"})
        for source in ("alpha", "beta"):
            for page in (1, 2, 3):
                network.errors[(source, page)] = "connect"

        async with network.client() as client:
            orchestrator = self._orchestrator(network, make_source, client)
            result = await orchestrator.search("Rem")

        assert result.total_images == 0
        assert result.images == []
        assert result.total_pages == 1
        assert result.cached is False

    @pytest.mark.asyncio
    async def test_search_uses_resolved_tags(self, network, make_source):
        network.tags[("alpha", "rem")] = [{"name": "rem_(re:zero)", "count": 9000}]
        network.add_posts("alpha", "rem_(re:zero)", 1, 2)
        network.add_posts("beta", "rem", 1, 1)

        async with network.client() as client:
            orchestrator = self._orchestrator(network, make_source, client)
            tags = await orchestrator.discover_tags("Rem")
            result = await orchestrator.search("Rem")

        assert tags == {"alpha": "rem_(re:zero)", "beta": "rem"}
        assert result.source_counts == {"alpha": 2, "beta": 1}

    @pytest.mark.asyncio
    async def test_invalid_query_does_no_network_work(self, network, make_source):
        async with network.client() as client:
            orchestrator = self._orchestrator(network, make_source, client)
            with pytest.raises(InvalidQueryError):
                await orchestrator.search("   ")
            with pytest.raises(InvalidQueryError):
                await orchestrator.discover_tags("")

        assert network.requests == []

    @pytest.mark.asyncio
    async def test_clear_cache_forces_refetch(self, network, make_source):
        network.add_posts("alpha", "rem", 1, 1)

        async with network.client() as client:
            orchestrator = self._orchestrator(network, make_source, client)
            await orchestrator.search("Rem")
            orchestrator.clear_cache()
            result = await orchestrator.search("Rem")

        assert result.cached is False

    @pytest.mark.asyncio
    async def test_queries_logged(self, network, make_source):
        query_logger = MagicMock()
        async with network.client() as client:
            orchestrator = self._orchestrator(
                network, make_source, client, query_logger=query_logger
            )
            await orchestrator.search("Rem")
            await orchestrator.search("Rem")

        query_logger.log_search.assert_called_once()
        args, _ = query_logger.log_search.call_args
        key, duration_ms, _, reports, strategy = args
        assert key == "rem:none"
        assert duration_ms >= 0
        assert {report.source for report in reports} == {"alpha", "beta"}
        assert strategy == "fixed"
        query_logger.log_cache_hit.assert_called_once_with("rem:none")

    @pytest.mark.asyncio
    async def test_stats(self, network, make_source):
        async with network.client() as client:
            orchestrator = self._orchestrator(network, make_source, client)
            await orchestrator.search("Rem")
            stats = orchestrator.stats()

        assert stats["cache"]["images"]["size"] == 1
        assert set(stats["sources"]) == {"alpha", "beta"}
        assert stats["strategy"] == {"name": "fixed"}

    @pytest.mark.asyncio
    async def test_injected_client_is_not_closed(self, network, make_source):
        async with network.client() as client:
            async with self._orchestrator(network, make_source, client):
                pass
            assert client.is_open
