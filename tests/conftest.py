"""Shared fixtures: fake source adapters and an in-memory booru network."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest

from booru_search.core.data_models import ImageRecord
from booru_search.core.http_client import AsyncHTTPClient
from booru_search.core.rate_limiter import SourceLimits
from booru_search.sources.base import SourceAdapter, TagHit

FAST_LIMITS = SourceLimits(
    max_concurrency=10, requests_per_interval=1000, interval_ms=1000, max_pages=5
)


class FakeSource(SourceAdapter):
    """Adapter for ``https://<source_id>.test`` served by :class:`FakeBooruNetwork`."""

    def __init__(
        self,
        source_id: str,
        limits: Optional[SourceLimits] = None,
        supports_tag_search: bool = True,
    ) -> None:
        self.source_id = source_id
        self.display_name = source_id.title()
        self.supports_tag_search = supports_tag_search
        super().__init__(limits or FAST_LIMITS)

    def build_query_url(self, tag: str, page: int, page_size: int) -> str:
        return self._url(
            f"https://{self.source_id}.test/posts", {"tags": tag, "page": page, "limit": page_size}
        )

    def parse_response(self, raw: Any) -> List[ImageRecord]:
        return [
            ImageRecord(
                id=post["id"],
                url=post["url"],
                source_name=self.display_name,
                score=post.get("score", 0),
            )
            for post in raw
        ]

    def build_tag_search_url(self, term: str) -> Optional[str]:
        if not self.supports_tag_search:
            return None
        return self._url(f"https://{self.source_id}.test/tags", {"name": term})

    def parse_tag_search_response(self, raw: Any) -> List[TagHit]:
        return [(tag["name"], tag["count"]) for tag in raw]


class FakeBooruNetwork:
    """Routes requests for ``*.test`` hosts to canned posts and tags.

    ``errors`` maps ``(source, page)`` to an HTTP status code or to one of
    ``"timeout"``, ``"connect"`` and ``"badjson"``.  ``tag_errors`` is a set
    of sources whose tag search answers 500.
    """

    def __init__(self) -> None:
        self.posts: Dict[Tuple[str, str], Dict[int, List[Dict[str, Any]]]] = {}
        self.tags: Dict[Tuple[str, str], List[Dict[str, Any]]] = {}
        self.errors: Dict[Tuple[str, int], Any] = {}
        self.tag_errors: set = set()
        self.requests: List[httpx.Request] = []

    def add_posts(self, source: str, tag: str, page: int, count: int, score: int = 0) -> None:
        """Add ``count`` posts with unique URLs to one page."""
        pages = self.posts.setdefault((source, tag), {})
        existing = pages.setdefault(page, [])
        start = len(existing)
        for i in range(start, start + count):
            post_id = f"{source}-{page}-{i}"
            existing.append({"id": post_id, "url": f"https://img.test/{post_id}.jpg", "score": score})

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        source = request.url.host.split(".")[0]
        params = request.url.params

        if request.url.path == "/tags":
            if source in self.tag_errors:
                return httpx.Response(500)
            return httpx.Response(200, json=self.tags.get((source, params["name"]), []))

        page = int(params["page"])
        error = self.errors.get((source, page))
        if error == "timeout":
            raise httpx.ReadTimeout("read timed out", request=request)
        if error == "connect":
            raise httpx.ConnectError("connection refused", request=request)
        if error == "badjson":
            return httpx.Response(200, content=b"<html>not json</html>")
        if isinstance(error, int):
            return httpx.Response(error)
        return httpx.Response(200, json=self.posts.get((source, params["tags"]), {}).get(page, []))

    def client(self) -> AsyncHTTPClient:
        """An unopened client wired to this network."""
        return AsyncHTTPClient(transport=httpx.MockTransport(self.handler))

    def requests_for(self, source: str, path: str = "/posts") -> List[httpx.Request]:
        return [
            r for r in self.requests if r.url.host.split(".")[0] == source and r.url.path == path
        ]


@pytest.fixture
def network() -> FakeBooruNetwork:
    return FakeBooruNetwork()


@pytest.fixture
def make_source():
    """Factory for :class:`FakeSource` adapters."""

    def _make(
        source_id: str,
        max_pages: int = 5,
        supports_tag_search: bool = True,
        **limit_overrides: int,
    ) -> FakeSource:
        limits = FAST_LIMITS.with_overrides({"max_pages": max_pages, **limit_overrides})
        return FakeSource(source_id, limits=limits, supports_tag_search=supports_tag_search)

    return _make


@pytest.fixture
def make_image():
    """Factory for :class:`ImageRecord` values."""

    def _make(url: str, score: int = 0, source_name: str = "Test", image_id: str = "") -> ImageRecord:
        return ImageRecord(id=image_id or url, url=url, source_name=source_name, score=score)

    return _make
