"""Adapters for boards running the Gelbooru "dapi" interface.

Safebooru, Gelbooru and TBIB share ``index.php?page=dapi`` for both posts
and tags, with a 0-based ``pid`` page index.  Gelbooru wraps its lists in
``{"post": [...]}`` / ``{"tag": [...]}``; the others return bare arrays.
"""

from __future__ import annotations

from typing import Any, List, Optional

from booru_search.core.data_models import ImageRecord
from booru_search.core.rate_limiter import SourceLimits
from booru_search.sources.base import SourceAdapter, TagHit, as_list, to_int


class DapiSource(SourceAdapter):
    """Common behaviour for dapi boards."""

    base_url: str = ""
    #: Extra search term appended to the tag, e.g. ``rating:general``
    rating_filter: str = ""
    #: Key wrapping post/tag lists, if any
    post_key: Optional[str] = None
    tag_key: Optional[str] = None

    def build_query_url(self, tag: str, page: int, page_size: int) -> str:
        tags = f"{tag} {self.rating_filter}" if self.rating_filter else tag
        return self._url(
            self.base_url,
            {
                "page": "dapi",
                "s": "post",
                "q": "index",
                "json": "1",
                "tags": tags,
                "pid": page - 1,
                "limit": page_size,
            },
        )

    def parse_response(self, raw: Any) -> List[ImageRecord]:
        records = []
        for post in as_list(raw, self.post_key):
            if not isinstance(post, dict):
                continue
            record = self._record(post, ("file_url",), "preview_url")
            if record is not None:
                records.append(record)
        return records

    def build_tag_search_url(self, term: str) -> Optional[str]:
        if not self.supports_tag_search:
            return None
        return self._url(
            self.base_url,
            {
                "page": "dapi",
                "s": "tag",
                "q": "index",
                "json": "1",
                "name_pattern": f"{term}%",
                "limit": 100,
            },
        )

    def parse_tag_search_response(self, raw: Any) -> List[TagHit]:
        hits = []
        for tag in as_list(raw, self.tag_key):
            if isinstance(tag, dict) and tag.get("name"):
                hits.append((str(tag["name"]), to_int(tag.get("count")) or 0))
        return hits


class SafebooruSource(DapiSource):
    source_id = "safebooru"
    display_name = "Safebooru"
    base_url = "https://safebooru.org/index.php"
    DEFAULT_LIMITS = SourceLimits(
        max_concurrency=5, requests_per_interval=2, interval_ms=1000, max_pages=100
    )


class GelbooruSource(DapiSource):
    source_id = "gelbooru"
    display_name = "Gelbooru"
    base_url = "https://gelbooru.com/index.php"
    rating_filter = "rating:general"
    post_key = "post"
    tag_key = "tag"
    DEFAULT_LIMITS = SourceLimits(
        max_concurrency=5, requests_per_interval=2, interval_ms=1000, max_pages=100
    )


class TbibSource(DapiSource):
    """TBIB mirrors Safebooru's tags, so it borrows that resolution."""

    source_id = "tbib"
    display_name = "TBIB"
    base_url = "https://tbib.org/index.php"
    supports_tag_search = False
    DEFAULT_LIMITS = SourceLimits(
        max_concurrency=3, requests_per_interval=2, interval_ms=1000, max_pages=50
    )
