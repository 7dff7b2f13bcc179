"""Adapters for Moebooru boards (yande.re and Konachan)."""

from __future__ import annotations

from typing import Any, List, Optional

from booru_search.core.data_models import ImageRecord
from booru_search.core.rate_limiter import SourceLimits
from booru_search.sources.base import SourceAdapter, TagHit, as_list, to_int


class MoebooruSource(SourceAdapter):
    """Moebooru exposes ``post.json`` and ``tag.json`` with 1-based pages."""

    host: str = ""
    DEFAULT_LIMITS = SourceLimits(
        max_concurrency=3, requests_per_interval=3, interval_ms=1000, max_pages=50
    )

    def build_query_url(self, tag: str, page: int, page_size: int) -> str:
        return self._url(
            f"https://{self.host}/post.json",
            {"tags": f"{tag} rating:safe", "page": page, "limit": page_size},
        )

    def parse_response(self, raw: Any) -> List[ImageRecord]:
        records = []
        for post in as_list(raw):
            if not isinstance(post, dict):
                continue
            record = self._record(post, ("file_url", "jpeg_url"), "preview_url")
            if record is not None:
                records.append(record)
        return records

    def build_tag_search_url(self, term: str) -> Optional[str]:
        return self._url(f"https://{self.host}/tag.json", {"name": f"{term}*", "limit": 100})

    def parse_tag_search_response(self, raw: Any) -> List[TagHit]:
        return [
            (str(tag["name"]), to_int(tag.get("post_count", tag.get("count"))) or 0)
            for tag in as_list(raw)
            if isinstance(tag, dict) and tag.get("name")
        ]


class YandereSource(MoebooruSource):
    source_id = "yandere"
    display_name = "Yande.re"
    host = "yande.re"


class KonachanSource(MoebooruSource):
    source_id = "konachan"
    display_name = "Konachan"
    host = "konachan.net"
