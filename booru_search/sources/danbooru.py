"""Danbooru adapter."""

from __future__ import annotations

from typing import Any, List, Optional

from booru_search.core.data_models import ImageRecord
from booru_search.core.rate_limiter import SourceLimits
from booru_search.sources.base import SourceAdapter, TagHit, as_list, to_int

# Danbooru rejects page sizes above this
MAX_PAGE_SIZE = 100
# Tag category 4 is "character"
CHARACTER_CATEGORY = 4


class DanbooruSource(SourceAdapter):
    source_id = "danbooru"
    display_name = "Danbooru"
    DEFAULT_LIMITS = SourceLimits(
        max_concurrency=2, requests_per_interval=1, interval_ms=1000, max_pages=50
    )

    posts_url = "https://danbooru.donmai.us/posts.json"
    tags_url = "https://danbooru.donmai.us/tags.json"

    def build_query_url(self, tag: str, page: int, page_size: int) -> str:
        return self._url(
            self.posts_url,
            {
                "tags": f"{tag} rating:general",
                "page": page,
                "limit": min(page_size, MAX_PAGE_SIZE),
            },
        )

    def parse_response(self, raw: Any) -> List[ImageRecord]:
        records = []
        for post in as_list(raw):
            if not isinstance(post, dict):
                continue
            record = self._record(
                post,
                ("file_url", "large_file_url"),
                "preview_file_url",
                width_key="image_width",
                height_key="image_height",
                tags_key="tag_string",
            )
            # Deleted posts keep a placeholder URL
            if record is not None and "deleted" not in record.url:
                records.append(record)
        return records

    def build_tag_search_url(self, term: str) -> Optional[str]:
        return self._url(
            self.tags_url,
            {
                "search[name_matches]": f"{term}*",
                "search[category]": str(CHARACTER_CATEGORY),
                "limit": 100,
            },
        )

    def parse_tag_search_response(self, raw: Any) -> List[TagHit]:
        return [
            (str(tag["name"]), to_int(tag.get("post_count", tag.get("count"))) or 0)
            for tag in as_list(raw)
            if isinstance(tag, dict) and tag.get("name")
        ]
