"""anime-pictures.net adapter.

The v3 posts API returns ``{"posts": [...]}`` where each post carries an
``md5`` and file extension rather than a full URL; image and preview URLs
are derived from those.  Tags are space separated words, so underscores in
the resolved tag are turned back into spaces.  There is no usable
tag-search endpoint, so this source borrows Safebooru's resolved tag.
"""

from __future__ import annotations

from typing import Any, List, Optional

from booru_search.core.data_models import ImageRecord
from booru_search.core.rate_limiter import SourceLimits
from booru_search.sources.base import SourceAdapter, absolute_url, as_list, to_int

IMAGE_HOST = "https://images.anime-pictures.net"
PREVIEW_HOST = "https://cdn.anime-pictures.net/previews"


class AnimePicturesSource(SourceAdapter):
    source_id = "anime_pictures"
    display_name = "Anime-Pictures"
    supports_tag_search = False
    DEFAULT_LIMITS = SourceLimits(
        max_concurrency=2, requests_per_interval=1, interval_ms=1000, max_pages=50
    )

    posts_url = "https://api.anime-pictures.net/api/v3/posts"

    def build_query_url(self, tag: str, page: int, page_size: int) -> str:
        return self._url(
            self.posts_url,
            {
                "page": page - 1,
                "search_tag": tag.replace("_", " "),
                "posts_per_page": page_size,
                "lang": "en",
            },
        )

    def _image_url(self, post: dict) -> Optional[str]:
        explicit = absolute_url(post.get("file_url"))
        if explicit:
            return explicit
        md5 = post.get("md5")
        ext = post.get("ext")
        if not md5 or not ext:
            return None
        return f"{IMAGE_HOST}/{md5[:3]}/{md5}{ext}"

    def parse_response(self, raw: Any) -> List[ImageRecord]:
        records = []
        for post in as_list(raw, "posts"):
            if not isinstance(post, dict):
                continue
            url = self._image_url(post)
            if not url:
                continue
            md5 = post.get("md5")
            records.append(
                ImageRecord(
                    id=str(post.get("id", "")),
                    url=url,
                    source_name=self.display_name,
                    preview_url=f"{PREVIEW_HOST}/{md5[:3]}/{md5}_cp.jpg" if md5 else None,
                    width=to_int(post.get("width")),
                    height=to_int(post.get("height")),
                    score=to_int(post.get("score_number", post.get("score"))) or 0,
                    tags=(),
                )
            )
        return records
