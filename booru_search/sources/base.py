"""Source adapter contract.

A source adapter knows how to talk to exactly one image board: how to build
post and tag-search URLs, and how to turn the decoded JSON into
:class:`ImageRecord` values and ``(name, post_count)`` pairs.  Adapters do
no I/O themselves; the scheduler and the tag resolver issue the requests.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlencode

from booru_search.core.data_models import ImageRecord
from booru_search.core.rate_limiter import SourceLimits

logger = logging.getLogger(__name__)

TagHit = Tuple[str, int]


def absolute_url(url: Any) -> Optional[str]:
    """Return ``url`` with protocol-relative ``//host`` URLs upgraded to https."""
    if not url or not isinstance(url, str):
        return None
    url = url.strip()
    if url.startswith("//"):
        return f"https:{url}"
    return url or None


def to_int(value: Any) -> Optional[int]:
    """Coerce a JSON number or numeric string to ``int``; ``None`` if impossible."""
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return None


def split_tags(value: Any) -> Tuple[str, ...]:
    """Split a space-separated tag string, keeping source order."""
    if isinstance(value, str):
        return tuple(tag for tag in value.split(" ") if tag)
    if isinstance(value, (list, tuple)):
        return tuple(str(tag) for tag in value if tag)
    return ()


def as_list(data: Any, key: Optional[str] = None) -> List[Any]:
    """Extract a list of items from a response that may be wrapped in an object."""
    if key and isinstance(data, dict):
        data = data.get(key)
    if isinstance(data, dict) and key:
        # Single-item responses are sometimes a bare object
        return [data]
    return list(data) if isinstance(data, list) else []


class SourceAdapter(ABC):
    """Base class for source adapters."""

    #: Identifier used in configuration, caches and ``source_counts``
    source_id: str = ""
    #: Human readable name stored on each :class:`ImageRecord`
    display_name: str = ""
    #: Default throughput limits, overridable per instance
    DEFAULT_LIMITS: SourceLimits = SourceLimits()
    #: Whether the source exposes a tag-search endpoint
    supports_tag_search: bool = True

    def __init__(self, limits: Optional[SourceLimits] = None) -> None:
        self.limits = limits or self.DEFAULT_LIMITS
        self.logger = logging.getLogger(self.__class__.__name__)

    @staticmethod
    def _url(base: str, params: Dict[str, Any]) -> str:
        return f"{base}?{urlencode(params)}"

    @abstractmethod
    def build_query_url(self, tag: str, page: int, page_size: int) -> str:
        """Build the URL for one page of posts.

        ``page`` is 1-based; adapters translate to the site's own scheme.
        """

    @abstractmethod
    def parse_response(self, raw: Any) -> List[ImageRecord]:
        """Convert a decoded post listing into image records."""

    def build_tag_search_url(self, term: str) -> Optional[str]:
        """Build the tag-search URL for a prefix ``term``, if supported."""
        return None

    def parse_tag_search_response(self, raw: Any) -> List[TagHit]:
        """Convert a decoded tag listing into ``(name, post_count)`` pairs."""
        return []

    def _record(
        self,
        post: Dict[str, Any],
        url_keys: Iterable[str],
        preview_key: Optional[str],
        width_key: str = "width",
        height_key: str = "height",
        tags_key: str = "tags",
    ) -> Optional[ImageRecord]:
        url = None
        for key in url_keys:
            url = absolute_url(post.get(key))
            if url:
                break
        if not url:
            return None
        return ImageRecord(
            id=str(post.get("id", "")),
            url=url,
            source_name=self.display_name,
            preview_url=absolute_url(post.get(preview_key)) if preview_key else None,
            width=to_int(post.get(width_key)),
            height=to_int(post.get(height_key)),
            score=to_int(post.get("score")) or 0,
            tags=split_tags(post.get(tags_key)),
        )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(source_id={self.source_id!r}, limits={self.limits})"
