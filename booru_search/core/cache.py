"""Caching layer for booru_search.

Two independent in-memory stores sit behind :class:`ResultCache`: one for
merged image search results and one for resolved tag sets.  Both are
``cachetools.TTLCache`` instances, so entries expire after their TTL and the
least recently used entry is evicted once a store is full.  Callers treat a
miss, an expired entry and an evicted entry identically.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Optional

from cachetools import TTLCache

from booru_search.core.data_models import ResolvedTagSet, SearchResultSet

logger = logging.getLogger(__name__)

# Default sizes and TTL values (in seconds)
DEFAULT_IMAGE_MAX_ENTRIES = 5000
DEFAULT_IMAGE_TTL = 12 * 60 * 60  # 12 hours
DEFAULT_TAG_MAX_ENTRIES = 10000
DEFAULT_TAG_TTL = 72 * 60 * 60  # 72 hours


class _CacheStats:
    __slots__ = ("hits", "misses")

    def __init__(self) -> None:
        self.hits = 0
        self.misses = 0

    def as_dict(self, size: int, max_entries: int) -> Dict[str, Any]:
        total = self.hits + self.misses
        return {
            "size": size,
            "max_entries": max_entries,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": (self.hits / total) if total > 0 else 0.0,
        }


class ResultCache:
    """TTL and capacity bounded stores for search results and resolved tags."""

    def __init__(
        self,
        image_max_entries: int = DEFAULT_IMAGE_MAX_ENTRIES,
        image_ttl: float = DEFAULT_IMAGE_TTL,
        tag_max_entries: int = DEFAULT_TAG_MAX_ENTRIES,
        tag_ttl: float = DEFAULT_TAG_TTL,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the cache.

        Args:
            image_max_entries: Capacity of the image result store
            image_ttl: Time-to-live of image results in seconds
            tag_max_entries: Capacity of the resolved tag store
            tag_ttl: Time-to-live of resolved tags in seconds
            timer: Clock used for expiry, injectable for tests
        """
        self.logger = logging.getLogger(self.__class__.__name__)
        self._image_max = image_max_entries
        self._tag_max = tag_max_entries
        self._images: TTLCache = TTLCache(maxsize=image_max_entries, ttl=image_ttl, timer=timer)
        self._tags: TTLCache = TTLCache(maxsize=tag_max_entries, ttl=tag_ttl, timer=timer)
        self._image_stats = _CacheStats()
        self._tag_stats = _CacheStats()

    @classmethod
    def from_config(cls, config: Any) -> "ResultCache":
        """Build a cache from the ``cache.images`` / ``cache.tags`` config sections."""
        return cls(
            image_max_entries=config.get_int("cache.images.max_entries", DEFAULT_IMAGE_MAX_ENTRIES),
            image_ttl=config.get_float("cache.images.ttl_seconds", DEFAULT_IMAGE_TTL),
            tag_max_entries=config.get_int("cache.tags.max_entries", DEFAULT_TAG_MAX_ENTRIES),
            tag_ttl=config.get_float("cache.tags.ttl_seconds", DEFAULT_TAG_TTL),
        )

    # Image results

    def get_images(self, key: str) -> Optional[SearchResultSet]:
        """Get a cached result set, or ``None`` on miss/expiry/eviction."""
        result = self._images.get(key)
        if result is None:
            self._image_stats.misses += 1
            self.logger.debug("Image cache miss for key: %s", key)
            return None
        self._image_stats.hits += 1
        self.logger.debug("Image cache hit for key: %s", key)
        return result

    def set_images(self, key: str, value: SearchResultSet) -> None:
        if not self._image_max:
            return  # zero capacity stores nothing
        self._images[key] = value
        self.logger.debug("Cached %d images for key: %s", value.total_images, key)

    def has_images(self, key: str) -> bool:
        return key in self._images

    # Resolved tags

    def get_tags(self, key: str) -> Optional[ResolvedTagSet]:
        """Get a cached tag set, or ``None`` on miss/expiry/eviction."""
        result = self._tags.get(key)
        if result is None:
            self._tag_stats.misses += 1
            self.logger.debug("Tag cache miss for key: %s", key)
            return None
        self._tag_stats.hits += 1
        self.logger.debug("Tag cache hit for key: %s", key)
        return result

    def set_tags(self, key: str, value: ResolvedTagSet) -> None:
        if not self._tag_max:
            return
        self._tags[key] = value

    def has_tags(self, key: str) -> bool:
        return key in self._tags

    def stats(self) -> Dict[str, Dict[str, Any]]:
        """Get size and hit/miss counters for both stores."""
        return {
            "images": self._image_stats.as_dict(len(self._images), self._image_max),
            "tags": self._tag_stats.as_dict(len(self._tags), self._tag_max),
        }

    def clear(self) -> None:
        """Drop every entry from both stores and reset the counters."""
        image_count, tag_count = len(self._images), len(self._tags)
        self._images.clear()
        self._tags.clear()
        self._image_stats = _CacheStats()
        self._tag_stats = _CacheStats()
        self.logger.info("Cleared cache (%d image entries, %d tag entries)", image_count, tag_count)

