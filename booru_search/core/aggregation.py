"""Merging and deduplication of per-source image lists.

Sources are walked in a fixed order and images in the order each source
returned them.  The first copy of a URL wins and is credited to the source
that produced it; later copies are dropped.  The merged list is then
stable-sorted by score, so equal scores keep their merge order and the same
input always yields the same output.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set

from booru_search.core.data_models import ImageRecord, SearchResultSet

logger = logging.getLogger(__name__)


class ImageAggregator:
    """Merges per-source results into one ranked, deduplicated set."""

    def __init__(self, source_order: Optional[Sequence[str]] = None) -> None:
        """Initialize the aggregator.

        Args:
            source_order: Order in which sources are merged.  Sources not
                listed are merged afterwards in their mapping order.
        """
        self.source_order = list(source_order or [])
        self.logger = logging.getLogger(self.__class__.__name__)

    def _ordered_sources(self, per_source: Mapping[str, Iterable[ImageRecord]]) -> List[str]:
        listed = [source for source in self.source_order if source in per_source]
        extra = [source for source in per_source if source not in self.source_order]
        return listed + extra

    def aggregate(self, per_source: Mapping[str, Iterable[ImageRecord]]) -> SearchResultSet:
        """Merge, deduplicate by URL and rank by score.

        Args:
            per_source: Images returned by each source, in source order

        Returns:
            SearchResultSet whose ``source_counts`` cover only surviving images
        """
        seen: Set[str] = set()
        merged: List[ImageRecord] = []
        source_counts: Dict[str, int] = {}
        total_in = 0

        for source in self._ordered_sources(per_source):
            source_counts[source] = 0
            for image in per_source[source]:
                total_in += 1
                if not image.url or image.url in seen:
                    continue
                seen.add(image.url)
                merged.append(image)
                source_counts[source] += 1

        # list.sort is stable: equal scores keep merge order
        merged.sort(key=lambda image: image.score, reverse=True)

        self.logger.info(
            "Aggregated %d images to %d unique images from %d sources",
            total_in,
            len(merged),
            len(source_counts),
        )
        return SearchResultSet(images=tuple(merged), source_counts=source_counts)


def aggregate(
    per_source: Mapping[str, Iterable[ImageRecord]],
    source_order: Optional[Sequence[str]] = None,
) -> SearchResultSet:
    """Convenience function to aggregate per-source results.

    Args:
        per_source: Images returned by each source
        source_order: Fixed merge order; defaults to the mapping's order

    Returns:
        Merged SearchResultSet
    """
    return ImageAggregator(source_order).aggregate(per_source)
