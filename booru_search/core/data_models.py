"""Data models used throughout booru_search.

``ImageRecord`` is the common representation of one post returned by a
source adapter.  ``ResolvedTagSet`` and ``SearchResultSet`` are the two
values that live in the result cache, and ``PaginatedResult`` is the slice
handed back to callers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageRecord:
    """Represents a single image post from one source.

    Attributes
    ----------
    id: str
        Post identifier on the originating source.
    url: str
        Full-size image URL.  This is the identity used for deduplication
        (case-sensitive exact match).
    preview_url: Optional[str]
        Thumbnail URL, if the source provides one.
    width, height: Optional[int]
        Image dimensions when known.
    score: int
        Source-reported score, ``0`` when absent.
    tags: Tuple[str, ...]
        Tags in the order the source listed them.
    source_name: str
        Display name of the source that produced the record.
    """

    id: str
    url: str
    source_name: str
    preview_url: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    score: int = 0
    tags: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.url:
            raise ValueError("url cannot be empty")
        # Frozen dataclass: normalise through object.__setattr__
        object.__setattr__(self, "id", str(self.id))
        object.__setattr__(self, "tags", tuple(self.tags))
        object.__setattr__(self, "score", int(self.score or 0))

    def to_dict(self) -> Dict[str, Any]:
        """Serialise the record to a JSON-serialisable dictionary."""
        return {
            "id": self.id,
            "url": self.url,
            "previewUrl": self.preview_url,
            "width": self.width,
            "height": self.height,
            "score": self.score,
            "tags": list(self.tags),
            "source": self.source_name,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ImageRecord":
        """Create an ImageRecord from a dictionary produced by ``to_dict``."""
        if "url" not in data or "source" not in data:
            raise ValueError("ImageRecord requires 'url' and 'source' fields")
        return cls(
            id=data.get("id", ""),
            url=data["url"],
            source_name=data["source"],
            preview_url=data.get("previewUrl"),
            width=data.get("width"),
            height=data.get("height"),
            score=data.get("score", 0),
            tags=tuple(data.get("tags", ())),
        )


@dataclass
class TagCandidate:
    """A tag returned by a source's tag search, with its resolution score."""

    name: str
    post_count: int = 0
    score: float = 0.0

    def __repr__(self) -> str:
        return f"TagCandidate({self.name!r}, posts={self.post_count}, score={self.score:g})"


class ResolvedTagSet(Mapping[str, str]):
    """Read-only mapping of source identifier to the tag chosen for it."""

    __slots__ = ("_tags",)

    def __init__(self, tags: Mapping[str, str]) -> None:
        self._tags = MappingProxyType(dict(tags))

    def __getitem__(self, source: str) -> str:
        return self._tags[source]

    def __iter__(self) -> Iterator[str]:
        return iter(self._tags)

    def __len__(self) -> int:
        return len(self._tags)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Mapping):
            return dict(self._tags) == dict(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(frozenset(self._tags.items()))

    def to_dict(self) -> Dict[str, str]:
        return dict(self._tags)

    def __repr__(self) -> str:
        return f"ResolvedTagSet({dict(self._tags)!r})"


@dataclass(frozen=True)
class SearchResultSet:
    """Merged, deduplicated and ranked images for one query.

    ``images`` is sorted by score descending with ties kept in merge order.
    ``source_counts`` attributes every surviving image to the source that
    contributed it, so its values always sum to ``len(images)``.
    """

    images: Tuple[ImageRecord, ...] = ()
    source_counts: Mapping[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "images", tuple(self.images))
        object.__setattr__(self, "source_counts", MappingProxyType(dict(self.source_counts)))

    @property
    def total_images(self) -> int:
        return len(self.images)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "images": [image.to_dict() for image in self.images],
            "sources": dict(self.source_counts),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SearchResultSet":
        return cls(
            images=tuple(ImageRecord.from_dict(item) for item in data.get("images", [])),
            source_counts=data.get("sources", {}),
        )


@dataclass
class PaginatedResult:
    """One page of a ``SearchResultSet`` as returned to callers."""

    images: List[ImageRecord]
    total_images: int
    total_pages: int
    source_counts: Dict[str, int]
    cached: bool
    page: int = 1
    page_size: int = 100

    def to_dict(self) -> Dict[str, Any]:
        """Render the response envelope fields."""
        return {
            "images": [image.to_dict() for image in self.images],
            "totalImages": self.total_images,
            "totalPages": self.total_pages,
            "sourceCounts": dict(self.source_counts),
            "cached": self.cached,
        }

    def __repr__(self) -> str:
        return (
            f"PaginatedResult(page={self.page}, images={len(self.images)}, "
            f"total={self.total_images}, cached={self.cached})"
        )
