"""Source adapters for booru_search.

Each adapter wraps one image board:
- safebooru, gelbooru, tbib: Gelbooru "dapi" interface
- danbooru: Danbooru JSON API
- yandere, konachan: Moebooru JSON API
- anime_pictures: anime-pictures.net v3 API
"""

from .base import SourceAdapter, TagHit  # noqa: F401
from .registry import (  # noqa: F401
    SOURCE_ORDER,
    SOURCE_REGISTRY,
    TAG_ALIASES,
    build_aliases,
    build_sources,
)

__all__ = [
    "SourceAdapter",
    "TagHit",
    "SOURCE_ORDER",
    "SOURCE_REGISTRY",
    "TAG_ALIASES",
    "build_aliases",
    "build_sources",
]
