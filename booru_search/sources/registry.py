"""Registry of the built-in sources and the tag aliasing policy."""

from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Optional, Type

from booru_search.core.config import Config
from booru_search.sources.anime_pictures import AnimePicturesSource
from booru_search.sources.base import SourceAdapter
from booru_search.sources.danbooru import DanbooruSource
from booru_search.sources.gelbooru import GelbooruSource, SafebooruSource, TbibSource
from booru_search.sources.moebooru import KonachanSource, YandereSource

logger = logging.getLogger(__name__)

# Fixed order used for aggregation; earlier sources win URL collisions
SOURCE_REGISTRY: Dict[str, Type[SourceAdapter]] = {
    "safebooru": SafebooruSource,
    "danbooru": DanbooruSource,
    "gelbooru": GelbooruSource,
    "yandere": YandereSource,
    "konachan": KonachanSource,
    "tbib": TbibSource,
    "anime_pictures": AnimePicturesSource,
}

SOURCE_ORDER: List[str] = list(SOURCE_REGISTRY)

# Low-traffic sources reuse another source's resolved tag instead of
# running their own tag search
TAG_ALIASES: Dict[str, str] = {
    "tbib": "safebooru",
    "anime_pictures": "safebooru",
}


def build_sources(config: Optional[Config] = None) -> Dict[str, SourceAdapter]:
    """Instantiate every enabled source, applying configured limit overrides.

    Args:
        config: Configuration to read ``sources.<id>`` sections from

    Returns:
        Mapping of source id to adapter, in aggregation order
    """
    sources: Dict[str, SourceAdapter] = {}
    for source_id, adapter_cls in SOURCE_REGISTRY.items():
        if config is not None and not config.is_source_enabled(source_id):
            logger.info("Source %s disabled by configuration", source_id)
            continue
        limits = adapter_cls.DEFAULT_LIMITS
        if config is not None:
            limits = limits.with_overrides(config.get_source_config(source_id))
        sources[source_id] = adapter_cls(limits=limits)
    return sources


def build_aliases(
    sources: Mapping[str, SourceAdapter], config: Optional[Config] = None
) -> Dict[str, str]:
    """Alias table restricted to sources that are actually enabled.

    An alias whose primary source is disabled is dropped so the aliased
    source resolves its own tag (or falls back to the normalised name).
    """
    aliases = dict(TAG_ALIASES)
    if config is not None:
        aliases.update(config.get_section("aliases") or {})
    return {
        alias: primary
        for alias, primary in aliases.items()
        if alias in sources and primary in sources and alias != primary
    }
