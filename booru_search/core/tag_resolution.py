"""Tag resolution engine.

Every board spells the same character differently: Danbooru and Safebooru
favour ``anya_(spy_x_family)`` while Yande.re may only know ``anya_forger``.
:class:`TagResolver` probes each source's tag index with every generated
variation, scores the tags that come back and keeps the best one per
source.  It is a best-effort ranking: when nothing scores above zero the
normalised character name is used instead.

Scoring (:func:`score_tag`) adds three independent bonuses:

* series bonus, when a series is given and the tag ends in ``(series)``
  with similarity >= 0.8: 2000 if the tag base is exactly the character's
  first token, 1500 if it is the full name, 1000 otherwise;
* name bonus, best single tier of 800 / 500 (full name similarity
  >= 0.9 / 0.7) or 600 / 400 (first token similarity >= 0.9 / 0.7);
* popularity bonus from the post count, 25 to 150.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from booru_search.core.cache import ResultCache
from booru_search.core.data_models import ResolvedTagSet, TagCandidate
from booru_search.core.error_recovery import absorb_failures
from booru_search.core.http_client import AsyncHTTPClient
from booru_search.core.rate_limiter import AdmissionRegistry
from booru_search.core.variant_generator import (
    generate_variations,
    make_query_key,
    normalize_name,
)
from booru_search.sources.base import SourceAdapter, TagHit

logger = logging.getLogger(__name__)

_SERIES_SUFFIX_RE = re.compile(r"\(([^)]+)\)$")
_SUFFIX_STRIP_RE = re.compile(r"\([^)]+\)$")

SERIES_MATCH_THRESHOLD = 0.8

# (minimum post count, bonus), checked in order
POPULARITY_TIERS: Tuple[Tuple[int, int], ...] = (
    (5000, 150),
    (2000, 100),
    (1000, 75),
    (500, 50),
    (100, 25),
)


def similarity(first: str, second: str) -> float:
    """Cheap string similarity used for tag scoring.

    1.0 for equal strings, 0.8 when one contains the other, otherwise the
    Jaccard overlap of the two character sets.
    """
    s1 = first.lower()
    s2 = second.lower()
    if s1 == s2:
        return 1.0
    if s1 in s2 or s2 in s1:
        return 0.8
    set1, set2 = set(s1), set(s2)
    union = set1 | set2
    if not union:
        return 0.0
    return len(set1 & set2) / len(union)


def popularity_bonus(post_count: int) -> int:
    for threshold, bonus in POPULARITY_TIERS:
        if post_count > threshold:
            return bonus
    return 0


def split_series_suffix(tag: str) -> Tuple[str, Optional[str]]:
    """Split ``name_(series)`` into ``("name", "series")``.

    The base loses the suffix and one trailing underscore; the series is
    ``None`` when the tag has no parenthesised suffix.
    """
    match = _SERIES_SUFFIX_RE.search(tag)
    base = _SUFFIX_STRIP_RE.sub("", tag)
    if base.endswith("_"):
        base = base[:-1]
    return base, match.group(1) if match else None


def score_tag(
    tag: str,
    character_name: str,
    series_name: Optional[str] = None,
    post_count: int = 0,
) -> int:
    """Score how well ``tag`` names the requested character.

    Deterministic: the same arguments always produce the same score.

    Parameters
    ----------
    tag: str
        Candidate tag as returned by a source.
    character_name: str
        Character name as supplied by the user.
    series_name: Optional[str]
        Series name as supplied by the user, if any.
    post_count: int
        Number of posts the source reports for ``tag``.
    """
    score = 0
    char_norm = normalize_name(character_name)
    char_first = char_norm.split("_")[0]
    tag_base, tag_series = split_series_suffix(tag)
    tag_first = tag_base.split("_")[0]

    series_norm = normalize_name(series_name)
    if series_norm and tag_series is not None:
        if similarity(series_norm, tag_series) >= SERIES_MATCH_THRESHOLD:
            # The whole base must equal the first name, not just its leading
            # token: "anya_forger_(spy_x_family)" for "Anya Forger" scores
            # 1500 + 800 + 150 = 2450, not 2000.
            if tag_base == char_first:
                score += 2000
            elif tag_base == char_norm:
                score += 1500
            else:
                score += 1000

    name_similarity = similarity(tag_base, char_norm)
    first_similarity = similarity(tag_first, char_first)
    if name_similarity >= 0.9:
        score += 800
    elif name_similarity >= 0.7:
        score += 500
    elif first_similarity >= 0.9:
        score += 600
    elif first_similarity >= 0.7:
        score += 400

    score += popularity_bonus(post_count)
    return score


def merge_tag_hits(batches: Sequence[Sequence[TagHit]]) -> Dict[str, int]:
    """Merge tag-search hits keyed by name, keeping the higher post count.

    Insertion order is the order names were first seen.
    """
    merged: Dict[str, int] = {}
    for batch in batches:
        for name, count in batch:
            if name not in merged or merged[name] < count:
                merged[name] = count
    return merged


def score_candidates(
    hits: Mapping[str, int],
    character_name: str,
    series_name: Optional[str] = None,
) -> List[TagCandidate]:
    """Score every distinct tag, in first-seen order."""
    return [
        TagCandidate(
            name=name,
            post_count=count,
            score=score_tag(name, character_name, series_name, count),
        )
        for name, count in hits.items()
    ]


def pick_best(candidates: Sequence[TagCandidate]) -> Optional[TagCandidate]:
    """Highest scoring candidate above zero; the earliest one wins ties."""
    best: Optional[TagCandidate] = None
    for candidate in candidates:
        if candidate.score <= 0:
            continue
        if best is None or candidate.score > best.score:
            best = candidate
    return best


def make_tag_cache_key(character_name: str, series_name: Optional[str] = None) -> str:
    return f"tags:{make_query_key(character_name, series_name)}"


class TagResolver:
    """Resolves a character (and optional series) to one tag per source."""

    def __init__(
        self,
        sources: Mapping[str, SourceAdapter],
        http_client: AsyncHTTPClient,
        cache: Optional[ResultCache] = None,
        aliases: Optional[Mapping[str, str]] = None,
        admission: Optional[AdmissionRegistry] = None,
        tag_timeout: float = 3.0,
    ) -> None:
        """Initialize the resolver.

        Args:
            sources: Enabled source adapters in aggregation order
            http_client: Shared, opened HTTP client
            cache: Resolved-tag cache; resolution is not cached when omitted
            aliases: Source id -> source id whose resolved tag it reuses
            admission: Per-source admission contexts for tag-search requests
            tag_timeout: Timeout in seconds for each tag-search request
        """
        self.sources = dict(sources)
        self.http = http_client
        self.cache = cache
        self.aliases = dict(aliases or {})
        self.admission = admission
        self.tag_timeout = tag_timeout
        self.logger = logging.getLogger(self.__class__.__name__)

    def _searchable_sources(self) -> List[str]:
        return [
            source_id
            for source_id, adapter in self.sources.items()
            if source_id not in self.aliases and adapter.supports_tag_search
        ]

    async def search_tags(self, source_id: str, term: str) -> List[TagHit]:
        """Query one source's tag index with ``term`` as a prefix.

        Any failure is absorbed and yields no hits.
        """
        adapter = self.sources[source_id]
        url = adapter.build_tag_search_url(term)
        if url is None:
            return []

        hits: List[TagHit] = []
        async with absorb_failures(source_id) as absorber:
            if self.admission is not None and source_id in self.admission:
                async with self.admission.get(source_id).slot():
                    raw = await self.http.get_json(url, timeout=self.tag_timeout)
            else:
                raw = await self.http.get_json(url, timeout=self.tag_timeout)
            hits = adapter.parse_tag_search_response(raw)
        if absorber.failure is not None:
            return []
        return hits

    async def resolve_source(
        self,
        source_id: str,
        character_name: str,
        series_name: Optional[str],
        variations: Sequence[str],
    ) -> str:
        """Pick the best tag for one source.

        Variations are tried one after another, never concurrently.
        """
        batches = []
        for variation in variations:
            batches.append(await self.search_tags(source_id, variation))

        candidates = score_candidates(merge_tag_hits(batches), character_name, series_name)
        best = pick_best(candidates)
        if best is None:
            fallback = normalize_name(character_name)
            self.logger.info("%s: no tags found, using fallback '%s'", source_id, fallback)
            return fallback

        self.logger.info(
            "%s: %s (score: %g, count: %d)", source_id, best.name, best.score, best.post_count
        )
        if len(candidates) > 1:
            top = sorted(candidates, key=lambda c: c.score, reverse=True)[:3]
            self.logger.debug(
                "%s top 3: %s", source_id, ", ".join(f"{c.name}({c.score:g})" for c in top)
            )
        return best.name

    async def resolve(
        self, character_name: str, series_name: Optional[str] = None
    ) -> ResolvedTagSet:
        """Resolve the best tag for every known source.

        Returns:
            ResolvedTagSet with an entry for every configured source
        """
        key = make_tag_cache_key(character_name, series_name)
        if self.cache is not None:
            cached = self.cache.get_tags(key)
            if cached is not None:
                return cached

        variations = generate_variations(character_name, series_name)
        self.logger.info("Trying variations: %s", variations)

        searchable = self._searchable_sources()
        picks = await asyncio.gather(
            *(
                self.resolve_source(source_id, character_name, series_name, variations)
                for source_id in searchable
            )
        )
        resolved: Dict[str, str] = dict(zip(searchable, picks))

        fallback = normalize_name(character_name)
        for source_id in self.sources:
            if source_id not in resolved and source_id not in self.aliases:
                resolved[source_id] = fallback
        for source_id, primary in self.aliases.items():
            if source_id in self.sources:
                resolved[source_id] = resolved.get(primary, fallback)

        tag_set = ResolvedTagSet({source_id: resolved[source_id] for source_id in self.sources})
        if self.cache is not None:
            self.cache.set_tags(key, tag_set)
        self.logger.info("Final tags: %s", tag_set.to_dict())
        return tag_set
