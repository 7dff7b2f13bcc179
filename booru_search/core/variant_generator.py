"""Character name normalisation and tag variation helpers.

Booru sites index characters under lowercase, underscore-joined tags,
usually disambiguated with a parenthesised series suffix, e.g.
``anya_(spy_x_family)``.  The helpers here turn free-form user input into
the handful of tag spellings worth probing on each site, ordered from the
most to the least likely.
"""

from __future__ import annotations

import re
from typing import List, Optional

_WHITESPACE_RE = re.compile(r"\s+")
_DISALLOWED_RE = re.compile(r"[^\w()'-]")


def normalize_name(name: Optional[str]) -> str:
    """Normalise a character or series name to booru tag form.

    Lowercases, trims, joins whitespace runs with a single underscore and
    strips anything that is not a word character, underscore, parenthesis,
    apostrophe or hyphen.

    >>> normalize_name("  Anya  Forger ")
    'anya_forger'
    """
    if not name:
        return ""
    normalized = _WHITESPACE_RE.sub("_", name.lower().strip())
    return _DISALLOWED_RE.sub("", normalized)


def make_query_key(character_name: str, series_name: Optional[str] = None) -> str:
    """Cache key shared by every spelling of the same (character, series) pair."""
    return f"{normalize_name(character_name)}:{normalize_name(series_name) or 'none'}"


def generate_variations(character_name: str, series_name: Optional[str] = None) -> List[str]:
    """Generate candidate tag spellings for a character, best first.

    The order is ``first_(series)``, ``first``, ``full_(series)``, ``full``
    and, when the name has a second token, ``first_second`` and ``second``.
    Duplicates are dropped while keeping the first occurrence.

    Parameters
    ----------
    character_name: str
        The character name as typed by the user.
    series_name: Optional[str]
        Optional series the character belongs to.
    """
    base = normalize_name(character_name)
    series = normalize_name(series_name)
    parts = base.split("_")
    first = parts[0]

    candidates: List[str] = []
    if series and first:
        candidates.append(f"{first}_({series})")
    if first:
        candidates.append(first)
    if series and base:
        candidates.append(f"{base}_({series})")
    if base:
        candidates.append(base)
    if len(parts) > 1 and parts[1]:
        candidates.append(f"{first}_{parts[1]}")
        candidates.append(parts[1])

    # dict keeps insertion order
    return list(dict.fromkeys(candidates))
