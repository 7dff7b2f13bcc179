"""Failure absorption for source fetches.

No single page or source is allowed to fail a query.  Every remote call
goes through :func:`absorb_failures`, which turns transport, timeout,
status and parse failures into a :class:`PageOutcome` whose ``images`` is
empty.  The absorbed failure is kept on the outcome so that callers can
count and log it instead of losing it to a bare ``except``.

Only :class:`InvalidQueryError` is meant to reach the caller.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional

from booru_search.core.data_models import ImageRecord
from booru_search.core.http_client import (
    FetchFailure,
    ParseFailure,
    StatusFailure,
    TimeoutFailure,
)

logger = logging.getLogger(__name__)

# Exceptions an adapter may raise while walking an unexpected JSON shape
PARSE_ERRORS = (KeyError, TypeError, ValueError, AttributeError, IndexError)


class InvalidQueryError(ValueError):
    """Raised when a query is rejected before any network work is done."""


class FailureKind(Enum):
    """Categories of absorbed failures."""

    TRANSPORT = "transport"
    TIMEOUT = "timeout"
    STATUS = "status"
    PARSE = "parse"


@dataclass(frozen=True)
class AbsorbedFailure:
    """A failure that was converted into an empty contribution."""

    source: str
    kind: FailureKind
    message: str
    page: Optional[int] = None
    status_code: Optional[int] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "kind": self.kind.value,
            "message": self.message,
            "page": self.page,
            "status_code": self.status_code,
            "timestamp": self.timestamp.isoformat(),
        }


def classify_failure(exc: BaseException) -> FailureKind:
    """Map an exception raised during a fetch to a :class:`FailureKind`."""
    if isinstance(exc, TimeoutFailure):
        return FailureKind.TIMEOUT
    if isinstance(exc, StatusFailure):
        return FailureKind.STATUS
    if isinstance(exc, ParseFailure) or isinstance(exc, PARSE_ERRORS):
        return FailureKind.PARSE
    return FailureKind.TRANSPORT


@dataclass
class PageOutcome:
    """Result of fetching one page: either images or an absorbed failure.

    An absorbed outcome always carries an empty image list.
    """

    page: int
    images: List[ImageRecord] = field(default_factory=list)
    failure: Optional[AbsorbedFailure] = None

    @classmethod
    def ok(cls, page: int, images: List[ImageRecord]) -> "PageOutcome":
        return cls(page=page, images=list(images))

    @classmethod
    def absorbed(cls, page: int, failure: AbsorbedFailure) -> "PageOutcome":
        return cls(page=page, images=[], failure=failure)

    @property
    def is_absorbed(self) -> bool:
        return self.failure is not None


@dataclass
class SourceFetchReport:
    """Everything one source contributed to a query."""

    source: str
    tag: str
    outcomes: List[PageOutcome] = field(default_factory=list)
    start_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    end_time: Optional[datetime] = None

    @property
    def images(self) -> List[ImageRecord]:
        """Images from every page, in page order."""
        ordered = sorted(self.outcomes, key=lambda outcome: outcome.page)
        return [image for outcome in ordered for image in outcome.images]

    @property
    def failures(self) -> List[AbsorbedFailure]:
        return [o.failure for o in self.outcomes if o.failure is not None]

    @property
    def pages_requested(self) -> int:
        return len(self.outcomes)

    @property
    def pages_with_images(self) -> int:
        return sum(1 for o in self.outcomes if o.images)

    @property
    def elapsed_seconds(self) -> float:
        end = self.end_time or datetime.now(timezone.utc)
        return (end - self.start_time).total_seconds()

    def add(self, outcome: PageOutcome) -> None:
        self.outcomes.append(outcome)

    def mark_complete(self) -> None:
        self.end_time = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "tag": self.tag,
            "image_count": len(self.images),
            "pages_requested": self.pages_requested,
            "pages_with_images": self.pages_with_images,
            "failure_count": len(self.failures),
            "elapsed_seconds": self.elapsed_seconds,
        }


class _Absorber:
    """Holder filled in by :func:`absorb_failures` when a failure is caught."""

    def __init__(self, source: str, page: Optional[int]) -> None:
        self.source = source
        self.page = page
        self.failure: Optional[AbsorbedFailure] = None


@asynccontextmanager
async def absorb_failures(source: str, page: Optional[int] = None) -> AsyncIterator[_Absorber]:
    """Absorb fetch and parse failures raised inside the block.

    Example:
        async with absorb_failures("safebooru", page=3) as absorber:
            images = adapter.parse_response(await client.get_json(url))
        if absorber.failure is not None:
            ...  # contribute nothing

    Anything that is not a fetch or parse failure (cancellation, programming
    errors in the caller) propagates unchanged.
    """
    absorber = _Absorber(source, page)
    try:
        yield absorber
    except (FetchFailure,) + PARSE_ERRORS as exc:
        status_code = exc.status_code if isinstance(exc, StatusFailure) else None
        absorber.failure = AbsorbedFailure(
            source=source,
            kind=classify_failure(exc),
            message=str(exc) or exc.__class__.__name__,
            page=page,
            status_code=status_code,
        )
        logger.debug(
            "Absorbed %s failure from %s (page=%s): %s",
            absorber.failure.kind.value,
            source,
            page,
            absorber.failure.message,
        )
