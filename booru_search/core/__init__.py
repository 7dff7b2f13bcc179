"""Core functionality for booru_search.

This package contains the data models, HTTP client, admission control,
cache, aggregation, configuration and logging used by the tag resolver,
the fetch scheduler and the query orchestrator.

The resolver (``tag_resolution``), scheduler (``scheduler``) and
orchestrator (``orchestrator``) depend on the source adapters and are
imported from their own modules.
"""

from .aggregation import ImageAggregator, aggregate  # noqa: F401
from .cache import ResultCache  # noqa: F401
from .config import Config, ValidationResult, get_config  # noqa: F401
from .data_models import (  # noqa: F401
    ImageRecord,
    PaginatedResult,
    ResolvedTagSet,
    SearchResultSet,
    TagCandidate,
)
from .error_recovery import InvalidQueryError, PageOutcome, SourceFetchReport  # noqa: F401
from .http_client import AsyncHTTPClient  # noqa: F401
from .logging_setup import configure_logging  # noqa: F401
from .rate_limiter import AdmissionRegistry, SourceLimits, TokenBucket  # noqa: F401
from .variant_generator import generate_variations, normalize_name  # noqa: F401

__all__ = [
    # Models
    "ImageRecord",
    "PaginatedResult",
    "ResolvedTagSet",
    "SearchResultSet",
    "TagCandidate",
    # Pipeline pieces
    "ImageAggregator",
    "aggregate",
    "generate_variations",
    "normalize_name",
    # Infrastructure
    "AsyncHTTPClient",
    "AdmissionRegistry",
    "SourceLimits",
    "TokenBucket",
    "ResultCache",
    "Config",
    "get_config",
    "ValidationResult",
    "configure_logging",
    # Errors
    "InvalidQueryError",
    "PageOutcome",
    "SourceFetchReport",
]
