"""booru_search - multi-source booru image search.

Resolves a character (and optional series) to the right tag on each image
board, fetches every page from all boards concurrently under per-board
rate limits, and serves merged, deduplicated, score-ranked pages from a
short-lived cache.
"""

__version__ = "0.1.0"
__author__ = "booru_search contributors"

from booru_search.core.orchestrator import QueryOrchestrator
from booru_search.core.data_models import ImageRecord

__all__ = ["QueryOrchestrator", "ImageRecord", "__version__"]
