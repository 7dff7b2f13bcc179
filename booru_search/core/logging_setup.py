"""Logging configuration for booru_search.

Two streams are set up:

- the application log (console plus a rotating ``booru_search.log``), in
  plain text or JSON;
- the query log (``queries.log``), one JSON record per search and one per
  source that took part in it, written by :class:`QueryLogger`.

Entry points (CLI, API) call :func:`configure_from_config` once at startup.
"""

import json
import logging
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Iterator, Optional, Sequence

if TYPE_CHECKING:
    from booru_search.core.config import Config
    from booru_search.core.data_models import SearchResultSet
    from booru_search.core.error_recovery import SourceFetchReport

APP_LOG_NAME = "booru_search.log"
QUERY_LOG_NAME = "queries.log"

# httpx logs every request at INFO; one search issues hundreds.
CHATTY_LOGGERS = ("httpx", "httpcore")

# Record attributes copied into JSON output when passed through ``extra=``.
CONTEXT_FIELDS = ("query_key", "source", "page", "stage")


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with any query context attached."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "line": record.lineno,
        }

        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_data[name] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        return json.dumps(log_data, default=str)


class QueryLogger:
    """Writes search and per-source fetch records to the query log."""

    def __init__(self, log_file: Optional[Path] = None):
        self.logger = logging.getLogger("booru_search.queries")
        self.logger.setLevel(logging.INFO)
        self.logger.propagate = False

        if log_file is not None and not self.logger.handlers:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            handler = RotatingFileHandler(log_file, maxBytes=10 * 1024 * 1024, backupCount=5)
            handler.setFormatter(JSONFormatter())
            self.logger.addHandler(handler)

    def _emit(self, message: str, fields: Dict[str, Any]) -> None:
        self.logger.info(message, extra={"extra_fields": fields})

    def log_cache_hit(self, query_key: str) -> None:
        self._emit(
            f"cache hit: {query_key}",
            {"event_type": "search", "query_key": query_key, "cached": True},
        )

    def log_search(
        self,
        query_key: str,
        duration_ms: float,
        result: "SearchResultSet",
        reports: Sequence["SourceFetchReport"],
        strategy: str,
    ) -> None:
        """Record a completed search, then one record per source.

        Args:
            query_key: Cache key of the query
            duration_ms: Wall time of resolve, fetch and aggregate
            result: The merged result set
            reports: Per-source fetch reports
            strategy: Name of the sweep strategy used
        """
        self._emit(
            f"search: {query_key}",
            {
                "event_type": "search",
                "query_key": query_key,
                "cached": False,
                "duration_ms": round(duration_ms, 2),
                "strategy": strategy,
                "total_images": result.total_images,
                "source_counts": dict(result.source_counts),
            },
        )
        for report in reports:
            self.log_source_fetch(query_key, report)

    def log_source_fetch(self, query_key: str, report: "SourceFetchReport") -> None:
        failures: Dict[str, int] = {}
        for failure in report.failures:
            failures[failure.kind.value] = failures.get(failure.kind.value, 0) + 1

        fields = {"event_type": "source_fetch", "query_key": query_key}
        fields.update(report.to_dict())
        fields["failures"] = failures
        self._emit(f"fetch: {report.source} {report.tag}", fields)


@contextmanager
def log_stage(stage: str, query_key: str, logger: logging.Logger) -> Iterator[None]:
    """Log how long one stage of a search took.

    Example:
        with log_stage("aggregate", key, self.logger):
            result = aggregate(per_source)
    """
    start_time = time.monotonic()
    success = False
    try:
        yield
        success = True
    finally:
        duration_ms = (time.monotonic() - start_time) * 1000
        logger.debug(
            "%s for %s took %.2fms (success=%s)",
            stage,
            query_key,
            duration_ms,
            success,
            extra={"query_key": query_key, "stage": stage},
        )


def configure_logging(
    log_file: Optional[Path] = None,
    level: int = logging.INFO,
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 3,
    use_json: bool = False,
    console_output: bool = True,
) -> None:
    """Configure root logging handlers with optional JSON formatting.

    Parameters
    ----------
    log_file: Path, optional
        If provided, logs will be written to this file with rotation.  The
        directory will be created if it does not exist.
    level: int
        Logging level (e.g. ``logging.INFO`` or ``logging.DEBUG``).
    max_bytes: int
        Maximum size of each log file before rotation.
    backup_count: int
        Number of rotated log files to keep.
    use_json: bool
        If True, use JSON structured logging format.
    console_output: bool
        If True, enable console output handler.
    """
    root = logging.getLogger()
    if root.handlers:
        return

    root.setLevel(level)

    # Per-request lines only at DEBUG.
    chatty_level = logging.DEBUG if level <= logging.DEBUG else logging.WARNING
    for name in CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(chatty_level)

    if use_json:
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    if console_output:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backup_count)
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)


def configure_from_config(
    config: "Config",
    *,
    log_dir: Optional[Path] = None,
    level: Optional[str] = None,
    use_json: Optional[bool] = None,
    console_output: bool = True,
) -> QueryLogger:
    """Configure the application log and query log from ``logging.*`` settings.

    Keyword arguments that are not None override the configured values
    (the CLI passes its ``--log-*`` flags here).

    Returns:
        The query logger to hand to the orchestrator
    """
    directory = Path(log_dir if log_dir is not None else config.get("logging.directory", "logs"))
    level_name = str(level if level is not None else config.get("logging.level", "INFO")).upper()
    if use_json is None:
        use_json = config.get_bool("logging.json_format", False)

    configure_logging(
        log_file=directory / APP_LOG_NAME,
        level=getattr(logging, level_name, logging.INFO),
        use_json=use_json,
        console_output=console_output,
    )

    query_logger = QueryLogger(directory / QUERY_LOG_NAME)
    logging.getLogger(__name__).info(
        "Logging configured: app=%s, queries=%s",
        directory / APP_LOG_NAME,
        directory / QUERY_LOG_NAME,
    )
    return query_logger
