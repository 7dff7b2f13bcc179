#!/usr/bin/env python3
"""Command-line interface for booru_search.

Commands:
- search: Search every source for a character and print one page of images
- tags: Show the tag each source would be searched with
- sources: List the configured sources, their limits and tag aliases
- validate: Validate configuration
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from booru_search.core.config import FETCH_STRATEGIES, Config, get_config
from booru_search.core.error_recovery import InvalidQueryError
from booru_search.core.logging_setup import configure_from_config
from booru_search.core.orchestrator import QueryOrchestrator
from booru_search.sources.registry import build_aliases, build_sources

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INVALID_QUERY = 2
EXIT_INTERRUPTED = 130

query_logger = None


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Multi-source booru image search",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  booru-search search "Anya Forger" --series "Spy x Family"
  booru-search search rem --page 2 --limit 50 --json
  booru-search tags "Anya Forger" --series "Spy x Family"
  booru-search sources
  booru-search validate --strict
        """,
    )
    parser.add_argument(
        "--log-dir",
        type=Path,
        help="Directory for log files (default: from configuration)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="WARNING",
        help="Logging level (default: WARNING)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Use JSON structured logging format",
    )
    parser.add_argument(
        "--config",
        help="Path to a YAML or TOML configuration file",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # Search
    search_parser = subparsers.add_parser("search", help="Search for a character")
    search_parser.add_argument("character", help="Character name")
    search_parser.add_argument("--series", "-s", help="Series the character is from")
    search_parser.add_argument("--page", "-p", type=int, default=1, help="Page number (default: 1)")
    search_parser.add_argument(
        "--limit", "-n", type=int, default=100, help="Images per page (default: 100)"
    )
    search_parser.add_argument(
        "--strategy",
        choices=list(FETCH_STRATEGIES),
        help="Page sweep strategy (default: from configuration)",
    )
    search_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # Tags
    tags_parser = subparsers.add_parser("tags", help="Show resolved tags per source")
    tags_parser.add_argument("character", help="Character name")
    tags_parser.add_argument("--series", "-s", help="Series the character is from")
    tags_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # Sources
    sources_parser = subparsers.add_parser("sources", help="List configured sources")
    sources_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # Validate
    validate_parser = subparsers.add_parser("validate", help="Validate configuration")
    validate_parser.add_argument(
        "--strict", action="store_true", help="Exit with error if validation fails"
    )

    return parser.parse_args(argv)


async def main_async(args: argparse.Namespace) -> int:
    """Main async entry point.

    Returns:
        Exit code (0 for success, non-zero for errors)
    """
    global query_logger

    config = get_config(args.config)
    query_logger = configure_from_config(
        config,
        log_dir=args.log_dir,
        level=args.log_level,
        use_json=args.json_logs or None,
    )

    logger = logging.getLogger(__name__)
    logger.info(f"booru_search CLI started with command: {args.command}")

    if args.command == "sources":
        return handle_sources(args, config)
    elif args.command == "validate":
        return handle_validate(args, config)

    try:
        if args.command == "search":
            return await handle_search(args, config)
        return await handle_tags(args, config)
    except InvalidQueryError as e:
        print(f"Invalid query: {e}", file=sys.stderr)
        return EXIT_INVALID_QUERY
    finally:
        logger.info(f"booru_search CLI completed command: {args.command}")


async def handle_search(args: argparse.Namespace, config: Config) -> int:
    """Handle the search command."""
    if args.strategy:
        config.set("fetch.strategy", args.strategy)

    async with QueryOrchestrator(config, query_logger=query_logger) as orchestrator:
        result = await orchestrator.search(
            args.character, args.series, page=args.page, page_size=args.limit
        )

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
        return EXIT_OK

    label = args.character if not args.series else f"{args.character} ({args.series})"
    print(f"Results for {label}: page {args.page}/{result.total_pages}")
    print(f"Total images: {result.total_images:,}{' (cached)' if result.cached else ''}")
    print("-" * 60)
    for image in result.images:
        size = f"{image.width}x{image.height}" if image.width and image.height else "?"
        print(f"  [{image.source_name}] score={image.score:<5} {size:<11} {image.url}")
    print("-" * 60)
    print("Images by source:")
    for source_id, count in result.source_counts.items():
        print(f"  {source_id:<15} {count:,}")
    return EXIT_OK


async def handle_tags(args: argparse.Namespace, config: Config) -> int:
    """Handle the tags command."""
    async with QueryOrchestrator(config, query_logger=query_logger) as orchestrator:
        resolved = await orchestrator.discover_tags(args.character, args.series)

    if args.json:
        print(json.dumps(resolved.to_dict(), indent=2))
    else:
        for source_id, tag in resolved.items():
            print(f"{source_id:<15} {tag}")
    return EXIT_OK


def handle_sources(args: argparse.Namespace, config: Config) -> int:
    """Handle the sources command."""
    sources = build_sources(config)
    aliases = build_aliases(sources, config)

    rows = [
        {
            "id": source_id,
            "name": adapter.display_name,
            "max_concurrency": adapter.limits.max_concurrency,
            "requests_per_interval": adapter.limits.requests_per_interval,
            "interval_ms": adapter.limits.interval_ms,
            "max_pages": adapter.limits.max_pages,
            "tag_search": adapter.supports_tag_search,
            "alias_of": aliases.get(source_id),
        }
        for source_id, adapter in sources.items()
    ]

    if args.json:
        print(json.dumps(rows, indent=2))
        return EXIT_OK

    if not rows:
        print("No sources enabled.")
        return EXIT_OK

    print(f"{'ID':<15} | {'Concurrency':>11} | {'Rate':>10} | {'Pages':>5} | {'Tags from':<12}")
    print("-" * 66)
    for row in rows:
        rate = f"{row['requests_per_interval']}/{row['interval_ms']}ms"
        tags_from = row["alias_of"] or ("own" if row["tag_search"] else "name")
        print(
            f"{row['id']:<15} | {row['max_concurrency']:>11} | {rate:>10} | "
            f"{row['max_pages']:>5} | {tags_from:<12}"
        )
    return EXIT_OK


def handle_validate(args: argparse.Namespace, config: Config) -> int:
    """Handle the validate command."""
    result = config.validate()

    print(result)

    if args.strict and not result.is_valid:
        return EXIT_ERROR

    return EXIT_OK


def main() -> None:
    args = parse_args(sys.argv[1:])
    try:
        exit_code = asyncio.run(main_async(args))
        sys.exit(exit_code)
    except KeyboardInterrupt:
        print("\nAborted by user")
        sys.exit(EXIT_INTERRUPTED)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(EXIT_ERROR)


if __name__ == "__main__":
    main()
