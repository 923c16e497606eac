"""
Command-line interface for the batch cache.

Provides commands for fetching identifiers through an HTTP resolver
and for watching the batching behaviour on a simulated list.
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Dict, List

import structlog

from batchcache import __version__
from batchcache.config import BatcherConfig, set_config
from batchcache.core.batch import Batch
from batchcache.core.batcher import Batcher, FetchTimeout
from batchcache.resolver.http import HttpResolver
from batchcache.resolver.interface import ResolverFailure


def setup_logging(level: str = "INFO", json_format: bool = False) -> None:
    """Configure structured logging."""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if json_format
            else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper()),
        stream=sys.stderr,
    )


def parse_universe(spec: str) -> List[int]:
    """
    Parse a universe description such as ``1-20,40,45-50``.

    Raises:
        argparse.ArgumentTypeError: If a part is not an integer or range
    """
    ids: List[int] = []
    for part in spec.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            if "-" in part[1:]:
                split_at = part.index("-", 1)
                start, end = int(part[:split_at]), int(part[split_at + 1:])
                step = 1 if end >= start else -1
                ids.extend(range(start, end + step, step))
            else:
                ids.append(int(part))
        except ValueError:
            raise argparse.ArgumentTypeError(f"Invalid universe part: {part!r}")
    return ids


def add_logging_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Logging level (default: WARNING)",
    )
    parser.add_argument(
        "--log-json",
        action="store_true",
        help="Output logs in JSON format",
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="batch-cache",
        description="Request-batching cache for ordered identifier lists",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Fetch command
    fetch_parser = subparsers.add_parser("fetch", help="Fetch identifiers through an HTTP resolver")
    fetch_parser.add_argument(
        "ids",
        nargs="+",
        type=int,
        help="Identifiers to fetch",
    )
    fetch_parser.add_argument(
        "--url",
        required=True,
        help="Base URL of the batch lookup endpoint",
    )
    fetch_parser.add_argument(
        "--path",
        default="",
        help="Path appended to the base URL",
    )
    fetch_parser.add_argument(
        "--ids-param",
        default="ids",
        help="Query parameter carrying the identifiers (default: ids)",
    )
    fetch_parser.add_argument(
        "--universe",
        type=parse_universe,
        default=[],
        help="Ordered identifiers used for batching, e.g. 1-100,200-250",
    )
    fetch_parser.add_argument(
        "--window",
        type=int,
        default=10,
        help="Batch window size (default: 10)",
    )
    fetch_parser.add_argument(
        "--timeout",
        type=float,
        default=30.0,
        help="Seconds to wait for each identifier (default: 30)",
    )
    add_logging_arguments(fetch_parser)

    # Demo command
    demo_parser = subparsers.add_parser("demo", help="Scroll through a simulated list")
    demo_parser.add_argument(
        "--rows",
        type=int,
        default=35,
        help="Number of rows in the simulated list (default: 35)",
    )
    demo_parser.add_argument(
        "--latency",
        type=float,
        default=0.2,
        help="Simulated resolver latency in seconds (default: 0.2)",
    )
    demo_parser.add_argument(
        "--window",
        type=int,
        default=10,
        help="Batch window size (default: 10)",
    )
    add_logging_arguments(demo_parser)

    return parser


async def fetch_ids(args: argparse.Namespace) -> int:
    """Fetch identifiers and print them as a JSON object."""
    config = BatcherConfig(
        window_size=args.window,
        resolver_url=args.url,
        resolver_path=args.path,
        resolver_ids_param=args.ids_param,
        log_level=args.log_level,
        log_json=args.log_json,
    )
    set_config(config)

    async with HttpResolver(config) as resolver:
        batcher = Batcher(resolver, config=config)
        batcher.set_universe(args.universe)

        try:
            values = await batcher.get_many(args.ids, timeout=args.timeout)
        except ResolverFailure as e:
            print(f"Fetch failed: {e}", file=sys.stderr)
            return 1
        except FetchTimeout as e:
            print(f"Fetch timed out: {e}", file=sys.stderr)
            return 1
        finally:
            await batcher.wait_idle()

    output: Dict[str, Any] = {str(i): v for i, v in zip(args.ids, values)}
    print(json.dumps(output, indent=2))
    return 0


async def run_demo(args: argparse.Namespace) -> int:
    """Simulate a list view requesting rows as it scrolls."""
    row_ids = [1000 + i for i in range(args.rows)]

    async def resolve(batch: List[int]) -> Dict[int, str]:
        await asyncio.sleep(args.latency)
        return {i: f"row {i - 1000}" for i in batch}

    batcher = Batcher(resolve, config=BatcherConfig(window_size=args.window))
    batcher.set_universe(row_ids)

    def show_batch(batch: Batch) -> None:
        print(f"  -> resolver called with {batch.size} ids: {batch.identifiers}")

    batcher.on_batch_dispatched(show_batch)

    print(f"Batch Cache v{__version__} demo: {args.rows} rows, window {args.window}")
    print()

    for row_id in row_ids:
        batcher.fetch(row_id, lambda value, row_id=row_id: print(f"  {row_id}: {value}"))
        await asyncio.sleep(args.latency / 4)

    await batcher.wait_idle()

    print()
    print("Scrolling back to the top (served from cache):")
    for row_id in row_ids[:3]:
        batcher.fetch(row_id, lambda value, row_id=row_id: print(f"  {row_id}: {value}"))

    print()
    print(json.dumps(batcher.get_stats(), indent=2))
    return 0


def main() -> None:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    # Setup logging
    log_level = getattr(args, "log_level", "WARNING")
    log_json = getattr(args, "log_json", False)
    setup_logging(log_level, log_json)

    # Run appropriate command
    if args.command == "fetch":
        sys.exit(asyncio.run(fetch_ids(args)))
    elif args.command == "demo":
        sys.exit(asyncio.run(run_demo(args)))


if __name__ == "__main__":
    main()
