#!/usr/bin/env python3
import argparse
import logging
import sys
import time
from typing import Optional, Sequence

from ..config import CANDIDATE_DELAY, DEFAULT_RADIUS, MAX_CANDIDATES, OVERRIDES_PATH, get_config
from ..utils.http import HttpClient
from ..utils.logger import logger, setup_logger
from .errors import ErrorKind
from .menu import ContentVerifier, default_override_table, load_override_table
from .models import SearchOutcome
from .search import ChilitoSearch

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_USAGE = 2
EXIT_CANCELLED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chilito",
        description="Find the nearest Taco Bell that serves the Chili Cheese Burrito."
    )
    parser.add_argument("--address", default="", help="Address (or \"lat,lng\") to search from (required)")
    parser.add_argument("--radius", type=int, default=DEFAULT_RADIUS,
                        help=f"Search radius in meters (default {DEFAULT_RADIUS})")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose output")
    parser.add_argument("--delay", type=float, default=CANDIDATE_DELAY,
                        help="Delay between stores in seconds (for debugging)")
    parser.add_argument("--timeout", type=float, default=None,
                        help="Give up after this many seconds")
    parser.add_argument("--max-candidates", type=int, default=MAX_CANDIDATES,
                        help=f"How many of the closest stores to check (default {MAX_CANDIDATES})")
    parser.add_argument("--overrides", default=OVERRIDES_PATH,
                        help="JSON file of stores known to carry the Chilito")
    return parser


def exit_code(outcome: SearchOutcome) -> int:
    if outcome.error_kind in (ErrorKind.GEOCODE, ErrorKind.LOCATE):
        return EXIT_FATAL
    if outcome.error_kind is ErrorKind.CANCELLED:
        return EXIT_CANCELLED
    return EXIT_OK


def report(outcome: SearchOutcome, duration: float, out=sys.stdout) -> None:
    print(f"\nSearch completed in {duration:.0f}s", file=out)

    if outcome.error_kind is not None:
        print(f"\nError finding Chilito burrito: {outcome.message}", file=out)
        return

    if outcome.found and outcome.location is not None:
        location = outcome.location
        print(f"\nSUCCESS! Found Chilito Burrito at: {location.display_name}", file=out)
        print(f"Address: {location.address}", file=out)
        print(f"Distance: {location.distance_km:.2f} km", file=out)
        print(f"Phone: {location.phone or 'unavailable'}", file=out)
        return

    print("\nNo Taco Bell locations with Chilito Burrito found within the search radius.", file=out)
    print("Try increasing the search radius or using a different starting address.", file=out)
    for attempt in outcome.attempts:
        print(f"  - {attempt.record.display_name} ({attempt.record.distance_km:.2f} km): {attempt.result.value}", file=out)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Command-line entry point.

    Exit codes:
        0   found, or a normal "not found"
        1   geocoding or store discovery failed
        2   no address given / bad arguments
        130 cancelled or timed out
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.address:
        parser.print_usage(sys.stderr)
        return EXIT_USAGE

    setup_logger(level=logging.DEBUG if args.verbose else logging.WARNING)
    logger.debug("Configuration", extra={"config": get_config()})

    try:
        overrides = load_override_table(args.overrides) if args.overrides else default_override_table()
    except (OSError, ValueError) as e:
        print(f"Could not load overrides from {args.overrides}: {e}", file=sys.stderr)
        return EXIT_USAGE
    logger.debug("Override table loaded", extra={
        "operation": "config",
        "overrides_version": overrides.version,
        "overrides_count": len(overrides)
    })

    http = HttpClient()
    finder = ChilitoSearch(
        http=http,
        verifier=ContentVerifier(http=http, overrides=overrides),
        max_candidates=args.max_candidates,
        candidate_delay=args.delay,
    )

    print(f"Searching for Chili Cheese Burrito near: {args.address} (within {args.radius} meters)")
    start_time = time.time()
    try:
        outcome = finder.search(args.address, args.radius, timeout=args.timeout)
    finally:
        http.close()

    report(outcome, time.time() - start_time)
    return exit_code(outcome)


if __name__ == "__main__":
    sys.exit(main())
