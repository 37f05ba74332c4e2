#!/usr/bin/env python3
"""
Run the gym matching pass.

Scores every unlinked JJWL gym against the US IBJJF gym pool, auto-links
confident matches and queues review-band pairs for an admin.

Usage:
    python scripts/run_gym_matching.py
    python scripts/run_gym_matching.py --dry-run --limit 50

Ctrl+C (or SIGTERM) stops the pass after the gym currently being processed.
Exits with status 1 if any gym failed.
"""

from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from gymlink.config import settings
from gymlink.db.session import get_session
from gymlink.gyms.matching import run_matching_pass

logger = logging.getLogger(__name__)


class StopFlag:
    """Set by SIGINT/SIGTERM, polled by the matching pass between gyms."""

    def __init__(self) -> None:
        self.requested = False

    def request(self, signum, frame) -> None:
        if not self.requested:
            logger.warning("Received signal %d, stopping after current gym...", signum)
        self.requested = True

    def __call__(self) -> bool:
        return self.requested


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Match JJWL gyms against IBJJF gyms.")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Score and classify without linking or queueing anything",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Only process the first N unlinked incoming gyms",
    )
    parser.add_argument(
        "--page-size",
        type=int,
        default=None,
        help=f"Rows per storage page (default: {settings.storage_page_size})",
    )
    parser.add_argument(
        "--stats-json",
        default=None,
        help="Write the pass statistics as JSON to this path",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )

    stop = StopFlag()
    signal.signal(signal.SIGINT, stop.request)
    signal.signal(signal.SIGTERM, stop.request)

    with get_session() as session:
        stats = run_matching_pass(
            session,
            dry_run=args.dry_run,
            should_stop=stop,
            page_size=args.page_size,
            limit=args.limit,
        )

    if args.stats_json:
        path = Path(args.stats_json)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(stats.to_dict(), indent=2) + "\n", encoding="utf-8")

    print(stats.summary())
    return 1 if stats.errors else 0


if __name__ == "__main__":
    raise SystemExit(main())
