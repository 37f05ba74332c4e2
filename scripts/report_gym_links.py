#!/usr/bin/env python3
"""
Report how many source gyms are linked to a master gym, per org.

Usage:
    python scripts/report_gym_links.py
    python scripts/report_gym_links.py --us-only
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from gymlink.db.session import get_session
from gymlink.db.store import SourceGymStore
from gymlink.gyms.candidates import CANDIDATE_COUNTRY_CODE, CANDIDATE_COUNTRY_NAME
from gymlink.types import Org


def format_report(counts: dict[Org, dict[str, int]], us_only: bool = False) -> str:
    scope = f" ({CANDIDATE_COUNTRY_CODE} only)" if us_only else ""
    lines = [f"Gym link coverage{scope}:"]
    for org, c in counts.items():
        pct = (100.0 * c["linked"] / c["total"]) if c["total"] else 0.0
        lines.append(
            f"  {org.value:<6} total={c['total']:<6} linked={c['linked']:<6} "
            f"unlinked={c['unlinked']:<6} ({pct:.1f}% linked)"
        )
    return "\n".join(lines)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Report master gym link coverage per org")
    parser.add_argument(
        "--us-only",
        action="store_true",
        help="Only count gyms in the matching country filter",
    )
    args = parser.parse_args(argv)

    with get_session() as session:
        store = SourceGymStore(session)
        counts = {}
        for org in Org:
            if args.us_only:
                counts[org] = store.link_counts(
                    org,
                    country_code=CANDIDATE_COUNTRY_CODE,
                    country_name=CANDIDATE_COUNTRY_NAME,
                )
            else:
                counts[org] = store.link_counts(org)

    print(format_report(counts, us_only=args.us_only))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
