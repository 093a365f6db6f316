"""CLI: reproduce un archivo JSONL de visitas a través del coordinator.

Uso:
    python -m footprint_core.cli replay visits.jsonl --days 7 --top-k 10 --evaluate
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime
from typing import List, Optional

import orjson

from footprint_common.clock import ManualClock, as_utc
from footprint_common.config import get_settings

from .alerts import AlertRules
from .coordinator import IngestionCoordinator
from .persistence import JsonLinesSink

logger = logging.getLogger(__name__)


def _parse_now(value: str) -> datetime:
    return as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="CO2 footprint tools (replay + aggregates)")
    sub = p.add_subparsers(dest="command", required=True)

    replay = sub.add_parser("replay", help="replay a JSONL visit log and print aggregates")
    replay.add_argument("path", help="JSON-lines file, one visit per line")
    replay.add_argument("--capacity", type=int, default=None, help="override event log capacity")
    replay.add_argument("--days", type=int, default=7)
    replay.add_argument("--top-k", type=int, default=10)
    replay.add_argument("--order-by", choices=["bytes", "co2", "visits"], default="bytes")
    replay.add_argument("--now", type=_parse_now, default=None,
                        help="ISO instant used as 'now' (default: latest record timestamp)")
    replay.add_argument("--evaluate", action="store_true",
                        help="report CO2 window sums per origin against the alert threshold")
    return p


def run_replay(args: argparse.Namespace) -> dict:
    settings = get_settings()
    if args.capacity is not None:
        settings = settings.with_overrides(log_capacity=args.capacity)

    sink = JsonLinesSink(args.path)
    clock = ManualClock(args.now) if args.now else ManualClock()

    with IngestionCoordinator(settings, clock=clock) as coordinator:
        loaded = coordinator.bulk_load(sink.load())
        records = coordinator.log_snapshot()

        if args.now is None and records:
            clock.set(max(r.timestamp for r in records))
        now = clock.now()

        summary = {
            "now": now.isoformat(),
            "loaded": {
                "accepted": loaded.accepted,
                "duplicates": loaded.duplicates,
                "invalid": loaded.invalid,
                "evicted": loaded.evicted,
            },
            "totals": coordinator.totals().to_dict(),
            "by_day": [d.to_dict() for d in coordinator.by_day_snapshot(args.days)],
            "top_origins": [o.to_dict() for o in coordinator.by_origin_snapshot(args.top_k, args.order_by)],
        }

        if args.evaluate:
            start, end = AlertRules.window_bounds(now, settings)
            windows = []
            for origin in sorted({r.origin for r in records}):
                window_sum = coordinator.window_sum(origin, start, end)
                windows.append({
                    "origin": origin,
                    "window_sum_g": window_sum,
                    "over_threshold": AlertRules.exceeds_threshold(window_sum, settings),
                })
            summary["windows"] = {
                "window_minutes": settings.window_minutes,
                "threshold_g": settings.co2_threshold_g,
                "origins": windows,
            }

    logger.info(
        "Replay completado: accepted=%d duplicates=%d invalid=%d",
        loaded.accepted, loaded.duplicates, loaded.invalid,
    )
    return summary


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )

    args = build_parser().parse_args(argv)

    if args.command == "replay":
        try:
            summary = run_replay(args)
        except (OSError, ValueError) as e:
            logger.error("Error en replay: %s", e)
            return 1
        sys.stdout.write(orjson.dumps(summary, option=orjson.OPT_INDENT_2).decode() + "\n")
        return 0

    return 2


if __name__ == "__main__":
    sys.exit(main())
