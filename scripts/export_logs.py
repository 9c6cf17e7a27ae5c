#!/usr/bin/env python3
"""CLI for concatenating per-worker result logs into one CSV."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

from ridgeval.results.collect import load_result_logs
from ridgeval.results.logs import LogKind
from ridgeval.io_utils import setup_logging


LOGGER = logging.getLogger("scripts.export_logs")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Merge per-worker result logs")
    parser.add_argument("output_dir", type=Path, help="Harness output directory")
    parser.add_argument(
        "--kind",
        choices=[kind.value for kind in LogKind],
        default=LogKind.SEARCH_CANDIDATES.value,
        help="Which log family to merge",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Optional output CSV path (defaults to <output_dir>/<kind>.csv)",
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    setup_logging()

    kind = LogKind(args.kind)
    df = load_result_logs(args.output_dir, kind)
    output_path = args.output or args.output_dir / f"{kind.value}.csv"
    df.to_csv(output_path, index=False)
    LOGGER.info("Exported %d rows to %s", len(df), output_path)


if __name__ == "__main__":
    main()
