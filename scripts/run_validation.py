#!/usr/bin/env python3
"""CLI for running the extraction/search validation harness."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from ridgeval.errors import HarnessError
from ridgeval.harness.dispatch import dispatch_operation
from ridgeval.harness.settings import DEFAULT_HARNESS_CONFIG, Operation, resolve_settings
from ridgeval.io_utils import load_yaml, setup_logging


LOGGER = logging.getLogger("scripts.run_validation")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Validate an extraction/search implementation")
    parser.add_argument(
        "operation",
        choices=[op.value for op in Operation],
        help="Operation to run",
    )
    parser.add_argument(
        "-z",
        "--config-dir",
        type=Path,
        default=None,
        help="Implementation configuration directory",
    )
    parser.add_argument(
        "-d",
        "--db-dir",
        type=Path,
        default=None,
        help="Reference database directory (build-database, search, identify-search)",
    )
    parser.add_argument(
        "-o",
        "--output-dir",
        type=Path,
        default=None,
        help="Directory for templates and result logs",
    )
    parser.add_argument(
        "-a",
        "--image-dir",
        type=Path,
        default=None,
        help="Directory holding dataset.yaml and the images it names",
    )
    parser.add_argument(
        "-e",
        "--type",
        dest="template_type",
        choices=["probe", "reference"],
        default=None,
        help="Template type to extract",
    )
    parser.add_argument(
        "-f",
        "--num-procs",
        type=int,
        default=None,
        help="Number of worker processes",
    )
    parser.add_argument(
        "-r",
        "--seed",
        dest="random_seed",
        type=int,
        default=None,
        help="Seed for shuffling the work items",
    )
    parser.add_argument(
        "-m",
        "--maximum",
        type=int,
        default=None,
        help="Database size budget in bytes (build-database) or max candidates (search)",
    )
    parser.add_argument(
        "--harness-config",
        type=Path,
        default=DEFAULT_HARNESS_CONFIG,
        help="Harness defaults YAML",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    return parser.parse_args(argv)


def _overrides(args: argparse.Namespace) -> Dict[str, Any]:
    keys = (
        "config_dir",
        "db_dir",
        "output_dir",
        "image_dir",
        "template_type",
        "num_procs",
        "random_seed",
        "maximum",
    )
    return {key: getattr(args, key) for key in keys}


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)

    try:
        cfg = load_yaml(args.harness_config) if args.harness_config.exists() else {}
        settings = resolve_settings(args.operation, cfg, _overrides(args))
    except HarnessError as exc:
        LOGGER.error("%s: %s", args.operation, exc)
        return 1

    return dispatch_operation(settings)


if __name__ == "__main__":
    raise SystemExit(main())
