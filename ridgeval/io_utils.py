"""I/O helpers shared across CLI entrypoints and harness modules."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict

import yaml

from ridgeval.errors import HarnessIOError, ParseError

LOGGER = logging.getLogger("ridgeval.io")


def ensure_dir(path: Path) -> Path:
    """Create directory (and parents), raising HarnessIOError on failure."""
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise HarnessIOError(f"Could not create directory {path} ({exc.strerror or exc})") from exc
    return path


def load_yaml(path: Path) -> Dict[str, Any]:
    """Load YAML file and return a dictionary."""
    try:
        with path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
    except yaml.YAMLError as exc:
        raise ParseError(f"Invalid YAML ({exc})", path=path) from exc
    if not isinstance(data, dict):
        raise ParseError("Expected a mapping at the top level", path=path)
    LOGGER.debug("Loaded YAML config %s -> keys=%s", path, list(data.keys()))
    return data


def read_file(path: Path) -> bytes:
    """Read a whole file, raising HarnessIOError on failure."""
    try:
        return path.read_bytes()
    except OSError as exc:
        raise HarnessIOError(f"Could not open {path} ({exc.strerror or exc})") from exc


def write_file(data: bytes, path: Path) -> None:
    """Write (truncating) a whole file, raising HarnessIOError on failure."""
    try:
        with path.open("wb") as fh:
            fh.write(data)
    except OSError as exc:
        raise HarnessIOError(
            f"Could not write {len(data)} bytes to {path} ({exc.strerror or exc})"
        ) from exc


def setup_logging(level: int = logging.INFO) -> None:
    """Configure application logging if not already configured."""
    if logging.getLogger().handlers:
        logging.getLogger().setLevel(level)
        return
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )

