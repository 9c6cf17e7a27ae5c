"""Harness settings resolved from ``configs/harness.yaml`` plus CLI overrides."""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from ridgeval.errors import InvalidArgumentError
from ridgeval.types import TemplateType

LOGGER = logging.getLogger("ridgeval.harness.settings")

DEFAULT_HARNESS_CONFIG = Path("configs/harness.yaml")
DEFAULT_MAX_SIZE = 100_000_000
DEFAULT_MAX_CANDIDATES = 100
MAX_CANDIDATES_LIMIT = 65535


class Operation(str, Enum):
    IDENTIFY = "identify"
    IDENTIFY_SEARCH = "identify-search"
    EXTRACT = "extract"
    BUILD_DATABASE = "build-database"
    SEARCH = "search"


NEEDS_DATABASE = {Operation.IDENTIFY_SEARCH, Operation.BUILD_DATABASE, Operation.SEARCH}

# harness.yaml key that supplies `maximum` for each operation.
MAXIMUM_CONFIG_KEYS = {
    Operation.SEARCH: "max_candidates",
    Operation.BUILD_DATABASE: "max_database_size",
}


@dataclass
class HarnessSettings:
    operation: Operation
    config_dir: Path
    db_dir: Optional[Path] = None
    output_dir: Path = Path("output")
    image_dir: Path = Path("images")
    template_type: Optional[TemplateType] = None
    num_procs: int = 1
    random_seed: int = 0
    maximum: Optional[int] = None

    def validate(self) -> "HarnessSettings":
        """Check required paths and numeric ranges; fill per-operation defaults."""
        if not self.config_dir.is_dir():
            raise InvalidArgumentError(f"Configuration directory {self.config_dir} does not exist")
        if self.operation in NEEDS_DATABASE and self.db_dir is None:
            raise InvalidArgumentError(f"{self.operation.value} requires a database directory")
        if self.operation in (Operation.IDENTIFY_SEARCH, Operation.SEARCH) and not self.db_dir.is_dir():
            raise InvalidArgumentError(f"Database directory {self.db_dir} does not exist")
        if self.operation == Operation.EXTRACT and self.template_type is None:
            raise InvalidArgumentError("extract requires a template type (probe or reference)")
        if self.num_procs < 1:
            raise InvalidArgumentError(f"Number of processes must be at least 1 ({self.num_procs})")
        if self.random_seed < 0:
            raise InvalidArgumentError(f"Random seed must not be negative ({self.random_seed})")

        if self.operation == Operation.SEARCH:
            if self.maximum is None:
                self.maximum = DEFAULT_MAX_CANDIDATES
            if not 1 <= self.maximum <= MAX_CANDIDATES_LIMIT:
                raise InvalidArgumentError(
                    f"Maximum candidates must be between 1 and {MAX_CANDIDATES_LIMIT} ({self.maximum})"
                )
        elif self.operation == Operation.BUILD_DATABASE:
            if self.maximum is None:
                self.maximum = DEFAULT_MAX_SIZE
            if self.maximum < 0:
                raise InvalidArgumentError(f"Maximum database size must not be negative ({self.maximum})")
        return self


def _pick(overrides: Dict[str, Any], cfg: Dict[str, Any], key: str, default: Any = None) -> Any:
    value = overrides.get(key)
    if value is not None:
        return value
    value = cfg.get(key)
    return default if value is None else value


def _as_int(value: Any, name: str) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidArgumentError(f"{name} must be an integer ({value!r})") from exc


def resolve_settings(
    operation: str,
    cfg: Dict[str, Any],
    overrides: Dict[str, Any],
) -> HarnessSettings:
    """Build validated settings; CLI ``overrides`` win over harness ``cfg``."""
    try:
        op = Operation(operation)
    except ValueError as exc:
        raise InvalidArgumentError(f"Unknown operation {operation!r}") from exc

    config_dir = _pick(overrides, cfg, "config_dir")
    if config_dir is None:
        raise InvalidArgumentError("A configuration directory is required")
    db_dir = _pick(overrides, cfg, "db_dir")

    template_type = _pick(overrides, cfg, "template_type")
    if template_type is not None and not isinstance(template_type, TemplateType):
        try:
            template_type = TemplateType.parse(str(template_type))
        except ValueError as exc:
            raise InvalidArgumentError(str(exc)) from exc

    maximum = overrides.get("maximum")
    if maximum is None and op in MAXIMUM_CONFIG_KEYS:
        maximum = cfg.get(MAXIMUM_CONFIG_KEYS[op])

    seed = _as_int(_pick(overrides, cfg, "random_seed"), "random_seed")
    if seed is None:
        seed = secrets.randbits(64)
        LOGGER.info("No random seed given; using %d", seed)

    settings = HarnessSettings(
        operation=op,
        config_dir=Path(config_dir),
        db_dir=Path(db_dir) if db_dir is not None else None,
        output_dir=Path(_pick(overrides, cfg, "output_dir", "output")),
        image_dir=Path(_pick(overrides, cfg, "image_dir", "images")),
        template_type=template_type,
        num_procs=_as_int(_pick(overrides, cfg, "num_procs", 1), "num_procs"),
        random_seed=seed,
        maximum=_as_int(maximum, "maximum"),
    )
    return settings.validate()
