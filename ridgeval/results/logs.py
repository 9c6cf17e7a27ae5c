"""CSV result logs with a fixed header per operation and an ``NA`` sentinel.

Every row has exactly as many fields as its header. Values that were not
produced are written as ``NA``. Free text is sanitized so that a row always
stays on one line.
"""

from __future__ import annotations

import logging
import os
from enum import Enum, IntEnum
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, TextIO

from ridgeval.errors import HarnessIOError
from ridgeval.types import Coordinate, Core, Delta, Minutia, TemplateType

LOGGER = logging.getLogger("ridgeval.results.logs")

NA = "NA"


class LogKind(Enum):
    CREATE = "extractionCreate"
    EXTRACT_DATA = "extractionData"
    SEARCH_CANDIDATES = "searchCandidates"
    CORRESPONDENCE = "correspondence"
    CREATE_REFERENCE_DATABASE = "createReferenceDatabase"


LOG_COLUMNS = {
    LogKind.CREATE: [
        '"identifier"', "elapsed", "result", '"message"', "type", "num_images", "size",
    ],
    LogKind.EXTRACT_DATA: [
        '"template_filename"', "elapsed", "type", "index", "num_templates_in_buffer",
        "image_identifier", "quality", "imp", "frct", "frgp", "orientation", "lpm",
        "value_assessment", "lsb", "pat", "plr", "trv", '"cores"', '"deltas"',
        '"minutia"', '"roi"',
    ],
    LogKind.SEARCH_CANDIDATES: [
        '"identifier"', "max_candidates", "elapsed", "result", '"message"', "decision",
        "num_candidates", "rank", '"candidate_identifier"', "candidate_frgp",
        "candidate_similarity",
    ],
    LogKind.CORRESPONDENCE: [
        '"probe_identifier"', "num_candidates", "elapsed", "rank", "correspondence_index",
        '"ref_id"', "ref_input_id", "ref_x", "ref_y", "ref_theta", "ref_type",
        "probe_input_id", "probe_x", "probe_y", "probe_theta", "probe_type",
    ],
    LogKind.CREATE_REFERENCE_DATABASE: ["elapsed", "result", '"message"', "max_size"],
}


class Quoted(str):
    """A value written inside double quotes (embedded quotes escaped)."""


def sanitize_message(message: Optional[str], escape_quotes: bool = True, wrap_in_quotes: bool = True) -> str:
    """Make free text safe for a single quoted CSV column.

    Characters outside printable ASCII (and space) become a single space.
    Backslashes and double quotes are escaped with a backslash.
    """
    if not message:
        return '""' if wrap_in_quotes else ""
    sanitized = "".join(ch if (" " <= ch <= "~") else " " for ch in message)
    if escape_quotes:
        sanitized = sanitized.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{sanitized}"' if wrap_in_quotes else sanitized


def format_value(value) -> str:
    """Serialize one field."""
    if value is None:
        return NA
    if isinstance(value, Quoted):
        return sanitize_message(str(value)) if value else '""'
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, IntEnum):
        return str(int(value))
    if isinstance(value, float):
        return f"{value:f}"
    return str(value)


def na_fields(count: int) -> List[None]:
    return [None] * count


def log_path(
    output_dir: Path,
    kind: LogKind,
    template_type: Optional[TemplateType] = None,
    pid: Optional[int] = None,
) -> Path:
    """Per-process log file name for ``kind``."""
    if kind is LogKind.CREATE_REFERENCE_DATABASE:
        return Path(output_dir) / f"{kind.value}.log"
    pid = os.getpid() if pid is None else pid
    if kind in (LogKind.CREATE, LogKind.EXTRACT_DATA):
        if template_type is None:
            raise ValueError(f"{kind.value} logs are named per template type")
        return Path(output_dir) / f"{kind.value}-{int(template_type)}-{pid}.log"
    return Path(output_dir) / f"{kind.value}-{pid}.log"


class ResultLog:
    """Append-only writer for one log file."""

    def __init__(self, path: Path, columns: Sequence[str]) -> None:
        self.path = Path(path)
        self.columns = list(columns)
        self._fh: Optional[TextIO] = None

    @classmethod
    def for_kind(cls, output_dir: Path, kind: LogKind, template_type: Optional[TemplateType] = None) -> "ResultLog":
        return cls(log_path(output_dir, kind, template_type), LOG_COLUMNS[kind])

    def open(self) -> "ResultLog":
        try:
            self._fh = self.path.open("w", encoding="ascii", newline="")
            self._fh.write(",".join(self.columns) + "\n")
            self._fh.flush()
        except OSError as exc:
            raise HarnessIOError(f"{os.getpid()}: Error creating log file {self.path} ({exc})") from exc
        LOGGER.debug("Opened result log %s", self.path)
        return self

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None

    def __enter__(self) -> "ResultLog":
        return self.open()

    def __exit__(self, *exc_info) -> None:
        self.close()

    def write_row(self, values: Sequence) -> None:
        if len(values) != len(self.columns):
            raise ValueError(
                f"Row has {len(values)} fields but {self.path.name} has {len(self.columns)} columns"
            )
        if self._fh is None:
            raise HarnessIOError(f"Log {self.path} is not open")
        try:
            self._fh.write(",".join(format_value(v) for v in values) + "\n")
            self._fh.flush()
        except OSError as exc:
            raise HarnessIOError(f"{os.getpid()}: Error writing to log {self.path} ({exc})") from exc

    def write_rows(self, rows: Iterable[Sequence]) -> None:
        for row in rows:
            self.write_row(row)


def _opt(value: Optional[int]) -> str:
    return NA if value is None else str(value)


def splice_coordinates(coordinates: Sequence[Coordinate], sep: str = "|") -> str:
    return sep.join(f"{c.x};{c.y}" for c in coordinates)


def splice_minutiae(minutiae: Sequence[Minutia], sep: str = "|") -> str:
    return sep.join(
        f"{m.coordinate.x};{m.coordinate.y};{m.theta};{int(m.type)}" for m in minutiae
    )


def splice_cores(cores: Sequence[Core], sep: str = "|") -> str:
    return sep.join(f"{c.coordinate.x};{c.coordinate.y};{_opt(c.direction)}" for c in cores)


def splice_deltas(deltas: Sequence[Delta], sep: str = "|") -> str:
    parts = []
    for d in deltas:
        item = f"{d.coordinate.x};{d.coordinate.y};"
        if d.direction is not None:
            item += "".join(f"{_opt(v)};" for v in d.direction)
        parts.append(item)
    return sep.join(parts)


def splice_values(values: Sequence[int], sep: str = "|") -> str:
    return sep.join(str(int(v)) for v in values)
