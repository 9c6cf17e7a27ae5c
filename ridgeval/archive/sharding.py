"""Deterministic identifier -> nested directory mapping.

Millions of files in one directory make every lookup slow, so identifiers
longer than eight characters are spread over four levels named after their
first eight characters, two at a time.
"""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import List, Optional

from ridgeval.errors import InvalidArgumentError

CHARACTERS_TO_CONSIDER = 8
SEGMENT_WIDTH = 2
FORBIDDEN_CHARACTERS = ("/", "\\", "\0")


def _segments(identifier: str) -> List[str]:
    if len(identifier) <= CHARACTERS_TO_CONSIDER:
        return []
    return [
        identifier[start : start + SEGMENT_WIDTH]
        for start in range(0, CHARACTERS_TO_CONSIDER, SEGMENT_WIDTH)
    ]


def unsafe_identifier_reason(identifier: str) -> Optional[str]:
    """Why ``identifier`` cannot name a file under a database, or None."""
    if not identifier:
        return "is empty"
    for ch in FORBIDDEN_CHARACTERS:
        if ch in identifier:
            return f"contains {ch!r}"
    if any(part in (".", "..") for part in _segments(identifier) + [identifier]):
        return "maps to a '.' or '..' path segment"
    return None


def shard_directory_for(identifier: str) -> PurePosixPath:
    """Directory (relative) that holds ``identifier``; empty for short ids."""
    return PurePosixPath(*_segments(identifier))


def shard_path_for(identifier: str) -> PurePosixPath:
    """Relative path of the file storing ``identifier``.

    Raises InvalidArgumentError for identifiers that would leave the
    database directory.

    >>> str(shard_path_for("AAAAAAAA01"))
    'AA/AA/AA/AA/AAAAAAAA01'
    >>> str(shard_path_for("short"))
    'short'
    """
    reason = unsafe_identifier_reason(identifier)
    if reason is not None:
        raise InvalidArgumentError(f"Identifier {identifier!r} {reason}")
    return shard_directory_for(identifier) / identifier
