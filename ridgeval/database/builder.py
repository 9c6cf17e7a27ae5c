"""Reference database construction from a template archive.

The archive/manifest pair is fanned out into one file per identifier under a
sharded directory tree. Large archives are split into contiguous partitions
of the manifest, one per worker thread; every worker opens its own read
handle on the archive and writes to paths no other worker touches, so no
locking is needed beyond collecting the results.
"""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from ridgeval.archive.codec import ArchiveReader, parse_manifest
from ridgeval.archive.sharding import shard_path_for
from ridgeval.errors import BudgetError, HarnessIOError
from ridgeval.types import ManifestEntry, ReturnStatus, TemplateArchive, combine_statuses

LOGGER = logging.getLogger("ridgeval.database.builder")

# Archives smaller than this are written serially in the caller.
SERIAL_THRESHOLD_BYTES = 10_000
# Required headroom over the archive size.
SAFETY_MARGIN = 1.1


def archive_size(archive: TemplateArchive) -> int:
    try:
        return Path(archive.archive_path).stat().st_size
    except OSError as exc:
        raise HarnessIOError(
            f"Could not open TemplateArchive archive {archive.archive_path} ({exc.strerror or exc})"
        ) from exc


def check_budget(archive_bytes: int, max_size: int, margin: float = SAFETY_MARGIN) -> None:
    """Raise BudgetError unless ``max_size`` covers ``margin`` x the archive."""
    if max_size < int(archive_bytes * margin):
        raise BudgetError(archive_bytes, max_size, margin)


def default_worker_count() -> int:
    """Available cores minus one for the orchestrating thread, never below 1."""
    return max(1, (os.cpu_count() or 1) - 1)


def partition_entries(entries: Sequence[ManifestEntry], num_partitions: int) -> List[List[ManifestEntry]]:
    """Split entries into contiguous partitions of near-equal *count*.

    Balancing is by number of entries, not bytes; the last partition takes
    the remainder.
    """
    if num_partitions < 1:
        raise ValueError("num_partitions must be at least 1")
    num_partitions = min(num_partitions, max(1, len(entries)))
    per_partition = len(entries) // num_partitions
    partitions: List[List[ManifestEntry]] = []
    for idx in range(num_partitions):
        start = idx * per_partition
        stop = len(entries) if idx == num_partitions - 1 else start + per_partition
        partitions.append(list(entries[start:stop]))
    return partitions


def write_template(database_dir: Path, identifier: str, data: bytes) -> None:
    """Write one template at its sharded location, creating directories."""
    relative = shard_path_for(identifier)
    destination = database_dir / relative
    directory = destination.parent
    if not directory.is_dir():
        for level in reversed(relative.parents):
            candidate = database_dir / level
            if candidate.exists() and not candidate.is_dir():
                raise HarnessIOError(f"Unexpected file at {candidate}")
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise HarnessIOError(f"Could not create directory {directory} ({exc.strerror or exc})") from exc
    if destination.is_dir():
        raise HarnessIOError(f"Unexpected directory at {destination}")
    try:
        with destination.open("wb") as fh:
            fh.write(data)
    except OSError as exc:
        raise HarnessIOError(
            f"Unable to write to identifier '{identifier}' ({exc.strerror or exc})"
        ) from exc


def write_partition(
    archive_path: Path,
    database_dir: Path,
    entries: Sequence[ManifestEntry],
) -> ReturnStatus:
    """Copy every entry of one partition out of the archive.

    Stops at the first failure and reports it; earlier files stay on disk.
    """
    try:
        with ArchiveReader(archive_path) as reader:
            for entry in entries:
                write_template(database_dir, entry.identifier, reader.read(entry))
    except OSError as exc:
        return ReturnStatus.failure(str(exc))
    return ReturnStatus()


def build_reference_database(
    archive: TemplateArchive,
    database_dir: Path,
    max_size: int,
    num_workers: Optional[int] = None,
    serial_threshold: int = SERIAL_THRESHOLD_BYTES,
    safety_margin: float = SAFETY_MARGIN,
) -> ReturnStatus:
    """Fan the archive out into ``database_dir``.

    Raises BudgetError (before writing anything) when ``max_size`` is too
    small. Per-worker write failures are returned in the composite status;
    nothing already written is rolled back.
    """
    database_dir = Path(database_dir)
    total_bytes = archive_size(archive)
    check_budget(total_bytes, max_size, safety_margin)

    manifest: Dict[str, ManifestEntry] = parse_manifest(archive.manifest_path)
    entries = list(manifest.values())

    if total_bytes < serial_threshold:
        LOGGER.info(
            "Writing %d templates (%d bytes) serially into %s",
            len(entries),
            total_bytes,
            database_dir,
        )
        return write_partition(archive.archive_path, database_dir, entries)

    requested = num_workers if num_workers is not None else default_worker_count()
    partitions = partition_entries(entries, max(1, requested))
    LOGGER.info(
        "Writing %d templates (%d bytes) into %s with %d workers",
        len(entries),
        total_bytes,
        database_dir,
        len(partitions),
    )

    with ThreadPoolExecutor(max_workers=len(partitions), thread_name_prefix="refdb") as pool:
        futures = [
            pool.submit(write_partition, archive.archive_path, database_dir, partition)
            for partition in partitions
        ]
        statuses = [future.result() for future in futures]

    for idx, status in enumerate(statuses, start=1):
        if not status:
            LOGGER.warning("Partition %d/%d failed: %s", idx, len(statuses), status.message)
    return combine_statuses(statuses)
