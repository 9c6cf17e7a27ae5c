"""Template archive codec: one concatenated blob plus a text manifest.

The manifest holds one ``<identifier> <length> <offset>`` line per template,
in insertion order. ``offset`` and ``length`` address the archive in bytes.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import BinaryIO, Dict, Iterable, List, Optional, Tuple

from tqdm import tqdm

from ridgeval.archive.sharding import unsafe_identifier_reason
from ridgeval.errors import HarnessError, HarnessIOError, InvalidArgumentError, ParseError
from ridgeval.types import ManifestEntry, TemplateArchive

LOGGER = logging.getLogger("ridgeval.archive.codec")

ARCHIVE_NAME = "archive"
MANIFEST_NAME = "manifest"


class ArchiveReader:
    """Owns a single read handle on an archive file.

    Handles are never shared: each thread that reads the archive opens its
    own reader.
    """

    def __init__(self, archive_path: Path) -> None:
        self.archive_path = Path(archive_path)
        self._fh: Optional[BinaryIO] = None

    def open(self) -> "ArchiveReader":
        try:
            self._fh = self.archive_path.open("rb")
        except OSError as exc:
            raise HarnessIOError(
                f"Could not open archive {self.archive_path} ({exc.strerror or exc})"
            ) from exc
        return self

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None

    def __enter__(self) -> "ArchiveReader":
        return self.open()

    def __exit__(self, *exc_info) -> None:
        self.close()

    def read_range(self, offset: int, length: int) -> bytes:
        if self._fh is None:
            raise HarnessIOError(f"Archive {self.archive_path} is not open")
        try:
            self._fh.seek(offset)
            data = self._fh.read(length)
        except OSError as exc:
            raise HarnessIOError(
                f"Could not read {length} bytes at offset {offset} from "
                f"{self.archive_path} ({exc.strerror or exc})"
            ) from exc
        if len(data) != length:
            raise HarnessIOError(
                f"Short read from {self.archive_path}: wanted {length} bytes at "
                f"offset {offset}, got {len(data)}"
            )
        return data

    def read(self, entry: ManifestEntry) -> bytes:
        return self.read_range(entry.offset, entry.length)


def read_range(archive_path: Path, offset: int, length: int) -> bytes:
    """Return exactly ``length`` bytes starting at ``offset``."""
    with ArchiveReader(archive_path) as reader:
        return reader.read_range(offset, length)


def parse_manifest_line(line: str, path: Optional[Path] = None, line_number: Optional[int] = None) -> ManifestEntry:
    fields = line.split()
    if len(fields) != 3:
        raise ParseError(
            f"Expected 3 fields (identifier length offset), found {len(fields)}",
            path=path,
            line_number=line_number,
        )
    identifier, length_s, offset_s = fields
    reason = unsafe_identifier_reason(identifier)
    if reason is not None:
        raise ParseError(f"Identifier {identifier!r} {reason}", path=path, line_number=line_number)
    if not (length_s.isdecimal() and offset_s.isdecimal()):
        raise ParseError(
            f"Non-numeric length/offset for {identifier!r}: {length_s!r} {offset_s!r}",
            path=path,
            line_number=line_number,
        )
    return ManifestEntry(identifier=identifier, length=int(length_s), offset=int(offset_s))


def parse_manifest(manifest_path: Path) -> Dict[str, ManifestEntry]:
    """Read a manifest into an identifier-keyed mapping.

    Duplicate identifiers are not rejected: the last line wins (keeping the
    position of the first occurrence).
    """
    manifest_path = Path(manifest_path)
    entries: Dict[str, ManifestEntry] = {}
    try:
        fh = manifest_path.open("r", encoding="utf-8")
    except OSError as exc:
        raise HarnessIOError(
            f"Could not open manifest {manifest_path} ({exc.strerror or exc})"
        ) from exc
    with fh:
        for line_number, line in enumerate(fh, start=1):
            if not line.strip():
                continue
            entry = parse_manifest_line(line, path=manifest_path, line_number=line_number)
            if entry.identifier in entries:
                LOGGER.debug(
                    "Duplicate manifest identifier %s at %s:%d; keeping the later entry",
                    entry.identifier,
                    manifest_path,
                    line_number,
                )
            entries[entry.identifier] = entry
    LOGGER.debug("Parsed manifest %s -> %d entries", manifest_path, len(entries))
    return entries


def _validate_identifier(identifier: str) -> None:
    if not identifier or any(ch.isspace() for ch in identifier) or not identifier.isprintable():
        raise InvalidArgumentError(
            f"Identifier {identifier!r} cannot be stored in a manifest "
            "(must be a printable token without whitespace)"
        )
    reason = unsafe_identifier_reason(identifier)
    if reason is not None:
        raise InvalidArgumentError(f"Identifier {identifier!r} {reason}")


def _remove_partial(*paths: Path) -> None:
    for path in paths:
        try:
            path.unlink()
        except FileNotFoundError:
            continue
        except OSError as exc:
            LOGGER.warning("Could not remove partial %s (%s)", path, exc.strerror or exc)


def pack_templates(
    items: Iterable[Tuple[str, bytes]],
    archive_path: Path,
    manifest_path: Path,
) -> List[ManifestEntry]:
    """Append templates to a new archive and write the manifest indexing them.

    On failure neither file is left behind.
    """
    archive_path = Path(archive_path)
    manifest_path = Path(manifest_path)
    for path in (archive_path, manifest_path):
        if path.exists():
            raise HarnessIOError(f"{path} already exists")

    entries: List[ManifestEntry] = []
    offset = 0
    try:
        with archive_path.open("xb") as archive, manifest_path.open("x", encoding="utf-8") as manifest:
            for identifier, data in items:
                _validate_identifier(identifier)
                archive.write(data)
                entry = ManifestEntry(identifier=identifier, length=len(data), offset=offset)
                manifest.write(entry.to_line())
                entries.append(entry)
                offset += len(data)
    except HarnessError:
        _remove_partial(archive_path, manifest_path)
        raise
    except OSError as exc:
        _remove_partial(archive_path, manifest_path)
        raise HarnessIOError(
            f"Could not write template archive {archive_path} ({exc.strerror or exc})"
        ) from exc
    LOGGER.info("Packed %d templates (%d bytes) into %s", len(entries), offset, archive_path)
    return entries


def iter_template_files(template_dir: Path, suffix: str) -> Iterable[Path]:
    """Yield regular template files under ``template_dir`` in sorted order."""
    return sorted(p for p in Path(template_dir).rglob(f"*{suffix}") if p.is_file())


def write_template_archive(template_dir: Path, suffix: str) -> TemplateArchive:
    """Pack every ``*<suffix>`` file under ``template_dir`` into an archive pair.

    The identifier recorded for each template is the file stem.
    """
    template_dir = Path(template_dir)
    archive = TemplateArchive(
        archive_path=template_dir / ARCHIVE_NAME,
        manifest_path=template_dir / MANIFEST_NAME,
    )
    paths = list(iter_template_files(template_dir, suffix))

    def _items() -> Iterable[Tuple[str, bytes]]:
        for path in tqdm(paths, desc="archive", unit="tmpl", disable=None, leave=False):
            try:
                data = path.read_bytes()
            except OSError as exc:
                raise HarnessIOError(f"Could not read {path} ({exc.strerror or exc})") from exc
            yield path.name[: -len(suffix)], data

    pack_templates(_items(), archive.archive_path, archive.manifest_path)
    return archive
