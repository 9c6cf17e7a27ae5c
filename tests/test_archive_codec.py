import pytest

from ridgeval.archive.codec import (
    ArchiveReader,
    pack_templates,
    parse_manifest,
    parse_manifest_line,
    read_range,
    write_template_archive,
)
from ridgeval.errors import HarnessIOError, InvalidArgumentError, ParseError
from ridgeval.types import ManifestEntry


def test_pack_then_read_back_every_entry(tmp_path):
    templates = {"A1": b"alpha", "B22": b"", "C333": bytes(range(256))}
    archive = tmp_path / "archive"
    manifest = tmp_path / "manifest"

    entries = pack_templates(templates.items(), archive, manifest)

    assert [e.offset for e in entries] == [0, 5, 5]
    parsed = parse_manifest(manifest)
    assert len(parsed) == len(templates)
    with ArchiveReader(archive) as reader:
        for identifier, data in templates.items():
            assert reader.read(parsed[identifier]) == data


def test_manifest_text_matches_grammar(tmp_path):
    archive = tmp_path / "archive"
    manifest = tmp_path / "manifest"
    pack_templates([("AAAAAAAA01", b"x" * 500), ("AAAAAAAA02", b"y" * 300)], archive, manifest)

    assert manifest.read_text() == "AAAAAAAA01 500 0\nAAAAAAAA02 300 500\n"
    assert archive.stat().st_size == 800


def test_duplicate_identifier_last_write_wins(tmp_path):
    manifest = tmp_path / "manifest"
    manifest.write_text("dup 3 0\nother 2 3\ndup 4 5\n")

    parsed = parse_manifest(manifest)

    assert len(parsed) == 2
    assert parsed["dup"] == ManifestEntry("dup", 4, 5)


def test_malformed_line_reports_location(tmp_path):
    manifest = tmp_path / "manifest"
    manifest.write_text("ok 1 0\nbroken 12\n")

    with pytest.raises(ParseError) as excinfo:
        parse_manifest(manifest)

    assert f"{manifest}:2" in str(excinfo.value)
    assert excinfo.value.line_number == 2


def test_non_numeric_fields_rejected():
    with pytest.raises(ParseError):
        parse_manifest_line("id -1 0")
    with pytest.raises(ParseError):
        parse_manifest_line("id ten 0")


def test_missing_manifest_is_io_error(tmp_path):
    with pytest.raises(HarnessIOError):
        parse_manifest(tmp_path / "missing")


def test_short_read_raises(tmp_path):
    archive = tmp_path / "archive"
    archive.write_bytes(b"0123456789")

    assert read_range(archive, 2, 3) == b"234"
    with pytest.raises(HarnessIOError):
        read_range(archive, 8, 5)


def test_pack_refuses_existing_outputs(tmp_path):
    archive = tmp_path / "archive"
    archive.write_bytes(b"old")

    with pytest.raises(HarnessIOError):
        pack_templates([("a", b"1")], archive, tmp_path / "manifest")
    assert archive.read_bytes() == b"old"


def test_identifier_with_whitespace_rejected(tmp_path):
    with pytest.raises(InvalidArgumentError):
        pack_templates([("bad id", b"1")], tmp_path / "archive", tmp_path / "manifest")


def test_write_template_archive_uses_file_stems(tmp_path):
    template_dir = tmp_path / "reference"
    template_dir.mkdir()
    (template_dir / "R2.tmpl").write_bytes(b"bb")
    (template_dir / "R1.tmpl").write_bytes(b"a")
    (template_dir / "notes.txt").write_text("ignored")

    archive = write_template_archive(template_dir, ".tmpl")

    assert archive.manifest_path.read_text() == "R1 1 0\nR2 2 1\n"
    assert archive.archive_path.read_bytes() == b"abb"


@pytest.mark.parametrize("identifier", ["../escape", "/tmp/abs", "a\\b", "..", "..AAAAAAAA"])
def test_manifest_rejects_identifiers_that_leave_the_database(identifier):
    with pytest.raises(ParseError):
        parse_manifest_line(f"{identifier} 3 0")


def test_pack_rejects_path_identifiers(tmp_path):
    with pytest.raises(InvalidArgumentError):
        pack_templates([("nested/id", b"1")], tmp_path / "archive", tmp_path / "manifest")


def test_failed_pack_leaves_nothing_behind(tmp_path):
    archive = tmp_path / "archive"
    manifest = tmp_path / "manifest"

    with pytest.raises(InvalidArgumentError):
        pack_templates([("good", b"1"), ("bad id", b"2")], archive, manifest)

    assert not archive.exists()
    assert not manifest.exists()
    pack_templates([("good", b"1")], archive, manifest)
    assert manifest.read_text() == "good 1 0\n"
