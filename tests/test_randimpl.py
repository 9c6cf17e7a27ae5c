from pathlib import Path

import pytest
import yaml

from ridgeval.archive.codec import pack_templates
from ridgeval.errors import BudgetError, ImplementationError
from ridgeval.implementations.base import load_extraction_implementation, load_search_implementation
from ridgeval.implementations.randimpl import (
    FRGP_RIGHT_FOUR,
    RandomExtraction,
    RandomSearch,
    parse_template,
)
from ridgeval.types import FeatureSet, Image, TemplateArchive, TemplateType


def _write_yaml(path, data):
    path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")


def _config_dir(tmp_path: Path, seed=11) -> Path:
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    _write_yaml(config_dir / "implementation.yaml", {"seed": seed})
    return config_dir


def test_template_layout_round_trips():
    impl = RandomExtraction(seed=3)
    samples = [
        (Image(0, 2, 2, 500, 8, 8, bytes(4)), None),
        (None, FeatureSet(identifier=1, frgp=FRGP_RIGHT_FOUR)),
    ]

    result = impl.create_template(TemplateType.REFERENCE, "REF0000001", samples)

    assert result.status
    assert result.data.startswith(b"REF0000001\0")
    records = parse_template(result.data)
    assert [(r.input_identifier, r.frgp) for r in records] == [(0, 0), (1, FRGP_RIGHT_FOUR)]
    assert len(result.extracted_data) == 2


def test_sample_without_image_or_features_fails():
    result = RandomExtraction(seed=1).create_template(TemplateType.PROBE, "P", [(None, None)])

    assert not result.status
    assert "Neither Image nor EFS" in result.status.message


def test_truncated_template_rejected():
    with pytest.raises(ValueError):
        parse_template(b"ID\0\x00\x01\x05\x00")


def test_loader_reads_seed_from_config(tmp_path):
    impl = load_extraction_implementation(_config_dir(tmp_path))

    assert isinstance(impl, RandomExtraction)
    assert impl.get_identification().library_identifier == "randimpl"


def test_loader_requires_seed(tmp_path):
    config_dir = tmp_path / "config"
    config_dir.mkdir()

    with pytest.raises(ImplementationError):
        load_extraction_implementation(config_dir)


def test_loader_rejects_unknown_module(tmp_path):
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    _write_yaml(config_dir / "implementation.yaml", {"module": "ridgeval.no_such_module"})

    with pytest.raises(ImplementationError):
        load_extraction_implementation(config_dir)


def test_database_build_search_and_correspondence(tmp_path):
    extraction = RandomExtraction(seed=5)
    items = []
    for idx in range(4):
        identifier = f"REFERENCE{idx}"
        result = extraction.create_template(
            TemplateType.REFERENCE, identifier, [(None, FeatureSet(identifier=0, frgp=2))]
        )
        items.append((identifier, result.data))
    archive = TemplateArchive(tmp_path / "archive", tmp_path / "manifest")
    pack_templates(items, archive.archive_path, archive.manifest_path)
    db = tmp_path / "db"

    assert extraction.create_reference_database(archive, db, 1_000_000)

    probe = extraction.create_template(TemplateType.PROBE, "PROBE", [(None, FeatureSet(identifier=0))]).data
    search = load_search_implementation(_config_dir(tmp_path), db)
    assert isinstance(search, RandomSearch)

    result = search.search(probe, 3)
    assert len(result.candidates) == 3
    assert {c.identifier for c in result.candidates} <= {i for i, _ in items}

    status, pairs = search.extract_correspondence(probe, result)
    assert status
    assert len(pairs) == len(result.candidates)
    for candidate, candidate_pairs in zip(result.candidates, pairs):
        assert all(p.reference_identifier == candidate.identifier for p in candidate_pairs)


def test_database_build_over_budget_raises(tmp_path):
    archive = TemplateArchive(tmp_path / "archive", tmp_path / "manifest")
    pack_templates([("R", b"x" * 100)], archive.archive_path, archive.manifest_path)

    with pytest.raises(BudgetError):
        RandomExtraction(seed=1).create_reference_database(archive, tmp_path / "db", 50)
