from pathlib import Path

import pytest
import yaml

from ridgeval.errors import InvalidArgumentError
from ridgeval.harness.dispatch import dispatch_operation
from ridgeval.harness.settings import DEFAULT_MAX_CANDIDATES, DEFAULT_MAX_SIZE, Operation, resolve_settings
from ridgeval.results.collect import load_result_logs
from ridgeval.results.logs import LogKind
from scripts.run_validation import main


def _write_yaml(path, data):
    path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")


def _workspace(tmp_path: Path, num_probes: int = 3, num_references: int = 4):
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    _write_yaml(config_dir / "implementation.yaml", {"seed": 99})

    image_dir = tmp_path / "images"
    image_dir.mkdir()
    (image_dir / "img.raw").write_bytes(bytes(4))
    image_sample = {"filename": "img.raw", "width": 2, "height": 2, "ppi": 500, "bpc": 8, "bpp": 8}
    _write_yaml(
        image_dir / "dataset.yaml",
        {
            "probes": [
                {"identifier": f"PROBE{idx:05d}", "samples": [image_sample]} for idx in range(num_probes)
            ],
            "references": [
                {"identifier": f"REFERENCE{idx:05d}", "samples": [{"features": {"identifier": 0, "frgp": 1}}]}
                for idx in range(num_references)
            ],
        },
    )
    return config_dir, image_dir


def _settings(operation, config_dir, image_dir, tmp_path, **overrides):
    base = {
        "config_dir": config_dir,
        "image_dir": image_dir,
        "output_dir": tmp_path / "out",
        "db_dir": tmp_path / "db",
        "random_seed": 5,
    }
    base.update(overrides)
    return resolve_settings(operation, {}, base)


def test_full_validation_run(tmp_path):
    config_dir, image_dir = _workspace(tmp_path)
    out = tmp_path / "out"

    extract_ref = _settings("extract", config_dir, image_dir, tmp_path, template_type="reference", num_procs=2)
    assert dispatch_operation(extract_ref) == 0
    reference_dir = out / "templates" / "reference"
    assert (reference_dir / "archive").exists()
    assert len((reference_dir / "manifest").read_text().splitlines()) == 4
    assert len(list(out.glob("extractionCreate-1-*.log"))) == 2

    build = _settings("build-database", config_dir, image_dir, tmp_path)
    assert build.maximum == DEFAULT_MAX_SIZE
    assert dispatch_operation(build) == 0
    assert (tmp_path / "db" / "RE" / "FE" / "RE" / "NC" / "REFERENCE00000").exists()

    extract_probe = _settings("extract", config_dir, image_dir, tmp_path, template_type="probe")
    assert dispatch_operation(extract_probe) == 0

    search = _settings("search", config_dir, image_dir, tmp_path, maximum=2)
    assert dispatch_operation(search) == 0

    candidates = load_result_logs(out, LogKind.SEARCH_CANDIDATES)
    assert set(candidates["identifier"]) == {"PROBE00000", "PROBE00001", "PROBE00002"}
    assert (candidates["result"] == 0).all()
    assert set(candidates["rank"]) == {1, 2}

    created = load_result_logs(out, LogKind.CREATE)
    assert len(created) == 7
    assert created["source_log"].nunique() == 3


def test_build_database_over_budget_fails(tmp_path):
    config_dir, image_dir = _workspace(tmp_path)
    assert dispatch_operation(
        _settings("extract", config_dir, image_dir, tmp_path, template_type="reference")
    ) == 0

    build = _settings("build-database", config_dir, image_dir, tmp_path, maximum=1)

    assert dispatch_operation(build) == 1
    assert not list((tmp_path / "db").rglob("REFERENCE*"))
    log = (tmp_path / "out" / "createReferenceDatabase.log").read_text().splitlines()
    assert log[1].split(",")[1] == "1"


def test_search_default_and_limit(tmp_path):
    config_dir, image_dir = _workspace(tmp_path)
    (tmp_path / "db").mkdir()

    assert _settings("search", config_dir, image_dir, tmp_path).maximum == DEFAULT_MAX_CANDIDATES
    with pytest.raises(InvalidArgumentError):
        _settings("search", config_dir, image_dir, tmp_path, maximum=70000)


def test_required_arguments(tmp_path):
    config_dir, image_dir = _workspace(tmp_path)

    with pytest.raises(InvalidArgumentError):
        resolve_settings("extract", {}, {"config_dir": config_dir})
    with pytest.raises(InvalidArgumentError):
        resolve_settings("search", {}, {"config_dir": config_dir})
    with pytest.raises(InvalidArgumentError):
        resolve_settings("identify", {}, {"config_dir": tmp_path / "missing"})


def test_too_many_processes_fails_before_work(tmp_path):
    config_dir, image_dir = _workspace(tmp_path, num_references=2)
    settings = _settings("extract", config_dir, image_dir, tmp_path, template_type="reference", num_procs=3)

    assert dispatch_operation(settings) == 1
    assert not list((tmp_path / "out").glob("*.log"))


def test_config_file_supplies_defaults(tmp_path):
    config_dir, image_dir = _workspace(tmp_path)
    cfg = {"config_dir": str(config_dir), "num_procs": 4, "random_seed": 1, "max_database_size": 123}

    settings = resolve_settings("build-database", cfg, {"db_dir": tmp_path / "db", "num_procs": 2})

    assert settings.operation == Operation.BUILD_DATABASE
    assert settings.num_procs == 2
    assert settings.maximum == 123


def test_cli_identify(tmp_path, capsys):
    config_dir, _ = _workspace(tmp_path)

    code = main(["identify", "-z", str(config_dir), "--harness-config", str(tmp_path / "none.yaml")])

    assert code == 0
    out = capsys.readouterr().out
    assert "Identifier = randimpl" in out
    assert "Version = 0x0001" in out
    assert "Exemplar Feature Extraction Algorithm CBEFF Identifier = 0xD1A7" in out


def test_cli_missing_config_dir_exits_nonzero(tmp_path):
    code = main(["identify", "-z", str(tmp_path / "nope"), "--harness-config", str(tmp_path / "none.yaml")])

    assert code == 1
