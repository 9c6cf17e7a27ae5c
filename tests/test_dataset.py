import pytest
import yaml

from ridgeval.errors import HarnessIOError, ParseError
from ridgeval.harness.dataset import load_dataset, load_samples
from ridgeval.types import MinutiaType, TemplateType


def _write_yaml(path, data):
    path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")


def _write_dataset(image_dir, data):
    image_dir.mkdir(exist_ok=True)
    _write_yaml(image_dir / "dataset.yaml", data)


def test_load_dataset_with_images_and_features(tmp_path):
    image_dir = tmp_path / "images"
    _write_dataset(
        image_dir,
        {
            "probes": [
                {
                    "identifier": "P1",
                    "samples": [
                        {
                            "filename": "p1.raw",
                            "width": 3,
                            "height": 2,
                            "ppi": 500,
                            "bpc": 8,
                            "bpp": 8,
                            "features": {
                                "identifier": 0,
                                "frgp": 2,
                                "minutiae": [{"x": 1, "y": 2, "theta": 90, "type": 1}],
                                "roi": [[0, 0], [3, 0], [3, 2]],
                            },
                        }
                    ],
                }
            ],
            "references": [{"identifier": "R1", "samples": [{"features": {"identifier": 0}}]}],
        },
    )
    (image_dir / "p1.raw").write_bytes(bytes(6))

    dataset = load_dataset(image_dir)

    assert dataset.count(TemplateType.PROBE) == 1
    assert dataset.get(TemplateType.REFERENCE, 0).identifier == "R1"
    ((image, features),) = load_samples(dataset, dataset.probes[0])
    assert image.expected_size == 6
    assert features.minutiae[0].type == MinutiaType.BIFURCATION
    assert len(features.roi) == 3


def test_wrong_pixel_count_is_io_error(tmp_path):
    image_dir = tmp_path / "images"
    sample = {"filename": "p.raw", "width": 4, "height": 4, "ppi": 500, "bpc": 8, "bpp": 8}
    _write_dataset(image_dir, {"probes": [{"identifier": "P", "samples": [sample]}]})
    (image_dir / "p.raw").write_bytes(bytes(10))
    dataset = load_dataset(image_dir)

    with pytest.raises(HarnessIOError, match="expected 16, read 10"):
        load_samples(dataset, dataset.probes[0])


def test_incomplete_image_metadata_is_parse_error(tmp_path):
    image_dir = tmp_path / "images"
    _write_dataset(image_dir, {"probes": [{"identifier": "P", "samples": [{"filename": "p.raw", "width": 4}]}]})
    dataset = load_dataset(image_dir)

    with pytest.raises(ParseError):
        load_samples(dataset, dataset.probes[0])


def test_empty_sample_is_parse_error(tmp_path):
    image_dir = tmp_path / "images"
    _write_dataset(image_dir, {"probes": [{"identifier": "P", "samples": [{}]}]})
    dataset = load_dataset(image_dir)

    with pytest.raises(ParseError):
        load_samples(dataset, dataset.probes[0])


def test_entries_need_identifiers(tmp_path):
    image_dir = tmp_path / "images"
    _write_dataset(image_dir, {"probes": [{"samples": []}]})

    with pytest.raises(ParseError):
        load_dataset(image_dir)


def test_missing_dataset_file(tmp_path):
    with pytest.raises(HarnessIOError):
        load_dataset(tmp_path)


def test_non_numeric_image_metadata_is_parse_error(tmp_path):
    image_dir = tmp_path / "images"
    sample = {"filename": "p.raw", "width": "wide", "height": 4, "ppi": 500, "bpc": 8, "bpp": 8}
    _write_dataset(image_dir, {"probes": [{"identifier": "P", "samples": [sample]}]})
    (image_dir / "p.raw").write_bytes(bytes(16))
    dataset = load_dataset(image_dir)

    with pytest.raises(ParseError, match="Invalid image metadata"):
        load_samples(dataset, dataset.probes[0])
