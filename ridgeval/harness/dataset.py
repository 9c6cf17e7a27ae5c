"""Validation dataset description (``dataset.yaml``) and sample loading."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from ridgeval.errors import HarnessIOError, ParseError
from ridgeval.io_utils import load_yaml, read_file
from ridgeval.types import (
    Coordinate,
    Core,
    Delta,
    FeatureSet,
    Image,
    Minutia,
    MinutiaType,
    Sample,
    TemplateType,
)

LOGGER = logging.getLogger("ridgeval.harness.dataset")

DATASET_FILE_NAME = "dataset.yaml"
IMAGE_FIELDS = ("width", "height", "ppi", "bpc", "bpp")

_SCALAR_FEATURE_FIELDS = (
    "identifier",
    "ppi",
    "impression",
    "capture_technology",
    "frgp",
    "orientation",
    "value_assessment",
    "substrate",
    "pattern",
    "palm_linking_rule",
    "translation_valid",
)


@dataclass
class SampleMetadata:
    filename: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    ppi: Optional[int] = None
    bpc: Optional[int] = None
    bpp: Optional[int] = None
    features: Optional[FeatureSet] = None

    @property
    def has_image_metadata(self) -> bool:
        return all(getattr(self, name) is not None for name in IMAGE_FIELDS)


@dataclass
class ImageSet:
    identifier: str
    samples: List[SampleMetadata] = field(default_factory=list)


@dataclass
class ValidationDataset:
    image_dir: Path
    probes: List[ImageSet] = field(default_factory=list)
    references: List[ImageSet] = field(default_factory=list)

    def image_sets(self, template_type: TemplateType) -> List[ImageSet]:
        return self.probes if template_type == TemplateType.PROBE else self.references

    def count(self, template_type: TemplateType) -> int:
        return len(self.image_sets(template_type))

    def get(self, template_type: TemplateType, index: int) -> ImageSet:
        return self.image_sets(template_type)[index]


def _coordinate(raw: Any, where: str) -> Coordinate:
    if isinstance(raw, dict):
        return Coordinate(int(raw["x"]), int(raw["y"]))
    if isinstance(raw, (list, tuple)) and len(raw) == 2:
        return Coordinate(int(raw[0]), int(raw[1]))
    raise ParseError(f"{where}: expected {{x, y}} or [x, y], got {raw!r}")


def _parse_features(raw: Dict[str, Any], where: str) -> FeatureSet:
    if not isinstance(raw, dict):
        raise ParseError(f"{where}: features must be a mapping")
    kwargs: Dict[str, Any] = {name: raw[name] for name in _SCALAR_FEATURE_FIELDS if name in raw}
    try:
        if "processing_methods" in raw:
            kwargs["processing_methods"] = [int(v) for v in raw["processing_methods"]]
        if "cores" in raw:
            kwargs["cores"] = [
                Core(_coordinate(c, where), c.get("direction")) for c in raw["cores"]
            ]
        if "deltas" in raw:
            deltas = []
            for d in raw["deltas"]:
                direction = d.get("direction")
                deltas.append(
                    Delta(_coordinate(d, where), tuple(direction) if direction is not None else None)
                )
            kwargs["deltas"] = deltas
        if "minutiae" in raw:
            kwargs["minutiae"] = [
                Minutia(
                    _coordinate(m, where),
                    int(m["theta"]),
                    MinutiaType(int(m.get("type", MinutiaType.UNKNOWN))),
                )
                for m in raw["minutiae"]
            ]
        if "roi" in raw:
            kwargs["roi"] = [_coordinate(c, where) for c in raw["roi"]]
        return FeatureSet(**kwargs)
    except (AttributeError, KeyError, TypeError, ValueError) as exc:
        raise ParseError(f"{where}: invalid features ({exc})") from exc


def _parse_image_set(raw: Any, where: str) -> ImageSet:
    if not isinstance(raw, dict) or "identifier" not in raw:
        raise ParseError(f"{where}: each entry needs an identifier")
    identifier = str(raw["identifier"])
    samples: List[SampleMetadata] = []
    for idx, sample in enumerate(raw.get("samples") or []):
        sample_where = f"{where} ({identifier}) sample {idx}"
        if not isinstance(sample, dict):
            raise ParseError(f"{sample_where}: must be a mapping")
        features = sample.get("features")
        samples.append(
            SampleMetadata(
                filename=sample.get("filename"),
                features=_parse_features(features, sample_where) if features is not None else None,
                **{name: sample.get(name) for name in IMAGE_FIELDS},
            )
        )
    return ImageSet(identifier=identifier, samples=samples)


def load_dataset(image_dir: Path) -> ValidationDataset:
    """Read ``dataset.yaml`` from ``image_dir``."""
    path = Path(image_dir) / DATASET_FILE_NAME
    if not path.exists():
        raise HarnessIOError(f"Could not open {path} (no such file)")
    raw = load_yaml(path)
    dataset = ValidationDataset(image_dir=Path(image_dir))
    for key in ("probes", "references"):
        entries = raw.get(key) or []
        if not isinstance(entries, list):
            raise ParseError(f"'{key}' must be a list", path=path)
        parsed = [_parse_image_set(entry, f"{key}[{idx}]") for idx, entry in enumerate(entries)]
        setattr(dataset, key, parsed)
    LOGGER.info(
        "Loaded dataset %s: %d probes, %d references",
        path,
        len(dataset.probes),
        len(dataset.references),
    )
    return dataset


def load_samples(dataset: ValidationDataset, image_set: ImageSet) -> List[Sample]:
    """Read every image of ``image_set`` and pair it with its features."""
    samples: List[Sample] = []
    for idx, md in enumerate(image_set.samples):
        if md.filename is None and md.features is None:
            raise ParseError(f"No filename or features provided for {image_set.identifier}")
        if md.filename is None:
            samples.append((None, md.features))
            continue

        if not md.has_image_metadata:
            raise ParseError(f"Missing image metadata for {image_set.identifier}")
        if md.features is not None and md.features.identifier != idx:
            raise ParseError(f"Image and features identifiers differ for {image_set.identifier}")

        try:
            dimensions = {name: int(getattr(md, name)) for name in IMAGE_FIELDS}
        except (TypeError, ValueError) as exc:
            raise ParseError(f"Invalid image metadata for {image_set.identifier} ({exc})") from exc

        pixels = read_file(dataset.image_dir / md.filename)
        image = Image(identifier=idx, pixels=pixels, **dimensions)
        if len(pixels) != image.expected_size:
            raise HarnessIOError(
                f"Did not read image correctly for {image_set.identifier} "
                f"(expected {image.expected_size}, read {len(pixels)})"
            )
        samples.append((image, md.features))
    return samples
