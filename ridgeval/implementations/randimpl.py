"""Random stand-in implementation used to exercise the harness end to end.

Templates are the identifier, a NUL byte, then one record per sample:
``input_id``, ``frgp`` and ``size`` (one byte each) followed by ``size``
zero bytes. Search results and features are drawn from a seeded generator.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from ridgeval.archive.sharding import shard_path_for
from ridgeval.database.builder import build_reference_database
from ridgeval.errors import ImplementationError
from ridgeval.implementations.base import ExtractionInterface, SearchInterface
from ridgeval.io_utils import read_file
from ridgeval.types import (
    FRGP_UNKNOWN_FINGER,
    Candidate,
    Coordinate,
    Correspondence,
    CorrespondenceType,
    CreateTemplateResult,
    FeatureSet,
    Minutia,
    ProductIdentifier,
    ReturnStatus,
    Sample,
    SearchResult,
    SubmissionIdentification,
    TemplateArchive,
    TemplateData,
    TemplateType,
)

LOGGER = logging.getLogger("ridgeval.implementations.randimpl")

VERSION_NUMBER = 0x0001
PRODUCT_OWNER = 0x000F
LIBRARY_IDENTIFIER = "randimpl"

# FRGP codes for multi-finger slap impressions.
FRGP_RIGHT_FOUR = 13
FRGP_LEFT_FOUR = 14
FRGP_BOTH_THUMBS = 15
SLAP_POSITIONS = (FRGP_RIGHT_FOUR, FRGP_LEFT_FOUR, FRGP_BOTH_THUMBS)

MAX_BYTE = 255
MAX_SIMILARITY = 65535


@dataclass
class SubTemplate:
    candidate_identifier: str
    input_identifier: int
    frgp: int
    size: int


def parse_template(data: bytes) -> List[SubTemplate]:
    """Split a randimpl template into its per-sample records."""
    if not data:
        return []
    terminator = data.find(b"\0")
    if terminator < 0:
        raise ValueError("Template identifier is not NUL-terminated")
    identifier = data[:terminator].decode("utf-8")

    records: List[SubTemplate] = []
    pos = terminator + 1
    while pos < len(data):
        if pos + 3 > len(data):
            raise ValueError(f"Truncated record header at byte {pos}")
        input_id, frgp, size = data[pos], data[pos + 1], data[pos + 2]
        pos += 3 + size
        if pos > len(data):
            raise ValueError(f"Record for input {input_id} runs past the end of the template")
        records.append(SubTemplate(identifier, input_id, frgp, size))
    return records


def load_seed(config: Dict[str, Any], config_dir: Path) -> int:
    seed = config.get("seed")
    if seed is None:
        raise ImplementationError(f"No 'seed' configured for {LIBRARY_IDENTIFIER} in {config_dir}")
    try:
        return int(seed)
    except (TypeError, ValueError) as exc:
        raise ImplementationError(f"Invalid seed {seed!r} in {config_dir}") from exc


class RandomExtraction(ExtractionInterface):
    def __init__(self, seed: int) -> None:
        self._rng = np.random.default_rng(seed)

    def _draw(self, upper: int) -> int:
        return int(self._rng.integers(0, upper))

    def get_identification(self) -> SubmissionIdentification:
        return SubmissionIdentification(
            version_number=VERSION_NUMBER,
            library_identifier=LIBRARY_IDENTIFIER,
            exemplar_algorithm=ProductIdentifier(
                marketing="RandomImplementation Exemplar Extractor 1.0",
                cbeff_owner=PRODUCT_OWNER,
                cbeff_algorithm=0xD1A7,
            ),
            latent_algorithm=ProductIdentifier(
                marketing="RandomImplementation Latent Extractor 1.0",
                cbeff_owner=PRODUCT_OWNER,
                cbeff_algorithm=0xD1AC,
            ),
        )

    def create_template(
        self,
        template_type: TemplateType,
        identifier: str,
        samples: Sequence[Sample],
    ) -> CreateTemplateResult:
        buf = bytearray(identifier.encode("utf-8"))
        buf.append(0)
        for image, features in samples:
            if image is not None:
                buf.append(image.identifier)
            elif features is not None:
                buf.append(features.identifier)
            else:
                return CreateTemplateResult(
                    status=ReturnStatus.failure("Neither Image nor EFS data was provided.")
                )
            buf.append(features.frgp if features is not None else FRGP_UNKNOWN_FINGER)
            size = self._draw(MAX_BYTE)
            buf.append(size)
            buf.extend(bytes(size))

        result = CreateTemplateResult(data=bytes(buf))
        extracted = self.extract_template_data(template_type, result)
        if extracted is not None and extracted[0]:
            result.extracted_data = extracted[1]
        return result

    def extract_template_data(
        self,
        template_type: TemplateType,
        template: CreateTemplateResult,
    ) -> Optional[Tuple[ReturnStatus, List[TemplateData]]]:
        try:
            records = parse_template(template.data)
        except ValueError as exc:
            return ReturnStatus.failure(f"Unparseable template ({exc})"), []

        data: List[TemplateData] = []
        for record in records:
            features = FeatureSet(identifier=record.input_identifier, frgp=record.frgp)
            if template_type == TemplateType.PROBE:
                orientation = self._draw(180)
                features.orientation = -orientation if orientation % 2 else orientation
            num_minutiae = self._draw(MAX_BYTE)
            if num_minutiae > 0:
                features.minutiae = [
                    Minutia(
                        Coordinate(self._draw(1000), self._draw(1000)),
                        theta=self._draw(360),
                    )
                    for _ in range(num_minutiae)
                ]
            data.append(
                TemplateData(
                    candidate_identifier=record.candidate_identifier,
                    input_identifier=record.input_identifier,
                    features=features,
                )
            )
        return ReturnStatus(), data

    def create_reference_database(
        self,
        archive: TemplateArchive,
        database_dir: Path,
        max_size: int,
    ) -> ReturnStatus:
        return build_reference_database(archive, database_dir, max_size)


class RandomSearch(SearchInterface):
    def __init__(self, database_dir: Path, seed: int) -> None:
        self.database_dir = Path(database_dir)
        self._rng = np.random.default_rng(seed)

    def _draw(self, upper: int) -> int:
        return int(self._rng.integers(0, upper))

    def get_identification(self) -> Optional[ProductIdentifier]:
        return ProductIdentifier(
            marketing="RandomImplementation Matcher 1.0",
            cbeff_owner=PRODUCT_OWNER,
            cbeff_algorithm=0x0101,
        )

    def _slap_finger(self, frgp: int) -> int:
        if frgp == FRGP_RIGHT_FOUR:
            return self._draw(4) + 2
        if frgp == FRGP_LEFT_FOUR:
            return self._draw(4) + 7
        if frgp == FRGP_BOTH_THUMBS:
            return self._draw(2) + 5
        return frgp

    def search(self, probe_template: bytes, max_candidates: int) -> SearchResult:
        result = SearchResult()
        for path in sorted(p for p in self.database_dir.rglob("*") if p.is_file()):
            if len(result.candidates) >= max_candidates:
                break
            records = parse_template(read_file(path))
            if not records:
                LOGGER.debug("Skipping empty database entry %s", path)
                continue
            match = records[self._draw(len(records))]
            result.candidates.append(
                Candidate(
                    identifier=match.candidate_identifier,
                    frgp=self._slap_finger(match.frgp),
                    similarity=float(self._draw(MAX_SIMILARITY)),
                )
            )
        result.decision = self._draw(2) == 0

        correspondence = self.extract_correspondence(probe_template, result)
        if correspondence is not None and correspondence[0]:
            result.correspondence = correspondence[1]
        return result

    def _reference_matches(self, candidate: Candidate, record: SubTemplate, only_slaps: bool) -> bool:
        if not only_slaps:
            return record.frgp == candidate.frgp
        if 2 <= candidate.frgp <= 5:
            return record.frgp == FRGP_RIGHT_FOUR
        if 7 <= candidate.frgp <= 10:
            return record.frgp == FRGP_LEFT_FOUR
        return record.frgp == FRGP_BOTH_THUMBS

    def extract_correspondence(
        self,
        probe_template: bytes,
        result: SearchResult,
    ) -> Optional[Tuple[ReturnStatus, List[List[Correspondence]]]]:
        probes = parse_template(probe_template)
        if not probes:
            return ReturnStatus.failure("Probe template has no samples"), []
        probe = probes[0]

        all_pairs: List[List[Correspondence]] = []
        for candidate in result.candidates:
            references = parse_template(read_file(self.database_dir / shard_path_for(candidate.identifier)))
            only_slaps = all(r.frgp in SLAP_POSITIONS for r in references)
            pairs: List[Correspondence] = []
            for record in references:
                if not self._reference_matches(candidate, record, only_slaps):
                    continue
                for _ in range(self._draw(MAX_BYTE)):
                    pairs.append(
                        Correspondence(
                            type=CorrespondenceType.DEFINITE,
                            probe_identifier=probe.candidate_identifier,
                            probe_input_identifier=probe.input_identifier,
                            probe_minutia=Minutia(
                                Coordinate(self._draw(1000), self._draw(1000)),
                                theta=self._draw(360),
                            ),
                            reference_identifier=record.candidate_identifier,
                            reference_input_identifier=record.input_identifier,
                            reference_minutia=Minutia(
                                Coordinate(self._draw(1000), self._draw(1000)),
                                theta=self._draw(16),
                            ),
                        )
                    )
                break
            all_pairs.append(pairs)
        return ReturnStatus(), all_pairs


def get_extraction_implementation(config_dir: Path, config: Dict[str, Any]) -> RandomExtraction:
    return RandomExtraction(load_seed(config, config_dir))


def get_search_implementation(config_dir: Path, database_dir: Path, config: Dict[str, Any]) -> RandomSearch:
    return RandomSearch(database_dir, load_seed(config, config_dir))
