"""Common dataclasses and type aliases used across the ridgeval package."""

from __future__ import annotations

import functools
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import List, Optional, Sequence, Tuple


class TemplateType(IntEnum):
    PROBE = 0
    REFERENCE = 1

    @classmethod
    def parse(cls, value: str) -> "TemplateType":
        """Parse ``probe``/``reference`` (case-insensitive)."""
        try:
            return cls[value.strip().upper()]
        except KeyError:
            raise ValueError(
                f'Incorrect type of template "{value}". Must be "probe" or "reference".'
            ) from None

    @property
    def label(self) -> str:
        return self.name.lower()


class MinutiaType(IntEnum):
    RIDGE_ENDING = 0
    BIFURCATION = 1
    OTHER = 2
    UNKNOWN = 3


class CorrespondenceType(IntEnum):
    DEFINITE = 0
    POSSIBLE = 1


# Integer codes used for positions the harness itself needs to name.
FRGP_UNKNOWN_FINGER = 0
FRGP_UNKNOWN_FRICTION_RIDGE = 18
IMPRESSION_UNKNOWN = 29
CAPTURE_TECHNOLOGY_UNKNOWN = 0


@dataclass
class ReturnStatus:
    """Outcome of a fallible operation."""

    succeeded: bool = True
    message: Optional[str] = None

    def __bool__(self) -> bool:
        return self.succeeded

    @classmethod
    def failure(cls, message: Optional[str] = None) -> "ReturnStatus":
        return cls(succeeded=False, message=message)

    @property
    def result_code(self) -> int:
        """Integer result as written to logs (0 success, 1 failure)."""
        return 0 if self.succeeded else 1


def combine_statuses(statuses: Sequence[ReturnStatus], label: str = "Worker") -> ReturnStatus:
    """Compose per-worker statuses into one.

    The composite fails if any member failed. Messages are kept from every
    member, each prefixed with its 1-based position, and joined with spaces.
    """
    total = len(statuses)
    messages: List[str] = []
    succeeded = True
    for idx, status in enumerate(statuses, start=1):
        if status.message:
            messages.append(f"{label} {idx}/{total}: {status.message}")
        if not status.succeeded:
            succeeded = False
    return ReturnStatus(succeeded=succeeded, message=" ".join(messages) or None)


@dataclass(frozen=True)
class TemplateArchive:
    """Archive blob plus the manifest that indexes it."""

    archive_path: Path
    manifest_path: Path


@dataclass(frozen=True)
class ManifestEntry:
    identifier: str
    length: int
    offset: int

    def to_line(self) -> str:
        return f"{self.identifier} {self.length} {self.offset}\n"


@dataclass(frozen=True, order=True)
class Coordinate:
    x: int
    y: int


@dataclass
class Minutia:
    coordinate: Coordinate
    theta: int
    type: MinutiaType = MinutiaType.UNKNOWN


@dataclass
class Core:
    coordinate: Coordinate
    direction: Optional[int] = None


@dataclass
class Delta:
    coordinate: Coordinate
    direction: Optional[Tuple[Optional[int], Optional[int], Optional[int]]] = None


@dataclass
class FeatureSet:
    """Extended feature set supplied with (or instead of) an image."""

    identifier: int = 0
    ppi: int = 0
    impression: int = IMPRESSION_UNKNOWN
    capture_technology: int = CAPTURE_TECHNOLOGY_UNKNOWN
    frgp: int = FRGP_UNKNOWN_FRICTION_RIDGE
    orientation: Optional[int] = None
    processing_methods: Optional[List[int]] = None
    value_assessment: Optional[int] = None
    substrate: Optional[int] = None
    pattern: Optional[int] = None
    palm_linking_rule: Optional[bool] = None
    translation_valid: Optional[bool] = None
    cores: Optional[List[Core]] = None
    deltas: Optional[List[Delta]] = None
    minutiae: Optional[List[Minutia]] = None
    roi: Optional[List[Coordinate]] = None


@dataclass
class Image:
    identifier: int
    width: int
    height: int
    ppi: int
    bpc: int
    bpp: int
    pixels: bytes = b""

    @property
    def expected_size(self) -> int:
        return (self.bpp // 8) * self.width * self.height


# One sample handed to create_template: image and/or features.
Sample = Tuple[Optional[Image], Optional[FeatureSet]]


@dataclass
class TemplateData:
    candidate_identifier: str
    input_identifier: int
    features: Optional[FeatureSet] = None
    image_quality: Optional[int] = None


@dataclass
class CreateTemplateResult:
    status: ReturnStatus = field(default_factory=ReturnStatus)
    data: bytes = b""
    extracted_data: Optional[List[TemplateData]] = None


@functools.total_ordering
@dataclass
class Candidate:
    """One entry of a ranked candidate list."""

    identifier: str
    frgp: int
    similarity: float

    def _key(self) -> Tuple[float, str, int]:
        return (self.similarity, self.identifier, self.frgp)

    def __lt__(self, other: "Candidate") -> bool:
        return self._key() < other._key()


@dataclass
class Correspondence:
    type: CorrespondenceType
    probe_identifier: str
    probe_input_identifier: int
    probe_minutia: Minutia
    reference_identifier: str
    reference_input_identifier: int
    reference_minutia: Minutia


@dataclass
class SearchResult:
    status: ReturnStatus = field(default_factory=ReturnStatus)
    decision: bool = False
    candidates: List[Candidate] = field(default_factory=list)
    correspondence: Optional[List[List[Correspondence]]] = None


@dataclass
class ProductIdentifier:
    marketing: Optional[str] = None
    cbeff_owner: Optional[int] = None
    cbeff_algorithm: Optional[int] = None


@dataclass
class SubmissionIdentification:
    version_number: int
    library_identifier: str
    exemplar_algorithm: Optional[ProductIdentifier] = None
    latent_algorithm: Optional[ProductIdentifier] = None
