"""Per-item loops that drive an implementation and write result logs.

Every call into the implementation goes through ``call_boundary`` so that a
raising implementation costs one row, never the shard.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence, Tuple

from tqdm import tqdm

from ridgeval.archive.codec import ARCHIVE_NAME, MANIFEST_NAME
from ridgeval.errors import HarnessIOError, ImplementationError, ParseError
from ridgeval.harness.dataset import ValidationDataset, load_samples
from ridgeval.harness.settings import HarnessSettings
from ridgeval.implementations.base import ExtractionInterface, SearchInterface
from ridgeval.io_utils import ensure_dir, read_file, write_file
from ridgeval.results.logs import (
    LogKind,
    Quoted,
    ResultLog,
    na_fields,
    splice_coordinates,
    splice_cores,
    splice_deltas,
    splice_minutiae,
    splice_values,
)
from ridgeval.types import (
    CreateTemplateResult,
    FeatureSet,
    ReturnStatus,
    SearchResult,
    TemplateArchive,
    TemplateData,
    TemplateType,
)

LOGGER = logging.getLogger("ridgeval.harness.runners")

TEMPLATE_DIR_NAME = "templates"
TEMPLATE_SUFFIX = ".tmpl"

# NA padding when a call produced nothing usable.
EXTRACT_DATA_NA_COLUMNS = 18
FEATURE_NA_COLUMNS = 14
CANDIDATE_NA_COLUMNS = 6
CORRESPONDENCE_NA_COLUMNS = 13

Row = List[Any]


@dataclass
class BoundaryResult:
    status: ReturnStatus
    value: Any = None
    elapsed_us: int = 0


def call_boundary(description: str, func: Callable[..., Any], *args: Any) -> BoundaryResult:
    """Call into the implementation, converting any exception to a failure."""
    start = time.perf_counter_ns()
    try:
        value = func(*args)
    except Exception as exc:
        elapsed_us = (time.perf_counter_ns() - start) // 1000
        error = ImplementationError(f"Exception while {description} ({exc})")
        LOGGER.warning("%s", error)
        return BoundaryResult(ReturnStatus.failure(str(error)), None, elapsed_us)
    elapsed_us = (time.perf_counter_ns() - start) // 1000
    return BoundaryResult(ReturnStatus(), value, elapsed_us)


def template_dir(output_dir: Path, template_type: TemplateType) -> Path:
    return Path(output_dir) / TEMPLATE_DIR_NAME / template_type.label


def template_path(output_dir: Path, template_type: TemplateType, identifier: str) -> Path:
    return template_dir(output_dir, template_type) / f"{identifier}{TEMPLATE_SUFFIX}"


def reference_archive(output_dir: Path) -> TemplateArchive:
    directory = template_dir(output_dir, TemplateType.REFERENCE)
    return TemplateArchive(directory / ARCHIVE_NAME, directory / MANIFEST_NAME)


def _progress(indices: Sequence[int], desc: str):
    return tqdm(indices, desc=desc, unit="item", disable=None, leave=False)


def perform_single_create(
    impl: ExtractionInterface,
    dataset: ValidationDataset,
    index: int,
    settings: HarnessSettings,
) -> Row:
    template_type = settings.template_type
    image_set = dataset.get(template_type, index)
    identifier = image_set.identifier
    destination = template_path(settings.output_dir, template_type, identifier)

    try:
        samples = load_samples(dataset, image_set)
    except (ParseError, HarnessIOError) as exc:
        LOGGER.debug("Could not load samples for %s: %s", identifier, exc)
        message = str(exc)
        try:
            write_file(b"", destination)
        except HarnessIOError as write_exc:
            LOGGER.warning("%s", write_exc)
            message = f"{message}; {write_exc}"
        return [Quoted(identifier), None, 1, Quoted(message), template_type, len(image_set.samples), None]

    call = call_boundary(
        f"creating template from {identifier}",
        impl.create_template,
        template_type,
        identifier,
        samples,
    )
    result: CreateTemplateResult = call.value if call.status else CreateTemplateResult(status=call.status)
    status = result.status
    data = result.data if status else b""

    size: Optional[int] = len(data) if status else None
    try:
        write_file(data, destination)
    except HarnessIOError as exc:
        LOGGER.warning("%s", exc)
        status = ReturnStatus.failure(str(exc))
        size = None

    return [
        Quoted(identifier),
        call.elapsed_us,
        status.result_code,
        Quoted(status.message or ""),
        template_type,
        len(samples),
        size,
    ]


def run_extraction_create(
    impl: ExtractionInterface,
    dataset: ValidationDataset,
    indices: Sequence[int],
    settings: HarnessSettings,
) -> None:
    for template_type in TemplateType:
        ensure_dir(template_dir(settings.output_dir, template_type))
    with ResultLog.for_kind(settings.output_dir, LogKind.CREATE, settings.template_type) as log:
        for index in _progress(indices, "create"):
            log.write_row(perform_single_create(impl, dataset, index, settings))


def feature_columns(features: Optional[FeatureSet]) -> Row:
    if features is None:
        return na_fields(FEATURE_NA_COLUMNS)

    def _quoted(value: Optional[str]) -> Optional[Quoted]:
        return None if value is None else Quoted(value)

    return [
        features.impression,
        features.capture_technology,
        features.frgp,
        features.orientation,
        splice_values(features.processing_methods) if features.processing_methods is not None else None,
        features.value_assessment,
        features.substrate,
        features.pattern,
        features.palm_linking_rule,
        features.translation_valid,
        _quoted(splice_cores(features.cores) if features.cores is not None else None),
        _quoted(splice_deltas(features.deltas) if features.deltas is not None else None),
        _quoted(splice_minutiae(features.minutiae) if features.minutiae is not None else None),
        _quoted(splice_coordinates(features.roi) if features.roi is not None else None),
    ]


def perform_single_extract_data(
    impl: ExtractionInterface,
    template_type: TemplateType,
    path: Path,
) -> List[Row]:
    try:
        data = read_file(path)
    except HarnessIOError as exc:
        LOGGER.warning("%s", exc)
        return [[Quoted(path.name), None, template_type] + na_fields(EXTRACT_DATA_NA_COLUMNS)]

    call = call_boundary(
        f"extracting data from template {path}",
        impl.extract_template_data,
        template_type,
        CreateTemplateResult(data=data),
    )
    prefix: Row = [Quoted(path.name), call.elapsed_us, template_type]
    returned: Optional[Tuple[ReturnStatus, List[TemplateData]]] = call.value
    if not call.status or returned is None or not returned[0] or not returned[1]:
        return [prefix + na_fields(EXTRACT_DATA_NA_COLUMNS)]

    records = returned[1]
    return [
        prefix
        + [idx, len(records), td.input_identifier, td.image_quality]
        + feature_columns(td.features)
        for idx, td in enumerate(records)
    ]


def run_extraction_extract_data(
    impl: ExtractionInterface,
    dataset: ValidationDataset,
    indices: Sequence[int],
    settings: HarnessSettings,
) -> None:
    template_type = settings.template_type
    with ResultLog.for_kind(settings.output_dir, LogKind.EXTRACT_DATA, template_type) as log:
        for index in _progress(indices, "extract data"):
            identifier = dataset.get(template_type, index).identifier
            path = template_path(settings.output_dir, template_type, identifier)
            log.write_rows(perform_single_extract_data(impl, template_type, path))


def perform_single_search(
    impl: SearchInterface,
    identifier: str,
    probe_template: bytes,
    max_candidates: int,
) -> Tuple[SearchResult, List[Row]]:
    call = call_boundary(
        f"searching template for {identifier}",
        impl.search,
        probe_template,
        max_candidates,
    )
    result: SearchResult = call.value if call.status else SearchResult(status=call.status)
    prefix: Row = [
        Quoted(identifier),
        max_candidates,
        call.elapsed_us,
        result.status.result_code,
        Quoted(result.status.message or ""),
    ]
    if not result.status or not result.candidates:
        return result, [prefix + na_fields(CANDIDATE_NA_COLUMNS)]

    # Descending Candidate order: similarity, then identifier, then frgp.
    result.candidates = sorted(result.candidates, reverse=True)
    rows = [
        prefix
        + [
            result.decision,
            len(result.candidates),
            rank,
            Quoted(candidate.identifier),
            candidate.frgp,
            float(candidate.similarity),
        ]
        for rank, candidate in enumerate(result.candidates, start=1)
    ]
    return result, rows


def perform_single_correspondence(
    impl: SearchInterface,
    identifier: str,
    probe_template: bytes,
    result: SearchResult,
) -> List[Row]:
    call = call_boundary(
        f"extracting correspondence for {identifier}",
        impl.extract_correspondence,
        probe_template,
        result,
    )
    prefix: Row = [Quoted(identifier), len(result.candidates), call.elapsed_us]
    na_row = [prefix + na_fields(CORRESPONDENCE_NA_COLUMNS)]
    returned = call.value
    if not call.status or returned is None or not returned[0]:
        return na_row

    pairs_per_candidate = returned[1]
    if len(pairs_per_candidate) != len(result.candidates):
        LOGGER.warning(
            "Correspondence for %s has %d entries but there are %d candidates",
            identifier,
            len(pairs_per_candidate),
            len(result.candidates),
        )
        return na_row

    rows: List[Row] = []
    for rank, pairs in enumerate(pairs_per_candidate, start=1):
        for corr_index, corr in enumerate(pairs, start=1):
            ref, probe = corr.reference_minutia, corr.probe_minutia
            rows.append(
                prefix
                + [
                    rank,
                    corr_index,
                    Quoted(corr.reference_identifier),
                    corr.reference_input_identifier,
                    ref.coordinate.x,
                    ref.coordinate.y,
                    ref.theta,
                    ref.type,
                    corr.probe_input_identifier,
                    probe.coordinate.x,
                    probe.coordinate.y,
                    probe.theta,
                    probe.type,
                ]
            )
    return rows or na_row


def run_search(
    impl: SearchInterface,
    dataset: ValidationDataset,
    indices: Sequence[int],
    settings: HarnessSettings,
) -> None:
    max_candidates = settings.maximum
    candidate_log = ResultLog.for_kind(settings.output_dir, LogKind.SEARCH_CANDIDATES)
    correspondence_log = ResultLog.for_kind(settings.output_dir, LogKind.CORRESPONDENCE)
    with candidate_log, correspondence_log:
        for index in _progress(indices, "search"):
            identifier = dataset.get(TemplateType.PROBE, index).identifier
            path = template_path(settings.output_dir, TemplateType.PROBE, identifier)
            try:
                probe_template = read_file(path)
            except HarnessIOError as exc:
                LOGGER.warning("%s", exc)
                candidate_log.write_row(
                    [Quoted(identifier), max_candidates, None, 1, Quoted(str(exc))]
                    + na_fields(CANDIDATE_NA_COLUMNS)
                )
                correspondence_log.write_row(
                    [Quoted(identifier), None, None] + na_fields(CORRESPONDENCE_NA_COLUMNS)
                )
                continue

            result, rows = perform_single_search(impl, identifier, probe_template, max_candidates)
            candidate_log.write_rows(rows)
            correspondence_log.write_rows(
                perform_single_correspondence(impl, identifier, probe_template, result)
            )


def run_create_reference_database(impl: ExtractionInterface, settings: HarnessSettings) -> ReturnStatus:
    archive = reference_archive(settings.output_dir)
    for member in (archive.archive_path, archive.manifest_path):
        if not member.exists():
            raise HarnessIOError(f"Member of TemplateArchive does not exist: {member}")
    ensure_dir(settings.db_dir)

    call = call_boundary(
        "creating reference database",
        impl.create_reference_database,
        archive,
        settings.db_dir,
        settings.maximum,
    )
    status: ReturnStatus = call.value if call.status else call.status
    with ResultLog.for_kind(settings.output_dir, LogKind.CREATE_REFERENCE_DATABASE) as log:
        log.write_row([call.elapsed_us, status.result_code, Quoted(status.message or ""), settings.maximum])
    LOGGER.info("Reference database %s: %s", "built" if status else "failed", status.message or settings.db_dir)
    return status
