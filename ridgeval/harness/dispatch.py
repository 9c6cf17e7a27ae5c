"""Top-level operation dispatch: identify, extract, build-database, search."""

from __future__ import annotations

import logging
from typing import List, Optional

from ridgeval.archive.codec import write_template_archive
from ridgeval.errors import HarnessError
from ridgeval.harness.dataset import load_dataset
from ridgeval.harness.runners import (
    TEMPLATE_SUFFIX,
    call_boundary,
    run_create_reference_database,
    run_extraction_create,
    run_extraction_extract_data,
    run_search,
    template_dir,
)
from ridgeval.harness.settings import HarnessSettings, Operation
from ridgeval.implementations.base import (
    ExtractionInterface,
    SearchInterface,
    load_extraction_implementation,
    load_search_implementation,
)
from ridgeval.io_utils import ensure_dir
from ridgeval.types import ProductIdentifier, ReturnStatus, TemplateType
from ridgeval.workload.orchestrator import run_sharded
from ridgeval.workload.sharding import shuffle

LOGGER = logging.getLogger("ridgeval.harness.dispatch")


def _product_lines(prefix: str, product: Optional[ProductIdentifier]) -> List[str]:
    product = product or ProductIdentifier()
    marketing = f" {product.marketing}" if product.marketing is not None else ""
    owner = f" 0x{product.cbeff_owner:04X}" if product.cbeff_owner is not None else ""
    algorithm = f" 0x{product.cbeff_algorithm:04X}" if product.cbeff_algorithm is not None else ""
    return [
        f"{prefix} Marketing Identifier ={marketing}",
        f"{prefix} CBEFF Owner ={owner}",
        f"{prefix} CBEFF Identifier ={algorithm}",
    ]


def extraction_identification_string(impl: ExtractionInterface) -> str:
    ident = impl.get_identification()
    lines = [
        f"Identifier = {ident.library_identifier}",
        f"Version = 0x{ident.version_number:04X}",
    ]
    if ident.exemplar_algorithm is not None:
        lines += _product_lines("Exemplar Feature Extraction Algorithm", ident.exemplar_algorithm)
    if ident.latent_algorithm is not None:
        lines += _product_lines("Latent Feature Extraction Algorithm", ident.latent_algorithm)
    return "\n".join(lines)


def search_identification_string(impl: SearchInterface) -> str:
    return "\n".join(_product_lines("Search Algorithm", impl.get_identification()))


def run_test_operation(settings: HarnessSettings) -> ReturnStatus:
    """Shuffle the dataset and run extract or search over it, possibly forked."""
    ensure_dir(settings.output_dir)
    dataset = load_dataset(settings.image_dir)

    if settings.operation == Operation.EXTRACT:
        count = dataset.count(settings.template_type)
        extraction = load_extraction_implementation(settings.config_dir)

        def task(shard: List[int]) -> None:
            run_extraction_create(extraction, dataset, shard, settings)
            run_extraction_extract_data(extraction, dataset, shard, settings)

    elif settings.operation == Operation.SEARCH:
        count = dataset.count(TemplateType.PROBE)
        search = load_search_implementation(settings.config_dir, settings.db_dir)

        def task(shard: List[int]) -> None:
            run_search(search, dataset, shard, settings)

    else:
        raise HarnessError(f"Unsupported operation {settings.operation.value} for a test run")

    indices = shuffle(count, settings.random_seed)
    LOGGER.info(
        "Running %s over %d items (seed=%d, procs=%d)",
        settings.operation.value,
        count,
        settings.random_seed,
        settings.num_procs,
    )
    if settings.num_procs <= 1:
        task(indices)
        status = ReturnStatus()
    else:
        status = run_sharded(indices, settings.num_procs, task)

    if settings.operation == Operation.EXTRACT and settings.template_type == TemplateType.REFERENCE:
        archive = write_template_archive(
            template_dir(settings.output_dir, TemplateType.REFERENCE),
            TEMPLATE_SUFFIX,
        )
        LOGGER.info("Reference templates archived to %s", archive.archive_path)
    return status


def _identify(settings: HarnessSettings) -> ReturnStatus:
    if settings.operation == Operation.IDENTIFY:
        impl = load_extraction_implementation(settings.config_dir)
        call = call_boundary("getting identification", extraction_identification_string, impl)
    else:
        impl = load_search_implementation(settings.config_dir, settings.db_dir)
        call = call_boundary("getting identification", search_identification_string, impl)
    if call.status:
        print(call.value)
    return call.status


def dispatch_operation(settings: HarnessSettings) -> int:
    """Run the selected operation and return the process exit code."""
    try:
        if settings.operation in (Operation.IDENTIFY, Operation.IDENTIFY_SEARCH):
            status = _identify(settings)
        elif settings.operation == Operation.BUILD_DATABASE:
            impl = load_extraction_implementation(settings.config_dir)
            status = run_create_reference_database(impl, settings)
        else:
            status = run_test_operation(settings)
    except (HarnessError, OSError) as exc:
        LOGGER.error("%s: %s", settings.operation.value, exc)
        return 1

    if not status:
        LOGGER.error("%s: %s", settings.operation.value, status.message or "failed")
        return 1
    return 0
