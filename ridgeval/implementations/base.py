"""Pluggable extraction/search interfaces and the loader that selects one."""

from __future__ import annotations

import importlib
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ridgeval.errors import ImplementationError
from ridgeval.io_utils import load_yaml
from ridgeval.types import (
    Correspondence,
    CreateTemplateResult,
    ProductIdentifier,
    ReturnStatus,
    Sample,
    SearchResult,
    SubmissionIdentification,
    TemplateArchive,
    TemplateData,
    TemplateType,
)

LOGGER = logging.getLogger("ridgeval.implementations")

IMPLEMENTATION_CONFIG_NAME = "implementation.yaml"
DEFAULT_IMPLEMENTATION_MODULE = "ridgeval.implementations.randimpl"


class ExtractionInterface(ABC):
    """Template creation and reference database construction."""

    @abstractmethod
    def get_identification(self) -> SubmissionIdentification:
        ...

    @abstractmethod
    def create_template(
        self,
        template_type: TemplateType,
        identifier: str,
        samples: Sequence[Sample],
    ) -> CreateTemplateResult:
        ...

    @abstractmethod
    def extract_template_data(
        self,
        template_type: TemplateType,
        template: CreateTemplateResult,
    ) -> Optional[Tuple[ReturnStatus, List[TemplateData]]]:
        """Return features encoded in a template, or None if not supported."""

    @abstractmethod
    def create_reference_database(
        self,
        archive: TemplateArchive,
        database_dir: Path,
        max_size: int,
    ) -> ReturnStatus:
        ...


class SearchInterface(ABC):
    """One-to-many search against a reference database directory."""

    @abstractmethod
    def get_identification(self) -> Optional[ProductIdentifier]:
        ...

    @abstractmethod
    def search(self, probe_template: bytes, max_candidates: int) -> SearchResult:
        ...

    @abstractmethod
    def extract_correspondence(
        self,
        probe_template: bytes,
        result: SearchResult,
    ) -> Optional[Tuple[ReturnStatus, List[List[Correspondence]]]]:
        """Return minutia pairs per candidate, or None if not supported."""


def load_implementation_config(config_dir: Path) -> Dict[str, Any]:
    path = Path(config_dir) / IMPLEMENTATION_CONFIG_NAME
    if not path.exists():
        LOGGER.debug("No %s in %s; using defaults", IMPLEMENTATION_CONFIG_NAME, config_dir)
        return {}
    return load_yaml(path)


def _import_module(config: Dict[str, Any]):
    name = config.get("module", DEFAULT_IMPLEMENTATION_MODULE)
    try:
        return importlib.import_module(name)
    except ImportError as exc:
        raise ImplementationError(f"Could not import implementation module {name!r} ({exc})") from exc


def load_extraction_implementation(config_dir: Path) -> ExtractionInterface:
    config = load_implementation_config(config_dir)
    module = _import_module(config)
    impl = module.get_extraction_implementation(Path(config_dir), config)
    LOGGER.info("Loaded extraction implementation %s", type(impl).__name__)
    return impl


def load_search_implementation(config_dir: Path, database_dir: Path) -> SearchInterface:
    config = load_implementation_config(config_dir)
    module = _import_module(config)
    impl = module.get_search_implementation(Path(config_dir), Path(database_dir), config)
    LOGGER.info("Loaded search implementation %s", type(impl).__name__)
    return impl
