"""Load per-worker result logs back into pandas for downstream analysis."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List

import pandas as pd

from ridgeval.results.logs import NA, LogKind

LOGGER = logging.getLogger("ridgeval.results.collect")


def find_result_logs(output_dir: Path, kind: LogKind) -> List[Path]:
    """Every log of ``kind`` in ``output_dir``, sorted by name."""
    if kind is LogKind.CREATE_REFERENCE_DATABASE:
        pattern = f"{kind.value}.log"
    else:
        pattern = f"{kind.value}-*.log"
    return sorted(Path(output_dir).glob(pattern))


def read_result_log(path: Path) -> pd.DataFrame:
    df = pd.read_csv(
        path,
        na_values=[NA],
        keep_default_na=False,
        escapechar="\\",
    )
    df.columns = [str(col).strip('"') for col in df.columns]
    df["source_log"] = path.name
    return df


def load_result_logs(output_dir: Path, kind: LogKind) -> pd.DataFrame:
    """Concatenate every per-worker log of one kind into a single frame."""
    paths = find_result_logs(output_dir, kind)
    if not paths:
        LOGGER.warning("No %s logs found in %s", kind.value, output_dir)
        return pd.DataFrame()
    frames = [read_result_log(path) for path in paths]
    df = pd.concat(frames, ignore_index=True)
    LOGGER.info("Loaded %d rows from %d %s logs", len(df), len(paths), kind.value)
    return df
