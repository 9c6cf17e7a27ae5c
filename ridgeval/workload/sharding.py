"""Seeded shuffling of work-item indices and contiguous splitting into shards."""

from __future__ import annotations

from typing import List, Sequence

import numpy as np

from ridgeval.errors import InvalidArgumentError


def shuffle(n: int, seed: int) -> List[int]:
    """Return a permutation of ``range(n)`` fully determined by ``seed``."""
    if n < 0:
        raise InvalidArgumentError(f"Cannot shuffle a negative count ({n})")
    rng = np.random.Generator(np.random.PCG64(seed))
    return [int(idx) for idx in rng.permutation(n)]


def split(indices: Sequence[int], num_workers: int) -> List[List[int]]:
    """Split ``indices`` into ``num_workers`` contiguous, non-overlapping slices.

    Each slice gets ``len(indices) // num_workers`` items and the final slice
    also takes the remainder. Asking for more workers than items is an error
    rather than being clamped.
    """
    if num_workers < 0:
        raise InvalidArgumentError(f"Number of workers must not be negative ({num_workers})")
    if num_workers == 0:
        return []
    if num_workers > len(indices):
        raise InvalidArgumentError(
            f"Too many workers: {num_workers} requested for {len(indices)} work items"
        )
    if num_workers == 1:
        return [list(indices)]

    size = len(indices) // num_workers
    shards: List[List[int]] = []
    for idx in range(num_workers):
        start = idx * size
        stop = len(indices) if idx == num_workers - 1 else start + size
        shards.append(list(indices[start:stop]))
    return shards
