"""Fork/join execution of a sharded workload across worker processes.

Each shard runs in its own process; workers share nothing and write their own
PID-named logs, so the parent only has to wait for them. A failing worker
never stops its siblings: the parent reaps every child and reports the
failures afterwards.
"""

from __future__ import annotations

import logging
import multiprocessing
import sys
import traceback
from multiprocessing.connection import wait as wait_for_sentinels
from typing import Callable, Dict, List, Sequence, Tuple

from ridgeval.errors import OrchestrationError
from ridgeval.types import ReturnStatus, combine_statuses
from ridgeval.workload.sharding import split

LOGGER = logging.getLogger("ridgeval.workload.orchestrator")

# Exit status of a worker whose task raised.
WORKER_FAILURE_EXIT_CODE = 70

ShardTask = Callable[[List[int]], None]


def _worker_main(shard: List[int], task: ShardTask) -> None:
    try:
        task(shard)
    except Exception:
        traceback.print_exc(file=sys.stderr)
        sys.stderr.flush()
        sys.exit(WORKER_FAILURE_EXIT_CODE)


def run_in_process(shard: List[int], task: ShardTask) -> ReturnStatus:
    """Run one shard in the caller with the same containment a worker gets."""
    try:
        task(shard)
    except Exception as exc:
        LOGGER.exception("Shard of %d items failed", len(shard))
        return ReturnStatus.failure(f"{type(exc).__name__}: {exc}")
    return ReturnStatus()


def spawn_workers(shards: Sequence[List[int]], task: ShardTask) -> List[multiprocessing.Process]:
    """Start one process per shard.

    The fork start method is used so that ``task`` (usually a closure over an
    implementation instance) is inherited rather than pickled.
    """
    context = multiprocessing.get_context("fork")
    processes: List[multiprocessing.Process] = []
    for idx, shard in enumerate(shards, start=1):
        process = context.Process(
            target=_worker_main,
            args=(shard, task),
            name=f"ridgeval-worker-{idx}",
        )
        try:
            process.start()
        except OSError as exc:
            raise OrchestrationError(f"Error starting worker {idx}/{len(shards)}: {exc}") from exc
        LOGGER.debug("Started worker %d/%d pid=%s (%d items)", idx, len(shards), process.pid, len(shard))
        processes.append(process)
    return processes


def wait_for_exit(processes: Sequence[multiprocessing.Process]) -> List[int]:
    """Block until every process has exited; return exit codes in spawn order."""
    pending: Dict[int, Tuple[int, multiprocessing.Process]] = {
        process.sentinel: (idx, process) for idx, process in enumerate(processes)
    }
    exit_codes: List[int] = [0] * len(processes)
    while pending:
        try:
            ready = wait_for_sentinels(list(pending))
        except InterruptedError:
            continue
        except OSError as exc:
            raise OrchestrationError(f"Error while reaping workers: {exc}") from exc
        for sentinel in ready:
            idx, process = pending.pop(sentinel)
            process.join()
            if process.exitcode is None:
                raise OrchestrationError(f"Worker pid={process.pid} vanished without an exit status")
            exit_codes[idx] = process.exitcode
            LOGGER.debug("Reaped worker pid=%s exit=%s", process.pid, process.exitcode)
    return exit_codes


def run_sharded(indices: Sequence[int], num_workers: int, task: ShardTask) -> ReturnStatus:
    """Split ``indices`` into ``num_workers`` shards and run ``task`` on each.

    ``num_workers == 0`` does nothing. Too many workers raises
    InvalidArgumentError before any process starts.
    """
    shards = split(indices, num_workers)
    if not shards:
        return ReturnStatus()
    if len(shards) == 1:
        return run_in_process(shards[0], task)

    processes = spawn_workers(shards, task)
    exit_codes = wait_for_exit(processes)
    statuses = [
        ReturnStatus() if code == 0 else ReturnStatus.failure(f"exited with status {code}")
        for code in exit_codes
    ]
    status = combine_statuses(statuses)
    if not status:
        LOGGER.warning("Workers failed: %s", status.message)
    return status
