"""Local Engine: a batch MapReduce engine on one machine.

Manifesto:
Compiled jobs need something to run on that behaves like a conventional
batch MapReduce engine: input splits, map tasks, an optional per-map-task
combine, a partition function, a sort/group shuffle and reduce tasks, with
input and output formats named in the configuration.  ``LocalEngine`` is
that engine for development and tests.  Every task starts from the job
configuration in its dict form and resolves its slot classes by name, the
same way a task on a cluster would.

ARCHITECTURE
────────────
::

    LocalEngine(mode="inline" | "process", max_workers=None)
      └── .run_job(conf, name) → JobResult
            1. output format: check_output_specs, setup_job
            2. input format:  get_splits
            3. run_map_task × split      ─ map [→ combine] → partition
            4. run_reduce_task × reducer ─ sort, group, reduce
            5. output format: commit_job, get_output_paths

    Map-only jobs (jobloom.reduce.tasks = 0) write map output directly
    through the job's output format.

    Tasks are top-level functions taking plain data, so they can be sent
    to a ProcessPoolExecutor.  In process mode failures come back as data
    (``_call_task``) rather than as pickled exceptions.

Related modules:
    engine.py  : Engine protocol, JobResult
    slots.py   : trampoline classes the tasks instantiate

Tags:
    jobloom, execution, engine, mapreduce, shuffle, process-pool

Doc-Types:
    api-reference
"""

from __future__ import annotations

import json
import zlib
from collections.abc import Callable, Iterable
from concurrent.futures import ProcessPoolExecutor
from typing import Any

from jobloom.core.conf import (
    COMBINER_CLASS,
    MAP_OUTPUT_KEY_CLASS,
    MAP_OUTPUT_VALUE_CLASS,
    MAPPER_CLASS,
    NUM_REDUCERS,
    PARTITIONER_CLASS,
    REDUCER_CLASS,
    Configuration,
)
from jobloom.core.errors import JobError, TaskFailedError
from jobloom.core.logging import LogContext, get_logger
from jobloom.core.settings import EngineMode, get_settings
from jobloom.execution.context import Counters, TaskAttemptContext, TaskAttemptID, TaskContext
from jobloom.execution.engine import JobResult, JobStatus
from jobloom.execution.slots import load_slot
from jobloom.io.formats import InputSplit, coerce, input_format, output_format

logger = get_logger(__name__)

Record = tuple[Any, Any]


class ShuffleWriter:
    """Collects map-side output in memory, coerced to the map output classes."""

    def __init__(self, key_type: type = object, val_type: type = object):
        self.key_type = key_type
        self.val_type = val_type
        self.records: list[Record] = []

    def write(self, key: Any, val: Any) -> None:
        self.records.append((coerce(key, self.key_type), coerce(val, self.val_type)))

    def close(self, context: TaskAttemptContext) -> None:
        pass


def sort_records(records: Iterable[Record]) -> list[Record]:
    """Stable sort by key; keys of different types are ordered by type name."""
    records = list(records)
    try:
        return sorted(records, key=lambda kv: (type(kv[0]).__name__, kv[0]))
    except TypeError:
        return sorted(records, key=lambda kv: (type(kv[0]).__name__, repr(kv[0])))


def default_partition(key: Any, val: Any, num_partitions: int) -> int:
    """Stable hash of the key's JSON form (identical across processes)."""
    data = json.dumps(key, sort_keys=True, default=repr).encode("utf-8")
    return zlib.crc32(data) % num_partitions


def _identity(context: TaskContext) -> None:
    for key, val in context.input:
        context.write(key, val)


def _run_slot(context: TaskContext, class_key: str) -> None:
    name = context.conf.get(class_key)
    if not name:
        _identity(context)
        return
    load_slot(name)().run(context)


def _run_task(context: TaskContext, class_key: str, stage: str) -> None:
    """Run the slot named under ``class_key``, then close the task context."""
    try:
        _run_slot(context, class_key)
    except Exception as e:
        try:
            context.close()
        except Exception as close_error:
            logger.error("engine.task_close_failed", attempt=str(context.attempt_id), error=str(close_error))
        raise TaskFailedError(stage, e, attempt=str(context.attempt_id)) from e
    try:
        context.close()
    except Exception as e:
        raise TaskFailedError(stage, e, attempt=str(context.attempt_id)) from e


def _partitioner(conf: Configuration) -> Callable[[Any, Any, int], int]:
    name = conf.get(PARTITIONER_CLASS)
    if not name:
        return default_partition
    try:
        slot = load_slot(name)()
        slot.setup(conf)
    except Exception as e:
        raise TaskFailedError("partition", e) from e
    return slot.partition


def _map_output_types(conf: Configuration) -> tuple[type, type]:
    return conf.get_class(MAP_OUTPUT_KEY_CLASS, object), conf.get_class(MAP_OUTPUT_VALUE_CLASS, object)


# =============================================================================
# Tasks
# =============================================================================


def run_map_task(conf_dict: dict[str, str], split: InputSplit, task: int, job: str) -> dict[str, Any]:
    """Run one map task over ``split``.

    Returns ``{"partitions": [[record, ...] per reducer], "counters": {...}}``.
    """
    conf = Configuration.from_dict(conf_dict)
    attempt = TaskAttemptID(job, "m", task)
    counters = Counters()
    num_reducers = conf.get_int(NUM_REDUCERS, 1)
    try:
        records = input_format(conf).read(conf, split)
    except Exception as e:
        raise TaskFailedError("input", e, attempt=str(attempt)) from e

    if num_reducers == 0:
        try:
            writer = output_format(conf).get_record_writer(TaskAttemptContext(conf, attempt))
        except Exception as e:
            raise TaskFailedError("output", e, attempt=str(attempt)) from e
        context = TaskContext(conf, attempt, input=records, writer=writer, counters=counters)
        _run_task(context, MAPPER_CLASS, "map")
        return {"partitions": [], "counters": counters.to_dict()}

    try:
        key_type, val_type = _map_output_types(conf)
    except Exception as e:
        raise TaskFailedError("map", e, attempt=str(attempt)) from e
    shuffle = ShuffleWriter(key_type, val_type)
    _run_task(TaskContext(conf, attempt, input=records, writer=shuffle, counters=counters), MAPPER_CLASS, "map")
    output = shuffle.records

    if conf.get(COMBINER_CLASS):
        combined = ShuffleWriter(key_type, val_type)
        context = TaskContext(conf, attempt, input=sort_records(output), writer=combined, counters=counters)
        _run_task(context, COMBINER_CLASS, "combine")
        output = combined.records

    partition = _partitioner(conf)
    partitions: list[list[Record]] = [[] for _ in range(num_reducers)]
    for key, val in output:
        try:
            index = partition(key, val, num_reducers)
        except Exception as e:
            raise TaskFailedError("partition", e, attempt=str(attempt)) from e
        partitions[index].append((key, val))

    logger.debug("engine.map_task_finished", attempt=str(attempt), records=len(output))
    return {"partitions": partitions, "counters": counters.to_dict()}


def run_reduce_task(conf_dict: dict[str, str], partition: int, records: list[Record], job: str) -> dict[str, Any]:
    """Run one reduce task over the shuffled ``records`` of ``partition``."""
    conf = Configuration.from_dict(conf_dict)
    attempt = TaskAttemptID(job, "r", partition)
    counters = Counters()
    try:
        writer = output_format(conf).get_record_writer(TaskAttemptContext(conf, attempt))
    except Exception as e:
        raise TaskFailedError("output", e, attempt=str(attempt)) from e
    context = TaskContext(conf, attempt, input=sort_records(records), writer=writer, counters=counters)
    _run_task(context, REDUCER_CLASS, "reduce")
    logger.debug("engine.reduce_task_finished", attempt=str(attempt), records=len(records))
    return {"counters": counters.to_dict()}


def _call_task(fn: Callable[..., dict[str, Any]], *args: Any) -> dict[str, Any]:
    """Worker-process entry point; failures come back as plain data."""
    try:
        return {"ok": True, "result": fn(*args)}
    except TaskFailedError as e:
        cause = e.cause or e
        return {"ok": False, "stage": e.stage, "attempt": e.attempt, "error": f"{type(cause).__name__}: {cause}"}
    except Exception as e:
        return {"ok": False, "stage": "task", "attempt": None, "error": f"{type(e).__name__}: {e}"}


# =============================================================================
# Engine
# =============================================================================


class LocalEngine:
    """Runs jobs on this machine, inline or in a process pool.

    Parameters
    ----------
    mode : EngineMode | str | None
        ``"inline"`` runs every task in the calling process, one after
        another; ``"process"`` runs each task in a pool worker.  Defaults to
        ``LoomSettings.engine_mode``.
    max_workers : int | None
        Pool size in process mode (defaults to ``LoomSettings.max_workers``).
    """

    name = "local"

    def __init__(self, mode: EngineMode | str | None = None, max_workers: int | None = None):
        settings = get_settings()
        self.mode = EngineMode(mode or settings.engine_mode)
        self.max_workers = max_workers or settings.max_workers
        self.submitted: list[str] = []

    def run_job(self, conf: Configuration, name: str) -> JobResult:
        self.submitted.append(name)
        with LogContext(job=name):
            logger.info("engine.job_started", mode=self.mode.value)
            try:
                result = self._run(conf, name)
            except TaskFailedError as e:
                logger.error("engine.job_failed", stage=e.stage, attempt=e.attempt, error=str(e))
                return JobResult(name, JobStatus.FAILED, error=e.cause or e, stage=e.stage)
            except Exception as e:
                logger.exception("engine.job_crashed", error=str(e))
                return JobResult(name, JobStatus.FAILED, error=e, stage="engine")
            logger.info("engine.job_succeeded", outputs=len(result.output_paths))
            return result

    def _run(self, conf: Configuration, name: str) -> JobResult:
        try:
            out = output_format(conf)
            out.check_output_specs(conf)
        except Exception as e:
            raise TaskFailedError("output", e) from e
        try:
            splits = input_format(conf).get_splits(conf)
        except Exception as e:
            raise TaskFailedError("input", e) from e
        try:
            out.setup_job(conf)
        except Exception as e:
            raise TaskFailedError("output", e) from e

        num_reducers = conf.get_int(NUM_REDUCERS, 1)
        conf_dict = conf.to_dict()
        counters = Counters()

        map_args = [(conf_dict, split, i, name) for i, split in enumerate(splits)]
        map_results = self._run_tasks("map", run_map_task, map_args)
        partitions: list[list[Record]] = [[] for _ in range(num_reducers)]
        for result in map_results:
            counters.merge(result["counters"])
            for index, records in enumerate(result["partitions"]):
                partitions[index].extend(records)
        logger.debug("engine.map_phase_finished", tasks=len(map_results))

        if num_reducers > 0:
            reduce_args = [(conf_dict, index, records, name) for index, records in enumerate(partitions)]
            for result in self._run_tasks("reduce", run_reduce_task, reduce_args):
                counters.merge(result["counters"])
            logger.debug("engine.reduce_phase_finished", tasks=num_reducers)

        try:
            out.commit_job(conf)
            paths = out.get_output_paths(conf)
        except Exception as e:
            raise TaskFailedError("output", e) from e
        return JobResult(name, JobStatus.SUCCEEDED, counters.to_dict(), paths)

    def _run_tasks(
        self, stage: str, fn: Callable[..., dict[str, Any]], arglist: list[tuple[Any, ...]]
    ) -> list[dict[str, Any]]:
        """Run every task of one phase; any failure surfaces as :class:`TaskFailedError`."""
        if self.mode == EngineMode.INLINE or not arglist:
            try:
                return [fn(*args) for args in arglist]
            except TaskFailedError:
                raise
            except Exception as e:
                raise TaskFailedError(stage, e) from e

        # pickling errors and a broken pool are failures of the phase, not of one task
        try:
            with ProcessPoolExecutor(max_workers=self.max_workers) as pool:
                futures = [pool.submit(_call_task, fn, *args) for args in arglist]
                outcomes = [future.result() for future in futures]
        except Exception as e:
            raise TaskFailedError(stage, e) from e

        results = []
        for outcome in outcomes:
            if not outcome["ok"]:
                raise TaskFailedError(outcome["stage"], JobError(outcome["error"]), attempt=outcome["attempt"])
            results.append(outcome["result"])
        return results


__all__ = [
    "LocalEngine",
    "ShuffleWriter",
    "default_partition",
    "sort_records",
    "run_map_task",
    "run_reduce_task",
]
