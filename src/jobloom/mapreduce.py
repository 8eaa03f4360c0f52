"""Task-level API: slot allocation, input views and output shaping.

Behaviors are top-level functions ``behavior(conf, *args)`` returning the
function a task runs: ``fn(context, input)`` returning the output records
(see :func:`sink_as` for other output shapes), or for raw behaviors
``fn(context)`` writing through the context itself.

Example::

    def word_mapper(conf):
        def run(context, input):
            return ((w, 1) for line in mr.vals(input) for w in line.split())
        return run

    conf, cls = mr.mapper(conf, word_mapper)
    conf = mr.set_mapper(conf, cls)
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from typing import Any

from jobloom.core.conf import (
    COMBINER_CLASS,
    MAPPER_CLASS,
    PARTITIONER_CLASS,
    REDUCER_CLASS,
    Configuration,
)
from jobloom.execution.context import TaskAttemptContext, TaskAttemptID, TaskInput
from jobloom.execution.counters import counters_map
from jobloom.execution.sink import SinkAs, SinkKind, sink_as
from jobloom.execution.slots import Role, TaskSlot, allocate, slot_name

# =============================================================================
# Slot allocation
# =============================================================================


def mapper(conf: Configuration, behavior: Callable | str, *args: Any) -> tuple[Configuration, type[TaskSlot]]:
    """Allocate a mapper slot invoking ``behavior(conf, *args)`` at task setup.

    ``args`` must be JSON-serializable.  Returns the updated configuration
    and the slot class to configure as the job's mapper.
    """
    return allocate(Role.MAP, conf, behavior, *args)


def combiner(conf: Configuration, behavior: Callable | str, *args: Any) -> tuple[Configuration, type[TaskSlot]]:
    """As :func:`mapper`, for the combine step."""
    return allocate(Role.COMBINE, conf, behavior, *args)


def reducer(conf: Configuration, behavior: Callable | str, *args: Any) -> tuple[Configuration, type[TaskSlot]]:
    """As :func:`mapper`, for the reduce step."""
    return allocate(Role.REDUCE, conf, behavior, *args)


def partitioner(conf: Configuration, behavior: Callable | str, *args: Any) -> tuple[Configuration, type[TaskSlot]]:
    """Allocate a partitioner slot.

    ``behavior(conf, *args)`` must return ``fn(key, val, num_partitions)``
    returning an integer; it is taken modulo the reduce task count.
    """
    return allocate(Role.PARTITION, conf, behavior, *args)


def set_mapper(conf: Configuration, cls: type[TaskSlot]) -> Configuration:
    return conf.set(MAPPER_CLASS, slot_name(cls))


def set_combiner(conf: Configuration, cls: type[TaskSlot]) -> Configuration:
    return conf.set(COMBINER_CLASS, slot_name(cls))


def set_reducer(conf: Configuration, cls: type[TaskSlot]) -> Configuration:
    return conf.set(REDUCER_CLASS, slot_name(cls))


def set_partitioner(conf: Configuration, cls: type[TaskSlot]) -> Configuration:
    return conf.set(PARTITIONER_CLASS, slot_name(cls))


def tac(conf: Configuration, attempt_id: TaskAttemptID | None = None) -> TaskAttemptContext:
    """New task attempt context for ``conf``."""
    return TaskAttemptContext(conf, attempt_id or TaskAttemptID())


# =============================================================================
# Input views
# =============================================================================


def _input(input: TaskInput | Iterable[tuple[Any, Any]]) -> TaskInput:
    return input if isinstance(input, TaskInput) else TaskInput(input)


def keyvals(input) -> Iterator[tuple[Any, Any]]:
    return _input(input).keyvals()


def keys(input) -> Iterator[Any]:
    return _input(input).keys()


def vals(input) -> Iterator[Any]:
    return _input(input).vals()


def keygroups(input) -> Iterator[Any]:
    """Distinct keys of grouped (reduce-side) input."""
    return _input(input).keygroups()


def valgroups(input) -> Iterator[list[Any]]:
    """Value lists of grouped input."""
    return _input(input).valgroups()


def keyvalgroups(input) -> Iterator[tuple[Any, list[Any]]]:
    """``(key, [val, ...])`` pairs of grouped input."""
    return _input(input).keyvalgroups()


def keykeyvalgroups(input) -> Iterator[tuple[Any, list[tuple[Any, Any]]]]:
    return _input(input).keykeyvalgroups()


def keykeygroups(input) -> Iterator[tuple[Any, list[Any]]]:
    return _input(input).keykeygroups()


def keysgroups(input) -> Iterator[list[Any]]:
    return _input(input).keysgroups()


__all__ = [
    "mapper",
    "combiner",
    "reducer",
    "partitioner",
    "set_mapper",
    "set_combiner",
    "set_reducer",
    "set_partitioner",
    "tac",
    "keyvals",
    "keys",
    "vals",
    "keygroups",
    "valgroups",
    "keyvalgroups",
    "keykeyvalgroups",
    "keykeygroups",
    "keysgroups",
    "sink_as",
    "SinkAs",
    "SinkKind",
    "counters_map",
]
