"""Slot Registry: fixed pool of nameable task classes.

Manifesto:
The engine finds task implementations only by class name, and a class name
must exist before any job is built.  Behaviors, on the other hand, are chosen
at graph-build time.  The slot registry bridges the two: it provisions a
fixed table of trampoline classes per role when this module is imported, and
``allocate`` binds the next free one to a behavior by writing the behavior's
portable name and JSON arguments into the job configuration.

ARCHITECTURE
────────────
::

    allocate(role, conf, behavior, *args) → (conf', SlotClass)
      conf["jobloom.<role>.next"]            = index + 1
      conf["jobloom.<role>.<index>.behavior"] = "module:qualname"
      conf["jobloom.<role>.<index>.args"]     = JSON array

    Provisioned at import (SLOT_CAPACITY per role):
      Mapper_0 … Mapper_63            (role=map)
      Combiner_0 … Combiner_63        (role=combine)
      Reducer_0 … Reducer_63          (role=reduce)
      Partitioner_0 … Partitioner_63  (role=partition)

    Inside the task process:
      SlotClass() → .setup(conf)   ─ resolve + behavior(conf, *args), once
                  → .run(context)  ─ records in, records out
                  → .partition(key, val, n)   (partitioner slots)

Slot counters live in the configuration, never in process state, so
independent graph builds never see each other's indices.

Tags:
    jobloom, execution, slots, trampolines, dynamic-binding

Doc-Types:
    api-reference
"""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from jobloom.core.conf import Configuration, load_object, qualified_name
from jobloom.core.errors import BindingError, ConfigError, SlotCapacityError
from jobloom.core.logging import get_logger
from jobloom.execution.behaviors import behavior_ref, is_raw, resolve_behavior
from jobloom.execution.context import TaskContext
from jobloom.execution.sink import emit

logger = get_logger(__name__)

SLOT_CAPACITY = 64


class Role(str, Enum):
    MAP = "map"
    COMBINE = "combine"
    REDUCE = "reduce"
    PARTITION = "partition"


_CLASS_PREFIX = {
    Role.MAP: "Mapper",
    Role.COMBINE: "Combiner",
    Role.REDUCE: "Reducer",
    Role.PARTITION: "Partitioner",
}


def next_key(role: Role) -> str:
    return f"jobloom.{role.value}.next"


def behavior_key(role: Role, index: int) -> str:
    return f"jobloom.{role.value}.{index}.behavior"


def args_key(role: Role, index: int) -> str:
    return f"jobloom.{role.value}.{index}.args"


@dataclass(frozen=True)
class SlotEntry:
    """One allocated binding as stored in a configuration."""

    role: Role
    index: int
    behavior_ref: str
    args: tuple[Any, ...]


def read_entry(conf: Configuration, role: Role, index: int) -> SlotEntry:
    """Read and decode the binding for ``(role, index)`` from ``conf``."""
    ref = conf.get(behavior_key(role, index))
    if ref is None:
        raise BindingError(f"No {role.value} slot {index} bound in configuration").with_context(
            role=role.value, slot=index
        )
    try:
        args = json.loads(conf.get(args_key(role, index), "[]"))
    except json.JSONDecodeError as e:
        raise BindingError(f"Cannot parse arguments of {role.value} slot {index}", cause=e).with_context(
            role=role.value, slot=index
        ) from e
    return SlotEntry(role, index, ref, tuple(args))


def allocate(
    role: Role | str,
    conf: Configuration,
    behavior: Callable | str,
    *args: Any,
) -> tuple[Configuration, type[TaskSlot]]:
    """Bind ``behavior`` and ``args`` to the next free slot for ``role``.

    Returns the updated configuration and the slot class the engine should
    instantiate.

    Raises:
        SlotCapacityError: When every provisioned class for ``role`` is taken
        BindingError: When the behavior has no portable name or the
            arguments do not read back from JSON as the same values
            (tuples, non-string dict keys)
    """
    role = Role(role)
    index = conf.get_int(next_key(role), 0)
    if index >= SLOT_CAPACITY:
        raise SlotCapacityError(role.value, index, SLOT_CAPACITY)

    ref = behavior_ref(behavior)
    try:
        encoded = json.dumps(list(args))
    except (TypeError, ValueError) as e:
        raise BindingError(f"Arguments for {ref} are not serializable", cause=e).with_context(
            role=role.value, slot=index
        ) from e

    if json.loads(encoded) != list(args):
        raise BindingError(f"Arguments for {ref} do not survive JSON encoding").with_context(
            role=role.value, slot=index
        )

    conf = conf.assoc(
        {
            next_key(role): index + 1,
            behavior_key(role, index): ref,
            args_key(role, index): encoded,
        }
    )
    logger.debug("slots.allocated", role=role.value, slot=index, behavior=ref)
    return conf, slot_class(role, index)


def slot_class(role: Role | str, index: int) -> type[TaskSlot]:
    """The provisioned class for ``(role, index)``."""
    role = Role(role)
    if not 0 <= index < SLOT_CAPACITY:
        raise SlotCapacityError(role.value, index, SLOT_CAPACITY)
    return globals()[f"{_CLASS_PREFIX[role]}_{index}"]


def load_slot(name: str) -> type[TaskSlot]:
    """Resolve a slot class from the name stored in a job configuration."""
    cls = load_object(name)
    if not (isinstance(cls, type) and issubclass(cls, TaskSlot)):
        raise ConfigError(f"{name!r} is not a task slot class")
    return cls


def slot_name(cls: type[TaskSlot]) -> str:
    return qualified_name(cls)


# =============================================================================
# Trampolines
# =============================================================================


class TaskSlot:
    """Base trampoline: delegates to the behavior bound to ``(role, index)``."""

    role: Role
    index: int

    def __init__(self) -> None:
        self._fn: Callable[..., Any] | None = None
        self._raw = False
        self.entry: SlotEntry | None = None

    def setup(self, conf: Configuration) -> Callable[..., Any]:
        """Resolve and invoke the bound behavior once; cache its result."""
        if self._fn is not None:
            return self._fn
        entry = read_entry(conf, self.role, self.index)
        try:
            behavior = resolve_behavior(entry.behavior_ref)
            fn = behavior(conf, *entry.args)
        except BindingError as e:
            e.with_context(role=self.role.value, slot=self.index)
            raise
        except Exception as e:
            raise BindingError(f"Behavior {entry.behavior_ref} failed during task setup", cause=e).with_context(
                role=self.role.value, slot=self.index
            ) from e
        if not callable(fn):
            raise BindingError(f"Behavior {entry.behavior_ref} did not return a function").with_context(
                role=self.role.value, slot=self.index
            )
        self.entry = entry
        self._fn = fn
        self._raw = is_raw(behavior)
        logger.debug("slots.bound", role=self.role.value, slot=self.index, behavior=entry.behavior_ref)
        return fn

    @property
    def raw(self) -> bool:
        return self._raw


class RecordTaskSlot(TaskSlot):
    """Map, combine and reduce slots: records in, records out."""

    def run(self, context: TaskContext) -> None:
        fn = self.setup(context.conf)
        if self.raw:
            fn(context)
            return
        emit(context, fn(context, context.input))


class MapperSlot(RecordTaskSlot):
    role = Role.MAP


class CombinerSlot(RecordTaskSlot):
    role = Role.COMBINE


class ReducerSlot(RecordTaskSlot):
    role = Role.REDUCE


class PartitionerSlot(TaskSlot):
    """Partition slots: ``fn(key, val, num_partitions) -> int``."""

    role = Role.PARTITION

    def partition(self, key: Any, val: Any, num_partitions: int) -> int:
        fn = self._fn
        if fn is None:
            raise BindingError("Partitioner used before setup").with_context(role=self.role.value, slot=self.index)
        return int(fn(key, val, num_partitions)) % num_partitions


_BASES: dict[Role, type[TaskSlot]] = {
    Role.MAP: MapperSlot,
    Role.COMBINE: CombinerSlot,
    Role.REDUCE: ReducerSlot,
    Role.PARTITION: PartitionerSlot,
}


def _provision() -> None:
    for role, base in _BASES.items():
        for index in range(SLOT_CAPACITY):
            name = f"{_CLASS_PREFIX[role]}_{index}"
            globals()[name] = type(
                name,
                (base,),
                {"role": role, "index": index, "__module__": __name__, "__qualname__": name},
            )


_provision()


__all__ = [
    "SLOT_CAPACITY",
    "Role",
    "SlotEntry",
    "TaskSlot",
    "MapperSlot",
    "CombinerSlot",
    "ReducerSlot",
    "PartitionerSlot",
    "allocate",
    "read_entry",
    "slot_class",
    "load_slot",
    "slot_name",
]
