"""
jobloom task execution.

Behavior registry, slot trampolines, task contexts, emission strategies,
counters and the engines that run compiled jobs.

Engines live in ``jobloom.execution.executors`` and are not imported here,
since they depend on ``jobloom.io``.
"""

from jobloom.execution.behaviors import (
    BehaviorRegistry,
    behavior,
    behavior_ref,
    get_default_registry,
    is_raw,
    reset_default_registry,
    resolve_behavior,
)
from jobloom.execution.context import (
    Counter,
    Counters,
    RecordWriter,
    TaskAttemptContext,
    TaskAttemptID,
    TaskContext,
    TaskInput,
)
from jobloom.execution.engine import Engine, JobResult, JobStatus
from jobloom.execution.sink import SinkAs, SinkKind, emit, emit_as, sink_as
from jobloom.execution.slots import SLOT_CAPACITY, Role, allocate, load_slot, slot_class

__all__ = [
    "BehaviorRegistry",
    "behavior",
    "behavior_ref",
    "resolve_behavior",
    "is_raw",
    "get_default_registry",
    "reset_default_registry",
    "Counter",
    "Counters",
    "RecordWriter",
    "TaskAttemptID",
    "TaskAttemptContext",
    "TaskContext",
    "TaskInput",
    "Engine",
    "JobResult",
    "JobStatus",
    "SinkAs",
    "SinkKind",
    "sink_as",
    "emit",
    "emit_as",
    "SLOT_CAPACITY",
    "Role",
    "allocate",
    "load_slot",
    "slot_class",
]
