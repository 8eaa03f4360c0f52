"""Task contexts: what a running task sees.

Manifesto:
A task knows three things about the world: its own configuration, its
attempt identity and the streams it reads and writes.  ``TaskContext``
bundles those plus the task's counters and any per-task state (such as the
demultiplexer's writer cache) that must be closed when the task ends.

ARCHITECTURE
────────────
::

    TaskAttemptID(job, task_type, task, attempt)
    TaskAttemptContext(conf, attempt_id)       ─ what an OutputFormat needs
      └── TaskContext                          ─ what a behavior needs
            ├── .input      TaskInput          ─ tuple stream (+ grouped views)
            ├── .writer     RecordWriter       ─ job output / shuffle
            ├── .counters   Counters
            ├── .write(key, val)
            ├── .state(key, factory)           ─ lazily created per-task state
            └── .close()                       ─ close state, then writer

    Counters ── .get_counter(group, name) → Counter(increment, value, set)

Tags:
    jobloom, execution, task-context, counters, grouping

Doc-Types:
    api-reference
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from itertools import groupby
from typing import Any, Protocol, runtime_checkable

from jobloom.core.conf import Configuration
from jobloom.core.logging import get_logger

logger = get_logger(__name__)


@runtime_checkable
class RecordWriter(Protocol):
    """Writer for one task's records."""

    def write(self, key: Any, val: Any) -> None: ...

    def close(self, context: TaskAttemptContext) -> None: ...


@dataclass(frozen=True)
class TaskAttemptID:
    """Identity of one attempt of one task of one job."""

    job: str = "local"
    task_type: str = "m"  # "m" for map-side tasks, "r" for reduce-side tasks
    task: int = 0
    attempt: int = 0

    def __str__(self) -> str:
        return f"attempt_{self.job}_{self.task_type}_{self.task:06d}_{self.attempt}"


@dataclass
class TaskAttemptContext:
    """Configuration plus attempt identity."""

    conf: Configuration
    attempt_id: TaskAttemptID = field(default_factory=TaskAttemptID)


# =============================================================================
# Counters
# =============================================================================


class Counter:
    """A named, thread-safe counter."""

    def __init__(self, group: str, name: str, value: int = 0):
        self.group = group
        self.name = name
        self._value = value
        self._lock = threading.Lock()

    def increment(self, n: int = 1) -> None:
        with self._lock:
            self._value += n

    def get_value(self) -> int:
        with self._lock:
            return self._value

    def set_value(self, value: int) -> None:
        with self._lock:
            self._value = value

    def __repr__(self) -> str:
        return f"Counter({self.group!r}, {self.name!r}, {self.get_value()})"


class Counters:
    """Counter groups for one task or one job."""

    def __init__(self) -> None:
        self._groups: dict[str, dict[str, Counter]] = {}
        self._lock = threading.Lock()

    def get_counter(self, group: str, name: str) -> Counter:
        with self._lock:
            counters = self._groups.setdefault(group, {})
            if name not in counters:
                counters[name] = Counter(group, name)
            return counters[name]

    def groups(self) -> list[str]:
        with self._lock:
            return sorted(self._groups)

    def to_dict(self) -> dict[str, dict[str, int]]:
        """Nested ``{group: {name: value}}`` snapshot."""
        with self._lock:
            groups = {g: dict(cs) for g, cs in self._groups.items()}
        return {g: {n: c.get_value() for n, c in cs.items()} for g, cs in groups.items()}

    def merge(self, other: Counters | dict[str, dict[str, int]]) -> None:
        """Add the values of ``other`` into these counters."""
        snapshot = other.to_dict() if isinstance(other, Counters) else other
        for group, names in snapshot.items():
            for name, value in names.items():
                self.get_counter(group, name).increment(value)


# =============================================================================
# Task input
# =============================================================================


class TaskInput:
    """Stream of ``(key, val)`` tuples with grouped views.

    Reduce-side input arrives sorted by key, so grouping is by runs of equal
    keys.  Group value sequences are materialized as lists.  A ``TaskInput``
    can be consumed once.
    """

    def __init__(self, tuples: Iterable[tuple[Any, Any]]):
        self._tuples = iter(tuples)

    def __iter__(self) -> Iterator[tuple[Any, Any]]:
        return self.keyvals()

    def keyvals(self) -> Iterator[tuple[Any, Any]]:
        for key, val in self._tuples:
            yield key, val

    def keys(self) -> Iterator[Any]:
        for key, _ in self._tuples:
            yield key

    def vals(self) -> Iterator[Any]:
        for _, val in self._tuples:
            yield val

    def _groups(self) -> Iterator[tuple[Any, list[tuple[Any, Any]]]]:
        for key, group in groupby(self._tuples, key=lambda kv: kv[0]):
            yield key, list(group)

    def keygroups(self) -> Iterator[Any]:
        for key, _ in self._groups():
            yield key

    def valgroups(self) -> Iterator[list[Any]]:
        for _, group in self._groups():
            yield [v for _, v in group]

    def keyvalgroups(self) -> Iterator[tuple[Any, list[Any]]]:
        for key, group in self._groups():
            yield key, [v for _, v in group]

    def keykeyvalgroups(self) -> Iterator[tuple[Any, list[tuple[Any, Any]]]]:
        for key, group in self._groups():
            yield key, group

    def keykeygroups(self) -> Iterator[tuple[Any, list[Any]]]:
        for key, group in self._groups():
            yield key, [k for k, _ in group]

    def keysgroups(self) -> Iterator[list[Any]]:
        for _, group in self._groups():
            yield [k for k, _ in group]


# =============================================================================
# Task context
# =============================================================================


class TaskContext(TaskAttemptContext):
    """Everything a running behavior can reach."""

    def __init__(
        self,
        conf: Configuration,
        attempt_id: TaskAttemptID | None = None,
        *,
        input: TaskInput | Iterable[tuple[Any, Any]] | None = None,
        writer: RecordWriter | None = None,
        counters: Counters | None = None,
    ):
        super().__init__(conf, attempt_id or TaskAttemptID())
        if input is not None and not isinstance(input, TaskInput):
            input = TaskInput(input)
        self.input = input if input is not None else TaskInput(())
        self.writer = writer
        self.counters = counters or Counters()
        self._state: dict[str, Any] = {}
        self._close_hooks: list[Callable[[TaskContext], None]] = []
        self._lock = threading.Lock()

    def get_counter(self, group: str, name: str) -> Counter:
        return self.counters.get_counter(group, name)

    def write(self, key: Any, val: Any) -> None:
        if self.writer is None:
            raise RuntimeError(f"Task {self.attempt_id} has no output writer")
        self.writer.write(key, val)

    def state(self, key: str, factory: Callable[[TaskContext], Any]) -> Any:
        """Return per-task state under ``key``, creating it on first use.

        State objects with a ``close(context)`` method are closed by
        :meth:`close` before the task's writer.
        """
        with self._lock:
            if key not in self._state:
                value = factory(self)
                self._state[key] = value
                if callable(getattr(value, "close", None)):
                    self._close_hooks.append(value.close)
            return self._state[key]

    def close(self) -> None:
        """Close per-task state, then the task's writer.

        Every hook and the writer are attempted; the first failure is raised.
        """
        with self._lock:
            hooks, self._close_hooks = self._close_hooks, []
        first: BaseException | None = None
        for hook in hooks:
            try:
                hook(self)
            except Exception as e:
                logger.error("task.close_hook_failed", attempt=str(self.attempt_id), error=str(e))
                if first is None:
                    first = e
        if self.writer is not None:
            try:
                self.writer.close(self)
            except Exception as e:
                logger.error("task.writer_close_failed", attempt=str(self.attempt_id), error=str(e))
                if first is None:
                    first = e
        if first is not None:
            raise first


__all__ = [
    "RecordWriter",
    "TaskAttemptID",
    "TaskAttemptContext",
    "Counter",
    "Counters",
    "TaskInput",
    "TaskContext",
]
