"""Emission strategies for task output.

A behavior returns a collection; how each element becomes a record is chosen
by a :class:`SinkKind` tag:

- ``keyvals`` (default): elements are ``(key, val)`` pairs
- ``keys``: elements are keys, values are ``None``
- ``vals``: elements are values, keys are ``None``
- ``none``: the collection is consumed and nothing is written

A collection is tagged with :func:`sink_as`.  A callable ``f(context, coll)``
may be used in place of a tag for custom emission (the demultiplexer's
``named_*`` and ``prefix_*`` sinks are such callables).
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from jobloom.execution.context import RecordWriter

if TYPE_CHECKING:
    from jobloom.execution.context import TaskContext

SinkFn = Callable[["TaskContext", Iterable[Any]], Any]


class SinkKind(str, Enum):
    NONE = "none"
    KEYS = "keys"
    VALS = "vals"
    KEYVALS = "keyvals"


@dataclass(frozen=True)
class SinkAs:
    """A collection annotated with how to emit it."""

    kind: SinkKind | SinkFn
    coll: Iterable[Any]


def sink_as(kind: SinkKind | str | SinkFn, coll: Iterable[Any]) -> SinkAs:
    """Annotate ``coll`` as containing values to emit as ``kind``."""
    if isinstance(kind, str):
        kind = SinkKind(kind)
    return SinkAs(kind, coll)


def _emit_none(writer: RecordWriter, coll: Iterable[Any]) -> int:
    for _ in coll:
        pass
    return 0


def _emit_keys(writer: RecordWriter, coll: Iterable[Any]) -> int:
    n = 0
    for key in coll:
        writer.write(key, None)
        n += 1
    return n


def _emit_vals(writer: RecordWriter, coll: Iterable[Any]) -> int:
    n = 0
    for val in coll:
        writer.write(None, val)
        n += 1
    return n


def _emit_keyvals(writer: RecordWriter, coll: Iterable[Any]) -> int:
    n = 0
    for key, val in coll:
        writer.write(key, val)
        n += 1
    return n


_EMITTERS: dict[SinkKind, Callable[[RecordWriter, Iterable[Any]], int]] = {
    SinkKind.NONE: _emit_none,
    SinkKind.KEYS: _emit_keys,
    SinkKind.VALS: _emit_vals,
    SinkKind.KEYVALS: _emit_keyvals,
}


def emit_as(kind: SinkKind | str, writer: RecordWriter, coll: Iterable[Any]) -> int:
    """Emit ``coll`` to ``writer`` with the strategy for ``kind``."""
    return _EMITTERS[SinkKind(kind)](writer, coll)


def emit(
    context: TaskContext,
    coll: Iterable[Any] | SinkAs | None,
    default: SinkKind = SinkKind.KEYVALS,
) -> int:
    """Emit a behavior's result for ``context``; returns the number of records written."""
    if coll is None:
        return 0
    if isinstance(coll, SinkAs):
        if isinstance(coll.kind, SinkKind):
            return _EMITTERS[coll.kind](context.writer, coll.coll)
        coll.kind(context, coll.coll)
        return 0
    return _EMITTERS[default](context.writer, coll)


__all__ = ["SinkKind", "SinkAs", "SinkFn", "sink_as", "emit", "emit_as"]
