"""Counter helpers for behaviors.

Counter names may be given as:

- ``None`` (yields ``None``),
- an existing :class:`Counter`,
- a string, naming a counter in the ``"user"`` group,
- a ``(group, name)`` tuple.
"""

from __future__ import annotations

from typing import Any

from jobloom.execution.context import Counter, Counters, TaskContext

DEFAULT_GROUP = "user"

CounterName = Counter | str | tuple[str, str] | None


def counter(context: TaskContext | None, cname: CounterName) -> Counter | None:
    """Get the counter named by ``cname`` for ``context``."""
    if cname is None:
        return None
    if isinstance(cname, Counter):
        return cname
    if context is None:
        return None
    if isinstance(cname, str):
        return context.get_counter(DEFAULT_GROUP, cname)
    group, name = cname
    return context.get_counter(group or DEFAULT_GROUP, name)


def get(context: TaskContext | None, cname: CounterName) -> int | None:
    """Current value of the counter named by ``cname``."""
    c = counter(context, cname)
    return c.get_value() if c is not None else None


def inc(context: TaskContext | None, cname: CounterName, value: int = 1) -> None:
    """Increase the counter named by ``cname`` by ``value``."""
    c = counter(context, cname)
    if c is not None:
        c.increment(value)


def set_value(context: TaskContext | None, cname: CounterName, value: int) -> None:
    """Set the counter named by ``cname`` to ``value``."""
    c = counter(context, cname)
    if c is not None:
        c.set_value(value)


def counters_map(counters: Counters | dict[str, dict[str, int]] | Any) -> dict[str, dict[str, int]]:
    """Nested ``{group: {name: value}}`` view of job or task counters."""
    if counters is None:
        return {}
    if isinstance(counters, Counters):
        return counters.to_dict()
    if isinstance(counters, dict):
        return {g: dict(names) for g, names in counters.items()}
    # JobResult and anything else carrying counters
    return counters_map(getattr(counters, "counters", None))


__all__ = ["DEFAULT_GROUP", "counter", "get", "inc", "set_value", "counters_map"]
