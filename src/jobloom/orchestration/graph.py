"""Job graph builder.

A graph is built by chaining immutable :class:`Node` values::

    (graph.input(text.dseq("in/"))
        .map(word_mapper)
        .partition(str, int)
        .combine(sum_reducer)
        .reduce(sum_reducer)
        .output(jsonl.dsink(str, int, "out/"))
        .execute(conf, "word-count"))

Nodes only record what was asked for.  Turning chains into jobs (and
deciding where one job ends and the next begins) is the compiler's work.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Any

from jobloom.core.conf import Configuration
from jobloom.core.errors import InvalidGraphError
from jobloom.core.step import Step
from jobloom.execution.behaviors import behavior_ref
from jobloom.io.dseq import DSeq, DSink

if TYPE_CHECKING:
    from jobloom.execution.engine import Engine
    from jobloom.orchestration.runner import GraphResult


class NodeKind(str, Enum):
    SOURCE = "source"
    MAP = "map"
    PARTITION = "partition"
    COMBINE = "combine"
    REDUCE = "reduce"
    SINK = "sink"


@dataclass(frozen=True)
class Binding:
    """A behavior reference and its arguments."""

    behavior: str
    args: tuple[Any, ...] = ()


@dataclass(frozen=True, eq=False)
class Node:
    """One stage of a job graph.

    ``parent`` is the previous stage of the same chain (``None`` for
    sources).  A source's ``inputs`` are distributed sequences or nodes of
    other chains; the latter become job-to-job dependencies.
    """

    kind: NodeKind
    parent: Node | None = None
    inputs: tuple[DSeq | Node, ...] = ()
    binding: Binding | None = None
    key_type: type = object
    val_type: type = object
    num_reducers: int | None = None
    sink: DSink | None = None
    steps: tuple[Step, ...] = field(default=())

    # ── Chaining ─────────────────────────────────────────────────────

    def _then(self, kind: NodeKind, **kwargs: Any) -> Node:
        if self.kind == NodeKind.SINK:
            raise InvalidGraphError(f"Cannot add a {kind.value} stage after an output; use input(node) instead")
        return Node(kind, parent=self, **kwargs)

    def map(self, fn: Callable | str, *args: Any) -> Node:
        """Add a map stage running ``fn(conf, *args)``."""
        return self._then(NodeKind.MAP, binding=_bind(fn, args))

    def partition(
        self,
        key_type: type = object,
        val_type: type = object,
        partitioner: Callable | str | None = None,
        *args: Any,
        num_reducers: int | None = None,
    ) -> Node:
        """Shuffle map output of ``(key_type, val_type)`` to the reducers.

        ``partitioner`` is an optional partitioner behavior; the default is
        a stable hash of the key.
        """
        if num_reducers is not None and num_reducers < 1:
            raise InvalidGraphError(f"A partition needs at least one reducer, got {num_reducers}")
        binding = _bind(partitioner, args) if partitioner is not None else None
        return self._then(
            NodeKind.PARTITION,
            binding=binding,
            key_type=key_type,
            val_type=val_type,
            num_reducers=num_reducers,
        )

    def combine(self, fn: Callable | str, *args: Any) -> Node:
        """Add a combine stage; it must directly follow a partition."""
        if self.kind != NodeKind.PARTITION:
            raise InvalidGraphError(f"combine must directly follow partition, not {self.kind.value}")
        return self._then(NodeKind.COMBINE, binding=_bind(fn, args))

    def reduce(self, fn: Callable | str, *args: Any) -> Node:
        """Add a reduce stage running ``fn(conf, *args)`` over grouped input."""
        return self._then(NodeKind.REDUCE, binding=_bind(fn, args))

    def output(self, sink: DSink | None = None) -> Node:
        """End the chain writing to ``sink`` (an intermediate location when ``None``)."""
        return self._then(NodeKind.SINK, sink=sink)

    def config(self, *steps: Step) -> Node:
        """Apply ``steps`` to the configuration of the job this stage ends up in."""
        return replace(self, steps=self.steps + steps)

    def execute(
        self,
        conf: Configuration | None = None,
        name: str = "jobloom",
        engine: Engine | None = None,
    ) -> GraphResult:
        from jobloom.orchestration.runner import execute

        return execute(self, conf, name, engine=engine)

    # ── Introspection ────────────────────────────────────────────────

    def chain(self) -> list[Node]:
        """Stages from this chain's source to this node."""
        nodes: list[Node] = []
        node: Node | None = self
        while node is not None:
            nodes.append(node)
            node = node.parent
        return list(reversed(nodes))

    def __repr__(self) -> str:
        return " -> ".join(n.kind.value for n in self.chain())


def _bind(fn: Callable | str, args: tuple[Any, ...]) -> Binding:
    return Binding(behavior_ref(fn), tuple(args))


def input(*sources: DSeq | Node) -> Node:
    """Start a chain reading ``sources``: distributed sequences, or nodes of
    other chains whose output this chain consumes."""
    if not sources:
        raise InvalidGraphError("input() needs at least one source")
    for source in sources:
        if not isinstance(source, (DSeq, Node)):
            raise InvalidGraphError(f"Not a distributed sequence or graph node: {source!r}")
    return Node(NodeKind.SOURCE, inputs=tuple(sources))


__all__ = ["NodeKind", "Node", "Binding", "input"]
