"""Job Graph Compiler: chains of stages into job configurations.

Manifesto:
One physical job has a fixed shape: read, optionally map, optionally
shuffle (partition, optionally combine, reduce), write.  A chain of stages
that does not fit that shape is split into several jobs joined by
intermediate locations.  The producing job writes the intermediate with a
JSON-lines sink and the consuming job reads it with that sink's own
read-back sequence, so both resolve to the same path.

ARCHITECTURE
────────────
::

    compile_graph(sinks, conf, name) → CompiledGraph (plans in dependency order)

    Per chain:  source → [map] → [partition → [combine] → reduce] → sink
      reduce without partition shuffles with the default partitioner
      cut before: map after map | map or partition after a shuffle stage
                  | reduce after reduce
      cut = current job gets jsonl.dsink(work_dir/...), next job reads it

    Inputs naming other chains' nodes  → job-to-job dependencies
    topological_order(plans)           → Kahn's algorithm, CycleDetectedError

Tags:
    jobloom, orchestration, compiler, job-graph, topological-sort

Doc-Types:
    api-reference
"""

from __future__ import annotations

import uuid
from collections import defaultdict, deque
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path

from jobloom import mapreduce as mr
from jobloom.core.conf import (
    JOB_NAME,
    MAP_OUTPUT_KEY_CLASS,
    MAP_OUTPUT_VALUE_CLASS,
    NUM_REDUCERS,
    WORK_DIR,
    Configuration,
)
from jobloom.core.errors import CycleDetectedError, InvalidGraphError
from jobloom.core.logging import get_logger
from jobloom.core.settings import get_settings
from jobloom.core.step import Step, apply_steps
from jobloom.io import jsonl, mux
from jobloom.io.dseq import DSeq, DSink
from jobloom.io.formats import input_paths, output_paths
from jobloom.orchestration.graph import Node, NodeKind

logger = get_logger(__name__)

# Stages allowed to follow each stage inside one job
_FOLLOWS: dict[NodeKind | None, set[NodeKind]] = {
    None: {NodeKind.MAP, NodeKind.PARTITION, NodeKind.REDUCE},
    NodeKind.MAP: {NodeKind.PARTITION, NodeKind.REDUCE},
    NodeKind.PARTITION: {NodeKind.COMBINE, NodeKind.REDUCE},
    NodeKind.COMBINE: {NodeKind.REDUCE},
    NodeKind.REDUCE: set(),
}


@dataclass
class JobPlan:
    """One compiled job."""

    name: str
    conf: Configuration
    source: DSeq
    sink: DSink
    depends_on: list[str] = field(default_factory=list)
    terminal: bool = False

    @property
    def input_paths(self) -> list[str]:
        return input_paths(self.conf)

    @property
    def output_paths(self) -> list[str]:
        return output_paths(self.conf)


@dataclass
class CompiledGraph:
    """Jobs in dependency order, plus the job writing each requested output."""

    plans: list[JobPlan]
    outputs: list[JobPlan]

    def __iter__(self) -> Iterator[JobPlan]:
        return iter(self.plans)

    def __len__(self) -> int:
        return len(self.plans)

    def __getitem__(self, index: int) -> JobPlan:
        return self.plans[index]


def base_conf(conf: Configuration | None = None) -> Configuration:
    """``conf`` seeded with the settings defaults it does not already set."""
    settings = get_settings()
    defaults = Configuration(
        {
            NUM_REDUCERS: settings.num_reducers,
            WORK_DIR: str(settings.work_dir.absolute()),
        }
    )
    return defaults.merge(conf or {})


class _Compiler:
    def __init__(self, conf: Configuration, name: str):
        self.conf = conf
        self.name = name
        self.run_dir = Path(conf[WORK_DIR]) / f"{name}-{uuid.uuid4().hex[:8]}"
        self.plans: list[JobPlan] = []
        self._compiled: dict[int, JobPlan] = {}
        self._implicit: dict[int, Node] = {}

    def compile(self, sink_node: Node, terminal: bool = True) -> JobPlan:
        """Compile the chain ending in ``sink_node``; memoized per node."""
        key = id(sink_node)
        if key in self._compiled:
            plan = self._compiled[key]
            plan.terminal = plan.terminal or terminal
            return plan

        chain = sink_node.chain()
        source, stages, sink = chain[0], chain[1:-1], chain[-1]
        seq, deps = self._source(source)
        lead = source.steps

        job: list[Node] = []
        phase: NodeKind | None = None
        for stage in stages:
            if stage.kind not in _FOLLOWS[phase]:
                if stage.kind == NodeKind.COMBINE:
                    raise InvalidGraphError("combine must directly follow partition")
                plan = self._job(seq, job, self._intermediate(), deps, lead)
                seq, deps, job, phase, lead = plan.sink.dseq, [plan.name], [], None, ()
            job.append(stage)
            phase = stage.kind

        plan = self._job(seq, job, sink.sink or self._intermediate(), deps, lead + sink.steps)
        plan.terminal = terminal
        self._compiled[key] = plan
        return plan

    def _source(self, source: Node) -> tuple[DSeq, list[str]]:
        seqs: list[DSeq] = []
        deps: list[str] = []
        for item in source.inputs:
            if isinstance(item, Node):
                node = item if item.kind == NodeKind.SINK else self._implicit_output(item)
                upstream = self.compile(node, terminal=False)
                seqs.append(upstream.sink.dseq)
                deps.append(upstream.name)
            else:
                seqs.append(item)
        seq = seqs[0] if len(seqs) == 1 else mux.dseq(*seqs)
        return seq, deps

    def _implicit_output(self, node: Node) -> Node:
        # one implicit output per upstream node, however many chains read it
        if id(node) not in self._implicit:
            self._implicit[id(node)] = node.output()
        return self._implicit[id(node)]

    def _intermediate(self) -> DSink:
        path = self.run_dir / f"{len(self.plans) + 1:03d}-intermediate"
        return jsonl.dsink(object, object, path)

    def _job(
        self,
        seq: DSeq,
        stages: list[Node],
        sink: DSink,
        deps: list[str],
        extra_steps: tuple[Step, ...] = (),
    ) -> JobPlan:
        name = f"{self.name}-{len(self.plans) + 1}"
        conf = seq.apply(self.conf.set(JOB_NAME, name))
        kinds = [s.kind for s in stages]
        if NodeKind.PARTITION not in kinds and NodeKind.REDUCE not in kinds:
            conf = conf.set(NUM_REDUCERS, 0)

        steps: list[Step] = []
        for stage in stages:
            conf = self._stage(conf, stage)
            steps.extend(stage.steps)
        conf = sink.apply(conf)
        conf = apply_steps(conf, *steps, *extra_steps)

        plan = JobPlan(name, conf, seq, sink, list(dict.fromkeys(deps)))
        self.plans.append(plan)
        logger.debug("graph.job_compiled", job=name, stages=[k.value for k in kinds], depends_on=plan.depends_on)
        return plan

    def _stage(self, conf: Configuration, stage: Node) -> Configuration:
        binding = stage.binding
        if stage.kind == NodeKind.MAP:
            conf, cls = mr.mapper(conf, binding.behavior, *binding.args)
            return mr.set_mapper(conf, cls)
        if stage.kind == NodeKind.PARTITION:
            conf = conf.assoc({MAP_OUTPUT_KEY_CLASS: stage.key_type, MAP_OUTPUT_VALUE_CLASS: stage.val_type})
            if stage.num_reducers is not None:
                conf = conf.set(NUM_REDUCERS, stage.num_reducers)
            elif conf.get_int(NUM_REDUCERS, 1) == 0:
                conf = conf.set(NUM_REDUCERS, 1)
            if binding is not None:
                conf, cls = mr.partitioner(conf, binding.behavior, *binding.args)
                conf = mr.set_partitioner(conf, cls)
            return conf
        if stage.kind == NodeKind.COMBINE:
            conf, cls = mr.combiner(conf, binding.behavior, *binding.args)
            return mr.set_combiner(conf, cls)
        if stage.kind == NodeKind.REDUCE:
            if conf.get_int(NUM_REDUCERS, 1) == 0:
                conf = conf.set(NUM_REDUCERS, 1)
            conf, cls = mr.reducer(conf, binding.behavior, *binding.args)
            return mr.set_reducer(conf, cls)
        raise InvalidGraphError(f"Unexpected {stage.kind.value} stage inside a chain")


def compile_graph(
    sinks: Node | list[Node],
    conf: Configuration | None = None,
    name: str = "jobloom",
) -> CompiledGraph:
    """Compile the chains ending in ``sinks`` into jobs, in dependency order.

    A graph that compiles to a single job names it ``name``; otherwise jobs
    are named ``<name>-1``, ``<name>-2``, ... in creation order.
    """
    nodes = [sinks] if isinstance(sinks, Node) else list(sinks)
    if not nodes:
        raise InvalidGraphError("Nothing to compile: no outputs given")
    compiler = _Compiler(base_conf(conf), name)
    outputs: list[JobPlan] = []
    for node in nodes:
        if node.kind != NodeKind.SINK:
            raise InvalidGraphError(f"Graph ends in {node.kind.value}, not output: {node!r}")
        outputs.append(compiler.compile(node))

    plans = compiler.plans
    if len(plans) == 1:
        plan = plans[0]
        plan.name = name
        plan.conf = plan.conf.set(JOB_NAME, name)
    return CompiledGraph(topological_order(plans), outputs)


def topological_order(plans: list[JobPlan]) -> list[JobPlan]:
    """Order ``plans`` so every job follows the jobs it depends on (Kahn).

    Raises:
        CycleDetectedError: If the dependencies contain a cycle
        InvalidGraphError: If a plan depends on an unknown job
    """
    by_name = {p.name: p for p in plans}
    dependents: dict[str, list[str]] = defaultdict(list)
    in_degree: dict[str, int] = {p.name: 0 for p in plans}

    for plan in plans:
        for dep in plan.depends_on:
            if dep not in by_name:
                raise InvalidGraphError(f"Job {plan.name!r} depends on unknown job {dep!r}")
            dependents[dep].append(plan.name)
            in_degree[plan.name] += 1

    queue = deque(p.name for p in plans if in_degree[p.name] == 0)
    ordered: list[JobPlan] = []
    while queue:
        node = queue.popleft()
        ordered.append(by_name[node])
        for dependent in dependents[node]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                queue.append(dependent)

    if len(ordered) != len(plans):
        raise CycleDetectedError([name for name, degree in in_degree.items() if degree > 0])
    return ordered


__all__ = ["CompiledGraph", "JobPlan", "base_conf", "compile_graph", "topological_order"]
