"""Graph Runner: submit compiled jobs in dependency order.

Manifesto:
Jobs of one graph run strictly one after another in topological order.  A
job is only submitted once every job it reads from has succeeded; the first
failure aborts the graph, and no later job is submitted.

ARCHITECTURE
────────────
::

    execute(sinks, conf, name, engine=None) → GraphResult
      compile_graph(sinks, conf, name)   ─ [JobPlan] in dependency order
      for plan in plans:
          engine.run_job(plan.conf, plan.name) → JobResult
          FAILED → JobFailedError(job, stage, skipped=[remaining jobs])

    GraphResult
      ├── jobs           [JobResult] in submission order
      ├── dseqs          read-back sequences of the requested outputs
      ├── output_paths   locations of the requested outputs
      └── counters       merged {group: {name: value}}

Tags:
    jobloom, orchestration, runner, sequential-execution

Doc-Types:
    api-reference
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from jobloom.core.conf import Configuration
from jobloom.core.errors import JobFailedError
from jobloom.core.logging import LogContext, get_logger
from jobloom.execution.context import Counters
from jobloom.execution.engine import Engine, JobResult, JobStatus
from jobloom.io.dseq import DSeq
from jobloom.orchestration.compiler import JobPlan, compile_graph
from jobloom.orchestration.graph import Node

logger = get_logger(__name__)


@dataclass
class GraphResult:
    """Results of one executed graph."""

    name: str
    jobs: list[JobResult] = field(default_factory=list)
    dseqs: list[DSeq] = field(default_factory=list)
    output_paths: list[str] = field(default_factory=list)

    @property
    def dseq(self) -> DSeq:
        """Read-back sequence of the first requested output."""
        return self.dseqs[0]

    @property
    def counters(self) -> dict[str, dict[str, int]]:
        merged = Counters()
        for job in self.jobs:
            merged.merge(job.counters)
        return merged.to_dict()

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "jobs": [job.to_dict() for job in self.jobs],
            "output_paths": self.output_paths,
        }


def _default_engine() -> Engine:
    from jobloom.execution.executors.local import LocalEngine

    return LocalEngine()


def run_plans(plans: list[JobPlan], name: str, engine: Engine | None = None) -> list[JobResult]:
    """Run ``plans`` in order; raise :class:`JobFailedError` on the first failure."""
    engine = engine or _default_engine()
    results: list[JobResult] = []
    for index, plan in enumerate(plans):
        logger.info("graph.job_submitted", graph=name, job=plan.name, index=index + 1, total=len(plans))
        try:
            result = engine.run_job(plan.conf, plan.name)
        except Exception as e:
            result = JobResult(plan.name, JobStatus.FAILED, error=e)
        results.append(result)
        if not result.succeeded:
            skipped = [p.name for p in plans[index + 1 :]]
            logger.error(
                "graph.job_failed",
                graph=name,
                job=plan.name,
                stage=result.stage,
                skipped=skipped,
                error=str(result.error),
            )
            raise JobFailedError(plan.name, result.stage, cause=result.error, skipped=skipped)
        logger.info("graph.job_succeeded", graph=name, job=plan.name)
    return results


def execute(
    sinks: Node | list[Node],
    conf: Configuration | None = None,
    name: str = "jobloom",
    engine: Engine | None = None,
) -> GraphResult:
    """Compile the graph ending in ``sinks`` and run its jobs.

    Raises:
        JobFailedError: When a job fails; later jobs are not submitted
        GraphError: When the graph cannot be compiled
    """
    with LogContext(graph=name):
        graph = compile_graph(sinks, conf, name)
        results = run_plans(graph.plans, name, engine)

    dseqs = [plan.sink.dseq for plan in graph.outputs]
    paths = [path for plan in graph.outputs for path in plan.output_paths]
    return GraphResult(name, results, dseqs, paths)


__all__ = ["GraphResult", "execute", "run_plans"]
