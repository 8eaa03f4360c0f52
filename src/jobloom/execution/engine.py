"""Engine Protocol: where a compiled job is run.

Manifesto:
The graph executor does not care how a job runs, only that it runs to
completion and reports success or failure with its counters.  ``Engine``
is a ``typing.Protocol``: any object with ``run_job`` satisfies it.

ARCHITECTURE
────────────
::

    Engine (Protocol)
      └── .run_job(conf, name) → JobResult

    JobResult
      ├── name, status (JobStatus)
      ├── counters       {group: {name: value}}
      ├── output_paths   [location]
      └── error, stage   (failed jobs only)

    Implementations:
      LocalEngine  ─ inline or process-pool tasks (executors/local.py)

Tags:
    jobloom, execution, engine, protocol, interface

Doc-Types:
    api-reference
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from jobloom.core.conf import Configuration


class JobStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class JobResult:
    """Outcome of one submitted job."""

    name: str
    status: JobStatus
    counters: dict[str, dict[str, int]] = field(default_factory=dict)
    output_paths: list[str] = field(default_factory=list)
    error: BaseException | None = None
    stage: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == JobStatus.SUCCEEDED

    def counter(self, group: str, name: str) -> int:
        return self.counters.get(group, {}).get(name, 0)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "name": self.name,
            "status": self.status.value,
            "counters": self.counters,
            "output_paths": self.output_paths,
        }
        if self.error is not None:
            result["error"] = str(self.error)
            result["stage"] = self.stage
        return result


@runtime_checkable
class Engine(Protocol):
    """Runs one job configuration to completion.

    Implementations must not raise; a failed job is reported as a
    :class:`JobResult` with ``status=FAILED`` and the stage that failed
    (``"engine"`` when the failure belongs to no stage).
    """

    def run_job(self, conf: Configuration, name: str) -> JobResult: ...


__all__ = ["Engine", "JobResult", "JobStatus"]
