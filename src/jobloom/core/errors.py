"""
Structured error types for jobloom.

Every failure jobloom raises on purpose is a ``LoomError``. Errors carry a
category for routing, an explicit ``retryable`` flag, structured context
(job, stage, role, slot, output) and an optional chained cause.

Manifesto:
    - **Typed Error Hierarchy:** Build-time, bind-time, task-time and job-time
      failures are different types
    - **No Automatic Retry:** Nothing here is retryable by default; retry is
      the engine's task policy
    - **Rich Context:** Errors say which job, stage, slot or output failed
    - **Error Chaining:** The underlying exception is kept as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────┐
        │                        LoomError                             │
        │  (category, retryable, context, cause)                      │
        ├─────────────────────────────────────────────────────────────┤
        │                                                              │
        │  ConfigError        BindingError       OutputError           │
        │  (CONFIG)           (BINDING)          (OUTPUT)              │
        │       │                                                      │
        │  SlotCapacityError                     WriterCloseError      │
        │                                                              │
        │  GraphError         JobError                                 │
        │  (GRAPH)            (EXECUTION)                              │
        │       │                  │                                   │
        │  CycleDetectedError JobFailedError                           │
        │  InvalidGraphError  TaskFailedError                          │
        └─────────────────────────────────────────────────────────────┘

Examples:
    >>> error = SlotCapacityError("map", 64, 64)
    >>> error.category
    <ErrorCategory.CONFIG: 'CONFIG'>
    >>> error.retryable
    False

    >>> error = OutputError("Unknown dux output").with_context(output="errors")
    >>> error.context.output
    'errors'

Tags:
    error-handling, exception-hierarchy, error-context, jobloom

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """
    Standard error categories for classification.

    Attributes:
        CONFIG: Deployment or job configuration errors (build time)
        BINDING: Behavior reference or argument (de)serialization
        OUTPUT: Named output routing and writer lifecycle
        GRAPH: Job graph composition and compilation
        EXECUTION: Job or task execution failures
        INTERNAL: Bugs, unexpected state
    """

    CONFIG = "CONFIG"
    BINDING = "BINDING"
    OUTPUT = "OUTPUT"
    GRAPH = "GRAPH"
    EXECUTION = "EXECUTION"
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """
    Structured metadata context for errors.

    Attributes:
        job: Name of the job where the error occurred
        stage: Pipeline stage (map, combine, partition, reduce, input, output)
        role: Slot role, when a slot is involved
        slot: Slot index, when a slot is involved
        output: Named output, for dux errors
        path: Filesystem location involved
        metadata: Additional key-value pairs
    """

    job: str | None = None
    stage: str | None = None
    role: str | None = None
    slot: int | None = None
    output: str | None = None
    path: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["job", "stage", "role", "slot", "output", "path"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class LoomError(Exception):
    """
    Base exception for all jobloom errors.

    Subclasses set ``default_category`` and ``default_retryable`` to give
    sensible defaults for their domain.

    Examples:
        >>> error = LoomError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>

        >>> try:
        ...     raise ValueError("bad literal")
        ... except ValueError as e:
        ...     error = LoomError("Could not parse", cause=e)
        >>> error.cause
        ValueError('bad literal')
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> LoomError:
        """
        Add context to this error (fluent API).

        Usage:
            raise OutputError("Unknown output").with_context(output="errors")
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION ERRORS (build time)
# =============================================================================


class ConfigError(LoomError):
    """
    Configuration error.

    Never retryable - configuration must be fixed.
    """

    default_category = ErrorCategory.CONFIG


class SlotCapacityError(ConfigError):
    """A role has no provisioned slot class left for a new allocation."""

    def __init__(self, role: str, index: int, capacity: int):
        self.role = role
        self.index = index
        self.capacity = capacity
        super().__init__(
            f"Cannot allocate {role} slot {index}: only {capacity} {role} slot classes are provisioned",
            context=ErrorContext(role=role, slot=index),
        )


# =============================================================================
# BINDING ERRORS
# =============================================================================


class BindingError(LoomError):
    """A behavior reference or its arguments could not be (de)serialized."""

    default_category = ErrorCategory.BINDING


# =============================================================================
# OUTPUT ERRORS
# =============================================================================


class OutputError(LoomError):
    """Named output routing failure (unknown name, write after close)."""

    default_category = ErrorCategory.OUTPUT


class WriterCloseError(OutputError):
    """A record writer failed to close."""

    pass


# =============================================================================
# GRAPH ERRORS
# =============================================================================


class GraphError(LoomError):
    """Base exception for job graph composition and compilation errors."""

    default_category = ErrorCategory.GRAPH


class InvalidGraphError(GraphError):
    """Raised when nodes are composed in an unsupported way."""

    pass


class CycleDetectedError(GraphError):
    """Raised when job dependencies contain a cycle."""

    def __init__(self, cycle: list[str]):
        self.cycle = cycle
        super().__init__(f"Cycle detected in job graph: {', '.join(cycle)}")


# =============================================================================
# EXECUTION ERRORS
# =============================================================================


class JobError(LoomError):
    """Base exception for job execution errors."""

    default_category = ErrorCategory.EXECUTION


class TaskFailedError(JobError):
    """A task of a running job failed in ``stage``."""

    def __init__(self, stage: str, cause: BaseException | None = None, *, attempt: str | None = None):
        self.stage = stage
        self.attempt = attempt
        where = f"{stage} task" if attempt is None else f"{stage} task {attempt}"
        message = f"{where} failed" if cause is None else f"{where} failed: {cause}"
        super().__init__(message, context=ErrorContext(stage=stage), cause=cause)


class JobFailedError(JobError):
    """A job reported failure; remaining jobs in the graph were not submitted."""

    def __init__(
        self,
        job: str,
        stage: str | None = None,
        *,
        cause: BaseException | None = None,
        skipped: list[str] | None = None,
    ):
        self.job = job
        self.stage = stage
        self.skipped = skipped or []
        where = f"job '{job}'" if stage is None else f"job '{job}' ({stage} stage)"
        message = f"{where} failed"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message, context=ErrorContext(job=job, stage=stage), cause=cause)


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "LoomError",
    "ConfigError",
    "SlotCapacityError",
    "BindingError",
    "OutputError",
    "WriterCloseError",
    "GraphError",
    "InvalidGraphError",
    "CycleDetectedError",
    "JobError",
    "JobFailedError",
    "TaskFailedError",
]
