"""
jobloom core primitives.

Configuration values, configuration steps, the error hierarchy, logging and
settings. Everything else in jobloom builds on these.
"""

from jobloom.core.conf import Configuration, load_object, qualified_name
from jobloom.core.errors import (
    BindingError,
    ConfigError,
    CycleDetectedError,
    ErrorCategory,
    ErrorContext,
    GraphError,
    InvalidGraphError,
    JobError,
    JobFailedError,
    LoomError,
    OutputError,
    SlotCapacityError,
    TaskFailedError,
    WriterCloseError,
)
from jobloom.core.step import Step, apply_step, apply_steps, compose

__all__ = [
    "Configuration",
    "load_object",
    "qualified_name",
    "Step",
    "apply_step",
    "apply_steps",
    "compose",
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
