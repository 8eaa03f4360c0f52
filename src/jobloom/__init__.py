"""
jobloom - multi-stage batch jobs from plain Python functions.

Describe a graph of inputs, map/combine/partition/reduce stages and outputs;
jobloom compiles it into one or more MapReduce-style jobs, binds each
stage's behavior into a named task slot and runs the jobs in dependency
order.

Packages:
    jobloom.core          - configuration values, steps, errors, logging, settings
    jobloom.execution     - behavior registry, slots, task contexts, engines
    jobloom.io            - distributed sequences/sinks, text, jsonl, mux, dux
    jobloom.orchestration - graph builder, compiler, runner
    jobloom.mapreduce     - task-level helpers for behaviors
"""

__version__ = "0.1.0"

from jobloom.core import Configuration, LoomError
from jobloom.execution import behavior, sink_as
from jobloom.orchestration import execute, input

__all__ = [
    "__version__",
    "Configuration",
    "LoomError",
    "behavior",
    "sink_as",
    "execute",
    "input",
]
