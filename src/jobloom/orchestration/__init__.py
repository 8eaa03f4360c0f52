"""
jobloom job graphs.

Build chains of stages with :func:`input`, compile them into job
configurations with :func:`compile_graph` and run them in dependency order
with :func:`execute`.
"""

from jobloom.orchestration.compiler import CompiledGraph, JobPlan, compile_graph, topological_order
from jobloom.orchestration.graph import Node, NodeKind, input
from jobloom.orchestration.runner import GraphResult, execute, run_plans

__all__ = [
    "Node",
    "NodeKind",
    "input",
    "CompiledGraph",
    "JobPlan",
    "compile_graph",
    "topological_order",
    "GraphResult",
    "execute",
    "run_plans",
]
