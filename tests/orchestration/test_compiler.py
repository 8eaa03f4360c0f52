"""Tests for the graph builder and the job graph compiler."""

from pathlib import Path

import pytest

from jobloom.core.conf import (
    COMBINER_CLASS,
    JOB_NAME,
    MAP_OUTPUT_KEY_CLASS,
    MAPPER_CLASS,
    NUM_REDUCERS,
    PARTITIONER_CLASS,
    REDUCER_CLASS,
    Configuration,
)
from jobloom.core.errors import CycleDetectedError, InvalidGraphError
from jobloom.io import jsonl, text
from jobloom.orchestration import compile_graph, input
from jobloom.orchestration.compiler import JobPlan, topological_order
from jobloom.orchestration.graph import NodeKind


def ident(conf):
    def run(context, input):
        return input

    return run


def by_length(conf):
    def run(key, val, n):
        return len(key)

    return run


@pytest.fixture
def source(tmp_path):
    return text.dseq(tmp_path / "in")


@pytest.fixture
def out(tmp_path):
    return jsonl.dsink(object, object, tmp_path / "out")


def _plan(name, *deps):
    return JobPlan(name, Configuration(), None, None, list(deps))


class TestGraphBuilder:
    """Chains record stages without compiling anything."""

    def test_chain(self, source, out):
        node = input(source).map(ident).partition(str, int).reduce(ident).output(out)

        assert [n.kind for n in node.chain()] == [
            NodeKind.SOURCE,
            NodeKind.MAP,
            NodeKind.PARTITION,
            NodeKind.REDUCE,
            NodeKind.SINK,
        ]
        assert repr(node) == "source -> map -> partition -> reduce -> sink"

    def test_nodes_are_immutable_values(self, source):
        start = input(source)
        start.map(ident)
        assert start.chain() == [start]

    def test_combine_must_follow_partition(self, source):
        with pytest.raises(InvalidGraphError, match="combine"):
            input(source).map(ident).combine(ident)

    def test_nothing_after_output(self, source, out):
        with pytest.raises(InvalidGraphError):
            input(source).output(out).map(ident)

    def test_partition_needs_reducers(self, source):
        with pytest.raises(InvalidGraphError):
            input(source).partition(num_reducers=0)

    def test_input_requires_sources(self):
        with pytest.raises(InvalidGraphError):
            input()
        with pytest.raises(InvalidGraphError):
            input("not a dseq")

    def test_behaviors_must_be_nameable(self, source):
        with pytest.raises(Exception, match="top-level"):
            input(source).map(lambda conf: None)


class TestCompileSingleJob:
    """Chains that fit one job."""

    def test_full_shuffle_job(self, source, out):
        node = (
            input(source)
            .map(ident)
            .partition(str, int, by_length, num_reducers=3)
            .combine(ident)
            .reduce(ident)
            .output(out)
        )
        graph = compile_graph(node, name="wc")

        assert len(graph) == 1
        plan = graph[0]
        assert plan.name == "wc"
        assert plan.conf[JOB_NAME] == "wc"
        assert plan.conf.get_int(NUM_REDUCERS) == 3
        assert plan.conf[MAP_OUTPUT_KEY_CLASS] == "builtins:str"
        for key in (MAPPER_CLASS, COMBINER_CLASS, PARTITIONER_CLASS, REDUCER_CLASS):
            assert key in plan.conf
        assert plan.terminal
        assert graph.outputs == [plan]

    def test_map_only_job_has_no_reducers(self, source, out):
        plan = compile_graph(input(source).map(ident).output(out))[0]

        assert plan.conf.get_int(NUM_REDUCERS) == 0
        assert REDUCER_CLASS not in plan.conf

    def test_reduce_without_partition_shuffles(self, source, out):
        plan = compile_graph(input(source).reduce(ident).output(out))[0]

        assert plan.conf.get_int(NUM_REDUCERS) == 1
        assert MAPPER_CLASS not in plan.conf

    def test_default_reducers_come_from_settings(self, source, out, monkeypatch):
        from jobloom.core.settings import clear_settings_cache

        monkeypatch.setenv("JOBLOOM_NUM_REDUCERS", "4")
        clear_settings_cache()
        plan = compile_graph(input(source).partition().reduce(ident).output(out))[0]
        assert plan.conf.get_int(NUM_REDUCERS) == 4

    def test_user_conf_is_kept(self, source, out):
        plan = compile_graph(input(source).map(ident).output(out), Configuration({"app.mode": "fast"}))[0]
        assert plan.conf["app.mode"] == "fast"

    def test_config_steps_apply_last(self, source, out):
        node = input(source).map(ident).config({"app.stage": "map"}).output(out).config({NUM_REDUCERS: 0})
        plan = compile_graph(node)[0]

        assert plan.conf["app.stage"] == "map"
        assert plan.conf.get_int(NUM_REDUCERS) == 0

    def test_graph_must_end_in_output(self, source):
        with pytest.raises(InvalidGraphError):
            compile_graph(input(source).map(ident))
        with pytest.raises(InvalidGraphError):
            compile_graph([])


class TestCompileMultipleJobs:
    """Chains cut into several jobs joined by intermediate locations."""

    def test_map_after_reduce_starts_a_new_job(self, source, out, work_dir):
        node = input(source).map(ident).reduce(ident).map(ident).output(out)
        graph = compile_graph(node, name="two")

        first, second = graph.plans
        assert [first.name, second.name] == ["two-1", "two-2"]
        assert first.output_paths == second.input_paths
        assert second.depends_on == ["two-1"]
        assert not first.terminal and second.terminal
        assert Path(first.output_paths[0]).parent.parent == work_dir.absolute()
        assert first.conf.get_int(NUM_REDUCERS) == 1
        assert second.conf.get_int(NUM_REDUCERS) == 0

    def test_reduce_after_reduce(self, source, out):
        graph = compile_graph(input(source).reduce(ident).reduce(ident).output(out))
        assert len(graph) == 2

    def test_map_after_map(self, source, out):
        graph = compile_graph(input(source).map(ident).map(ident).output(out))
        assert len(graph) == 2
        assert all(plan.conf.get_int(NUM_REDUCERS) == 0 for plan in graph)

    def test_chains_reading_a_node_depend_on_its_job(self, source, tmp_path):
        counted = input(source).map(ident).reduce(ident)
        left = input(counted).map(ident).output(jsonl.dsink(object, object, tmp_path / "left"))
        right = input(counted).map(ident).output(jsonl.dsink(object, object, tmp_path / "right"))

        graph = compile_graph([left, right], name="fan")

        assert len(graph) == 3
        upstream = graph[0]
        assert all(plan.depends_on == [upstream.name] for plan in graph.plans[1:])
        assert graph.plans[1].input_paths == upstream.output_paths
        assert [plan.output_paths for plan in graph.outputs] == [
            [str(tmp_path / "left")],
            [str(tmp_path / "right")],
        ]

    def test_multiple_inputs_are_multiplexed(self, tmp_path, out):
        node = input(text.dseq(tmp_path / "a"), text.dseq(tmp_path / "b")).map(ident).output(out)
        plan = compile_graph(node)[0]
        assert plan.input_paths == [str(tmp_path / "a"), str(tmp_path / "b")]


class TestTopologicalOrder:
    """Kahn's algorithm over job dependencies."""

    def test_orders_dependencies_first(self):
        plans = [_plan("c", "b"), _plan("a"), _plan("b", "a")]
        assert [p.name for p in topological_order(plans)] == ["a", "b", "c"]

    def test_cycle(self):
        with pytest.raises(CycleDetectedError):
            topological_order([_plan("a", "b"), _plan("b", "a"), _plan("c")])

    def test_unknown_dependency(self):
        with pytest.raises(InvalidGraphError):
            topological_order([_plan("a", "missing")])
