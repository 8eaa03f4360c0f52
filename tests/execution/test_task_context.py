"""Tests for TaskInput views, TaskContext state and close semantics."""

import pytest

from jobloom import mapreduce as mr
from jobloom.core.conf import Configuration
from jobloom.execution.context import Counters, TaskAttemptID, TaskContext, TaskInput

GROUPED = [("a", 1), ("a", 2), ("b", 3)]


class ListWriter:
    def __init__(self, fail=False):
        self.records = []
        self.closed = 0
        self.fail = fail

    def write(self, key, val):
        self.records.append((key, val))

    def close(self, context):
        self.closed += 1
        if self.fail:
            raise OSError("writer close failed")


class Resource:
    def __init__(self, context, fail=False):
        self.closed = False
        self.fail = fail

    def close(self, context):
        self.closed = True
        if self.fail:
            raise RuntimeError("state close failed")


class FailingResource(Resource):
    def __init__(self, context):
        super().__init__(context, fail=True)


class TestTaskInput:
    """Flat and grouped views of a task's tuples."""

    def test_flat_views(self):
        assert list(mr.keyvals(GROUPED)) == GROUPED
        assert list(mr.keys(GROUPED)) == ["a", "a", "b"]
        assert list(mr.vals(GROUPED)) == [1, 2, 3]

    def test_grouped_views(self):
        assert list(mr.keygroups(GROUPED)) == ["a", "b"]
        assert list(mr.valgroups(GROUPED)) == [[1, 2], [3]]
        assert list(mr.keyvalgroups(GROUPED)) == [("a", [1, 2]), ("b", [3])]
        assert list(mr.keykeyvalgroups(GROUPED)) == [("a", [("a", 1), ("a", 2)]), ("b", [("b", 3)])]
        assert list(mr.keykeygroups(GROUPED)) == [("a", ["a", "a"]), ("b", ["b"])]
        assert list(mr.keysgroups(GROUPED)) == [["a", "a"], ["b"]]

    def test_consumed_once(self):
        task_input = TaskInput(GROUPED)
        assert len(list(task_input)) == 3
        assert list(task_input.vals()) == []


class TestTaskContext:
    """Writing, counters, per-task state and close."""

    def test_attempt_id_format(self):
        assert str(TaskAttemptID("wc", "r", 3)) == "attempt_wc_r_000003_0"

    def test_write_goes_to_writer(self):
        writer = ListWriter()
        context = TaskContext(Configuration(), writer=writer)
        context.write("k", "v")
        assert writer.records == [("k", "v")]

    def test_write_without_writer(self):
        with pytest.raises(RuntimeError):
            TaskContext(Configuration()).write("k", "v")

    def test_counters(self):
        counters = Counters()
        context = TaskContext(Configuration(), counters=counters)
        context.get_counter("g", "n").increment(2)
        context.get_counter("g", "n").increment()

        assert counters.to_dict() == {"g": {"n": 3}}

    def test_state_created_once(self):
        context = TaskContext(Configuration())
        first = context.state("res", Resource)
        assert context.state("res", Resource) is first

    def test_close_closes_state_then_writer(self):
        writer = ListWriter()
        context = TaskContext(Configuration(), writer=writer)
        resource = context.state("res", Resource)
        context.close()

        assert resource.closed
        assert writer.closed == 1

    def test_close_attempts_everything_and_raises_first(self):
        writer = ListWriter(fail=True)
        context = TaskContext(Configuration(), writer=writer)
        context.state("bad", FailingResource)

        with pytest.raises(RuntimeError, match="state close failed"):
            context.close()
        assert writer.closed == 1


class TestCountersMerge:
    """Counter aggregation across tasks."""

    def test_merge_adds_values(self):
        total = Counters()
        total.merge({"g": {"a": 1}})
        total.merge({"g": {"a": 2, "b": 1}, "h": {"c": 5}})

        assert total.to_dict() == {"g": {"a": 3, "b": 1}, "h": {"c": 5}}
        assert total.groups() == ["g", "h"]
