"""Tests for emission strategies and counter helpers."""

import pytest

from jobloom.core.conf import Configuration
from jobloom.execution import counters
from jobloom.execution.context import Counter, Counters, TaskContext
from jobloom.execution.engine import JobResult, JobStatus
from jobloom.execution.sink import SinkAs, SinkKind, emit, emit_as, sink_as


class ListWriter:
    def __init__(self):
        self.records = []

    def write(self, key, val):
        self.records.append((key, val))

    def close(self, context):
        pass


@pytest.fixture
def context():
    return TaskContext(Configuration(), writer=ListWriter())


class TestSinkAs:
    """Tagging collections with an emission strategy."""

    def test_string_kind_is_parsed(self):
        tagged = sink_as("keys", [1])
        assert isinstance(tagged, SinkAs)
        assert tagged.kind is SinkKind.KEYS

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            sink_as("rows", [])

    def test_default_is_keyvals(self, context):
        assert emit(context, [("a", 1), ("b", 2)]) == 2
        assert context.writer.records == [("a", 1), ("b", 2)]

    def test_keys_and_vals(self, context):
        emit(context, sink_as(SinkKind.KEYS, ["k"]))
        emit(context, sink_as(SinkKind.VALS, ["v"]))
        assert context.writer.records == [("k", None), (None, "v")]

    def test_none_consumes_without_writing(self, context):
        seen = []
        written = emit(context, sink_as("none", (seen.append(i) for i in range(3))))

        assert written == 0
        assert seen == [0, 1, 2]
        assert context.writer.records == []

    def test_none_result_writes_nothing(self, context):
        assert emit(context, None) == 0

    def test_custom_sink_function(self, context):
        calls = []
        emit(context, sink_as(lambda ctx, coll: calls.append((ctx, list(coll))), [1, 2]))
        assert calls == [(context, [1, 2])]

    def test_emit_as(self):
        writer = ListWriter()
        assert emit_as("vals", writer, ["x", "y"]) == 2
        assert writer.records == [(None, "x"), (None, "y")]


class TestCounterHelpers:
    """Counter names as strings, tuples or counters."""

    def test_string_names_use_user_group(self, context):
        counters.inc(context, "records")
        counters.inc(context, "records", 4)
        assert counters.get(context, "records") == 5
        assert context.counters.to_dict() == {"user": {"records": 5}}

    def test_group_tuple(self, context):
        counters.set_value(context, ("io", "bytes"), 10)
        assert counters.get(context, ("io", "bytes")) == 10

    def test_existing_counter(self):
        c = Counter("g", "n", 2)
        counters.inc(None, c)
        assert counters.get(None, c) == 3

    def test_none_names_are_ignored(self, context):
        counters.inc(context, None)
        assert counters.get(context, None) is None
        assert counters.counter(None, "x") is None

    def test_counters_map(self):
        c = Counters()
        c.get_counter("g", "n").increment(2)
        result = JobResult("j", JobStatus.SUCCEEDED, counters={"g": {"n": 7}})

        assert counters.counters_map(c) == {"g": {"n": 2}}
        assert counters.counters_map(result) == {"g": {"n": 7}}
        assert counters.counters_map(None) == {}
