"""End-to-end graph execution on the inline local engine."""

import pytest

from jobloom import mapreduce as mr
from jobloom.core.errors import JobFailedError
from jobloom.examples import parity, word_count
from jobloom.execution.engine import JobStatus
from jobloom.io import dux, jsonl, text
from jobloom.orchestration import execute, input

pytestmark = pytest.mark.integration


def explode(conf):
    def run(context, input):
        raise RuntimeError("mapper exploded")

    return run


def swap(conf):
    def run(context, input):
        return ((val, key) for key, val in mr.keyvals(input))

    return run


def top(conf, n):
    def run(context, input):
        for count, words in mr.keyvalgroups(input):
            if count >= n:
                yield count, sorted(words)

    return run


@pytest.fixture
def words(write_lines):
    return write_lines("words.txt", ["apple banana apple", "banana carrot apple"])


class TestExecute:
    """Compiling and running whole graphs."""

    def test_word_count(self, engine, words, tmp_path):
        result = word_count.word_count(None, text.dseq(words), jsonl.dsink(str, int, tmp_path / "out"), engine)

        assert dict(result.dseq) == {"apple": 3, "banana": 2, "carrot": 1}
        assert engine.submitted == ["word-count"]
        assert [job.status for job in result.jobs] == [JobStatus.SUCCEEDED]
        assert result.output_paths == [str(tmp_path / "out")]

    def test_parity_routes_to_named_outputs(self, engine, write_lines, tmp_path):
        numbers = write_lines("numbers.txt", [str(n) for n in range(1, 11)])
        result = parity.parity(None, text.dseq(numbers), str(tmp_path / "out"), engine)

        assert result.counters[dux.COUNTER_GROUP] == {"even": 5, "odd": 5}
        even = (tmp_path / "out" / "even" / "part-m-00000").read_text().split()
        assert even == ["2", "4", "6", "8", "10"]
        odd = (tmp_path / "out" / "odd" / "part-m-00000").read_text().split()
        assert odd == ["1", "3", "5", "7", "9"]
        assert sorted(int(line) for _, line in result.dseq) == list(range(1, 11))

    def test_two_job_graph(self, engine, words, tmp_path):
        node = (
            input(text.dseq(words))
            .map(word_count.mapper)
            .partition(str, int)
            .reduce(word_count.reducer)
            .map(swap)
            .partition(int, str)
            .reduce(top, 2)
            .output(jsonl.dsink(int, object, tmp_path / "out"))
        )
        result = execute(node, name="top", engine=engine)

        assert engine.submitted == ["top-1", "top-2"]
        assert list(result.dseq) == [(2, ["banana"]), (3, ["apple"])]

    def test_node_execute(self, engine, words, tmp_path):
        sink = jsonl.dsink(str, int, tmp_path / "out")
        result = input(text.dseq(words)).map(word_count.mapper).output(sink).execute(name="split", engine=engine)

        assert len(list(result.dseq)) == 6
        assert result.to_dict()["jobs"][0]["status"] == "succeeded"

    def test_failure_stops_the_graph(self, engine, words, tmp_path):
        node = (
            input(text.dseq(words))
            .map(explode)
            .reduce(word_count.reducer)
            .map(swap)
            .output(jsonl.dsink(object, object, tmp_path / "out"))
        )

        with pytest.raises(JobFailedError) as exc:
            execute(node, name="broken", engine=engine)

        assert engine.submitted == ["broken-1"]
        assert exc.value.skipped == ["broken-2"]
        assert exc.value.stage == "map"
        assert isinstance(exc.value.cause, RuntimeError)
        assert not (tmp_path / "out").exists()
