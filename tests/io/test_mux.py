"""Tests for multiplexed input over several distributed sequences."""

from jobloom.core.conf import INPUT_FORMAT, Configuration
from jobloom.io import jsonl, mux, text
from jobloom.io.formats import input_format, location


class TestMux:
    """One job reading several sequences of different formats."""

    def test_reads_every_sequence_in_order(self, write_lines):
        lines = write_lines("a.txt", ["first", "second"])
        records = write_lines("b.jsonl", ['["k",1]'])

        seq = mux.dseq(text.dseq(lines), jsonl.dseq(records))
        assert list(seq) == [(0, "first"), (6, "second"), ("k", 1)]

    def test_splits_carry_the_sequence_index(self, write_lines):
        a = write_lines("a.txt", ["x"])
        b = write_lines("b.txt", ["y"])
        conf = mux.dseq(text.dseq(a), text.dseq(b)).apply(Configuration())

        splits = input_format(conf).get_splits(conf)
        assert [s.index for s in splits] == [0, 1]
        assert [s.location for s in splits] == [str(a), str(b)]

    def test_input_paths_are_deduplicated(self, write_lines):
        a = write_lines("a.txt", ["x"])
        seq = mux.dseq(text.dseq(a), text.dseq(a))

        assert seq.input_paths() == [location(a)]
        assert seq.locations == (location(a), location(a))

    def test_subconfs_keep_other_keys(self, write_lines):
        a = write_lines("a.txt", ["x"])
        conf = mux.dseq(text.dseq(a)).apply(Configuration({"user.key": "1"}))

        (sub,) = mux.subconfs(conf)
        assert sub["user.key"] == "1"
        assert type(input_format(sub)).__name__ == "TextInputFormat"
        assert mux.CONFS_KEY not in sub
        assert type(input_format(conf)).__name__ == "MuxInputFormat"

    def test_diffs_hold_only_input_keys(self, write_lines):
        a = write_lines("a.txt", ["x"])
        conf = mux.dseq(text.dseq(a)).apply(Configuration({"user.key": "1"}))

        (diff,) = mux.get_subconfs(conf)
        assert set(diff) == {INPUT_FORMAT, "jobloom.input.paths"}

    def test_no_subconfs_without_mux(self):
        assert mux.get_subconfs(Configuration()) == []
