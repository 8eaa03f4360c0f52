"""Multiplexed input: one job reading several distributed sequences.

Each sub-sequence's step is applied to a base configuration with the input
keys removed; the resulting diffs are stored in order as a JSON list under
``jobloom.mux.confs``.  ``MuxInputFormat`` rebuilds every sub-configuration
the same way and delegates splitting and reading to the sub-format.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from typing import Any

from jobloom.core.conf import INPUT_FORMAT, INPUT_PATHS, Configuration
from jobloom.core.errors import ConfigError
from jobloom.io import dseq as _dseq
from jobloom.io.formats import InputSplit, input_format

CONFS_KEY = "jobloom.mux.confs"


def _base(conf: Configuration) -> Configuration:
    return conf.dissoc(INPUT_FORMAT, INPUT_PATHS, CONFS_KEY)


def get_subconfs(conf: Configuration) -> list[dict[str, str]]:
    """Stored sub-configuration diffs, in sequence order."""
    raw = conf.get(CONFS_KEY)
    if not raw:
        return []
    try:
        return list(json.loads(raw))
    except json.JSONDecodeError as e:
        raise ConfigError(f"Cannot parse {CONFS_KEY}", cause=e) from e


def subconfs(conf: Configuration) -> list[Configuration]:
    """Effective configuration of every sub-sequence."""
    base = _base(conf)
    return [base.merge(diff) for diff in get_subconfs(conf)]


class MuxInputFormat:
    """Splits are the concatenation of each sub-format's splits.

    A mux split's ``index`` is the position of its sub-sequence and its
    ``inner`` split is what the sub-format produced.
    """

    def get_input_paths(self, conf: Configuration) -> list[str]:
        paths: list[str] = []
        for sub in subconfs(conf):
            for path in input_format(sub).get_input_paths(sub):
                if path not in paths:
                    paths.append(path)
        return paths

    def get_splits(self, conf: Configuration) -> list[InputSplit]:
        splits: list[InputSplit] = []
        for i, sub in enumerate(subconfs(conf)):
            for inner in input_format(sub).get_splits(sub):
                splits.append(InputSplit(inner.location, i, inner))
        return splits

    def read(self, conf: Configuration, split: InputSplit) -> Iterator[tuple[Any, Any]]:
        sub = subconfs(conf)[split.index]
        yield from input_format(sub).read(sub, split.inner or split)


def dseq(*dseqs: _dseq.DSeq) -> _dseq.DSeq:
    """Distributed sequence reading every one of ``dseqs`` in order."""

    def step(conf: Configuration) -> Configuration:
        base = _base(conf)
        diffs = [base.diff(d.apply(base)) for d in dseqs]
        return conf.assoc({INPUT_FORMAT: MuxInputFormat, CONFS_KEY: json.dumps(diffs)})

    locations = tuple(loc for d in dseqs for loc in d.locations)
    return _dseq.dseq(step, *locations)


__all__ = ["CONFS_KEY", "MuxInputFormat", "get_subconfs", "subconfs", "dseq"]
