"""Word count: the canonical one-job graph.

::

    text lines ─map─► (word, 1) ─partition(str, int)─► combine ─► reduce ─► jsonl
"""

from __future__ import annotations

from jobloom import mapreduce as mr
from jobloom.core.conf import Configuration
from jobloom.io import jsonl, text
from jobloom.io.dseq import DSeq, DSink
from jobloom.orchestration import GraphResult, input


def mapper(conf):
    def run(context, input):
        return ((word, 1) for line in mr.vals(input) for word in line.split())

    return run


def reducer(conf):
    def run(context, input):
        return ((word, sum(counts)) for word, counts in mr.keyvalgroups(input))

    return run


def word_count(conf: Configuration | None, dseq: DSeq, dsink: DSink, engine=None) -> GraphResult:
    return (
        input(dseq)
        .map(mapper)
        .partition(str, int)
        .combine(reducer)
        .reduce(reducer)
        .output(dsink)
        .execute(conf, "word-count", engine=engine)
    )


def tool(conf: Configuration, inpath: str, outpath: str) -> dict[str, int]:
    """Count the words of the text files at ``inpath`` into ``outpath``."""
    result = word_count(conf, text.dseq(inpath), jsonl.dsink(str, int, outpath))
    return dict(result.dseq)
