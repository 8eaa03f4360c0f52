"""Route numbers to "even" and "odd" outputs from a single map-only job."""

from __future__ import annotations

from jobloom.core.conf import Configuration
from jobloom.execution.sink import sink_as
from jobloom.io import dux, text
from jobloom.io.dseq import DSeq
from jobloom.orchestration import GraphResult, input


def mapper(conf):
    def run(context, input):
        numbers = (int(line) for line in input.vals() if line.strip())
        return sink_as(dux.named_vals(), (("even" if n % 2 == 0 else "odd", n) for n in numbers))

    return run


def parity(conf: Configuration | None, dseq: DSeq, outdir: str, engine=None) -> GraphResult:
    sink = dux.dsink({"even": text.dsink(f"{outdir}/even"), "odd": text.dsink(f"{outdir}/odd")})
    return input(dseq).map(mapper).output(sink).execute(conf, "parity", engine=engine)


def tool(conf: Configuration, inpath: str, outdir: str) -> dict[str, int]:
    """Split the numbers at ``inpath`` by parity under ``outdir``; returns counts."""
    result = parity(conf, text.dseq(inpath), outdir)
    return result.counters.get(dux.COUNTER_GROUP, {})
