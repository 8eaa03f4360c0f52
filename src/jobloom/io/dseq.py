"""Distributed sequences and sinks.

A :class:`DSeq` is a configuration step that makes a job read from some
locations; a :class:`DSink` is a configuration step that makes a job write
somewhere, paired with the ``DSeq`` that reads the written data back.

Round-trip contract: applying ``sink.step`` to a job and running it, then
reading ``sink.dseq``, yields what the job wrote.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

from jobloom.core.conf import Configuration
from jobloom.core.step import Step, apply_step
from jobloom.io.formats import input_format, input_paths, output_paths


@dataclass(frozen=True, eq=False)
class DSeq:
    """Input step plus the locations it reads."""

    step: Step
    locations: tuple[str, ...] = ()

    def apply(self, conf: Configuration | None = None) -> Configuration:
        return apply_step(conf if conf is not None else Configuration(), self.step)

    def input_paths(self, conf: Configuration | None = None) -> list[str]:
        return input_paths(self.apply(conf))

    def read(self, conf: Configuration | None = None) -> Iterator[tuple[Any, Any]]:
        """Read every tuple of this sequence in the submitting process."""
        conf = self.apply(conf)
        fmt = input_format(conf)
        for split in fmt.get_splits(conf):
            yield from fmt.read(conf, split)

    def __iter__(self) -> Iterator[tuple[Any, Any]]:
        return self.read()

    def __repr__(self) -> str:
        return f"DSeq({list(self.locations)!r})"


@dataclass(frozen=True, eq=False)
class DSink:
    """Output step plus the sequence reading its output back."""

    dseq: DSeq
    step: Step

    def apply(self, conf: Configuration | None = None) -> Configuration:
        return apply_step(conf if conf is not None else Configuration(), self.step)

    def output_paths(self, conf: Configuration | None = None) -> list[str]:
        return output_paths(self.apply(conf))

    def __repr__(self) -> str:
        return f"DSink({list(self.dseq.locations)!r})"


def dseq(step: Step, *locations: str) -> DSeq:
    """Distributed sequence configured by ``step`` and reading ``locations``."""
    return DSeq(step, tuple(locations))


def dsink(seq: DSeq, step: Step) -> DSink:
    """Distributed sink configured by ``step`` whose output ``seq`` reads back."""
    return DSink(seq, step)


__all__ = ["DSeq", "DSink", "dseq", "dsink"]
