"""Line-oriented text input and output.

``dseq`` tuples are ``(byte offset, line)``.  ``dsink`` writes one line per
tuple: the string forms of key and value joined by a TAB, or just the
member that is present when the other is ``None``.
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from typing import IO, Any

from jobloom.core.conf import (
    INPUT_FORMAT,
    INPUT_PATHS,
    OUTPUT_FORMAT,
    OUTPUT_KEY_CLASS,
    OUTPUT_PATH,
    OUTPUT_VALUE_CLASS,
    Configuration,
)
from jobloom.execution.context import TaskAttemptContext
from jobloom.io import dseq as _dseq
from jobloom.io.formats import FileInputFormat, FileOutputFormat, location


class TextInputFormat(FileInputFormat):
    def read_records(self, handle: IO[bytes]) -> Iterator[tuple[int, str]]:
        offset = 0
        for raw in handle:
            yield offset, raw.decode("utf-8").rstrip("\r\n")
            offset += len(raw)


class TextRecordWriter:
    def __init__(self, handle: IO[str]):
        self._handle = handle

    def write(self, key: Any, val: Any) -> None:
        parts = [str(x) for x in (key, val) if x is not None]
        self._handle.write("\t".join(parts) + "\n")

    def close(self, context: TaskAttemptContext) -> None:
        self._handle.close()


class TextOutputFormat(FileOutputFormat):
    def make_writer(self, handle: IO[str], key_type: type, val_type: type) -> TextRecordWriter:
        return TextRecordWriter(handle)


def dseq(*paths: str | os.PathLike[str]) -> _dseq.DSeq:
    """Distributed sequence of the lines of the text files at ``paths``."""
    locations = tuple(location(p) for p in paths)

    def step(conf: Configuration) -> Configuration:
        return conf.assoc({INPUT_FORMAT: TextInputFormat, INPUT_PATHS: ",".join(locations)})

    return _dseq.dseq(step, *locations)


def dsink(path: str | os.PathLike[str]) -> _dseq.DSink:
    """Distributed sink writing TAB-separated lines under ``path``."""
    out = location(path)

    def step(conf: Configuration) -> Configuration:
        return conf.assoc(
            {
                OUTPUT_FORMAT: TextOutputFormat,
                OUTPUT_KEY_CLASS: object,
                OUTPUT_VALUE_CLASS: object,
                OUTPUT_PATH: out,
            }
        )

    return _dseq.dsink(dseq(out), step)


__all__ = ["TextInputFormat", "TextOutputFormat", "TextRecordWriter", "dseq", "dsink"]
