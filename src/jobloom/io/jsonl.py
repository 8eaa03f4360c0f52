"""Typed key/value records as JSON lines.

Each record is one line holding a two-element JSON array ``[key, val]``.
Written members are coerced to the declared key/value classes; JSON has no
tuple type, so tuples read back as lists.  This is the format the graph
compiler uses for intermediate locations between jobs.
"""

from __future__ import annotations

import json
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
from jobloom.core.errors import OutputError
from jobloom.execution.context import TaskAttemptContext
from jobloom.io import dseq as _dseq
from jobloom.io.formats import FileInputFormat, FileOutputFormat, coerce, location


class JsonLinesInputFormat(FileInputFormat):
    def read_records(self, handle: IO[bytes]) -> Iterator[tuple[Any, Any]]:
        for raw in handle:
            line = raw.strip()
            if not line:
                continue
            key, val = json.loads(line)
            yield key, val


class JsonLinesRecordWriter:
    def __init__(self, handle: IO[str], key_type: type = object, val_type: type = object):
        self._handle = handle
        self.key_type = key_type
        self.val_type = val_type

    def write(self, key: Any, val: Any) -> None:
        record = [coerce(key, self.key_type), coerce(val, self.val_type)]
        try:
            line = json.dumps(record, separators=(",", ":"))
        except (TypeError, ValueError) as e:
            raise OutputError(f"Record is not JSON-serializable: {record!r}", cause=e) from e
        self._handle.write(line + "\n")

    def close(self, context: TaskAttemptContext) -> None:
        self._handle.close()


class JsonLinesOutputFormat(FileOutputFormat):
    extension = ".jsonl"

    def make_writer(self, handle: IO[str], key_type: type, val_type: type) -> JsonLinesRecordWriter:
        return JsonLinesRecordWriter(handle, key_type, val_type)


def dseq(*paths: str | os.PathLike[str]) -> _dseq.DSeq:
    """Distributed sequence of the records in the JSON-lines files at ``paths``."""
    locations = tuple(location(p) for p in paths)

    def step(conf: Configuration) -> Configuration:
        return conf.assoc({INPUT_FORMAT: JsonLinesInputFormat, INPUT_PATHS: ",".join(locations)})

    return _dseq.dseq(step, *locations)


def dsink(key_type: type, val_type: type, path: str | os.PathLike[str]) -> _dseq.DSink:
    """Distributed sink writing ``(key_type, val_type)`` records under ``path``."""
    out = location(path)

    def step(conf: Configuration) -> Configuration:
        return conf.assoc(
            {
                OUTPUT_FORMAT: JsonLinesOutputFormat,
                OUTPUT_KEY_CLASS: key_type,
                OUTPUT_VALUE_CLASS: val_type,
                OUTPUT_PATH: out,
            }
        )

    return _dseq.dsink(dseq(out), step)


__all__ = ["JsonLinesInputFormat", "JsonLinesOutputFormat", "JsonLinesRecordWriter", "dseq", "dsink"]
