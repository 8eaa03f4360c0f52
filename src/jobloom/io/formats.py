"""Input and output format contracts.

Formats are classes named in the job configuration
(``jobloom.inputformat.class`` / ``jobloom.outputformat.class``) and
instantiated without arguments; everything they need is read from the
configuration they are handed.

::

    InputFormat
      ├── .get_splits(conf)        → [InputSplit]
      ├── .read(conf, split)       → iterator of (key, val)
      └── .get_input_paths(conf)   → [location]

    OutputFormat
      ├── .check_output_specs(conf)     ─ fail before the job runs
      ├── .setup_job(conf)              ─ create output locations
      ├── .get_record_writer(tac)       → RecordWriter
      ├── .commit_job(conf)             ─ mark success
      └── .get_output_paths(conf)       → [location]

``FileInputFormat`` and ``FileOutputFormat`` implement the directory-of-part-
files layout shared by the text and JSON-lines formats.
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Any, Protocol, runtime_checkable

from jobloom.core.conf import (
    INPUT_FORMAT,
    INPUT_PATHS,
    OUTPUT_BASENAME,
    OUTPUT_FORMAT,
    OUTPUT_KEY_CLASS,
    OUTPUT_PATH,
    OUTPUT_VALUE_CLASS,
    Configuration,
)
from jobloom.core.errors import ConfigError, OutputError
from jobloom.execution.context import RecordWriter, TaskAttemptContext

DEFAULT_BASENAME = "part"
SUCCESS_MARKER = "_SUCCESS"


@dataclass(frozen=True)
class InputSplit:
    """One unit of map input."""

    location: str
    index: int = 0
    inner: InputSplit | None = None


@runtime_checkable
class InputFormat(Protocol):
    def get_splits(self, conf: Configuration) -> list[InputSplit]: ...

    def read(self, conf: Configuration, split: InputSplit) -> Iterator[tuple[Any, Any]]: ...

    def get_input_paths(self, conf: Configuration) -> list[str]: ...


@runtime_checkable
class OutputFormat(Protocol):
    def check_output_specs(self, conf: Configuration) -> None: ...

    def setup_job(self, conf: Configuration) -> None: ...

    def get_record_writer(self, context: TaskAttemptContext) -> RecordWriter: ...

    def commit_job(self, conf: Configuration) -> None: ...

    def get_output_paths(self, conf: Configuration) -> list[str]: ...


def input_format(conf: Configuration) -> InputFormat:
    cls = conf.get_class(INPUT_FORMAT)
    if cls is None:
        raise ConfigError("Job has no input format configured").with_context(stage="input")
    return cls()


def output_format(conf: Configuration) -> OutputFormat:
    cls = conf.get_class(OUTPUT_FORMAT)
    if cls is None:
        raise ConfigError("Job has no output format configured").with_context(stage="output")
    return cls()


def input_paths(conf: Configuration) -> list[str]:
    """Physical locations the configured input format reads."""
    return input_format(conf).get_input_paths(conf)


def output_paths(conf: Configuration) -> list[str]:
    """Physical locations the configured output format writes."""
    return output_format(conf).get_output_paths(conf)


def location(path: str | os.PathLike[str]) -> str:
    """Canonical textual form of a filesystem location."""
    return os.fspath(Path(path).absolute())


def coerce(value: Any, type_: type) -> Any:
    """Wrap ``value`` as ``type_`` unless it already is one (``object`` accepts anything)."""
    if type_ is object or value is None or isinstance(value, type_):
        return value
    try:
        return type_(value)
    except (TypeError, ValueError) as e:
        raise OutputError(f"Cannot write {value!r} as {type_.__name__}", cause=e) from e


# =============================================================================
# File formats
# =============================================================================


class FileInputFormat:
    """Reads every visible file under the configured input paths, one split per file."""

    def get_input_paths(self, conf: Configuration) -> list[str]:
        return conf.get_list(INPUT_PATHS)

    def get_splits(self, conf: Configuration) -> list[InputSplit]:
        splits: list[InputSplit] = []
        for path in self.get_input_paths(conf):
            for file in _list_files(Path(path)):
                splits.append(InputSplit(os.fspath(file), len(splits)))
        return splits

    def read(self, conf: Configuration, split: InputSplit) -> Iterator[tuple[Any, Any]]:
        with open(split.location, "rb") as handle:
            yield from self.read_records(handle)

    def read_records(self, handle: IO[bytes]) -> Iterator[tuple[Any, Any]]:
        raise NotImplementedError


def _list_files(path: Path) -> list[Path]:
    if path.is_file():
        return [path]
    if not path.is_dir():
        raise ConfigError(f"Input path does not exist: {path}").with_context(stage="input", path=str(path))
    return sorted(p for p in path.iterdir() if p.is_file() and not p.name.startswith(("_", ".")))


class FileOutputFormat:
    """Writes ``<basename>-<m|r>-NNNNN<ext>`` part files under the output path.

    Part files are opened exclusively: opening an existing file fails.
    """

    extension = ""

    def output_dir(self, conf: Configuration) -> Path:
        path = conf.get(OUTPUT_PATH)
        if not path:
            raise ConfigError("Job has no output path configured").with_context(stage="output")
        return Path(path)

    def check_output_specs(self, conf: Configuration) -> None:
        out = self.output_dir(conf)
        if out.exists():
            raise OutputError(f"Output directory already exists: {out}").with_context(path=str(out))

    def setup_job(self, conf: Configuration) -> None:
        self.output_dir(conf).mkdir(parents=True, exist_ok=True)

    def commit_job(self, conf: Configuration) -> None:
        (self.output_dir(conf) / SUCCESS_MARKER).touch()

    def get_output_paths(self, conf: Configuration) -> list[str]:
        return [location(self.output_dir(conf))]

    def part_file(self, context: TaskAttemptContext) -> Path:
        basename = context.conf.get(OUTPUT_BASENAME, DEFAULT_BASENAME)
        attempt = context.attempt_id
        return self.output_dir(context.conf) / f"{basename}-{attempt.task_type}-{attempt.task:05d}{self.extension}"

    def get_record_writer(self, context: TaskAttemptContext) -> RecordWriter:
        path = self.part_file(context)
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            handle = open(path, "x", encoding="utf-8")
        except FileExistsError as e:
            raise OutputError(f"Output file already exists: {path}", cause=e).with_context(path=str(path)) from e
        key_type = context.conf.get_class(OUTPUT_KEY_CLASS, object)
        val_type = context.conf.get_class(OUTPUT_VALUE_CLASS, object)
        return self.make_writer(handle, key_type, val_type)

    def make_writer(self, handle: IO[str], key_type: type, val_type: type) -> RecordWriter:
        raise NotImplementedError


__all__ = [
    "InputSplit",
    "InputFormat",
    "OutputFormat",
    "FileInputFormat",
    "FileOutputFormat",
    "input_format",
    "output_format",
    "input_paths",
    "output_paths",
    "location",
    "coerce",
    "DEFAULT_BASENAME",
    "SUCCESS_MARKER",
]
