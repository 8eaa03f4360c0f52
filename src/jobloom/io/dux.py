"""Demultiplexed Output: one task, many named outputs.

Manifesto:
A single task often needs to write to several independently configured
outputs: good records here, rejects there, one file per customer somewhere
else.  Each named output carries its own output format, key/value classes
and location.  The job itself is configured with ``DuxOutputFormat``, which
only satisfies the engine's output plumbing; the real configuration of each
named output is stored as a diff inside the job configuration and replayed
inside the task process when that output is first written.

ARCHITECTURE
────────────
::

    Build time (submitting process)
      add_substep(conf, name, step)
        step(base) ─ diff vs base ─► conf["jobloom.dux.confs"][name]
        conf.outputformat = DuxOutputFormat, key/value classes = object

    Task time (one DuxState per task, under a single lock)
      Unopened ──get_writer(ctx, name, basename)──► Open
        (name, basename) not cached → sub-conf(name) [+ basename]
                                      → OutputFormat.get_record_writer
                                      → counting wrapper, cached
      Open ──close(ctx)──► Closed
        take + clear cache, close every writer, raise the first failure

    Job level (DuxOutputFormat)
      check_output_specs / setup_job / commit_job ─ every sub-output
      get_output_paths ─ concatenation of every sub-output's paths

``base`` is the job configuration with the output keys and the dux map
removed; the same base is rebuilt in the task before a diff is merged.

Tags:
    jobloom, io, dux, demultiplexing, named-outputs, record-writers

Doc-Types:
    api-reference
"""

from __future__ import annotations

import json
import threading
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from jobloom.core.conf import (
    OUTPUT_BASENAME,
    OUTPUT_FORMAT,
    OUTPUT_KEY_CLASS,
    OUTPUT_PATH,
    OUTPUT_VALUE_CLASS,
    Configuration,
    qualified_name,
)
from jobloom.core.errors import ConfigError, OutputError, WriterCloseError
from jobloom.core.logging import get_logger
from jobloom.core.step import Step, apply_step
from jobloom.execution.context import Counter, RecordWriter, TaskAttemptContext, TaskContext
from jobloom.execution.sink import SinkFn, SinkKind, emit_as
from jobloom.io import dseq as _dseq
from jobloom.io import mux
from jobloom.io.formats import output_format

logger = get_logger(__name__)

CONFS_KEY = "jobloom.dux.confs"
COUNTER_GROUP = "Demultiplexing Output"

_STATE_KEY = "jobloom.dux.state"
_OUTPUT_KEYS = (OUTPUT_FORMAT, OUTPUT_PATH, OUTPUT_KEY_CLASS, OUTPUT_VALUE_CLASS, OUTPUT_BASENAME)


def _base(conf: Configuration) -> Configuration:
    return conf.dissoc(*_OUTPUT_KEYS, CONFS_KEY)


# =============================================================================
# Build time
# =============================================================================


def is_dux_output(conf: Configuration) -> bool:
    """True iff ``conf`` is configured for demultiplexed output."""
    return conf.get(OUTPUT_FORMAT) == qualified_name(DuxOutputFormat)


def get_subconfs(conf: Configuration) -> dict[str, dict[str, str]]:
    """Named sub-configuration diffs of ``conf`` (empty unless it is a dux job)."""
    if not is_dux_output(conf):
        return {}
    raw = conf.get(CONFS_KEY)
    if not raw:
        return {}
    try:
        return dict(json.loads(raw))
    except json.JSONDecodeError as e:
        raise ConfigError(f"Cannot parse {CONFS_KEY}", cause=e) from e


def subconfs(conf: Configuration) -> dict[str, Configuration]:
    """Effective configuration of every named output of ``conf``."""
    base = _base(conf)
    return {name: base.merge(diff) for name, diff in get_subconfs(conf).items()}


def add_subconf(conf: Configuration, name: str, subconf: Configuration) -> Configuration:
    """Add ``subconf`` as the named output ``name`` of ``conf``.

    ``subconf`` should be derived from :func:`dux_empty` of ``conf``; only
    the keys where it differs from that base are stored.

    Raises:
        OutputError: If ``conf`` already has an output called ``name``
    """
    diffs = get_subconfs(conf)
    if name in diffs:
        raise OutputError(f"Duplicate demultiplexed output name: {name!r}").with_context(output=name)
    diff = _base(conf).diff(subconf)
    diff.pop(CONFS_KEY, None)
    diffs[name] = diff
    logger.debug("dux.output_added", output=name, keys=sorted(diff))
    return conf.assoc(
        {
            OUTPUT_FORMAT: DuxOutputFormat,
            OUTPUT_KEY_CLASS: object,
            OUTPUT_VALUE_CLASS: object,
            CONFS_KEY: json.dumps(diffs),
        }
    )


def dux_empty(conf: Configuration) -> Configuration:
    """The base configuration named outputs of ``conf`` are diffed against."""
    return _base(conf)


def add_substep(conf: Configuration, name: str, step: Step) -> Configuration:
    """Add the changes ``step`` makes to the base configuration as output ``name``."""
    return add_subconf(conf, name, apply_step(dux_empty(conf), step))


def dsink(sinks: Mapping[str, _dseq.DSink]) -> _dseq.DSink:
    """Demultiplexing sink over ``sinks``, a mapping of output names to sinks.

    The sink's read-back sequence is the multiplexed sequence of every
    component sink's sequence.
    """
    sinks = dict(sinks)

    def step(conf: Configuration) -> Configuration:
        for name, sink in sinks.items():
            conf = add_substep(conf, name, sink.step)
        return conf

    return _dseq.dsink(mux.dseq(*(s.dseq for s in sinks.values())), step)


class _BaseWriter:
    def write(self, key: Any, val: Any) -> None:
        raise OutputError("Demultiplexed jobs accept records only through named outputs")

    def close(self, context: TaskAttemptContext) -> None:
        pass


class DuxOutputFormat:
    """Job output format of demultiplexed jobs; delegates to every named output."""

    def check_output_specs(self, conf: Configuration) -> None:
        for sub in subconfs(conf).values():
            output_format(sub).check_output_specs(sub)

    def setup_job(self, conf: Configuration) -> None:
        for sub in subconfs(conf).values():
            output_format(sub).setup_job(sub)

    def commit_job(self, conf: Configuration) -> None:
        for sub in subconfs(conf).values():
            output_format(sub).commit_job(sub)

    def get_output_paths(self, conf: Configuration) -> list[str]:
        paths: list[str] = []
        for sub in subconfs(conf).values():
            paths.extend(output_format(sub).get_output_paths(sub))
        return paths

    def get_record_writer(self, context: TaskAttemptContext) -> RecordWriter:
        return _BaseWriter()


# =============================================================================
# Task time
# =============================================================================


class DuxWriter:
    """Record writer of one ``(name, basename)`` output; counts every record."""

    def __init__(
        self,
        writer: RecordWriter,
        context: TaskAttemptContext,
        counter: Counter,
        name: str,
        basename: str | None = None,
    ):
        self.writer = writer
        self.context = context
        self.counter = counter
        self.name = name
        self.basename = basename
        self.closed = False

    @property
    def conf(self) -> Configuration:
        return self.context.conf

    def write(self, key: Any, val: Any) -> None:
        if self.closed:
            raise OutputError(f"Write to closed output {self.name!r}").with_context(output=self.name)
        self.writer.write(key, val)
        self.counter.increment(1)

    def close(self, context: TaskAttemptContext | None = None) -> None:
        if self.closed:
            return
        self.closed = True
        self.writer.close(self.context)


class DuxState:
    """Writer cache of one task; ``writers`` is ``None`` once closed."""

    def __init__(self, context: TaskContext):
        self.confs = subconfs(context.conf)
        self.writers: dict[tuple[str, str | None], DuxWriter] | None = {}
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self.writers is None

    def get_writer(self, context: TaskContext, name: str, basename: str | None = None) -> DuxWriter:
        with self._lock:
            if self.writers is None:
                raise OutputError(f"Demultiplexed output closed; cannot write to {name!r}").with_context(output=name)
            key = (name, basename)
            writer = self.writers.get(key)
            if writer is None:
                writer = self._open(context, name, basename)
                self.writers[key] = writer
            return writer

    def _open(self, context: TaskContext, name: str, basename: str | None) -> DuxWriter:
        conf = self.confs.get(name)
        if conf is None:
            raise OutputError(
                f"Unknown demultiplexed output {name!r}; configured outputs: {sorted(self.confs)}"
            ).with_context(output=name)
        if basename is not None:
            conf = conf.set(OUTPUT_BASENAME, basename)
        tac = TaskAttemptContext(conf, context.attempt_id)
        writer = output_format(conf).get_record_writer(tac)
        logger.debug("dux.writer_opened", output=name, basename=basename, attempt=str(context.attempt_id))
        return DuxWriter(writer, tac, context.get_counter(COUNTER_GROUP, name), name, basename)

    def close(self, context: TaskAttemptContext | None = None) -> None:
        """Close every cached writer; raise the first failure after trying all."""
        with self._lock:
            writers, self.writers = self.writers, None
        if not writers:
            return
        error: WriterCloseError | None = None
        for (name, basename), writer in writers.items():
            try:
                writer.close()
            except Exception as e:
                logger.error("dux.writer_close_failed", output=name, basename=basename, error=str(e))
                if error is None:
                    error = WriterCloseError(f"Failed to close output {name!r}: {e}", cause=e)
                    error.with_context(output=name)
                else:
                    error.add_note(f"also failed to close output {name!r}: {e!r}")
        logger.debug("dux.closed", writers=len(writers))
        if error is not None:
            raise error


def _state(context: TaskContext) -> DuxState:
    return context.state(_STATE_KEY, DuxState)


def get_writer(context: TaskContext, name: str, basename: str | None = None) -> DuxWriter:
    """Writer for output ``name`` and optional file ``basename``, opened on first use."""
    return _state(context).get_writer(context, name, basename)


def write(context: TaskContext, name: str, key: Any, val: Any, basename: str | None = None) -> None:
    """Write ``key`` and ``val`` to output ``name`` (and optional file ``basename``)."""
    get_writer(context, name, basename).write(key, val)


def close(context: TaskContext) -> None:
    """Close every writer the task opened.  Closing twice does nothing."""
    _state(context).close(context)


# =============================================================================
# Emission helpers
# =============================================================================


def _emit_keyval(writer: DuxWriter, t: Any) -> None:
    key, val = t
    writer.write(key, val)


def _emit_key(writer: DuxWriter, t: Any) -> None:
    writer.write(t, None)


def _emit_val(writer: DuxWriter, t: Any) -> None:
    writer.write(None, t)


def _split(x: Iterable[Any], n: int) -> tuple[list[Any], Any]:
    """Split ``x`` into ``n`` leading routing fields and the record."""
    x = tuple(x)
    head, rest = list(x[:n]), x[n:]
    return head, rest[0] if len(rest) == 1 else rest


def map_output(kind: SinkKind | str = SinkKind.KEYVALS) -> SinkFn:
    """Sink as the job's base (shuffle-bound) output as ``kind``, then close dux."""

    def sink(context: TaskContext, coll: Iterable[Any]) -> None:
        try:
            emit_as(kind, context.writer, coll)
        finally:
            close(context)

    return sink


def combine_output(kind: SinkKind | str = SinkKind.KEYVALS) -> SinkKind:
    """Sink as the combiner's base output as ``kind``."""
    return SinkKind(kind)


def _named(emit: Callable[[DuxWriter, Any], None], oname: str | None) -> SinkFn:
    def sink(context: TaskContext, coll: Iterable[Any]) -> None:
        try:
            if oname is not None:
                writer = get_writer(context, oname)
                for t in coll:
                    emit(writer, t)
            else:
                for x in coll:
                    (name,), t = _split(x, 1)
                    emit(get_writer(context, name), t)
        finally:
            close(context)

    return sink


def _prefix(emit: Callable[[DuxWriter, Any], None], oname: str | None) -> SinkFn:
    def sink(context: TaskContext, coll: Iterable[Any]) -> None:
        try:
            for x in coll:
                if oname is not None:
                    (basename,), t = _split(x, 1)
                    name = oname
                else:
                    (name, basename), t = _split(x, 2)
                emit(get_writer(context, name, basename), t)
        finally:
            close(context)

    return sink


def named_keyvals(oname: str | None = None) -> SinkFn:
    """Sink ``(key, val)`` pairs to output ``oname``, or to the name given as
    the first element of ``(name, key, val)`` tuples."""
    return _named(_emit_keyval, oname)


def named_keys(oname: str | None = None) -> SinkFn:
    """Sink keys to output ``oname``, or to the name in ``(name, key)`` tuples."""
    return _named(_emit_key, oname)


def named_vals(oname: str | None = None) -> SinkFn:
    """Sink values to output ``oname``, or to the name in ``(name, val)`` tuples."""
    return _named(_emit_val, oname)


def prefix_keyvals(oname: str | None = None) -> SinkFn:
    """Sink ``(basename, key, val)`` tuples to output ``oname`` with per-record
    file basenames; without ``oname`` tuples are ``(name, basename, key, val)``."""
    return _prefix(_emit_keyval, oname)


def prefix_keys(oname: str | None = None) -> SinkFn:
    """Sink ``(basename, key)`` tuples to output ``oname``."""
    return _prefix(_emit_key, oname)


def prefix_vals(oname: str | None = None) -> SinkFn:
    """Sink ``(basename, val)`` tuples to output ``oname``."""
    return _prefix(_emit_val, oname)


__all__ = [
    "CONFS_KEY",
    "COUNTER_GROUP",
    "DuxOutputFormat",
    "DuxState",
    "DuxWriter",
    "is_dux_output",
    "get_subconfs",
    "subconfs",
    "add_subconf",
    "add_substep",
    "dux_empty",
    "dsink",
    "get_writer",
    "write",
    "close",
    "map_output",
    "combine_output",
    "named_keyvals",
    "named_keys",
    "named_vals",
    "prefix_keyvals",
    "prefix_keys",
    "prefix_vals",
]
