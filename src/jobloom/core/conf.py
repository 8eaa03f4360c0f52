"""Configuration: the immutable job configuration value.

Manifesto:
    A job's configuration is the only thing that crosses from the submitting
process into a task process.  Everything a task needs (its behavior name, its
arguments, its input and output wiring) must be expressible as string keys
and string values.  ``Configuration`` models that as an immutable value with
clone / diff / merge, so a step can never mutate a configuration someone else
is still holding.

ARCHITECTURE
────────────
::

    Configuration (Mapping[str, str])
      ├── .get / .get_int / .get_bool / .get_list / .get_class
      ├── .set(key, value) / .assoc(mapping, **kw)   ─ new Configuration
      ├── .dissoc(*keys)                             ─ new Configuration
      ├── .diff(other)   ─ keys whose value differs in ``other``
      ├── .merge(diff)   ─ apply a diff
      └── .to_dict() / Configuration.from_dict(d)

    qualified_name(obj) -> "module:qualname"
    load_object("module:qualname") -> obj

Example::

    conf = Configuration().set("jobloom.reduce.tasks", 2)
    conf.get_int("jobloom.reduce.tasks")    # 2
    base.diff(conf)                          # {"jobloom.reduce.tasks": "2"}

Tags:
    jobloom, configuration, immutable, diff, serialization

Doc-Types:
    api-reference
"""

from __future__ import annotations

import importlib
from collections.abc import Iterator, Mapping
from typing import Any

from jobloom.core.errors import BindingError, ConfigError

# ── Well-known keys ──────────────────────────────────────────────────

JOB_NAME = "jobloom.job.name"

INPUT_FORMAT = "jobloom.inputformat.class"
INPUT_PATHS = "jobloom.input.paths"

OUTPUT_FORMAT = "jobloom.outputformat.class"
OUTPUT_PATH = "jobloom.output.path"
OUTPUT_KEY_CLASS = "jobloom.output.key.class"
OUTPUT_VALUE_CLASS = "jobloom.output.value.class"
OUTPUT_BASENAME = "jobloom.output.basename"

MAP_OUTPUT_KEY_CLASS = "jobloom.map.output.key.class"
MAP_OUTPUT_VALUE_CLASS = "jobloom.map.output.value.class"

MAPPER_CLASS = "jobloom.mapper.class"
COMBINER_CLASS = "jobloom.combiner.class"
REDUCER_CLASS = "jobloom.reducer.class"
PARTITIONER_CLASS = "jobloom.partitioner.class"

NUM_REDUCERS = "jobloom.reduce.tasks"

WORK_DIR = "jobloom.work.dir"


def qualified_name(obj: Any) -> str:
    """Return the portable ``module:qualname`` name of a class or function."""
    module = getattr(obj, "__module__", None)
    qualname = getattr(obj, "__qualname__", None)
    if not module or not qualname:
        raise BindingError(f"Object has no importable name: {obj!r}")
    if "<locals>" in qualname or "<lambda>" in qualname:
        raise BindingError(f"Object is not a top-level definition and cannot be named: {module}:{qualname}")
    return f"{module}:{qualname}"


def load_object(name: str) -> Any:
    """Resolve a ``module:qualname`` name produced by :func:`qualified_name`."""
    if ":" not in name:
        raise BindingError(f"Malformed object name (expected 'module:qualname'): {name!r}")
    module_name, qualname = name.split(":", 1)
    try:
        obj: Any = importlib.import_module(module_name)
        for part in qualname.split("."):
            obj = getattr(obj, part)
    except (ImportError, AttributeError) as e:
        raise BindingError(f"Cannot resolve {name!r}", cause=e) from e
    return obj


def _to_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, type) or callable(value):
        return qualified_name(value)
    raise ConfigError(f"Configuration values must be strings, numbers, booleans or named objects, got {value!r}")


class Configuration(Mapping[str, str]):
    """Immutable mapping of string keys to string values."""

    __slots__ = ("_values",)

    def __init__(self, values: Mapping[str, Any] | None = None, **kwargs: Any):
        merged: dict[str, str] = {}
        for key, value in {**(values or {}), **kwargs}.items():
            merged[key] = _to_text(value)
        self._values = merged

    @classmethod
    def from_dict(cls, values: Mapping[str, str]) -> Configuration:
        return cls(values)

    # ── Mapping protocol ─────────────────────────────────────────────

    def __getitem__(self, key: str) -> str:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Configuration):
            return self._values == other._values
        if isinstance(other, Mapping):
            return self._values == dict(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(frozenset(self._values.items()))

    def __repr__(self) -> str:
        return f"Configuration({self._values!r})"

    # ── Typed getters ────────────────────────────────────────────────

    def get_int(self, key: str, default: int | None = None) -> int | None:
        value = self._values.get(key)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError as e:
            raise ConfigError(f"Configuration key {key!r} is not an integer: {value!r}", cause=e) from e

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self._values.get(key)
        if value is None:
            return default
        return value.strip().lower() in ("true", "1", "yes")

    def get_list(self, key: str) -> list[str]:
        """Comma-separated values under ``key`` (empty list when unset)."""
        value = self._values.get(key, "")
        return [part for part in value.split(",") if part]

    def get_class(self, key: str, default: Any = None) -> Any:
        value = self._values.get(key)
        if value is None:
            return default
        return load_object(value)

    # ── Producing new configurations ─────────────────────────────────

    def set(self, key: str, value: Any) -> Configuration:
        return self.assoc({key: value})

    def assoc(self, values: Mapping[str, Any] | None = None, **kwargs: Any) -> Configuration:
        updated = dict(self._values)
        for key, value in {**(values or {}), **kwargs}.items():
            updated[key] = _to_text(value)
        return Configuration(updated)

    def dissoc(self, *keys: str) -> Configuration:
        return Configuration({k: v for k, v in self._values.items() if k not in keys})

    def clone(self) -> Configuration:
        return Configuration(self._values)

    def diff(self, other: Mapping[str, str]) -> dict[str, str]:
        """Keys whose value in ``other`` differs from (or is absent in) this configuration."""
        return {k: v for k, v in other.items() if self._values.get(k) != v}

    def merge(self, diff: Mapping[str, Any]) -> Configuration:
        return self.assoc(diff)

    def to_dict(self) -> dict[str, str]:
        return dict(self._values)


__all__ = [
    "Configuration",
    "qualified_name",
    "load_object",
    "JOB_NAME",
    "INPUT_FORMAT",
    "INPUT_PATHS",
    "OUTPUT_FORMAT",
    "OUTPUT_PATH",
    "OUTPUT_KEY_CLASS",
    "OUTPUT_VALUE_CLASS",
    "OUTPUT_BASENAME",
    "MAP_OUTPUT_KEY_CLASS",
    "MAP_OUTPUT_VALUE_CLASS",
    "MAPPER_CLASS",
    "COMBINER_CLASS",
    "REDUCER_CLASS",
    "PARTITIONER_CLASS",
    "NUM_REDUCERS",
    "WORK_DIR",
]
