"""Behavior Registry: portable names for task behaviors.

Manifesto:
A task process cannot receive a closure.  It can receive a *name*.  A
behavior is a top-level function ``behavior(conf, *args)`` that returns the
per-record function a task runs; jobloom records it by its portable
``module:qualname`` name and re-resolves that name inside the task process.
The registry decouples registration (at import time) from resolution (at
task startup), and supports both a global singleton and injectable instances
for testing.

ARCHITECTURE
────────────
::

    BehaviorRegistry
      ├── .register(fn, name=None, raw=False)  ─ store behavior (+ alias)
      ├── .get(ref)                           ─ lookup by ref or alias
      ├── .has(ref)                           ─ existence check
      ├── .list_behaviors()                   ─ all registered refs
      └── .unregister(ref) / .clear()

    @behavior(name=None, raw=False)   ─ decorator using the global registry
    behavior_ref(fn_or_name)          ─ portable "module:qualname" name
    resolve_behavior(ref)             ─ registry first, then import by name
    is_raw(fn)                        ─ raw behaviors get only the context

BEST PRACTICES
──────────────
- Decorate behaviors with ``@behavior`` so aliases and the raw flag are
  known in every process that imports the defining module.
- Never pass lambdas or nested functions; they have no portable name and
  are rejected with ``BindingError``.
- Call ``reset_default_registry()`` in test fixtures.

Tags:
    jobloom, execution, registry, behaviors, serialization

Doc-Types:
    api-reference
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any

from jobloom.core.conf import load_object, qualified_name
from jobloom.core.errors import BindingError
from jobloom.core.logging import get_logger

logger = get_logger(__name__)

RAW_ATTR = "__jobloom_raw__"


def is_raw(fn: Callable) -> bool:
    """True iff ``fn`` was registered as a raw behavior."""
    return bool(getattr(fn, RAW_ATTR, False))


class BehaviorRegistry:
    """Injectable behavior registry.

    Example:
        >>> registry = BehaviorRegistry()
        >>> registry.register(word_mapper)
        'myapp.jobs:word_mapper'
        >>> registry.get("myapp.jobs:word_mapper") is word_mapper
        True
    """

    def __init__(self):
        self._behaviors: dict[str, Callable] = {}
        self._aliases: dict[str, str] = {}
        self._lock = threading.Lock()

    def register(self, fn: Callable, name: str | None = None, raw: bool = False) -> str:
        """Register ``fn`` and return its portable reference.

        Args:
            fn: Top-level behavior function
            name: Optional alias usable wherever a reference is accepted
            raw: Mark as raw (called with only the task context)
        """
        ref = qualified_name(fn)
        if raw:
            setattr(fn, RAW_ATTR, True)
        with self._lock:
            if name is not None:
                existing = self._aliases.get(name)
                if existing is not None and existing != ref:
                    raise ValueError(f"Behavior alias '{name}' is already registered for {existing}")
                self._aliases[name] = ref
            self._behaviors[ref] = fn
        logger.debug("behaviors.registered", ref=ref, alias=name, raw=raw)
        return ref

    def canonical(self, ref: str) -> str:
        """Translate an alias to its portable reference."""
        with self._lock:
            return self._aliases.get(ref, ref)

    def get(self, ref: str) -> Callable:
        """Get a registered behavior by reference or alias.

        Raises:
            KeyError: If nothing is registered under ``ref``
        """
        ref = self.canonical(ref)
        with self._lock:
            if ref not in self._behaviors:
                raise KeyError(f"No behavior registered for {ref}")
            return self._behaviors[ref]

    def has(self, ref: str) -> bool:
        ref = self.canonical(ref)
        with self._lock:
            return ref in self._behaviors

    def list_behaviors(self) -> list[str]:
        with self._lock:
            return sorted(self._behaviors)

    def unregister(self, ref: str) -> bool:
        ref = self.canonical(ref)
        with self._lock:
            self._aliases = {a: r for a, r in self._aliases.items() if r != ref}
            return self._behaviors.pop(ref, None) is not None

    def clear(self) -> None:
        """Clear all behaviors (for testing)."""
        with self._lock:
            self._behaviors.clear()
            self._aliases.clear()


# === GLOBAL DEFAULT REGISTRY ===

_default_registry: BehaviorRegistry | None = None


def get_default_registry() -> BehaviorRegistry:
    """Get the global default registry, creating it lazily."""
    global _default_registry
    if _default_registry is None:
        _default_registry = BehaviorRegistry()
    return _default_registry


def reset_default_registry() -> None:
    """Reset the global registry (for testing)."""
    global _default_registry
    _default_registry = None


def behavior(
    name: str | None = None,
    *,
    raw: bool = False,
    registry: BehaviorRegistry | None = None,
) -> Callable[[Callable], Callable]:
    """Decorator registering a top-level behavior function.

    Example:
        >>> @behavior("wordcount.mapper")
        ... def mapper(conf):
        ...     def run(context, input):
        ...         return ((w, 1) for line in input.vals() for w in line.split())
        ...     return run
    """

    def decorator(fn: Callable) -> Callable:
        (registry or get_default_registry()).register(fn, name=name, raw=raw)
        return fn

    return decorator


def behavior_ref(fn: Callable | str, registry: BehaviorRegistry | None = None) -> str:
    """Portable reference for a behavior function, alias or reference string."""
    if isinstance(fn, str):
        ref = (registry or get_default_registry()).canonical(fn)
        if ":" not in ref:
            raise BindingError(f"Unknown behavior alias {fn!r}")
        return ref
    if not callable(fn):
        raise BindingError(f"Behavior must be a function or a reference, got {fn!r}")
    return qualified_name(fn)


def resolve_behavior(ref: str, registry: BehaviorRegistry | None = None) -> Callable[..., Any]:
    """Resolve a behavior reference inside any process.

    The registry is consulted first; otherwise the defining module is imported
    (which also runs its ``@behavior`` registrations) and the name looked up.
    """
    registry = registry or get_default_registry()
    if registry.has(ref):
        return registry.get(ref)
    fn = load_object(registry.canonical(ref))
    if not callable(fn):
        raise BindingError(f"Behavior reference {ref!r} does not name a function")
    return fn


__all__ = [
    "BehaviorRegistry",
    "behavior",
    "behavior_ref",
    "resolve_behavior",
    "is_raw",
    "get_default_registry",
    "reset_default_registry",
]
