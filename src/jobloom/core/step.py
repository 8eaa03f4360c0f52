"""Configuration steps.

A step is any callable ``Configuration -> Configuration``.  For convenience a
``Mapping`` is also a step (it is assoc'ed onto the configuration) and a list
or tuple of steps is applied in order.  Later steps win on conflicting keys.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from typing import Any, Union

from jobloom.core.conf import Configuration
from jobloom.core.errors import ConfigError

StepFn = Callable[[Configuration], Configuration]
Step = Union[StepFn, Mapping[str, Any], Sequence["Step"], None]


def apply_step(conf: Configuration, step: Step) -> Configuration:
    """Apply a single step (function, mapping, sequence or ``None``)."""
    if step is None:
        return conf
    if isinstance(step, Mapping):
        return conf.assoc(step)
    if isinstance(step, (list, tuple)):
        for inner in step:
            conf = apply_step(conf, inner)
        return conf
    if callable(step):
        result = step(conf)
        if not isinstance(result, Configuration):
            raise ConfigError(f"Step {step!r} returned {type(result).__name__}, expected Configuration")
        return result
    raise ConfigError(f"Not a configuration step: {step!r}")


def apply_steps(conf: Configuration, *steps: Step) -> Configuration:
    """Apply ``steps`` to ``conf`` in order."""
    for step in steps:
        conf = apply_step(conf, step)
    return conf


def compose(*steps: Step) -> StepFn:
    """Return one step applying ``steps`` in order."""

    def composed(conf: Configuration) -> Configuration:
        return apply_steps(conf, *steps)

    return composed


__all__ = ["Step", "StepFn", "apply_step", "apply_steps", "compose"]
