"""Tests for BehaviorRegistry and behavior resolution."""

import pytest

from jobloom.core.errors import BindingError
from jobloom.execution.behaviors import (
    BehaviorRegistry,
    behavior,
    behavior_ref,
    get_default_registry,
    is_raw,
    resolve_behavior,
)


def tokenize(conf):
    return str.split


def passthrough(conf):
    return lambda context: None


class TestBehaviorRegistry:
    """Registration, aliases and lookup."""

    def test_register_returns_portable_ref(self):
        registry = BehaviorRegistry()
        ref = registry.register(tokenize)

        assert ref == f"{__name__}:tokenize"
        assert registry.get(ref) is tokenize
        assert registry.has(ref)

    def test_alias_lookup(self):
        registry = BehaviorRegistry()
        registry.register(tokenize, name="words")

        assert registry.get("words") is tokenize
        assert registry.canonical("words") == f"{__name__}:tokenize"

    def test_alias_conflict(self):
        registry = BehaviorRegistry()
        registry.register(tokenize, name="x")
        with pytest.raises(ValueError, match="already registered"):
            registry.register(passthrough, name="x")

    def test_missing_raises_key_error(self):
        with pytest.raises(KeyError):
            BehaviorRegistry().get("nope:nothing")

    def test_unregister_drops_aliases(self):
        registry = BehaviorRegistry()
        ref = registry.register(tokenize, name="words")

        assert registry.unregister("words") is True
        assert not registry.has(ref)
        assert registry.canonical("words") == "words"
        assert registry.unregister(ref) is False

    def test_list_and_clear(self):
        registry = BehaviorRegistry()
        registry.register(tokenize)
        registry.register(passthrough)

        assert registry.list_behaviors() == sorted([f"{__name__}:tokenize", f"{__name__}:passthrough"])
        registry.clear()
        assert registry.list_behaviors() == []


class TestDecoratorAndResolution:
    """The global registry, decorator and name resolution."""

    def test_decorator_registers_globally(self):
        decorated = behavior("split-words")(tokenize)

        assert decorated is tokenize
        assert get_default_registry().get("split-words") is tokenize

    def test_raw_flag(self):
        behavior(raw=True)(passthrough)
        assert is_raw(passthrough)
        assert not is_raw(tokenize)

    def test_injected_registry(self):
        registry = BehaviorRegistry()
        behavior("local", registry=registry)(tokenize)

        assert registry.has("local")
        assert not get_default_registry().has("local")

    def test_behavior_ref_forms(self):
        assert behavior_ref(tokenize) == f"{__name__}:tokenize"
        assert behavior_ref("pkg.mod:fn") == "pkg.mod:fn"
        with pytest.raises(BindingError):
            behavior_ref("unknown-alias")
        with pytest.raises(BindingError):
            behavior_ref(42)

    def test_resolve_imports_unregistered_names(self):
        assert resolve_behavior(f"{__name__}:tokenize") is tokenize
        assert resolve_behavior("jobloom.examples.word_count:mapper").__name__ == "mapper"

    def test_resolve_rejects_non_callables(self):
        with pytest.raises(BindingError):
            resolve_behavior("jobloom.execution.slots:SLOT_CAPACITY")
