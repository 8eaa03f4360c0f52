"""
Shared pytest fixtures and configuration for jobloom tests.

This module provides:
- Registry, settings and logging cleanup fixtures for test isolation
- A work directory under ``tmp_path`` for intermediate job data
- An inline local engine that records submitted job names
- Helpers writing text input files

Usage:
    Fixtures are auto-discovered by pytest. Simply use them as function
    arguments (pytest injects them automatically).
"""

import sys
from pathlib import Path

import pytest
import structlog

# Ensure jobloom package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from jobloom.core.settings import clear_settings_cache
from jobloom.execution.behaviors import reset_default_registry
from jobloom.execution.executors.local import LocalEngine


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests: engine runs are integration, everything else unit."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def clean_registry():
    """Reset the global behavior registry before and after each test."""
    reset_default_registry()
    yield
    reset_default_registry()


@pytest.fixture(autouse=True)
def work_dir(tmp_path, monkeypatch):
    """Point intermediate job data at a per-test directory."""
    path = tmp_path / "work"
    monkeypatch.setenv("JOBLOOM_WORK_DIR", str(path))
    monkeypatch.delenv("JOBLOOM_NUM_REDUCERS", raising=False)
    monkeypatch.delenv("JOBLOOM_ENGINE_MODE", raising=False)
    clear_settings_cache()
    yield path
    clear_settings_cache()


@pytest.fixture(autouse=True)
def reset_logging():
    """Undo ``configure_logging`` calls made by a test."""
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


# =============================================================================
# Engine Fixtures
# =============================================================================


@pytest.fixture
def engine():
    """Inline local engine; ``engine.submitted`` lists job names in order."""
    return LocalEngine(mode="inline")


# =============================================================================
# Input Helpers
# =============================================================================


@pytest.fixture
def write_lines(tmp_path):
    """Write ``lines`` to a text file under ``tmp_path`` and return its path."""

    def _write(name: str, lines: list[str]) -> Path:
        path = tmp_path / "input" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("".join(f"{line}\n" for line in lines), encoding="utf-8")
        return path

    return _write

