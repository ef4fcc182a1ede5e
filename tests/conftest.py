"""tests/conftest.py — Shared fixtures."""

from __future__ import annotations

import pytest

from fsmlens.kernel.manager import HistoryManager
from fsmlens.models.types import LensConfig


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch):
    # CliRunner swaps stderr per invocation; keep configure_logging from binding to it.
    monkeypatch.setattr("fsmlens.logging_setup._configured", True)


@pytest.fixture
def manager():
    return HistoryManager()


@pytest.fixture
def strict_manager():
    return HistoryManager(LensConfig(strict=True))


class SnapshotRecorder:
    def __init__(self):
        self.snapshots = []

    def __call__(self, snapshot):
        self.snapshots.append(snapshot)

    @property
    def calls(self):
        return len(self.snapshots)

    @property
    def last(self):
        return self.snapshots[-1]


@pytest.fixture
def recorder():
    return SnapshotRecorder()


@pytest.fixture
def mounted(manager):
    """A manager with instance m1 mounted in state A."""
    manager.mount("m1", {"state": "A"}, lambda: None)
    return manager
