"""Test configuration: project root on sys.path and shared fixtures."""

import os
import sys
from datetime import date

import pytest

# Modules live at the project root (flat layout)
CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)
if CURRENT_DIR not in sys.path:
    sys.path.insert(0, CURRENT_DIR)

from fakes import FakeBackend, FakeStore  # noqa: E402
from weight_tracker import UserGoals, WeightEntry  # noqa: E402


@pytest.fixture(autouse=True)
def isolated_data_dir(tmp_path, monkeypatch):
    """Keep the SQLite file, cache and legacy CSV inside the test's tmp dir."""
    monkeypatch.setenv("WEIGHT_TRACKER_DATA_DIR", str(tmp_path))
    monkeypatch.delenv("LEGACY_WEIGHTS_CSV", raising=False)
    monkeypatch.delenv("SYNC_POLL_SECONDS", raising=False)
    return tmp_path


@pytest.fixture()
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture()
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture()
def loss_goals() -> UserGoals:
    return UserGoals(start_weight=100, target_weight=80,
                     start_date=date(2025, 1, 1), target_date=date(2025, 6, 1))


@pytest.fixture()
def sample_entries():
    return [
        WeightEntry(date(2025, 1, 1), 100.0),
        WeightEntry(date(2025, 1, 15), 98.0),
        WeightEntry(date(2025, 2, 1), 96.0),
    ]
