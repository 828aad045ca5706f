"""Shared test fixtures for chatdiary."""

import os
import tempfile
from datetime import date

import pytest

from chatdiary.journal.repository import DiaryRepository
from chatdiary.storage.flat import MemoryFlatStore
from chatdiary.storage.structured import StructuredStore

TODAY = date(2025, 3, 14)


@pytest.fixture
def tmp_dir():
    """Provide a temporary directory that is cleaned up after the test."""
    with tempfile.TemporaryDirectory() as d:
        yield d


@pytest.fixture
def tmp_config_file(tmp_dir):
    """Create a temporary YAML config file."""
    import yaml

    config_data = {
        "paths": {"data_dir": os.path.join(tmp_dir, "data")},
        "sync": {"interval_minutes": 15},
    }
    config_path = os.path.join(tmp_dir, "config.yaml")
    with open(config_path, "w") as f:
        yaml.dump(config_data, f)
    return config_path


@pytest.fixture
async def store(tmp_dir):
    """Structured store on a fresh database file."""
    s = StructuredStore(os.path.join(tmp_dir, "test.db"))
    await s.open()
    yield s
    await s.close()


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def flat():
    return MemoryFlatStore()


@pytest.fixture
async def repo(store, flat, today):
    """Initialized repository over an empty store (seeded with built-in data)."""
    r = DiaryRepository(store, flat, today=today)
    await r.initialize()
    return r
