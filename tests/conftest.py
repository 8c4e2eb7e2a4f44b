"""
Shared fixtures: a temporary database, a controllable clock and a fake
analysis model.
"""

import os
import shutil
import tempfile
from datetime import datetime, timezone

import pytest

from helpers import FakeClock, FakeModel
from mpai_guard.storage.repository import initialize_schema


@pytest.fixture
def db_path():
    temp_dir = tempfile.mkdtemp()
    path = os.path.join(temp_dir, "test.db")
    initialize_schema(path)
    yield path
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 5, 31, 22, 0, tzinfo=timezone.utc))


@pytest.fixture
def fake_model():
    return FakeModel()
