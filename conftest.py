"""
Shared pytest fixtures.
"""

from datetime import datetime, timezone

import pytest

from studycore.fsrs import database


NOW = datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def db(tmp_path, monkeypatch):
    """Point the store at a fresh SQLite file for one test."""
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'study.db'}")
    monkeypatch.setenv("TEST_MODE", "false")
    database.dispose_engines()
    database.init_db()
    yield
    database.dispose_engines()
