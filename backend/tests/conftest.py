"""
Shared pytest fixtures for backend tests.
Uses a temp-file SQLite database per test for isolation.
"""
from datetime import date
from types import SimpleNamespace

import pytest
import sqlite3
import sys
import os

# Add backend to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import database
from config import ExtractorConfig
from extractor import TaskExtractor

# A Wednesday in the middle of a quarter
TODAY = date(2026, 10, 21)


@pytest.fixture
def test_db(monkeypatch, tmp_path):
    """
    Create an isolated test database for each test.
    Uses a temp file (not :memory:) because database.py opens new connections per operation.
    """
    db_path = str(tmp_path / "test.db")
    monkeypatch.setattr(database, "DATABASE_PATH", db_path)
    monkeypatch.setattr(database, "init_db", lambda: None)

    # Create tables directly (skip alembic for tests)
    conn = sqlite3.connect(db_path)
    conn.executescript("""
        CREATE TABLE boards (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            description TEXT DEFAULT '',
            user_id TEXT NOT NULL,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE TABLE tasks (
            id TEXT PRIMARY KEY,
            title TEXT NOT NULL,
            description TEXT DEFAULT '',
            due_date TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'Todo',
            priority TEXT NOT NULL DEFAULT 'Medium',
            position INTEGER NOT NULL DEFAULT 0,
            board_id TEXT NOT NULL,
            user_id TEXT NOT NULL,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE TABLE user_plans (
            user_id TEXT PRIMARY KEY,
            subscription_id TEXT NOT NULL,
            plan_id TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'pending',
            updated_at TEXT NOT NULL
        );
    """)
    conn.commit()
    conn.close()

    yield db_path


class FakeMessages:
    """Stands in for AsyncAnthropic().messages."""

    def __init__(self, reply=None, error=None):
        self.reply = reply
        self.error = error
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(content=[SimpleNamespace(type="text", text=self.reply)])


class FakeClient:
    def __init__(self, reply=None, error=None):
        self.messages = FakeMessages(reply, error)


@pytest.fixture
def make_extractor():
    """Build a TaskExtractor around a fake client that returns reply or raises error."""
    def _make(reply=None, error=None):
        client = FakeClient(reply, error)
        extractor = TaskExtractor(ExtractorConfig(api_key="test-key"), client=client, clock=lambda: TODAY)
        return extractor, client
    return _make


@pytest.fixture
def app_client(test_db, monkeypatch):
    """
    Create a test client for the FastAPI app.
    Mocks init_db to skip alembic migrations; the extractor runs offline.
    """
    from fastapi.testclient import TestClient
    import main

    # Skip alembic in tests - tables already created by test_db fixture
    monkeypatch.setattr(main, "init_db", lambda: None)

    offline = TaskExtractor(ExtractorConfig(api_key=""), clock=lambda: TODAY)
    main.app.dependency_overrides[main.get_extractor] = lambda: offline

    with TestClient(main.app) as client:
        client.headers.update({"X-User-Id": "user-1"})
        yield client

    main.app.dependency_overrides.clear()
