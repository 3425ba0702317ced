"""
Fixtures: a fresh sqlite file per test and a FastAPI client bound to it.
"""
import pytest
import sqlite3
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import database

# Mirrors alembic revisions 001 and 002
SCHEMA = """
    CREATE TABLE tasks (
        id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        completed INTEGER DEFAULT 0,
        completed_at TEXT,
        due_date TEXT,
        reminder_at TEXT,
        recurring_pattern TEXT,
        completed_occurrences INTEGER DEFAULT 0,
        created_at TEXT NOT NULL
    );

    CREATE TABLE completion_history (
        id INTEGER PRIMARY KEY,
        task_id TEXT NOT NULL,
        scheduled_date TEXT NOT NULL,
        completed_at TEXT,
        created_at TEXT NOT NULL
    );

    CREATE UNIQUE INDEX completion_history_task_date_idx
        ON completion_history (task_id, scheduled_date);
"""


@pytest.fixture
def test_db(monkeypatch, tmp_path):
    """
    Point database.py at an empty sqlite file under tmp_path.
    A file rather than :memory: since every database call opens its own connection.
    """
    db_path = str(tmp_path / "tasks.db")
    monkeypatch.setattr(database, "DATABASE_PATH", db_path)
    # Schema is created here, so migrations never run
    monkeypatch.setattr(database, "init_db", lambda: None)

    conn = sqlite3.connect(db_path)
    try:
        conn.executescript(SCHEMA)
        conn.commit()
    finally:
        conn.close()

    yield db_path


@pytest.fixture
def app_client(test_db):
    """TestClient running the app lifespan against the test database."""
    from fastapi.testclient import TestClient
    import main

    with TestClient(main.app) as client:
        yield client
