"""Shared fixtures for WBS tracker tests."""

import tempfile
from pathlib import Path

import pytest

from wbs_tracker.core.services import build_services
from wbs_tracker.db.engine import init_db

# Lowest cost bcrypt accepts; keeps hashing fast in tests.
TEST_ROUNDS = 4


@pytest.fixture
def db():
    """Create a temporary SQLite database for testing."""
    with tempfile.TemporaryDirectory() as tmp:
        db_path = Path(tmp) / "test.db"
        conn = init_db(db_path)
        yield conn
        conn.close()


@pytest.fixture
def services(db):
    return build_services(db, bcrypt_rounds=TEST_ROUNDS)


@pytest.fixture
def make_user(db):
    """Insert a user row directly and return its ID."""

    def _make(name, role="developer", email=None, password_hash="not-a-hash"):
        cur = db.execute(
            "INSERT INTO users (name, email, role, password_hash) VALUES (?, ?, ?, ?)",
            (name, email or f"{name.lower()}@example.com", role, password_hash),
        )
        db.commit()
        return cur.lastrowid

    return _make


@pytest.fixture
def log_hours(db):
    """Log work hours against a task through a daily report."""

    def _log(user_id, task_id, hours, work_date="2025-01-06"):
        row = db.execute(
            "SELECT id FROM daily_reports WHERE user_id = ? AND work_date = ?", (user_id, work_date)
        ).fetchone()
        if row:
            report_id = row["id"]
        else:
            report_id = db.execute(
                "INSERT INTO daily_reports (user_id, work_date) VALUES (?, ?)", (user_id, work_date)
            ).lastrowid
        db.execute(
            "INSERT INTO daily_report_entries (report_id, task_id, work_hours) VALUES (?, ?, ?)",
            (report_id, task_id, hours),
        )
        db.commit()

    return _log
