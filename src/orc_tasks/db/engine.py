"""SQLite database connection management and schema initialization."""

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path

from orc_tasks.core.errors import RequestCancelled

SCHEMA = """
CREATE TABLE IF NOT EXISTS repositories (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    path TEXT NOT NULL,
    primary_branch TEXT DEFAULT 'master',
    created_at TEXT DEFAULT (strftime('%Y-%m-%d %H:%M:%f', 'now')),
    updated_at TEXT DEFAULT (strftime('%Y-%m-%d %H:%M:%f', 'now'))
);

CREATE TABLE IF NOT EXISTS worktrees (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    repository_id INTEGER NOT NULL REFERENCES repositories(id) ON DELETE CASCADE,
    path TEXT NOT NULL,
    branch TEXT,
    status TEXT DEFAULT 'active' CHECK (status IN ('active', 'paused', 'archived')),
    created_at TEXT DEFAULT (strftime('%Y-%m-%d %H:%M:%f', 'now')),
    updated_at TEXT DEFAULT (strftime('%Y-%m-%d %H:%M:%f', 'now'))
);

CREATE TABLE IF NOT EXISTS tasks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    worktree_id INTEGER NOT NULL REFERENCES worktrees(id) ON DELETE CASCADE,
    title TEXT NOT NULL,
    description TEXT,
    status TEXT DEFAULT 'investigating'
        CHECK (status IN ('investigating', 'in_progress', 'blocked', 'completed')),
    priority TEXT DEFAULT 'medium' CHECK (priority IN ('low', 'medium', 'high', 'urgent')),
    created_by TEXT,
    assigned_agent TEXT,
    created_at TEXT DEFAULT (strftime('%Y-%m-%d %H:%M:%f', 'now')),
    updated_at TEXT DEFAULT (strftime('%Y-%m-%d %H:%M:%f', 'now'))
);

CREATE TABLE IF NOT EXISTS task_histories (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    task_id INTEGER NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
    action TEXT NOT NULL,
    old_value TEXT,
    new_value TEXT,
    notes TEXT,
    agent_id TEXT NOT NULL,
    created_at TEXT DEFAULT (strftime('%Y-%m-%d %H:%M:%f', 'now'))
);

CREATE INDEX IF NOT EXISTS idx_worktrees_status ON worktrees(status);
CREATE INDEX IF NOT EXISTS idx_tasks_worktree_status ON tasks(worktree_id, status);
CREATE INDEX IF NOT EXISTS idx_task_histories_task_created ON task_histories(task_id, created_at);
CREATE INDEX IF NOT EXISTS idx_task_histories_agent ON task_histories(agent_id);
"""


class GuardedConnection(sqlite3.Connection):
    """Connection whose commits are refused once its request has been cancelled."""

    cancel_event: threading.Event | None = None

    def commit(self):
        if self.cancel_event is not None and self.cancel_event.is_set():
            self.rollback()
            raise RequestCancelled("Request was cancelled before its changes were committed")
        super().commit()


def init_db(db_path: Path) -> GuardedConnection:
    """Initialize the database, creating tables if needed."""
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path), factory=GuardedConnection)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.executescript(SCHEMA)
    conn.commit()
    return conn


@contextmanager
def get_db(db_path: Path, cancel_event: threading.Event | None = None):
    """Context manager for database connections.

    When ``cancel_event`` is set, any later commit on the connection rolls back
    and raises RequestCancelled.
    """
    conn = init_db(db_path)
    conn.cancel_event = cancel_event
    try:
        yield conn
    finally:
        conn.close()
