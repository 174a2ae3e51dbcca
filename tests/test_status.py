"""Tests for the cross-worktree status rollup."""

import tempfile
from pathlib import Path

import pytest

from orc_tasks.core import repositories as repositories_mod
from orc_tasks.core import status as status_mod
from orc_tasks.core import tasks as tasks_mod
from orc_tasks.core import worktrees as worktrees_mod
from orc_tasks.db.engine import init_db


@pytest.fixture
def db():
    with tempfile.TemporaryDirectory() as tmp:
        conn = init_db(Path(tmp) / "test.db")
        repositories_mod.create_repository(conn, "r1", "/src/r1")
        worktrees_mod.create_worktree(conn, "w1", "r1", "/src/worktrees/w1", branch="feat/one")
        worktrees_mod.create_worktree(conn, "w2", "r1", "/src/worktrees/w2", branch="feat/two")
        yield conn
        conn.close()


class TestCollect:
    def test_counts(self, db):
        t1 = tasks_mod.create_task(db, "one", "w1")
        tasks_mod.create_task(db, "two", "w1")
        tasks_mod.update_task(db, t1.id, status="completed")

        status = status_mod.collect_global_status(db)
        w1 = status.worktrees[0]
        assert (w1.active_count, w1.completed_count) == (1, 1)
        assert w1.branch == "feat/one"
        assert status.total_active == 1

    def test_urgent_excludes_completed(self, db):
        tasks_mod.create_task(db, "hot", "w1", priority="urgent")
        done = tasks_mod.create_task(db, "was hot", "w2", priority="urgent")
        tasks_mod.update_task(db, done.id, status="completed")
        status = status_mod.collect_global_status(db)
        assert [t.title for t in status.urgent] == ["hot"]

    def test_blocked_uses_latest_note(self, db):
        task = tasks_mod.create_task(db, "stuck", "w1")
        tasks_mod.update_task(db, task.id, status="blocked", notes="waiting on API")
        tasks_mod.update_task(db, task.id, notes="still waiting on API keys")
        status = status_mod.collect_global_status(db)
        assert len(status.blocked) == 1
        assert status.blocked[0].note == "still waiting on API keys"

    def test_blocked_without_note(self, db):
        task = tasks_mod.create_task(db, "stuck", "w1")
        tasks_mod.update_task(db, task.id, status="blocked")
        status = status_mod.collect_global_status(db)
        assert status.blocked[0].note == status_mod.NO_DETAILS

    def test_inactive_worktrees_skipped(self, db):
        tasks_mod.create_task(db, "hot", "w2", priority="urgent")
        worktrees_mod.set_worktree_status(db, "w2", "paused")
        status = status_mod.collect_global_status(db)
        assert [s.worktree.name for s in status.worktrees] == ["w1"]
        assert status.urgent == []

    def test_no_active_worktrees_lists_repositories(self, db):
        worktrees_mod.set_worktree_status(db, "w1", "archived")
        worktrees_mod.set_worktree_status(db, "w2", "archived")
        status = status_mod.collect_global_status(db)
        assert status.worktrees == []
        assert status.repositories == ["r1"]


class TestFormat:
    def test_section_order(self, db):
        tasks_mod.create_task(db, "hot", "w1", priority="urgent")
        stuck = tasks_mod.create_task(db, "stuck", "w2")
        tasks_mod.update_task(db, stuck.id, status="blocked", notes="need creds")

        text = status_mod.format_global_status(status_mod.collect_global_status(db))
        positions = [
            text.index("Global ORC Status"),
            text.index("**Summary**: 2 active tasks across 2 worktrees"),
            text.index("🚨 **Urgent Tasks** (1):"),
            text.index("🚫 **Blocked Tasks** (1):"),
            text.index("**w1** (r1)"),
        ]
        assert positions == sorted(positions)
        assert f"• #{stuck.id}: stuck - need creds" in text

    def test_empty_worktree_says_no_tasks(self, db):
        status = status_mod.collect_global_status(db)
        text = status_mod.format_global_status(status)
        assert "Tasks: No tasks" in text
        assert "Tasks: 0 active" not in text
        assert "**Summary**: 0 active tasks across 2 worktrees" in text
        assert status_mod.format_worktree_line(status.worktrees[0], include_completed=True) == "No tasks"

    def test_all_complete(self, db):
        task = tasks_mod.create_task(db, "one", "w1")
        tasks_mod.update_task(db, task.id, status="completed")
        text = status_mod.format_global_status(status_mod.collect_global_status(db))
        assert "✅ All complete (1)" in text

    def test_include_completed(self, db):
        tasks_mod.create_task(db, "open", "w1")
        done = tasks_mod.create_task(db, "done", "w1")
        tasks_mod.update_task(db, done.id, status="completed")

        without = status_mod.format_global_status(status_mod.collect_global_status(db))
        assert "1 active\n" in without
        assert "completed" not in without.split("\n\n")[1]

        with_completed = status_mod.format_global_status(
            status_mod.collect_global_status(db, include_completed=True)
        )
        assert "1 active tasks across 2 worktrees, 1 completed" in with_completed
        assert "1 active, 1 complete" in with_completed

    def test_no_active_worktrees(self, db):
        worktrees_mod.set_worktree_status(db, "w1", "paused")
        worktrees_mod.set_worktree_status(db, "w2", "paused")
        text = status_mod.format_global_status(status_mod.collect_global_status(db))
        assert "No active worktrees found." in text
        assert "• r1" in text
