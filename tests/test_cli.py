"""Tests for the CLI."""

import json
import os
import tempfile
from pathlib import Path

import pytest
from click.testing import CliRunner

from orc_tasks.cli import main
from orc_tasks.core import tasks as tasks_mod
from orc_tasks.db.engine import get_db


@pytest.fixture
def cli_env():
    """Set up a temp database and an orchestrator working directory."""
    with tempfile.TemporaryDirectory() as tmp:
        db_path = Path(tmp) / "test.db"
        env = {
            "ORC_DB_PATH": str(db_path),
            "PWD": "/home/dev/orc",
        }
        old_env = {}
        for k, v in env.items():
            old_env[k] = os.environ.get(k)
            os.environ[k] = v

        yield CliRunner(), db_path, tmp

        for k, v in old_env.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v


def _seed(runner, tmp):
    result = runner.invoke(main, ["repo", "add", "r1", "--path", tmp])
    assert result.exit_code == 0, result.output
    result = runner.invoke(main, ["worktree", "add", "w1", "--repo", "r1",
                                  "--path", str(Path(tmp) / "worktrees" / "w1"), "--branch", "feat/w1"])
    assert result.exit_code == 0, result.output


class TestRepoCommands:
    def test_add_and_list(self, cli_env):
        runner, _, tmp = cli_env
        result = runner.invoke(main, ["repo", "add", "r1", "--path", tmp, "--primary-branch", "main"])
        assert result.exit_code == 0
        assert "Repository registered: r1" in result.output

        result = runner.invoke(main, ["repo", "list"])
        assert "r1" in result.output
        assert "(main)" in result.output

    def test_duplicate(self, cli_env):
        runner, _, tmp = cli_env
        runner.invoke(main, ["repo", "add", "r1", "--path", tmp])
        result = runner.invoke(main, ["repo", "add", "r1", "--path", tmp])
        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_remove(self, cli_env):
        runner, _, tmp = cli_env
        _seed(runner, tmp)
        result = runner.invoke(main, ["repo", "remove", "r1", "--yes"])
        assert result.exit_code == 0
        result = runner.invoke(main, ["worktree", "list"])
        assert "No worktrees found." in result.output

    def test_empty_list(self, cli_env):
        runner, _, _ = cli_env
        result = runner.invoke(main, ["repo", "list"])
        assert "No repositories found." in result.output


class TestWorktreeCommands:
    def test_add_and_list(self, cli_env):
        runner, _, tmp = cli_env
        _seed(runner, tmp)
        result = runner.invoke(main, ["worktree", "list"])
        assert "w1 (r1) [active]" in result.output

    def test_unknown_repo(self, cli_env):
        runner, _, tmp = cli_env
        result = runner.invoke(main, ["worktree", "add", "w1", "--repo", "nope", "--path", tmp])
        assert result.exit_code == 1
        assert "Repository 'nope' not found" in result.output

    def test_set_status(self, cli_env):
        runner, _, tmp = cli_env
        _seed(runner, tmp)
        result = runner.invoke(main, ["worktree", "set-status", "w1", "paused"])
        assert result.exit_code == 0
        assert "w1 is now paused" in result.output
        result = runner.invoke(main, ["worktree", "list", "--status", "active"])
        assert "No worktrees found." in result.output

    def test_remove(self, cli_env):
        runner, _, tmp = cli_env
        _seed(runner, tmp)
        result = runner.invoke(main, ["worktree", "remove", "w1", "--yes"])
        assert result.exit_code == 0


class TestTaskCommands:
    def test_add(self, cli_env):
        runner, db_path, tmp = cli_env
        _seed(runner, tmp)
        result = runner.invoke(main, ["task", "add", "Fix bug", "--worktree", "w1", "-p", "high"])
        assert result.exit_code == 0
        assert "Created task #1" in result.output
        assert "Priority: high" in result.output

        with get_db(db_path) as db:
            task = tasks_mod.get_task(db, 1)
        assert task.history[0].agent_id == "orchestrator"

    def test_add_unknown_worktree(self, cli_env):
        runner, _, tmp = cli_env
        _seed(runner, tmp)
        result = runner.invoke(main, ["task", "add", "Fix bug", "--worktree", "nope"])
        assert result.exit_code == 1
        assert "Available: w1" in result.output

    def test_list(self, cli_env):
        runner, _, tmp = cli_env
        _seed(runner, tmp)
        runner.invoke(main, ["task", "add", "Urgent", "--worktree", "w1", "-p", "urgent"])
        runner.invoke(main, ["task", "add", "Low", "--worktree", "w1", "-p", "low"])
        result = runner.invoke(main, ["task", "list", "--worktree", "w1"])
        assert result.exit_code == 0
        assert result.output.index("Low") < result.output.index("Urgent")

    def test_list_json(self, cli_env):
        runner, _, tmp = cli_env
        _seed(runner, tmp)
        runner.invoke(main, ["task", "add", "Fix bug", "--worktree", "w1"])
        result = runner.invoke(main, ["task", "list", "--worktree", "w1", "--json"])
        data = json.loads(result.output)
        assert data[0]["title"] == "Fix bug"
        assert data[0]["history"][0]["action"] == "created"

    def test_list_from_worktree_directory(self, cli_env):
        runner, _, tmp = cli_env
        _seed(runner, tmp)
        runner.invoke(main, ["task", "add", "Fix bug", "--worktree", "w1"])
        result = runner.invoke(main, ["task", "list"], env={"PWD": "/anywhere/worktrees/w1"})
        assert "Fix bug" in result.output

    def test_list_without_context(self, cli_env):
        runner, _, tmp = cli_env
        _seed(runner, tmp)
        result = runner.invoke(main, ["task", "list"])
        assert result.exit_code == 1
        assert "No worktree context detected" in result.output

    def test_update_and_show(self, cli_env):
        runner, _, tmp = cli_env
        _seed(runner, tmp)
        runner.invoke(main, ["task", "add", "Fix bug", "--worktree", "w1"])
        result = runner.invoke(
            main, ["task", "update", "1", "--status", "in_progress", "-n", "started"],
            env={"PWD": "/anywhere/worktrees/w1"},
        )
        assert result.exit_code == 0
        assert "status_changed: investigating -> in_progress" in result.output

        result = runner.invoke(main, ["task", "show", "1"])
        assert "Status: in_progress" in result.output
        assert "  History:" in result.output
        assert "implementer_w1 status_changed" in result.output

    def test_update_no_change(self, cli_env):
        runner, _, tmp = cli_env
        _seed(runner, tmp)
        runner.invoke(main, ["task", "add", "Fix bug", "--worktree", "w1"])
        result = runner.invoke(main, ["task", "update", "1", "--status", "investigating"])
        assert "unchanged" in result.output

    def test_update_missing(self, cli_env):
        runner, _, tmp = cli_env
        _seed(runner, tmp)
        result = runner.invoke(main, ["task", "update", "9", "--status", "completed"])
        assert result.exit_code == 1
        assert "Task #9 not found" in result.output

    def test_show_missing(self, cli_env):
        runner, _, _ = cli_env
        result = runner.invoke(main, ["task", "show", "9"])
        assert result.exit_code == 1


class TestOverviewCommands:
    def test_status(self, cli_env):
        runner, _, tmp = cli_env
        _seed(runner, tmp)
        runner.invoke(main, ["task", "add", "Hot", "--worktree", "w1", "-p", "urgent"])
        result = runner.invoke(main, ["status"])
        assert result.exit_code == 0
        assert "Global ORC Status" in result.output
        assert "Urgent Tasks" in result.output
        assert "Branch: feat/w1" in result.output

    def test_status_without_worktrees(self, cli_env):
        runner, _, _ = cli_env
        result = runner.invoke(main, ["status"])
        assert "No active worktrees found." in result.output

    def test_whoami(self, cli_env):
        runner, _, tmp = cli_env
        _seed(runner, tmp)
        result = runner.invoke(main, ["whoami"])
        assert "Role: orchestrator" in result.output

        result = runner.invoke(main, ["whoami"], env={"PWD": "/anywhere/worktrees/w1"})
        assert "Agent: implementer_w1" in result.output
        assert "Worktree: w1" in result.output

    def test_help(self, cli_env):
        runner, _, _ = cli_env
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        for command in ("serve", "mcp", "repo", "worktree", "task", "status", "whoami"):
            assert command in result.output
