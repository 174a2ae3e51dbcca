"""CLI entry point for ORC task coordination."""

import json
import logging
import os
import sys

import click

from orc_tasks.config import get_config
from orc_tasks.core import repositories as repositories_mod
from orc_tasks.core import status as status_mod
from orc_tasks.core import tasks as tasks_mod
from orc_tasks.core import worktrees as worktrees_mod
from orc_tasks.core.context import resolve_context
from orc_tasks.core.errors import OrcError
from orc_tasks.db.engine import get_db
from orc_tasks.db.models import TASK_PRIORITIES, TASK_STATUSES, WORKTREE_STATUSES

STATUS_ICONS = {
    "investigating": "○",
    "in_progress": "●",
    "blocked": "✗",
    "completed": "✓",
}


def configure_logging(level: str) -> None:
    """Configure root logging; records go to stderr so stdio transports stay clean."""
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def _get_db():
    config = get_config()
    return get_db(config.db_path)


def _agent_id(db) -> str:
    config = get_config()
    return resolve_context(
        db,
        orchestrator_marker=config.orchestrator_marker,
        worktrees_marker=config.worktrees_marker,
    ).agent_id


def _fail(error: OrcError):
    click.echo(f"Error: {error}", err=True)
    sys.exit(1)


@click.group()
def main():
    """orc - ORC task coordination for orchestrator and implementer agents"""
    configure_logging(get_config().log_level)


# ── Server Commands ───────────────────────────────────────────────────────────


@main.command("serve")
@click.option("--host", default=None, help="Host to bind (default: ORC_HOST or 127.0.0.1)")
@click.option("--port", default=None, type=int, help="Port to bind (default: ORC_PORT or 6970)")
def serve(host, port):
    """Start the HTTP MCP gateway."""
    from orc_tasks.web.app import run_server

    config = get_config()
    click.echo(f"Starting ORC gateway at http://{host or config.host}:{port or config.port}{config.mcp_prefix}")
    run_server(config, host=host, port=port)


@main.group("mcp")
def mcp_group():
    """MCP server commands."""
    pass


@mcp_group.command("serve")
def mcp_serve():
    """Start the MCP server (stdio transport)."""
    import anyio

    from orc_tasks.mcp.server import serve_stdio
    from orc_tasks.mcp.tools import build_catalogue

    anyio.run(serve_stdio, build_catalogue(), get_config())


# ── Repository Commands ───────────────────────────────────────────────────────


@main.group("repo")
def repo_group():
    """Manage repositories."""
    pass


@repo_group.command("add")
@click.argument("name")
@click.option("--path", "repo_path", default=".", help="Path to the checkout")
@click.option("--primary-branch", default="master", help="Primary branch name")
def repo_add(name, repo_path, primary_branch):
    """Register a repository."""
    with _get_db() as db:
        try:
            repo = repositories_mod.create_repository(
                db, name, os.path.abspath(repo_path), primary_branch
            )
        except OrcError as e:
            _fail(e)
        click.echo(f"Repository registered: {repo.name}")
        click.echo(f"  Path: {repo.path}")
        click.echo(f"  Primary branch: {repo.primary_branch}")


@repo_group.command("list")
def repo_list():
    """List repositories."""
    with _get_db() as db:
        repos = repositories_mod.list_repositories(db)
        if not repos:
            click.echo("No repositories found.")
            return
        for repo in repos:
            click.echo(f"  {repo.name}: {repo.path} ({repositories_mod.repository_branch(repo)})")


@repo_group.command("remove")
@click.argument("name")
@click.confirmation_option(prompt="This also deletes its worktrees and tasks. Continue?")
def repo_remove(name):
    """Delete a repository and everything under it."""
    with _get_db() as db:
        try:
            repositories_mod.delete_repository(db, name)
        except OrcError as e:
            _fail(e)
        click.echo(f"Repository removed: {name}")


# ── Worktree Commands ─────────────────────────────────────────────────────────


@main.group("worktree")
def worktree_group():
    """Manage worktrees."""
    pass


@worktree_group.command("add")
@click.argument("name")
@click.option("--repo", "repository", required=True, help="Owning repository name")
@click.option("--path", "wt_path", required=True, help="Path to the worktree checkout")
@click.option("--branch", default=None, help="Branch override")
@click.option("--status", default="active", type=click.Choice(WORKTREE_STATUSES))
def worktree_add(name, repository, wt_path, branch, status):
    """Register a worktree."""
    with _get_db() as db:
        try:
            wt = worktrees_mod.create_worktree(
                db, name, repository, os.path.abspath(wt_path), branch, status
            )
        except OrcError as e:
            _fail(e)
        click.echo(f"Worktree registered: {wt.name} ({wt.repository_name})")
        click.echo(f"  Path: {wt.path}")
        click.echo(f"  Branch: {worktrees_mod.current_branch(wt) or 'unknown'}")
        click.echo(f"  Status: {wt.status}")


@worktree_group.command("list")
@click.option("--status", default=None, type=click.Choice(WORKTREE_STATUSES))
def worktree_list(status):
    """List worktrees."""
    with _get_db() as db:
        worktrees = worktrees_mod.list_worktrees(db, status=status)
        if not worktrees:
            click.echo("No worktrees found.")
            return
        for wt in worktrees:
            click.echo(f"  {wt.name} ({wt.repository_name}) [{wt.status}] {wt.path}")


@worktree_group.command("set-status")
@click.argument("name")
@click.argument("status", type=click.Choice(WORKTREE_STATUSES))
def worktree_set_status(name, status):
    """Pause, archive or reactivate a worktree."""
    with _get_db() as db:
        try:
            wt = worktrees_mod.set_worktree_status(db, name, status)
        except OrcError as e:
            _fail(e)
        click.echo(f"Worktree {wt.name} is now {wt.status}")


@worktree_group.command("remove")
@click.argument("name")
@click.confirmation_option(prompt="This also deletes the worktree's tasks. Continue?")
def worktree_remove(name):
    """Delete a worktree and its tasks."""
    with _get_db() as db:
        try:
            worktrees_mod.delete_worktree(db, name)
        except OrcError as e:
            _fail(e)
        click.echo(f"Worktree removed: {name}")


# ── Task Commands ─────────────────────────────────────────────────────────────


@main.group("task")
def task_group():
    """Manage tasks."""
    pass


@task_group.command("add")
@click.argument("title")
@click.option("--worktree", required=True, help="Target worktree name")
@click.option("--description", "-d", default=None, help="Task description")
@click.option("--priority", "-p", default="medium", type=click.Choice(TASK_PRIORITIES))
def task_add(title, worktree, description, priority):
    """Create a new task."""
    with _get_db() as db:
        try:
            task = tasks_mod.create_task(
                db, title, worktree, description, priority, agent_id=_agent_id(db)
            )
        except OrcError as e:
            _fail(e)
        click.echo(f"Created task #{task.id}")
        click.echo(f"  Title: {task.title}")
        click.echo(f"  Worktree: {task.worktree_name}")
        click.echo(f"  Priority: {task.priority}")
        click.echo(f"  Status: {task.status}")


@task_group.command("list")
@click.option("--worktree", default=None, help="Worktree name (default: the current worktree)")
@click.option("--status", default=None, type=click.Choice(TASK_STATUSES))
@click.option("--json-output", "--json", is_flag=True, help="Output as JSON")
def task_list(worktree, status, json_output):
    """List tasks for a worktree."""
    config = get_config()
    with _get_db() as db:
        if not worktree:
            agent = resolve_context(
                db,
                orchestrator_marker=config.orchestrator_marker,
                worktrees_marker=config.worktrees_marker,
            )
            worktree = agent.worktree.name if agent.in_worktree else None
        try:
            tasks = tasks_mod.list_tasks(db, worktree, status=status)
        except OrcError as e:
            _fail(e)

        if json_output:
            click.echo(json.dumps([_task_dict(t) for t in tasks], indent=2))
            return

        if not tasks:
            click.echo("No tasks found.")
            return

        for task in tasks:
            icon = STATUS_ICONS.get(task.status, "?")
            click.echo(f"  {icon} #{task.id} [{task.priority}] {task.title} ({task.status})")


@task_group.command("show")
@click.argument("task_id", type=int)
def task_show(task_id):
    """Show task details and history."""
    with _get_db() as db:
        task = tasks_mod.get_task(db, task_id)
        if not task:
            click.echo(f"Task not found: #{task_id}", err=True)
            sys.exit(1)

        click.echo(f"Task: #{task.id}")
        click.echo(f"  Title: {task.title}")
        click.echo(f"  Status: {task.status}")
        click.echo(f"  Priority: {task.priority}")
        click.echo(f"  Worktree: {task.worktree_name}")
        if task.description:
            click.echo(f"  Description: {task.description}")
        click.echo(f"  Created: {task.created_at}")
        click.echo("  History:")
        for h in task.history:
            notes = f" ({h.notes})" if h.notes else ""
            click.echo(f"    [{h.created_at}] {h.agent_id} {h.action}: {h.old_value} -> {h.new_value}{notes}")


@task_group.command("update")
@click.argument("task_id", type=int)
@click.option("--status", default=None, type=click.Choice(TASK_STATUSES))
@click.option("--priority", default=None, type=click.Choice(TASK_PRIORITIES))
@click.option("--notes", "-n", default=None, help="Progress notes")
def task_update(task_id, status, priority, notes):
    """Update a task's status or priority, or add notes."""
    with _get_db() as db:
        try:
            update = tasks_mod.update_task(
                db, task_id, status=status, notes=notes, priority=priority,
                agent_id=_agent_id(db),
            )
        except OrcError as e:
            _fail(e)
        if not update.entries:
            click.echo(f"Task #{task_id} unchanged")
            return
        click.echo(f"Updated task #{task_id}")
        for entry in update.entries:
            if entry.action == "notes_added":
                click.echo(f"  Notes: {entry.notes}")
            else:
                click.echo(f"  {entry.action}: {entry.old_value} -> {entry.new_value}")


# ── Overview Commands ─────────────────────────────────────────────────────────


@main.command("status")
@click.option("--include-completed", is_flag=True, help="Include completed task counts")
def status(include_completed):
    """Show status across all active worktrees."""
    with _get_db() as db:
        click.echo(status_mod.format_global_status(
            status_mod.collect_global_status(db, include_completed)
        ))


@main.command("whoami")
def whoami():
    """Show the agent identity inferred from the current directory."""
    config = get_config()
    with _get_db() as db:
        agent = resolve_context(
            db,
            orchestrator_marker=config.orchestrator_marker,
            worktrees_marker=config.worktrees_marker,
        )
        click.echo(f"Role: {agent.role}")
        click.echo(f"Agent: {agent.agent_id}")
        if agent.in_worktree:
            click.echo(f"Worktree: {agent.worktree.name}")


# ── Helpers ───────────────────────────────────────────────────────────────────


def _task_dict(task) -> dict:
    return {
        "id": task.id,
        "title": task.title,
        "status": task.status,
        "priority": task.priority,
        "worktree": task.worktree_name,
        "description": task.description,
        "created_by": task.created_by,
        "assigned_agent": task.assigned_agent,
        "history": [
            {
                "action": h.action,
                "old_value": h.old_value,
                "new_value": h.new_value,
                "notes": h.notes,
                "agent_id": h.agent_id,
                "created_at": h.created_at.isoformat() if h.created_at else None,
            }
            for h in task.history
        ],
    }


if __name__ == "__main__":
    main()
