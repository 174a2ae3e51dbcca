"""Operations exposed to agents, and the catalogue that serves them."""

from __future__ import annotations

from datetime import datetime, timezone

from orc_tasks.core import repositories as repositories_mod
from orc_tasks.core import status as status_mod
from orc_tasks.core import tasks as tasks_mod
from orc_tasks.core import worktrees as worktrees_mod
from orc_tasks.core.errors import NoContext, NotFound
from orc_tasks.db.models import TASK_PRIORITIES, TASK_STATUSES, WORKTREE_STATUSES, Task
from orc_tasks.mcp.registry import ArgumentSchema, Catalogue, Field, Operation, OperationContext

SERVER_NAME = "orc-tasks"
SERVER_VERSION = "1.0.0"

STATUS_EMOJI = {
    "investigating": "🔍",
    "in_progress": "⚡",
    "blocked": "🚫",
    "completed": "✅",
}


# ── Diagnostics ───────────────────────────────────────────────────────────────


def connection_test(ctx: OperationContext, message: str = "ORC Task Management MCP server is working!") -> dict:
    """Echo a message back to verify the server is reachable."""
    return {
        "success": True,
        "message": message,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "server": f"ORC Task Management v{SERVER_VERSION}",
    }


def whoami(ctx: OperationContext) -> dict:
    agent = ctx.agent
    return {
        "role": agent.role,
        "agent_id": agent.agent_id,
        "worktree": agent.worktree.name if agent.worktree else None,
        "working_dir": agent.working_dir,
    }


# ── Task Tools ────────────────────────────────────────────────────────────────


def create_task(
    ctx: OperationContext,
    title: str,
    worktree_name: str,
    description: str | None = None,
    priority: str = "medium",
) -> str:
    task = tasks_mod.create_task(
        ctx.db, title, worktree_name, description, priority, agent_id=ctx.agent.agent_id
    )
    worktree = worktrees_mod.get_worktree(ctx.db, worktree_name)
    response = (
        f"✅ **Created Task #{task.id}**\n\n"
        f"**Title**: {task.title}\n"
        f"**Worktree**: {worktree.name} ({worktree.repository_name})\n"
        f"**Priority**: {task.priority}\n"
        f"**Status**: {task.status}\n"
    )
    if task.description:
        response += f"\n**Description**: {task.description}"
    return response


def update_task(
    ctx: OperationContext,
    task_id: int,
    status: str | None = None,
    notes: str | None = None,
    priority: str | None = None,
) -> str:
    update = tasks_mod.update_task(
        ctx.db, task_id, status=status, notes=notes, priority=priority,
        agent_id=ctx.agent.agent_id,
    )
    task = update.task
    response = f"{STATUS_EMOJI.get(task.status, '📋')} **Updated Task #{task.id}: {task.title}**\n\n"
    if update.status_changed:
        response += f"**Status**: {_humanize(update.old_status)} → {_humanize(task.status)}\n"
    if update.priority_changed:
        response += f"**Priority**: {_humanize(update.old_priority)} → {_humanize(task.priority)}\n"
    if not update.entries:
        response += "No changes.\n"
    response += f"**Worktree**: {task.worktree_name}\n"
    response += f"**Updated by**: {ctx.agent.agent_id}\n"
    if notes:
        response += f"\n**Notes**: {notes}"
    return response


def get_my_tasks(
    ctx: OperationContext,
    status: str | None = None,
    worktree_name: str | None = None,
) -> str:
    """List tasks for the caller's worktree, or for an explicitly named one."""
    if worktree_name:
        worktree = worktrees_mod.get_worktree(ctx.db, worktree_name)
        if not worktree:
            raise NotFound(f"Worktree '{worktree_name}' not found")
    elif ctx.agent.in_worktree:
        worktree = ctx.agent.worktree
    else:
        raise NoContext("No worktree context detected. Make sure you're in a worktree directory.")

    tasks = tasks_mod.list_tasks(ctx.db, worktree.name, status=status)
    branch = worktrees_mod.current_branch(worktree) or "unknown"

    if not tasks:
        status_filter = f" with status '{status}'" if status else ""
        return (
            f"📭 No tasks found for **{worktree.name}**{status_filter}\n\n"
            f"Repository: {worktree.repository_name}\n"
            f"Branch: {branch}"
        )

    header = (
        f"📋 **Tasks for {worktree.name}**\n"
        f"Repository: {worktree.repository_name} | Branch: {branch}\n\n"
    )
    return header + "".join(_task_line(t) for t in tasks)


def get_task(ctx: OperationContext, task_id: int) -> str:
    """Task details with its full history."""
    task = tasks_mod.get_task(ctx.db, task_id)
    if not task:
        raise NotFound(f"Task #{task_id} not found")

    response = (
        f"{STATUS_EMOJI.get(task.status, '📋')} **Task #{task.id}: {task.title}**\n\n"
        f"**Status**: {_humanize(task.status)} | **Priority**: {_humanize(task.priority)}\n"
        f"**Worktree**: {task.worktree_name}\n"
        f"**Created by**: {task.created_by} | **Assigned to**: {task.assigned_agent}\n"
    )
    if task.description:
        response += f"\n{task.description}\n"
    response += "\n**History**:\n"
    for h in task.history:
        change = f" {h.old_value or '-'} → {h.new_value}" if h.new_value else ""
        notes = f" - {h.notes}" if h.notes else ""
        response += f"• [{h.created_at:%Y-%m-%d %H:%M:%S}] {h.action}{change} ({h.agent_id}){notes}\n"
    return response


def global_status(ctx: OperationContext, include_completed: bool = False) -> str:
    status = status_mod.collect_global_status(ctx.db, include_completed)
    return status_mod.format_global_status(status)


# ── Worktree Tools ────────────────────────────────────────────────────────────


def list_worktrees(ctx: OperationContext, status: str | None = None) -> str:
    worktrees = worktrees_mod.list_worktrees(ctx.db, status=status)
    if not worktrees:
        return "📭 No worktrees registered"
    lines = [
        f"• **{w.name}** ({w.repository_name}) [{w.status}] {w.path}"
        for w in worktrees
    ]
    return "🌳 **Worktrees**\n\n" + "\n".join(lines)


def register_repository(
    ctx: OperationContext,
    name: str,
    path: str,
    primary_branch: str = "master",
) -> str:
    repo = repositories_mod.create_repository(ctx.db, name, path, primary_branch)
    return (
        f"📁 **Registered Repository {repo.name}**\n\n"
        f"**Path**: {repo.path}\n"
        f"**Primary branch**: {repo.primary_branch}"
    )


def register_worktree(
    ctx: OperationContext,
    name: str,
    repository_name: str,
    path: str,
    branch: str | None = None,
    status: str = "active",
) -> str:
    wt = worktrees_mod.create_worktree(ctx.db, name, repository_name, path, branch, status)
    return (
        f"🌳 **Registered Worktree {wt.name}**\n\n"
        f"**Repository**: {wt.repository_name}\n"
        f"**Path**: {wt.path}\n"
        f"**Branch**: {worktrees_mod.current_branch(wt) or 'unknown'}\n"
        f"**Status**: {wt.status}"
    )


def set_worktree_status(ctx: OperationContext, name: str, status: str) -> str:
    wt = worktrees_mod.set_worktree_status(ctx.db, name, status)
    return f"🌳 Worktree **{wt.name}** is now {wt.status}"


# ── Helpers ───────────────────────────────────────────────────────────────────


def _humanize(value: str) -> str:
    return value.replace("_", " ").capitalize()


def _task_line(task: Task) -> str:
    emoji = STATUS_EMOJI.get(task.status, "📋")
    flag = " 🚨" if task.priority == "urgent" else (" ⚠️" if task.priority == "high" else "")
    last_update = ""
    if task.history:
        recent = max(task.history, key=lambda h: (h.created_at, h.id))
        last_update = f" ({recent.agent_id} {_time_ago(recent.created_at)})"
    line = (
        f"{emoji} **#{task.id}: {task.title}**{flag}\n"
        f"   Status: {_humanize(task.status)} | Priority: {_humanize(task.priority)}{last_update}\n"
    )
    if task.description:
        line += f"   {task.description}\n"
    return line + "\n"


def _time_ago(timestamp: datetime | None) -> str:
    if timestamp is None:
        return "at an unknown time"
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    seconds = max(0, (now - timestamp).total_seconds())
    if seconds <= 60:
        return f"{int(seconds)}s ago"
    if seconds <= 3600:
        return f"{int(seconds // 60)}m ago"
    if seconds <= 86400:
        return f"{int(seconds // 3600)}h ago"
    return f"{int(seconds // 86400)}d ago"


# ── Catalogue ─────────────────────────────────────────────────────────────────


OPERATIONS = (
    Operation(
        "test",
        "Test tool to verify ORC Task Management MCP server is working",
        connection_test,
        ArgumentSchema((Field("message", str, description="Test message to echo back"),)),
    ),
    Operation(
        "whoami",
        "Show the role and agent id inferred from the caller's working directory",
        whoami,
    ),
    Operation(
        "create_task",
        "Create new task for investigation (orchestrator context)",
        create_task,
        ArgumentSchema((
            Field("title", str, required=True, description="Task title"),
            Field("worktree_name", str, required=True, description="Target worktree name"),
            Field("description", str, description="Detailed task description"),
            Field("priority", str, description="Task priority (default: medium)",
                  choices=TASK_PRIORITIES, default="medium"),
        )),
    ),
    Operation(
        "update_task",
        "Update task status and add progress notes",
        update_task,
        ArgumentSchema((
            Field("task_id", int, required=True, description="Task ID to update"),
            Field("status", str, description="New status", choices=TASK_STATUSES),
            Field("notes", str, description="Progress notes or comments"),
            Field("priority", str, description="Update priority (optional)", choices=TASK_PRIORITIES),
        )),
    ),
    Operation(
        "get_my_tasks",
        "Get tasks for current worktree context (implementer)",
        get_my_tasks,
        ArgumentSchema((
            Field("status", str, description="Filter by status", choices=TASK_STATUSES),
            Field("worktree_name", str, description="Worktree to list instead of the current one"),
        )),
    ),
    Operation(
        "get_task",
        "Get full details of a task including its history",
        get_task,
        ArgumentSchema((Field("task_id", int, required=True, description="Task ID"),)),
    ),
    Operation(
        "global_status",
        "Get status overview across all active worktrees (orchestrator context)",
        global_status,
        ArgumentSchema((
            Field("include_completed", bool,
                  description="Include completed tasks in counts (default: false)", default=False),
        )),
    ),
    Operation(
        "list_worktrees",
        "List registered worktrees, optionally filtered by status",
        list_worktrees,
        ArgumentSchema((Field("status", str, description="Filter by status", choices=WORKTREE_STATUSES),)),
    ),
    Operation(
        "register_repository",
        "Register a repository checkout",
        register_repository,
        ArgumentSchema((
            Field("name", str, required=True, description="Unique repository name"),
            Field("path", str, required=True, description="Filesystem path of the checkout"),
            Field("primary_branch", str, description="Primary branch (default: master)", default="master"),
        )),
    ),
    Operation(
        "register_worktree",
        "Register a worktree of a repository for an implementer agent",
        register_worktree,
        ArgumentSchema((
            Field("name", str, required=True, description="Unique worktree name"),
            Field("repository_name", str, required=True, description="Owning repository"),
            Field("path", str, required=True, description="Filesystem path of the worktree"),
            Field("branch", str, description="Branch override (default: inspect the checkout)"),
            Field("status", str, description="Lifecycle status (default: active)",
                  choices=WORKTREE_STATUSES, default="active"),
        )),
    ),
    Operation(
        "set_worktree_status",
        "Pause, archive or reactivate a worktree",
        set_worktree_status,
        ArgumentSchema((
            Field("name", str, required=True, description="Worktree name"),
            Field("status", str, required=True, description="New status", choices=WORKTREE_STATUSES),
        )),
    ),
)


def build_catalogue() -> Catalogue:
    return Catalogue(OPERATIONS)
