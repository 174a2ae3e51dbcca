"""Cross-worktree rollups for the orchestrator."""

import sqlite3
from dataclasses import dataclass, field

from orc_tasks.core import tasks as tasks_mod
from orc_tasks.core.repositories import list_repositories
from orc_tasks.core.worktrees import current_branch, list_worktrees
from orc_tasks.db.models import Task, Worktree

NO_DETAILS = "No details"


@dataclass
class WorktreeSummary:
    worktree: Worktree
    branch: str | None
    active_count: int
    completed_count: int


@dataclass
class BlockedTask:
    task: Task
    note: str


@dataclass
class GlobalStatus:
    include_completed: bool = False
    worktrees: list[WorktreeSummary] = field(default_factory=list)
    urgent: list[Task] = field(default_factory=list)
    blocked: list[BlockedTask] = field(default_factory=list)
    repositories: list[str] = field(default_factory=list)

    @property
    def total_active(self) -> int:
        return sum(s.active_count for s in self.worktrees)

    @property
    def total_completed(self) -> int:
        return sum(s.completed_count for s in self.worktrees)


def collect_global_status(db: sqlite3.Connection, include_completed: bool = False) -> GlobalStatus:
    """Gather counts, urgent tasks and blocked tasks across all active worktrees."""
    status = GlobalStatus(include_completed=include_completed)

    for worktree in list_worktrees(db, status="active"):
        rows = db.execute(
            "SELECT id, status, priority FROM tasks WHERE worktree_id = ? ORDER BY id",
            (worktree.id,),
        ).fetchall()
        completed = sum(1 for r in rows if r["status"] == "completed")
        status.worktrees.append(WorktreeSummary(
            worktree=worktree,
            branch=current_branch(worktree),
            active_count=len(rows) - completed,
            completed_count=completed,
        ))

        for row in rows:
            if row["priority"] == "urgent" and row["status"] != "completed":
                status.urgent.append(tasks_mod.get_task(db, row["id"]))
            if row["status"] == "blocked":
                recent = tasks_mod.latest_history(db, row["id"])
                note = recent.notes if recent and recent.notes else NO_DETAILS
                status.blocked.append(BlockedTask(tasks_mod.get_task(db, row["id"]), note))

    if not status.worktrees:
        status.repositories = [r.name for r in list_repositories(db)]
    return status


def format_worktree_line(summary: WorktreeSummary, include_completed: bool) -> str:
    active, completed = summary.active_count, summary.completed_count
    if active == 0 and completed == 0:
        return "No tasks"
    if active == 0:
        return f"✅ All complete ({completed})"
    parts = [f"{active} active"]
    if include_completed and completed > 0:
        parts.append(f"{completed} complete")
    return ", ".join(parts)


def format_global_status(status: GlobalStatus) -> str:
    """Render the rollup: header, summary, urgent, blocked, then per-worktree detail."""
    header = "🌍 **Global ORC Status**\n\n"

    if not status.worktrees:
        repos = "\n".join(f"• {name}" for name in status.repositories) or "• (none)"
        return header + "No active worktrees found.\n\nAvailable repositories:\n" + repos

    summary = (
        f"**Summary**: {status.total_active} active tasks "
        f"across {len(status.worktrees)} worktrees"
    )
    if status.include_completed and status.total_completed > 0:
        summary += f", {status.total_completed} completed"
    summary += "\n\n"

    urgent = ""
    if status.urgent:
        urgent = f"🚨 **Urgent Tasks** ({len(status.urgent)}):\n"
        for task in status.urgent:
            urgent += f"• #{task.id}: {task.title} ({task.worktree_name})\n"
        urgent += "\n"

    blocked = ""
    if status.blocked:
        blocked = f"🚫 **Blocked Tasks** ({len(status.blocked)}):\n"
        for item in status.blocked:
            blocked += f"• #{item.task.id}: {item.task.title} - {item.note}\n"
        blocked += "\n"

    details = [
        f"**{s.worktree.name}** ({s.worktree.repository_name})\n"
        f"   Branch: {s.branch or 'unknown'}\n"
        f"   Tasks: {format_worktree_line(s, status.include_completed)}\n"
        for s in status.worktrees
    ]
    return header + summary + urgent + blocked + "\n".join(details)
