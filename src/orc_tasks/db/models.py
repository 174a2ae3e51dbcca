"""Data models for the task ledger."""

from dataclasses import dataclass, field
from datetime import datetime

TASK_STATUSES = ("investigating", "in_progress", "blocked", "completed")
TASK_PRIORITIES = ("low", "medium", "high", "urgent")
WORKTREE_STATUSES = ("active", "paused", "archived")


@dataclass
class Repository:
    id: int
    name: str
    path: str
    primary_branch: str = "master"
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class Worktree:
    id: int
    name: str
    repository_id: int
    path: str
    branch: str | None = None
    status: str = "active"
    repository_name: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class TaskHistory:
    id: int | None = None
    task_id: int = 0
    action: str = ""
    old_value: str | None = None
    new_value: str | None = None
    notes: str | None = None
    agent_id: str = ""
    created_at: datetime | None = None


@dataclass
class Task:
    id: int
    worktree_id: int
    title: str
    description: str | None = None
    status: str = "investigating"
    priority: str = "medium"
    created_by: str | None = None
    assigned_agent: str | None = None
    worktree_name: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    history: list[TaskHistory] = field(default_factory=list)
