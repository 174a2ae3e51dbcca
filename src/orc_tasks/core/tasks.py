"""Task ledger: tasks scoped to worktrees and their append-only history.

Every field change on a task is paired with a history row written in the
same commit. Status transitions are not restricted: any status may follow any
other, and the ledger only guarantees that each change is recorded.

``update_task`` reads the current row and then writes, without holding a
lock across the two steps. Two agents updating the same task at the same time
will each append their own history rows, and the stored status is whichever
write lands last. Worktrees have a single implementer, so this race is
accepted rather than serialized.
"""

import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime

from orc_tasks.core.errors import NoContext, NotFound, ValidationError
from orc_tasks.core.worktrees import get_worktree, list_worktrees
from orc_tasks.db.models import TASK_PRIORITIES, TASK_STATUSES, Task, TaskHistory

logger = logging.getLogger(__name__)

_SELECT = """SELECT t.*, w.name AS worktree_name
             FROM tasks t JOIN worktrees w ON w.id = t.worktree_id"""

_PRIORITY_ORDER = "CASE t.priority {} END".format(
    " ".join(f"WHEN '{p}' THEN {i}" for i, p in enumerate(TASK_PRIORITIES))
)


@dataclass
class TaskUpdate:
    task: Task
    old_status: str
    old_priority: str
    entries: list[TaskHistory] = field(default_factory=list)

    @property
    def status_changed(self) -> bool:
        return self.task.status != self.old_status

    @property
    def priority_changed(self) -> bool:
        return self.task.priority != self.old_priority


def create_task(
    db: sqlite3.Connection,
    title: str,
    worktree_name: str,
    description: str | None = None,
    priority: str = "medium",
    agent_id: str = "orchestrator",
) -> Task:
    """Create a task in the investigating state under the named worktree."""
    if not title or not title.strip():
        raise ValidationError("Title can't be blank")
    check_priority(priority)
    check_agent(agent_id)

    worktree = get_worktree(db, worktree_name)
    if not worktree:
        available = ", ".join(w.name for w in list_worktrees(db, status="active"))
        raise NotFound(f"Worktree '{worktree_name}' not found. Available: {available or 'none'}")

    cur = db.execute(
        """INSERT INTO tasks (worktree_id, title, description, status, priority, created_by, assigned_agent)
           VALUES (?, ?, ?, 'investigating', ?, 'orchestrator', 'implementer')""",
        (worktree.id, title.strip(), description or None, priority),
    )
    task_id = cur.lastrowid
    add_history(
        db, task_id, "created", agent_id,
        new_value="investigating",
        notes=f"Task created by {agent_id}",
    )
    db.commit()
    logger.info("Created task #%s in %s", task_id, worktree_name)
    return get_task(db, task_id)


def get_task(db: sqlite3.Connection, task_id: int) -> Task | None:
    """Get a task by ID with its history."""
    row = db.execute(f"{_SELECT} WHERE t.id = ?", (task_id,)).fetchone()
    if not row:
        return None
    task = _row_to_task(row)
    task.history = get_task_history(db, task_id)
    return task


def update_task(
    db: sqlite3.Connection,
    task_id: int,
    status: str | None = None,
    notes: str | None = None,
    priority: str | None = None,
    agent_id: str = "maintenance",
) -> TaskUpdate:
    """Apply status/priority changes and notes, recording one history row per change."""
    if status is not None:
        check_status(status)
    if priority is not None:
        check_priority(priority)
    check_agent(agent_id)
    notes = notes or None

    task = get_task(db, task_id)
    if not task:
        raise NotFound(f"Task #{task_id} not found")

    old_status, old_priority = task.status, task.priority
    new_status = status if status is not None else old_status
    new_priority = priority if priority is not None else old_priority
    result = TaskUpdate(task=task, old_status=old_status, old_priority=old_priority)

    if new_status == old_status and new_priority == old_priority and not notes:
        return result

    if new_status != old_status or new_priority != old_priority:
        db.execute(
            """UPDATE tasks SET status = ?, priority = ?,
                   updated_at = strftime('%Y-%m-%d %H:%M:%f', 'now')
               WHERE id = ?""",
            (new_status, new_priority, task_id),
        )

    entry_ids = []
    if new_status != old_status:
        entry_ids.append(add_history(
            db, task_id, "status_changed", agent_id,
            old_value=old_status, new_value=new_status, notes=notes,
        ))
    if new_priority != old_priority:
        entry_ids.append(add_history(
            db, task_id, "priority_changed", agent_id,
            old_value=old_priority, new_value=new_priority,
            notes=f"Priority updated - {notes}" if notes else "Priority updated",
        ))
    if not entry_ids:
        entry_ids.append(add_history(db, task_id, "notes_added", agent_id, notes=notes))
    db.commit()

    result.task = get_task(db, task_id)
    result.entries = [h for h in result.task.history if h.id in entry_ids]
    return result


def list_tasks(
    db: sqlite3.Connection,
    worktree_name: str | None,
    status: str | None = None,
) -> list[Task]:
    """List a worktree's tasks from low to urgent priority, oldest first within a priority."""
    if not worktree_name:
        raise NoContext("No worktree context detected")
    worktree = get_worktree(db, worktree_name)
    if not worktree:
        raise NoContext(f"No worktree named '{worktree_name}'")
    if status is not None:
        check_status(status)

    query = f"{_SELECT} WHERE t.worktree_id = ?"
    params: list = [worktree.id]
    if status:
        query += " AND t.status = ?"
        params.append(status)
    query += f" ORDER BY {_PRIORITY_ORDER} ASC, t.id ASC"

    tasks = []
    for row in db.execute(query, params).fetchall():
        task = _row_to_task(row)
        task.history = get_task_history(db, task.id)
        tasks.append(task)
    return tasks


def get_task_history(db: sqlite3.Connection, task_id: int) -> list[TaskHistory]:
    """Get the audit trail for a task, oldest first."""
    rows = db.execute(
        "SELECT * FROM task_histories WHERE task_id = ? ORDER BY created_at, id",
        (task_id,),
    ).fetchall()
    return [_row_to_history(r) for r in rows]


def latest_history(db: sqlite3.Connection, task_id: int) -> TaskHistory | None:
    """Most recent history row; later insertion wins a timestamp tie."""
    row = db.execute(
        "SELECT * FROM task_histories WHERE task_id = ? ORDER BY created_at DESC, id DESC LIMIT 1",
        (task_id,),
    ).fetchone()
    if not row:
        return None
    return _row_to_history(row)


def check_agent(agent_id: str):
    if not agent_id or not agent_id.strip():
        raise ValidationError("History rows must be attributed to an agent")


def check_status(status: str):
    if status not in TASK_STATUSES:
        raise ValidationError(f"Invalid status '{status}'. Valid: {', '.join(TASK_STATUSES)}")


def check_priority(priority: str):
    if priority not in TASK_PRIORITIES:
        raise ValidationError(f"Invalid priority '{priority}'. Valid: {', '.join(TASK_PRIORITIES)}")


def add_history(
    db: sqlite3.Connection,
    task_id: int,
    action: str,
    agent_id: str,
    old_value: str | None = None,
    new_value: str | None = None,
    notes: str | None = None,
) -> int:
    """Append one history row without committing; the caller commits it with the change it records."""
    if not action or not action.strip():
        raise ValidationError("History action can't be blank")
    check_agent(agent_id)
    if not db.execute("SELECT 1 FROM tasks WHERE id = ?", (task_id,)).fetchone():
        raise NotFound(f"Task #{task_id} not found")
    cur = db.execute(
        """INSERT INTO task_histories (task_id, action, old_value, new_value, notes, agent_id)
           VALUES (?, ?, ?, ?, ?, ?)""",
        (task_id, action, old_value, new_value, notes, agent_id),
    )
    logger.debug("Task #%s %s by %s: %s -> %s", task_id, action, agent_id, old_value, new_value)
    return cur.lastrowid


def _row_to_task(row: sqlite3.Row) -> Task:
    return Task(
        id=row["id"],
        worktree_id=row["worktree_id"],
        title=row["title"],
        description=row["description"],
        status=row["status"],
        priority=row["priority"],
        created_by=row["created_by"],
        assigned_agent=row["assigned_agent"],
        worktree_name=row["worktree_name"],
        created_at=_parse_dt(row["created_at"]),
        updated_at=_parse_dt(row["updated_at"]),
    )


def _row_to_history(row: sqlite3.Row) -> TaskHistory:
    return TaskHistory(
        id=row["id"],
        task_id=row["task_id"],
        action=row["action"],
        old_value=row["old_value"],
        new_value=row["new_value"],
        notes=row["notes"],
        agent_id=row["agent_id"],
        created_at=_parse_dt(row["created_at"]),
    )


def _parse_dt(val: str | None) -> datetime | None:
    if val is None:
        return None
    return datetime.fromisoformat(val)
