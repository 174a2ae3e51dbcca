"""Worktree records: the isolated checkouts implementer agents work in."""

import logging
import sqlite3
from datetime import datetime
from pathlib import Path

from orc_tasks.core.errors import NotFound, ValidationError
from orc_tasks.core.repositories import get_repository
from orc_tasks.db.models import WORKTREE_STATUSES, Worktree
from orc_tasks.integrations.git import GitError, get_current_branch

logger = logging.getLogger(__name__)

_SELECT = """SELECT w.*, r.name AS repository_name
             FROM worktrees w JOIN repositories r ON r.id = w.repository_id"""


def create_worktree(
    db: sqlite3.Connection,
    name: str,
    repository_name: str,
    path: str,
    branch: str | None = None,
    status: str = "active",
) -> Worktree:
    """Register a worktree under an existing repository."""
    if not name or not name.strip():
        raise ValidationError("Worktree name can't be blank")
    if not path or not path.strip():
        raise ValidationError("Worktree path can't be blank")
    _check_status(status)

    repo = get_repository(db, repository_name)
    if not repo:
        raise NotFound(f"Repository '{repository_name}' not found")

    try:
        db.execute(
            """INSERT INTO worktrees (name, repository_id, path, branch, status)
               VALUES (?, ?, ?, ?, ?)""",
            (name.strip(), repo.id, path, branch or None, status),
        )
    except sqlite3.IntegrityError as e:
        db.rollback()
        raise ValidationError(f"Worktree '{name}' already exists") from e
    db.commit()
    logger.info("Registered worktree %s (%s) at %s", name, repository_name, path)
    return get_worktree(db, name.strip())


def get_worktree(db: sqlite3.Connection, name: str) -> Worktree | None:
    """Get a worktree by name."""
    row = db.execute(f"{_SELECT} WHERE w.name = ?", (name,)).fetchone()
    if not row:
        return None
    return _row_to_worktree(row)


def list_worktrees(db: sqlite3.Connection, status: str | None = None) -> list[Worktree]:
    """List worktrees in registration order, optionally filtered by status."""
    query = _SELECT
    params: list = []
    if status:
        _check_status(status)
        query += " WHERE w.status = ?"
        params.append(status)
    query += " ORDER BY w.id"
    rows = db.execute(query, params).fetchall()
    return [_row_to_worktree(r) for r in rows]


def set_worktree_status(db: sqlite3.Connection, name: str, status: str) -> Worktree:
    """Move a worktree between active, paused and archived."""
    _check_status(status)
    worktree = get_worktree(db, name)
    if not worktree:
        raise NotFound(f"Worktree '{name}' not found")
    db.execute(
        "UPDATE worktrees SET status = ?, updated_at = strftime('%Y-%m-%d %H:%M:%f', 'now') WHERE id = ?",
        (status, worktree.id),
    )
    db.commit()
    return get_worktree(db, name)


def delete_worktree(db: sqlite3.Connection, name: str) -> None:
    """Delete a worktree together with its tasks and their history."""
    worktree = get_worktree(db, name)
    if not worktree:
        raise NotFound(f"Worktree '{name}' not found")
    db.execute("DELETE FROM worktrees WHERE id = ?", (worktree.id,))
    db.commit()
    logger.info("Deleted worktree %s", name)


def current_branch(worktree: Worktree) -> str | None:
    """Explicit branch if set, else the branch checked out at the worktree path."""
    if worktree.branch:
        return worktree.branch
    if not Path(worktree.path).is_dir():
        return None
    try:
        return get_current_branch(worktree.path) or None
    except GitError:
        logger.debug("Could not inspect branch of %s", worktree.path)
        return None


def _check_status(status: str):
    if status not in WORKTREE_STATUSES:
        raise ValidationError(
            f"Invalid worktree status '{status}'. Valid: {', '.join(WORKTREE_STATUSES)}"
        )


def _row_to_worktree(row: sqlite3.Row) -> Worktree:
    return Worktree(
        id=row["id"],
        name=row["name"],
        repository_id=row["repository_id"],
        path=row["path"],
        branch=row["branch"],
        status=row["status"],
        repository_name=row["repository_name"],
        created_at=_parse_dt(row["created_at"]),
        updated_at=_parse_dt(row["updated_at"]),
    )


def _parse_dt(val: str | None) -> datetime | None:
    if val is None:
        return None
    return datetime.fromisoformat(val)
