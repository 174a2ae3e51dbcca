"""Repository management operations."""

import logging
import sqlite3
from datetime import datetime
from pathlib import Path

from orc_tasks.core.errors import NotFound, ValidationError
from orc_tasks.db.models import Repository
from orc_tasks.integrations.git import GitError, get_current_branch

logger = logging.getLogger(__name__)


def create_repository(
    db: sqlite3.Connection,
    name: str,
    path: str,
    primary_branch: str = "master",
) -> Repository:
    """Register a source-control checkout."""
    if not name or not name.strip():
        raise ValidationError("Repository name can't be blank")
    if not path or not path.strip():
        raise ValidationError("Repository path can't be blank")

    try:
        db.execute(
            "INSERT INTO repositories (name, path, primary_branch) VALUES (?, ?, ?)",
            (name.strip(), path, primary_branch or "master"),
        )
    except sqlite3.IntegrityError as e:
        db.rollback()
        raise ValidationError(f"Repository '{name}' already exists") from e
    db.commit()
    logger.info("Registered repository %s at %s", name, path)
    return get_repository(db, name.strip())


def get_repository(db: sqlite3.Connection, name: str) -> Repository | None:
    """Get a repository by name."""
    row = db.execute("SELECT * FROM repositories WHERE name = ?", (name,)).fetchone()
    if not row:
        return None
    return _row_to_repository(row)


def list_repositories(db: sqlite3.Connection) -> list[Repository]:
    """List all repositories by name."""
    rows = db.execute("SELECT * FROM repositories ORDER BY name").fetchall()
    return [_row_to_repository(r) for r in rows]


def delete_repository(db: sqlite3.Connection, name: str) -> None:
    """Delete a repository together with its worktrees, tasks and history."""
    repo = get_repository(db, name)
    if not repo:
        raise NotFound(f"Repository '{name}' not found")
    db.execute("DELETE FROM repositories WHERE id = ?", (repo.id,))
    db.commit()
    logger.info("Deleted repository %s", name)


def repository_branch(repo: Repository) -> str:
    """Branch checked out in the repository path, else its primary branch."""
    if Path(repo.path).is_dir():
        try:
            branch = get_current_branch(repo.path)
            if branch:
                return branch
        except GitError:
            logger.debug("Could not inspect branch of %s", repo.path)
    return repo.primary_branch


def _row_to_repository(row: sqlite3.Row) -> Repository:
    return Repository(
        id=row["id"],
        name=row["name"],
        path=row["path"],
        primary_branch=row["primary_branch"],
        created_at=_parse_dt(row["created_at"]),
        updated_at=_parse_dt(row["updated_at"]),
    )


def _parse_dt(val: str | None) -> datetime | None:
    if val is None:
        return None
    return datetime.fromisoformat(val)
