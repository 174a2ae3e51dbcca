"""Agent identity inferred from the working directory an agent runs in.

An orchestrator runs somewhere under a directory named by the orchestrator
marker (``orc``). Implementers run inside ``.../worktrees/<name>/...`` where
``<name>`` is a registered worktree. Everything else is maintenance. Nothing
here is cached: each call looks at the path and the ledger again.
"""

import os
import sqlite3
from dataclasses import dataclass
from pathlib import PurePosixPath

from orc_tasks.core.worktrees import get_worktree
from orc_tasks.db.models import Worktree

ORCHESTRATOR = "orchestrator"
IMPLEMENTER = "implementer"
MAINTENANCE = "maintenance"


@dataclass(frozen=True)
class AgentContext:
    role: str
    agent_id: str
    working_dir: str
    worktree: Worktree | None = None

    @property
    def in_worktree(self) -> bool:
        return self.worktree is not None


def current_working_dir() -> str:
    return os.environ.get("PWD") or os.getcwd()


def path_segments(path: str) -> list[str]:
    return [p for p in PurePosixPath(path.replace("\\", "/")).parts if p not in ("/", "")]


def worktree_name_from_path(path: str, marker: str = "worktrees") -> str | None:
    """Directory name following the first ``marker`` segment, if any."""
    segments = path_segments(path)
    if marker not in segments:
        return None
    index = segments.index(marker)
    if index + 1 >= len(segments):
        return None
    return segments[index + 1]


def agent_id_for(role: str, worktree_name: str | None = None) -> str:
    if role == ORCHESTRATOR:
        return "orchestrator"
    if role == IMPLEMENTER:
        return f"implementer_{worktree_name}" if worktree_name else "implementer_unknown"
    return "maintenance"


def resolve_context(
    db: sqlite3.Connection,
    working_dir: str | None = None,
    orchestrator_marker: str = "orc",
    worktrees_marker: str = "worktrees",
) -> AgentContext:
    """Work out who is calling from the directory they are calling from.

    A worktree name that does not match a registered worktree resolves to
    maintenance, so history is never attributed to a worktree that does not
    exist.
    """
    working_dir = working_dir or current_working_dir()

    if orchestrator_marker in path_segments(working_dir):
        return AgentContext(ORCHESTRATOR, agent_id_for(ORCHESTRATOR), working_dir)

    name = worktree_name_from_path(working_dir, worktrees_marker)
    worktree = get_worktree(db, name) if name else None
    if worktree:
        return AgentContext(
            IMPLEMENTER, agent_id_for(IMPLEMENTER, worktree.name), working_dir, worktree
        )

    return AgentContext(MAINTENANCE, agent_id_for(MAINTENANCE), working_dir)
