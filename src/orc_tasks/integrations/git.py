"""Git subprocess wrappers for inspecting checkouts."""

import subprocess
from pathlib import Path


class GitError(Exception):
    """Raised when a git command fails."""


def run_git(args: list[str], cwd: str | Path | None = None) -> str:
    """Run a git command and return stdout. Raises GitError on failure."""
    cmd = ["git"] + args
    try:
        result = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=True,
            text=True,
            check=True,
            timeout=10,
        )
        return result.stdout.strip()
    except FileNotFoundError as e:
        raise GitError("git executable not found") from e
    except subprocess.TimeoutExpired as e:
        raise GitError(f"git {' '.join(args)} timed out") from e
    except subprocess.CalledProcessError as e:
        raise GitError(f"git {' '.join(args)} failed: {e.stderr.strip()}") from e


def get_current_branch(cwd: str | Path) -> str:
    """Get the current branch name (empty on a detached HEAD)."""
    return run_git(["branch", "--show-current"], cwd=cwd)
