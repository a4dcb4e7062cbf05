"""Run git commands in the workspace; GitRunnerError on failure."""

import logging
import subprocess
from pathlib import Path

GIT_TIMEOUT = 120


class GitRunnerError(Exception):
    """Raised when a git command fails."""

    pass


def _run_git(args: list[str], cwd: Path, log: logging.Logger | None = None) -> str:
    """Run git with args in cwd and return stdout; raise GitRunnerError on
    non-zero exit."""
    cmd = ["git"] + args
    try:
        result = subprocess.run(cmd, cwd=cwd, check=True, capture_output=True, text=True, timeout=GIT_TIMEOUT)
    except subprocess.CalledProcessError as e:
        err = (e.stderr or e.stdout or "").strip()
        if log:
            log.warning("git %s failed: %s", " ".join(args), err)
        raise GitRunnerError(f"git {' '.join(args)}: {err}") from e
    except subprocess.TimeoutExpired as e:
        raise GitRunnerError(f"git {' '.join(args)}: timed out after {GIT_TIMEOUT}s") from e
    except FileNotFoundError as e:
        raise GitRunnerError("git not found") from e
    return result.stdout
