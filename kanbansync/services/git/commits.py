"""Stage the task directory and commit with the bot identity."""

import logging
from pathlib import Path

from kanbansync.services.git._run import _run_git


def has_changes(paths: list[str], repo_dir: Path | None = None, log: logging.Logger | None = None) -> bool:
    """True if anything under paths differs from HEAD (untracked included)."""
    cwd = Path(repo_dir) if repo_dir is not None else Path.cwd()
    return bool(_run_git(["status", "--porcelain", "--", *paths], cwd=cwd, log=log).strip())


def commit_paths(
    paths: list[str],
    commit_message: str,
    bot_name: str,
    bot_email: str,
    repo_dir: Path | None = None,
    log: logging.Logger | None = None,
) -> bool:
    """Stage paths (additions, moves and deletions) and commit.

    Returns False without committing when nothing under paths changed.
    Raises GitRunnerError on failure.
    """
    cwd = Path(repo_dir) if repo_dir is not None else Path.cwd()
    if not has_changes(paths, repo_dir=cwd, log=log):
        if log:
            log.info("No task file changes to commit")
        return False
    _run_git(["add", "-A", "--", *paths], cwd=cwd, log=log)
    _run_git(
        [
            "-c",
            f"user.name={bot_name}",
            "-c",
            f"user.email={bot_email}",
            "commit",
            "-m",
            commit_message,
        ],
        cwd=cwd,
        log=log,
    )
    if log:
        log.info("Committed task file changes: %s", commit_message)
    return True
