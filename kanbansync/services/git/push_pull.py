"""Pull from and push to origin, with a single rebase retry."""

import logging
from pathlib import Path

from kanbansync.services.git._run import GitRunnerError, _run_git
from kanbansync.services.git.commits import commit_paths


def run_git_pull(
    branch: str,
    rebase: bool = True,
    repo_dir: Path | None = None,
    log: logging.Logger | None = None,
) -> None:
    """Run git pull [--rebase] origin <branch>."""
    cwd = Path(repo_dir) if repo_dir is not None else Path.cwd()
    args = ["pull", "--rebase", "origin", branch] if rebase else ["pull", "origin", branch]
    _run_git(args, cwd=cwd, log=log)
    if log:
        log.info("Pulled origin/%s", branch)


def push_branch(
    branch_name: str,
    repo_dir: Path | None = None,
    log: logging.Logger | None = None,
) -> None:
    """Push HEAD to origin/<branch_name>."""
    cwd = Path(repo_dir) if repo_dir is not None else Path.cwd()
    _run_git(["push", "origin", f"HEAD:{branch_name}"], cwd=cwd, log=log)
    if log:
        log.info("Pushed to origin/%s", branch_name)


def commit_and_push(
    paths: list[str],
    branch_name: str,
    commit_message: str,
    bot_name: str,
    bot_email: str,
    repo_dir: Path | None = None,
    log: logging.Logger | None = None,
) -> bool:
    """Commit changes under paths and push them.

    A rejected push is retried once after git pull --rebase. Returns False
    when there was nothing to commit.
    """
    if not commit_paths(paths, commit_message, bot_name, bot_email, repo_dir=repo_dir, log=log):
        return False
    try:
        push_branch(branch_name, repo_dir=repo_dir, log=log)
    except GitRunnerError:
        if log:
            log.info("Push rejected, rebasing on origin/%s and retrying once", branch_name)
        run_git_pull(branch_name, rebase=True, repo_dir=repo_dir, log=log)
        push_branch(branch_name, repo_dir=repo_dir, log=log)
    return True
