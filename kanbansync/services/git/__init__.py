"""Git operations: commit task file changes, pull --rebase, push."""

from kanbansync.services.git._run import GitRunnerError
from kanbansync.services.git.commits import commit_paths, has_changes
from kanbansync.services.git.push_pull import commit_and_push, push_branch, run_git_pull

__all__ = [
    "GitRunnerError",
    "commit_and_push",
    "commit_paths",
    "has_changes",
    "push_branch",
    "run_git_pull",
]
