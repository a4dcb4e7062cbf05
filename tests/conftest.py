"""Shared fixtures: in-memory tracker and a config rooted in tmp_path."""

from pathlib import Path
from typing import Any, Dict, List

import pytest

from kanbansync.adapters.base import RemoteNotFound, RemoteWriteFailure, TrackerAdapter, TrackerError
from kanbansync.config import AppConfig, BoardConfig, GitConfig, GitHubConfig, TasksConfig
from kanbansync.models import (
    DATE,
    NUMBER,
    SINGLE_SELECT,
    TEXT,
    Milestone,
    Project,
    ProjectField,
    ProjectItem,
    RemoteComment,
    RemoteIssue,
)

REPO = "acme/tasks"


class FakeTracker(TrackerAdapter):
    """Tracker + board kept in dicts; records every write call."""

    def __init__(self) -> None:
        self.issues: Dict[int, RemoteIssue] = {}
        self.comments: Dict[int, List[RemoteComment]] = {}
        self.labels: List[str] = []
        self.milestones: List[Milestone] = [Milestone(1, "v1.0")]
        self.project = Project("PVT_1", "Roadmap")
        self.fields: List[ProjectField] = [
            ProjectField(
                "F_status", "Status", SINGLE_SELECT, {"Todo": "opt_todo", "Ready": "opt_ready", "Done": "opt_done"}
            ),
            ProjectField("F_priority", "Priority", SINGLE_SELECT, {"High": "opt_high", "Low": "opt_low"}),
            ProjectField("F_estimate", "Estimate", NUMBER),
            ProjectField("F_sprint", "Sprint", TEXT),
            ProjectField("F_start", "Planned Start", DATE),
        ]
        self.items: Dict[int, str] = {}
        self.field_writes: List[tuple[str, str, Dict[str, Any]]] = []
        self.uploads: Dict[str, bytes] = {}
        self.downloads: Dict[str, bytes] = {}
        self.calls: List[str] = []
        self.fail: set[str] = set()
        self._next_number = 1
        self._next_comment = 1000

    def _call(self, name: str) -> None:
        self.calls.append(name)
        if name in self.fail:
            raise RemoteWriteFailure(f"{name} failed")

    def count(self, name: str) -> int:
        return self.calls.count(name)

    def add_issue(
        self, title: str, body: str = "", labels=None, state: str = "open", on_board: bool = True
    ) -> RemoteIssue:
        issue = RemoteIssue(self._next_number, f"I_{self._next_number}", title, body, list(labels or []), [], state)
        self.issues[issue.number] = issue
        self.comments[issue.number] = []
        self._next_number += 1
        if on_board:
            self.items[issue.number] = f"PVTI_{issue.number}"
        return issue

    # --- issues ---

    def get_issue(self, repo: str, issue_number: int) -> RemoteIssue:
        self._call("get_issue")
        if issue_number not in self.issues:
            raise RemoteNotFound(f"#{issue_number}")
        return self.issues[issue_number]

    def create_issue(self, repo, title, body, labels=None, assignees=None) -> RemoteIssue:
        self._call("create_issue")
        issue = self.add_issue(title, body, labels, on_board=False)
        issue.assignees = list(assignees or [])
        return issue

    def update_issue(self, repo, issue_number, *, title=None, body=None, labels=None, assignees=None,
                     milestone=None, state=None) -> RemoteIssue:
        self._call("update_issue")
        issue = self.issues[issue_number]
        if title is not None:
            issue.title = title
        if body is not None:
            issue.body = body
        if labels is not None:
            issue.labels = list(labels)
        if assignees is not None:
            issue.assignees = list(assignees)
        if milestone is not None:
            issue.milestone = next(m.title for m in self.milestones if m.number == milestone)
        if state is not None:
            issue.state = state
        return issue

    def search_issues_by_title(self, repo, title) -> List[RemoteIssue]:
        self._call("search_issues_by_title")
        return [i for i in self.issues.values() if i.title == title]

    # --- comments ---

    def get_issue_comments(self, repo, issue_number) -> List[RemoteComment]:
        self._call("get_issue_comments")
        return list(self.comments.get(issue_number, []))

    def create_comment(self, repo, issue_number, body) -> RemoteComment:
        self._call("create_comment")
        comment = RemoteComment(self._next_comment, body, "kanban-bot")
        self._next_comment += 1
        self.comments.setdefault(issue_number, []).append(comment)
        return comment

    def update_comment(self, repo, comment_id, body) -> RemoteComment:
        self._call("update_comment")
        for comments in self.comments.values():
            for comment in comments:
                if comment.id == comment_id:
                    comment.body = body
                    return comment
        raise RemoteNotFound(f"comment {comment_id}")

    # --- labels, milestones, files ---

    def list_labels(self, repo) -> List[str]:
        self._call("list_labels")
        return list(self.labels)

    def create_label(self, repo, name, color="ededed") -> None:
        self._call("create_label")
        self.labels.append(name)

    def list_milestones(self, repo) -> List[Milestone]:
        self._call("list_milestones")
        return list(self.milestones)

    def raw_file_url(self, repo, path, branch) -> str:
        return f"https://raw.githubusercontent.com/{repo}/{branch}/{path}"

    def upload_file(self, repo, path, content, branch, message) -> str:
        self._call("upload_file")
        self.uploads[path] = content
        return self.raw_file_url(repo, path, branch)

    def download_file(self, url, timeout=30) -> bytes:
        self._call("download_file")
        if url not in self.downloads:
            raise TrackerError(f"Download failed for {url}: 404")
        return self.downloads[url]

    # --- board ---

    def get_project(self, owner, number) -> Project:
        self._call("get_project")
        return self.project

    def list_project_fields(self, project_id) -> List[ProjectField]:
        self._call("list_project_fields")
        return list(self.fields)

    def add_project_item(self, project_id, content_node_id) -> str:
        self._call("add_project_item")
        number = next(n for n, i in self.issues.items() if i.node_id == content_node_id)
        return self.items.setdefault(number, f"PVTI_{number}")

    def set_project_field_value(self, project_id, item_id, field_id, value) -> None:
        self._call("set_project_field_value")
        self.field_writes.append((item_id, field_id, value))

    def delete_project_item(self, project_id, item_id) -> None:
        self._call("delete_project_item")
        self.items = {n: i for n, i in self.items.items() if i != item_id}

    def list_project_items(self, project_id) -> List[ProjectItem]:
        self._call("list_project_items")
        return [
            ProjectItem(item_id, self.issues[number], comments=list(self.comments.get(number, [])))
            for number, item_id in self.items.items()
        ]


@pytest.fixture
def tracker() -> FakeTracker:
    return FakeTracker()


@pytest.fixture
def tasks_root(tmp_path: Path) -> Path:
    root = tmp_path / "Tasks"
    root.mkdir()
    return root


@pytest.fixture
def config(tasks_root: Path) -> AppConfig:
    return AppConfig(
        github=GitHubConfig(token="t", repository=REPO, actor="octocat"),
        board=BoardConfig(owner="acme", number=1),
        tasks=TasksConfig(dir=str(tasks_root)),
        git=GitConfig(commit=False),
    )


def write_task(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path
