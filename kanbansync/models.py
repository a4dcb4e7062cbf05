"""Data models for remote issues, comments, milestones and board items."""

from datetime import datetime
from typing import Any, Dict, List

# Project field data types the board can carry; anything else is read as unsupported.
TEXT = "TEXT"
NUMBER = "NUMBER"
DATE = "DATE"
SINGLE_SELECT = "SINGLE_SELECT"


class RemoteIssue:
    """Issue as returned by the tracker."""

    def __init__(
        self,
        number: int,
        node_id: str,
        title: str,
        body: str,
        labels: List[str],
        assignees: List[str],
        state: str,
        milestone: str | None = None,
        html_url: str | None = None,
    ) -> None:
        self.number = number
        self.node_id = node_id
        self.title = title
        self.body = body or ""
        self.labels = labels or []
        self.assignees = assignees or []
        self.state = (state or "open").lower()
        self.milestone = milestone
        self.html_url = html_url

    @property
    def is_open(self) -> bool:
        return self.state == "open"


class RemoteComment:
    """Comment on an issue."""

    def __init__(
        self,
        id: int,
        body: str,
        author: str,
        created_at: datetime | None = None,
    ) -> None:
        self.id = id
        self.body = body or ""
        self.author = author
        self.created_at = created_at


class Milestone:
    """Repository milestone (only open ones are listed)."""

    def __init__(self, number: int, title: str) -> None:
        self.number = number
        self.title = title


class Project:
    """Projects (v2) board node."""

    def __init__(self, id: str, title: str) -> None:
        self.id = id
        self.title = title


class ProjectField:
    """Typed custom field on the board.

    options maps option name to option id and is only filled for
    SINGLE_SELECT fields.
    """

    def __init__(
        self,
        id: str,
        name: str,
        data_type: str,
        options: Dict[str, str] | None = None,
    ) -> None:
        self.id = id
        self.name = name
        self.data_type = data_type
        self.options = options or {}


class ProjectItem:
    """Board item together with its issue content and field values.

    issue is None for draft issues and pull requests.
    """

    def __init__(
        self,
        id: str,
        issue: RemoteIssue | None,
        field_values: Dict[str, Any] | None = None,
        comments: List[RemoteComment] | None = None,
    ) -> None:
        self.id = id
        self.issue = issue
        self.field_values = field_values or {}
        self.comments = comments or []
