"""Abstract base for issue tracker + project board adapters."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List

from kanbansync.models import Milestone, Project, ProjectField, ProjectItem, RemoteComment, RemoteIssue


class TrackerError(Exception):
    """Raised when a tracker or board API call fails."""

    pass


class RemoteNotFound(TrackerError):
    """Raised when an issue, project or other remote object does not exist."""

    pass


class RemoteWriteFailure(TrackerError):
    """Raised when a create/update/comment/field-set call fails."""

    pass


class TrackerAdapter(ABC):
    """Interface to the hosted issue tracker and its project board."""

    # --- issues ---

    @abstractmethod
    def get_issue(self, repo: str, issue_number: int) -> RemoteIssue:
        """Fetch issue by number. Raises RemoteNotFound if it does not exist."""
        ...

    @abstractmethod
    def create_issue(
        self,
        repo: str,
        title: str,
        body: str,
        labels: List[str] | None = None,
        assignees: List[str] | None = None,
    ) -> RemoteIssue:
        """Create an issue."""
        ...

    @abstractmethod
    def update_issue(
        self,
        repo: str,
        issue_number: int,
        *,
        title: str | None = None,
        body: str | None = None,
        labels: List[str] | None = None,
        assignees: List[str] | None = None,
        milestone: int | None = None,
        state: str | None = None,
    ) -> RemoteIssue:
        """Update the given attributes; None leaves an attribute unchanged."""
        ...

    @abstractmethod
    def search_issues_by_title(self, repo: str, title: str) -> List[RemoteIssue]:
        """Return issues (not PRs) whose title equals title exactly."""
        ...

    # --- comments ---

    @abstractmethod
    def get_issue_comments(self, repo: str, issue_number: int) -> List[RemoteComment]:
        """Fetch comments on an issue."""
        ...

    @abstractmethod
    def create_comment(self, repo: str, issue_number: int, body: str) -> RemoteComment:
        """Post a comment on an issue."""
        ...

    @abstractmethod
    def update_comment(self, repo: str, comment_id: int, body: str) -> RemoteComment:
        """Replace the body of an existing comment."""
        ...

    # --- labels, milestones, files ---

    @abstractmethod
    def list_labels(self, repo: str) -> List[str]:
        """List label names defined on the repository."""
        ...

    @abstractmethod
    def create_label(self, repo: str, name: str, color: str = "ededed") -> None:
        """Create a repository label."""
        ...

    @abstractmethod
    def list_milestones(self, repo: str) -> List[Milestone]:
        """List open milestones."""
        ...

    def raw_file_url(self, repo: str, path: str, branch: str) -> str:
        """URL an uploaded file will be served from. Override if needed."""
        raise NotImplementedError("raw_file_url")

    @abstractmethod
    def upload_file(self, repo: str, path: str, content: bytes, branch: str, message: str) -> str:
        """Commit a file to the repository and return its raw download URL."""
        ...

    @abstractmethod
    def download_file(self, url: str, timeout: int = 30) -> bytes:
        """Download an attachment; raise TrackerError on failure or timeout."""
        ...

    # --- project board ---

    @abstractmethod
    def get_project(self, owner: str, number: int) -> Project:
        """Find the board by owner (organization or user) and number."""
        ...

    @abstractmethod
    def list_project_fields(self, project_id: str) -> List[ProjectField]:
        """List typed fields of the board."""
        ...

    @abstractmethod
    def add_project_item(self, project_id: str, content_node_id: str) -> str:
        """Add an issue to the board and return the item id (idempotent)."""
        ...

    @abstractmethod
    def set_project_field_value(
        self,
        project_id: str,
        item_id: str,
        field_id: str,
        value: Dict[str, Any],
    ) -> None:
        """Write one typed field value on a board item."""
        ...

    @abstractmethod
    def delete_project_item(self, project_id: str, item_id: str) -> None:
        """Remove an item from the board (the issue itself is kept)."""
        ...

    @abstractmethod
    def list_project_items(self, project_id: str) -> List[ProjectItem]:
        """Enumerate every board item with issue content and field values."""
        ...
