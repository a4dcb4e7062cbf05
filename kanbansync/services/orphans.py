"""
Orphan detection in both directions.

Remote orphans: open, sync-managed board issues (sync label or source marker
in the body) that no task file references. They are closed with a comment and
removed from the board.

Local orphans: task files whose issue is not an open board item. The issue is
fetched to classify why (closed, removed-from-project, deleted), then the file
and its associated images are deleted.
"""

import logging
import re
from pathlib import Path
from typing import Dict, Iterable, List

from kanbansync.adapters.base import RemoteNotFound, TrackerAdapter, TrackerError
from kanbansync.config import AppConfig
from kanbansync.models import Project, ProjectItem
from kanbansync.services.images import IMAGE_EXTENSIONS
from kanbansync.services.issue_body import has_source_marker
from kanbansync.store import IMAGES_DIR, TaskRecord, iter_documents

CLOSE_COMMENT = (
    "Closed automatically: no task file references this issue anymore. "
    "Restore the task file (with its `issue` field) to bring it back."
)

CLOSE_REMOTE = "close-remote"
DELETE_LOCAL = "delete-local"


class OrphanAction:
    """One orphan handled by the detector."""

    def __init__(self, kind: str, issue_number: int, reason: str, path: Path | None = None) -> None:
        self.kind = kind
        self.issue_number = issue_number
        self.reason = reason
        self.path = path

    def __repr__(self) -> str:
        return f"OrphanAction({self.kind!r}, #{self.issue_number}, {self.reason!r})"


def associated_images(task_path: Path, issue_number: int, images_dir: Path) -> List[Path]:
    """Image files next to the task file or in images_dir named after the
    file or its issue number."""
    stem = re.escape(Path(task_path).stem)
    patterns = [
        re.compile(rf"^{stem}[_-]", re.IGNORECASE),
        re.compile(rf"issue[_-]?{issue_number}[_-]", re.IGNORECASE),
        re.compile(rf"(?<!\d){issue_number}[_-]"),
    ]
    out = []
    for folder in dict.fromkeys([Path(task_path).parent, Path(images_dir)]):
        if not folder.is_dir():
            continue
        for candidate in sorted(folder.iterdir()):
            if not candidate.is_file() or candidate.suffix.lower() not in IMAGE_EXTENSIONS:
                continue
            if any(p.search(candidate.name) for p in patterns):
                out.append(candidate)
    return out


class OrphanDetector:
    """Reconciles issues and task files that lost their counterpart."""

    def __init__(
        self,
        adapter: TrackerAdapter,
        config: AppConfig,
        project: Project,
        log: logging.Logger | None = None,
    ) -> None:
        self._adapter = adapter
        self._config = config
        self._project = project
        self._repo = config.github.repository or ""
        self._root = config.tasks.root
        self._log = log or logging.getLogger("kanbansync.services.orphans")

    def is_sync_managed(self, item: ProjectItem) -> bool:
        issue = item.issue
        if issue is None:
            return False
        label = self._config.tasks.sync_label
        return bool(label and label in issue.labels) or has_source_marker(issue.body)

    def local_issue_index(self) -> tuple[Dict[int, Path], set[int]]:
        """(issue -> task file, every issue number referenced locally).

        The second set also holds sub-issue numbers, which have no file of
        their own.
        """
        files: Dict[int, Path] = {}
        referenced: set[int] = set()
        for doc in iter_documents(self._root):
            record = TaskRecord.from_document(doc.path, doc.fields, doc.body)
            if record.issue is not None:
                referenced.add(record.issue)
                files.setdefault(record.issue, doc.path)
            referenced.update(s.issue for s in record.sub_issues if s.issue is not None)
        return files, referenced

    def close_remote_orphans(self, items: Iterable[ProjectItem], referenced: set[int]) -> List[OrphanAction]:
        actions = []
        for item in items:
            issue = item.issue
            if issue is None or not issue.is_open or issue.number in referenced:
                continue
            if not self.is_sync_managed(item):
                continue
            try:
                self._adapter.create_comment(self._repo, issue.number, CLOSE_COMMENT)
                self._adapter.update_issue(self._repo, issue.number, state="closed")
                self._adapter.delete_project_item(self._project.id, item.id)
            except TrackerError as e:
                self._log.warning("#%s: orphan not closed: %s", issue.number, e)
                continue
            self._log.info("#%s: closed and removed from board (no task file)", issue.number)
            actions.append(OrphanAction(CLOSE_REMOTE, issue.number, "no-local-file"))
        return actions

    def _classify(self, issue_number: int) -> str | None:
        try:
            issue = self._adapter.get_issue(self._repo, issue_number)
        except RemoteNotFound:
            return "deleted"
        except TrackerError as e:
            self._log.warning("#%s: cannot check issue, keeping task file: %s", issue_number, e)
            return None
        return "removed-from-project" if issue.is_open else "closed"

    def _delete_local(self, path: Path, issue_number: int) -> None:
        for image in associated_images(path, issue_number, self._root / IMAGES_DIR):
            try:
                image.unlink()
                self._log.info("Deleted image %s", image)
            except OSError as e:
                self._log.warning("Cannot delete image %s: %s", image, e)
        path.unlink()
        parent = path.parent
        if parent.resolve() != self._root.resolve() and parent.name != IMAGES_DIR and not any(parent.iterdir()):
            parent.rmdir()
            self._log.info("Removed empty folder %s", parent)

    def remove_local_orphans(
        self,
        items: Iterable[ProjectItem],
        files: Dict[int, Path],
        keep: set[int] | None = None,
    ) -> List[OrphanAction]:
        """Delete task files whose issue is not an open board item.

        Issues in keep (e.g. ones that could not be added to the board this
        run) are left alone.
        """
        open_on_board = {i.issue.number for i in items if i.issue is not None and i.issue.is_open}
        open_on_board |= keep or set()
        actions = []
        for issue_number, path in sorted(files.items()):
            if issue_number in open_on_board:
                continue
            reason = self._classify(issue_number)
            if reason is None:
                continue
            try:
                self._delete_local(path, issue_number)
            except OSError as e:
                self._log.warning("%s: orphan not deleted: %s", path, e)
                continue
            self._log.info("%s: deleted (issue #%s %s)", path, issue_number, reason)
            actions.append(OrphanAction(DELETE_LOCAL, issue_number, reason, path))
        return actions

    def list_items(self) -> List[ProjectItem] | None:
        try:
            return self._adapter.list_project_items(self._project.id)
        except TrackerError as e:
            self._log.warning("Cannot list board items, skipping orphan detection: %s", e)
            return None

    def run(self, remote: bool = True, local: bool = True, keep: set[int] | None = None) -> List[OrphanAction]:
        """Enumerate the board once and handle orphans in the requested
        directions."""
        items = self.list_items()
        if items is None:
            return []
        files, referenced = self.local_issue_index()
        actions: List[OrphanAction] = []
        if remote:
            actions.extend(self.close_remote_orphans(items, referenced))
        if local:
            actions.extend(self.remove_local_orphans(items, files, keep=keep))
        return actions
