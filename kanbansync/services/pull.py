"""
Write board issues back into local task files.

Modes:
  missing  create files for board issues that have none, touch nothing else
  all      also update files whose title, description, status, assignees or
           labels differ from the board, or that miss remote comments
  force    apply the board values to every existing file

In all and force modes, local files whose issue left the board are removed
first (local half of orphan detection).
"""

import logging
import re
from datetime import date
from pathlib import Path
from typing import Any, Dict, List

from kanbansync.adapters.base import TrackerAdapter, TrackerError
from kanbansync.config import AppConfig
from kanbansync.models import Project, ProjectItem, RemoteComment, RemoteIssue
from kanbansync.services.images import ImageDownloader
from kanbansync.services.issue_body import strip_sync_text
from kanbansync.services.orphans import OrphanAction, OrphanDetector
from kanbansync.services.placement import place_file, safe_status_segment
from kanbansync.store import (
    MalformedDocument,
    StaleDocument,
    TaskRecord,
    index_by_issue,
    load_document,
    patch_document,
    write_document,
)
from kanbansync.store.schemas import CommentHistoryEntry, content_hash, entry_hash
from kanbansync.store.schemas.task_record import BOARD_FIELDS

MODES = ("missing", "all", "force")
SLUG_LENGTH = 30

# Keys compared in "all" mode to decide whether a file is out of date.
COMPARED_KEYS = ("title", "description", "status", "assignees", "labels")
# Keys owned by the board; dropped locally when the board has no value.
PULLED_KEYS = ("description", "status", "milestone", "labels", "assignees")


def title_slug(title: str) -> str:
    slug = re.sub(r"[^\w\s-]", "", title)
    slug = re.sub(r"\s+", "-", slug.strip()).lower()[:SLUG_LENGTH].strip("-")
    return slug


def _plain_number(value: Any) -> Any:
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


class PullSummary:
    def __init__(self) -> None:
        self.created = 0
        self.updated = 0
        self.skipped = 0
        self.orphans: List[OrphanAction] = []

    @property
    def changed(self) -> bool:
        return bool(self.created or self.updated or self.orphans)

    def log(self, logger: logging.Logger) -> None:
        logger.info(
            "Pull finished: %s created, %s updated, %s skipped, %s orphan file(s) removed",
            self.created,
            self.updated,
            self.skipped,
            len(self.orphans),
        )


class RemotePuller:
    """Board -> task files."""

    def __init__(
        self,
        adapter: TrackerAdapter,
        config: AppConfig,
        downloader: ImageDownloader | None = None,
        today=date.today,
        log: logging.Logger | None = None,
    ) -> None:
        self._adapter = adapter
        self._config = config
        self._root = config.tasks.root
        self._status_field = config.board.status_field
        self._markers = (f"**{config.tasks.relationship_header}**", f"**{config.tasks.notes_header}**")
        self._downloader = downloader or ImageDownloader(
            adapter,
            self._root,
            timeout=config.pull.image_timeout,
            upload_dir=config.tasks.images_upload_dir,
        )
        self._today = today
        self._log = log or logging.getLogger("kanbansync.services.pull")
        self.summary = PullSummary()

    def run(self, mode: str | None = None) -> PullSummary:
        mode = mode or self._config.pull.mode
        if mode not in MODES:
            raise ValueError(f"Unknown sync mode {mode!r}; expected one of {', '.join(MODES)}")
        board = self._config.board
        project = self._adapter.get_project(board.owner or "", board.number or 0)
        items = self._adapter.list_project_items(project.id)
        self._log.info("Pulling %s board item(s) from %s (mode: %s)", len(items), project.title, mode)

        if mode != "missing":
            self.summary.orphans = self._remove_orphans(project, items)

        existing = index_by_issue(self._root)
        for item in items:
            issue = item.issue
            if issue is None or not issue.is_open:
                self.summary.skipped += 1
                continue
            path = existing.get(issue.number)
            try:
                if path is None:
                    self.create_file(item)
                elif mode == "missing":
                    self._log.debug("#%s: %s exists, skipping", issue.number, path)
                    self.summary.skipped += 1
                else:
                    self.update_file(path, item, force=mode == "force")
            except (OSError, MalformedDocument, StaleDocument, TrackerError) as e:
                self._log.warning("#%s: not pulled: %s", issue.number, e)
                self.summary.skipped += 1
        self.summary.log(self._log)
        return self.summary

    def _remove_orphans(self, project: Project, items: List[ProjectItem]) -> List[OrphanAction]:
        detector = OrphanDetector(self._adapter, self._config, project, log=self._log)
        files, _referenced = detector.local_issue_index()
        return detector.remove_local_orphans(items, files)

    # --- remote -> header ---

    def _history_entries(self, comments: List[RemoteComment]) -> List[tuple[str, str]]:
        """(wire entry, hash of the original comment body) per pulled
        comment."""
        out = []
        for comment in comments:
            if any(marker in comment.body for marker in self._markers):
                continue
            if not comment.body.strip():
                continue
            posted = comment.created_at.date() if comment.created_at else self._today()
            text = self._downloader.localize(comment.body)
            entry = CommentHistoryEntry(posted_date=posted, author=comment.author or "unknown", text=text)
            out.append((entry.to_wire(), content_hash(comment.body)))
        return out

    def remote_fields(self, item: ProjectItem, local_body: str = "") -> Dict[str, Any]:
        """Header values taken from the board item (None and empty lists
        omitted)."""
        issue: RemoteIssue = item.issue
        values = item.field_values
        fields: Dict[str, Any] = {
            "title": issue.title,
            "description": self._downloader.localize(strip_sync_text(issue.body, local_body)),
            "issue": issue.number,
            "status": values.get(self._status_field),
        }
        for key, _attr, board_name in BOARD_FIELDS:
            fields[key] = _plain_number(values.get(board_name))
        fields["assignees"] = list(issue.assignees)
        fields["labels"] = list(issue.labels)
        fields["milestone"] = issue.milestone
        return {k: v for k, v in fields.items() if v is not None and v != [] and v != ""}

    # --- files ---

    def _new_path(self, issue: RemoteIssue, status: str | None) -> Path:
        folder = self._root / safe_status_segment(status) if status and status.strip() else self._root
        stem = title_slug(issue.title) or f"issue-{issue.number}"
        path = folder / f"{stem}.md"
        counter = 1
        while path.exists():
            path = folder / f"{stem}-{counter}.md"
            counter += 1
        return path

    def create_file(self, item: ProjectItem) -> Path:
        fields = self.remote_fields(item)
        fields["relationships"] = []
        fields["comments"] = []
        history = [wire for wire, _h in self._history_entries(item.comments)]
        if history:
            fields["commentHistory"] = history
        path = self._new_path(item.issue, fields.get("status"))
        write_document(path, fields, "")
        self.summary.created += 1
        self._log.info("#%s: created %s", item.issue.number, path)
        return path

    def update_file(self, path: Path, item: ProjectItem, force: bool = False) -> Path:
        """Apply board values to an existing file; local relationships,
        comments and subIssues are kept."""
        doc = load_document(path)
        record = TaskRecord.from_document(doc.path, doc.fields, doc.body)
        remote = self.remote_fields(item, record.body)
        pulled = self._history_entries(item.comments)

        def _new_entries(history: Any) -> List[str]:
            seen = {entry_hash(line) for line in history} if isinstance(history, list) else set()
            out = []
            for wire, raw_hash in pulled:
                h = entry_hash(wire)
                if h in seen or raw_hash in seen:
                    continue
                out.append(wire)
                seen.add(h)
            return out

        stale = any((doc.fields.get(k) or None) != (remote.get(k) or None) for k in COMPARED_KEYS)
        if not (force or stale or _new_entries(doc.fields.get("commentHistory"))):
            self._log.debug("#%s: %s up to date", item.issue.number, path)
            self.summary.skipped += 1
            return path

        def _apply(fields: Dict[str, Any]) -> None:
            for key in (*PULLED_KEYS, *(k for k, _a, _b in BOARD_FIELDS)):
                if key not in remote:
                    fields.pop(key, None)
            fields.update(remote)
            history = fields.get("commentHistory")
            history = list(history) if isinstance(history, list) else []
            fields["commentHistory"] = history + _new_entries(history)
            if not fields["commentHistory"]:
                del fields["commentHistory"]

        patch_document(path, _apply)
        self.summary.updated += 1
        self._log.info("#%s: updated %s", item.issue.number, path)
        return place_file(self._root, path, remote.get("status"))
