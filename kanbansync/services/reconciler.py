"""
Push local task files to the issue tracker and project board.

For each task file (sorted walk of the tasks root):

1. Move it into the folder named after its status.
2. Find or create the remote issue; a newly created number is written into
   the file before any other remote call.
3. Update title, body, labels, assignees and milestone.
4. Add the issue to the board.
5. Sync sub-issues and write their numbers back into the file.
6. Upsert the relationship and automated-notes comments.
7. Post pending comments (CommentLogMerger).
8. Write typed board field values.

Every sub-step failure is logged and the next sub-step runs. Nothing is rolled
back: running again converges.
"""

import logging
from pathlib import Path
from typing import Any, Callable, Dict, List

from kanbansync.adapters.base import RemoteNotFound, TrackerAdapter, TrackerError
from kanbansync.config import AppConfig
from kanbansync.models import Milestone, Project, ProjectField, RemoteIssue
from kanbansync.services.comment_log import CommentLogMerger
from kanbansync.services.fields import coerce_field_value
from kanbansync.services.images import ImageUploader
from kanbansync.services.issue_body import build_issue_body, extract_section, marked_comment_body
from kanbansync.services.orphans import OrphanAction, OrphanDetector
from kanbansync.services.placement import place_file
from kanbansync.store import (
    MalformedDocument,
    StaleDocument,
    SubIssueRecord,
    TaskRecord,
    TaskValidationError,
    load_document,
    load_task,
    patch_document,
    set_fields,
    validate_task_data,
    walk_task_files,
)


class RunSummary:
    """Counters reported at the end of a run."""

    def __init__(self) -> None:
        self.processed = 0
        self.created = 0
        self.updated = 0
        self.moved = 0
        self.skipped = 0
        self.warnings = 0
        self.comments_posted = 0
        self.fields_set = 0
        self.orphans: List[OrphanAction] = []

    def log(self, logger: logging.Logger) -> None:
        logger.info(
            "Sync finished: %s file(s) processed, %s created, %s updated, %s moved, %s skipped, "
            "%s comment batch(es) posted, %s field value(s) set, %s orphan(s), %s warning(s)",
            self.processed,
            self.created,
            self.updated,
            self.moved,
            self.skipped,
            self.comments_posted,
            self.fields_set,
            len(self.orphans),
            self.warnings,
        )


class Reconciler:
    """Reconciliation engine for one push run."""

    def __init__(
        self,
        adapter: TrackerAdapter,
        config: AppConfig,
        merger: CommentLogMerger | None = None,
        orphans: OrphanDetector | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        self._adapter = adapter
        self._config = config
        self._repo = config.github.repository or ""
        self._root = config.tasks.root
        self._log = log or logging.getLogger("kanbansync.services.reconciler")
        images = ImageUploader(
            adapter,
            self._repo,
            self._root,
            branch=config.tasks.images_branch,
            upload_dir=config.tasks.images_upload_dir,
        )
        self._merger = merger or CommentLogMerger(adapter, self._repo, config.github.actor, images=images)
        self._orphans = orphans
        self._project: Project | None = None
        self._fields: Dict[str, ProjectField] = {}
        self._labels: set[str] | None = None
        self._milestones: List[Milestone] | None = None
        self._unregistered: set[int] = set()
        self.summary = RunSummary()

    # --- board ---

    def load_board(self) -> Project:
        """Resolve the board and its fields; raises if the status field is
        missing."""
        board = self._config.board
        self._project = self._adapter.get_project(board.owner or "", board.number or 0)
        fields = self._adapter.list_project_fields(self._project.id)
        self._fields = {f.name.casefold(): f for f in fields}
        if board.status_field.casefold() not in self._fields:
            raise RemoteNotFound(f'Status field "{board.status_field}" not found on board {self._project.title}')
        self._log.info("Board: %s (%s field(s))", self._project.title, len(fields))
        return self._project

    def _field(self, name: str) -> ProjectField | None:
        return self._fields.get(name.casefold())

    # --- run ---

    def validate_all(self, paths: List[Path]) -> None:
        """Strict mode: collect every header violation and fail if any."""
        violations = []
        for path in paths:
            try:
                doc = load_document(path)
            except MalformedDocument as e:
                violations.append(f"{path}: {e}")
                continue
            violations.extend(f"{path}: {v}" for v in validate_task_data(doc.fields))
        if violations:
            for v in violations:
                self._log.error("Validation: %s", v)
            raise TaskValidationError(violations)

    def run(self) -> RunSummary:
        """Sync every task file, then run orphan detection."""
        if self._project is None:
            self.load_board()
        paths = walk_task_files(self._root)
        if not paths:
            self._log.info("No task files under %s", self._root)
        if self._config.tasks.strict_validation:
            self.validate_all(paths)

        for path in paths:
            self._log.info("Processing %s", path)
            self.sync_file(path)

        if self._config.tasks.cleanup_orphans:
            detector = self._orphans or OrphanDetector(
                self._adapter, self._config, self._project, log=self._log
            )
            self.summary.orphans = detector.run(keep=self._unregistered)
        self.summary.log(self._log)
        return self.summary

    def sync_file(self, path: Path) -> Path | None:
        """Run all sub-steps for one file and return its final location."""
        try:
            record, doc = load_task(path)
        except MalformedDocument as e:
            self._log.warning("%s: skipped, %s", path, e)
            self.summary.skipped += 1
            return None
        self.summary.processed += 1
        if not self._config.tasks.strict_validation:
            for v in validate_task_data(doc.fields):
                self._log.warning("%s: %s", path, v)

        new_path = place_file(self._root, path, record.status)
        if new_path != path:
            self.summary.moved += 1
        path = new_path

        body = build_issue_body(record.description, record.body, source=self._source(path))
        issue = self._resolve_issue(path, record.title, record.issue, body, lambda n: self._record_issue(path, n))
        if issue is None:
            return path

        self._sync_basics(issue, record.title, body, record.labels, record.assignees, record.milestone)
        item_id = self._add_to_board(issue)

        sub_refs = self._sync_sub_issues(path, record, issue)
        relationships = list(record.relationships) + [f"Sub-issue: #{n}" for n in sub_refs]
        if relationships:
            self._upsert_marked_comment(
                issue.number,
                self._config.tasks.relationship_header,
                marked_comment_body(self._config.tasks.relationship_header, [f"- {r}" for r in relationships]),
            )
        notes = extract_section(record.body, self._config.tasks.notes_header)
        if notes:
            self._upsert_marked_comment(
                issue.number,
                self._config.tasks.notes_header,
                marked_comment_body(self._config.tasks.notes_header, [notes]),
            )

        try:
            if self._merger.merge(path, issue.number):
                self.summary.comments_posted += 1
        except (MalformedDocument, StaleDocument) as e:
            self._warn("#%s: comment history not merged: %s", issue.number, e)

        if item_id:
            self._sync_fields(record, item_id, issue.number)
        return path

    # --- sub-steps ---

    def _warn(self, msg: str, *args: Any) -> None:
        self.summary.warnings += 1
        self._log.warning(msg, *args)

    def _source(self, path: Path) -> str:
        try:
            return Path(path).relative_to(self._root).as_posix()
        except ValueError:
            return Path(path).as_posix()

    def _record_issue(self, path: Path, number: int) -> None:
        try:
            set_fields(path, issue=number)
        except (OSError, MalformedDocument, StaleDocument) as e:
            self._warn("%s: created #%s but could not record it: %s", path, number, e)

    def _resolve_issue(
        self,
        label: Any,
        title: str,
        number: int | None,
        body: str,
        record_number: Callable[[int], None],
        labels: List[str] | None = None,
        assignees: List[str] | None = None,
    ) -> RemoteIssue | None:
        """Fetch by number, else reuse by exact title, else create."""
        if number is not None:
            try:
                return self._adapter.get_issue(self._repo, number)
            except RemoteNotFound:
                self._log.warning("%s: issue #%s not found, creating a new one", label, number)
            except TrackerError as e:
                self._warn("%s: cannot fetch issue #%s: %s", label, number, e)
                return None
        elif self._config.tasks.reuse_by_title:
            try:
                matches = self._adapter.search_issues_by_title(self._repo, title)
            except TrackerError as e:
                self._log.debug("%s: title search failed: %s", label, e)
                matches = []
            if matches:
                issue = sorted(matches, key=lambda i: (not i.is_open, i.number))[0]
                self._log.info("%s: reusing issue #%s with the same title", label, issue.number)
                record_number(issue.number)
                return issue

        try:
            issue = self._adapter.create_issue(self._repo, title, body, labels=labels, assignees=assignees)
        except TrackerError as e:
            self._warn("%s: cannot create issue: %s", label, e)
            return None
        record_number(issue.number)
        self.summary.created += 1
        self._log.info("%s: created issue #%s", label, issue.number)
        return issue

    def _ensure_labels(self, labels: List[str]) -> None:
        if self._labels is None:
            try:
                self._labels = {name.casefold() for name in self._adapter.list_labels(self._repo)}
            except TrackerError as e:
                self._warn("Cannot list labels: %s", e)
                self._labels = set()
        for name in labels:
            if name.casefold() in self._labels:
                continue
            try:
                self._adapter.create_label(self._repo, name)
                self._log.info("Created label %s", name)
            except TrackerError as e:
                self._log.debug("Label %s not created: %s", name, e)
            self._labels.add(name.casefold())

    def _milestone_number(self, title: str | None) -> int | None:
        if not title:
            return None
        if self._milestones is None:
            try:
                self._milestones = self._adapter.list_milestones(self._repo)
            except TrackerError as e:
                self._warn("Cannot list milestones: %s", e)
                self._milestones = []
        wanted = title.strip().casefold()
        for milestone in self._milestones:
            if milestone.title.strip().casefold() == wanted:
                return milestone.number
        self._log.debug("Milestone %r not found, skipping", title)
        return None

    def _sync_basics(
        self,
        issue: RemoteIssue,
        title: str,
        body: str,
        labels: List[str],
        assignees: List[str],
        milestone: str | None = None,
    ) -> None:
        wanted_labels = list(dict.fromkeys(labels))
        sync_label = self._config.tasks.sync_label
        if sync_label and sync_label not in wanted_labels:
            wanted_labels.append(sync_label)
        self._ensure_labels(wanted_labels)
        try:
            self._adapter.update_issue(
                self._repo,
                issue.number,
                title=title,
                body=body,
                labels=wanted_labels,
                assignees=list(assignees),
                milestone=self._milestone_number(milestone),
            )
            self.summary.updated += 1
            self._log.info("#%s: updated", issue.number)
        except TrackerError as e:
            self._warn("#%s: update failed: %s", issue.number, e)

    def _add_to_board(self, issue: RemoteIssue) -> str | None:
        try:
            return self._adapter.add_project_item(self._project.id, issue.node_id)
        except TrackerError as e:
            self._warn("#%s: not added to board: %s", issue.number, e)
            self._unregistered.add(issue.number)
            return None

    def _upsert_marked_comment(self, issue_number: int, header: str, body: str) -> None:
        """Edit the comment carrying **header**, or create it."""
        marker = f"**{header}**"
        try:
            comments = self._adapter.get_issue_comments(self._repo, issue_number)
            existing = next((c for c in comments if marker in c.body), None)
            if existing is None:
                self._adapter.create_comment(self._repo, issue_number, body)
                self._log.info("#%s: posted %s comment", issue_number, header)
            elif existing.body.strip() != body.strip():
                self._adapter.update_comment(self._repo, existing.id, body)
                self._log.info("#%s: updated %s comment", issue_number, header)
        except TrackerError as e:
            self._warn("#%s: %s comment not synced: %s", issue_number, header, e)

    def _sync_sub_issues(self, path: Path, record: TaskRecord, parent: RemoteIssue) -> List[int]:
        """Find-or-create every sub-issue and write the numbers back."""
        resolved: List[int] = []
        for sub in record.sub_issues:
            number = self._sync_sub_issue(path, sub, parent)
            if number is not None:
                resolved.append(number)
        return list(dict.fromkeys(resolved))

    def _record_sub_issue(self, path: Path, title: str, number: int) -> None:
        try:
            patch_document(path, lambda fields: _write_sub_issue_numbers(fields, {title.strip(): number}))
        except (OSError, MalformedDocument, StaleDocument) as e:
            self._warn("%s: sub-issue #%s not recorded: %s", path, number, e)

    def _sync_sub_issue(self, path: Path, sub: SubIssueRecord, parent: RemoteIssue) -> int | None:
        label = f"{path} sub-issue {sub.title or sub.issue}"
        if not sub.title:
            # An issue number alone links an existing issue without touching it.
            return sub.issue
        body = build_issue_body(sub.description, parent=parent.number, source=f"{self._source(path)} (sub-issue)")
        issue = self._resolve_issue(
            label,
            sub.title,
            sub.issue,
            body,
            lambda n: self._record_sub_issue(path, sub.title, n),
            labels=list(sub.labels),
            assignees=list(sub.assignees),
        )
        if issue is None:
            return None
        self._sync_basics(issue, sub.title, body, sub.labels, sub.assignees)
        item_id = self._add_to_board(issue)
        header = self._config.tasks.relationship_header
        self._upsert_marked_comment(issue.number, header, marked_comment_body(header, [f"- Parent: #{parent.number}"]))
        if item_id and sub.status:
            self._set_field(item_id, issue.number, self._config.board.status_field, sub.status)
        return issue.number

    def _set_field(self, item_id: str, issue_number: int, name: str, raw: Any) -> None:
        field = self._field(name)
        if field is None:
            self._log.debug("#%s: field %s not on board, skipping", issue_number, name)
            return
        value = coerce_field_value(field, raw)
        if value is None:
            self._log.warning(
                "#%s: value %r does not fit field %s (%s), skipping", issue_number, raw, name, field.data_type
            )
            return
        try:
            self._adapter.set_project_field_value(self._project.id, item_id, field.id, value.to_graphql())
            self.summary.fields_set += 1
        except TrackerError as e:
            self._warn("#%s: field %s not set: %s", issue_number, name, e)

    def _sync_fields(self, record: TaskRecord, item_id: str, issue_number: int) -> None:
        for name, raw in record.field_values(self._config.board.status_field).items():
            if not raw:
                continue
            self._set_field(item_id, issue_number, name, raw)


def _write_sub_issue_numbers(fields: Dict[str, Any], numbers_by_title: Dict[str, int]) -> None:
    entries = fields.get("subIssues")
    if not isinstance(entries, list):
        return
    out = []
    for entry in entries:
        if isinstance(entry, str) and entry.strip() in numbers_by_title:
            entry = {"title": entry.strip(), "issue": numbers_by_title[entry.strip()]}
        elif isinstance(entry, dict):
            title = str(entry.get("title") or "").strip()
            if title in numbers_by_title and entry.get("issue") != numbers_by_title[title]:
                entry = {**entry, "issue": numbers_by_title[title]}
        out.append(entry)
    fields["subIssues"] = out
