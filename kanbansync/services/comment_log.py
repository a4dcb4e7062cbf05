"""Post pending task comments once and record them in commentHistory."""

import logging
from datetime import date
from pathlib import Path
from typing import Any, Callable, Dict, List

from kanbansync.adapters.base import TrackerAdapter, TrackerError
from kanbansync.services.images import ImageUploader
from kanbansync.store.schemas.history_entry import CommentHistoryEntry, content_hash, entry_hash
from kanbansync.store.task_store import MalformedDocument, StaleDocument, load_document, patch_document

LOG = logging.getLogger("kanbansync.services.comment_log")


def _history_hashes(history: Any) -> set[str]:
    hashes = set()
    for line in history if isinstance(history, list) else []:
        h = entry_hash(line)
        if h is not None:
            hashes.add(h)
    return hashes


class CommentLogMerger:
    """Posts each pending comment of a task file at most once.

    Dedup is by content hash of the posted text against the file's
    commentHistory, read fresh from disk on every merge.
    """

    def __init__(
        self,
        adapter: TrackerAdapter,
        repo: str,
        actor: str,
        images: ImageUploader | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._adapter = adapter
        self._repo = repo
        self._actor = actor
        self._images = images
        self._today = today

    def merge(self, path: Path, issue_number: int) -> bool:
        """Post new pending comments on issue_number; return True if any was
        posted."""
        path = Path(path)
        doc = load_document(path)
        pending = doc.fields.get("comments")
        if not isinstance(pending, list) or not pending:
            return False

        seen = _history_hashes(doc.fields.get("commentHistory"))
        new_entries: List[str] = []
        for raw in pending:
            if raw is None or str(raw).strip() == "":
                continue
            text = str(raw)
            raw_hash = content_hash(text)
            planned = self._images.planned(text, path.parent) if self._images else text
            if raw_hash in seen or content_hash(planned) in seen:
                LOG.debug("Comment already posted on #%s, skipping", issue_number)
                continue

            body = self._images.expand(text, path.parent) if self._images else text
            try:
                self._adapter.create_comment(self._repo, issue_number, body)
            except TrackerError as e:
                LOG.warning("Failed to post comment on #%s: %s", issue_number, e)
                continue
            entry = CommentHistoryEntry(posted_date=self._today(), author=self._actor, text=body)
            new_entries.append(entry.to_wire())
            seen.update({raw_hash, entry.content_hash})
            LOG.info("Posted comment on #%s", issue_number)

        if not new_entries:
            return False
        self._persist(path, issue_number, new_entries)
        return True

    def _persist(self, path: Path, issue_number: int, new_entries: List[str]) -> None:
        def _append(fields: Dict[str, Any]) -> None:
            history = fields.get("commentHistory")
            history = list(history) if isinstance(history, list) else []
            present = _history_hashes(history)
            for line in new_entries:
                h = entry_hash(line)
                if h in present:
                    continue
                history.append(line)
                present.add(h)
            fields["commentHistory"] = history

        try:
            patch_document(path, _append)
        except (OSError, MalformedDocument, StaleDocument) as e:
            # Comments are already on the issue; the next run may post them again.
            LOG.error(
                "Posted %s comment(s) on #%s but could not record them in %s: %s",
                len(new_entries),
                issue_number,
                path,
                e,
            )
