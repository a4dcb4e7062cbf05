"""Schemas for task file headers (task record, comment history entries)."""

from kanbansync.store.schemas.history_entry import CommentHistoryEntry, content_hash, entry_hash
from kanbansync.store.schemas.task_record import (
    SubIssueRecord,
    TaskRecord,
    TaskValidationError,
    validate_task_data,
)

__all__ = [
    "CommentHistoryEntry",
    "SubIssueRecord",
    "TaskRecord",
    "TaskValidationError",
    "content_hash",
    "entry_hash",
    "validate_task_data",
]
