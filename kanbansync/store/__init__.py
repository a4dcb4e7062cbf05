"""Task file storage (frontmatter header + body, generation-checked writes)."""

from kanbansync.store.schemas import (
    CommentHistoryEntry,
    SubIssueRecord,
    TaskRecord,
    TaskValidationError,
    validate_task_data,
)
from kanbansync.store.task_store import (
    IMAGES_DIR,
    Document,
    MalformedDocument,
    StaleDocument,
    index_by_issue,
    iter_documents,
    load_document,
    load_task,
    parse_document,
    patch_document,
    serialize_document,
    set_fields,
    walk_task_files,
    write_document,
)

__all__ = [
    "IMAGES_DIR",
    "CommentHistoryEntry",
    "Document",
    "MalformedDocument",
    "StaleDocument",
    "SubIssueRecord",
    "TaskRecord",
    "TaskValidationError",
    "index_by_issue",
    "iter_documents",
    "load_document",
    "load_task",
    "parse_document",
    "patch_document",
    "serialize_document",
    "set_fields",
    "validate_task_data",
    "walk_task_files",
    "write_document",
]
