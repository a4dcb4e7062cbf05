"""Task file storage: Markdown files with a YAML frontmatter header.

Every read returns a generation token (hash of the bytes read). Writes are
compare-and-swap against that token and land atomically (temp file + rename),
so a concurrent writer (e.g. the pull job in the same pipeline) is detected
instead of silently clobbered. patch_document re-reads and re-applies a
mutation when that happens.
"""

import copy
import hashlib
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, Iterator

import frontmatter
import yaml
from frontmatter.default_handlers import YAMLHandler

from kanbansync.store.schemas import TaskRecord

IMAGES_DIR = "Images"
PATCH_RETRIES = 3

LOG = logging.getLogger("kanbansync.store.task_store")

_HANDLER = YAMLHandler()
# Blank lines between the header and the body; indentation of the first body
# line is content.
_LEADING_BLANK_LINES = re.compile(r"\A(?:[ \t]*\r?\n)+")


class MalformedDocument(Exception):
    """Raised when a task file's header block cannot be decoded."""

    pass


class StaleDocument(Exception):
    """Raised when a file changed on disk since it was read."""

    pass


class Document:
    """Header mapping and body of one file as read at a given generation."""

    def __init__(self, path: Path, fields: Dict[str, Any], body: str, generation: str | None) -> None:
        self.path = path
        self.fields = fields
        self.body = body
        self.generation = generation


def _generation(raw: bytes) -> str:
    return hashlib.sha256(raw).hexdigest()


def _clean_body(text: str) -> str:
    return _LEADING_BLANK_LINES.sub("", text).rstrip()


def parse_document(raw: str) -> tuple[Dict[str, Any], str]:
    """Split a file into (header mapping, body text).

    A file without a header block has an empty mapping. Raises
    MalformedDocument if the header is not valid YAML or not a mapping.
    """
    if not _HANDLER.detect(raw):
        return {}, _clean_body(raw)
    try:
        fm, content = _HANDLER.split(raw)
        fields = _HANDLER.load(fm)
    except (ValueError, yaml.YAMLError) as e:
        raise MalformedDocument(f"Invalid header: {e}") from e
    if fields is None:
        fields = {}
    if not isinstance(fields, dict):
        raise MalformedDocument(f"Header must be a mapping, got {type(fields).__name__}")
    return fields, _clean_body(content)


def serialize_document(fields: Dict[str, Any], body: str) -> str:
    """Render header + body; key order is preserved."""
    post = frontmatter.Post(body or "")
    post.metadata.update(fields)
    return frontmatter.dumps(post, sort_keys=False, width=1000) + "\n"


def load_document(path: Path) -> Document:
    """Read and parse a file, recording its generation."""
    path = Path(path)
    try:
        raw = path.read_bytes()
    except OSError as e:
        raise MalformedDocument(f"Cannot read {path}: {e}") from e
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedDocument(f"{path} is not UTF-8: {e}") from e
    fields, body = parse_document(text)
    return Document(path, fields, body, _generation(raw))


def current_generation(path: Path) -> str | None:
    """Generation of the file as it is now; None if it does not exist."""
    try:
        return _generation(Path(path).read_bytes())
    except FileNotFoundError:
        return None


def write_document(
    path: Path,
    fields: Dict[str, Any],
    body: str,
    expected_generation: str | None = None,
) -> str:
    """Atomically write a file and return its new generation.

    With expected_generation, raises StaleDocument (and writes nothing) if the
    file no longer has that generation.
    """
    path = Path(path)
    if expected_generation is not None and current_generation(path) != expected_generation:
        raise StaleDocument(f"{path} changed on disk since it was read")
    data = serialize_document(fields, body).encode("utf-8")
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    LOG.debug("Wrote %s", path)
    return _generation(data)


def patch_document(
    path: Path,
    mutate: Callable[[Dict[str, Any]], None],
    retries: int = PATCH_RETRIES,
) -> Document:
    """Apply mutate to the freshly read header and write it back.

    Only keys touched by mutate change. If the file changes between the read
    and the write, the read-mutate-write cycle is retried. Nothing is written
    when mutate leaves the header unchanged.
    """
    for attempt in range(retries + 1):
        doc = load_document(path)
        fields = copy.deepcopy(doc.fields)
        mutate(fields)
        if fields == doc.fields:
            return doc
        try:
            generation = write_document(path, fields, doc.body, expected_generation=doc.generation)
        except StaleDocument:
            LOG.debug("Concurrent change to %s, retrying patch (attempt %s)", path, attempt + 1)
            continue
        return Document(doc.path, fields, doc.body, generation)
    raise StaleDocument(f"{path} kept changing; gave up after {retries + 1} attempts")


def set_fields(path: Path, **values: Any) -> Document:
    """Patch the given header keys (e.g. issue=12)."""

    def _mutate(fields: Dict[str, Any]) -> None:
        fields.update(values)

    return patch_document(path, _mutate)


def load_task(path: Path) -> tuple[TaskRecord, Document]:
    """Load a task file into a TaskRecord (lenient) and its Document."""
    doc = load_document(path)
    return TaskRecord.from_document(doc.path, doc.fields, doc.body), doc


def walk_task_files(tasks_root: Path) -> list[Path]:
    """All *.md files below tasks_root in sorted order, skipping Images/."""
    root = Path(tasks_root)
    if not root.is_dir():
        return []
    out = []
    for path in root.rglob("*.md"):
        if not path.is_file():
            continue
        if IMAGES_DIR in path.relative_to(root).parts[:-1]:
            continue
        out.append(path)
    return sorted(out)


def iter_documents(tasks_root: Path) -> Iterator[Document]:
    """Parse every task file; malformed files are logged and skipped."""
    for path in walk_task_files(tasks_root):
        try:
            yield load_document(path)
        except MalformedDocument as e:
            LOG.warning("Skipping %s: %s", path, e)


def index_by_issue(tasks_root: Path) -> dict[int, Path]:
    """Map issue number -> task file for every file carrying an integer
    issue."""
    out: dict[int, Path] = {}
    for doc in iter_documents(tasks_root):
        issue = doc.fields.get("issue")
        if isinstance(issue, int) and not isinstance(issue, bool):
            if issue in out:
                LOG.warning("Issue #%s referenced by %s and %s; using the first", issue, out[issue], doc.path)
                continue
            out[issue] = doc.path
    return out
