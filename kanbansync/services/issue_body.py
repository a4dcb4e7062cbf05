"""Issue body composition and the hidden marker of sync-managed issues."""

import re
from typing import Iterable

SOURCE_MARKER_RE = re.compile(r"<!--\s*kanbansync:\s*(?P<source>.*?)\s*-->")
PARENT_LINE_RE = re.compile(r"^Parent issue: #\d+\s*$", re.MULTILINE)


def source_marker(source: str) -> str:
    return f"<!-- kanbansync: {source} -->"


def has_source_marker(body: str | None) -> bool:
    return bool(body) and SOURCE_MARKER_RE.search(body) is not None


def build_issue_body(
    description: str,
    body: str = "",
    parent: int | None = None,
    source: str | None = None,
) -> str:
    """description, free text, parent linkage and source marker, blank-line
    separated."""
    parts = [p.strip() for p in (description, body) if p and p.strip()]
    if parent is not None:
        parts.append(f"Parent issue: #{parent}")
    if source:
        parts.append(source_marker(source))
    return "\n\n".join(parts)


def strip_sync_text(remote_body: str, local_body: str = "") -> str:
    """Recover the description from an issue body written by build_issue_body.

    Removes the source marker, the parent linkage line and, when it is the
    tail of the remote body, the local free text.
    """
    text = SOURCE_MARKER_RE.sub("", remote_body or "")
    text = PARENT_LINE_RE.sub("", text).strip()
    local_body = (local_body or "").strip()
    if local_body and text.endswith(local_body):
        text = text[: -len(local_body)].strip()
    return text


def marked_comment_body(header: str, lines: Iterable[str]) -> str:
    """Body of a comment identified by a bold header line."""
    return "\n".join([f"**{header}**", *lines])


def extract_section(markdown: str, header: str) -> str:
    """Text under a ``#..###### header`` heading up to the next heading."""
    pattern = re.compile(
        rf"^#{{1,6}}\s*{re.escape(header)}\s*\n(.*?)(?=^#{{1,6}}\s|\Z)",
        re.IGNORECASE | re.MULTILINE | re.DOTALL,
    )
    match = pattern.search(markdown or "")
    return match.group(1).strip() if match else ""
