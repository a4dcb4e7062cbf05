"""One posted comment as recorded in the commentHistory header list.

Wire format: ``[YYYY-MM-DD][author] escaped-text`` where ``"`` is stored as
``\\"`` and a newline as ``\\n``.
"""

import base64
import re
from datetime import date

from pydantic import BaseModel, Field

# Author ends at the first "]" followed by a space, so logins like
# github-actions[bot] survive.
_ENTRY_RE = re.compile(r"^\[(?P<date>[^\]]*)\]\[(?P<author>.*?)\](?: |$)(?P<text>.*)$", re.DOTALL)

HASH_LENGTH = 16


def escape_text(text: str) -> str:
    """Escape a comment for storage in a single history line."""
    return text.replace('"', '\\"').replace("\n", "\\n")


def unescape_text(text: str) -> str:
    """Inverse of escape_text.

    A comment that literally contained backslash-n comes back as a newline.
    """
    return text.replace('\\"', '"').replace("\\n", "\n")


def content_hash(text: str) -> str:
    """Short dedup key of an unescaped comment: base64 of its UTF-8 bytes, cut
    to 16 chars.

    Collisions (shared 12-byte prefix) count as "already posted".
    """
    return base64.b64encode(text.encode("utf-8")).decode("ascii")[:HASH_LENGTH]


class CommentHistoryEntry(BaseModel):
    """Comment posted to the remote issue (immutable once appended)."""

    posted_date: date = Field(..., description="Day the comment was posted (history is daily)")
    author: str = Field(..., description="Login of whoever triggered the post")
    text: str = Field(..., description="Exact posted content, unescaped")

    model_config = {"frozen": True}

    @property
    def content_hash(self) -> str:
        return content_hash(self.text)

    def to_wire(self) -> str:
        return f"[{self.posted_date.isoformat()}][{self.author}] {escape_text(self.text)}"

    @classmethod
    def from_wire(cls, line: str) -> "CommentHistoryEntry | None":
        """Parse one stored line; None if it does not follow the format."""
        match = _ENTRY_RE.match(line)
        if not match:
            return None
        try:
            posted = date.fromisoformat(match.group("date").strip())
        except ValueError:
            return None
        return cls(posted_date=posted, author=match.group("author"), text=unescape_text(match.group("text")))


def entry_hash(line: object) -> str | None:
    """Hash of the text portion of a stored line.

    Lines with an unparsable date still contribute their text so that a
    hand-edited history never causes a re-post.
    """
    if not isinstance(line, str):
        return None
    entry = CommentHistoryEntry.from_wire(line)
    if entry is not None:
        return entry.content_hash
    match = _ENTRY_RE.match(line)
    if match:
        return content_hash(unescape_text(match.group("text")))
    return None
