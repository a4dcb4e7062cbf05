"""Tests for CommentLogMerger (post once, record in commentHistory)."""

import logging
from datetime import date
from pathlib import Path
from unittest.mock import Mock, patch

import pytest
import requests

from conftest import REPO, FakeTracker, write_task
from kanbansync.adapters.github import GitHubAdapter
from kanbansync.services.comment_log import CommentLogMerger
from kanbansync.services.images import ImageUploader
from kanbansync.store import StaleDocument, load_document

TODAY = date(2024, 6, 1)


def _merger(tracker: FakeTracker, tasks_root: Path | None = None) -> CommentLogMerger:
    images = ImageUploader(tracker, REPO, tasks_root) if tasks_root else None
    return CommentLogMerger(tracker, REPO, "octocat", images=images, today=lambda: TODAY)


def _history(path: Path) -> list:
    return load_document(path).fields.get("commentHistory") or []


def test_new_comment_is_posted_and_recorded(tracker: FakeTracker, tmp_path: Path) -> None:
    """Empty history + one pending comment -> one post, one entry dated today."""
    issue = tracker.add_issue("T")
    path = write_task(tmp_path / "t.md", "---\ntitle: T\ncomments:\n- LGTM\n---\n")

    assert _merger(tracker).merge(path, issue.number) is True

    assert [c.body for c in tracker.comments[issue.number]] == ["LGTM"]
    assert _history(path) == ["[2024-06-01][octocat] LGTM"]


def test_already_recorded_comment_is_not_posted(tracker: FakeTracker, tmp_path: Path) -> None:
    """A pending comment whose text is in history is skipped and nothing is reported."""
    issue = tracker.add_issue("T")
    path = write_task(
        tmp_path / "t.md",
        '---\ntitle: T\ncomments:\n- "Say \\"hi\\"\\nbye"\ncommentHistory:\n'
        "- '[2024-01-01][someone] Say \\\"hi\\\"\\nbye'\n---\n",
    )
    before = path.read_bytes()

    assert _merger(tracker).merge(path, issue.number) is False
    assert tracker.count("create_comment") == 0
    assert path.read_bytes() == before


def test_second_run_posts_nothing(tracker: FakeTracker, tmp_path: Path) -> None:
    issue = tracker.add_issue("T")
    path = write_task(tmp_path / "t.md", "---\ntitle: T\ncomments:\n- LGTM\n---\n")
    merger = _merger(tracker)
    merger.merge(path, issue.number)
    assert merger.merge(path, issue.number) is False
    assert tracker.count("create_comment") == 1
    assert len(_history(path)) == 1


def test_duplicates_within_batch_post_once(tracker: FakeTracker, tmp_path: Path) -> None:
    issue = tracker.add_issue("T")
    path = write_task(tmp_path / "t.md", "---\ntitle: T\ncomments:\n- same\n- same\n- other\n---\n")
    _merger(tracker).merge(path, issue.number)
    assert [c.body for c in tracker.comments[issue.number]] == ["same", "other"]
    assert len(_history(path)) == 2


def test_failed_post_is_not_recorded(tracker: FakeTracker, tmp_path: Path) -> None:
    issue = tracker.add_issue("T")
    path = write_task(tmp_path / "t.md", "---\ntitle: T\ncomments:\n- LGTM\n---\n")
    tracker.fail.add("create_comment")
    assert _merger(tracker).merge(path, issue.number) is False
    assert _history(path) == []


def test_no_pending_comments(tracker: FakeTracker, tmp_path: Path) -> None:
    path = write_task(tmp_path / "t.md", "---\ntitle: T\ncomments: []\n---\n")
    assert _merger(tracker).merge(path, 1) is False
    assert tracker.calls == []


def test_image_comment_dedups_after_substitution(tracker: FakeTracker, tasks_root: Path) -> None:
    """The history stores the posted (substituted) text; the raw token does not re-post."""
    issue = tracker.add_issue("T")
    (tasks_root / "shot.png").write_bytes(b"png")
    path = write_task(tasks_root / "t.md", "---\ntitle: T\ncomments:\n- 'see [IMAGE:shot.png]'\n---\n")
    merger = _merger(tracker, tasks_root)

    assert merger.merge(path, issue.number) is True
    posted = tracker.comments[issue.number][0].body
    assert posted.startswith("see ![shot](https://raw.githubusercontent.com/")
    assert merger.merge(path, issue.number) is False
    assert tracker.count("create_comment") == 1


def test_history_appended_is_not_reordered(tracker: FakeTracker, tmp_path: Path) -> None:
    issue = tracker.add_issue("T")
    path = write_task(
        tmp_path / "t.md",
        "---\ntitle: T\ncomments:\n- new one\ncommentHistory:\n- '[2024-01-01][a] old one'\ncustom: 1\n---\nBody\n",
    )
    _merger(tracker).merge(path, issue.number)
    doc = load_document(path)
    assert doc.fields["commentHistory"] == ["[2024-01-01][a] old one", "[2024-06-01][octocat] new one"]
    assert doc.fields["custom"] == 1
    assert doc.body == "Body"


def test_network_error_mid_batch_keeps_earlier_posts(tmp_path: Path) -> None:
    """A dropped connection on comment 2 still records comment 1."""
    adapter = GitHubAdapter(token="t")
    created = Mock(status_code=201, links={})
    created.json.return_value = {"id": 1, "body": "first", "user": {"login": "octocat"}}
    path = write_task(tmp_path / "t.md", "---\ntitle: T\ncomments:\n- first\n- second\n---\n")

    with patch.object(adapter._session, "request", side_effect=[created, requests.ConnectionError("reset")]):
        merger = CommentLogMerger(adapter, REPO, "octocat", today=lambda: TODAY)
        assert merger.merge(path, 1) is True

    assert _history(path) == ["[2024-06-01][octocat] first"]


def test_history_write_failure_is_logged_not_raised(
    tracker: FakeTracker, tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    """Posted but unrecorded comments are reported at ERROR; merge still reports the post."""
    issue = tracker.add_issue("T")
    path = write_task(tmp_path / "t.md", "---\ntitle: T\ncomments:\n- LGTM\n---\n")
    before = path.read_bytes()

    with patch("kanbansync.services.comment_log.patch_document", side_effect=StaleDocument("changed")):
        with caplog.at_level(logging.ERROR, logger="kanbansync.services.comment_log"):
            assert _merger(tracker).merge(path, issue.number) is True

    assert tracker.count("create_comment") == 1
    assert path.read_bytes() == before
    assert any(r.levelno == logging.ERROR and "could not record" in r.getMessage() for r in caplog.records)
