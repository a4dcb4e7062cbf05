"""Tests for status-folder placement."""

from pathlib import Path
from unittest.mock import patch

from conftest import write_task
from kanbansync.services.placement import place_file, safe_status_segment, target_path


def test_safe_status_segment_replaces_reserved_characters() -> None:
    assert safe_status_segment(" In Progress ") == "In Progress"
    assert safe_status_segment('QA/Review: "now"?') == "QA_Review_ _now_"
    assert safe_status_segment("a\\b|c*d<e>") == "a_b_c_d_e_"


def test_target_path(tmp_path: Path) -> None:
    assert target_path(tmp_path, tmp_path / "x" / "task.md", "Done") == tmp_path / "Done" / "task.md"


def test_place_file_moves_into_status_folder(tasks_root: Path) -> None:
    path = write_task(tasks_root / "sample.md", "---\ntitle: t\n---\n")
    new_path = place_file(tasks_root, path, "Ready")
    assert new_path == tasks_root / "Ready" / "sample.md"
    assert new_path.exists()
    assert not path.exists()


def test_place_file_is_noop_when_already_placed(tasks_root: Path) -> None:
    """An already placed file triggers no filesystem operation."""
    path = write_task(tasks_root / "Ready" / "sample.md", "---\ntitle: t\n---\n")
    with patch("kanbansync.services.placement.os.replace") as replace:
        with patch.object(Path, "mkdir") as mkdir:
            assert place_file(tasks_root, path, "Ready") == path
    replace.assert_not_called()
    mkdir.assert_not_called()


def test_place_file_vanished_source(tasks_root: Path) -> None:
    missing = tasks_root / "gone.md"
    assert place_file(tasks_root, missing, "Done") == missing
    assert not (tasks_root / "Done").exists()


def test_place_file_without_status(tasks_root: Path) -> None:
    path = write_task(tasks_root / "a.md", "x")
    assert place_file(tasks_root, path, None) == path
    assert place_file(tasks_root, path, "  ") == path
