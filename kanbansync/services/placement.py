"""Move task files into the folder named after their board status."""

import logging
import os
import re
from pathlib import Path

LOG = logging.getLogger("kanbansync.services.placement")

_UNSAFE_SEGMENT = re.compile(r'[/\\<>:"|?*]+')


def safe_status_segment(status: str) -> str:
    """Status text usable as a single path segment."""
    return _UNSAFE_SEGMENT.sub("_", status.strip())


def target_path(tasks_root: Path, current: Path, status: str) -> Path:
    """<tasks_root>/<status segment>/<basename of current>."""
    return Path(tasks_root) / safe_status_segment(status) / Path(current).name


def place_file(tasks_root: Path, current: Path, status: str | None) -> Path:
    """Move current into its status folder and return the new location.

    Returns current unchanged when status is empty, the file already sits in
    the right folder, or the source has vanished.
    """
    current = Path(current)
    if not status or not status.strip():
        return current
    target = target_path(tasks_root, current, status)
    if target == current or target.resolve() == current.resolve():
        return current
    if not current.exists():
        LOG.warning("Cannot move %s: file no longer exists", current)
        return current
    target.parent.mkdir(parents=True, exist_ok=True)
    os.replace(current, target)
    LOG.info("Moved %s -> %s", current, target)
    return target
