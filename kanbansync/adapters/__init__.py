"""Tracker/board adapters."""

from kanbansync.adapters.base import RemoteNotFound, RemoteWriteFailure, TrackerAdapter, TrackerError
from kanbansync.adapters.github import GitHubAdapter

__all__ = ["GitHubAdapter", "RemoteNotFound", "RemoteWriteFailure", "TrackerAdapter", "TrackerError"]
