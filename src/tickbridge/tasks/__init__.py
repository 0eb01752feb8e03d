"""Restart-safe async tasks."""

from tickbridge.tasks.capture import CaptureTask
from tickbridge.tasks.machine import RECORD_VERSION, AsyncTask, TaskKeys, TaskPhase, TaskRecord
from tickbridge.tasks.rebuild import RebuildTracker

__all__ = [
    "RECORD_VERSION",
    "AsyncTask",
    "CaptureTask",
    "RebuildTracker",
    "TaskKeys",
    "TaskPhase",
    "TaskRecord",
]
