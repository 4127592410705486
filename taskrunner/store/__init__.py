"""
Store layer for task files and run reports.

Canonical exports:
- FileTaskStore: task record persistence with atomic writes
- FileTaskLister: task discovery and per-stage ordering
"""

from taskrunner.store.scanner import FileTaskLister
from taskrunner.store.task_files import FileTaskStore

__all__ = [
    "FileTaskStore",
    "FileTaskLister",
]
