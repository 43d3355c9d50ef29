"""Shared counters updated by scan and delete workers.

Workers only ever add; the dashboard samples on a timer. Each update holds a
lock for a handful of integer additions, never across any I/O.
"""

import threading
from dataclasses import dataclass


@dataclass(frozen=True)
class ProgressSnapshot:
    """Point-in-time copy of ScanProgress."""

    files_scanned: int = 0
    dirs_scanned: int = 0
    bytes_scanned: int = 0
    children_total: int = 0
    children_done: int = 0
    current_path: str = ""

    @property
    def complete(self) -> bool:
        return self.children_done >= self.children_total


class ScanProgress:
    """Aggregate counters for one listing scan."""

    def __init__(self):
        self._lock = threading.Lock()
        self._files = 0
        self._dirs = 0
        self._bytes = 0
        self._children_total = 0
        self._children_done = 0
        self._current_path = ""

    def reset(self, children_total: int = 0) -> None:
        """Zero every counter. Called only when a new scan starts."""
        with self._lock:
            self._files = 0
            self._dirs = 0
            self._bytes = 0
            self._children_total = children_total
            self._children_done = 0
            self._current_path = ""

    def set_children_total(self, total: int) -> None:
        with self._lock:
            self._children_total = total

    def add(self, files: int = 0, dirs: int = 0, size: int = 0) -> None:
        if files < 0 or dirs < 0 or size < 0:
            raise ValueError("progress counters never decrease")
        with self._lock:
            self._files += files
            self._dirs += dirs
            self._bytes += size

    def child_done(self) -> None:
        with self._lock:
            self._children_done += 1

    def set_current_path(self, path: str) -> None:
        # Plain attribute store; readers tolerate a slightly stale value
        self._current_path = path

    @property
    def files_scanned(self) -> int:
        return self._files

    def snapshot(self) -> ProgressSnapshot:
        with self._lock:
            return ProgressSnapshot(
                files_scanned=self._files,
                dirs_scanned=self._dirs,
                bytes_scanned=self._bytes,
                children_total=self._children_total,
                children_done=self._children_done,
                current_path=self._current_path,
            )


class Counter:
    """Monotonic counter shared between deletion workers and the dashboard."""

    def __init__(self):
        self._lock = threading.Lock()
        self._value = 0

    def increment(self, amount: int = 1) -> int:
        with self._lock:
            self._value += amount
            return self._value

    @property
    def value(self) -> int:
        return self._value


def scan_percent(
    snapshot: ProgressSnapshot, finished: bool, last_total_files: int = 0
) -> float:
    """
    Percentage shown while a listing scan runs.

    Uses the previous scan's file count when known, otherwise the share of
    direct children already finalized. Stays below 100 until finished.
    """
    if finished:
        return 100.0
    if last_total_files > 0:
        percent = snapshot.files_scanned / last_total_files * 100
    elif snapshot.children_total > 0:
        percent = snapshot.children_done / snapshot.children_total * 100
    else:
        percent = 0.0
    return min(percent, 99.0)
