"""Deletion of selected items with safety checks.

Every path is re-validated when its deletion actually runs, not when it was
selected. Deletions run with small bounded concurrency; one failure never
stops the rest, and nothing is rolled back.
"""

import logging
import os
import shutil
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable

from burrow.cache import SizeCache, is_ancestor_or_self
from burrow.config import expand_path
from burrow.errors import DeletionNotConfirmed
from burrow.helpers import allocated_size, logical_size
from burrow.models import DeleteOutcome, DeleteRequest
from burrow.progress import Counter

logger = logging.getLogger(__name__)

# Paths that may never be deleted themselves
PROTECTED_PATHS = [
    "~",
    "~/Documents",
    "~/Desktop",
    "~/Downloads",
    "~/Pictures",
    "~/Music",
    "~/Movies",
    "~/Library",
    "/",
    "/System",
    "/Library",
    "/Applications",
    "/Users",
    "/usr",
    "/bin",
    "/sbin",
    "/etc",
    "/var",
    "/private",
    "/opt",
    "/home",
    "/boot",
    "/dev",
    "/proc",
    "/sys",
]


def is_protected_path(path: str, extra: list[str] | None = None) -> bool:
    """
    Check whether a path is on the protected list.

    Only the listed paths themselves are protected; items inside them may be
    deleted.
    """
    normalized = os.path.normpath(path)
    for protected in PROTECTED_PATHS + list(extra or []):
        if normalized == os.path.normpath(str(expand_path(protected))):
            return True
    return False


def validate_path(path: str, root: str, protected: Callable[[str], bool] = is_protected_path) -> str | None:
    """
    Check a path right before deleting it.

    Returns:
        Reason the path must not be deleted, or None if it may be
    """
    if not os.path.isabs(path):
        return "not an absolute path"
    if not os.path.lexists(path):
        return "no longer exists"
    normalized = os.path.normpath(path)
    root = os.path.normpath(root)
    if normalized == root or not is_ancestor_or_self(root, normalized):
        return f"outside {root}"
    if protected(normalized):
        return "protected path"
    return None


def remove_path(path: str) -> int:
    """
    Delete a file, symlink or directory tree.

    Returns:
        Bytes freed (allocated size measured before deletion)

    Raises:
        OSError: If the path could not be removed
    """
    if os.path.isdir(path) and not os.path.islink(path):
        size = logical_size(path)
        shutil.rmtree(path)
    else:
        size = allocated_size(os.lstat(path))
        os.unlink(path)
    return size


class DeletionEngine:
    """Executes confirmed deletion requests."""

    def __init__(
        self,
        max_workers: int = 4,
        cache: SizeCache | None = None,
        protected_paths: list[str] | None = None,
        remover: Callable[[str], int] = remove_path,
    ):
        self.max_workers = max(1, max_workers)
        self.cache = cache
        self.protected_paths = list(protected_paths or [])
        self.remover = remover

    def is_protected(self, path: str) -> bool:
        return is_protected_path(path, self.protected_paths)

    def preview(self, request: DeleteRequest) -> dict[str, str]:
        """Reasons, per path, that would stop a deletion if it ran now."""
        problems = {}
        for path in request.paths:
            reason = validate_path(path, request.root, self.is_protected)
            if reason:
                problems[path] = reason
        return problems

    def delete(
        self,
        request: DeleteRequest,
        counter: Counter | None = None,
        cancel: threading.Event | None = None,
    ) -> DeleteOutcome:
        """
        Delete every path of a confirmed request.

        Args:
            request: Confirmed request
            counter: Incremented once per successful removal
            cancel: Once set, no further deletions are started

        Returns:
            DeleteOutcome listing removed, failed and skipped paths

        Raises:
            DeletionNotConfirmed: If the request was never confirmed
        """
        if not request.confirmed:
            raise DeletionNotConfirmed(f"{request.count} item(s) not confirmed for deletion")

        counter = counter if counter is not None else Counter()
        cancel = cancel if cancel is not None else threading.Event()
        outcome = DeleteOutcome()
        lock = threading.Lock()
        slots = threading.BoundedSemaphore(self.max_workers)

        def run(path: str) -> None:
            try:
                reason = validate_path(path, request.root, self.is_protected)
                if reason:
                    with lock:
                        outcome.failed[path] = reason
                    logger.warning("Not deleting %s: %s", path, reason)
                    return
                try:
                    freed = self.remover(path)
                except OSError as e:
                    with lock:
                        outcome.failed[path] = e.strerror or str(e)
                    logger.warning("Failed to delete %s: %s", path, e)
                    return
                with lock:
                    outcome.removed.append(path)
                    outcome.bytes_freed += freed
                counter.increment()
                logger.info("Deleted %s", path)
            finally:
                slots.release()

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="burrow-delete") as pool:
            for path in request.paths:
                slots.acquire()
                if cancel.is_set():
                    slots.release()
                    outcome.skipped.append(path)
                    continue
                pool.submit(run, path)

        outcome.interrupted = bool(outcome.skipped)
        if outcome.removed and self.cache is not None:
            self.invalidate_cache(outcome.removed)
        return outcome

    def invalidate_cache(self, removed: list[str]) -> list[str]:
        """Drop cached sizes of every root containing a removed path."""
        if self.cache is None:
            return []
        stale = self.cache.invalidate_ancestors(removed)
        if stale:
            self.cache.save()
        return stale


def affected_roots(roots: list[str], removed: list[str]) -> list[str]:
    """Roots that contain at least one removed path."""
    return [r for r in roots if any(is_ancestor_or_self(r, p) for p in removed)]
