"""Large-file spotlight scan.

Finds the largest files above a threshold under a root, independently of the
listing scanner and with its own bounded pool. Source and text files (by
extension) and anything inside fold directories are never reported.
"""

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor

from burrow.config import Settings
from burrow.helpers import allocated_size, spotlight_query
from burrow.models import LargeFileEntry, sort_large_files
from burrow.rules import ScanRules
from burrow.scanner import LargeFileTracker, TaskGroup

logger = logging.getLogger(__name__)


class SpotlightScanner:
    """Bounded search for oversized files."""

    def __init__(
        self,
        rules: ScanRules | None = None,
        settings: Settings | None = None,
        use_index: bool = True,
    ):
        self.rules = rules or ScanRules()
        self.settings = settings or Settings()
        self.use_index = use_index

    @property
    def threshold(self) -> int:
        return self.settings.large_file_min_size

    @property
    def limit(self) -> int:
        return self.settings.max_large_files

    def scan(self, root: str, cancel: threading.Event | None = None) -> list[LargeFileEntry]:
        """
        Find up to ``max_large_files`` files of at least the threshold under root.

        Returns:
            Files sorted largest first, ties by path
        """
        root = os.path.abspath(root)
        cancel = cancel if cancel is not None else threading.Event()
        tracker = LargeFileTracker(self.limit, self.threshold)

        self._walk_tree(root, tracker, cancel)
        found = {f.path: f for f in tracker.results()}

        if self.use_index and not cancel.is_set():
            for entry in self._from_index(root):
                found.setdefault(entry.path, entry)

        return sort_large_files(list(found.values()))[: self.limit]

    def _qualifies(self, path: str) -> bool:
        return not self.rules.skip_for_large_files(path)

    def _walk_tree(self, root: str, tracker: LargeFileTracker, cancel: threading.Event) -> None:
        group = TaskGroup()
        with ThreadPoolExecutor(
            max_workers=max(1, self.settings.spotlight_workers),
            thread_name_prefix="burrow-spotlight",
        ) as pool:

            def spawn(path: str) -> None:
                group.spawn()
                try:
                    pool.submit(walk, path)
                except RuntimeError:
                    group.finish()

            def walk(path: str) -> None:
                try:
                    if cancel.is_set():
                        return
                    with os.scandir(path) as it:
                        for entry in it:
                            try:
                                if entry.is_dir(follow_symlinks=False):
                                    if not self.rules.should_fold(entry.name, entry.path):
                                        if not cancel.is_set():
                                            spawn(entry.path)
                                    continue
                                if entry.is_symlink() or not self._qualifies(entry.path):
                                    continue
                                st = entry.stat(follow_symlinks=False)
                                # Cheap pre-filter on apparent size
                                if st.st_size < self.settings.large_file_prefilter:
                                    continue
                                if st.st_size < tracker.min_size:
                                    continue
                                tracker.offer(entry.path, allocated_size(st))
                            except OSError:
                                continue
                except OSError as e:
                    logger.debug("Skipping unreadable directory %s: %s", path, e)
                finally:
                    group.finish()

            spawn(root)
            group.wait(cancel)
            if cancel.is_set():
                pool.shutdown(wait=False, cancel_futures=True)

    def _from_index(self, root: str) -> list[LargeFileEntry]:
        paths = spotlight_query(root, self.threshold, self.settings.metadata_timeout)
        if not paths:
            return []

        files = []
        for path in paths:
            if not self._qualifies(path):
                continue
            if self.rules.is_in_folded_dir(os.path.relpath(path, root)):
                continue
            try:
                st = os.lstat(path)
            except OSError:
                continue
            if not os.path.isfile(path) or os.path.islink(path):
                continue
            size = allocated_size(st)
            if size >= self.threshold:
                files.append(LargeFileEntry(path=path, size=size))
        return files
