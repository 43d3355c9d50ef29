"""Concurrent directory scanning for listings.

A listing scan sizes every direct child of one root. Two pools cooperate:

* the traversal pool walks directories. A walk task lists one directory,
  sums its files and submits each subdirectory as a new task. It never waits
  on other tasks, so the pool cannot deadlock however deep the tree goes.
* the child pool bounds how many direct children are in flight. Each of its
  tasks seeds one subtree into the traversal pool and waits for that
  subtree's pending-task count to reach zero.

Fold directories are charged with a single size probe and never walked.
Per-item errors count as zero. Cancellation is cooperative: walk tasks check
the event before doing or scheduling work.
"""

import heapq
import logging
import os
import threading
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Callable

from burrow.config import Settings
from burrow.errors import ScanError
from burrow.helpers import allocated_size, du_size, logical_size
from burrow.models import Entry, LargeFileEntry, ScanResult, sort_entries, sort_large_files
from burrow.progress import ScanProgress
from burrow.rules import ScanRules

logger = logging.getLogger(__name__)

SYMLINK_SUFFIX = " →"
POLL_INTERVAL = 0.05

SizeProbe = Callable[[str], "int | None"]
EntriesCallback = Callable[[list[Entry]], None]


def worker_count(
    cpu_count: int | None = None,
    multiplier: int = 4,
    minimum: int = 16,
    maximum: int = 64,
) -> int:
    """Traversal pool size: clamp(cpu * multiplier, minimum, maximum)."""
    cpus = cpu_count or os.cpu_count() or 1
    return max(minimum, min(cpus * multiplier, maximum))


def dir_worker_count(cpu_count: int | None = None, cap: int = 32) -> int:
    """How many direct children are sized at once."""
    cpus = cpu_count or os.cpu_count() or 1
    return max(1, min(cpus * 2, cap))


def probe_worker_count(cpu_count: int | None = None, cap: int = 4) -> int:
    """How many size-probe processes may run at once."""
    cpus = cpu_count or os.cpu_count() or 1
    return max(1, min(cap, cpus))


class TaskGroup:
    """Tracks outstanding tasks of one subtree; ``done`` fires when none remain."""

    def __init__(self):
        self._lock = threading.Lock()
        self._pending = 0
        self.total = 0
        self.done = threading.Event()

    def spawn(self) -> None:
        with self._lock:
            self._pending += 1

    def finish(self, size: int = 0) -> None:
        with self._lock:
            self.total += size
            self._pending -= 1
            if self._pending == 0:
                self.done.set()

    def wait(self, cancel: threading.Event) -> bool:
        """Block until done or cancelled. Returns True when done."""
        while not self.done.wait(POLL_INTERVAL):
            if cancel.is_set():
                return False
        return True


class LargeFileTracker:
    """Keeps the N largest files offered to it."""

    def __init__(self, limit: int, floor: int):
        self.limit = limit
        self.floor = floor
        self.min_size = floor
        self._heap: list[tuple[int, str]] = []
        self._lock = threading.Lock()

    def offer(self, path: str, size: int) -> None:
        if self.limit <= 0 or size < self.min_size:
            return
        with self._lock:
            if len(self._heap) < self.limit:
                heapq.heappush(self._heap, (size, path))
                if len(self._heap) == self.limit:
                    self.min_size = max(self.floor, self._heap[0][0])
            elif (size, path) > self._heap[0]:
                heapq.heapreplace(self._heap, (size, path))
                self.min_size = max(self.floor, self._heap[0][0])

    def results(self) -> list[LargeFileEntry]:
        with self._lock:
            files = [LargeFileEntry(path=path, size=size) for size, path in self._heap]
        return sort_large_files(files)


@dataclass
class _ScanContext:
    walk_pool: ThreadPoolExecutor
    probe_slots: threading.BoundedSemaphore
    progress: ScanProgress
    cancel: threading.Event
    large_files: LargeFileTracker


class DirectoryScanner:
    """Sizes the direct children of one directory at a time."""

    def __init__(
        self,
        rules: ScanRules | None = None,
        settings: Settings | None = None,
        size_probe: SizeProbe | None = None,
    ):
        self.rules = rules or ScanRules()
        self.settings = settings or Settings()
        self.size_probe = size_probe or self._du_probe

    def _du_probe(self, path: str) -> int | None:
        return du_size(path, self.settings.du_timeout)

    def scan(
        self,
        root: str,
        progress: ScanProgress | None = None,
        cancel: threading.Event | None = None,
        on_entries: EntriesCallback | None = None,
    ) -> ScanResult:
        """
        Scan root and size each direct child.

        Args:
            root: Directory to list
            progress: Shared counters; reset here, at scan start
            cancel: Cooperative cancellation signal
            on_entries: Called with each batch of finalized entries

        Returns:
            ScanResult with entries sorted largest first

        Raises:
            ScanError: If root itself cannot be listed
        """
        root = os.path.abspath(root)
        progress = progress if progress is not None else ScanProgress()
        cancel = cancel if cancel is not None else threading.Event()
        progress.reset()

        try:
            with os.scandir(root) as it:
                children = list(it)
        except OSError as e:
            raise ScanError(f"Cannot read {root}: {e}") from e

        at_fs_root = root == os.sep
        settings = self.settings
        cpus = os.cpu_count() or 1
        walk_pool = ThreadPoolExecutor(
            max_workers=worker_count(
                cpus, settings.cpu_multiplier, settings.min_workers, settings.max_workers
            ),
            thread_name_prefix="burrow-walk",
        )
        child_pool = ThreadPoolExecutor(
            max_workers=dir_worker_count(cpus, settings.max_dir_workers),
            thread_name_prefix="burrow-child",
        )
        ctx = _ScanContext(
            walk_pool=walk_pool,
            probe_slots=threading.BoundedSemaphore(
                probe_worker_count(cpus, settings.max_probe_workers)
            ),
            progress=progress,
            cancel=cancel,
            large_files=LargeFileTracker(settings.max_large_files, settings.large_file_prefilter),
        )

        entries: list[Entry] = []
        batch: list[Entry] = []
        in_flight = {}
        cancelled = False

        def flush(force: bool = False) -> None:
            if batch and (force or len(batch) >= settings.batch_size):
                if on_entries:
                    on_entries(list(batch))
                batch.clear()

        def finalize(entry: Entry) -> None:
            entries.append(entry)
            batch.append(entry)
            progress.child_done()

        try:
            planned = [c for c in children if not self._skipped(c, at_fs_root)]
            progress.set_children_total(len(planned))

            for child in planned:
                if cancel.is_set():
                    cancelled = True
                    break
                entry = self._entry_for(child)
                if entry.pending:
                    fn = self._size_folded if entry.folded else self._size_subtree
                    in_flight[child_pool.submit(fn, entry.path, ctx)] = entry
                else:
                    progress.add(files=1, size=entry.size)
                    finalize(entry)
                    if not entry.is_symlink and not entry.error and not entry.is_dir:
                        if not self.rules.skip_for_large_files(entry.path):
                            ctx.large_files.offer(entry.path, entry.size)
                    flush()

            pending = set(in_flight)
            while pending and not cancelled:
                done, pending = wait(pending, timeout=POLL_INTERVAL, return_when=FIRST_COMPLETED)
                for future in done:
                    entry = in_flight[future]
                    try:
                        entry.size = future.result()
                    except Exception as e:
                        logger.warning("Sizing %s failed: %s", entry.path, e)
                        entry.size = 0
                        entry.error = str(e)
                    finalize(entry)
                flush(force=True)
                if cancel.is_set():
                    cancelled = True
            flush(force=True)
        finally:
            # Outstanding work is abandoned, never waited on
            walk_pool.shutdown(wait=not cancelled, cancel_futures=cancelled)
            child_pool.shutdown(wait=not cancelled, cancel_futures=cancelled)

        if cancelled:
            logger.info("Scan of %s cancelled", root)

        return ScanResult(
            root=root,
            entries=sort_entries(entries),
            large_files=ctx.large_files.results(),
            total_files=progress.files_scanned,
            cancelled=cancelled,
        )

    def _skipped(self, child: os.DirEntry, at_fs_root: bool) -> bool:
        try:
            is_dir = child.is_dir(follow_symlinks=False)
        except OSError:
            return False
        return is_dir and self.rules.should_skip(child.name, at_fs_root)

    def _entry_for(self, child: os.DirEntry) -> Entry:
        """Entry for a direct child. Directories come back pending."""
        try:
            if child.is_symlink():
                st = child.stat(follow_symlinks=False)
                return Entry(
                    name=child.name + SYMLINK_SUFFIX,
                    path=child.path,
                    size=allocated_size(st),
                    is_dir=os.path.isdir(child.path),
                    is_symlink=True,
                )
            if child.is_dir(follow_symlinks=False):
                return Entry(
                    name=child.name,
                    path=child.path,
                    is_dir=True,
                    folded=self.rules.should_fold(child.name, child.path),
                )
            size = allocated_size(child.stat(follow_symlinks=False))
        except OSError as e:
            logger.debug("Skipping unreadable entry %s: %s", child.path, e)
            return Entry(name=child.name, path=child.path, size=0, error=str(e))
        return Entry(name=child.name, path=child.path, size=size)

    def _size_subtree(self, path: str, ctx: _ScanContext) -> int:
        if ctx.cancel.is_set():
            return 0
        group = TaskGroup()
        self._spawn_walk(path, group, ctx)
        group.wait(ctx.cancel)
        ctx.progress.add(dirs=1)
        return group.total

    def _size_folded(self, path: str, ctx: _ScanContext) -> int:
        if ctx.cancel.is_set():
            return 0
        size = self._probe(path, ctx)
        ctx.progress.add(dirs=1, size=size)
        return size

    def _probe(self, path: str, ctx: _ScanContext) -> int:
        """One size probe for a fold directory; in-process walk if the probe fails."""
        with ctx.probe_slots:
            size = self.size_probe(path)
        if size is None or size <= 0:
            size = logical_size(path, cancel=ctx.cancel)
        return size

    def _spawn_walk(self, path: str, group: TaskGroup, ctx: _ScanContext) -> None:
        group.spawn()
        try:
            ctx.walk_pool.submit(self._walk, path, group, ctx)
        except RuntimeError:
            # Pool already shut down by a cancellation
            group.finish()

    def _spawn_probe(self, path: str, group: TaskGroup, ctx: _ScanContext) -> None:
        group.spawn()
        try:
            ctx.walk_pool.submit(self._probe_into, path, group, ctx)
        except RuntimeError:
            group.finish()

    def _probe_into(self, path: str, group: TaskGroup, ctx: _ScanContext) -> None:
        size = 0
        try:
            if not ctx.cancel.is_set():
                size = self._probe(path, ctx)
                ctx.progress.add(size=size)
        finally:
            group.finish(size)

    def _walk(self, path: str, group: TaskGroup, ctx: _ScanContext) -> None:
        local_bytes = 0
        local_files = 0
        local_dirs = 0
        try:
            if ctx.cancel.is_set():
                return
            ctx.progress.set_current_path(path)
            with os.scandir(path) as it:
                for entry in it:
                    try:
                        if entry.is_dir(follow_symlinks=False):
                            local_dirs += 1
                            if self.rules.should_fold(entry.name, entry.path):
                                self._spawn_probe(entry.path, group, ctx)
                            elif not ctx.cancel.is_set():
                                self._spawn_walk(entry.path, group, ctx)
                            continue
                        size = allocated_size(entry.stat(follow_symlinks=False))
                    except OSError:
                        continue
                    local_bytes += size
                    local_files += 1
                    if size >= ctx.large_files.min_size and not entry.is_symlink():
                        if not self.rules.skip_for_large_files(entry.path):
                            ctx.large_files.offer(entry.path, size)
        except OSError as e:
            logger.debug("Skipping unreadable directory %s: %s", path, e)
        finally:
            ctx.progress.add(files=local_files, dirs=local_dirs, size=local_bytes)
            group.finish(local_bytes)
