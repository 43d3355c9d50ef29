"""Coarse top-level overview of a few fixed roots.

Each root is served from the size cache when its record is fresh; only cache
misses are measured. The cache file is written once, after the pass.
"""

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Callable

from burrow.cache import SizeCache
from burrow.config import Settings, expand_path
from burrow.helpers import measure_size
from burrow.models import OverviewEntry

logger = logging.getLogger(__name__)

Measure = Callable[[OverviewEntry], int]
SizedCallback = Callable[[str, int, bool], None]

# (label, path) candidates; only existing directories are shown
_DEFAULT_ROOTS = (
    ("Home", "~"),
    ("App Library", "~/Library"),
    ("Applications", "/Applications"),
    ("System Library", "/Library"),
    ("Optional", "/opt"),
    ("System Programs", "/usr"),
    ("Variable Data", "/var"),
)


def overview_entries(settings: Settings | None = None) -> list[OverviewEntry]:
    """Build the overview roots, all pending."""
    settings = settings or Settings()
    if settings.overview_roots:
        candidates = [(Path(p).name or p, p) for p in settings.overview_roots]
    else:
        candidates = list(_DEFAULT_ROOTS)

    entries: list[OverviewEntry] = []
    seen: set[str] = set()
    for label, raw in candidates:
        path = str(expand_path(raw).resolve())
        if path in seen or not os.path.isdir(path):
            continue
        seen.add(path)
        entries.append(OverviewEntry(name=label, path=path))

    # Home is shown without its Library when the Library has its own row
    home = str(Path.home().resolve())
    library = os.path.join(home, "Library")
    if library in seen:
        for entry in entries:
            if entry.path == home:
                entry.exclude = library
    return entries


class OverviewScanner:
    """Runs the overview pass against the size cache."""

    def __init__(
        self,
        cache: SizeCache,
        settings: Settings | None = None,
        measure: Measure | None = None,
    ):
        self.cache = cache
        self.settings = settings or Settings()
        self.measure = measure or self._measure

    def _measure(self, entry: OverviewEntry) -> int:
        return measure_size(entry.path, self.settings.du_timeout, exclude=entry.exclude)

    def run(
        self,
        entries: list[OverviewEntry],
        on_sized: SizedCallback | None = None,
        force: bool = False,
        cancel: threading.Event | None = None,
    ) -> dict[str, int]:
        """
        Size every overview root.

        Args:
            entries: Roots to size
            on_sized: Called with (path, size, from_cache) as each root resolves
            force: Ignore cached records (refresh at the top level)
            cancel: Stops measuring further roots

        Returns:
            Mapping of root path to size for every root that resolved
        """
        cancel = cancel if cancel is not None else threading.Event()
        sizes: dict[str, int] = {}
        misses: list[OverviewEntry] = []

        for entry in entries:
            if not force:
                size, fresh = self.cache.get(entry.path)
                if fresh and size > 0:
                    sizes[entry.path] = size
                    if on_sized:
                        on_sized(entry.path, size, True)
                    continue
            misses.append(entry)

        if misses:
            pool = ThreadPoolExecutor(
                max_workers=max(1, min(self.settings.overview_workers, len(misses))),
                thread_name_prefix="burrow-overview",
            )
            try:
                futures = {pool.submit(self.measure, entry): entry for entry in misses}
                for future in as_completed(futures):
                    entry = futures[future]
                    try:
                        size = future.result()
                    except Exception as e:
                        logger.warning("Measuring %s failed: %s", entry.path, e)
                        size = 0
                    sizes[entry.path] = size
                    if size > 0:
                        self.cache.put(entry.path, size)
                    if on_sized:
                        on_sized(entry.path, size, False)
                    if cancel.is_set():
                        break
            finally:
                pool.shutdown(wait=not cancel.is_set(), cancel_futures=True)

        self.cache.save()
        return sizes
