"""Persisted overview sizes.

One JSON document maps each overview root to ``{size_bytes, computed_at_epoch}``.
The file is read once, lazily, and rewritten as a whole (temp file + rename)
after an overview pass. Only the coarse overview consults it; directories the
user navigates into are always scanned live.
"""

import json
import logging
import os
import threading
import time
from pathlib import Path
from typing import Callable

from pydantic import TypeAdapter, ValidationError

from burrow.models import CacheRecord

logger = logging.getLogger(__name__)

DEFAULT_TTL = 7 * 24 * 3600
DEFAULT_GRACE = 30 * 60

_records_adapter = TypeAdapter(dict[str, CacheRecord])


def _mtime(path: str) -> float | None:
    try:
        return os.stat(path).st_mtime
    except OSError:
        return None


def is_ancestor_or_self(ancestor: str, path: str) -> bool:
    """Whether path equals ancestor or lies beneath it."""
    ancestor = ancestor.rstrip(os.sep) or os.sep
    if path == ancestor:
        return True
    prefix = ancestor if ancestor.endswith(os.sep) else ancestor + os.sep
    return path.startswith(prefix)


class SizeCache:
    """Root -> size records with TTL and modification-time grace."""

    def __init__(
        self,
        path: Path,
        ttl: float = DEFAULT_TTL,
        grace: float = DEFAULT_GRACE,
        clock: Callable[[], float] = time.time,
    ):
        self.path = Path(path)
        self.ttl = ttl
        self.grace = grace
        self._clock = clock
        self._lock = threading.Lock()
        self._records: dict[str, CacheRecord] | None = None
        self._dirty = False

    def _ensure_loaded(self) -> dict[str, CacheRecord]:
        # Caller holds the lock
        if self._records is None:
            self._records = self._read()
        return self._records

    def _read(self) -> dict[str, CacheRecord]:
        if not self.path.exists():
            return {}
        try:
            raw = self.path.read_bytes()
        except OSError as e:
            logger.warning("Cannot read size cache %s: %s", self.path, e)
            return {}
        if not raw.strip():
            return {}
        try:
            return dict(_records_adapter.validate_json(raw))
        except ValidationError as e:
            corrupt = self.path.with_name(self.path.name + ".corrupt")
            logger.warning("Size cache %s is corrupt, starting empty: %s", self.path, e.errors()[:1])
            try:
                os.replace(self.path, corrupt)
            except OSError as rename_error:
                logger.debug("Cannot move aside %s: %s", self.path, rename_error)
            return {}

    def load(self) -> None:
        """Read the cache file now instead of on first use."""
        with self._lock:
            self._ensure_loaded()

    def get(self, root: str) -> tuple[int, bool]:
        """
        Look up a root.

        Returns:
            (size, fresh). Missing roots give (0, False); stale records keep
            their size with fresh=False.
        """
        with self._lock:
            record = self._ensure_loaded().get(root)
        if record is None:
            return 0, False
        return record.size_bytes, self.is_fresh(root, record)

    def is_fresh(self, root: str, record: CacheRecord) -> bool:
        now = self._clock()
        if now - record.computed_at_epoch >= self.ttl:
            return False
        mtime = _mtime(root)
        if mtime is None:
            return False
        return mtime <= record.computed_at_epoch + self.grace

    def put(self, root: str, size: int) -> None:
        """Record a measured size. Persisted by the next save()."""
        if size < 0:
            raise ValueError(f"invalid size for {root}: {size}")
        with self._lock:
            self._ensure_loaded()[root] = CacheRecord(
                size_bytes=size, computed_at_epoch=self._clock()
            )
            self._dirty = True

    def invalidate(self, root: str) -> bool:
        """Drop one root's record. Returns whether it existed."""
        with self._lock:
            removed = self._ensure_loaded().pop(root, None) is not None
            if removed:
                self._dirty = True
            return removed

    def invalidate_ancestors(self, paths: list[str]) -> list[str]:
        """Drop every record whose root contains one of paths."""
        with self._lock:
            records = self._ensure_loaded()
            stale = [
                root
                for root in records
                if any(is_ancestor_or_self(root, p) for p in paths)
            ]
            for root in stale:
                del records[root]
            if stale:
                self._dirty = True
        return stale

    def clear(self) -> None:
        with self._lock:
            self._records = {}
            self._dirty = True

    def records(self) -> dict[str, CacheRecord]:
        with self._lock:
            return dict(self._ensure_loaded())

    def save(self) -> bool:
        """
        Atomically rewrite the cache file if anything changed.

        Returns:
            True if the file is up to date afterwards
        """
        with self._lock:
            if not self._dirty:
                return True
            records = self._ensure_loaded()
            data = {root: record.model_dump() for root, record in records.items()}
            tmp_path = self.path.with_name(self.path.name + ".tmp")
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with open(tmp_path, "w") as f:
                    json.dump(data, f, indent=2)
                os.replace(tmp_path, self.path)
            except OSError as e:
                logger.warning("Failed to write size cache %s: %s", self.path, e)
                return False
            self._dirty = False
            return True
