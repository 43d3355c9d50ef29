"""Data models for burrow."""

from datetime import datetime
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

PENDING_SIZE = -1


class Entry(BaseModel):
    """One child of the directory being displayed."""

    name: str = Field(..., description="Display name")
    path: str = Field(..., description="Absolute path")
    size: int = Field(PENDING_SIZE, description="Size in bytes; negative while not yet computed")
    is_dir: bool = Field(False, description="Whether the entry is a directory")
    folded: bool = Field(False, description="Sized without descending into its contents")
    is_symlink: bool = Field(False, description="Whether the entry is a symbolic link")
    last_access: Optional[datetime] = Field(None, description="Lazily resolved last access time")
    error: Optional[str] = Field(None, description="Error that zeroed this entry's size")

    @property
    def pending(self) -> bool:
        """Size not yet computed."""
        return self.size < 0

    @property
    def explorable(self) -> bool:
        """Whether the user may drill into this entry."""
        return self.is_dir and not self.folded and not self.is_symlink


class OverviewEntry(Entry):
    """Entry for one of the fixed top-level overview roots."""

    is_dir: bool = True
    cached: bool = Field(False, description="Size came from the size cache")
    exclude: Optional[str] = Field(None, description="Subtree excluded from this root's size")


class LargeFileEntry(BaseModel):
    """A file found by the spotlight scan."""

    path: str = Field(..., description="Absolute path")
    size: int = Field(..., description="Allocated size in bytes")

    @property
    def name(self) -> str:
        return Path(self.path).name


class CacheRecord(BaseModel):
    """Persisted overview size of one root."""

    size_bytes: int = Field(..., ge=0, description="Measured size")
    computed_at_epoch: float = Field(..., description="When the size was measured (epoch seconds)")


class ScanResult(BaseModel):
    """Finalized result of one listing scan."""

    root: str = Field(..., description="Directory that was scanned")
    entries: list[Entry] = Field(default_factory=list)
    large_files: list[LargeFileEntry] = Field(default_factory=list)
    total_files: int = Field(0, description="Files counted in the whole subtree")
    cancelled: bool = Field(False, description="Scan stopped before finishing")

    @property
    def total_size(self) -> int:
        """Sum of all direct-child sizes; errored children count as zero."""
        return sum(max(entry.size, 0) for entry in self.entries)


class DeleteRequest(BaseModel):
    """Items queued for deletion, awaiting explicit confirmation."""

    root: str = Field(..., description="Directory the items must live under")
    paths: list[str] = Field(default_factory=list)
    total_size: int = Field(0, description="Aggregate size shown at confirmation")
    confirmed: bool = Field(False, description="Set only by an explicit user confirmation")

    @property
    def count(self) -> int:
        return len(self.paths)


class DeleteOutcome(BaseModel):
    """Result of a deletion batch."""

    removed: list[str] = Field(default_factory=list)
    failed: dict[str, str] = Field(default_factory=dict, description="Path -> reason not removed")
    skipped: list[str] = Field(default_factory=list, description="Never attempted (interrupted)")
    bytes_freed: int = 0
    interrupted: bool = False

    @property
    def success_count(self) -> int:
        return len(self.removed)

    @property
    def failure_count(self) -> int:
        return len(self.failed)


def sort_entries(entries: list[Entry]) -> list[Entry]:
    """Largest first, ties by name."""
    return sorted(entries, key=lambda e: (-e.size, e.name))


def sort_large_files(files: list[LargeFileEntry]) -> list[LargeFileEntry]:
    """Largest first, ties by path."""
    return sorted(files, key=lambda f: (-f.size, f.path))
