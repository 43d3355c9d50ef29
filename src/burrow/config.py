"""Configuration for burrow.

Settings are read from a single JSON document (``~/.burrow/config.json`` by
default, or the file named by ``BURROW_CONFIG``). A missing or malformed
file falls back to defaults; configuration problems are never fatal.
"""

import json
import logging
import os
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "BURROW_CONFIG"
DEFAULT_CONFIG_FILE = "~/.burrow/config.json"
OVERVIEW_CACHE_FILE = "overview_sizes.json"
LOG_FILE = "burrow.log"

MIB = 1 << 20


def expand_path(path: str) -> Path:
    """Expand ~ and environment variables in path."""
    return Path(os.path.expanduser(os.path.expandvars(path)))


class Settings(BaseModel):
    """Tunables for scanning, caching and deletion."""

    # Size cache
    cache_dir: str = Field("~/.cache/burrow", description="Directory holding the overview cache file")
    cache_ttl_seconds: float = Field(7 * 24 * 3600, description="Maximum age of a cache record")
    cache_grace_seconds: float = Field(
        30 * 60,
        description="Tolerance for root mtime moving past the record's computation time",
    )

    # External helper timeouts
    du_timeout: float = Field(30.0, description="Timeout for one size probe")
    metadata_timeout: float = Field(5.0, description="Timeout for one metadata lookup")
    open_timeout: float = Field(10.0, description="Timeout for reveal-in-file-manager")

    # Spotlight scan
    large_file_min_size: int = Field(100 * MIB, description="Size threshold for large files")
    large_file_prefilter: int = Field(
        MIB, description="Apparent size below which files are skipped before the full check"
    )
    max_large_files: int = Field(20, description="Maximum number of large files reported")
    spotlight_workers: int = Field(8, description="Concurrency of the spotlight scan")

    # Worker pools
    min_workers: int = Field(16, description="Lower bound of the traversal pool")
    max_workers: int = Field(64, description="Upper bound of the traversal pool")
    cpu_multiplier: int = Field(4, description="Traversal workers per CPU")
    max_dir_workers: int = Field(32, description="Cap on direct children sized concurrently")
    max_probe_workers: int = Field(4, description="Cap on concurrent size-probe processes")
    overview_workers: int = Field(8, description="Concurrent overview probes")
    delete_workers: int = Field(4, description="Concurrent deletions")
    batch_size: int = Field(100, description="Finalized entries per listing event")

    # Paths
    protected_paths: list[str] = Field(
        default_factory=list, description="Extra paths that may never be deleted"
    )
    overview_roots: list[str] = Field(
        default_factory=list, description="Overview roots; empty means the platform defaults"
    )
    extra_fold_dirs: list[str] = Field(
        default_factory=list, description="Additional directory names to fold"
    )

    @property
    def cache_path(self) -> Path:
        """Location of the overview size cache file."""
        return expand_path(self.cache_dir) / OVERVIEW_CACHE_FILE

    @property
    def log_path(self) -> Path:
        """Default location of the log file."""
        return expand_path(self.cache_dir) / LOG_FILE


def config_path(override: str | None = None) -> Path:
    """Resolve which config file to read."""
    if override:
        return expand_path(override)
    return expand_path(os.environ.get(CONFIG_ENV_VAR, DEFAULT_CONFIG_FILE))


def load_settings(path: Path | None = None) -> Settings:
    """
    Load settings from disk.

    Args:
        path: Config file to read (default: resolved by config_path())

    Returns:
        Settings, falling back to defaults on any problem
    """
    path = path or config_path()
    if not path.exists():
        return Settings()

    try:
        with open(path) as f:
            data = json.load(f)
        return Settings.model_validate(data)
    except (json.JSONDecodeError, OSError, ValidationError) as e:
        logger.warning("Ignoring unreadable config %s: %s", path, e)
        return Settings()
