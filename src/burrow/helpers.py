"""External helper processes and stat primitives.

Every helper process runs with its own timeout. A timeout or failure yields
None (unknown) for that one item; callers fall back to cheaper signals.
"""

import logging
import os
import shutil
import subprocess
import sys
import threading
from datetime import datetime
from pathlib import Path

logger = logging.getLogger(__name__)

IS_MACOS = sys.platform == "darwin"


def allocated_size(st: os.stat_result) -> int:
    """Bytes actually allocated, capped at the apparent size (sparse/cloud files)."""
    blocks = getattr(st, "st_blocks", None)
    if blocks is None:
        return st.st_size
    return min(blocks * 512, st.st_size)


def _run(args: list[str], timeout: float) -> subprocess.CompletedProcess | None:
    try:
        return subprocess.run(args, capture_output=True, text=True, timeout=timeout)
    except subprocess.TimeoutExpired:
        logger.warning("%s timed out after %.0fs", args[0], timeout)
    except (FileNotFoundError, OSError) as e:
        logger.debug("%s unavailable: %s", args[0], e)
    return None


def du_size(path: str, timeout: float = 30.0) -> int | None:
    """
    Size of a subtree via ``du -skP``.

    Returns:
        Size in bytes, or None when du fails, times out or reports nothing
    """
    if not os.path.exists(path):
        return None
    result = _run(["du", "-skP", path], timeout)
    if result is None:
        return None
    # du exits non-zero on any unreadable child but still prints a total
    fields = result.stdout.split()
    if not fields:
        logger.debug("du produced no output for %s: %s", path, result.stderr.strip())
        return None
    try:
        kb = int(fields[0])
    except ValueError:
        return None
    return kb * 1024 if kb > 0 else None


def du_size_excluding(path: str, exclude: str | None, timeout: float = 30.0) -> int | None:
    """du size of path minus the size of one excluded subtree."""
    total = du_size(path, timeout)
    if total is None or not exclude:
        return total
    if not os.path.exists(exclude):
        return total
    excluded = du_size(exclude, timeout)
    if excluded is None:
        return None
    return total - excluded if excluded <= total else total


def logical_size(path: str, exclude: str | None = None, cancel: threading.Event | None = None) -> int:
    """In-process walk summing allocated file sizes. Unreadable entries count as zero."""
    total = 0
    stack = [path]
    while stack:
        if cancel is not None and cancel.is_set():
            break
        current = stack.pop()
        try:
            with os.scandir(current) as entries:
                for entry in entries:
                    try:
                        if entry.is_dir(follow_symlinks=False):
                            if entry.path != exclude:
                                stack.append(entry.path)
                        else:
                            total += allocated_size(entry.stat(follow_symlinks=False))
                    except OSError:
                        continue
        except OSError as e:
            logger.debug("Skipping unreadable directory %s: %s", current, e)
    return total


def measure_size(path: str, timeout: float = 30.0, exclude: str | None = None) -> int:
    """Size probe: du first, then an in-process walk."""
    size = du_size_excluding(path, exclude, timeout)
    if size is not None and size > 0:
        return size
    return logical_size(path, exclude=exclude)


def last_access_time(path: str) -> datetime | None:
    """Filesystem access time, or None if the path cannot be stat'ed."""
    try:
        return datetime.fromtimestamp(os.stat(path).st_atime)
    except OSError:
        return None


def _parse_mdls_date(raw: str) -> datetime | None:
    raw = raw.strip()
    if not raw or raw == "(null)":
        return None
    try:
        parsed = datetime.strptime(raw, "%Y-%m-%d %H:%M:%S %z")
    except ValueError:
        return None
    # Naive local time, matching datetime.fromtimestamp()
    return parsed.astimezone().replace(tzinfo=None)


def last_used_time(path: str, timeout: float = 5.0) -> datetime | None:
    """
    Last-used time from extended metadata.

    Falls back to the filesystem modification time when the metadata helper
    is missing, fails or times out.
    """
    if IS_MACOS:
        result = _run(["mdls", "-name", "kMDItemLastUsedDate", "-raw", path], timeout)
        if result is not None and result.returncode == 0:
            parsed = _parse_mdls_date(result.stdout)
            if parsed is not None:
                return parsed
    try:
        return datetime.fromtimestamp(os.stat(path).st_mtime)
    except OSError:
        return None


def reveal_in_file_manager(path: str, timeout: float = 10.0) -> None:
    """Show path in the platform file manager. Failures are ignored."""
    if IS_MACOS:
        args = ["open", "-R", path]
    elif shutil.which("xdg-open"):
        target = path if os.path.isdir(path) else str(Path(path).parent)
        args = ["xdg-open", target]
    else:
        logger.debug("No file manager helper available for %s", path)
        return
    _run(args, timeout)


def spotlight_query(root: str, min_size: int, timeout: float = 5.0) -> list[str] | None:
    """
    Ask the Spotlight index for files of at least min_size under root.

    Returns:
        Candidate paths, or None where the index is unavailable
    """
    if not IS_MACOS or not shutil.which("mdfind"):
        return None
    result = _run(["mdfind", "-onlyin", root, f"kMDItemFSSize >= {min_size}"], timeout)
    if result is None or result.returncode != 0:
        return None
    return [line for line in result.stdout.splitlines() if line.strip()]
