"""Text formatting helpers for the dashboard and CLI output."""

import os
import unicodedata
from datetime import datetime

BAR_WIDTH = 24
ELLIPSIS = "..."

_SIZE_UNITS = ("KB", "MB", "GB", "TB", "PB", "EB")


def humanize_bytes(size: int) -> str:
    """Format bytes using binary units ("1.5 MB")."""
    if size < 1024:
        return f"{max(size, 0)} B"
    value = float(size)
    for unit in _SIZE_UNITS:
        value /= 1024
        if value < 1024:
            return f"{value:.1f} {unit}"
    return f"{value:.1f} {_SIZE_UNITS[-1]}"


def format_number(n: int) -> str:
    """Compact counter format ("1.5k", "2.0M")."""
    if n < 1000:
        return str(n)
    if n < 1_000_000:
        return f"{n / 1000:.1f}k"
    return f"{n / 1_000_000:.1f}M"


def char_width(ch: str) -> int:
    """Terminal columns taken by one character."""
    return 2 if unicodedata.east_asian_width(ch) in ("W", "F") else 1


def display_width(text: str) -> int:
    return sum(char_width(ch) for ch in text)


def _take_width(chars, limit: int) -> str:
    taken = []
    width = 0
    for ch in chars:
        w = char_width(ch)
        if width + w > limit:
            break
        taken.append(ch)
        width += w
    return "".join(taken)


def truncate_middle(text: str, max_width: int) -> str:
    """Shorten text to max_width columns by replacing its middle with '...'."""
    if display_width(text) <= max_width:
        return text
    available = max_width - len(ELLIPSIS)
    if available <= 0:
        return _take_width(text, max_width)

    head = _take_width(text, (available + 1) // 2)
    tail_budget = available - display_width(head)
    tail = _take_width(reversed(text), tail_budget)[::-1]
    return f"{head}{ELLIPSIS}{tail}"


def trim_name(name: str, max_width: int) -> str:
    """Shorten name to max_width columns with a trailing '...'."""
    if display_width(name) <= max_width:
        return name
    if max_width <= len(ELLIPSIS):
        return ELLIPSIS[:max(max_width, 0)]
    return _take_width(name, max_width - len(ELLIPSIS)) + ELLIPSIS


def pad_name(name: str, width: int) -> str:
    """Right-pad name with spaces to width columns."""
    gap = width - display_width(name)
    return name + " " * gap if gap > 0 else name


def display_path(path: str) -> str:
    """Replace the home directory prefix with '~'."""
    home = os.path.expanduser("~")
    if home and home != "/":
        if path == home:
            return "~"
        if path.startswith(home + os.sep):
            return "~" + path[len(home):]
    return path


def calculate_name_width(term_width: int) -> int:
    """Columns available for names once bars, sizes and hints are placed."""
    return max(24, min(term_width - 61, 60))


def format_unused_time(last_access: datetime | None, now: datetime | None = None) -> str:
    """Hint like '>4mo' or '>2yr' for items untouched for 90 days or more."""
    if last_access is None:
        return ""
    now = now or datetime.now(last_access.tzinfo)
    days = (now - last_access).days
    if days < 90:
        return ""
    if days < 365:
        return f">{days // 30}mo"
    return f">{days // 365}yr"


def percent_of(value: int, total: int) -> float:
    if total <= 0 or value < 0:
        return 0.0
    return value / total * 100


def size_tier(percent: float) -> str:
    """Style for a size given its share of the total."""
    if percent >= 50:
        return "red"
    if percent >= 20:
        return "yellow"
    if percent >= 5:
        return "blue"
    return "bright_black"


def bar_fill(value: int, max_value: int, width: int = BAR_WIDTH) -> int:
    """Filled cells of a bar scaled against the largest sibling."""
    if max_value <= 0 or value <= 0:
        return 0
    return min(width, int(value / max_value * width))


def progress_bar(value: int, max_value: int, percent: float, width: int = BAR_WIDTH) -> str:
    """Rich markup for a bar colored by size tier."""
    filled = bar_fill(value, max_value, width)
    style = size_tier(percent)
    bar = f"[{style}]{'█' * filled}[/{style}]" if filled else ""
    if filled < width:
        bar += f"[bright_black]{'░' * (width - filled)}[/bright_black]"
    return bar
