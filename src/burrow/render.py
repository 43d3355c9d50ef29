"""Render the dashboard model as rich text."""

from datetime import datetime

from rich.markup import escape
from rich.text import Text

from burrow.format import (
    calculate_name_width,
    display_path,
    format_number,
    format_unused_time,
    humanize_bytes,
    pad_name,
    percent_of,
    progress_bar,
    size_tier,
    trim_name,
    truncate_middle,
)
from burrow.progress import scan_percent
from burrow.state import Mode, Model, calculate_viewport, listing_viewport

TITLE = "[bold magenta]Analyze Disk[/bold magenta]"
OVERVIEW_NAME_WIDTH = 20
CURRENT_PATH_WIDTH = 50

CURSOR = " [bold cyan]▶[/bold cyan] "
NO_CURSOR = "   "
SELECTED_ICON = "[green]●[/green]"
UNSELECTED_ICON = "○"
DIR_ICON = "📁"
FILE_ICON = "📄"
FOLD_HINT = "[yellow]🧹[/yellow]"


def _styled(text: str, style: str) -> str:
    return f"[{style}]{text}[/{style}]" if style else text


def _spinner(model: Model) -> str:
    return f"[bold cyan]{escape(model.spinner_frame)}[/bold cyan]"


def render_header(model: Model) -> list[str]:
    if model.in_overview:
        lines = [TITLE]
        pending = [e for e in model.overview if e.pending]
        if model.overview_scanning and len(pending) == len(model.overview):
            lines.append(f"{_spinner(model)} Analyzing disk usage, please wait...")
        elif pending or model.overview_scanning:
            lines.append(
                f"[bright_black]Select a location to explore:[/bright_black]  "
                f"{_spinner(model)} {escape(model.status)}"
            )
            lines.append("")
        else:
            lines.append("[bright_black]Select a location to explore:[/bright_black]")
            lines.append("")
        return lines

    header = f"{TITLE}  [bright_black]{escape(display_path(model.path or ''))}[/bright_black]"
    if not model.scanning:
        header += f"  |  Total: {humanize_bytes(model.total_size)}"
    return [header, ""]


def render_progress(model: Model) -> list[str]:
    """Scan counters with a percentage once the previous file count is known."""
    snap = model.progress.snapshot()
    prefix = ""
    percent = scan_percent(snap, finished=not model.scanning, last_total_files=model.last_total_files)
    if model.last_total_files > 0 or snap.children_total > 0:
        prefix = f" [cyan]{percent:.0f}%[/cyan]"
    lines = [
        f"{_spinner(model)} Scanning{prefix}: "
        f"[yellow]{format_number(snap.files_scanned)} files[/yellow], "
        f"[yellow]{format_number(snap.dirs_scanned)} dirs[/yellow], "
        f"[green]{humanize_bytes(snap.bytes_scanned)}[/green]"
    ]
    if snap.current_path:
        short = truncate_middle(display_path(snap.current_path), CURRENT_PATH_WIDTH)
        lines.append(f"[bright_black]{escape(short)}[/bright_black]")
    return lines


def _hint(entry, now: datetime | None) -> str:
    if entry.folded:
        return FOLD_HINT
    unused = format_unused_time(entry.last_access, now)
    return f"[bright_black]{unused}[/bright_black]" if unused else ""


def _row(prefix: str, index: str, bar: str, percent: str, name: str, size: str, hint: str) -> str:
    line = f"{prefix}{index} {bar} {percent}  |  {name} {size}"
    return f"{line}  {hint}" if hint else line


def render_overview(model: Model, now: datetime | None = None) -> list[str]:
    entries = model.overview
    if not entries:
        return ["  Empty directory"]
    total = model.total_size
    largest = max([1] + [e.size for e in entries])
    lines = []
    for idx, entry in enumerate(entries):
        percent = percent_of(entry.size, total)
        bar = progress_bar(max(entry.size, 0), largest, percent)
        if total == 0 or entry.pending:
            percent_text = "  --  "
            size_style = "bright_black"
        else:
            percent_text = f"{percent:5.1f}%"
            size_style = size_tier(percent)
        size_text = "pending.." if entry.pending else humanize_bytes(entry.size)
        name = escape(pad_name(trim_name(entry.name, OVERVIEW_NAME_WIDTH), OVERVIEW_NAME_WIDTH))
        name_segment = f"{DIR_ICON} {name}"
        prefix, num_style = NO_CURSOR, ""
        if idx == model.selected:
            prefix, num_style, size_style = CURSOR, "cyan", "cyan"
            name_segment = _styled(name_segment, "cyan")
            percent_text = _styled(percent_text, "cyan")
        lines.append(
            _row(
                prefix,
                _styled(f"{idx + 1:2d}.", num_style),
                bar,
                percent_text,
                name_segment,
                _styled(f"{size_text:>10}", size_style),
                _hint(entry, now),
            )
        )
    return lines


def render_listing(model: Model, now: datetime | None = None) -> list[str]:
    entries = model.entries
    if not entries:
        return [] if model.scanning else ["  Empty directory"]
    total = model.total_size
    largest = max([1] + [e.size for e in entries])
    viewport = listing_viewport(model)
    name_width = calculate_name_width(model.width)
    start = max(model.offset, 0)

    lines = []
    for idx in range(start, min(start + viewport, len(entries))):
        entry = entries[idx]
        percent = percent_of(entry.size, total)
        bar = progress_bar(max(entry.size, 0), largest, percent)
        icon = DIR_ICON if entry.is_dir else FILE_ICON
        name = escape(pad_name(trim_name(entry.name, name_width), name_width))
        name_segment = f"{icon} {name}"
        size_style = size_tier(percent)
        percent_text = f"{percent:5.1f}%"

        chosen = entry.path in model.multi_selected
        select_icon = SELECTED_ICON if chosen else UNSELECTED_ICON
        if chosen:
            name_segment = _styled(name_segment, "green")

        prefix, num_style = NO_CURSOR, ""
        if idx == model.selected:
            prefix, num_style, size_style = CURSOR, "cyan", "cyan"
            percent_text = _styled(percent_text, "cyan")
            if not chosen:
                name_segment = _styled(name_segment, "cyan")

        lines.append(
            _row(
                f"{prefix}{select_icon} ",
                _styled(f"{idx + 1:2d}.", num_style),
                bar,
                percent_text,
                name_segment,
                _styled(f"{humanize_bytes(max(entry.size, 0)):>10}", size_style),
                _hint(entry, now),
            )
        )
    return lines


def render_large_files(model: Model) -> list[str]:
    files = model.large_files
    if not files:
        if model.large_scanning:
            return [f"  {_spinner(model)} Searching for large files..."]
        return ["  No large files found"]
    viewport = calculate_viewport(model.height, True)
    name_width = calculate_name_width(model.width)
    largest = max([1] + [f.size for f in files])
    start = max(model.large_offset, 0)

    lines = []
    for idx in range(start, min(start + viewport, len(files))):
        item = files[idx]
        short = truncate_middle(display_path(item.path), name_width)
        name = escape(pad_name(short, name_width))
        chosen = item.path in model.large_multi_selected
        select_icon = SELECTED_ICON if chosen else UNSELECTED_ICON
        name_style = "green" if chosen else ""
        prefix, num_style, size_style = NO_CURSOR, "", "bright_black"
        if idx == model.large_selected:
            prefix, num_style, size_style = CURSOR, "cyan", "cyan"
            name_style = name_style or "cyan"
        lines.append(
            f"{prefix}{select_icon} {_styled(f'{idx + 1:2d}.', num_style)} "
            f"{progress_bar(item.size, largest, 0)}  |  {FILE_ICON} {_styled(name, name_style)}  "
            f"{_styled(f'{humanize_bytes(item.size):>10}', size_style)}"
        )
    if model.large_scanning:
        lines.append(f"  {_spinner(model)} Searching for more...")
    return lines


def render_footer(model: Model) -> str:
    """Key hints for the current mode."""
    if model.in_overview:
        if model.history:
            hints = "↑↓←→ | Enter | R Refresh | O Open | F File | ← Back | Q Quit"
        else:
            hints = "↑↓→ | Enter | R Refresh | O Open | F File | Q Quit"
    elif model.showing_large_files:
        count = len(model.large_multi_selected)
        delete = f"⌫ Del {count}" if count else "⌫ Del"
        hints = f"↑↓← | Space Select | R Refresh | O Open | F File | {delete} | ← Back | Q Quit"
    else:
        count = len(model.multi_selected)
        delete = f"⌫ Del {count}" if count else "⌫ Del"
        parts = ["↑↓←→", "Space Select", "Enter", "R Refresh", "O Open", "F File", delete]
        if model.large_files:
            parts.append(f"T Top {len(model.large_files)}")
        parts.append("Q Quit")
        hints = " | ".join(parts)
    return f"[bright_black]{hints}[/bright_black]"


def render_confirmation(model: Model) -> str:
    request = model.delete_request
    if request.count == 1:
        items = model.large_files if model.showing_large_files else model.entries
        target = next((i.name for i in items if i.path == request.paths[0]), request.paths[0])
        what = escape(target)
    else:
        what = f"{request.count} items"
    return (
        f"[red]Delete:[/red] {what}, {humanize_bytes(request.total_size)}  "
        f"[bright_black]Press Enter to confirm  |  ESC cancel[/bright_black]"
    )


def render_lines(model: Model, now: datetime | None = None) -> list[str]:
    """The whole dashboard as rich markup, one string per line."""
    lines = [""] + render_header(model)

    if model.mode == Mode.DELETING:
        removed = model.delete_counter.value if model.delete_counter else 0
        lines.append(
            f"{_spinner(model)} Deleting: [yellow]{format_number(removed)} items[/yellow] "
            f"removed, please wait..."
        )
        return lines

    if model.in_overview:
        if model.overview_scanning and all(e.pending for e in model.overview):
            return lines
        lines.extend(render_overview(model, now))
    elif model.showing_large_files:
        lines.extend(render_large_files(model))
    else:
        if model.scanning:
            lines.extend(render_progress(model))
        lines.extend(render_listing(model, now))

    lines.append("")
    lines.append(render_footer(model))
    if model.mode == Mode.CONFIRMING_DELETE and model.delete_request is not None:
        lines.append("")
        lines.append(render_confirmation(model))
    elif model.status and not (model.in_overview and model.overview_scanning):
        lines.append(f"[bright_black]{escape(model.status)}[/bright_black]")
    return lines


def render(model: Model, now: datetime | None = None) -> Text:
    return Text.from_markup("\n".join(render_lines(model, now)))
