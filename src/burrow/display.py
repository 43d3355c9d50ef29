"""Rich terminal output for the one-shot CLI commands."""

import time

from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from burrow.format import (
    display_path,
    format_number,
    format_unused_time,
    humanize_bytes,
    percent_of,
    progress_bar,
    size_tier,
)
from burrow.models import CacheRecord, LargeFileEntry, ScanResult

console = Console()


def show_error(message: str) -> None:
    console.print(f"[red]Error:[/red] {message}")


def scan_progress() -> Progress:
    """Create a spinner for scans with no known total."""
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    )


def _age(seconds: float) -> str:
    if seconds < 3600:
        return f"{int(seconds // 60)}m"
    if seconds < 86400:
        return f"{int(seconds // 3600)}h"
    return f"{int(seconds // 86400)}d"


def show_scan_result(result: ScanResult, limit: int | None = None) -> None:
    """Display the direct children of a scanned directory, largest first."""
    total = result.total_size
    entries = result.entries[:limit] if limit else result.entries
    largest = max([1] + [e.size for e in entries])

    table = Table(
        title=f"{display_path(result.root)}  |  Total: {humanize_bytes(total)}",
        show_header=True,
        header_style="bold",
    )
    table.add_column("#", justify="right", style="dim")
    table.add_column("Usage")
    table.add_column("%", justify="right")
    table.add_column("Name")
    table.add_column("Size", justify="right")
    table.add_column("")

    for idx, entry in enumerate(entries, start=1):
        percent = percent_of(entry.size, total)
        style = size_tier(percent)
        name = entry.name + ("/" if entry.is_dir and not entry.is_symlink else "")
        if entry.folded:
            hint = "[yellow]folded[/yellow]"
        elif entry.error:
            hint = "[red]unreadable[/red]"
        else:
            hint = f"[dim]{format_unused_time(entry.last_access)}[/dim]"
        table.add_row(
            str(idx),
            progress_bar(max(entry.size, 0), largest, percent),
            f"{percent:.1f}%",
            name,
            f"[{style}]{humanize_bytes(max(entry.size, 0))}[/{style}]",
            hint,
        )

    console.print(table)
    hidden = len(result.entries) - len(entries)
    if hidden > 0:
        console.print(f"[dim]... and {hidden} more[/dim]")
    console.print(f"[dim]{format_number(result.total_files)} files scanned[/dim]")


def show_large_files(root: str, files: list[LargeFileEntry], min_size: int) -> None:
    """Display the largest files found under root."""
    if not files:
        console.print(f"[dim]No files of {humanize_bytes(min_size)} or more under {display_path(root)}[/dim]")
        return

    table = Table(title=f"Largest files under {display_path(root)}", show_header=True, header_style="bold")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Path")
    table.add_column("Size", justify="right", style="bold")

    for idx, item in enumerate(files, start=1):
        table.add_row(str(idx), display_path(item.path), humanize_bytes(item.size))

    console.print(table)
    total = sum(f.size for f in files)
    console.print(f"[dim]{len(files)} files, {humanize_bytes(total)} total[/dim]")


def show_cache(path: str, records: dict[str, CacheRecord], ttl: float, now: float | None = None) -> None:
    """Display overview cache records and whether each is still within its TTL."""
    if not records:
        console.print(f"[dim]Cache is empty ({display_path(path)})[/dim]")
        return

    now = now if now is not None else time.time()
    table = Table(title=f"Size cache: {display_path(path)}", show_header=True, header_style="bold")
    table.add_column("Root")
    table.add_column("Size", justify="right")
    table.add_column("Age", justify="right")
    table.add_column("Status")

    for root, record in sorted(records.items()):
        age = max(now - record.computed_at_epoch, 0)
        status = "[green]fresh[/green]" if age < ttl else "[yellow]expired[/yellow]"
        table.add_row(display_path(root), humanize_bytes(record.size_bytes), _age(age), status)

    console.print(table)
