"""CLI interface for burrow."""

import logging
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Optional

import typer

from burrow import __version__
from burrow.cache import SizeCache
from burrow.config import MIB, Settings, config_path, load_settings
from burrow.display import console, scan_progress, show_cache, show_error, show_large_files, show_scan_result
from burrow.errors import BurrowError, InvalidRootError
from burrow.format import display_path, format_number, humanize_bytes
from burrow.progress import ScanProgress
from burrow.rules import build_rules
from burrow.scanner import DirectoryScanner
from burrow.spotlight import SpotlightScanner

logger = logging.getLogger("burrow")

# Create Typer app
app = typer.Typer(
    name="burrow",
    help="Interactive disk usage explorer - find what fills your disk and clear it safely",
    add_completion=False,
)

LOG_FORMAT = "%(asctime)s - [%(levelname)s] - %(name)s - %(message)s"
PROGRESS_INTERVAL = 0.1


def setup_logging(settings: Settings, log_file: Optional[Path] = None, verbose: bool = False) -> None:
    """
    Configure the package logger.

    The dashboard owns the terminal, so records only ever go to a file.

    Args:
        settings: Provides the default log location
        log_file: Explicit log file
        verbose: Log DEBUG records (to the default location when no log_file)
    """
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if not log_file and not verbose:
        logger.addHandler(logging.NullHandler())
        return

    path = Path(log_file) if log_file else settings.log_path
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, mode="a", encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.debug("Logging to %s", path)


def resolve_root(path: str) -> str:
    """Absolute path of an existing directory."""
    root = os.path.abspath(os.path.expanduser(path))
    if not os.path.isdir(root):
        raise InvalidRootError(f"Not a directory: {path}")
    return root


def _settings(ctx: typer.Context) -> Settings:
    return ctx.obj["settings"]


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"burrow version {__version__}")
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    config: Optional[Path] = typer.Option(
        None, "--config", help="Config file (default: $BURROW_CONFIG or ~/.burrow/config.json)"
    ),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="Write logs to this file"),
    verbose: bool = typer.Option(False, "--verbose", help="Log debug output (to the cache directory by default)"),
    no_cache: bool = typer.Option(False, "--no-cache", help="Always re-measure overview sizes"),
) -> None:
    """burrow - interactive disk usage explorer."""
    settings = load_settings(config_path(str(config)) if config else None)
    try:
        setup_logging(settings, log_file, verbose)
    except OSError as e:
        show_error(f"Cannot open log file: {e}")
        raise typer.Exit(1)
    ctx.obj = {"settings": settings, "no_cache": no_cache}

    # If no command specified, launch the dashboard
    if ctx.invoked_subcommand is None:
        ctx.invoke(explore, ctx=ctx, path=None)


@app.command()
def explore(
    ctx: typer.Context,
    path: Optional[str] = typer.Argument(None, help="Start in a listing of this directory"),
) -> None:
    """Browse disk usage interactively."""
    from burrow.tui.app import run_tui

    try:
        start = resolve_root(path) if path else None
        run_tui(settings=_settings(ctx), start_path=start, use_cache=not ctx.obj["no_cache"])
    except InvalidRootError as e:
        show_error(str(e))
        raise typer.Exit(1)
    except OSError as e:
        logger.error("Terminal error: %s", e)
        show_error(f"Terminal error: {e}")
        raise typer.Exit(1)


@app.command()
def scan(
    ctx: typer.Context,
    path: str = typer.Argument(".", help="Directory to scan"),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Show only the N largest items"),
) -> None:
    """Size the direct children of a directory and print them."""
    settings = _settings(ctx)
    try:
        root = resolve_root(path)
    except InvalidRootError as e:
        show_error(str(e))
        raise typer.Exit(1)

    scanner = DirectoryScanner(build_rules(settings.extra_fold_dirs), settings)
    progress = ScanProgress()
    cancel = threading.Event()

    with ThreadPoolExecutor(max_workers=1) as pool, scan_progress() as spinner:
        task = spinner.add_task(f"Scanning {display_path(root)}...", total=None)
        future = pool.submit(scanner.scan, root, progress, cancel)
        try:
            while not future.done():
                snap = progress.snapshot()
                spinner.update(
                    task,
                    description=(
                        f"Scanning {display_path(root)}: {format_number(snap.files_scanned)} files, "
                        f"{humanize_bytes(snap.bytes_scanned)}"
                    ),
                )
                time.sleep(PROGRESS_INTERVAL)
        except KeyboardInterrupt:
            cancel.set()
            raise typer.Exit(130)
        try:
            result = future.result()
        except BurrowError as e:
            show_error(str(e))
            raise typer.Exit(1)

    show_scan_result(result, limit)


@app.command()
def large(
    ctx: typer.Context,
    path: str = typer.Argument(".", help="Directory to search"),
    min_size: Optional[int] = typer.Option(None, "--min-size", help="Minimum file size in MB"),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Maximum number of files"),
) -> None:
    """List the largest files under a directory."""
    settings = _settings(ctx)
    try:
        root = resolve_root(path)
    except InvalidRootError as e:
        show_error(str(e))
        raise typer.Exit(1)

    overrides = {}
    if min_size is not None:
        overrides["large_file_min_size"] = max(min_size, 0) * MIB
    if limit is not None:
        overrides["max_large_files"] = max(limit, 1)
    settings = settings.model_copy(update=overrides)

    scanner = SpotlightScanner(build_rules(settings.extra_fold_dirs), settings)
    cancel = threading.Event()
    with scan_progress() as spinner:
        spinner.add_task(f"Searching {display_path(root)} for large files...", total=None)
        try:
            files = scanner.scan(root, cancel)
        except KeyboardInterrupt:
            cancel.set()
            raise typer.Exit(130)

    show_large_files(root, files, scanner.threshold)


@app.command()
def cache(
    ctx: typer.Context,
    clear: bool = typer.Option(False, "--clear", help="Delete every cached size"),
) -> None:
    """Show or clear the overview size cache."""
    settings = _settings(ctx)
    size_cache = SizeCache(
        settings.cache_path,
        ttl=settings.cache_ttl_seconds,
        grace=settings.cache_grace_seconds,
    )
    if clear:
        count = len(size_cache.records())
        size_cache.clear()
        if not size_cache.save():
            show_error(f"Could not write {display_path(str(settings.cache_path))}")
            raise typer.Exit(1)
        console.print(f"[green]✓[/green] Cleared {count} cached size(s)")
        return

    show_cache(str(settings.cache_path), size_cache.records(), settings.cache_ttl_seconds)


if __name__ == "__main__":
    app()
