"""Interactive disk-usage dashboard."""

import logging
import threading
from functools import partial

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.events import Resize as ResizeEvent
from textual.widgets import Static

from burrow.cache import SizeCache
from burrow.config import Settings
from burrow.deleter import DeletionEngine
from burrow.errors import ScanError
from burrow.helpers import last_access_time, last_used_time, reveal_in_file_manager
from burrow.overview import OverviewScanner, overview_entries
from burrow.progress import ScanProgress
from burrow.render import render
from burrow.rules import build_rules
from burrow.scanner import DirectoryScanner
from burrow.spotlight import SpotlightScanner
from burrow.state import (
    Action,
    AccessResolved,
    CancelScan,
    Controller,
    DeleteDone,
    InfoResolved,
    InterruptDelete,
    Key,
    LookupInfo,
    OverviewDone,
    OverviewSized,
    Quit,
    Resize,
    Reveal,
    ScanBatch,
    ScanDone,
    ScanFailed,
    SpotlightDone,
    StartDelete,
    StartOverview,
    StartScan,
    StartSpotlight,
    Tick,
)

logger = logging.getLogger(__name__)

TICK_SECONDS = 0.1


def _press(keys: str, action: Action) -> Binding:
    return Binding(keys, f"press('{action.value}')", action.name.title(), show=False)


class BurrowApp(App):
    """Disk-usage explorer. Renders the controller's model into one widget."""

    TITLE = "burrow"

    CSS = """
    #dashboard {
        height: 1fr;
    }
    """

    BINDINGS = [
        _press("up,k", Action.UP),
        _press("down,j", Action.DOWN),
        _press("pageup", Action.PAGE_UP),
        _press("pagedown", Action.PAGE_DOWN),
        _press("home,g", Action.HOME),
        _press("end,G", Action.END),
        _press("enter,right,l", Action.ENTER),
        _press("left,h,backspace", Action.BACK),
        _press("escape", Action.ESCAPE),
        _press("space", Action.SELECT),
        _press("a", Action.SELECT_ALL),
        _press("r", Action.REFRESH),
        _press("t", Action.LARGE_FILES),
        _press("o", Action.OPEN),
        _press("f", Action.INFO),
        _press("delete,d,x", Action.DELETE),
        _press("q", Action.QUIT),
    ]

    def __init__(self, settings: Settings | None = None, start_path: str | None = None, use_cache: bool = True):
        super().__init__()
        self.settings = settings or Settings()
        self.start_path = start_path
        self.cache = SizeCache(
            self.settings.cache_path,
            ttl=self.settings.cache_ttl_seconds,
            grace=self.settings.cache_grace_seconds,
        )
        self.use_cache = use_cache
        rules = build_rules(self.settings.extra_fold_dirs)
        self.scanner = DirectoryScanner(rules, self.settings)
        self.spotlight = SpotlightScanner(rules, self.settings)
        self.overview = OverviewScanner(self.cache, self.settings)
        self.engine = DeletionEngine(
            max_workers=self.settings.delete_workers,
            cache=self.cache,
            protected_paths=self.settings.protected_paths,
        )
        self.controller = Controller()
        self._scan_cancel = threading.Event()
        self._overview_cancel = threading.Event()
        self._delete_cancel = threading.Event()
        self._closing = False

    def compose(self) -> ComposeResult:
        yield Static("", id="dashboard")

    def on_mount(self) -> None:
        self.set_interval(TICK_SECONDS, lambda: self.feed(Tick()))
        self.controller.handle(Resize(self.size.width, self.size.height))
        self._execute(self.controller.start(overview_entries(self.settings), self.start_path))
        self._refresh_view()

    def on_resize(self, event: ResizeEvent) -> None:
        self.feed(Resize(event.size.width, event.size.height))

    def action_press(self, name: str) -> None:
        self.feed(Key(Action(name)))

    def feed(self, event) -> None:
        """Feed one event to the controller and carry out its commands."""
        self._execute(self.controller.handle(event))
        paths = self.controller.take_access_lookups()
        if paths:
            self.run_worker(partial(self._access_worker, paths), thread=True, group="access")
        self._refresh_view()

    def _refresh_view(self) -> None:
        self.query_one("#dashboard", Static).update(render(self.controller.model))

    def _post(self, event) -> None:
        """Deliver an event from a worker thread."""
        if not self._closing:
            self.call_from_thread(self.feed, event)

    # Commands ---------------------------------------------------------------

    def _execute(self, commands: list) -> None:
        for command in commands:
            if isinstance(command, CancelScan):
                self._scan_cancel.set()
                self._scan_cancel = threading.Event()
            elif isinstance(command, StartOverview):
                self._overview_cancel.set()
                self._overview_cancel = threading.Event()
                entries = [e.model_copy() for e in self.controller.model.overview]
                work = partial(
                    self._overview_worker, command.token, entries, command.force, self._overview_cancel
                )
                self.run_worker(work, thread=True, group="overview")
            elif isinstance(command, StartScan):
                work = partial(
                    self._scan_worker, command.token, command.path, command.progress, self._scan_cancel
                )
                self.run_worker(work, thread=True, group="scan")
            elif isinstance(command, StartSpotlight):
                work = partial(self._spotlight_worker, command.token, command.path, self._scan_cancel)
                self.run_worker(work, thread=True, group="spotlight")
            elif isinstance(command, StartDelete):
                self._delete_cancel = threading.Event()
                work = partial(self._delete_worker, command, self._delete_cancel)
                self.run_worker(work, thread=True, group="delete")
            elif isinstance(command, InterruptDelete):
                self._delete_cancel.set()
            elif isinstance(command, Reveal):
                work = partial(reveal_in_file_manager, command.path, self.settings.open_timeout)
                self.run_worker(work, thread=True, group="reveal")
            elif isinstance(command, LookupInfo):
                self.run_worker(partial(self._info_worker, command.path), thread=True, group="info")
            elif isinstance(command, Quit):
                self._closing = True
                self._scan_cancel.set()
                self._overview_cancel.set()
                self._delete_cancel.set()
                self.exit()

    # Workers (run in threads) -----------------------------------------------

    def _overview_worker(self, token: int, entries: list, force: bool, cancel: threading.Event) -> None:
        def sized(path: str, size: int, cached: bool) -> None:
            self._post(OverviewSized(token=token, path=path, size=size, cached=cached))

        self.overview.run(entries, on_sized=sized, force=force or not self.use_cache, cancel=cancel)
        self._post(OverviewDone(token=token))

    def _scan_worker(self, token: int, path: str, progress: ScanProgress, cancel: threading.Event) -> None:
        def batch(entries: list) -> None:
            self._post(ScanBatch(token=token, entries=entries))

        try:
            result = self.scanner.scan(path, progress, cancel, on_entries=batch)
        except ScanError as e:
            logger.warning("%s", e)
            self._post(ScanFailed(token=token, message=str(e)))
            return
        if not result.cancelled:
            self._post(ScanDone(token=token, result=result))

    def _spotlight_worker(self, token: int, path: str, cancel: threading.Event) -> None:
        files = self.spotlight.scan(path, cancel)
        if not cancel.is_set():
            self._post(SpotlightDone(token=token, path=path, files=files))

    def _delete_worker(self, command: StartDelete, cancel: threading.Event) -> None:
        outcome = self.engine.delete(command.request, command.counter, cancel)
        self._post(DeleteDone(outcome=outcome))

    def _info_worker(self, path: str) -> None:
        used = last_used_time(path, self.settings.metadata_timeout)
        self._post(InfoResolved(path=path, last_used=used))

    def _access_worker(self, paths: list) -> None:
        self._post(AccessResolved(times={p: last_access_time(p) for p in paths}))


def run_tui(settings: Settings | None = None, start_path: str | None = None, use_cache: bool = True) -> None:
    """Run the interactive dashboard.

    Args:
        settings: Loaded settings
        start_path: Open a listing of this directory instead of the overview
        use_cache: If False, overview sizes are always re-measured
    """
    app = BurrowApp(settings=settings, start_path=start_path, use_cache=use_cache)
    app.run()
