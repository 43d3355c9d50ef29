"""Dashboard state and the single-threaded controller that mutates it.

Background work never touches the model. Scanners and the deletion engine
report through discrete events; the controller handles one event at a time
and answers with commands (start a scan, start a deletion, ...) for the app
to carry out.
"""

import os
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from burrow.format import display_path, humanize_bytes
from burrow.models import (
    DeleteOutcome,
    DeleteRequest,
    Entry,
    LargeFileEntry,
    OverviewEntry,
    PENDING_SIZE,
    ScanResult,
    sort_entries,
)
from burrow.progress import Counter, ScanProgress

SPINNER_FRAMES = ("|", "/", "-", "\\", "|", "/", "-", "\\")
DEFAULT_VIEWPORT = 12
MAX_VIEWPORT = 30
HEADER_FOOTER_ROWS = 6
LARGE_HEADER_FOOTER_ROWS = 5
# Spinner line and current path shown above the listing while it scans
PROGRESS_ROWS = 2


class Mode(str, Enum):
    OVERVIEW = "overview"
    LISTING = "listing"
    LARGE_FILES = "large_files"
    CONFIRMING_DELETE = "confirming_delete"
    DELETING = "deleting"


class Action(str, Enum):
    """User intents, decoupled from concrete key bindings."""

    UP = "up"
    DOWN = "down"
    PAGE_UP = "page_up"
    PAGE_DOWN = "page_down"
    HOME = "home"
    END = "end"
    ENTER = "enter"
    BACK = "back"
    ESCAPE = "escape"
    SELECT = "select"
    SELECT_ALL = "select_all"
    REFRESH = "refresh"
    LARGE_FILES = "large_files"
    OPEN = "open"
    INFO = "info"
    DELETE = "delete"
    QUIT = "quit"


# Events ---------------------------------------------------------------------


@dataclass(frozen=True)
class Key:
    action: Action


@dataclass(frozen=True)
class Resize:
    width: int
    height: int


@dataclass(frozen=True)
class Tick:
    pass


@dataclass(frozen=True)
class OverviewSized:
    token: int
    path: str
    size: int
    cached: bool = False


@dataclass(frozen=True)
class OverviewDone:
    token: int


@dataclass(frozen=True)
class ScanBatch:
    token: int
    entries: list


@dataclass(frozen=True)
class ScanDone:
    token: int
    result: ScanResult


@dataclass(frozen=True)
class ScanFailed:
    token: int
    message: str


@dataclass(frozen=True)
class SpotlightDone:
    token: int
    path: str
    files: list


@dataclass(frozen=True)
class DeleteDone:
    outcome: DeleteOutcome


@dataclass(frozen=True)
class InfoResolved:
    path: str
    last_used: Optional[datetime]


@dataclass(frozen=True)
class AccessResolved:
    times: dict


# Commands -------------------------------------------------------------------


@dataclass(frozen=True)
class StartOverview:
    token: int
    force: bool = False


@dataclass(frozen=True)
class StartScan:
    token: int
    path: str
    progress: Optional[ScanProgress] = field(default=None, compare=False)


@dataclass(frozen=True)
class StartSpotlight:
    token: int
    path: str


@dataclass(frozen=True)
class CancelScan:
    pass


@dataclass(frozen=True)
class StartDelete:
    request: DeleteRequest
    counter: Counter


@dataclass(frozen=True)
class InterruptDelete:
    pass


@dataclass(frozen=True)
class Reveal:
    path: str


@dataclass(frozen=True)
class LookupInfo:
    path: str


@dataclass(frozen=True)
class Quit:
    pass


# Model ----------------------------------------------------------------------


@dataclass
class HistoryFrame:
    """Where to return on "back"; retains the listing when it was complete."""

    path: Optional[str]
    selected: int = 0
    offset: int = 0
    entries: Optional[list] = None
    large_files: Optional[list] = None
    total_files: int = 0


@dataclass
class Model:
    mode: Mode = Mode.OVERVIEW
    scanning: bool = False
    overview_scanning: bool = False
    large_scanning: bool = False
    path: Optional[str] = None
    overview: list = field(default_factory=list)
    overview_sized: bool = False
    entries: list = field(default_factory=list)
    large_files: list = field(default_factory=list)
    large_files_path: Optional[str] = None
    history: list = field(default_factory=list)
    selected: int = 0
    offset: int = 0
    large_selected: int = 0
    large_offset: int = 0
    multi_selected: set = field(default_factory=set)
    large_multi_selected: set = field(default_factory=set)
    width: int = 80
    height: int = 0
    status: str = ""
    spinner: int = 0
    delete_request: Optional[DeleteRequest] = None
    delete_counter: Optional[Counter] = None
    return_mode: Optional[Mode] = None
    scan_token: int = 0
    overview_token: int = 0
    spotlight_token: int = 0
    progress: ScanProgress = field(default_factory=ScanProgress)
    total_files: int = 0
    last_total_files: int = 0
    listing_stale: bool = False
    access_resolved: set = field(default_factory=set)
    pending_cursor: Optional[tuple] = None
    file_counts: dict = field(default_factory=dict)

    @property
    def in_overview(self) -> bool:
        return self.mode == Mode.OVERVIEW

    @property
    def showing_large_files(self) -> bool:
        mode = self.return_mode if self.mode in (Mode.CONFIRMING_DELETE, Mode.DELETING) else self.mode
        return mode == Mode.LARGE_FILES

    @property
    def current_entries(self) -> list:
        return self.overview if self.in_overview else self.entries

    @property
    def total_size(self) -> int:
        return sum(max(e.size, 0) for e in self.current_entries)

    @property
    def spinner_frame(self) -> str:
        return SPINNER_FRAMES[self.spinner % len(SPINNER_FRAMES)]


def calculate_viewport(term_height: int, large_files: bool = False) -> int:
    """Visible rows for the terminal height, minus fixed header/footer rows."""
    if term_height <= 0:
        return DEFAULT_VIEWPORT
    reserved = LARGE_HEADER_FOOTER_ROWS if large_files else HEADER_FOOTER_ROWS
    return max(1, min(term_height - reserved, MAX_VIEWPORT))


def listing_viewport(model: Model) -> int:
    """Visible listing rows, leaving room for the progress lines during a scan."""
    rows = calculate_viewport(model.height, False)
    if model.scanning and model.height > 0:
        rows = max(1, rows - PROGRESS_ROWS)
    return rows


def clamp_cursor(selected: int, offset: int, count: int, viewport: int) -> tuple[int, int]:
    """Keep the cursor inside the list and the viewport around the cursor."""
    if count <= 0:
        return 0, 0
    selected = max(0, min(selected, count - 1))
    offset = max(0, min(offset, max(0, count - viewport)))
    if selected < offset:
        offset = selected
    elif selected >= offset + viewport:
        offset = selected - viewport + 1
    return selected, offset


class Controller:
    """Owns the Model; handles one event at a time."""

    def __init__(self, model: Model | None = None):
        self.model = model or Model()
        self._handlers = {
            Key: self._on_key,
            Resize: self._on_resize,
            Tick: self._on_tick,
            OverviewSized: self._on_overview_sized,
            OverviewDone: self._on_overview_done,
            ScanBatch: self._on_scan_batch,
            ScanDone: self._on_scan_done,
            ScanFailed: self._on_scan_failed,
            SpotlightDone: self._on_spotlight_done,
            DeleteDone: self._on_delete_done,
            InfoResolved: self._on_info_resolved,
            AccessResolved: self._on_access_resolved,
        }

    # Entry points -----------------------------------------------------------

    def start(self, overview: list[OverviewEntry], path: str | None = None) -> list:
        """Initial commands: the overview pass, or a listing of path."""
        m = self.model
        m.overview = overview
        if path:
            return self._enter_listing(os.path.abspath(path))
        m.mode = Mode.OVERVIEW
        return self._start_overview(force=False)

    def handle(self, event) -> list:
        handler = self._handlers.get(type(event))
        if handler is None:
            return []
        return handler(event)

    def take_access_lookups(self) -> list[str]:
        """
        Visible listing rows whose last access time is still unknown.

        Each path is handed out once; the app stats them in a worker and
        answers with AccessResolved.
        """
        m = self.model
        if m.mode != Mode.LISTING:
            return []
        paths = []
        for entry in m.entries[m.offset : m.offset + self.viewport()]:
            if entry.pending or entry.folded or entry.path in m.access_resolved:
                continue
            m.access_resolved.add(entry.path)
            if entry.last_access is None:
                paths.append(entry.path)
        return paths

    # Helpers ----------------------------------------------------------------

    def viewport(self) -> int:
        m = self.model
        if m.in_overview:
            return max(len(m.overview), 1)
        if m.showing_large_files:
            return calculate_viewport(m.height, True)
        return listing_viewport(m)

    def _clamp(self) -> None:
        m = self.model
        if m.showing_large_files:
            m.large_selected, m.large_offset = clamp_cursor(
                m.large_selected, m.large_offset, len(m.large_files), self.viewport()
            )
        else:
            m.selected, m.offset = clamp_cursor(
                m.selected, m.offset, len(m.current_entries), self.viewport()
            )

    def _cursor_entry(self) -> Entry | LargeFileEntry | None:
        m = self.model
        if m.showing_large_files:
            items, index = m.large_files, m.large_selected
        else:
            items, index = m.current_entries, m.selected
        if 0 <= index < len(items):
            return items[index]
        return None

    def _prune_selection(self) -> None:
        m = self.model
        m.multi_selected &= {e.path for e in m.entries}
        m.large_multi_selected &= {f.path for f in m.large_files}

    def _clear_selection(self) -> None:
        self.model.multi_selected.clear()
        self.model.large_multi_selected.clear()

    # Transitions ------------------------------------------------------------

    def _start_overview(self, force: bool) -> list:
        m = self.model
        m.overview_token += 1
        m.overview_scanning = True
        m.overview_sized = True
        for entry in m.overview:
            entry.size = PENDING_SIZE
            entry.cached = False
        m.status = "Measuring top-level locations..."
        return [StartOverview(token=m.overview_token, force=force)]

    def _enter_listing(self, path: str, selected: int = 0, offset: int = 0) -> list:
        m = self.model
        m.mode = Mode.LISTING
        m.path = path
        m.entries = []
        m.large_files = []
        m.large_files_path = None
        m.selected = m.offset = 0
        # Cursor restored once the listing is complete
        m.pending_cursor = (selected, offset) if selected or offset else None
        m.large_selected = m.large_offset = 0
        m.listing_stale = False
        m.access_resolved = set()
        self._clear_selection()
        return self._start_scan()

    def _start_scan(self) -> list:
        m = self.model
        m.scan_token += 1
        m.scanning = True
        m.status = ""
        m.last_total_files = m.file_counts.get(m.path, 0)
        # Fresh counters per run; a cancelled run may still be adding to its own
        m.progress = ScanProgress()
        return [CancelScan(), StartScan(token=m.scan_token, path=m.path, progress=m.progress)]

    def _push_history(self) -> None:
        m = self.model
        if m.in_overview:
            m.history.append(HistoryFrame(path=None, selected=m.selected, offset=m.offset))
            return
        complete = not m.scanning
        m.history.append(
            HistoryFrame(
                path=m.path,
                selected=m.selected,
                offset=m.offset,
                entries=list(m.entries) if complete else None,
                large_files=list(m.large_files) if complete else None,
                total_files=m.total_files,
            )
        )

    def _drill_in(self) -> list:
        m = self.model
        entry = self._cursor_entry()
        if entry is None:
            return []
        if m.in_overview:
            self._push_history()
            return self._enter_listing(entry.path)
        if not entry.explorable:
            if entry.folded:
                m.status = f"{entry.name} is folded: sized, not browsable"
            elif entry.is_symlink:
                m.status = f"{entry.name} is a link and is not followed"
            else:
                m.status = f"{entry.name} is not a directory"
            return []
        commands = [CancelScan()] if m.scanning else []
        self._push_history()
        return commands + self._enter_listing(entry.path)

    def _go_back(self) -> list:
        m = self.model
        commands = [CancelScan()] if m.scanning else []
        m.scanning = False
        self._clear_selection()

        if not m.history:
            if m.in_overview:
                return commands
            # Launched on a directory: the overview is the level above
            m.mode = Mode.OVERVIEW
            m.path = None
            m.selected = m.offset = 0
            if not m.overview_sized:
                return commands + self._start_overview(force=False)
            return commands

        frame = m.history.pop()
        if frame.path is None:
            m.mode = Mode.OVERVIEW
            m.path = None
            m.selected, m.offset = frame.selected, frame.offset
            self._clamp()
            if not m.overview_sized:
                return commands + self._start_overview(force=False)
            return commands

        if frame.entries is not None:
            m.mode = Mode.LISTING
            m.path = frame.path
            m.entries = frame.entries
            m.large_files = frame.large_files or []
            m.large_files_path = None
            m.total_files = frame.total_files
            m.last_total_files = frame.total_files
            m.selected, m.offset = frame.selected, frame.offset
            m.status = ""
            self._clamp()
            return commands

        return commands + self._enter_listing(frame.path, frame.selected, frame.offset)

    def _refresh(self) -> list:
        m = self.model
        if m.in_overview:
            return self._start_overview(force=True)
        if m.mode == Mode.LARGE_FILES:
            return self._start_spotlight()
        self._clear_selection()
        return self._start_scan()

    def _start_spotlight(self) -> list:
        m = self.model
        m.spotlight_token += 1
        m.large_scanning = True
        m.large_files_path = m.path
        return [StartSpotlight(token=m.spotlight_token, path=m.path)]

    def _toggle_large_files(self) -> list:
        m = self.model
        if m.mode == Mode.LARGE_FILES:
            m.mode = Mode.LISTING
            self._clear_selection()
            if m.listing_stale:
                return self._start_scan()
            return []
        if m.scanning:
            m.status = "Wait for the scan to finish"
            return []
        m.mode = Mode.LARGE_FILES
        self._clear_selection()
        m.large_selected = m.large_offset = 0
        if m.large_files_path != m.path:
            return self._start_spotlight()
        return []

    def _toggle_select(self) -> None:
        m = self.model
        entry = self._cursor_entry()
        if entry is None:
            return
        chosen = m.large_multi_selected if m.showing_large_files else m.multi_selected
        if entry.path in chosen:
            chosen.discard(entry.path)
        else:
            chosen.add(entry.path)

    def _select_all(self) -> None:
        m = self.model
        if m.showing_large_files:
            m.large_multi_selected = {f.path for f in m.large_files}
        else:
            m.multi_selected = {e.path for e in m.entries if not e.pending}

    def _request_delete(self) -> list:
        m = self.model
        if m.scanning:
            # The finished scan would bring deleted entries back
            m.status = "Wait for the scan to finish"
            return []
        if m.showing_large_files:
            chosen, items = m.large_multi_selected, m.large_files
        else:
            chosen, items = m.multi_selected, m.entries
        if not chosen:
            m.status = "Select items with Space first"
            return []
        by_path = {item.path: item for item in items}
        paths = sorted(p for p in chosen if p in by_path)
        m.delete_request = DeleteRequest(
            root=m.path,
            paths=paths,
            total_size=sum(max(by_path[p].size, 0) for p in paths),
        )
        m.return_mode = m.mode
        m.mode = Mode.CONFIRMING_DELETE
        return []

    def _confirm_delete(self) -> list:
        m = self.model
        request = m.delete_request.model_copy(update={"confirmed": True})
        m.delete_request = request
        m.delete_counter = Counter()
        m.mode = Mode.DELETING
        m.status = ""
        return [StartDelete(request=request, counter=m.delete_counter)]

    def _cancel_delete(self) -> None:
        m = self.model
        m.mode = m.return_mode or Mode.LISTING
        m.return_mode = None
        m.delete_request = None
        m.status = "Delete cancelled"

    def _move(self, action: Action) -> None:
        m = self.model
        page = self.viewport()
        delta = {
            Action.UP: -1,
            Action.DOWN: 1,
            Action.PAGE_UP: -page,
            Action.PAGE_DOWN: page,
        }.get(action)
        if m.showing_large_files:
            count = len(m.large_files)
            current = m.large_selected
        else:
            count = len(m.current_entries)
            current = m.selected
        if action == Action.HOME:
            target = 0
        elif action == Action.END:
            target = count - 1
        else:
            target = current + delta
        if m.showing_large_files:
            m.large_selected = target
        else:
            m.selected = target
        self._clamp()

    # Event handlers ---------------------------------------------------------

    def _on_key(self, event: Key) -> list:
        m = self.model
        action = event.action

        if m.mode == Mode.CONFIRMING_DELETE:
            if action == Action.ENTER:
                return self._confirm_delete()
            self._cancel_delete()
            return []

        if m.mode == Mode.DELETING:
            if action in (Action.QUIT, Action.ESCAPE):
                m.status = "Stopping after the deletions in progress..."
                return [InterruptDelete()]
            return []

        if action == Action.QUIT:
            return [CancelScan(), Quit()]
        if action in (Action.UP, Action.DOWN, Action.PAGE_UP, Action.PAGE_DOWN, Action.HOME, Action.END):
            self._move(action)
            return []
        if action == Action.REFRESH:
            return self._refresh()
        if action in (Action.OPEN, Action.INFO):
            entry = self._cursor_entry()
            if entry is None:
                return []
            if action == Action.OPEN:
                return [Reveal(path=entry.path)]
            return [LookupInfo(path=entry.path)]

        if m.mode == Mode.LARGE_FILES:
            if action in (Action.BACK, Action.ESCAPE, Action.LARGE_FILES):
                return self._toggle_large_files()
        elif action in (Action.BACK, Action.ESCAPE):
            return self._go_back()

        if action == Action.ENTER:
            if m.mode == Mode.LARGE_FILES:
                return []
            return self._drill_in()
        if m.in_overview:
            if action == Action.DELETE:
                m.status = "Open a location to delete items in it"
            return []
        if action == Action.LARGE_FILES:
            return self._toggle_large_files()
        if action == Action.SELECT:
            self._toggle_select()
        elif action == Action.SELECT_ALL:
            self._select_all()
        elif action == Action.DELETE:
            return self._request_delete()
        return []

    def _on_resize(self, event: Resize) -> list:
        self.model.width = event.width
        self.model.height = event.height
        self._clamp()
        return []

    def _on_tick(self, event: Tick) -> list:
        self.model.spinner = (self.model.spinner + 1) % len(SPINNER_FRAMES)
        return []

    def _on_overview_sized(self, event: OverviewSized) -> list:
        m = self.model
        if event.token != m.overview_token:
            return []
        for entry in m.overview:
            if entry.path == event.path:
                entry.size = max(event.size, 0)
                entry.cached = event.cached
        return []

    def _on_overview_done(self, event: OverviewDone) -> list:
        m = self.model
        if event.token != m.overview_token:
            return []
        m.overview_scanning = False
        for entry in m.overview:
            if entry.pending:
                entry.size = 0
        if m.in_overview:
            m.status = ""
        return []

    def _on_scan_batch(self, event: ScanBatch) -> list:
        m = self.model
        if event.token != m.scan_token or not m.scanning:
            return []
        m.entries = sort_entries(m.entries + list(event.entries))
        if not m.showing_large_files and m.pending_cursor is None:
            self._clamp()
        return []

    def _on_scan_done(self, event: ScanDone) -> list:
        m = self.model
        if event.token != m.scan_token:
            return []
        result = event.result
        m.scanning = False
        m.entries = list(result.entries)
        m.large_files = list(result.large_files)
        m.large_files_path = None
        m.total_files = result.total_files
        m.file_counts[m.path] = result.total_files
        m.listing_stale = False
        m.status = ""
        if m.pending_cursor is not None:
            m.selected, m.offset = m.pending_cursor
            m.pending_cursor = None
        self._prune_selection()
        self._clamp()
        return []

    def _on_scan_failed(self, event: ScanFailed) -> list:
        m = self.model
        if event.token != m.scan_token:
            return []
        m.scanning = False
        m.entries = []
        m.status = event.message
        self._clamp()
        return []

    def _on_spotlight_done(self, event: SpotlightDone) -> list:
        m = self.model
        if event.token != m.spotlight_token:
            return []
        m.large_scanning = False
        if event.path != m.path:
            return []
        # Replaces the list tracked by the listing scan only when it finds more
        if len(event.files) > len(m.large_files):
            m.large_files = list(event.files)
        self._prune_selection()
        if m.showing_large_files:
            self._clamp()
        return []

    def _on_delete_done(self, event: DeleteDone) -> list:
        m = self.model
        outcome = event.outcome
        removed = set(outcome.removed)

        m.mode = m.return_mode or Mode.LISTING
        m.return_mode = None
        m.delete_request = None

        if removed:
            if m.mode == Mode.LARGE_FILES:
                # Sizes of listing entries that held these files are now wrong
                m.listing_stale = True
            m.entries = [e for e in m.entries if e.path not in removed]
            m.large_files = [f for f in m.large_files if f.path not in removed]
            for frame in m.history:
                frame.entries = None
                frame.large_files = None
            # Cached overview sizes were invalidated; re-measure on return
            m.overview_sized = False
        self._clear_selection()

        parts = [f"Deleted {outcome.success_count} item(s), {humanize_bytes(outcome.bytes_freed)} freed"]
        if outcome.failed:
            path, reason = next(iter(outcome.failed.items()))
            parts.append(f"{outcome.failure_count} not removed ({os.path.basename(path)}: {reason})")
        if outcome.skipped:
            parts.append(f"{len(outcome.skipped)} skipped")
        m.status = "; ".join(parts)
        self._clamp()
        return []

    def _on_info_resolved(self, event: InfoResolved) -> list:
        m = self.model
        items = m.large_files if m.showing_large_files else m.current_entries
        item = next((i for i in items if i.path == event.path), None)
        if item is None:
            return []
        kind = "directory" if getattr(item, "is_dir", False) else "file"
        used = event.last_used.strftime("%Y-%m-%d %H:%M") if event.last_used else "unknown"
        size = humanize_bytes(item.size) if item.size >= 0 else "pending"
        m.status = f"{display_path(item.path)}  |  {kind}, {size}  |  last used {used}"
        return []

    def _on_access_resolved(self, event: AccessResolved) -> list:
        for entry in self.model.entries:
            when = event.times.get(entry.path)
            if when is not None:
                entry.last_access = when
        return []
