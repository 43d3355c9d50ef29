"""Tests for the dashboard state machine."""

from datetime import datetime

import pytest

from burrow.models import DeleteOutcome, Entry, LargeFileEntry, OverviewEntry, ScanResult
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
    Mode,
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
    calculate_viewport,
    clamp_cursor,
)

ROOT = "/data"


def make_entries(n: int, root: str = ROOT) -> list[Entry]:
    return [
        Entry(name=f"e{i:03d}", path=f"{root}/e{i:03d}", size=(n - i) * 10, is_dir=True)
        for i in range(n)
    ]


def press(controller: Controller, *actions: Action) -> list:
    commands = []
    for action in actions:
        commands.extend(controller.handle(Key(action)))
    return commands


def of_type(commands, kind):
    return [c for c in commands if isinstance(c, kind)]


def listing(n: int = 5, height: int = 18, path: str = ROOT) -> Controller:
    """Controller showing a finished listing of n directories."""
    controller = Controller()
    controller.handle(Resize(120, height))
    controller.start([], path)
    finish_scan(controller, make_entries(n, path))
    return controller


def finish_scan(controller: Controller, entries, large_files=None, total_files=0):
    m = controller.model
    result = ScanResult(root=m.path, entries=entries, large_files=large_files or [], total_files=total_files)
    return controller.handle(ScanDone(token=m.scan_token, result=result))


class TestViewport:
    def test_default_when_height_unknown(self):
        assert calculate_viewport(0) == 12
        assert calculate_viewport(-5) == 12

    def test_reserves_header_and_footer(self):
        assert calculate_viewport(18) == 12
        assert calculate_viewport(17, large_files=True) == 12

    def test_bounds(self):
        assert calculate_viewport(3) == 1
        assert calculate_viewport(200) == 30

    def test_clamp_cursor(self):
        assert clamp_cursor(50, 0, 10, 5) == (9, 5)
        assert clamp_cursor(0, 7, 10, 5) == (0, 0)
        assert clamp_cursor(3, 3, 0, 5) == (0, 0)


class TestOverview:
    def make(self):
        controller = Controller()
        roots = [OverviewEntry(name="Home", path="/home/u"), OverviewEntry(name="Optional", path="/opt")]
        commands = controller.start(roots)
        return controller, commands

    def test_start_runs_overview_pass(self):
        controller, commands = self.make()
        assert commands == [StartOverview(token=1, force=False)]
        assert controller.model.mode == Mode.OVERVIEW
        assert controller.model.overview_scanning

    def test_sized_events_update_rows(self):
        controller, _ = self.make()
        controller.handle(OverviewSized(token=1, path="/opt", size=500, cached=True))
        opt = controller.model.overview[1]
        assert opt.size == 500
        assert opt.cached
        assert controller.model.overview[0].pending

    def test_stale_token_ignored(self):
        controller, _ = self.make()
        press(controller, Action.REFRESH)
        controller.handle(OverviewSized(token=1, path="/opt", size=500))
        assert controller.model.overview[1].pending

    def test_refresh_forces_remeasure(self):
        controller, _ = self.make()
        controller.handle(OverviewSized(token=1, path="/opt", size=500))
        commands = press(controller, Action.REFRESH)
        assert commands == [StartOverview(token=2, force=True)]
        assert all(e.pending for e in controller.model.overview)

    def test_done_settles_unsized_rows(self):
        controller, _ = self.make()
        controller.handle(OverviewSized(token=1, path="/opt", size=500))
        controller.handle(OverviewDone(token=1))
        assert not controller.model.overview_scanning
        assert controller.model.overview[0].size == 0

    def test_enter_opens_listing(self):
        controller, _ = self.make()
        press(controller, Action.DOWN)
        commands = press(controller, Action.ENTER)
        assert of_type(commands, StartScan) == [StartScan(token=1, path="/opt")]
        assert controller.model.mode == Mode.LISTING
        assert controller.model.history[-1].path is None
        assert controller.model.history[-1].selected == 1

    def test_back_returns_to_overview_cursor(self):
        controller, _ = self.make()
        press(controller, Action.DOWN, Action.ENTER)
        press(controller, Action.BACK)
        assert controller.model.mode == Mode.OVERVIEW
        assert controller.model.selected == 1

    def test_delete_not_offered(self):
        controller, _ = self.make()
        assert press(controller, Action.DELETE) == []
        assert controller.model.mode == Mode.OVERVIEW


class TestListingScan:
    def test_start_with_path(self):
        controller = Controller()
        commands = controller.start([], ROOT)
        assert commands == [CancelScan(), StartScan(token=1, path=ROOT)]
        assert controller.model.scanning

    def test_batches_accumulate_sorted(self):
        controller = Controller()
        controller.start([], ROOT)
        small = Entry(name="small", path=f"{ROOT}/small", size=1)
        big = Entry(name="big", path=f"{ROOT}/big", size=100)
        controller.handle(ScanBatch(token=1, entries=[small]))
        controller.handle(ScanBatch(token=1, entries=[big]))
        assert [e.name for e in controller.model.entries] == ["big", "small"]
        assert controller.model.scanning

    def test_done_replaces_entries(self):
        controller = listing(3)
        assert not controller.model.scanning
        assert [e.name for e in controller.model.entries] == ["e000", "e001", "e002"]
        assert controller.model.total_size == 60

    def test_stale_results_ignored(self):
        controller = listing(3)
        press(controller, Action.REFRESH)
        stale = ScanResult(root=ROOT, entries=make_entries(1))
        controller.handle(ScanDone(token=1, result=stale))
        assert controller.model.scanning
        assert len(controller.model.entries) == 3

    def test_failure_shows_status(self):
        controller = Controller()
        controller.start([], ROOT)
        controller.handle(ScanFailed(token=1, message="Cannot read /data: denied"))
        assert not controller.model.scanning
        assert controller.model.status == "Cannot read /data: denied"
        assert controller.model.mode == Mode.LISTING

    def test_each_scan_gets_its_own_counters(self):
        controller = listing(3)
        first = controller.model.progress
        (start,) = of_type(press(controller, Action.REFRESH), StartScan)
        assert start.progress is controller.model.progress
        assert start.progress is not first

        # A superseded run still adding to its counters
        first.add(files=10, size=1_000_000_000)
        assert controller.model.progress.snapshot().bytes_scanned == 0

    def test_rescan_uses_previous_file_count(self):
        controller = Controller()
        controller.start([], ROOT)
        finish_scan(controller, make_entries(2), total_files=400)
        press(controller, Action.REFRESH)
        assert controller.model.last_total_files == 400


class TestPagination:
    def test_offset_follows_cursor(self):
        controller = listing(100, height=18)
        press(controller, *[Action.DOWN] * 11)
        assert (controller.model.selected, controller.model.offset) == (11, 0)
        press(controller, Action.DOWN)
        assert (controller.model.selected, controller.model.offset) == (12, 1)

    def test_cursor_stays_in_bounds(self):
        controller = listing(3)
        press(controller, Action.UP)
        assert controller.model.selected == 0
        press(controller, Action.END, Action.DOWN)
        assert controller.model.selected == 2

    def test_page_keys(self):
        controller = listing(100, height=18)
        press(controller, Action.PAGE_DOWN)
        assert controller.model.selected == 12
        press(controller, Action.PAGE_UP)
        assert controller.model.selected == 0
        press(controller, Action.END)
        assert (controller.model.selected, controller.model.offset) == (99, 88)
        press(controller, Action.HOME)
        assert (controller.model.selected, controller.model.offset) == (0, 0)

    def test_resize_reclamps(self):
        controller = listing(100, height=18)
        press(controller, *[Action.DOWN] * 11)
        controller.handle(Resize(120, 10))
        assert controller.model.offset == 8

    def test_scanning_leaves_room_for_progress(self):
        controller = listing(100, height=18)
        assert controller.viewport() == 12
        press(controller, Action.REFRESH)
        assert controller.viewport() == 10
        press(controller, *[Action.DOWN] * 10)
        assert (controller.model.selected, controller.model.offset) == (10, 1)


class TestNavigation:
    def test_drill_in_and_back_restores_listing(self):
        controller = listing(20)
        press(controller, *[Action.DOWN] * 5)
        commands = press(controller, Action.ENTER)
        assert of_type(commands, StartScan) == [StartScan(token=2, path=f"{ROOT}/e005")]
        finish_scan(controller, make_entries(2, f"{ROOT}/e005"))

        commands = press(controller, Action.BACK)
        assert of_type(commands, StartScan) == []
        assert controller.model.path == ROOT
        assert controller.model.selected == 5
        assert len(controller.model.entries) == 20

    def test_back_from_unfinished_listing_rescans(self):
        controller = listing(20)
        press(controller, Action.DOWN, Action.REFRESH)
        press(controller, Action.ENTER)
        commands = press(controller, Action.BACK)
        assert of_type(commands, StartScan) == [StartScan(token=4, path=ROOT)]
        finish_scan(controller, make_entries(20))
        assert controller.model.selected == 1

    def test_folded_entry_not_opened(self):
        controller = listing(0)
        folded = Entry(name="node_modules", path=f"{ROOT}/node_modules", size=5, is_dir=True, folded=True)
        finish_scan(controller, [folded])
        assert press(controller, Action.ENTER) == []
        assert "folded" in controller.model.status
        assert controller.model.history == []

    def test_files_not_opened(self):
        controller = listing(0)
        finish_scan(controller, [Entry(name="a.bin", path=f"{ROOT}/a.bin", size=5)])
        assert press(controller, Action.ENTER) == []

    def test_back_at_top_goes_to_overview(self):
        controller = listing(3)
        commands = press(controller, Action.BACK)
        assert controller.model.mode == Mode.OVERVIEW
        assert of_type(commands, StartOverview) == [StartOverview(token=1, force=False)]

    def test_selection_cleared_on_navigation(self):
        controller = listing(5)
        press(controller, Action.SELECT, Action.DOWN, Action.ENTER)
        assert controller.model.multi_selected == set()


class TestSelection:
    def test_toggle(self):
        controller = listing(5)
        press(controller, Action.SELECT)
        assert controller.model.multi_selected == {f"{ROOT}/e000"}
        press(controller, Action.SELECT)
        assert controller.model.multi_selected == set()

    def test_select_all(self):
        controller = listing(5)
        press(controller, Action.SELECT_ALL)
        assert len(controller.model.multi_selected) == 5

    def test_pruned_to_current_listing(self):
        controller = listing(5)
        press(controller, Action.SELECT_ALL)
        controller.model.scanning = True
        finish_scan(controller, make_entries(2))
        assert controller.model.multi_selected == {f"{ROOT}/e000", f"{ROOT}/e001"}


class TestDeleteFlow:
    def test_empty_selection_blocks_confirmation(self):
        controller = listing(5)
        assert press(controller, Action.DELETE) == []
        assert controller.model.mode == Mode.LISTING
        assert controller.model.delete_request is None
        assert "Space" in controller.model.status

    def test_confirmation_request(self):
        controller = listing(5)
        press(controller, Action.SELECT, Action.DOWN, Action.SELECT, Action.DELETE)
        request = controller.model.delete_request
        assert controller.model.mode == Mode.CONFIRMING_DELETE
        assert request.paths == [f"{ROOT}/e000", f"{ROOT}/e001"]
        assert request.total_size == 90
        assert request.root == ROOT
        assert not request.confirmed

    def test_other_key_cancels(self):
        controller = listing(5)
        press(controller, Action.SELECT, Action.DELETE, Action.DOWN)
        assert controller.model.mode == Mode.LISTING
        assert controller.model.delete_request is None
        assert controller.model.multi_selected == {f"{ROOT}/e000"}

    def test_enter_confirms(self):
        controller = listing(5)
        press(controller, Action.SELECT, Action.DELETE)
        commands = press(controller, Action.ENTER)
        (start,) = of_type(commands, StartDelete)
        assert start.request.confirmed
        assert start.counter is controller.model.delete_counter
        assert controller.model.mode == Mode.DELETING

    def test_quit_while_deleting_interrupts(self):
        controller = listing(5)
        press(controller, Action.SELECT, Action.DELETE, Action.ENTER)
        assert press(controller, Action.QUIT) == [InterruptDelete()]
        assert controller.model.mode == Mode.DELETING
        assert press(controller, Action.DOWN) == []

    def test_completion_updates_listing(self):
        controller = listing(5)
        press(controller, Action.SELECT, Action.DOWN, Action.SELECT, Action.DELETE, Action.ENTER)
        outcome = DeleteOutcome(
            removed=[f"{ROOT}/e000"], failed={f"{ROOT}/e001": "no longer exists"}, bytes_freed=50
        )
        controller.handle(DeleteDone(outcome=outcome))
        m = controller.model
        assert m.mode == Mode.LISTING
        assert [e.name for e in m.entries] == ["e001", "e002", "e003", "e004"]
        assert m.multi_selected == set()
        assert "Deleted 1 item(s)" in m.status
        assert "no longer exists" in m.status

    def test_refused_while_scanning(self):
        controller = Controller()
        controller.start([], ROOT)
        first = Entry(name="a", path=f"{ROOT}/a", size=100)
        controller.handle(ScanBatch(token=1, entries=[first]))
        assert press(controller, Action.SELECT, Action.DELETE) == []
        assert controller.model.mode == Mode.LISTING
        assert controller.model.delete_request is None
        assert "scan" in controller.model.status

        second = Entry(name="b", path=f"{ROOT}/b", size=50)
        finish_scan(controller, [first, second])
        press(controller, Action.DELETE, Action.ENTER)
        controller.handle(DeleteDone(outcome=DeleteOutcome(removed=[f"{ROOT}/a"])))
        assert [e.path for e in controller.model.entries] == [f"{ROOT}/b"]

    def test_completion_invalidates_retained_listings(self):
        controller = listing(5)
        press(controller, Action.ENTER)
        finish_scan(controller, make_entries(3, f"{ROOT}/e000"))
        press(controller, Action.SELECT, Action.DELETE, Action.ENTER)
        controller.handle(DeleteDone(outcome=DeleteOutcome(removed=[f"{ROOT}/e000/e000"])))
        assert controller.model.history[-1].entries is None
        assert not controller.model.overview_sized


class TestLargeFiles:
    def test_not_while_scanning(self):
        controller = Controller()
        controller.start([], ROOT)
        assert press(controller, Action.LARGE_FILES) == []
        assert controller.model.mode == Mode.LISTING

    def test_toggle_starts_spotlight(self):
        tracked = [LargeFileEntry(path=f"{ROOT}/x.iso", size=5 << 20)]
        controller = listing(3)
        controller.model.scanning = True
        finish_scan(controller, make_entries(3), large_files=tracked)

        commands = press(controller, Action.LARGE_FILES)
        assert commands == [StartSpotlight(token=1, path=ROOT)]
        assert controller.model.mode == Mode.LARGE_FILES
        assert controller.model.large_files == tracked

    def test_spotlight_replaces_when_it_finds_more(self):
        controller = listing(3)
        press(controller, Action.LARGE_FILES)
        found = [LargeFileEntry(path=f"{ROOT}/a.iso", size=300), LargeFileEntry(path=f"{ROOT}/b.iso", size=200)]
        controller.handle(SpotlightDone(token=1, path=ROOT, files=found))
        assert controller.model.large_files == found
        assert not controller.model.large_scanning

    def test_tracked_list_kept_unless_spotlight_finds_more(self):
        tracked = [LargeFileEntry(path=f"{ROOT}/x.iso", size=5 << 20)]
        controller = listing(3)
        controller.model.scanning = True
        finish_scan(controller, make_entries(3), large_files=tracked)
        press(controller, Action.LARGE_FILES)
        found = [LargeFileEntry(path=f"{ROOT}/y.iso", size=4 << 20)]
        controller.handle(SpotlightDone(token=1, path=ROOT, files=found))
        assert controller.model.large_files == tracked

    def test_back_to_listing(self):
        controller = listing(3)
        press(controller, Action.LARGE_FILES)
        assert press(controller, Action.BACK) == []
        assert controller.model.mode == Mode.LISTING

    def test_delete_from_large_files_marks_listing_stale(self):
        controller = listing(3)
        press(controller, Action.LARGE_FILES)
        found = [LargeFileEntry(path=f"{ROOT}/e000/a.iso", size=300)]
        controller.handle(SpotlightDone(token=1, path=ROOT, files=found))
        press(controller, Action.SELECT, Action.DELETE)
        assert controller.model.delete_request.paths == [f"{ROOT}/e000/a.iso"]
        press(controller, Action.ENTER)
        controller.handle(DeleteDone(outcome=DeleteOutcome(removed=[f"{ROOT}/e000/a.iso"])))

        assert controller.model.mode == Mode.LARGE_FILES
        assert controller.model.large_files == []
        commands = press(controller, Action.LARGE_FILES)
        assert of_type(commands, StartScan) == [StartScan(token=2, path=ROOT)]


class TestMisc:
    def test_quit(self):
        controller = listing(3)
        assert of_type(press(controller, Action.QUIT), Quit) == [Quit()]

    def test_tick_advances_spinner(self):
        controller = Controller()
        controller.handle(Tick())
        controller.handle(Tick())
        assert controller.model.spinner == 2

    def test_open_and_info(self):
        controller = listing(3)
        assert press(controller, Action.OPEN) == [Reveal(path=f"{ROOT}/e000")]
        assert press(controller, Action.INFO) == [LookupInfo(path=f"{ROOT}/e000")]

    def test_info_resolved(self):
        controller = listing(3)
        controller.handle(InfoResolved(path=f"{ROOT}/e000", last_used=datetime(2024, 1, 2, 3, 4)))
        assert "2024-01-02 03:04" in controller.model.status
        assert "directory" in controller.model.status

    def test_access_lookups_handed_out_once(self):
        controller = listing(3)
        assert controller.model.entries[0].last_access is None
        paths = controller.take_access_lookups()
        assert paths == [f"{ROOT}/e000", f"{ROOT}/e001", f"{ROOT}/e002"]
        assert controller.take_access_lookups() == []

    def test_access_resolved(self):
        controller = listing(3)
        when = datetime(2023, 5, 6)
        controller.handle(AccessResolved(times={f"{ROOT}/e001": when, f"{ROOT}/e002": None}))
        assert controller.model.entries[1].last_access == when
        assert controller.model.entries[2].last_access is None

    def test_no_lookups_outside_listing(self):
        controller = Controller()
        controller.start([OverviewEntry(name="Home", path="/home/u", size=5)])
        assert controller.take_access_lookups() == []

    def test_unknown_event_ignored(self):
        assert Controller().handle(object()) == []


@pytest.mark.parametrize("action", [Action.UP, Action.DOWN, Action.SELECT, Action.DELETE])
def test_empty_listing_is_safe(action):
    controller = listing(0)
    press(controller, action)
    assert controller.model.selected == 0
