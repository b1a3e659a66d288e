import pytest
from unittest.mock import MagicMock, patch
from tour_engine.dom import ScrollContainer, VirtualDocument
from tour_engine.errors import (
    CannotStartError,
    InvalidIndexError,
    InvalidStepsError,
    TargetNotFoundError,
)
from tour_engine.models import Action, EventType, Lifecycle, Status, TourState
from tour_engine.tour import StateChanges, Tour, TourHelpers

STEPS = [
    {"target": "#a", "content": "first"},
    {"target": "#b", "content": "second"},
    {"target": "#c", "content": "third"},
    {"target": "#d", "content": "fourth"},
]


@pytest.fixture
def page():
    document = VirtualDocument()
    document.add("#a", top=300)
    document.add("#b", top=1200)
    document.add("#c", top=2000)
    document.add("#d", top=2600)
    return document


@pytest.fixture
def callback():
    return MagicMock()


def _types(callback):
    return [c.args[0].type for c in callback.call_args_list]


def _events(callback, event_type):
    return [c.args[0] for c in callback.call_args_list if c.args[0].type == event_type]


def _mount(page, callback, **props):
    props.setdefault("steps", STEPS)
    tour = Tour(page, callback=callback, **props)
    tour.mount()
    return tour


def _place(tour, beacon="bottom", tooltip="bottom", beacon_top=0, tooltip_top=0):
    tour.set_placement("beacon", {"placement": beacon, "topEdge": beacon_top})
    tour.set_placement("tooltip", {"placement": tooltip, "topEdge": tooltip_top})

# ---------------------------------------------------------------------------
# Mounting Tests
# ---------------------------------------------------------------------------

def test_mount_starts_tour(page, callback):
    tour = _mount(page, callback)

    assert tour.state.status == Status.RUNNING
    assert tour.state.index == 0
    assert _types(callback) == [EventType.TOUR_START]
    assert callback.call_args.args[0].step.target == "#a"

def test_mount_without_run_waits(page, callback):
    tour = _mount(page, callback, run=False)
    assert tour.state.status == Status.READY
    callback.assert_not_called()

def test_mount_without_run_is_not_controlled(page, callback):
    tour = _mount(page, callback, run=False, step_index=2)
    assert tour.state.controlled is False
    assert tour.state.index == 2

    tour.update_props(run=True)
    assert tour.state.status == Status.RUNNING
    assert tour.state.index == 2

    tour.helpers.next()
    assert tour.state.index == 3

def test_mount_with_run_and_index_is_controlled(page, callback):
    tour = _mount(page, callback, step_index=2)
    assert tour.state.controlled is True

def test_mount_hands_out_helpers(page, callback):
    received = MagicMock()
    tour = Tour(page, callback=callback, get_helpers=received, steps=STEPS)
    tour.mount()

    helpers = received.call_args.args[0]
    assert isinstance(helpers, TourHelpers)
    assert helpers.info() == tour.state

def test_context_manager_releases_key_listener(page, callback):
    with Tour(page, callback=callback, steps=STEPS) as tour:
        assert len(page.key_listeners) == 1
        assert tour.mounted
    assert page.key_listeners == []
    assert not tour.mounted

def test_unmount_is_idempotent_and_keeps_last_state(page, callback):
    tour = _mount(page, callback)
    tour.helpers.next()
    tour.unmount()
    tour.unmount()

    assert tour.state.index == 1
    tour.helpers.next()
    page.press("Escape")
    assert tour.state.index == 1

def test_unmount_releases_listener_after_skip(page, callback):
    tour = _mount(page, callback)
    tour.helpers.skip()
    tour.unmount()
    assert page.key_listeners == []

def test_helpers_before_mount_do_nothing(page, callback):
    tour = Tour(page, callback=callback, steps=STEPS)
    tour.helpers.next()
    callback.assert_not_called()
    assert tour.state.status == Status.IDLE

# ---------------------------------------------------------------------------
# Step Lifecycle Tests
# ---------------------------------------------------------------------------

def test_placements_promote_to_beacon(page, callback):
    tour = _mount(page, callback)
    _place(tour)

    assert tour.state.lifecycle == Lifecycle.BEACON
    assert _types(callback) == [EventType.TOUR_START, EventType.STEP_BEFORE, EventType.BEACON]

def test_single_placement_is_not_enough(page, callback):
    tour = _mount(page, callback)
    tour.set_placement("tooltip", {"placement": "bottom", "topEdge": 0})
    assert tour.state.lifecycle == Lifecycle.INIT

def test_open_then_next_emits_step_after(page, callback):
    tour = _mount(page, callback)
    _place(tour)
    tour.helpers.open()
    tour.helpers.next()

    assert _types(callback)[-2:] == [EventType.TOOLTIP, EventType.STEP_AFTER]
    after = _events(callback, EventType.STEP_AFTER)[0]
    assert after.index == 0
    assert after.lifecycle == Lifecycle.COMPLETE
    assert after.step.target == "#a"
    assert tour.state.index == 1

def test_disable_beacon_goes_straight_to_tooltip(page, callback):
    steps = [{"target": "#a", "disableBeacon": True}, {"target": "#b"}]
    tour = _mount(page, callback, steps=steps)
    tour.set_placement("tooltip", {"placement": "bottom", "topEdge": 0})

    assert tour.state.lifecycle == Lifecycle.TOOLTIP
    assert EventType.BEACON not in _types(callback)

def test_continuous_skips_beacon_after_first_step(page, callback):
    tour = _mount(page, callback, continuous=True)
    _place(tour)
    assert tour.state.lifecycle == Lifecycle.BEACON

    tour.helpers.open()
    tour.helpers.next()
    tour.set_placement("tooltip", {"placement": "bottom", "topEdge": 0})
    assert tour.state.lifecycle == Lifecycle.TOOLTIP

def test_continuous_shows_beacon_after_close(page, callback):
    tour = _mount(page, callback, continuous=True)
    _place(tour)
    tour.helpers.open()
    tour.helpers.close()

    _place(tour)
    assert tour.state.lifecycle == Lifecycle.BEACON

def test_center_step_needs_no_placement(page, callback):
    steps = [{"target": "#a"}, {"placement": "center", "content": "hello"}, {"target": "#c"}]
    tour = _mount(page, callback, steps=steps)
    callback.reset_mock()

    tour.helpers.next()

    assert tour.state.index == 1
    assert tour.state.lifecycle == Lifecycle.TOOLTIP
    assert _types(callback) == [EventType.STEP_AFTER, EventType.STEP_BEFORE, EventType.TOOLTIP]
    assert page.scrolls == []

def test_center_step_keeps_action_until_reveal(page, callback):
    steps = [{"target": "#a"}, {"placement": "center"}]
    tour = _mount(page, callback, steps=steps)
    tour.helpers.next()

    before = _events(callback, EventType.STEP_BEFORE)[0]
    assert before.action == Action.NEXT

def test_set_placement_rejects_unknown_kind(page, callback):
    tour = _mount(page, callback)
    with pytest.raises(ValueError, match="Unknown placement kind"):
        tour.set_placement("spotlight", {"placement": "top", "topEdge": 0})

def test_handle_resize_records_action(page, callback):
    tour = _mount(page, callback)
    _place(tour)
    tour.handle_resize()

    assert tour.state.action == Action.RESIZE
    assert tour.state.lifecycle == Lifecycle.BEACON

# ---------------------------------------------------------------------------
# Scrolling Tests
# ---------------------------------------------------------------------------

def test_first_step_does_not_scroll_by_default(page, callback):
    tour = _mount(page, callback)
    _place(tour)
    assert page.scrolls == []

def test_scroll_to_first_step(page, callback):
    tour = _mount(page, callback, scroll_to_first_step=True)
    _place(tour)
    assert page.scrolls == [(280, "document")]

def test_scrolls_when_revealing_next_step(page, callback):
    tour = _mount(page, callback)
    _place(tour)
    tour.helpers.open()
    tour.helpers.next()
    _place(tour, beacon="bottom", beacon_top=1190)

    assert page.scrolls == [(1180, "document")]

def test_scroll_uses_tooltip_edge_for_top_tooltip(page, callback):
    tour = _mount(page, callback, continuous=True)
    _place(tour)
    tour.helpers.open()
    tour.helpers.next()
    tour.set_placement("tooltip", {"placement": "top", "topEdge": 1050})

    assert page.scrolls == [(1030, "document")]

def test_scroll_respects_tour_scroll_offset(page, callback):
    tour = _mount(page, callback, scroll_offset=100)
    _place(tour)
    tour.helpers.open()
    tour.helpers.next()
    _place(tour)

    assert page.scrolls == [(1100, "document")]

def test_scroll_targets_custom_container(page, callback):
    page.add("#b", top=400, container=ScrollContainer("sidebar"))
    tour = _mount(page, callback)
    _place(tour)
    tour.helpers.open()
    tour.helpers.next()
    _place(tour, beacon="left", beacon_top=50)

    assert page.scrolls == [(380, "sidebar")]

def test_disable_scrolling(page, callback):
    tour = _mount(page, callback, disable_scrolling=True)
    _place(tour)
    tour.helpers.open()
    tour.helpers.next()
    _place(tour)
    assert page.scrolls == []

# ---------------------------------------------------------------------------
# Keyboard Tests
# ---------------------------------------------------------------------------

def test_escape_closes_open_tooltip(page, callback):
    tour = _mount(page, callback)
    _place(tour)
    tour.helpers.open()
    page.press("Escape")

    assert tour.state.action == Action.CLOSE
    assert tour.state.index == 1
    assert _types(callback)[-1] == EventType.STEP_AFTER

def test_escape_key_code(page, callback):
    tour = _mount(page, callback)
    _place(tour)
    tour.helpers.open()
    page.press(27)
    assert tour.state.index == 1

def test_escape_ignored_outside_tooltip(page, callback):
    tour = _mount(page, callback)
    _place(tour)
    page.press("Escape")
    assert tour.state.index == 0
    assert tour.state.lifecycle == Lifecycle.BEACON

def test_other_keys_ignored(page, callback):
    tour = _mount(page, callback)
    _place(tour)
    tour.helpers.open()
    page.press("Enter")
    assert tour.state.index == 0

def test_escape_ignored_when_step_forbids(page, callback):
    steps = [{"target": "#a", "disableCloseOnEsc": True}, {"target": "#b"}]
    tour = _mount(page, callback, steps=steps)
    _place(tour)
    tour.helpers.open()
    page.press("Escape")
    assert tour.state.index == 0

def test_escape_ignored_when_tour_forbids(page, callback):
    tour = _mount(page, callback, disable_close_on_esc=True)
    _place(tour)
    tour.helpers.open()
    page.press("Escape")
    assert tour.state.index == 0

# ---------------------------------------------------------------------------
# Tour End Tests
# ---------------------------------------------------------------------------

def test_finishing_emits_step_after_and_tour_end(page, callback):
    tour = _mount(page, callback, steps=STEPS[:2])
    tour.helpers.next()
    tour.helpers.next()

    assert _types(callback)[-2:] == [EventType.STEP_AFTER, EventType.TOUR_END]
    end = callback.call_args.args[0]
    assert end.index == 1
    assert end.status == Status.FINISHED
    assert end.step.target == "#b"
    # Terminal until an explicit start or reset.
    assert tour.state.status == Status.FINISHED
    assert tour.state.index == 1

def test_skip_emits_tour_end(page, callback):
    tour = _mount(page, callback)
    tour.helpers.skip()

    end = callback.call_args.args[0]
    assert end.type == EventType.TOUR_END
    assert end.status == Status.SKIPPED
    assert end.action == Action.SKIP

def test_reset_reports_status(page, callback):
    tour = _mount(page, callback)
    tour.helpers.next()
    tour.helpers.reset()

    assert tour.state.status == Status.READY
    assert tour.state.index == 0
    assert _types(callback)[-1] == EventType.TOUR_STATUS

def test_reset_with_restart_starts_again(page, callback):
    tour = _mount(page, callback)
    tour.helpers.skip()
    tour.helpers.reset(restart=True)

    assert tour.state.status == Status.RUNNING
    assert _types(callback)[-1] == EventType.TOUR_START

# ---------------------------------------------------------------------------
# Error Reporting Tests
# ---------------------------------------------------------------------------

def test_go_out_of_range_reports_status_event(page, callback):
    tour = _mount(page, callback, steps=STEPS[:3])
    before = tour.state
    tour.helpers.go(5)

    assert tour.state == before
    event = callback.call_args.args[0]
    assert event.type == EventType.TOUR_STATUS
    assert isinstance(event.error, InvalidIndexError)

def test_go_within_range(page, callback):
    tour = _mount(page, callback)
    tour.helpers.go(2)
    assert tour.state.index == 2
    assert tour.state.action == Action.GO

def test_missing_target_is_skipped(page, callback):
    page.remove("#b")
    tour = _mount(page, callback)
    tour.helpers.next()

    assert tour.state.index == 2
    assert tour.state.status == Status.RUNNING
    missing = _events(callback, EventType.TARGET_NOT_FOUND)
    assert len(missing) == 1
    assert missing[0].index == 1
    assert isinstance(missing[0].error, TargetNotFoundError)
    assert missing[0].error.target == "#b"
    assert isinstance(_events(callback, EventType.ERROR)[0].error, TargetNotFoundError)

def test_invisible_target_is_skipped_backwards(page, callback):
    page.add("#b", top=1200, visible=False)
    tour = _mount(page, callback)
    tour.helpers.go(2)
    tour.helpers.prev()

    assert tour.state.index == 0
    assert tour.state.action == Action.PREV

def test_missing_first_target_going_back_halts(page, callback):
    page.remove("#a")
    tour = _mount(page, callback, steps=STEPS[:3])
    assert tour.state.index == 1

    tour.helpers.prev()

    assert tour.state.status == Status.PAUSED
    assert tour.state.index == 0
    assert len(_events(callback, EventType.TARGET_NOT_FOUND)) == 2
    assert _types(callback)[-1] == EventType.TOUR_STATUS

    # No widget is ever shown for the missing element.
    _place(tour)
    assert tour.state.lifecycle == Lifecycle.INIT
    assert EventType.BEACON not in _types(callback)

def test_missing_last_target_finishes(page, callback):
    page.remove("#d")
    tour = _mount(page, callback)
    tour.helpers.go(3)

    assert tour.state.status == Status.FINISHED
    assert _types(callback)[-1] == EventType.TOUR_END

def test_missing_target_halts_by_policy(page, callback):
    page.remove("#b")
    tour = _mount(page, callback, target_not_found="halt")
    tour.helpers.next()

    assert tour.state.status == Status.PAUSED
    assert tour.state.index == 1

def test_missing_target_in_controlled_mode_waits_for_host(page, callback):
    page.remove("#b")
    tour = _mount(page, callback, step_index=0)
    tour.update_props(step_index=1)

    assert tour.state.index == 1
    assert tour.state.status == Status.RUNNING
    assert len(_events(callback, EventType.TARGET_NOT_FOUND)) == 1

def test_invalid_steps_at_mount(page, callback):
    tour = _mount(page, callback, steps=[{"content": "nowhere"}])

    assert tour.state.status == Status.IDLE
    event = callback.call_args.args[0]
    assert event.type == EventType.ERROR
    assert isinstance(event.error, InvalidStepsError)

    tour.update_props(steps=STEPS)
    assert tour.state.status == Status.RUNNING
    assert _types(callback)[-1] == EventType.TOUR_START

def test_invalid_steps_do_not_disturb_running_tour(page, callback):
    tour = _mount(page, callback)
    tour.helpers.next()
    before = tour.state

    tour.update_props(steps=[{"target": "#a"}, {"title": "no target"}])

    assert tour.state == before
    assert len(tour.props.steps) == 4
    assert isinstance(callback.call_args.args[0].error, InvalidStepsError)

def test_start_without_steps_waits_for_steps(page, callback):
    tour = _mount(page, callback, steps=[])

    event = callback.call_args.args[0]
    assert event.type == EventType.ERROR
    assert isinstance(event.error, CannotStartError)

    tour.update_props(steps=STEPS)
    assert tour.state.status == Status.RUNNING
    assert _types(callback)[-1] == EventType.TOUR_START

# ---------------------------------------------------------------------------
# Host Props Tests
# ---------------------------------------------------------------------------

def test_run_flag_starts_and_stops(page, callback):
    tour = _mount(page, callback, run=False)
    tour.update_props(run=True)
    assert tour.state.status == Status.RUNNING
    tour.helpers.next()

    tour.update_props(run=False)
    assert tour.state.status == Status.PAUSED
    assert _types(callback)[-1] == EventType.TOUR_STATUS

    tour.update_props(run=True)
    assert tour.state.status == Status.RUNNING
    assert tour.state.index == 1
    assert _types(callback)[-1] == EventType.TOUR_STATUS

def test_unchanged_props_do_nothing(page, callback):
    tour = _mount(page, callback)
    callback.reset_mock()
    tour.update_props(run=True, scroll_offset=20)
    callback.assert_not_called()

def test_new_steps_replace_list(page, callback):
    tour = _mount(page, callback)
    tour.update_props(steps=[{"target": "#c"}, {"target": "#d"}])

    assert tour.state.size == 2
    assert tour.step.target == "#c"

def test_props_accept_camel_case(page, callback):
    tour = _mount(page, callback, run=False)
    tour.update_props(scrollOffset=45)
    assert tour.props.scroll_offset == 45

# ---------------------------------------------------------------------------
# Controlled Mode Tests
# ---------------------------------------------------------------------------

def test_controlled_index_jump_forward_is_next(page, callback):
    tour = _mount(page, callback, step_index=1)
    assert tour.state.controlled is True
    assert tour.state.index == 1

    tour.update_props(step_index=3)

    assert tour.state.index == 3
    assert tour.state.action == Action.NEXT
    assert tour.state.lifecycle == Lifecycle.INIT

def test_controlled_index_decrease_is_prev(page, callback):
    tour = _mount(page, callback, step_index=2)
    tour.update_props(step_index=1)
    assert tour.state.action == Action.PREV

def test_controlled_close_carries_forward(page, callback):
    tour = _mount(page, callback, step_index=2)
    tour.helpers.close()
    assert tour.state.action == Action.CLOSE
    assert tour.state.index == 2

    tour.update_props(step_index=1)
    assert tour.state.action == Action.CLOSE
    assert tour.state.index == 1

def test_controlled_index_after_stop_is_start(page, callback):
    tour = _mount(page, callback, step_index=1)
    tour.update_props(run=False)
    tour.update_props(step_index=2)

    assert tour.state.action == Action.START
    assert tour.state.index == 2

def test_controlled_next_waits_for_host(page, callback):
    tour = _mount(page, callback, step_index=0)
    _place(tour)
    tour.helpers.open()
    tour.helpers.next()

    assert tour.state.index == 0
    assert tour.state.action == Action.NEXT
    assert _types(callback)[-1] == EventType.STEP_AFTER

    tour.update_props(step_index=1)
    assert tour.state.index == 1
    # The host following along does not report the step twice.
    assert len(_events(callback, EventType.STEP_AFTER)) == 1

def test_controlled_index_ignored_after_finish(page, callback):
    tour = _mount(page, callback, step_index=3)
    tour.helpers.next()
    assert tour.state.status == Status.FINISHED

    tour.update_props(step_index=0)
    assert tour.state.status == Status.FINISHED
    assert tour.state.index == 3

def test_controlled_index_out_of_range_reports_status(page, callback):
    tour = _mount(page, callback, step_index=1)
    tour.update_props(step_index=9)

    assert tour.state.index == 1
    event = callback.call_args.args[0]
    assert event.type == EventType.TOUR_STATUS
    assert isinstance(event.error, InvalidIndexError)

def test_controlled_helpers_go_is_noop(page, callback):
    tour = _mount(page, callback, step_index=0)
    tour.helpers.go(2)
    assert tour.state.index == 0

# ---------------------------------------------------------------------------
# Debug Output Tests
# ---------------------------------------------------------------------------

@patch("tour_engine.tour.display")
def test_debug_prints_groups(mock_display, page, callback):
    tour = _mount(page, callback, debug=True)
    _place(tour)

    mock_display.init.assert_called_once()
    assert mock_display.state_changed.call_count >= 3
    assert mock_display.event_emitted.call_count == 3

@patch("tour_engine.tour.display")
def test_quiet_without_debug(mock_display, page, callback):
    tour = _mount(page, callback, scroll_to_first_step=True)
    _place(tour)

    mock_display.init.assert_not_called()
    mock_display.state_changed.assert_not_called()
    mock_display.scroll_to_step.assert_not_called()

@patch("tour_engine.tour.display")
def test_warnings_print_without_debug(mock_display, page, callback):
    page.remove("#b")
    tour = _mount(page, callback)
    tour.helpers.next()
    tour.update_props(steps=[])

    mock_display.target_not_found.assert_called_once_with("#b", mounted=False)
    mock_display.steps_invalid.assert_called_once()

# ---------------------------------------------------------------------------
# State Diff Tests
# ---------------------------------------------------------------------------

def test_state_changes():
    previous = TourState(status=Status.READY, lifecycle=Lifecycle.INIT)
    current = TourState(status=Status.RUNNING, lifecycle=Lifecycle.READY)
    changes = StateChanges(previous, current)

    assert changes.changed()
    assert changes.changed("status")
    assert not changes.changed("index")
    assert changes.changed_from("status", Status.READY, Status.RUNNING)
    assert changes.changed_from("lifecycle", (Lifecycle.TOOLTIP, Lifecycle.INIT))
    assert not changes.changed_from("status", Status.PAUSED)
    assert changes.changed_to("lifecycle", (Lifecycle.READY, Lifecycle.BEACON))
    assert not changes.changed_to("index", 0)
