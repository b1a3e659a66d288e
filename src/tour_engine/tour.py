# tour.py
# Orchestration Controller
#
# The Tour is the outward-facing coordinator. The Store owns the state; this
# class owns everything around it: host props, the key listener, widget
# placement reports, event emission and scrolling. It never mutates state
# directly; every change is a Store command.
#
# Control flow:
#   host props / key press / widget report → Store command
#   → Store broadcast → resolve step → tour & step events
#   → lifecycle promotion → scroll plan → Document.scroll_to
#
# All terminal output is delegated to display.py. No formatting here.

from collections.abc import Callable
from typing import Any

from tour_engine import display
from tour_engine.dom import Document
from tour_engine.errors import (
    CannotStartError,
    InvalidIndexError,
    InvalidStepsError,
    TargetNotFoundError,
    TourError,
)
from tour_engine.models import (
    TERMINAL_STATUSES,
    Action,
    EventType,
    Lifecycle,
    PlacementResult,
    ResolvedStep,
    ScrollConfig,
    Status,
    TourEvent,
    TourProps,
    TourState,
)
from tour_engine.scroll import plan_scroll
from tour_engine.steps import CENTER, ensure_valid_steps, resolve_step
from tour_engine.store import Store

Callback = Callable[[TourEvent], None]

ESCAPE_KEYS = ("Escape", "Esc", 27)
PLACEMENT_KINDS = ("beacon", "tooltip")
AFTER_ACTIONS = (Action.NEXT, Action.PREV, Action.SKIP, Action.CLOSE)

# camelCase host keys to TourProps field names
_FIELD_NAMES = {field.alias: name for name, field in TourProps.model_fields.items() if field.alias}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _as_tuple(value: Any) -> tuple:
    return value if isinstance(value, tuple) else (value,)


class StateChanges:
    """Field-level comparison of two consecutive snapshots."""

    def __init__(self, previous: TourState, current: TourState) -> None:
        self.previous = previous
        self.current = current

    def changed(self, key: str | None = None) -> bool:
        if key is None:
            return self.previous != self.current
        return getattr(self.previous, key) != getattr(self.current, key)

    def changed_from(self, key: str, previous: Any, current: Any = None) -> bool:
        """True when `key` moved away from one of `previous` (into one of `current`)."""
        if not self.changed(key):
            return False
        if getattr(self.previous, key) not in _as_tuple(previous):
            return False
        return current is None or getattr(self.current, key) in _as_tuple(current)

    def changed_to(self, key: str, values: Any) -> bool:
        return self.changed(key) and getattr(self.current, key) in _as_tuple(values)


def hide_beacon(step: ResolvedStep) -> bool:
    return step.disable_beacon or step.placement == CENTER


def skip_beacon(state: TourState, continuous: bool) -> bool:
    """Continuous tours go straight to the tooltip after the first step."""
    return (
        continuous
        and state.action != Action.CLOSE
        and (state.index > 0 or state.action == Action.PREV)
    )


class TourHelpers:
    """
    Host-side remote control for a mounted tour.

    Failures never raise into the host; they come back through the
    tour callback as events.
    """

    def __init__(self, tour: "Tour") -> None:
        self._tour = tour

    def next(self) -> None:
        self._tour._command("next")

    def prev(self) -> None:
        self._tour._command("prev")

    def go(self, index: int) -> None:
        self._tour._command("go", index)

    def close(self) -> None:
        self._tour._command("close")

    def skip(self) -> None:
        self._tour._command("skip")

    def open(self) -> None:
        self._tour._command("open")

    def reset(self, restart: bool = False) -> None:
        self._tour._command("reset", restart=restart)

    def info(self) -> TourState:
        return self._tour.state


# ---------------------------------------------------------------------------
# Tour
# ---------------------------------------------------------------------------


class Tour:
    """
    Guided tour controller bound to a Document.

    Example:
        with Tour(document, callback=on_event, steps=[{"target": "#menu"}]) as tour:
            tour.set_placement("beacon", {"placement": "bottom", "topEdge": 140})
            tour.set_placement("tooltip", {"placement": "bottom", "topEdge": 160})
            tour.helpers.next()
    """

    def __init__(
        self,
        document: Document,
        callback: Callback | None = None,
        get_helpers: Callable[[TourHelpers], None] | None = None,
        **props: Any,
    ) -> None:
        raw_steps = props.pop("steps", [])
        self._document = document
        self._callback = callback
        self._get_helpers = get_helpers
        self._steps_error: InvalidStepsError | None = None

        try:
            steps = ensure_valid_steps(raw_steps) if raw_steps else []
        except InvalidStepsError as exc:
            steps = []
            self._steps_error = exc

        self._props = TourProps(**props).model_copy(update={"steps": steps})
        self._store: Store | None = None
        self._state = TourState()
        self._placements: dict[str, PlacementResult] = {}
        self._scroll_index: int | None = None
        self._waiting = False
        self._unsubscribe: Callable[[], None] | None = None
        self._unbind_keys: Callable[[], None] | None = None
        self.helpers = TourHelpers(self)

    # ------------------------------------------------------------------
    # Mounting
    # ------------------------------------------------------------------

    def __enter__(self) -> "Tour":
        self.mount()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.unmount()

    def mount(self) -> None:
        if self.mounted:
            return

        props = self._props
        # Only a tour that runs from mount hands its index to the host.
        self._store = Store(
            props.steps,
            step_index=props.step_index,
            controlled=props.run and props.step_index is not None,
        )
        self._state = self._store.get_state()

        if props.debug:
            display.init(props, self._state)

        self._unsubscribe = self._store.add_listener(self._sync_state)
        self._unbind_keys = self._document.add_key_listener(self.handle_key)

        if self._steps_error is not None:
            self._waiting = props.run
            self._report(self._steps_error)
        elif props.run:
            self._start(props.step_index)

        if self._get_helpers is not None:
            self._get_helpers(self.helpers)

    def unmount(self) -> None:
        """Release the key listener and the store subscription. Safe to repeat."""
        if self._unbind_keys is not None:
            self._unbind_keys()
            self._unbind_keys = None
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
            if self._props.debug:
                display.unmounted()
        # The last snapshot stays readable through `state`.
        self._store = None

    @property
    def mounted(self) -> bool:
        return self._unsubscribe is not None

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def props(self) -> TourProps:
        return self._props

    @property
    def state(self) -> TourState:
        if self._store is None:
            return self._state
        return self._store.get_state()

    @property
    def step(self) -> ResolvedStep | None:
        return self._resolve(self.state.index)

    def _resolve(self, index: int) -> ResolvedStep | None:
        steps = self._props.steps
        if not 0 <= index < len(steps):
            return None
        return resolve_step(steps[index], self._props)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def _command(self, name: str, *args: Any, **kwargs: Any) -> None:
        """Run a Store command; recoverable failures become events."""
        if not self.mounted:
            return
        try:
            getattr(self._store, name)(*args, **kwargs)
        except TourError as exc:
            self._report(exc)

    def _start(self, index: int | None = None) -> None:
        try:
            self._store.start(index)
        except CannotStartError as exc:
            self._waiting = True
            self._report(exc)
        except InvalidIndexError as exc:
            self._report(exc)
        else:
            self._waiting = False

    def _report(self, exc: TourError) -> None:
        if isinstance(exc, InvalidStepsError):
            display.steps_invalid(str(exc))
        elif self._props.debug:
            display.error(exc)

        # An out-of-range index is a status problem, not a broken tour.
        event_type = EventType.TOUR_STATUS if isinstance(exc, InvalidIndexError) else EventType.ERROR
        self._emit(event_type, self.state, step=self.step, error=exc)

    def _emit(
        self,
        event_type: EventType,
        state: TourState,
        step: ResolvedStep | None = None,
        index: int | None = None,
        lifecycle: Lifecycle | None = None,
        error: Exception | None = None,
    ) -> None:
        event = TourEvent(
            type=event_type,
            action=state.action,
            controlled=state.controlled,
            index=state.index if index is None else index,
            lifecycle=lifecycle or state.lifecycle,
            size=state.size,
            status=state.status,
            step=step,
            error=error,
        )
        if self._props.debug:
            display.event_emitted(event)
        if self._callback is not None:
            self._callback(event)

    # ------------------------------------------------------------------
    # Host input
    # ------------------------------------------------------------------

    def update_props(self, **changes: Any) -> None:
        """
        Apply new host props and translate the difference into commands.

        run flips start or stop the tour; a new step list is validated and
        swapped in (an invalid one is reported and ignored); a new step_index
        moves a controlled tour with a direction-carrying action.
        """
        changes = {_FIELD_NAMES.get(key, key): value for key, value in changes.items()}
        has_steps = "steps" in changes
        raw_steps = changes.pop("steps", None)
        previous = self._props
        updated = TourProps.model_validate(
            {**previous.model_dump(exclude={"steps"}), **changes}
        ).model_copy(update={"steps": previous.steps})

        changed = {
            name: getattr(updated, name)
            for name in TourProps.model_fields
            if getattr(updated, name) != getattr(previous, name)
        }
        if has_steps:
            changed["steps"] = raw_steps
        if not changed:
            return

        self._props = updated
        if updated.debug:
            display.props_changed(changed)
        if not self.mounted:
            if has_steps:
                try:
                    steps = ensure_valid_steps(raw_steps)
                except InvalidStepsError as exc:
                    self._steps_error = exc
                else:
                    self._steps_error = None
                    self._props = updated.model_copy(update={"steps": steps})
            return

        if "run" in changed:
            if updated.run:
                self._start(updated.step_index)
            else:
                self._command("stop")

        if has_steps:
            self._set_steps(raw_steps)

        if "step_index" in changed and updated.step_index is not None:
            self._sync_step_index(previous.step_index, updated.step_index)

    def _set_steps(self, raw_steps: Any) -> None:
        try:
            self._store.set_steps(raw_steps)
        except InvalidStepsError as exc:
            self._report(exc)
            return

        self._steps_error = None
        self._props = self._props.model_copy(update={"steps": list(self._store.steps)})
        if self._waiting and self._props.run:
            self._start(self._props.step_index)

    def _sync_step_index(self, previous: int | None, index: int) -> None:
        state = self._store.get_state()
        if state.status in TERMINAL_STATUSES or state.index == index:
            return

        action = Action.NEXT if previous is None or previous < index else Action.PREV
        if state.action == Action.STOP:
            action = Action.START
        # A close that made the host move keeps reporting as a close.
        if state.action == Action.CLOSE:
            action = Action.CLOSE

        self._command("go", index, action=action, force=True)

    def handle_key(self, key: Any) -> None:
        """Escape closes the open tooltip unless the step forbids it."""
        if not self.mounted or key not in ESCAPE_KEYS:
            return
        if self.state.lifecycle != Lifecycle.TOOLTIP:
            return

        step = self.step
        if step is None or step.disable_close_on_esc:
            return
        self._command("close")

    def set_placement(self, kind: str, result: PlacementResult | dict[str, Any]) -> None:
        """
        Record where the positioning widget put the beacon or tooltip.

        Once every widget the step will show has reported, a step still in
        INIT is promoted to READY.
        """
        if kind not in PLACEMENT_KINDS:
            raise ValueError(f"Unknown placement kind {kind!r}; expected one of {PLACEMENT_KINDS}.")
        if not isinstance(result, PlacementResult):
            result = PlacementResult.model_validate(result)
        self._placements[kind] = result

        if not self.mounted:
            return
        state = self._store.get_state()
        step = self.step
        if state.status != Status.RUNNING or state.lifecycle != Lifecycle.INIT or step is None:
            return

        needed = {"tooltip"}
        if not (hide_beacon(step) or skip_beacon(state, self._props.continuous)):
            needed.add("beacon")
        if needed <= self._placements.keys():
            self._store.update(action=state.action, lifecycle=Lifecycle.READY)

    def handle_resize(self) -> None:
        """Geometry changed: placements are stale until the widgets report again."""
        self._placements.clear()
        self._command("update", action=Action.RESIZE)

    # ------------------------------------------------------------------
    # Store broadcast
    # ------------------------------------------------------------------

    def _sync_state(self, state: TourState) -> None:
        previous, self._state = self._state, state
        changes = StateChanges(previous, state)
        if not changes.changed():
            return

        step = self._resolve(state.index)
        if self._props.debug:
            display.state_changed(previous, state, step)

        if changes.changed("index") or changes.changed_to("lifecycle", Lifecycle.INIT):
            self._placements.clear()

        if changes.changed_to("status", TERMINAL_STATUSES):
            last = self._resolve(previous.index)
            self._emit(
                EventType.STEP_AFTER,
                state,
                step=last,
                index=previous.index,
                lifecycle=Lifecycle.COMPLETE,
            )
            self._emit(EventType.TOUR_END, state, step=last, index=previous.index)
        elif changes.changed_to("status", Status.RUNNING):
            self._scroll_index = None
            if previous.status == Status.PAUSED:
                self._emit(EventType.TOUR_STATUS, state, step=step)
            else:
                self._emit(EventType.TOUR_START, state, step=step)
        elif changes.changed("status"):
            self._emit(EventType.TOUR_STATUS, state, step=step)
        elif changes.changed_to("action", Action.RESET):
            self._emit(EventType.TOUR_STATUS, state, step=step)

        if state.status == Status.RUNNING and step is not None:
            self._sync_step(previous, state, changes, step)

    def _sync_step(
        self,
        previous: TourState,
        state: TourState,
        changes: StateChanges,
        step: ResolvedStep,
    ) -> None:
        left_step = changes.changed("index") or changes.changed_to("lifecycle", Lifecycle.INIT)

        if changes.changed_to("action", AFTER_ACTIONS) and left_step:
            self._emit(
                EventType.STEP_AFTER,
                state,
                step=self._resolve(previous.index),
                index=previous.index,
                lifecycle=Lifecycle.COMPLETE,
            )

        entering = state.lifecycle == Lifecycle.INIT and (left_step or changes.changed("status"))
        if entering:
            if step.placement == CENTER:
                # Nothing to position against; the step is ready as it is.
                self._store.update(action=state.action, lifecycle=Lifecycle.READY)
                return
            if not self._check_target(state, step):
                return

        if changes.changed_from("lifecycle", Lifecycle.INIT, Lifecycle.READY):
            self._emit(EventType.STEP_BEFORE, state, step=step)
            reveal = (
                Lifecycle.TOOLTIP
                if hide_beacon(step) or skip_beacon(state, self._props.continuous)
                else Lifecycle.BEACON
            )
            self._store.update(lifecycle=reveal)
            return

        if changes.changed_to("lifecycle", Lifecycle.BEACON):
            self._emit(EventType.BEACON, state, step=step)
        elif changes.changed_to("lifecycle", Lifecycle.TOOLTIP):
            self._emit(EventType.TOOLTIP, state, step=step)

        self._scroll_to_step(previous, state, step)

    def _check_target(self, state: TourState, step: ResolvedStep) -> bool:
        element = self._document.resolve_element(step.target)
        if element is not None and self._document.is_element_visible(element):
            return True

        display.target_not_found(step.target, mounted=element is not None)
        exc = TargetNotFoundError(
            f"Target {step.target!r} for step {state.index} was not found.", target=step.target
        )
        self._emit(EventType.TARGET_NOT_FOUND, state, step=step, error=exc)
        self._emit(EventType.ERROR, state, step=step, error=exc)

        if self._props.target_not_found == "halt":
            self._store.stop()
        elif not state.controlled:
            index = state.index - 1 if state.action == Action.PREV else state.index + 1
            if index < 0:
                # Nothing left behind the first step to skip to.
                self._store.stop()
            else:
                self._store.update(action=state.action, index=index)
        return False

    def _scroll_to_step(self, previous: TourState, state: TourState, step: ResolvedStep) -> None:
        if step.placement == CENTER:
            return
        element = self._document.resolve_element(step.target)
        if element is None:
            return

        # The first reveal after a start only scrolls with scroll_to_first_step.
        previous_index = state.index if self._scroll_index is None else self._scroll_index
        widget = "beacon" if state.lifecycle == Lifecycle.BEACON else "tooltip"
        config = ScrollConfig(
            disable_scrolling=step.disable_scrolling,
            scroll_offset=step.scroll_offset,
            scroll_to_first_step=self._props.scroll_to_first_step,
        )
        offset = plan_scroll(
            step,
            self._placements.get(widget),
            previous.lifecycle,
            state.lifecycle,
            previous_index,
            state.index,
            config,
            target=self._document.geometry(element),
        )
        if state.lifecycle in (Lifecycle.BEACON, Lifecycle.TOOLTIP):
            self._scroll_index = state.index
        if offset is None:
            return

        container = self._document.find_scroll_ancestor(element)
        if self._props.debug:
            display.scroll_to_step(state, offset, container)
        self._document.scroll_to(offset, container)
