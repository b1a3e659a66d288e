# store.py
# Tour State Machine: the single owner of TourState.
#
# Every mutation goes through a command method here. Listeners receive an
# immutable snapshot after each effective change. Commands issued from inside
# a listener are applied at once, but their broadcast waits until the current
# broadcast has reached every listener, so snapshots always arrive in the
# order the mutations happened.

from collections import deque
from collections.abc import Callable, Sequence
from typing import Any

from tour_engine.errors import CannotStartError, InvalidIndexError
from tour_engine.models import (
    TERMINAL_STATUSES,
    Action,
    Lifecycle,
    Status,
    Step,
    TourState,
)
from tour_engine.steps import ensure_valid_steps

Listener = Callable[[TourState], None]

REVEAL_LIFECYCLES = (Lifecycle.BEACON, Lifecycle.TOOLTIP)


class Store:
    """
    Canonical tour state and its allowed transitions.

    In controlled mode the host owns the index, so next/prev/close only
    record the action and let the host move. `controlled` defaults to
    whether a `step_index` was passed.
    """

    def __init__(
        self,
        steps: Sequence[Step | dict] = (),
        step_index: int | None = None,
        controlled: bool | None = None,
    ) -> None:
        if controlled is None:
            controlled = step_index is not None
        self._steps: list[Step] = ensure_valid_steps(steps) if steps else []
        self._listeners: list[Listener] = []
        self._pending: deque[TourState] = deque()
        self._dispatching = False
        self._state = TourState(
            action=Action.INIT,
            controlled=controlled,
            index=step_index or 0,
            lifecycle=Lifecycle.INIT,
            size=len(self._steps),
            status=Status.READY if self._steps else Status.IDLE,
        )

    # ------------------------------------------------------------------
    # State plumbing
    # ------------------------------------------------------------------

    def get_state(self) -> TourState:
        return self._state

    info = get_state

    @property
    def steps(self) -> tuple[Step, ...]:
        return tuple(self._steps)

    def _set_state(self, **changes: Any) -> None:
        state = self._state.model_copy(update=changes)
        if state == self._state:
            return
        self._state = state
        self._broadcast(state)

    def _broadcast(self, state: TourState) -> None:
        self._pending.append(state)
        if self._dispatching:
            return

        self._dispatching = True
        try:
            while self._pending:
                snapshot = self._pending.popleft()
                for listener in list(self._listeners):
                    listener(snapshot)
        finally:
            self._pending.clear()
            self._dispatching = False

    # ------------------------------------------------------------------
    # Subscription
    # ------------------------------------------------------------------

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Register `listener`; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            self.remove_listener(listener)

        return unsubscribe

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def set_steps(self, steps: Sequence[Step | dict]) -> None:
        """Replace the step list. Raises InvalidStepsError and keeps the old list."""
        self._steps = ensure_valid_steps(steps)
        state = self._state
        size = len(self._steps)

        changes: dict[str, Any] = {"size": size}
        if state.status == Status.IDLE:
            changes["status"] = Status.READY
        if state.index >= size:
            changes["index"] = size - 1
        self._set_state(**changes)

    def _check_index(self, index: int) -> None:
        size = len(self._steps)
        if not 0 <= index < size:
            raise InvalidIndexError(
                f"Step index {index} is outside the tour (0..{size - 1}).", index=index
            )

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def start(self, index: int | None = None) -> None:
        """
        Run the tour from `index`.

        Without an index a paused or controlled tour resumes where it is;
        anything else starts from the first step.
        """
        if not self._steps:
            raise CannotStartError("Cannot start a tour without steps.")

        state = self._state
        if index is None:
            index = state.index if state.controlled or state.status == Status.PAUSED else 0
        self._check_index(index)

        self._set_state(
            action=Action.START,
            index=index,
            lifecycle=Lifecycle.INIT,
            status=Status.RUNNING,
        )

    def stop(self, advance: bool = False) -> None:
        state = self._state
        if state.status in TERMINAL_STATUSES:
            return
        if state.status in (Status.IDLE, Status.READY):
            self._set_state(action=Action.STOP)
            return

        index = state.index
        if advance and not state.controlled:
            if index + 1 >= state.size:
                self._finish(Action.STOP)
                return
            index += 1

        self._set_state(
            action=Action.STOP,
            index=index,
            lifecycle=Lifecycle.INIT,
            status=Status.PAUSED,
        )

    def next(self) -> None:
        self._move(Action.NEXT, 1)

    def prev(self) -> None:
        self._move(Action.PREV, -1)

    previous = prev

    def close(self) -> None:
        self._move(Action.CLOSE, 1)

    def go(self, index: int, action: Action = Action.GO, force: bool = False) -> None:
        """
        Jump to `index`.

        Without `force` this is a host helper and only works on a running,
        uncontrolled tour. `force` is the controlled-index path: the host has
        already moved, so any non-terminal tour follows.
        """
        state = self._state
        if state.status in TERMINAL_STATUSES:
            return
        if not force and (state.controlled or state.status != Status.RUNNING):
            return

        self._check_index(index)
        self._set_state(action=action, index=index, lifecycle=Lifecycle.INIT)

    def skip(self) -> None:
        if self._state.status != Status.RUNNING:
            return
        self._set_state(action=Action.SKIP, lifecycle=Lifecycle.INIT, status=Status.SKIPPED)

    def open(self) -> None:
        """Show the tooltip for the current step (the beacon was clicked)."""
        if self._state.status != Status.RUNNING:
            return
        self._set_state(action=Action.UPDATE, lifecycle=Lifecycle.TOOLTIP)

    def reset(self, force: bool = False, restart: bool = False) -> None:
        state = self._state
        if state.controlled and not force:
            self._set_state(action=Action.RESET, lifecycle=Lifecycle.INIT)
            return

        if not self._steps:
            status = Status.IDLE
        elif restart:
            status = Status.RUNNING
        else:
            status = Status.READY

        self._set_state(
            action=Action.RESET,
            index=0,
            lifecycle=Lifecycle.INIT,
            status=status,
        )

    def update(
        self,
        action: Action | None = None,
        index: int | None = None,
        lifecycle: Lifecycle | None = None,
        status: Status | None = None,
    ) -> None:
        """
        Merge a partial state, mainly for lifecycle promotion.

        Only the TourState invariants are enforced: the index stays inside
        the step list (moving past the end of a running tour finishes it),
        and BEACON/TOOLTIP never outlive a running tour.
        """
        state = self._state
        changes: dict[str, Any] = {"action": action or Action.UPDATE}
        status = status or state.status
        lifecycle = lifecycle or state.lifecycle

        if index is not None:
            if index >= state.size and status == Status.RUNNING:
                status = Status.FINISHED
                lifecycle = Lifecycle.INIT
            changes["index"] = min(max(index, 0), max(state.size - 1, 0))

        if status != Status.RUNNING and lifecycle in REVEAL_LIFECYCLES:
            lifecycle = Lifecycle.INIT

        changes["status"] = status
        changes["lifecycle"] = lifecycle
        self._set_state(**changes)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _move(self, action: Action, delta: int) -> None:
        state = self._state
        if state.status != Status.RUNNING:
            return

        index = state.index + delta
        if index < 0:
            return
        if index >= state.size:
            self._finish(action)
            return

        self._set_state(
            action=action,
            index=state.index if state.controlled else index,
            lifecycle=Lifecycle.INIT,
        )

    def _finish(self, action: Action) -> None:
        # The index stays on the last step so the terminal snapshot names it.
        self._set_state(action=action, lifecycle=Lifecycle.INIT, status=Status.FINISHED)

    def get_helpers(self) -> dict[str, Callable[..., Any]]:
        return {
            "close": self.close,
            "go": self.go,
            "info": self.info,
            "next": self.next,
            "open": self.open,
            "prev": self.prev,
            "reset": self.reset,
            "skip": self.skip,
        }
