# models.py
# Data contracts for the tour engine.
# No business logic lives here. Pure schema and validation.
#
# Host JSON arrives camelCased (disableScrolling, spotlightPadding, ...).
# Every model accepts both the alias and the snake_case field name.

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Action(str, Enum):
    """The operation that produced the current state."""

    INIT = "init"
    START = "start"
    STOP = "stop"
    PREV = "prev"
    NEXT = "next"
    GO = "go"
    CLOSE = "close"
    SKIP = "skip"
    RESET = "reset"
    UPDATE = "update"
    RESIZE = "resize"


class Lifecycle(str, Enum):
    """Phase within the current step."""

    INIT = "init"
    READY = "ready"
    BEACON = "beacon"
    TOOLTIP = "tooltip"
    COMPLETE = "complete"


class Status(str, Enum):
    """Overall tour phase."""

    IDLE = "idle"
    READY = "ready"
    RUNNING = "running"
    PAUSED = "paused"
    SKIPPED = "skipped"
    FINISHED = "finished"
    ERROR = "error"


class EventType(str, Enum):
    TOUR_START = "tour:start"
    STEP_BEFORE = "step:before"
    BEACON = "beacon"
    TOOLTIP = "tooltip"
    STEP_AFTER = "step:after"
    TOUR_END = "tour:end"
    TOUR_STATUS = "tour:status"
    TARGET_NOT_FOUND = "error:target_not_found"
    ERROR = "error"


TERMINAL_STATUSES = (Status.FINISHED, Status.SKIPPED)


class _Model(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------


class Locale(_Model):
    """Button and label text for the tooltip widget."""

    back: str = "Back"
    close: str = "Close"
    last: str = "Last"
    next: str = "Next"
    open: str = "Open the dialog"
    skip: str = "Skip"


class Step(_Model):
    """
    A raw step as supplied by the host.

    None means "inherit from the tour props or the engine default".
    Fields the engine does not know about are kept and surface in
    ResolvedStep.data.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True, extra="allow"
    )

    target: Any = Field(default=None, description="Selector or element handle.")
    content: Any = None
    title: Any = None
    placement: str | None = None
    placement_beacon: str | None = None
    event: str | None = None
    offset: int | None = None
    disable_beacon: bool | None = None
    disable_close_on_esc: bool | None = None
    disable_overlay: bool | None = None
    disable_overlay_close: bool | None = None
    disable_scrolling: bool | None = None
    hide_back_button: bool | None = None
    hide_close_button: bool | None = None
    hide_footer: bool | None = None
    is_fixed: bool | None = None
    show_progress: bool | None = None
    show_skip_button: bool | None = None
    spotlight_clicks: bool | None = None
    spotlight_padding: int | None = None
    scroll_offset: int | None = None
    locale: dict[str, str] | None = None
    styles: dict[str, Any] | None = None


class ResolvedStep(_Model):
    """A step with every tour-level and engine default applied."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    target: Any = None
    content: Any = None
    title: Any = None
    placement: str
    placement_beacon: str
    event: str
    offset: int
    disable_beacon: bool
    disable_close_on_esc: bool
    disable_overlay: bool
    disable_overlay_close: bool
    disable_scrolling: bool
    hide_back_button: bool
    hide_close_button: bool
    hide_footer: bool
    is_fixed: bool
    show_progress: bool
    show_skip_button: bool
    spotlight_clicks: bool
    spotlight_padding: int
    scroll_offset: int
    locale: Locale
    styles: dict[str, Any]
    data: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Host configuration
# ---------------------------------------------------------------------------


class TourProps(_Model):
    """Tour-wide options recognised by the engine."""

    continuous: bool = False
    debug: bool = False
    disable_close_on_esc: bool = False
    disable_overlay: bool = False
    disable_overlay_close: bool = False
    disable_scrolling: bool = False
    hide_back_button: bool = False
    run: bool = True
    scroll_offset: int = 20
    scroll_to_first_step: bool = False
    show_progress: bool = False
    show_skip_button: bool = False
    spotlight_clicks: bool = False
    spotlight_padding: int = 10
    step_index: int | None = None
    steps: list[Step] = Field(default_factory=list)
    styles: dict[str, Any] = Field(default_factory=dict)
    locale: dict[str, str] = Field(default_factory=dict)
    target_not_found: str = Field(
        default="skip", pattern="^(skip|halt)$", description="Missing target policy."
    )


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------


class TourState(_Model):
    """Immutable snapshot of the canonical tour state."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    action: Action = Action.INIT
    controlled: bool = False
    index: int = 0
    lifecycle: Lifecycle = Lifecycle.INIT
    size: int = 0
    status: Status = Status.IDLE


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------


class PlacementResult(_Model):
    """Reported by the positioning widget for a rendered beacon or tooltip."""

    placement: str
    flipped: bool = False
    top_edge: float


class TargetGeometry(_Model):
    top: float = Field(..., description="Offset from the top of the scroll container.")
    fixed: bool = False
    custom_scroll_parent: bool = False


class ScrollConfig(_Model):
    disable_scrolling: bool = False
    scroll_offset: int = 20
    scroll_to_first_step: bool = False


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


class TourEvent(_Model):
    """Payload handed to the host callback."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, arbitrary_types_allowed=True
    )

    type: EventType
    action: Action
    controlled: bool
    index: int
    lifecycle: Lifecycle
    size: int
    status: Status
    step: ResolvedStep | None = None
    error: Exception | None = None
