# scroll.py
# Scroll Planner: decides whether and how far to scroll to reveal a step.
#
# Pure: returns an offset or None. The Tour performs the scroll against the
# document or the target's custom scroll container.

import math

from tour_engine.models import (
    Lifecycle,
    PlacementResult,
    ResolvedStep,
    ScrollConfig,
    TargetGeometry,
)
from tour_engine.steps import CENTER

REVEAL_LIFECYCLES = (Lifecycle.BEACON, Lifecycle.TOOLTIP)
ANCHORED_TOOLTIP_PLACEMENTS = ("top", "right", "left")


def get_scroll_to(target: TargetGeometry, scroll_offset: int) -> int:
    """Offset that puts the target `scroll_offset` pixels below the top edge."""
    return max(0, math.floor(target.top - scroll_offset))


def should_scroll(
    step: ResolvedStep | None,
    previous_lifecycle: Lifecycle,
    lifecycle: Lifecycle,
    previous_index: int,
    index: int,
    config: ScrollConfig,
    target: TargetGeometry | None,
) -> bool:
    if step is None or target is None:
        return False
    if config.disable_scrolling or step.placement == CENTER:
        return False
    # Fixed steps on fixed elements are already inside the viewport frame.
    if step.is_fixed and target.fixed:
        return False
    if previous_lifecycle == lifecycle or lifecycle not in REVEAL_LIFECYCLES:
        return False
    return config.scroll_to_first_step or previous_index != index


def plan_scroll(
    step: ResolvedStep | None,
    placement: PlacementResult | None,
    previous_lifecycle: Lifecycle,
    lifecycle: Lifecycle,
    previous_index: int,
    index: int,
    config: ScrollConfig,
    target: TargetGeometry | None = None,
) -> int | None:
    """
    Compute the vertical scroll offset for the step, or None for "no scroll".

    `placement` is the result for the widget being revealed: the beacon's
    when entering BEACON, the tooltip's when entering TOOLTIP. A tooltip
    that sits above or beside its target (and was not flipped) is scrolled
    to by its own top edge; otherwise the target offset is widened by the
    spotlight padding.
    """
    if not should_scroll(step, previous_lifecycle, lifecycle, previous_index, index, config, target):
        return None

    offset = config.scroll_offset
    scroll_y = get_scroll_to(target, offset)

    if placement is not None:
        if lifecycle == Lifecycle.BEACON:
            if placement.placement != "bottom" and not target.custom_scroll_parent:
                scroll_y = math.floor(placement.top_edge - offset)
        elif lifecycle == Lifecycle.TOOLTIP:
            if (
                placement.placement in ANCHORED_TOOLTIP_PLACEMENTS
                and not placement.flipped
                and not target.custom_scroll_parent
            ):
                scroll_y = math.floor(placement.top_edge - offset)
            else:
                scroll_y -= step.spotlight_padding

    return max(scroll_y, 0)
