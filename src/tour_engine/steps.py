# steps.py
# Step Resolver: merges a raw step with tour props and engine defaults,
# and validates step lists before they reach the Store.
#
# Everything here is pure. A ResolvedStep is recomputed on every access.

from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from tour_engine.errors import InvalidStepsError
from tour_engine.models import Locale, ResolvedStep, Step, TourProps

CENTER = "center"

DEFAULT_STYLES: dict[str, Any] = {
    "options": {
        "arrowColor": "#fff",
        "backgroundColor": "#fff",
        "beaconSize": 36,
        "overlayColor": "rgba(0, 0, 0, 0.5)",
        "primaryColor": "#f04",
        "spotlightShadow": "0 0 15px rgba(0, 0, 0, 0.5)",
        "textColor": "#333",
        "width": None,
        "zIndex": 100,
    },
}

# Engine built-ins for fields a step may set but the tour cannot.
STEP_DEFAULTS: dict[str, Any] = {
    "placement": "bottom",
    "event": "click",
    "offset": 10,
    "disable_beacon": False,
    "hide_close_button": False,
    "hide_footer": False,
    "is_fixed": False,
}

# Fields a step inherits from TourProps when it leaves them unset.
TOUR_FIELDS = (
    "disable_close_on_esc",
    "disable_overlay",
    "disable_overlay_close",
    "disable_scrolling",
    "hide_back_button",
    "show_progress",
    "show_skip_button",
    "spotlight_clicks",
    "spotlight_padding",
    "scroll_offset",
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _deep_merge(*layers: Mapping[str, Any] | None) -> dict[str, Any]:
    """Merge mappings left to right; nested mappings merge, everything else replaces."""
    merged: dict[str, Any] = {}
    for layer in layers:
        for key, value in (layer or {}).items():
            if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
                merged[key] = _deep_merge(merged[key], value)
            elif isinstance(value, Mapping):
                merged[key] = _deep_merge(value)
            else:
                merged[key] = value
    return merged


def _coerce(step: Step | Mapping[str, Any]) -> Step:
    if isinstance(step, Step):
        return step
    return Step.model_validate(step)


def _has_target(step: Step) -> bool:
    if step.placement == CENTER:
        return True
    target = step.target
    if target is None:
        return False
    if isinstance(target, str):
        return bool(target.strip())
    return True


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


def resolve_step(
    step: Step | Mapping[str, Any] | None, props: TourProps | None = None
) -> ResolvedStep | None:
    """
    Build the fully specified record for one step.

    Precedence, highest first: step field, tour prop, engine default.
    Returns None for a missing step so callers can index past the end.
    """
    if step is None:
        return None

    step = _coerce(step)
    props = props or TourProps()

    fields: dict[str, Any] = {}
    for name, default in STEP_DEFAULTS.items():
        value = getattr(step, name)
        fields[name] = default if value is None else value

    for name in TOUR_FIELDS:
        value = getattr(step, name)
        fields[name] = getattr(props, name) if value is None else value

    fields["placement_beacon"] = step.placement_beacon or fields["placement"]

    return ResolvedStep(
        target=step.target,
        content=step.content,
        title=step.title,
        locale=Locale(**_deep_merge(Locale().model_dump(), props.locale, step.locale)),
        styles=_deep_merge(DEFAULT_STYLES, props.styles, step.styles),
        data=dict(step.model_extra or {}),
        **fields,
    )


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_step(step: Any) -> bool:
    """A step is valid when it coerces to Step and has a target (or is centered)."""
    if not isinstance(step, (Step, Mapping)):
        return False
    try:
        return _has_target(_coerce(step))
    except ValidationError:
        return False


def validate_steps(steps: Any) -> bool:
    """True only for a non-empty list in which every step is valid."""
    if not isinstance(steps, (list, tuple)) or not steps:
        return False
    return all(validate_step(step) for step in steps)


def ensure_valid_steps(steps: Any) -> list[Step]:
    """
    Coerce a host step list, or raise InvalidStepsError.

    The list is rejected whole: no prefix of a bad list is ever returned.
    """
    if not isinstance(steps, (list, tuple)):
        raise InvalidStepsError(f"Steps must be a list, got {type(steps).__name__}.")
    if not steps:
        raise InvalidStepsError("Steps must not be empty.")

    coerced: list[Step] = []
    for index, raw in enumerate(steps):
        if not isinstance(raw, (Step, Mapping)):
            raise InvalidStepsError(f"Step {index} is not a mapping: {raw!r}")
        try:
            step = _coerce(raw)
        except ValidationError as exc:
            raise InvalidStepsError(f"Step {index} is malformed: {exc}") from exc
        if not _has_target(step):
            raise InvalidStepsError(f"Step {index} has no target.")
        coerced.append(step)
    return coerced
