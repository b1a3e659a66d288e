# display.py
# All terminal output for the tour engine.
#
# This module owns presentation entirely. tour.py never formats strings;
# it calls named functions here. Debug groups are printed only when the
# tour runs with debug=True; warnings always print.
#
# Colour language:
#   cyan     props and wiring
#   blue     state snapshots
#   yellow   scrolling
#   green    tour events
#   red      warnings and errors

from typing import Any

from pydantic import BaseModel
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from tour_engine.models import EventType, TourEvent, TourState

console = Console()

EVENT_COLORS = {
    EventType.TOUR_START: "green",
    EventType.TOUR_END: "green",
    EventType.TOUR_STATUS: "cyan",
    EventType.TARGET_NOT_FOUND: "red",
    EventType.ERROR: "red",
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _label(tag: str, color: str) -> Text:
    t = Text()
    t.append(f" {tag} ", style=f"bold white on {color}")
    return t


def _mono(value: str, max_len: int = 120) -> str:
    if len(value) > max_len:
        return value[:max_len] + "…"
    return value


def _render(value: Any) -> str:
    if isinstance(value, BaseModel):
        value = value.model_dump(exclude_none=True)
    return _mono(str(value))


def group(title: str, data: dict[str, Any], color: str = "blue") -> None:
    """Print a titled key/value table, the debug unit of output."""
    table = Table(box=box.SIMPLE, show_header=False, padding=(0, 1))
    table.add_column("Key", style=f"bold {color}", no_wrap=True)
    table.add_column("Value", style="white")

    for key, value in data.items():
        table.add_row(key, _render(value))

    console.print(
        Panel(
            table,
            title=_label(f"TOUR: {title.upper()}", color),
            border_style=color,
            padding=(0, 1),
        )
    )


# ---------------------------------------------------------------------------
# Debug groups
# ---------------------------------------------------------------------------


def init(props: BaseModel, state: TourState) -> None:
    console.print()
    console.print(Rule("[cyan]TOUR MOUNTED[/cyan]", style="cyan"))
    group("init", {"props": props, "state": state}, "cyan")


def props_changed(changes: dict[str, Any]) -> None:
    group("props", changes, "cyan")


def state_changed(previous: TourState, state: TourState, step: BaseModel | None) -> None:
    group("state", {"previous": previous, "state": state, "step": step})


def scroll_to_step(state: TourState, offset: int, container: Any) -> None:
    name = getattr(container, "name", container)
    console.print(
        f"  [yellow]↳ Scrolling[/yellow] [dim yellow]index={state.index} "
        f"lifecycle={state.lifecycle.value}[/dim yellow] to [bold]{offset}[/bold]"
        f" [dim]in {name}[/dim]"
    )


def event_emitted(event: TourEvent) -> None:
    color = EVENT_COLORS.get(event.type, "magenta")
    console.print(
        _label(event.type.value, color),
        f"[dim]action={event.action.value} index={event.index} "
        f"lifecycle={event.lifecycle.value} status={event.status.value}[/dim]",
    )


def unmounted() -> None:
    console.print(Rule("[cyan]TOUR UNMOUNTED[/cyan]", style="cyan"))


# ---------------------------------------------------------------------------
# Warnings
# ---------------------------------------------------------------------------


def steps_invalid(reason: str) -> None:
    console.print(
        Panel(
            f"[bold red]Steps are not valid.[/bold red]\n\n[white]{_mono(reason, 400)}[/white]",
            title=_label("INVALID STEPS ✗", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )


def target_not_found(target: Any, mounted: bool) -> None:
    reason = "not visible" if mounted else "not mounted"
    console.print(
        _label("TARGET NOT FOUND", "red"),
        f"[red] Target {target!r} is {reason}.[/red]",
    )


def error(exc: Exception) -> None:
    console.print(_label("TOUR ERROR", "red"), f"[red] {type(exc).__name__}: {exc}[/red]")
