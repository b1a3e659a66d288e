# run.py
# Entry point. Config and wiring only. No logic lives here.
#
# Plays a short tour against an in-memory page and prints every event.
# Settings come from the environment (or a .env file):
#   TOUR_DEBUG          1 to print the debug groups (default 1)
#   TOUR_SCROLL_OFFSET  pixels kept above a scrolled-to target (default 20)
#   TOUR_CONTINUOUS     1 to skip beacons after the first step (default 0)

import os

from dotenv import load_dotenv

from tour_engine.dom import VirtualDocument
from tour_engine.models import Status, TourEvent
from tour_engine.tour import Tour, TourHelpers

load_dotenv()

STEPS = [
    {"target": "#search", "content": "Search everything from here."},
    {"target": "#welcome", "content": "Welcome aboard!", "placement": "center"},
    {"target": "#reports", "content": "Your reports live here.", "placement": "top"},
    {"target": "#settings", "content": "Tweak the app.", "disableCloseOnEsc": True},
]


def build_page() -> VirtualDocument:
    page = VirtualDocument()
    page.add("#search", top=80)
    page.add("#reports", top=1400)
    page.add("#settings", top=2600)
    return page


def on_event(event: TourEvent) -> None:
    print(f"[{event.type.value}] step={event.index} status={event.status.value}")


def main() -> None:
    page = build_page()
    helpers: list[TourHelpers] = []

    tour = Tour(
        page,
        callback=on_event,
        get_helpers=helpers.append,
        steps=STEPS,
        continuous=os.getenv("TOUR_CONTINUOUS", "0") == "1",
        debug=os.getenv("TOUR_DEBUG", "1") == "1",
        scroll_offset=int(os.getenv("TOUR_SCROLL_OFFSET", "20")),
    )

    with tour:
        control = helpers[0]
        while tour.state.status == Status.RUNNING:
            step = tour.step
            element = page.resolve_element(step.target)
            top = element.top if element else 0
            tooltip_top = top - 150 if step.placement == "top" else top + 40
            tour.set_placement("beacon", {"placement": step.placement_beacon, "topEdge": top})
            tour.set_placement("tooltip", {"placement": step.placement, "topEdge": tooltip_top})
            control.open()
            control.next()

    print(f"\nScrolls: {page.scrolls}")


if __name__ == "__main__":
    main()
