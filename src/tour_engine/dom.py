# dom.py
# The page the tour runs on, as seen by the engine.
#
# Document is the collaborator interface: element lookup, geometry, scrolling
# and the key listener. A host binds it to its real UI. VirtualDocument is an
# in-memory page used by the demo and the tests.

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from tour_engine.models import TargetGeometry

KeyListener = Callable[[Any], None]


class Document:
    """
    Interface the Tour calls into. Every method must be overridden.

    VirtualDocument below is the reference implementation.
    """

    def resolve_element(self, target: Any) -> Any | None:
        raise NotImplementedError

    def is_fixed_positioned(self, element: Any) -> bool:
        raise NotImplementedError

    def has_custom_scroll_ancestor(self, element: Any) -> bool:
        raise NotImplementedError

    def find_scroll_ancestor(self, element: Any) -> Any:
        raise NotImplementedError

    def is_element_visible(self, element: Any) -> bool:
        raise NotImplementedError

    def element_top(self, element: Any) -> float:
        """Offset of `element` from the top of its scroll container."""
        raise NotImplementedError

    def scroll_to(self, offset: int, container: Any) -> None:
        raise NotImplementedError

    def add_key_listener(self, listener: KeyListener) -> Callable[[], None]:
        """Bind a page-wide key listener; returns a callable that unbinds it."""
        raise NotImplementedError

    def geometry(self, element: Any) -> TargetGeometry:
        return TargetGeometry(
            top=self.element_top(element),
            fixed=self.is_fixed_positioned(element),
            custom_scroll_parent=self.has_custom_scroll_ancestor(element),
        )


# ---------------------------------------------------------------------------
# In-memory page
# ---------------------------------------------------------------------------


@dataclass
class ScrollContainer:
    name: str
    scroll_top: int = 0


@dataclass
class Element:
    selector: str
    top: float = 0.0
    fixed: bool = False
    visible: bool = True
    container: ScrollContainer | None = None


@dataclass
class VirtualDocument(Document):
    """
    A page made of named elements.

    Targets are looked up by selector; an element handle passed as a target
    resolves to itself. Scrolls are recorded in `scrolls` as
    (offset, container name) pairs.
    """

    elements: dict[str, Element] = field(default_factory=dict)
    root: ScrollContainer = field(default_factory=lambda: ScrollContainer("document"))
    scrolls: list[tuple[int, str]] = field(default_factory=list)
    key_listeners: list[KeyListener] = field(default_factory=list)

    def add(self, selector: str, **kwargs: Any) -> Element:
        element = Element(selector, **kwargs)
        self.elements[selector] = element
        return element

    def remove(self, selector: str) -> None:
        self.elements.pop(selector, None)

    def resolve_element(self, target: Any) -> Element | None:
        if isinstance(target, Element):
            return target
        if isinstance(target, str):
            return self.elements.get(target)
        return None

    def is_fixed_positioned(self, element: Element) -> bool:
        return element.fixed

    def has_custom_scroll_ancestor(self, element: Element) -> bool:
        return element.container is not None

    def find_scroll_ancestor(self, element: Element) -> ScrollContainer:
        return element.container or self.root

    def is_element_visible(self, element: Element) -> bool:
        return element.visible

    def element_top(self, element: Element) -> float:
        return element.top

    def scroll_to(self, offset: int, container: ScrollContainer) -> None:
        container.scroll_top = offset
        self.scrolls.append((offset, container.name))

    def add_key_listener(self, listener: KeyListener) -> Callable[[], None]:
        self.key_listeners.append(listener)

        def remove() -> None:
            if listener in self.key_listeners:
                self.key_listeners.remove(listener)

        return remove

    def press(self, key: Any) -> None:
        """Deliver a key press to every bound listener."""
        for listener in list(self.key_listeners):
            listener(key)
