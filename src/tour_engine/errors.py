# errors.py
# Exception taxonomy for the tour engine.
#
# None of these is fatal to the host. The Store raises them; the Tour
# catches them at its command boundary and reports them as events.


class TourError(Exception):
    """Base class for every recoverable tour failure."""


class InvalidStepsError(TourError):
    """Raised when a step list is empty or malformed. The current run is kept."""


class TargetNotFoundError(TourError):
    """Raised when the active step's element is missing or not visible."""

    def __init__(self, message: str, target=None) -> None:
        super().__init__(message)
        self.target = target


class InvalidIndexError(TourError):
    """Raised when a requested step index is outside [0, len(steps))."""

    def __init__(self, message: str, index: int | None = None) -> None:
        super().__init__(message)
        self.index = index


class CannotStartError(TourError):
    """Raised when start is requested without a valid step list."""
