"""Exceptions raised by the OpCoder tutorial system."""


class TutorialError(Exception):
    """Base class for tutorial system errors."""


class TutorialNotFoundError(TutorialError, LookupError):
    """Raised when a tutorial id is not present in the catalog."""

    def __init__(self, tutorial_id: str) -> None:
        super().__init__(f"Unknown tutorial: {tutorial_id}")
        self.tutorial_id = tutorial_id


class InvalidTutorialError(TutorialError, ValueError):
    """Raised when a tutorial cannot be run, e.g. it has no steps."""


class PersistenceUnavailableError(TutorialError, OSError):
    """Raised by progress stores when their backing storage cannot be used."""
