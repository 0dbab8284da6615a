"""Tutorial sequencing engine.

Drives one user through one tutorial at a time. The engine is either idle
or running a tutorial at a step index; a run ends by completing the last
step (recorded in the progress store) or by skipping (not recorded).
Navigation calls made while idle are ignored.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass

from .catalog import TutorialCatalog, load_builtin_catalog
from .errors import InvalidTutorialError
from .progress import InMemoryProgressStore, ProgressStore
from .tutorial import Tutorial, TutorialStep

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TutorialSnapshot:
    """Read-only view of the running tutorial at its current step."""

    tutorial: Tutorial
    index: int

    @property
    def step(self) -> TutorialStep:
        return self.tutorial.steps[self.index]

    @property
    def total_steps(self) -> int:
        return self.tutorial.step_count

    @property
    def is_first(self) -> bool:
        return self.index == 0

    @property
    def is_last(self) -> bool:
        """True on the final step, where advancing finishes the tutorial."""
        return self.index == self.tutorial.last_index

    @property
    def progress_percent(self) -> float:
        return (self.index + 1) / self.total_steps * 100


StateListener = Callable[[TutorialSnapshot | None], None]


class TutorialEngine:
    """Runs tutorials for a single user session.

    Args:
        store: Where completed tutorial ids are persisted. Defaults to an
            in-memory store.
        user_id: Identity whose progress is loaded and saved. With no user,
            completions are only kept in memory.
        catalog: Catalog used to resolve tutorial ids. Defaults to the
            built-in catalog.
    """

    def __init__(
        self,
        store: ProgressStore | None = None,
        user_id: str | None = None,
        catalog: TutorialCatalog | None = None,
    ) -> None:
        self.store = store if store is not None else InMemoryProgressStore()
        self.catalog = catalog if catalog is not None else load_builtin_catalog()
        self._user_id = user_id
        self._active: Tutorial | None = None
        self._index = 0
        self._listeners: list[StateListener] = []
        self._completed = self._load_completed()

    # -- read accessors ----------------------------------------------------

    @property
    def user_id(self) -> str | None:
        return self._user_id

    @property
    def is_running(self) -> bool:
        return self._active is not None

    @property
    def completed(self) -> frozenset[str]:
        """Tutorial ids this user has finished."""
        return frozenset(self._completed)

    def is_completed(self, tutorial_id: str) -> bool:
        return tutorial_id in self._completed

    def current(self) -> TutorialSnapshot | None:
        """Return the running tutorial at its current step, or None when idle."""
        if self._active is None:
            return None
        return TutorialSnapshot(tutorial=self._active, index=self._index)

    def available_tutorials(self) -> list[tuple[Tutorial, bool]]:
        """Return every catalog tutorial paired with its completion flag."""
        return [(tutorial, tutorial.id in self._completed) for tutorial in self.catalog]

    def next_in_sequence(self, name: str) -> Tutorial | None:
        """Return the first tutorial of a sequence the user has not completed.

        This only suggests; the caller decides whether to ``start`` it.

        Raises:
            KeyError: If the sequence is not defined.
        """
        for tutorial in self.catalog.sequence(name):
            if tutorial.id not in self._completed:
                return tutorial
        return None

    # -- listeners ---------------------------------------------------------

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a callback invoked after every state change.

        The callback receives the new snapshot, or None when the engine
        becomes idle.

        Returns:
            A function that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        snapshot = self.current()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Tutorial state listener %r failed", listener)

    # -- navigation ----------------------------------------------------------

    def start(self, tutorial: Tutorial | str) -> TutorialSnapshot:
        """Start a tutorial at its first step.

        Any tutorial already running is abandoned without saving progress.

        Args:
            tutorial: A Tutorial, or the id of a catalog tutorial.

        Returns:
            Snapshot of the first step.

        Raises:
            TutorialNotFoundError: If an id is not in the catalog.
            InvalidTutorialError: If the tutorial has no steps.
        """
        if isinstance(tutorial, str):
            tutorial = self.catalog.get(tutorial)

        if not tutorial.steps:
            raise InvalidTutorialError(f"Tutorial '{tutorial.id}' has no steps")

        if self._active is not None:
            logger.debug(
                "Abandoning tutorial %s at step %d to start %s",
                self._active.id,
                self._index,
                tutorial.id,
            )

        self._active = tutorial
        self._index = 0
        logger.debug("Started tutorial %s", tutorial.id)
        self._notify()
        return TutorialSnapshot(tutorial=tutorial, index=0)

    def advance(self) -> None:
        """Move to the next step, or complete the tutorial from the last one."""
        if self._active is None:
            logger.debug("Ignoring advance() while idle")
            return

        if self._index < self._active.last_index:
            self._index += 1
            self._notify()
        else:
            self.complete()

    def retreat(self) -> None:
        """Move back one step. Does nothing on the first step."""
        if self._active is None:
            logger.debug("Ignoring retreat() while idle")
            return

        if self._index > 0:
            self._index -= 1
            self._notify()

    def skip(self) -> None:
        """Leave the running tutorial without recording it as completed."""
        if self._active is None:
            logger.debug("Ignoring skip() while idle")
            return

        logger.debug("Skipped tutorial %s at step %d", self._active.id, self._index)
        self._reset()

    def complete(self) -> None:
        """Record the running tutorial as completed and return to idle."""
        if self._active is None:
            logger.debug("Ignoring complete() while idle")
            return

        tutorial_id = self._active.id
        self._completed.add(tutorial_id)
        self._persist()
        logger.info("Completed tutorial %s", tutorial_id)
        self._reset()

    def mark_completed(self, tutorial_id: str) -> None:
        """Record a tutorial as completed without running it."""
        self._completed.add(tutorial_id)
        self._persist()

    def reset_progress(self) -> None:
        """Forget every completion recorded for this user."""
        self._completed = set()
        self._persist()

    def set_user(self, user_id: str | None) -> None:
        """Switch the session to another user and load their completions.

        A running tutorial keeps running; its completion is recorded for the
        new user.
        """
        self._user_id = user_id
        self._completed = self._load_completed()

    # -- internals -----------------------------------------------------------

    def _reset(self) -> None:
        self._active = None
        self._index = 0
        self._notify()

    def _load_completed(self) -> set[str]:
        if self._user_id is None:
            return set()
        try:
            return set(self.store.load(self._user_id))
        except OSError as e:  # includes PersistenceUnavailableError
            logger.warning("Tutorial progress unavailable for %s: %s", self._user_id, e)
            return set()

    def _persist(self) -> None:
        if self._user_id is None:
            return
        try:
            self.store.save(self._user_id, set(self._completed))
        except OSError as e:
            logger.warning("Could not save tutorial progress for %s: %s", self._user_id, e)
