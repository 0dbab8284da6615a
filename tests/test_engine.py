"""Tests for the tutorial sequencing engine."""

import logging
from pathlib import Path

import pytest

from opcoder.catalog import TutorialCatalog, load_builtin_catalog
from opcoder.engine import TutorialEngine, TutorialSnapshot
from opcoder.errors import (
    InvalidTutorialError,
    PersistenceUnavailableError,
    TutorialNotFoundError,
)
from opcoder.progress import InMemoryProgressStore, JsonFileProgressStore
from opcoder.tutorial import Tutorial, TutorialStep

USER = "42"


def _tutorial(tutorial_id: str, steps: int) -> Tutorial:
    return Tutorial(
        id=tutorial_id,
        title=tutorial_id.title(),
        description=f"Learn {tutorial_id}",
        category="basics",
        estimated_minutes=2,
        steps=[
            TutorialStep(id=f"step-{i}", title=f"Step {i}", content=f"Body {i}")
            for i in range(steps)
        ],
    )


class FailingStore:
    """Progress store whose backing storage is always unavailable."""

    def __init__(self) -> None:
        self.save_calls = 0

    def load(self, user_id: str) -> set[str]:
        raise PersistenceUnavailableError("storage offline")

    def save(self, user_id: str, tutorial_ids: set[str]) -> None:
        self.save_calls += 1
        raise PersistenceUnavailableError("storage offline")


class OSErrorStore:
    """Progress store that fails with plain OSError, as a disk-backed store might."""

    def load(self, user_id: str) -> set[str]:
        raise PermissionError("read-only home directory")

    def save(self, user_id: str, tutorial_ids: set[str]) -> None:
        raise OSError("disk full")


@pytest.fixture
def catalog() -> TutorialCatalog:
    return TutorialCatalog(
        [_tutorial("alpha", 3), _tutorial("beta", 2), _tutorial("solo", 1)],
        sequences={"path": ["alpha", "beta", "solo"]},
    )


@pytest.fixture
def store() -> InMemoryProgressStore:
    return InMemoryProgressStore()


@pytest.fixture
def engine(store: InMemoryProgressStore, catalog: TutorialCatalog) -> TutorialEngine:
    return TutorialEngine(store=store, user_id=USER, catalog=catalog)


def _state(engine: TutorialEngine) -> tuple[str, int] | None:
    snapshot = engine.current()
    return None if snapshot is None else (snapshot.tutorial.id, snapshot.index)


# ---------------------------------------------------------------------------
# Initial state and start
# ---------------------------------------------------------------------------


class TestStart:
    """Tests for starting tutorials."""

    def test_initially_idle(self, engine: TutorialEngine) -> None:
        """Test that a new engine has no running tutorial."""
        assert engine.is_running is False
        assert engine.current() is None

    def test_start_by_value(self, engine: TutorialEngine) -> None:
        """Test starting a Tutorial object."""
        snapshot = engine.start(_tutorial("adhoc", 2))
        assert engine.is_running is True
        assert snapshot.tutorial.id == "adhoc"
        assert snapshot.index == 0
        assert _state(engine) == ("adhoc", 0)

    def test_start_by_id(self, engine: TutorialEngine) -> None:
        """Test that ids resolve through the catalog."""
        engine.start("alpha")
        assert _state(engine) == ("alpha", 0)

    def test_start_unknown_id(self, engine: TutorialEngine) -> None:
        """Test that an unknown id raises and leaves the engine idle."""
        with pytest.raises(TutorialNotFoundError):
            engine.start("nonexistent")
        assert engine.is_running is False

    def test_start_empty_tutorial_fails_fast(self, engine: TutorialEngine) -> None:
        """Test that a tutorial without steps cannot be started."""
        with pytest.raises(InvalidTutorialError, match="no steps"):
            engine.start(_tutorial("empty", 0))
        assert engine.is_running is False

    def test_default_catalog_is_builtin(self) -> None:
        """Test that the engine falls back to the bundled catalog."""
        engine = TutorialEngine()
        assert engine.catalog.ids() == load_builtin_catalog().ids()
        engine.start("basics")
        assert _state(engine) == ("basics", 0)


# ---------------------------------------------------------------------------
# Navigation properties
# ---------------------------------------------------------------------------


class TestNavigation:
    """Tests for advance, retreat, skip and complete."""

    def test_linear_walk_completes_on_nth_advance(
        self, engine: TutorialEngine, store: InMemoryProgressStore
    ) -> None:
        """Test that N advances visit every step then complete."""
        tutorial = engine.catalog.get("alpha")
        engine.start(tutorial)
        visited = [engine.current().index]

        for call in range(1, tutorial.step_count + 1):
            engine.advance()
            if call < tutorial.step_count:
                visited.append(engine.current().index)
                assert "alpha" not in store.load(USER)
            else:
                assert engine.is_running is False

        assert visited == [0, 1, 2]
        assert store.load(USER) == {"alpha"}

    def test_retreat_at_first_step_is_noop(self, engine: TutorialEngine) -> None:
        """Test that retreat cannot go before the first step."""
        engine.start("alpha")
        engine.retreat()
        assert _state(engine) == ("alpha", 0)

    def test_retreat_moves_back(self, engine: TutorialEngine) -> None:
        """Test that retreat decrements the step index."""
        engine.start("alpha")
        engine.advance()
        engine.advance()
        engine.retreat()
        assert _state(engine) == ("alpha", 1)

    def test_skip_does_not_record(
        self, engine: TutorialEngine, store: InMemoryProgressStore
    ) -> None:
        """Test that skipping returns to idle without saving completion."""
        engine.start("alpha")
        engine.advance()
        engine.skip()
        assert engine.is_running is False
        assert "alpha" not in store.load(USER)
        assert not engine.is_completed("alpha")

    def test_skipped_tutorial_restarts_from_first_step(self, engine: TutorialEngine) -> None:
        """Test that a skipped tutorial has no memory of its position."""
        engine.start("alpha")
        engine.advance()
        engine.skip()
        engine.start("alpha")
        assert _state(engine) == ("alpha", 0)

    def test_natural_completion_records(
        self, engine: TutorialEngine, store: InMemoryProgressStore
    ) -> None:
        """Test that advancing past the last step records completion."""
        engine.start("beta")
        engine.advance()
        engine.advance()
        assert store.load(USER) == {"beta"}
        assert engine.is_completed("beta")

    def test_direct_complete(self, engine: TutorialEngine, store: InMemoryProgressStore) -> None:
        """Test that complete() can be called from any step."""
        engine.start("alpha")
        engine.complete()
        assert engine.is_running is False
        assert store.load(USER) == {"alpha"}

    def test_completion_is_idempotent(
        self, engine: TutorialEngine, store: InMemoryProgressStore
    ) -> None:
        """Test that completing twice keeps a single entry."""
        for _ in range(2):
            engine.start("beta")
            engine.advance()
            engine.advance()
        assert store.load(USER) == {"beta"}
        assert engine.completed == frozenset({"beta"})

    def test_restart_abandons_progress(
        self, engine: TutorialEngine, store: InMemoryProgressStore
    ) -> None:
        """Test that starting another tutorial gives no partial credit."""
        engine.start("alpha")
        engine.advance()
        engine.start("beta")
        assert "alpha" not in store.load(USER)
        assert _state(engine) == ("beta", 0)

    def test_single_step_tutorial(
        self, engine: TutorialEngine, store: InMemoryProgressStore
    ) -> None:
        """Test that one advance completes a single-step tutorial."""
        snapshot = engine.start("solo")
        assert snapshot.is_first and snapshot.is_last
        engine.advance()
        assert engine.is_running is False
        assert store.load(USER) == {"solo"}

    @pytest.mark.parametrize("operation", ["advance", "retreat", "skip", "complete"])
    def test_idle_operations_are_noops(
        self, engine: TutorialEngine, store: InMemoryProgressStore, operation: str
    ) -> None:
        """Test that navigation while idle never raises or writes."""
        getattr(engine, operation)()
        assert engine.is_running is False
        assert store.load(USER) == set()
        assert engine.completed == frozenset()


class TestBasicsScenario:
    """Walk through the built-in basics tour for user 42."""

    def test_scenario(self) -> None:
        store = InMemoryProgressStore()
        engine = TutorialEngine(store=store, user_id="42", catalog=load_builtin_catalog())

        engine.start("basics")
        assert _state(engine) == ("basics", 0)

        for _ in range(3):
            engine.advance()
        assert _state(engine) == ("basics", 3)
        assert engine.current().step.id == "quick-actions"

        engine.advance()
        assert store.load("42") == {"basics"}
        assert engine.current() is None

        engine.start("basics")
        assert _state(engine) == ("basics", 0)
        engine.retreat()
        assert _state(engine) == ("basics", 0)


# ---------------------------------------------------------------------------
# mark_completed, reset and users
# ---------------------------------------------------------------------------


class TestCompletionRecords:
    """Tests for completion bookkeeping outside of a run."""

    def test_mark_completed(self, engine: TutorialEngine, store: InMemoryProgressStore) -> None:
        """Test recording completion without running the tutorial."""
        engine.mark_completed("rvu")
        assert store.load(USER) == {"rvu"}
        assert engine.is_running is False

    def test_mark_completed_does_not_touch_running_tutorial(self, engine: TutorialEngine) -> None:
        """Test that mark_completed leaves engine state alone."""
        engine.start("alpha")
        engine.advance()
        engine.mark_completed("beta")
        assert _state(engine) == ("alpha", 1)
        assert engine.is_completed("beta")

    def test_mark_completed_is_idempotent(
        self, engine: TutorialEngine, store: InMemoryProgressStore
    ) -> None:
        """Test that marking twice keeps one entry."""
        engine.mark_completed("alpha")
        engine.mark_completed("alpha")
        assert store.load(USER) == {"alpha"}

    def test_loads_existing_progress(self, catalog: TutorialCatalog) -> None:
        """Test that previous completions are loaded at construction."""
        store = InMemoryProgressStore({USER: {"alpha"}})
        engine = TutorialEngine(store=store, user_id=USER, catalog=catalog)
        assert engine.is_completed("alpha")
        engine.mark_completed("beta")
        assert store.load(USER) == {"alpha", "beta"}

    def test_reset_progress(self, engine: TutorialEngine, store: InMemoryProgressStore) -> None:
        """Test that reset forgets every completion."""
        engine.mark_completed("alpha")
        engine.reset_progress()
        assert engine.completed == frozenset()
        assert store.load(USER) == set()

    def test_set_user_reloads(self, catalog: TutorialCatalog) -> None:
        """Test that switching users loads the new user's completions."""
        store = InMemoryProgressStore({"a": {"alpha"}, "b": {"beta"}})
        engine = TutorialEngine(store=store, user_id="a", catalog=catalog)
        engine.set_user("b")
        assert engine.user_id == "b"
        assert engine.completed == frozenset({"beta"})

    def test_anonymous_session_is_not_persisted(self, catalog: TutorialCatalog) -> None:
        """Test that without a user, completions stay in memory."""
        store = InMemoryProgressStore()
        engine = TutorialEngine(store=store, user_id=None, catalog=catalog)
        engine.start("solo")
        engine.advance()
        assert engine.is_completed("solo")
        assert store.load(USER) == set()

    def test_persists_to_json_files(self, tmp_path: Path, catalog: TutorialCatalog) -> None:
        """Test that completions survive a new session with a file store."""
        first = TutorialEngine(JsonFileProgressStore(tmp_path), user_id=USER, catalog=catalog)
        first.start("solo")
        first.advance()

        second = TutorialEngine(JsonFileProgressStore(tmp_path), user_id=USER, catalog=catalog)
        assert second.completed == frozenset({"solo"})
        assert second.is_running is False

    def test_similar_user_ids_do_not_share_progress(
        self, tmp_path: Path, catalog: TutorialCatalog
    ) -> None:
        """Test that users whose ids differ only in punctuation stay separate."""
        store = JsonFileProgressStore(tmp_path)
        TutorialEngine(store, user_id="alice@clinic.org", catalog=catalog).mark_completed("solo")

        other = TutorialEngine(store, user_id="alice_clinic.org", catalog=catalog)
        assert "solo" not in other.completed


class TestPersistenceFailures:
    """Tests for degraded behavior when storage is unavailable."""

    def test_load_failure_starts_empty(
        self, catalog: TutorialCatalog, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test that an unavailable store loads as no progress."""
        with caplog.at_level(logging.WARNING, logger="opcoder.engine"):
            engine = TutorialEngine(store=FailingStore(), user_id=USER, catalog=catalog)
        assert engine.completed == frozenset()
        assert "unavailable" in caplog.text

    def test_save_failure_is_swallowed(
        self, catalog: TutorialCatalog, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test that a failed save still finishes the run and keeps the memory copy."""
        store = FailingStore()
        engine = TutorialEngine(store=store, user_id=USER, catalog=catalog)
        engine.start("solo")
        with caplog.at_level(logging.WARNING, logger="opcoder.engine"):
            engine.advance()
        assert engine.is_running is False
        assert engine.is_completed("solo")
        assert store.save_calls == 1
        assert "Could not save tutorial progress" in caplog.text

    def test_plain_os_errors_are_contained(
        self, catalog: TutorialCatalog, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test that a store raising bare OSError degrades the same way."""
        store = OSErrorStore()
        with caplog.at_level(logging.WARNING, logger="opcoder.engine"):
            engine = TutorialEngine(store=store, user_id=USER, catalog=catalog)
            engine.mark_completed("alpha")
        assert engine.completed == frozenset({"alpha"})
        assert "unavailable" in caplog.text
        assert "Could not save tutorial progress" in caplog.text


# ---------------------------------------------------------------------------
# Snapshots, listeners and helpers
# ---------------------------------------------------------------------------


class TestSnapshot:
    """Tests for TutorialSnapshot."""

    def test_derived_fields(self) -> None:
        """Test step lookup and position flags."""
        tutorial = _tutorial("t", 4)
        snapshot = TutorialSnapshot(tutorial=tutorial, index=1)
        assert snapshot.step.id == "step-1"
        assert snapshot.total_steps == 4
        assert snapshot.is_first is False
        assert snapshot.is_last is False
        assert snapshot.progress_percent == 50.0

    def test_last_step(self) -> None:
        """Test the last-step flags and full progress."""
        snapshot = TutorialSnapshot(tutorial=_tutorial("t", 2), index=1)
        assert snapshot.is_last is True
        assert snapshot.progress_percent == 100.0


class TestListeners:
    """Tests for state change listeners."""

    def test_listener_sees_every_transition(self, engine: TutorialEngine) -> None:
        """Test that listeners receive snapshots then None on completion."""
        seen: list[tuple[str, int] | None] = []
        engine.subscribe(lambda s: seen.append(None if s is None else (s.tutorial.id, s.index)))

        engine.start("beta")
        engine.advance()
        engine.retreat()
        engine.retreat()  # no-op at first step
        engine.advance()
        engine.advance()

        assert seen == [("beta", 0), ("beta", 1), ("beta", 0), ("beta", 1), None]

    def test_idle_noops_do_not_notify(self, engine: TutorialEngine) -> None:
        """Test that ignored operations do not fire listeners."""
        calls: list[TutorialSnapshot | None] = []
        engine.subscribe(calls.append)
        engine.advance()
        engine.skip()
        assert calls == []

    def test_unsubscribe(self, engine: TutorialEngine) -> None:
        """Test that an unsubscribed listener stops receiving updates."""
        calls: list[TutorialSnapshot | None] = []
        unsubscribe = engine.subscribe(calls.append)
        engine.start("alpha")
        unsubscribe()
        engine.advance()
        assert len(calls) == 1

    def test_failing_listener_does_not_break_engine(
        self, engine: TutorialEngine, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test that a raising listener is logged and ignored."""

        def broken(_snapshot: TutorialSnapshot | None) -> None:
            raise RuntimeError("render failed")

        engine.subscribe(broken)
        with caplog.at_level(logging.ERROR, logger="opcoder.engine"):
            engine.start("alpha")
        assert _state(engine) == ("alpha", 0)
        assert "listener" in caplog.text


class TestHelpers:
    """Tests for picker helpers."""

    def test_available_tutorials(self, engine: TutorialEngine) -> None:
        """Test that every tutorial is listed with its completion flag."""
        engine.mark_completed("beta")
        assert [(t.id, done) for t, done in engine.available_tutorials()] == [
            ("alpha", False),
            ("beta", True),
            ("solo", False),
        ]

    def test_next_in_sequence(self, engine: TutorialEngine) -> None:
        """Test suggesting the first unfinished tutorial of a sequence."""
        assert engine.next_in_sequence("path").id == "alpha"
        engine.mark_completed("alpha")
        assert engine.next_in_sequence("path").id == "beta"

    def test_next_in_sequence_all_done(self, engine: TutorialEngine) -> None:
        """Test that a finished sequence suggests nothing."""
        for tid in ("alpha", "beta", "solo"):
            engine.mark_completed(tid)
        assert engine.next_in_sequence("path") is None

    def test_completing_does_not_chain(self, engine: TutorialEngine) -> None:
        """Test that finishing one sequence entry does not start the next."""
        engine.start("beta")
        engine.advance()
        engine.advance()
        assert engine.is_running is False
        assert engine.next_in_sequence("path").id == "alpha"
