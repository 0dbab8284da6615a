"""Durable per-user storage of completed tutorial ids.

A progress store only knows about sets of tutorial ids keyed by user. The
engine does the read-modify-write; stores simply return the last saved set
and overwrite it on save (last write wins).
"""

import json
import logging
from pathlib import Path
from typing import Protocol, runtime_checkable
from urllib.parse import quote

from .errors import PersistenceUnavailableError

logger = logging.getLogger(__name__)


@runtime_checkable
class ProgressStore(Protocol):
    """Protocol for completion storage backends."""

    def load(self, user_id: str) -> set[str]:
        """Return the completed tutorial ids for a user.

        Args:
            user_id: Identity of the user.

        Returns:
            The last saved set, or an empty set if nothing was saved yet.
        """
        ...

    def save(self, user_id: str, tutorial_ids: set[str]) -> None:
        """Overwrite the completed tutorial ids for a user.

        Raises:
            PersistenceUnavailableError: If the backing storage cannot be written.
        """
        ...


class InMemoryProgressStore:
    """Dict-backed store. Contents are lost with the process."""

    def __init__(self, initial: dict[str, set[str]] | None = None) -> None:
        self._records: dict[str, set[str]] = {
            user_id: set(ids) for user_id, ids in (initial or {}).items()
        }

    def load(self, user_id: str) -> set[str]:
        return set(self._records.get(user_id, set()))

    def save(self, user_id: str, tutorial_ids: set[str]) -> None:
        self._records[user_id] = set(tutorial_ids)


class JsonFileProgressStore:
    """Stores each user's completions as a JSON list in its own file.

    Files are named ``tutorial-progress-<user_id>.json`` inside ``directory``.
    Unreadable or corrupt files load as an empty set; tutorial progress is
    never worth failing a session over.
    """

    def __init__(self, directory: Path | None = None) -> None:
        """Initialize the store.

        Args:
            directory: Directory holding progress files.
                Defaults to ~/.opcoder/tutorials/.
        """
        if directory is None:
            self.directory = Path.home() / ".opcoder" / "tutorials"
        else:
            self.directory = Path(directory)

    def path_for(self, user_id: str) -> Path:
        """Return the progress file path for a user.

        The id is percent-encoded, so distinct ids always get distinct files
        and path separators cannot leave ``directory``.
        """
        safe_id = quote(user_id, safe="")
        return self.directory / f"tutorial-progress-{safe_id}.json"

    def load(self, user_id: str) -> set[str]:
        progress_file = self.path_for(user_id)
        if not progress_file.exists():
            return set()

        try:
            data = json.loads(progress_file.read_text())
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable tutorial progress %s: %s", progress_file, e)
            return set()

        if not isinstance(data, list) or not all(isinstance(item, str) for item in data):
            logger.warning("Ignoring malformed tutorial progress in %s", progress_file)
            return set()

        return set(data)

    def save(self, user_id: str, tutorial_ids: set[str]) -> None:
        progress_file = self.path_for(user_id)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            progress_file.write_text(json.dumps(sorted(tutorial_ids), indent=2))
        except OSError as e:
            raise PersistenceUnavailableError(
                f"Cannot write tutorial progress to {progress_file}: {e}"
            ) from e
