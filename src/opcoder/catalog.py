"""Tutorial catalog: the immutable set of authored tutorials.

The built-in catalog is loaded from ``opcoder/data/tutorials.yaml``. A
catalog also carries named sequences (ordered tutorial ids offered
back-to-back during onboarding) and the list of onboarding features shown
in the tutorial picker. Sequences are plain data: nothing here starts the
next tutorial when one finishes.
"""

import importlib.resources
import logging
from collections.abc import Iterable, Iterator, Sequence
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import TutorialNotFoundError
from .tutorial import Category, Tutorial, validate_tutorial

logger = logging.getLogger(__name__)

BUILTIN_CATALOG_RESOURCE = "tutorials.yaml"

# Preferred entry point when several onboarding features are picked at once
DEFAULT_FEATURE = "basics"


class OnboardingFeature(BaseModel):
    """A feature a new user can ask to learn about in the tutorial picker."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Feature identifier; matches a tutorial id when one exists")
    name: str = Field(description="Human-readable feature name")
    description: str = Field(description="One-line description shown in the picker")


def choose_starting_feature(selected: Sequence[str]) -> str | None:
    """Pick the feature to start with from a user's selection.

    ``basics`` wins when selected, otherwise the first selected feature.

    Args:
        selected: Feature ids in the order the user picked them.

    Returns:
        The chosen feature id, or None if nothing was selected.
    """
    if DEFAULT_FEATURE in selected:
        return DEFAULT_FEATURE
    return selected[0] if selected else None


class TutorialCatalog:
    """Ordered, read-only collection of tutorials with id lookup.

    Args:
        tutorials: Tutorials in display order.
        sequences: Named ordered lists of tutorial ids.
        features: Onboarding features offered in the tutorial picker.

    Raises:
        ValueError: On duplicate tutorial ids or sequences naming unknown tutorials.
    """

    def __init__(
        self,
        tutorials: Iterable[Tutorial],
        sequences: dict[str, list[str]] | None = None,
        features: Iterable[OnboardingFeature] | None = None,
    ) -> None:
        self._tutorials: dict[str, Tutorial] = {}
        for tutorial in tutorials:
            if tutorial.id in self._tutorials:
                raise ValueError(f"Duplicate tutorial id in catalog: {tutorial.id}")
            self._tutorials[tutorial.id] = tutorial

        self._sequences: dict[str, tuple[str, ...]] = {}
        for name, ids in (sequences or {}).items():
            unknown = [tid for tid in ids if tid not in self._tutorials]
            if unknown:
                raise ValueError(
                    f"Sequence '{name}' references unknown tutorials: {', '.join(unknown)}"
                )
            self._sequences[name] = tuple(ids)

        self._features: tuple[OnboardingFeature, ...] = tuple(features or ())

    def __contains__(self, tutorial_id: object) -> bool:
        return tutorial_id in self._tutorials

    def __len__(self) -> int:
        return len(self._tutorials)

    def __iter__(self) -> Iterator[Tutorial]:
        return iter(self._tutorials.values())

    def get(self, tutorial_id: str) -> Tutorial:
        """Get a tutorial by its identifier.

        Raises:
            TutorialNotFoundError: If no tutorial has this id.
        """
        try:
            return self._tutorials[tutorial_id]
        except KeyError:
            raise TutorialNotFoundError(tutorial_id) from None

    def all(self) -> list[Tutorial]:
        """Return all tutorials in display order."""
        return list(self._tutorials.values())

    def ids(self) -> list[str]:
        return list(self._tutorials)

    def by_category(self) -> dict[Category, list[Tutorial]]:
        """Group tutorials by category, keeping display order within each group."""
        grouped: dict[Category, list[Tutorial]] = {}
        for tutorial in self._tutorials.values():
            grouped.setdefault(tutorial.category, []).append(tutorial)
        return grouped

    def sequence_names(self) -> list[str]:
        return list(self._sequences)

    def sequence(self, name: str) -> list[Tutorial]:
        """Return the tutorials of a named sequence, in order.

        Raises:
            KeyError: If the sequence is not defined.
        """
        if name not in self._sequences:
            raise KeyError(f"Unknown tutorial sequence: {name}")
        return [self._tutorials[tid] for tid in self._sequences[name]]

    @property
    def features(self) -> list[OnboardingFeature]:
        return list(self._features)

    def tutorial_for_feature(self, feature_id: str) -> Tutorial:
        """Resolve an onboarding feature to its tutorial.

        Raises:
            TutorialNotFoundError: If the feature has no tutorial yet.
        """
        return self.get(feature_id)

    def validate(self) -> list[str]:
        """Validate every tutorial plus cross-references between them.

        Returns:
            List of validation errors (empty if valid).
        """
        errors = []
        for tutorial in self._tutorials.values():
            errors.extend(validate_tutorial(tutorial))
            for prerequisite in tutorial.prerequisites:
                if prerequisite not in self._tutorials:
                    errors.append(
                        f"Tutorial '{tutorial.id}' has unknown prerequisite '{prerequisite}'"
                    )
        return errors


def parse_catalog(data: Any, source: str = "<catalog>") -> TutorialCatalog:
    """Build a validated catalog from parsed YAML/JSON data.

    Args:
        data: Mapping with a ``tutorials`` list and optional ``sequences``
            and ``features`` entries.
        source: Name used in error messages.

    Returns:
        The loaded catalog.

    Raises:
        ValueError: If the data is malformed or any tutorial is invalid.
    """
    if not isinstance(data, dict) or not isinstance(data.get("tutorials"), list):
        raise ValueError(f"Invalid tutorial catalog (expected a 'tutorials' list): {source}")

    try:
        tutorials = [Tutorial(**entry) for entry in data["tutorials"]]
        features = [OnboardingFeature(**entry) for entry in data.get("features") or []]
    except (TypeError, ValidationError) as e:
        raise ValueError(f"Invalid tutorial catalog {source}: {e}") from e

    catalog = TutorialCatalog(tutorials, data.get("sequences") or {}, features)
    errors = catalog.validate()
    if errors:
        raise ValueError(f"Invalid tutorial catalog {source}: " + "; ".join(errors))

    logger.debug("Loaded %d tutorials from %s", len(catalog), source)
    return catalog


def load_catalog_from_yaml(yaml_path: Path) -> TutorialCatalog:
    """Load a tutorial catalog from a YAML file.

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If YAML is invalid
    """
    if not yaml_path.exists():
        raise FileNotFoundError(f"Tutorial catalog not found: {yaml_path}")

    with open(yaml_path) as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in tutorial catalog {yaml_path}: {e}") from e

    return parse_catalog(data, str(yaml_path))


def load_builtin_catalog() -> TutorialCatalog:
    """Load the catalog bundled with the package."""
    resource = importlib.resources.files("opcoder") / "data" / BUILTIN_CATALOG_RESOURCE
    data = yaml.safe_load(resource.read_text())
    return parse_catalog(data, f"opcoder/data/{BUILTIN_CATALOG_RESOURCE}")
