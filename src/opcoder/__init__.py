"""OpCoder tutorials - guided onboarding for surgical CPT coding.

Sequences users through step-by-step tutorials and remembers which ones
each user has completed.
"""

__version__ = "0.3.0"

from .catalog import TutorialCatalog, load_builtin_catalog, load_catalog_from_yaml
from .engine import TutorialEngine, TutorialSnapshot
from .errors import (
    InvalidTutorialError,
    PersistenceUnavailableError,
    TutorialError,
    TutorialNotFoundError,
)
from .progress import InMemoryProgressStore, JsonFileProgressStore, ProgressStore
from .tutorial import Category, Placement, Tutorial, TutorialStep

__all__ = [
    "Category",
    "InMemoryProgressStore",
    "InvalidTutorialError",
    "JsonFileProgressStore",
    "PersistenceUnavailableError",
    "Placement",
    "ProgressStore",
    "Tutorial",
    "TutorialCatalog",
    "TutorialEngine",
    "TutorialError",
    "TutorialNotFoundError",
    "TutorialSnapshot",
    "TutorialStep",
    "__version__",
    "load_builtin_catalog",
    "load_catalog_from_yaml",
]
