"""Tutorial and step models for the OpCoder onboarding system.

Tutorials are authored as data (see ``opcoder/data/tutorials.yaml``) and
parsed into the immutable models below. Display fields are opaque to the
engine: it only cares about tutorial ids, step ids and step order.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Category(Enum):
    """Advisory grouping used by tutorial pickers."""

    BASICS = "basics"
    ADVANCED = "advanced"
    WORKFLOW = "workflow"
    ANALYTICS = "analytics"


class Placement(Enum):
    """Where the presentation layer should anchor a step's card."""

    TOP = "top"
    BOTTOM = "bottom"
    LEFT = "left"
    RIGHT = "right"
    CENTER = "center"


class ActionType(Enum):
    """Kinds of UI action a step may suggest."""

    CLICK = "click"
    NAVIGATE = "navigate"
    WAIT = "wait"


class StepAction(BaseModel):
    """Advisory UI action attached to a step. Never executed by the engine."""

    model_config = ConfigDict(frozen=True)

    type: ActionType = Field(description="Kind of action the UI may perform")
    target: str | None = Field(default=None, description="Element or route the action targets")
    delay_ms: int | None = Field(default=None, ge=0, description="Delay before the action")


class TutorialStep(BaseModel):
    """A single page of guidance within a tutorial.

    Attributes:
        id: Step identifier, unique within its tutorial.
        title: Step title displayed to the user.
        content: Body text.
        target_selector: Optional reference to a UI element to highlight.
        placement: Optional anchoring hint for the step card.
        callout_text: Optional emphasized text.
        tips: Short bullet tips, in display order.
        action: Optional advisory UI action.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    content: str
    target_selector: str | None = None
    placement: Placement | None = None
    callout_text: str | None = None
    tips: tuple[str, ...] = ()
    action: StepAction | None = None


class Tutorial(BaseModel):
    """A named, ordered lesson.

    Attributes:
        id: Catalog-wide unique identifier; also the persistence key.
        title: Tutorial title.
        description: Short description of the tutorial.
        category: Advisory grouping.
        icon: Optional icon name for pickers.
        estimated_minutes: Estimated time to complete in minutes.
        steps: Steps in order.
        prerequisites: Ids of tutorials meant to be taken first. Not enforced.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: str
    category: Category
    icon: str | None = None
    estimated_minutes: int = Field(gt=0)
    steps: tuple[TutorialStep, ...] = ()
    prerequisites: tuple[str, ...] = ()

    @property
    def step_count(self) -> int:
        return len(self.steps)

    @property
    def last_index(self) -> int:
        """Index of the final step, or -1 for an empty tutorial."""
        return len(self.steps) - 1

    def step_ids(self) -> list[str]:
        return [step.id for step in self.steps]


def validate_tutorial(tutorial: Tutorial) -> list[str]:
    """Validate that a tutorial is well-formed.

    Args:
        tutorial: Tutorial to validate.

    Returns:
        List of validation errors (empty if valid).
    """
    errors = []

    if not tutorial.id:
        errors.append("Tutorial must have an id")
    if not tutorial.title:
        errors.append(f"Tutorial '{tutorial.id}' must have a title")

    if not tutorial.steps:
        errors.append(f"Tutorial '{tutorial.id}' must have at least one step")
        return errors

    seen: set[str] = set()
    for step in tutorial.steps:
        if not step.id:
            errors.append(f"Tutorial '{tutorial.id}' has a step without an id")
        elif step.id in seen:
            errors.append(f"Tutorial '{tutorial.id}' has duplicate step id '{step.id}'")
        seen.add(step.id)

        if not step.title:
            errors.append(f"Step '{step.id}' in tutorial '{tutorial.id}' has empty title")
        if not step.content:
            errors.append(f"Step '{step.id}' in tutorial '{tutorial.id}' has empty content")

    if tutorial.id in tutorial.prerequisites:
        errors.append(f"Tutorial '{tutorial.id}' lists itself as a prerequisite")

    return errors
