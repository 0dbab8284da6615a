"""Contextual help walkthroughs shown from a screen's help button.

Unlike tutorials, help topics keep no progress: finishing or closing one
simply returns the walker to its first step.
"""

import importlib.resources

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

HELP_TOPICS_RESOURCE = "help_topics.yaml"


class HelpStep(BaseModel):
    """One page of a help topic."""

    model_config = ConfigDict(frozen=True)

    title: str
    content: str
    callout_text: str | None = None
    tips: tuple[str, ...] = ()


class HelpTopic(BaseModel):
    """A short walkthrough attached to one screen."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    steps: tuple[HelpStep, ...] = Field(min_length=1)


class HelpWalker:
    """Pages through a help topic.

    ``next()`` on the last step closes the walker and rewinds it, so the
    next time it opens it starts from the beginning.
    """

    def __init__(self, topic: HelpTopic) -> None:
        self.topic = topic
        self.is_open = False
        self.index = 0

    @property
    def step(self) -> HelpStep:
        return self.topic.steps[self.index]

    @property
    def is_last(self) -> bool:
        return self.index == len(self.topic.steps) - 1

    def toggle(self) -> None:
        self.is_open = not self.is_open

    def next(self) -> None:
        if not self.is_last:
            self.index += 1
        else:
            self.is_open = False
            self.index = 0

    def previous(self) -> None:
        if self.index > 0:
            self.index -= 1


def load_help_topics() -> dict[str, HelpTopic]:
    """Load the help topics bundled with the package, keyed by id.

    Raises:
        ValueError: If the bundled data is malformed.
    """
    resource = importlib.resources.files("opcoder") / "data" / HELP_TOPICS_RESOURCE
    data = yaml.safe_load(resource.read_text())
    if not isinstance(data, dict) or not isinstance(data.get("topics"), list):
        raise ValueError(f"Invalid help topics file: {HELP_TOPICS_RESOURCE}")

    try:
        topics = [HelpTopic(**entry) for entry in data["topics"]]
    except (TypeError, ValidationError) as e:
        raise ValueError(f"Invalid help topics file {HELP_TOPICS_RESOURCE}: {e}") from e

    return {topic.id: topic for topic in topics}
