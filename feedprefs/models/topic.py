"""
Topic data model.

Represents a canonical topic label (used for both interests and blocked
keywords) and the categories the taxonomy groups them into.
"""

from dataclasses import dataclass, field
from typing import Iterable, Tuple, Union

import config.settings as settings
from feedprefs.errors import InvalidTopic


def normalize_text(text: str) -> str:
    """Lower-case, trim and collapse internal whitespace runs to one space."""
    return " ".join(text.split()).lower()


@dataclass(frozen=True, order=True)
class Topic:
    """
    A normalized free-text label.

    Construction canonicalizes the label, so Topic("  Lo-Fi  Beats")
    and Topic("lo-fi beats") are the same topic.
    """
    label: str

    def __post_init__(self):
        if not isinstance(self.label, str):
            raise InvalidTopic(self.label, "topic must be a string")

        label = normalize_text(self.label)

        if not label:
            raise InvalidTopic(self.label, "topic is empty")
        if not any(ch.isalnum() for ch in label):
            raise InvalidTopic(self.label, "topic has no letters or digits")
        if len(label) > settings.TOPIC_MAX_LENGTH:
            raise InvalidTopic(
                self.label,
                f"topic longer than {settings.TOPIC_MAX_LENGTH} characters"
            )

        object.__setattr__(self, "label", label)

    @classmethod
    def parse(cls, value: Union["Topic", str]) -> "Topic":
        """Accept an existing Topic unchanged, otherwise canonicalize raw text."""
        if isinstance(value, Topic):
            return value
        return cls(value)

    def __str__(self) -> str:
        return self.label


@dataclass(frozen=True)
class TopicCategory:
    """
    A named group of topics shown together when browsing interests.
    Topics keep their declared order and must be unique within the category.
    """
    name: str
    icon: str
    topics: Tuple[Topic, ...] = field(default_factory=tuple)

    def __post_init__(self):
        topics = tuple(Topic.parse(t) for t in self.topics)
        if len(set(topics)) != len(topics):
            raise ValueError(f"Duplicate topic in category '{self.name}'")
        object.__setattr__(self, "topics", topics)

    def __contains__(self, topic: object) -> bool:
        if isinstance(topic, str):
            try:
                topic = Topic(topic)
            except InvalidTopic:
                return False
        return topic in self.topics

    def selected_count(self, selected: Iterable[Topic]) -> int:
        """Number of this category's topics present in `selected`."""
        selected = set(selected)
        return sum(1 for t in self.topics if t in selected)
