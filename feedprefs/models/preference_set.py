"""
PreferenceSet data model.

The preferred and blocked topic sets of one viewer profile.
Instances are immutable; every change produces a new set.
"""

from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Union

from feedprefs.models.topic import Topic


def _as_topics(values: Iterable[Union[Topic, str]]) -> FrozenSet[Topic]:
    return frozenset(Topic.parse(v) for v in values)


@dataclass(frozen=True)
class PreferenceSet:
    """
    Preferred topics boost matching items, blocked topics hide them.
    A topic is never in both sets.
    """
    preferred: FrozenSet[Topic] = field(default_factory=frozenset)
    blocked: FrozenSet[Topic] = field(default_factory=frozenset)

    def __post_init__(self):
        object.__setattr__(self, "preferred", _as_topics(self.preferred))
        object.__setattr__(self, "blocked", _as_topics(self.blocked))

        overlap = self.preferred & self.blocked
        if overlap:
            labels = ", ".join(sorted(t.label for t in overlap))
            raise ValueError(f"Topics cannot be both preferred and blocked: {labels}")

    @classmethod
    def empty(cls) -> "PreferenceSet":
        return cls()

    @property
    def is_empty(self) -> bool:
        return not self.preferred and not self.blocked

    def with_preferred(self, topic: Topic) -> "PreferenceSet":
        """Add to preferred, evicting the topic from blocked first."""
        return PreferenceSet(
            preferred=self.preferred | {topic},
            blocked=self.blocked - {topic}
        )

    def without_preferred(self, topic: Topic) -> "PreferenceSet":
        return PreferenceSet(preferred=self.preferred - {topic}, blocked=self.blocked)

    def with_blocked(self, topic: Topic) -> "PreferenceSet":
        """Add to blocked, evicting the topic from preferred first."""
        return PreferenceSet(
            preferred=self.preferred - {topic},
            blocked=self.blocked | {topic}
        )

    def without_blocked(self, topic: Topic) -> "PreferenceSet":
        return PreferenceSet(preferred=self.preferred, blocked=self.blocked - {topic})

    @classmethod
    def from_dict(cls, data: dict) -> "PreferenceSet":
        """Create PreferenceSet from JSON dict."""
        return cls(
            preferred=data.get("preferred", []),
            blocked=data.get("blocked", [])
        )

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict with sorted label lists."""
        return {
            "preferred": sorted(t.label for t in self.preferred),
            "blocked": sorted(t.label for t in self.blocked)
        }
