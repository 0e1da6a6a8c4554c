"""
Content data models.

ContentItem is a feed entry consumed read-only by the content filter.
FilterDecision is the filter's verdict on one item.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple

from feedprefs.models.topic import Topic


@dataclass(frozen=True)
class ContentItem:
    """
    A feed entry (video, short, playlist).
    Only text fields are needed for filtering.
    """
    item_id: str
    title: str = ""
    description: str = ""
    tags: Tuple[str, ...] = field(default_factory=tuple)
    channel: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "tags", tuple(self.tags or ()))

    @classmethod
    def from_dict(cls, data: dict) -> "ContentItem":
        """
        Create ContentItem from feed JSON; missing text fields default to empty.

        Raises:
            ValueError: If the entry is not an object or has no item_id
        """
        if not isinstance(data, dict):
            raise ValueError(f"Feed entry must be an object, got {type(data).__name__}")
        if data.get("item_id") is None:
            raise ValueError(f"Feed entry has no item_id: {data}")

        return cls(
            item_id=str(data["item_id"]),
            title=str(data.get("title") or ""),
            description=str(data.get("description") or ""),
            tags=tuple(str(t) for t in (data.get("tags") or ()) if t is not None),
            channel=data.get("channel")
        )

    def to_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "title": self.title,
            "description": self.description,
            "tags": list(self.tags),
            "channel": self.channel
        }


@dataclass(frozen=True)
class FilterDecision:
    """
    Outcome of filtering one item.

    matched_preferred / matched_blocked list the topics that produced the
    decision, in sorted order.
    """
    item: ContentItem
    visible: bool
    relevance_delta: float = 0.0
    matched_preferred: Tuple[Topic, ...] = field(default_factory=tuple)
    matched_blocked: Tuple[Topic, ...] = field(default_factory=tuple)

    @property
    def boosted(self) -> bool:
        return self.visible and self.relevance_delta > 0
