"""
Content Filter.

Decides whether a feed item is shown and how much its relevance is boosted,
using keyword matching of preferred and blocked topics against the item's
title, description and tags.
"""

import re
import logging
from functools import lru_cache
from typing import Iterable, Pattern, Tuple

import config.settings as settings
from feedprefs.models.content import ContentItem, FilterDecision
from feedprefs.models.preference_set import PreferenceSet
from feedprefs.models.topic import Topic, normalize_text

logger = logging.getLogger(__name__)

MATCH_MODES = ("word", "substring")

# Joins the item's text fields; neither mode can match a phrase across it.
FIELD_SEPARATOR = " | "

_WORD_SPLIT_RE = re.compile(r"[\s\-]+")


@lru_cache(maxsize=4096)
def _word_pattern(label: str) -> Pattern:
    """
    Compile a whole-word pattern for a topic label.

    Multi-word and hyphenated labels match their words joined by any run of
    spaces or hyphens, so "lo-fi" matches "lo fi" and "lo-fi".
    """
    words = [re.escape(w) for w in _WORD_SPLIT_RE.split(label) if w]
    return re.compile(r"(?<!\w)" + r"[\s\-]+".join(words) + r"(?!\w)")


def searchable_text(item: ContentItem) -> str:
    """Normalized title, description and tags joined by FIELD_SEPARATOR."""
    fields = [item.title, item.description, *item.tags]
    return FIELD_SEPARATOR.join(
        text for text in (normalize_text(f) for f in fields if f) if text
    )


class TopicMatcher:
    """
    Finds which topics occur in a searchable text.

    Modes:
    - "word": whole words or space/hyphen-joined phrases only
      ("asmr" matches "asmr eating show" but not "asmrookie")
    - "substring": plain substring check
    """

    def __init__(self, mode: str = settings.MATCH_MODE):
        if mode not in MATCH_MODES:
            raise ValueError(f"Invalid match mode: {mode}. Must be one of {MATCH_MODES}")
        self.mode = mode

    def matches(self, topic: Topic, text: str) -> bool:
        if self.mode == "substring":
            return topic.label in text
        return _word_pattern(topic.label).search(text) is not None

    def find(self, topics: Iterable[Topic], text: str) -> Tuple[Topic, ...]:
        """Distinct topics found in text, in sorted order."""
        return tuple(sorted(t for t in set(topics) if self.matches(t, text)))


def evaluate(
    item: ContentItem,
    prefs: PreferenceSet,
    boost_unit: float = settings.BOOST_UNIT,
    match_mode: str = settings.MATCH_MODE
) -> FilterDecision:
    """
    Filter one item against a profile's preferences.

    Blocked topics are checked first; any match hides the item and no boost
    is computed. Otherwise relevance_delta is the number of distinct
    preferred topics found times boost_unit.

    Args:
        item: Feed entry to evaluate
        prefs: Snapshot of the viewer's preferences
        boost_unit: Relevance added per preferred match
        match_mode: "word" or "substring"

    Returns:
        FilterDecision; an item that cannot be evaluated is visible with zero delta

    Raises:
        ValueError: If match_mode is unknown
    """
    matcher = TopicMatcher(match_mode)

    if prefs.is_empty:
        return FilterDecision(item=item, visible=True)

    try:
        text = searchable_text(item)

        blocked = matcher.find(prefs.blocked, text)
        if blocked:
            logger.debug(f"Hiding {item.item_id}: blocked by {[t.label for t in blocked]}")
            return FilterDecision(item=item, visible=False, matched_blocked=blocked)

        preferred = matcher.find(prefs.preferred, text)
        return FilterDecision(
            item=item,
            visible=True,
            relevance_delta=len(preferred) * boost_unit,
            matched_preferred=preferred
        )

    except Exception as e:
        logger.error(f"Failed to evaluate item {getattr(item, 'item_id', '?')}, showing unfiltered: {e}")
        return FilterDecision(item=item, visible=True)
