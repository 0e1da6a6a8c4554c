"""
Feed Personalization Pipeline.

Applies the content filter to a feed batch: hidden items are dropped and the
rest are ordered by relevance boost.
"""

import logging
from typing import Iterable, Iterator, List

import config.settings as settings
from feedprefs.filtering.content_filter import TopicMatcher, evaluate
from feedprefs.models.content import ContentItem, FilterDecision
from feedprefs.models.preference_set import PreferenceSet

logger = logging.getLogger(__name__)


class FeedPersonalizer:
    """
    Filters and orders feed batches against a preference snapshot.

    Ordering is a stable sort on relevance_delta (descending): items with
    equal boosts keep their input order, so refreshing an unchanged feed
    never reshuffles it.
    """

    def __init__(
        self,
        boost_unit: float = settings.BOOST_UNIT,
        match_mode: str = settings.MATCH_MODE
    ):
        """
        Initialize personalizer.

        Args:
            boost_unit: Relevance added per preferred topic match
            match_mode: "word" or "substring"
        """
        TopicMatcher(match_mode)  # rejects unknown modes up front
        self.boost_unit = boost_unit
        self.match_mode = match_mode

    def decide(self, items: Iterable[ContentItem], prefs: PreferenceSet) -> List[FilterDecision]:
        """Filter decision for every item, hidden ones included, in input order."""
        decisions = [
            evaluate(item, prefs, boost_unit=self.boost_unit, match_mode=self.match_mode)
            for item in items
        ]

        hidden = sum(1 for d in decisions if not d.visible)
        logger.info(
            f"Evaluated {len(decisions)} items: {hidden} hidden, "
            f"{sum(1 for d in decisions if d.boosted)} boosted"
        )
        return decisions

    def rank(self, decisions: Iterable[FilterDecision]) -> List[FilterDecision]:
        """Visible decisions, stable-sorted by relevance_delta descending."""
        visible = [d for d in decisions if d.visible]
        return sorted(visible, key=lambda d: -d.relevance_delta)

    def personalize(self, items: Iterable[ContentItem], prefs: PreferenceSet) -> List[FilterDecision]:
        """Ranked visible decisions for a feed batch."""
        return self.rank(self.decide(items, prefs))

    def apply(self, items: Iterable[ContentItem], prefs: PreferenceSet) -> Iterator[ContentItem]:
        """
        Personalized feed as a lazy, single-use iterator.
        Nothing is evaluated until the first item is requested.
        """
        for decision in self.personalize(items, prefs):
            yield decision.item


def apply(
    items: Iterable[ContentItem],
    prefs: PreferenceSet,
    boost_unit: float = settings.BOOST_UNIT,
    match_mode: str = settings.MATCH_MODE
) -> Iterator[ContentItem]:
    """
    Filter and order a feed batch.

    Args:
        items: Feed entries in their original order
        prefs: Preference snapshot to apply

    Returns:
        Iterator over visible items, most boosted first
    """
    return FeedPersonalizer(boost_unit=boost_unit, match_mode=match_mode).apply(items, prefs)
