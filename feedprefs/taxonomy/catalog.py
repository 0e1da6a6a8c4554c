"""
Topic catalog.

Categories are fixed at build time and never mutated at runtime, so they can
be read from any thread without locking.
"""

from typing import Iterable, List, Optional, Tuple, Union

import config.settings as settings
from feedprefs.models.topic import Topic, TopicCategory


TOPIC_CATEGORIES: Tuple[TopicCategory, ...] = (
    TopicCategory(
        name="Gaming",
        icon="🎮",
        topics=("minecraft", "speedrun", "esports", "retro gaming", "indie games",
                "game reviews", "let's play", "strategy games")
    ),
    TopicCategory(
        name="Music",
        icon="🎵",
        topics=("lo-fi", "jazz", "classical", "hip hop", "rock", "electronic",
                "live performance", "music theory")
    ),
    TopicCategory(
        name="Technology",
        icon="💻",
        topics=("programming", "linux", "smartphones", "pc building", "artificial intelligence",
                "cybersecurity", "gadgets", "open source")
    ),
    TopicCategory(
        name="Science",
        icon="🔬",
        topics=("physics", "astronomy", "biology", "chemistry", "mathematics",
                "space exploration", "engineering")
    ),
    TopicCategory(
        name="Education",
        icon="📚",
        topics=("history", "language learning", "tutorials", "documentary",
                "philosophy", "economics")
    ),
    TopicCategory(
        name="Food",
        icon="🍳",
        topics=("cooking", "baking", "recipes", "street food", "vegan", "food review")
    ),
    TopicCategory(
        name="Sports",
        icon="⚽",
        topics=("football", "basketball", "formula 1", "tennis", "climbing",
                "running", "martial arts")
    ),
    TopicCategory(
        name="Lifestyle",
        icon="🌿",
        topics=("travel", "fitness", "minimalism", "productivity", "gardening",
                "diy", "photography")
    ),
    TopicCategory(
        name="Entertainment",
        icon="🎬",
        topics=("movies", "anime", "comedy", "podcasts", "stand-up", "film analysis")
    ),
    TopicCategory(
        name="Automotive",
        icon="🚗",
        topics=("cars", "motorcycles", "electric vehicles", "car reviews")
    ),
)

BLOCK_SUGGESTIONS: Tuple[Topic, ...] = tuple(Topic(label) for label in (
    "makeup", "roblox", "fortnite", "kids", "asmr", "mukbang",
    "reaction", "prank", "tiktok", "unboxing", "slime", "toy",
    "clickbait", "drama", "gossip", "challenge", "family vlog"
))


def categories() -> Tuple[TopicCategory, ...]:
    """Return the catalog in display order."""
    return TOPIC_CATEGORIES


def find_category(topic: Union[Topic, str]) -> Optional[TopicCategory]:
    """
    Find the first category listing a topic.

    Args:
        topic: Topic or raw label

    Returns:
        The category, or None if the topic is not in the catalog
    """
    topic = Topic.parse(topic)
    for category in TOPIC_CATEGORIES:
        if topic in category.topics:
            return category
    return None


def suggested_blocks(
    blocked: Iterable[Topic],
    limit: int = settings.SUGGESTION_LIMIT
) -> List[Topic]:
    """
    Quick-add block suggestions the viewer has not blocked yet.

    Args:
        blocked: Currently blocked topics
        limit: Maximum number of suggestions

    Returns:
        Suggestions in catalog order, at most `limit` long
    """
    blocked = set(blocked)
    return [t for t in BLOCK_SUGGESTIONS if t not in blocked][:limit]
