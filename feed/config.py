"""
Configuration and constants for the feed recommendation system.
"""
import logging
import os
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Mapping

# Collaborative filtering limits
MAX_SEED_ITEMS = 100
MAX_SIMILAR_USERS_PER_ITEM = 50
MAX_ITEMS_PER_SIMILAR_USER = 20

# Batch cache
BATCH_SIZE = 250  # ~12 pages of 20 before a recompute
BATCH_TTL_SECONDS = 1800  # 30 minutes, roughly one session
PREFETCH_THRESHOLD = 0.5
BATCH_KEY_PREFIX = "feed:rec"

# Feed pagination
RECENTLY_VIEWED_LIMIT = 100
DEFAULT_PAGE_LIMIT = 20
MAX_PAGE_LIMIT = 100

# Prefetch worker pool
PREFETCH_WORKERS = 2
BLEND_WORKERS = 4


class InteractionWeights:
    """Collaborative scoring weight per interaction kind."""

    LIKE = 1.0
    SAVE = 1.5
    SHARE = 2.0
    COMMENT = 0.0


class PopularityWeights:
    """Counter weights for the popularity strategy."""

    VIEW = 1.0
    LIKE = 5.0
    COMMENT = 3.0
    SAVE = 7.0
    SHARE = 10.0


class StrategyProportions:
    """Share of each blended candidate strategy."""

    COLLABORATIVE = 0.4
    POPULAR = 0.3
    NEW = 0.1
    RANDOM = 0.2


def _default_interaction_weights() -> Dict[str, float]:
    return {
        'LIKE': InteractionWeights.LIKE,
        'SAVE': InteractionWeights.SAVE,
        'SHARE': InteractionWeights.SHARE,
        'COMMENT': InteractionWeights.COMMENT,
    }


def _default_popularity_weights() -> Dict[str, float]:
    return {
        'view': PopularityWeights.VIEW,
        'like': PopularityWeights.LIKE,
        'comment': PopularityWeights.COMMENT,
        'save': PopularityWeights.SAVE,
        'share': PopularityWeights.SHARE,
    }


def _default_strategy_proportions() -> Dict[str, float]:
    return {
        'collaborative': StrategyProportions.COLLABORATIVE,
        'popular': StrategyProportions.POPULAR,
        'new': StrategyProportions.NEW,
        'random': StrategyProportions.RANDOM,
    }


@dataclass(frozen=True)
class FeedConfig:
    """Tunables shared by the scorer, blender, batch cache and assembler."""

    max_seed_items: int = MAX_SEED_ITEMS
    max_similar_users_per_item: int = MAX_SIMILAR_USERS_PER_ITEM
    max_items_per_similar_user: int = MAX_ITEMS_PER_SIMILAR_USER
    interaction_weights: Mapping[str, float] = field(default_factory=_default_interaction_weights, hash=False)
    popularity_weights: Mapping[str, float] = field(default_factory=_default_popularity_weights, hash=False)
    strategy_proportions: Mapping[str, float] = field(default_factory=_default_strategy_proportions, hash=False)
    batch_size: int = BATCH_SIZE
    batch_ttl_seconds: int = BATCH_TTL_SECONDS
    prefetch_threshold: float = PREFETCH_THRESHOLD
    recently_viewed_limit: int = RECENTLY_VIEWED_LIMIT
    default_page_limit: int = DEFAULT_PAGE_LIMIT
    max_page_limit: int = MAX_PAGE_LIMIT

    def __post_init__(self):
        # read-only views over private copies
        for name in ('interaction_weights', 'popularity_weights', 'strategy_proportions'):
            object.__setattr__(self, name, MappingProxyType(dict(getattr(self, name))))

    @classmethod
    def from_env(cls) -> 'FeedConfig':
        """
        Build a config with overrides from environment variables

        Returns:
            FeedConfig with FEED_* environment overrides applied
        """
        return cls(
            batch_size=int(os.getenv('FEED_BATCH_SIZE', BATCH_SIZE)),
            batch_ttl_seconds=int(os.getenv('FEED_BATCH_TTL_SECONDS', BATCH_TTL_SECONDS)),
            prefetch_threshold=float(os.getenv('FEED_PREFETCH_THRESHOLD', PREFETCH_THRESHOLD)),
            recently_viewed_limit=int(os.getenv('FEED_RECENTLY_VIEWED_LIMIT', RECENTLY_VIEWED_LIMIT)),
        )


class LoggingConfig:
    """Logging configuration for the feed system."""

    LEVEL = logging.INFO
    FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

    @staticmethod
    def configure_logging():
        """Configure logging for the feed system."""
        logging.basicConfig(
            level=os.getenv('LOG_LEVEL', logging.getLevelName(LoggingConfig.LEVEL)),
            format=LoggingConfig.FORMAT
        )
