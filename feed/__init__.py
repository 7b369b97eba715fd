"""
Feed system - personalized feed assembly with blended, cached recommendations.

Main modules:
- feedAssembler: main, following and recommended feeds (entry point)
- candidateBlender: concurrent collaborative/popular/new/random blending
- collaborativeScorer: item-based collaborative filtering
- batchCache: Redis-backed recommendation batches with TTL and prefetch policy
- prefetch: background generation of upcoming batches
- bigQueryStores: BigQuery content catalog and interaction history
- config: Constants, FeedConfig and logging configuration
"""

from feed.config import FeedConfig, LoggingConfig
from feed.errors import InvalidCursor, ScorerUnavailable, UpstreamUnavailable
from feed.models import (
    ContentSummary,
    CreatorProfile,
    FeedFilter,
    FeedItem,
    FeedPage,
    InteractionCounters,
    InteractionKind,
    InteractionRecord,
    RecommendationBatch,
    Subtitle,
)
from feed.batchCache import BatchCache
from feed.collaborativeScorer import CollaborativeScorer
from feed.candidateBlender import CandidateBlender, calculate_strategy_limits
from feed.prefetch import PrefetchScheduler
from feed.feedAssembler import FeedAssembler

__version__ = "1.0.0"

# Public API
__all__ = [
    # Entry point
    'FeedAssembler',

    # Recommendation pipeline
    'CandidateBlender',
    'calculate_strategy_limits',
    'CollaborativeScorer',
    'BatchCache',
    'PrefetchScheduler',

    # Data model
    'ContentSummary',
    'CreatorProfile',
    'FeedFilter',
    'FeedItem',
    'FeedPage',
    'InteractionCounters',
    'InteractionKind',
    'InteractionRecord',
    'RecommendationBatch',
    'Subtitle',

    # Errors
    'UpstreamUnavailable',
    'ScorerUnavailable',
    'InvalidCursor',

    # Configuration
    'FeedConfig',
    'LoggingConfig',
]
