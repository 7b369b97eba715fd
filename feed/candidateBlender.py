"""
Candidate blending across four recommendation strategies.

- collaborative (40%): item-based collaborative filtering
- popular (30%): weighted interaction counters
- new (10%): most recently created
- random (20%): diversity sample

Strategies run concurrently. A strategy that returns fewer ids than its quota
is not backfilled from the others, and ids that two strategies both return
are kept twice; the batch cache de-duplicates on write.
"""
import logging
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import Dict, Iterable, List, Optional

import numpy as np

from feed.config import BLEND_WORKERS, FeedConfig
from feed.errors import ScorerUnavailable
from feed.interfaces import ContentCatalog

logger = logging.getLogger(__name__)

COLLABORATIVE = 'collaborative'
POPULAR = 'popular'
NEW = 'new'
RANDOM = 'random'

STRATEGIES = (COLLABORATIVE, POPULAR, NEW, RANDOM)


def calculate_strategy_limits(limit: int, proportions: Dict[str, float]) -> Dict[str, int]:
    """
    Split a candidate limit into per-strategy quotas

    Each quota is floored; the remainder goes to the largest-proportion
    strategy so quotas always sum to limit.

    Args:
        limit: Total number of candidates wanted
        proportions: Share per strategy name

    Returns:
        Quota per strategy name
    """
    if limit <= 0:
        return {strategy: 0 for strategy in proportions}

    quotas = {strategy: int(np.floor(limit * share)) for strategy, share in proportions.items()}
    largest = max(proportions, key=lambda strategy: proportions[strategy])
    quotas[largest] += limit - sum(quotas.values())
    return quotas


class CandidateBlender:

    def __init__(self, scorer, catalog: ContentCatalog, config: FeedConfig = None,
                 rng: Optional[np.random.Generator] = None, max_workers: int = BLEND_WORKERS):
        """
        Args:
            scorer: CollaborativeScorer
            catalog: ContentCatalog implementation
            config: Feed configuration (proportions, popularity weights)
            rng: Random generator used for the final shuffle
            max_workers: Threads used to run strategies concurrently
        """
        self.scorer = scorer
        self.catalog = catalog
        self.config = config or FeedConfig()
        self.rng = rng if rng is not None else np.random.default_rng()
        self.max_workers = max_workers

    def blend(self, user_id: str, limit: int, exclude_ids: Iterable[str] = ()) -> List[str]:
        """
        Build a shuffled candidate pool for a user

        A catalog failure returns immediately without waiting for strategies
        still running; only strategies that have not started are cancelled.

        Args:
            user_id: User identifier
            limit: Maximum pool size
            exclude_ids: Content ids that must not appear in the pool

        Returns:
            Up to limit content ids in random order

        Raises:
            UpstreamUnavailable: if a catalog strategy fails
        """
        excluded = frozenset(exclude_ids)
        quotas = calculate_strategy_limits(limit, self.config.strategy_proportions)

        fetchers = {
            COLLABORATIVE: lambda quota: self._collaborative_ids(user_id, quota, excluded),
            POPULAR: lambda quota: self.catalog.popular_ids(quota, excluded, self.config.popularity_weights),
            NEW: lambda quota: self.catalog.newest_ids(quota, excluded),
            RANDOM: lambda quota: self.catalog.random_ids(quota, excluded),
        }

        results = {strategy: [] for strategy in STRATEGIES}
        executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix='blend')
        futures = {}
        try:
            for strategy in STRATEGIES:
                quota = quotas.get(strategy, 0)
                if quota > 0:
                    futures[executor.submit(fetchers[strategy], quota)] = strategy

            done, pending = wait(futures, return_when=FIRST_EXCEPTION)
            for future in done:
                strategy = futures[future]
                # re-raises the first catalog failure
                results[strategy] = list(future.result())[:quotas[strategy]]
        finally:
            # queued strategies are dropped; one already running finishes in the
            # background and its result is discarded
            executor.shutdown(wait=False, cancel_futures=True)

        logger.info(
            f"Blended candidates for user {user_id}: "
            + ", ".join(f"{strategy}={len(results[strategy])}/{quotas.get(strategy, 0)}" for strategy in STRATEGIES)
        )

        pool = [content_id for strategy in STRATEGIES for content_id in results[strategy]]
        return [pool[i] for i in self.rng.permutation(len(pool))]

    def _collaborative_ids(self, user_id: str, quota: int, excluded: frozenset) -> List[str]:
        try:
            candidates = self.scorer.score(user_id, quota + len(excluded))
        except ScorerUnavailable as e:
            logger.warning(f"Collaborative candidates unavailable for user {user_id}, using none: {e}")
            return []
        return [content_id for content_id in candidates if content_id not in excluded][:quota]
