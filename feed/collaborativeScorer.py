"""
Item-based collaborative filtering.

"Users who engaged with what you engaged with also engaged with this":

1. Seed items: the user's own LIKE/SAVE/SHARE/COMMENT interactions
2. Neighbors: other users who touched any seed item
3. Candidates: the neighbors' interactions, weighted by kind
   (LIKE 1.0, SAVE 1.5, SHARE 2.0, COMMENT 0.0), seed items excluded
4. Highest accumulated score first

Example:
    User A: Content1 (like), Content2 (save)
    User B: Content1 (like), Content3 (like), Content5 (share)
    User C: Content2 (save), Content4 (like)

    Recommended for A: Content5 (2.0), then Content3 and Content4 (1.0 each)
"""
import logging
from collections import defaultdict
from typing import Dict, List

from feed.config import FeedConfig
from feed.errors import ScorerUnavailable, UpstreamUnavailable
from feed.interfaces import InteractionHistoryStore

logger = logging.getLogger(__name__)


class CollaborativeScorer:

    def __init__(self, history_store: InteractionHistoryStore, config: FeedConfig = None):
        """
        Args:
            history_store: InteractionHistoryStore implementation
            config: Feed configuration (fetch limits and kind weights)
        """
        self.history_store = history_store
        self.config = config or FeedConfig()

    def score(self, user_id: str, limit: int) -> List[str]:
        """
        Recommend content ids for a user

        Args:
            user_id: User identifier
            limit: Maximum number of ids to return

        Returns:
            Content ids ordered by score descending (ties by id)

        Raises:
            ScorerUnavailable: if any interaction fetch fails
        """
        if limit <= 0:
            return []

        try:
            return self._score(user_id, limit)
        except ScorerUnavailable:
            raise
        except UpstreamUnavailable as e:
            logger.error(f"Collaborative scoring failed for user {user_id}: {e}")
            raise ScorerUnavailable(str(e), user_id=user_id) from e

    def _score(self, user_id: str, limit: int) -> List[str]:
        seed_interactions = self.history_store.recent_interactions(user_id, self.config.max_seed_items)
        if not seed_interactions:
            logger.debug(f"No interactions found for user {user_id}")
            return []

        # dict keeps first-seen order so neighbor fetches are reproducible
        seed_ids = list(dict.fromkeys(record.content_id for record in seed_interactions))
        seed_set = set(seed_ids)
        logger.debug(f"Found {len(seed_ids)} seed items for user {user_id}")

        neighbors = {}
        for content_id in seed_ids:
            users = self.history_store.users_who_interacted(
                content_id, kind=None, limit=self.config.max_similar_users_per_item
            )
            for neighbor_id in users:
                if neighbor_id != user_id:
                    neighbors[neighbor_id] = None

        if not neighbors:
            logger.debug(f"No similar users found for user {user_id}")
            return []

        logger.debug(f"Found {len(neighbors)} similar users for user {user_id}")

        weights = self.config.interaction_weights
        content_scores: Dict[str, float] = defaultdict(float)
        for neighbor_id in neighbors:
            records = self.history_store.recent_interactions(
                neighbor_id, self.config.max_items_per_similar_user
            )
            for record in records:
                if record.content_id in seed_set:
                    continue
                content_scores[record.content_id] += weights.get(record.kind.value, 0.0)

        logger.debug(f"Calculated scores for {len(content_scores)} candidate contents for user {user_id}")

        # COMMENT-only candidates sit at 0.0 and are dropped here
        ranked = sorted(
            ((content_id, score) for content_id, score in content_scores.items() if score > 0.0),
            key=lambda item: (-item[1], item[0])
        )
        recommended = [content_id for content_id, _ in ranked[:limit]]

        logger.debug(f"Returning {len(recommended)} recommended contents for user {user_id}")
        return recommended
