"""
Precomputed recommendation batches cached per user in Redis.

Each batch is a Redis list at feed:rec:{user_id}:batch:{batch_number} holding
up to batch_size content ids, expiring batch_ttl_seconds after it is written.
Expiry is left to Redis.
"""
import logging
import re
from typing import List, Optional, Sequence

from feed.config import BATCH_KEY_PREFIX, FeedConfig

logger = logging.getLogger(__name__)


def build_batch_key(user_id: str, batch_number: int) -> str:
    return f"{BATCH_KEY_PREFIX}:{user_id}:batch:{batch_number}"


def escape_glob(value: str) -> str:
    """Escape Redis glob metacharacters so value only matches itself."""
    return re.sub(r"([*?\[\]\\])", r"\\\1", value)


def dedupe_preserving_order(content_ids: Sequence[str]) -> List[str]:
    seen = set()
    unique_ids = []
    for content_id in content_ids:
        if content_id not in seen:
            seen.add(content_id)
            unique_ids.append(content_id)
    return unique_ids


class BatchCache:
    """Batch storage primitives plus the size/prefetch policy callers follow."""

    def __init__(self, redis_client, config: FeedConfig = None):
        """
        Args:
            redis_client: client.redis.Client instance
            config: Feed configuration (batch size, TTL, prefetch threshold)
        """
        self.redis_client = redis_client
        self.config = config or FeedConfig()

    @property
    def batch_size_limit(self) -> int:
        return self.config.batch_size

    @property
    def prefetch_threshold(self) -> float:
        return self.config.prefetch_threshold

    def get_batch(self, user_id: str, batch_number: int) -> Optional[List[str]]:
        """
        Read a whole batch

        Args:
            user_id: User identifier
            batch_number: Batch number (0-based)

        Returns:
            Ordered content ids, or None on a miss (absent or empty batch)
        """
        content_ids = self.redis_client.get_list_range(build_batch_key(user_id, batch_number), 0, -1)
        if not content_ids:
            logger.debug(f"Batch miss for user {user_id} batch {batch_number}")
            return None
        return content_ids

    def put_batch(self, user_id: str, batch_number: int, content_ids: Sequence[str],
                  replace: bool = True) -> bool:
        """
        Store a batch and reset its expiry

        Duplicate ids are dropped, keeping the first occurrence.

        Args:
            user_id: User identifier
            batch_number: Batch number (0-based)
            content_ids: Ranked content ids
            replace: Overwrite an existing batch; when False an existing batch is kept

        Returns:
            False without writing when content_ids is empty or, with
            replace=False, when the batch already exists; True otherwise
        """
        if not content_ids:
            logger.debug(f"Skipping empty batch {batch_number} for user {user_id}")
            return False

        key = build_batch_key(user_id, batch_number)
        unique_ids = dedupe_preserving_order(content_ids)
        if replace:
            self.redis_client.replace_list(key, unique_ids, ttl=self.config.batch_ttl_seconds)
        elif not self.redis_client.create_list(key, unique_ids, ttl=self.config.batch_ttl_seconds):
            logger.info(f"Batch {batch_number} for user {user_id} already cached, kept existing")
            return False

        logger.info(f"Cached batch {batch_number} for user {user_id}: {len(unique_ids)} items")
        return True

    def get_range(self, user_id: str, batch_number: int, offset: int, count: int) -> List[str]:
        """
        Read count ids starting at offset without loading the full batch

        Args:
            user_id: User identifier
            batch_number: Batch number (0-based)
            offset: Start index within the batch
            count: Number of ids to read

        Returns:
            Up to count content ids
        """
        if count <= 0 or offset < 0:
            return []
        return self.redis_client.get_list_range(
            build_batch_key(user_id, batch_number), offset, offset + count - 1
        )

    def batch_size(self, user_id: str, batch_number: int) -> int:
        return self.redis_client.get_list_length(build_batch_key(user_id, batch_number))

    def clear_all(self, user_id: str) -> bool:
        """
        Remove every batch of a user

        Args:
            user_id: User identifier

        Returns:
            True, also when the user had no batches
        """
        deleted = self.redis_client.delete_matching(
            f"{BATCH_KEY_PREFIX}:{escape_glob(user_id)}:batch:*"
        )
        logger.info(f"Cleared {deleted} recommendation batches for user {user_id}")
        return True

    def should_prefetch(self, consumed: int, size: int) -> bool:
        """True once consumed/size reaches the prefetch threshold."""
        if size <= 0:
            return False
        return consumed / size >= self.config.prefetch_threshold
