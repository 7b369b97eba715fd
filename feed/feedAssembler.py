"""
Feed assembly: the entry point the HTTP layer calls.

Two independent paths:

- main/following feeds query the catalog directly, newest first, with a
  content-id cursor
- the recommended feed replays cached blender batches, generating a batch on
  a miss and prefetching the next one in the background
"""
import logging
from concurrent.futures import wait
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from feed.config import FeedConfig
from feed.errors import InvalidCursor
from feed.interfaces import ContentCatalog, InteractionHistoryStore
from feed.models import ContentSummary, FeedFilter, FeedItem, FeedPage, RecommendationBatch

logger = logging.getLogger(__name__)


def parse_batch_cursor(cursor: Optional[str]) -> Tuple[int, int]:
    """
    Decode a recommended-feed cursor

    Args:
        cursor: "{batch_number}:{offset}" token, or None for the first page

    Returns:
        (batch_number, offset)
    """
    if not cursor:
        return 0, 0
    try:
        batch_part, offset_part = cursor.split(':')
        batch_number, offset = int(batch_part), int(offset_part)
    except ValueError:
        raise InvalidCursor(f"Malformed recommendation cursor: {cursor!r}")
    if batch_number < 0 or offset < 0:
        raise InvalidCursor(f"Malformed recommendation cursor: {cursor!r}")
    return batch_number, offset


def format_batch_cursor(batch_number: int, offset: int) -> str:
    return f"{batch_number}:{offset}"


def prefetch_key(user_id: str, batch_number: int) -> str:
    return f"{user_id}:{batch_number}"


class FeedAssembler:

    def __init__(self, catalog: ContentCatalog, history_store: InteractionHistoryStore,
                 blender=None, batch_cache=None, prefetcher=None, config: FeedConfig = None):
        """
        Args:
            catalog: ContentCatalog implementation
            history_store: InteractionHistoryStore implementation
            blender: CandidateBlender (recommended feed only)
            batch_cache: BatchCache (recommended feed only)
            prefetcher: PrefetchScheduler; without one, next batches are not prefetched
            config: Feed configuration
        """
        self.catalog = catalog
        self.history_store = history_store
        self.blender = blender
        self.batch_cache = batch_cache
        self.prefetcher = prefetcher
        self.config = config or FeedConfig()

    def main_feed(self, user_id: str, cursor: Optional[str] = None, limit: int = None) -> FeedPage:
        """
        Newest published content the user has not recently watched

        Args:
            user_id: User identifier
            cursor: Content id of the last item of the previous page
            limit: Page size (1..max_page_limit)

        Returns:
            FeedPage
        """
        limit = self._check_limit(limit)

        # fail-closed: a history failure propagates instead of serving repeats
        recently_viewed = self.history_store.recently_viewed(user_id, self.config.recently_viewed_limit)
        feed_filter = FeedFilter(exclude_ids=frozenset(recently_viewed))

        summaries = self.catalog.query_feed(feed_filter, cursor, limit + 1)
        page = self._build_page(summaries, limit)
        logger.info(
            f"Main feed for user {user_id}: {len(page.items)} items "
            f"(excluded {len(recently_viewed)} recently viewed, has_next={page.has_next})"
        )
        return page

    def following_feed(self, user_id: str, cursor: Optional[str] = None, limit: int = None) -> FeedPage:
        """
        Newest published content from creators the user follows

        Args:
            user_id: User identifier
            cursor: Content id of the last item of the previous page
            limit: Page size (1..max_page_limit)

        Returns:
            FeedPage
        """
        limit = self._check_limit(limit)

        creator_ids = self.catalog.followed_creators(user_id)
        if not creator_ids:
            logger.info(f"User {user_id} follows no creators, following feed is empty")
            return FeedPage.empty()

        feed_filter = FeedFilter(creator_ids=frozenset(creator_ids))
        summaries = self.catalog.query_feed(feed_filter, cursor, limit + 1)
        page = self._build_page(summaries, limit)
        logger.info(f"Following feed for user {user_id}: {len(page.items)} items (has_next={page.has_next})")
        return page

    def recommended_feed(self, user_id: str, cursor: Optional[str] = None, limit: int = None) -> FeedPage:
        """
        Page through the user's cached recommendation batches

        Args:
            user_id: User identifier
            cursor: "{batch_number}:{offset}" token from the previous page
            limit: Page size (1..max_page_limit)

        Returns:
            FeedPage in the batch's stored order
        """
        limit = self._check_limit(limit)
        self._require_recommendation_path()
        batch_number, offset = parse_batch_cursor(cursor)

        size = self.batch_cache.batch_size(user_id, batch_number)
        if size == 0:
            size = self._await_prefetch(user_id, batch_number)
        if size == 0:
            logger.info(f"Recommendation batch {batch_number} missing for user {user_id}, generating")
            batch = self.generate_batch(user_id, batch_number)
            if batch is None:
                return FeedPage.empty()
            size = len(batch.content_ids)

        content_ids = self.batch_cache.get_range(user_id, batch_number, offset, limit)
        consumed = offset + len(content_ids)

        # any non-empty batch rolls over; an empty next batch ends the feed
        if consumed < size:
            next_cursor = format_batch_cursor(batch_number, consumed)
        else:
            next_cursor = format_batch_cursor(batch_number + 1, 0)

        if self.batch_cache.should_prefetch(consumed, size):
            self._prefetch(user_id, batch_number + 1)

        items = self._hydrate_in_order(content_ids)
        logger.info(
            f"Recommended feed for user {user_id}: batch {batch_number} "
            f"[{offset}:{consumed}] of {size}, {len(items)} items"
        )
        return FeedPage(items=items, next_cursor=next_cursor, has_next=True)

    def generate_batch(self, user_id: str, batch_number: int) -> Optional[RecommendationBatch]:
        """
        Blend and cache a fresh recommendation batch

        The batch is written only after a complete blend, and never over a
        batch another request or prefetch stored first; in that case the
        stored batch is returned.

        Args:
            user_id: User identifier
            batch_number: Batch number to fill

        Returns:
            The stored batch, or None when no candidates were found
        """
        self._require_recommendation_path()

        exclude_ids = set(self.history_store.recently_viewed(user_id, self.config.recently_viewed_limit))
        if batch_number > 0:
            exclude_ids.update(self.batch_cache.get_batch(user_id, batch_number - 1) or [])

        candidates = self.blender.blend(user_id, self.batch_cache.batch_size_limit, exclude_ids)
        if not candidates:
            logger.info(f"No candidates for user {user_id} batch {batch_number}")
            return None

        self.batch_cache.put_batch(user_id, batch_number, candidates, replace=False)

        content_ids = self.batch_cache.get_batch(user_id, batch_number)
        if content_ids is None:
            return None

        created_at = datetime.now(timezone.utc)
        return RecommendationBatch(
            user_id=user_id,
            batch_number=batch_number,
            content_ids=content_ids,
            created_at=created_at,
            ttl_deadline=created_at + timedelta(seconds=self.config.batch_ttl_seconds),
        )

    def invalidate_recommendations(self, user_id: str) -> bool:
        """Drop every cached batch of the user."""
        self._require_recommendation_path()
        return self.batch_cache.clear_all(user_id)

    def _prefetch(self, user_id: str, batch_number: int):
        if self.prefetcher is None:
            return
        if self.batch_cache.batch_size(user_id, batch_number) > 0:
            return
        self.prefetcher.submit(
            prefetch_key(user_id, batch_number),
            lambda: self.generate_batch(user_id, batch_number)
        )

    def _await_prefetch(self, user_id: str, batch_number: int) -> int:
        """Wait for an in-flight prefetch of the batch; returns the cached size afterwards."""
        if self.prefetcher is None:
            return 0
        future = self.prefetcher.pending(prefetch_key(user_id, batch_number))
        if future is None:
            return 0

        logger.info(f"Waiting for in-flight prefetch of batch {batch_number} for user {user_id}")
        # a failed prefetch is already reported on the prefetcher's failure channel
        wait([future])
        return self.batch_cache.batch_size(user_id, batch_number)

    def _check_limit(self, limit: Optional[int]) -> int:
        if limit is None:
            return self.config.default_page_limit
        if not 1 <= limit <= self.config.max_page_limit:
            raise ValueError(f"Limit must be between 1 and {self.config.max_page_limit}")
        return limit

    def _require_recommendation_path(self):
        if self.blender is None or self.batch_cache is None:
            raise RuntimeError("Recommended feed requires a blender and a batch cache")

    def _build_page(self, summaries: List[ContentSummary], limit: int) -> FeedPage:
        has_next = len(summaries) > limit
        retained = summaries[:limit]
        next_cursor = retained[-1].content_id if has_next and retained else None
        return FeedPage(items=self._hydrate(retained), next_cursor=next_cursor, has_next=has_next)

    def _hydrate(self, summaries: List[ContentSummary]) -> List[FeedItem]:
        """Attach subtitles and creator profiles with one batch call each."""
        if not summaries:
            return []

        content_ids = [summary.content_id for summary in summaries]
        creator_ids = list(dict.fromkeys(summary.creator_id for summary in summaries))

        subtitles = self.catalog.subtitles_for(content_ids)
        creators = self.catalog.creators_for(creator_ids)

        return [
            FeedItem(
                summary=summary,
                creator=creators.get(summary.creator_id),
                subtitles=subtitles.get(summary.content_id, []),
            )
            for summary in summaries
        ]

    def _hydrate_in_order(self, content_ids: List[str]) -> List[FeedItem]:
        if not content_ids:
            return []

        summaries_by_id: Dict[str, ContentSummary] = self.catalog.by_ids(content_ids)
        missing = [content_id for content_id in content_ids if content_id not in summaries_by_id]
        if missing:
            logger.debug(f"Skipping {len(missing)} cached ids no longer in the catalog")

        return self._hydrate([summaries_by_id[content_id] for content_id in content_ids
                              if content_id in summaries_by_id])
