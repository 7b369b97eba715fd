"""
Collaborator interfaces consumed by the feed core.

Production implementations live in feed.bigQueryStores; tests use in-memory
implementations.
"""
from typing import Dict, Iterable, List, Optional, Protocol

from feed.models import (
    ContentSummary, CreatorProfile, FeedFilter, InteractionKind,
    InteractionRecord, Subtitle
)


class InteractionHistoryStore(Protocol):

    def recent_interactions(self, user_id: str, limit: int) -> List[InteractionRecord]:
        """Most recent LIKE/SAVE/SHARE/COMMENT records of a user, newest first."""
        ...

    def users_who_interacted(self, content_id: str, kind: Optional[InteractionKind] = None,
                             limit: int = 50) -> List[str]:
        """Users who interacted with a content item; kind=None means any kind."""
        ...

    def recently_viewed(self, user_id: str, limit: int) -> List[str]:
        """Content ids the user watched most recently, newest first."""
        ...


class ContentCatalog(Protocol):

    def query_feed(self, feed_filter: FeedFilter, cursor: Optional[str],
                   limit: int) -> List[ContentSummary]:
        """
        Eligible content ordered by creation time descending

        The cursor is a content id; only items created strictly before it
        are returned.
        """
        ...

    def by_ids(self, content_ids: Iterable[str]) -> Dict[str, ContentSummary]:
        ...

    def followed_creators(self, user_id: str) -> List[str]:
        ...

    def popular_ids(self, limit: int, exclude_ids: Iterable[str],
                    weights: Dict[str, float]) -> List[str]:
        ...

    def newest_ids(self, limit: int, exclude_ids: Iterable[str]) -> List[str]:
        ...

    def random_ids(self, limit: int, exclude_ids: Iterable[str]) -> List[str]:
        ...

    def subtitles_for(self, content_ids: Iterable[str]) -> Dict[str, List[Subtitle]]:
        ...

    def creators_for(self, creator_ids: Iterable[str]) -> Dict[str, CreatorProfile]:
        ...
