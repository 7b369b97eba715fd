"""
Data model for feed assembly and recommendation caching.
"""
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from dateutil import parser


class InteractionKind(str, Enum):
    LIKE = 'LIKE'
    SAVE = 'SAVE'
    SHARE = 'SHARE'
    COMMENT = 'COMMENT'


def to_datetime(value) -> datetime:
    """
    Coerce a stored timestamp into an aware UTC datetime

    Args:
        value: datetime, pandas Timestamp or ISO string

    Returns:
        Timezone-aware datetime
    """
    if isinstance(value, str):
        value = parser.parse(value)
    elif hasattr(value, 'to_pydatetime'):
        value = value.to_pydatetime()

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def _optional_int(value) -> Optional[int]:
    # pandas hands back NaN for NULL numeric columns
    if value is None or value != value:
        return None
    return int(value)


@dataclass(frozen=True)
class InteractionRecord:
    user_id: str
    content_id: str
    kind: InteractionKind
    timestamp: datetime


@dataclass(frozen=True)
class InteractionCounters:
    view: int = 0
    like: int = 0
    save: int = 0
    share: int = 0
    comment: int = 0

    def popularity_score(self, weights: Dict[str, float]) -> float:
        """Weighted sum of counters, keyed by counter name."""
        return (
            self.view * weights.get('view', 0.0)
            + self.like * weights.get('like', 0.0)
            + self.comment * weights.get('comment', 0.0)
            + self.save * weights.get('save', 0.0)
            + self.share * weights.get('share', 0.0)
        )

    def to_dict(self) -> Dict:
        return {
            'likeCount': self.like,
            'commentCount': self.comment,
            'saveCount': self.save,
            'shareCount': self.share,
            'viewCount': self.view,
        }


@dataclass(frozen=True)
class ContentSummary:
    """Read-only snapshot of a content record owned by the catalog."""

    content_id: str
    creator_id: str
    created_at: datetime
    counters: InteractionCounters = field(default_factory=InteractionCounters)
    display_fields: Dict = field(default_factory=dict)

    @classmethod
    def from_row(cls, row: Dict) -> 'ContentSummary':
        """
        Build a summary from a joined catalog row

        Args:
            row: Row dictionary from the contents/metadata/interactions join

        Returns:
            ContentSummary snapshot
        """
        tags = row.get('tags')
        if isinstance(tags, str):
            tags = json.loads(tags)

        return cls(
            content_id=str(row['id']),
            creator_id=str(row['creator_id']),
            created_at=to_datetime(row['created_at']),
            counters=InteractionCounters(
                view=int(row.get('view_count') or 0),
                like=int(row.get('like_count') or 0),
                save=int(row.get('save_count') or 0),
                share=int(row.get('share_count') or 0),
                comment=int(row.get('comment_count') or 0),
            ),
            display_fields={
                'contentType': row.get('content_type'),
                'url': row.get('url'),
                'thumbnailUrl': row.get('thumbnail_url'),
                'duration': _optional_int(row.get('duration')),
                'width': _optional_int(row.get('width')),
                'height': _optional_int(row.get('height')),
                'title': row.get('title'),
                'description': row.get('description'),
                'category': row.get('category'),
                'tags': list(tags) if tags is not None else [],
            },
        )


@dataclass(frozen=True)
class CreatorProfile:
    user_id: str
    nickname: str
    profile_image_url: Optional[str] = None
    follower_count: int = 0

    def to_dict(self) -> Dict:
        return {
            'userId': self.user_id,
            'nickname': self.nickname,
            'profileImageUrl': self.profile_image_url,
            'followerCount': self.follower_count,
        }


@dataclass(frozen=True)
class Subtitle:
    language: str
    subtitle_url: str

    def to_dict(self) -> Dict:
        return {'language': self.language, 'subtitleUrl': self.subtitle_url}


@dataclass(frozen=True)
class FeedItem:
    """A content summary hydrated with creator and subtitle data."""

    summary: ContentSummary
    creator: Optional[CreatorProfile] = None
    subtitles: List[Subtitle] = field(default_factory=list)

    @property
    def content_id(self) -> str:
        return self.summary.content_id

    def to_dict(self) -> Dict:
        item = {'contentId': self.summary.content_id}
        item.update(self.summary.display_fields)
        item['creator'] = self.creator.to_dict() if self.creator else None
        item['interactions'] = self.summary.counters.to_dict()
        item['subtitles'] = [subtitle.to_dict() for subtitle in self.subtitles]
        return item


@dataclass(frozen=True)
class FeedFilter:
    """
    Eligibility predicate for a feed query

    Published and not soft-deleted are always implied. creator_ids=None
    means any creator.
    """

    exclude_ids: FrozenSet[str] = frozenset()
    creator_ids: Optional[FrozenSet[str]] = None

    def accepts(self, summary: ContentSummary) -> bool:
        if summary.content_id in self.exclude_ids:
            return False
        if self.creator_ids is not None and summary.creator_id not in self.creator_ids:
            return False
        return True


@dataclass(frozen=True)
class FeedPage:
    items: List[FeedItem]
    next_cursor: Optional[str]
    has_next: bool

    @classmethod
    def empty(cls) -> 'FeedPage':
        return cls(items=[], next_cursor=None, has_next=False)

    def to_dict(self) -> Dict:
        return {
            'content': [item.to_dict() for item in self.items],
            'nextCursor': self.next_cursor,
            'hasNext': self.has_next,
        }


@dataclass(frozen=True)
class RecommendationBatch:
    user_id: str
    batch_number: int
    content_ids: List[str]
    created_at: datetime
    ttl_deadline: datetime
