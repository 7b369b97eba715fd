"""
BigQuery-backed content catalog and interaction history.
"""
import logging
from typing import Dict, Iterable, List, Optional

from google.cloud import bigquery

from feed.errors import UpstreamUnavailable
from feed.models import (
    ContentSummary, CreatorProfile, FeedFilter, InteractionKind,
    InteractionRecord, Subtitle, to_datetime
)

logger = logging.getLogger(__name__)


def _run_query(bq_client, description: str, query: str, params: List,
               user_id: str = None, content_id: str = None) -> List[Dict]:
    """
    Run a query and return its rows as dicts

    Raises:
        UpstreamUnavailable: on any BigQuery failure
    """
    try:
        result = bq_client.query(query, params)
        return result.to_dict('records') if not result.empty else []
    except Exception as e:
        logger.error(f"BigQuery {description} failed: {e}")
        raise UpstreamUnavailable('bigquery', f"{description} failed: {e}",
                                  user_id=user_id, content_id=content_id) from e


class BigQueryContentCatalog:

    def __init__(self, bq_client):
        """
        Args:
            bq_client: client.bigQuery.Client instance
        """
        self.bq_client = bq_client

    def _content_select(self) -> str:
        t = self.bq_client.table
        return f"""
        SELECT
            c.id, c.creator_id, c.created_at, c.content_type, c.url, c.thumbnail_url,
            c.duration, c.width, c.height,
            m.title, m.description, m.category, m.tags,
            i.view_count, i.like_count, i.comment_count, i.save_count, i.share_count
        FROM {t('contents')} c
        JOIN {t('content_metadata')} m ON m.content_id = c.id
        JOIN {t('content_interactions')} i ON i.content_id = c.id
        JOIN {t('users')} u ON u.id = c.creator_id
        JOIN {t('user_profiles')} p ON p.user_id = u.id
        WHERE c.status = 'PUBLISHED'
        AND c.deleted_at IS NULL
        AND m.deleted_at IS NULL
        AND u.deleted_at IS NULL
        AND p.deleted_at IS NULL
        """

    def query_feed(self, feed_filter: FeedFilter, cursor: Optional[str], limit: int) -> List[ContentSummary]:
        query = self._content_select()
        params = [bigquery.ScalarQueryParameter("limit", "INT64", limit)]

        if feed_filter.exclude_ids:
            query += " AND c.id NOT IN UNNEST(@exclude_ids)"
            params.append(bigquery.ArrayQueryParameter("exclude_ids", "STRING", sorted(feed_filter.exclude_ids)))

        if feed_filter.creator_ids is not None:
            query += " AND c.creator_id IN UNNEST(@creator_ids)"
            params.append(bigquery.ArrayQueryParameter("creator_ids", "STRING", sorted(feed_filter.creator_ids)))

        if cursor:
            # an unknown cursor yields NULL, which matches nothing
            query += f" AND c.created_at < (SELECT created_at FROM {self.bq_client.table('contents')} WHERE id = @cursor)"
            params.append(bigquery.ScalarQueryParameter("cursor", "STRING", cursor))

        query += " ORDER BY c.created_at DESC LIMIT @limit"

        rows = _run_query(self.bq_client, 'feed query', query, params, content_id=cursor)
        return [ContentSummary.from_row(row) for row in rows]

    def by_ids(self, content_ids: Iterable[str]) -> Dict[str, ContentSummary]:
        content_ids = list(content_ids)
        if not content_ids:
            return {}

        query = self._content_select() + " AND c.id IN UNNEST(@ids)"
        params = [bigquery.ArrayQueryParameter("ids", "STRING", content_ids)]
        rows = _run_query(self.bq_client, 'content lookup', query, params)

        summaries = [ContentSummary.from_row(row) for row in rows]
        return {summary.content_id: summary for summary in summaries}

    def followed_creators(self, user_id: str) -> List[str]:
        query = f"""
        SELECT following_id
        FROM {self.bq_client.table('follows')}
        WHERE follower_id = @user_id
        AND deleted_at IS NULL
        """
        params = [bigquery.ScalarQueryParameter("user_id", "STRING", user_id)]
        rows = _run_query(self.bq_client, 'followed creators', query, params, user_id=user_id)
        return [str(row['following_id']) for row in rows]

    def _ranked_ids(self, description: str, order_by: str, limit: int,
                    exclude_ids: Iterable[str], extra_params: List = None) -> List[str]:
        exclude_ids = sorted(exclude_ids)
        query = self._content_select()
        params = [bigquery.ScalarQueryParameter("limit", "INT64", limit)] + (extra_params or [])

        if exclude_ids:
            query += " AND c.id NOT IN UNNEST(@exclude_ids)"
            params.append(bigquery.ArrayQueryParameter("exclude_ids", "STRING", exclude_ids))

        query += f" ORDER BY {order_by} LIMIT @limit"
        rows = _run_query(self.bq_client, description, query, params)
        return [str(row['id']) for row in rows]

    def popular_ids(self, limit: int, exclude_ids: Iterable[str], weights: Dict[str, float]) -> List[str]:
        order_by = """(
            i.view_count * @w_view
            + i.like_count * @w_like
            + i.comment_count * @w_comment
            + i.save_count * @w_save
            + i.share_count * @w_share
        ) DESC"""
        weight_params = [
            bigquery.ScalarQueryParameter(f"w_{name}", "FLOAT64", float(weights.get(name, 0.0)))
            for name in ('view', 'like', 'comment', 'save', 'share')
        ]
        return self._ranked_ids('popular content', order_by, limit, exclude_ids, weight_params)

    def newest_ids(self, limit: int, exclude_ids: Iterable[str]) -> List[str]:
        return self._ranked_ids('new content', 'c.created_at DESC', limit, exclude_ids)

    def random_ids(self, limit: int, exclude_ids: Iterable[str]) -> List[str]:
        return self._ranked_ids('random content', 'RAND()', limit, exclude_ids)

    def subtitles_for(self, content_ids: Iterable[str]) -> Dict[str, List[Subtitle]]:
        content_ids = list(content_ids)
        if not content_ids:
            return {}

        query = f"""
        SELECT content_id, language, subtitle_url
        FROM {self.bq_client.table('content_subtitles')}
        WHERE content_id IN UNNEST(@ids)
        AND deleted_at IS NULL
        """
        params = [bigquery.ArrayQueryParameter("ids", "STRING", content_ids)]
        rows = _run_query(self.bq_client, 'subtitle lookup', query, params)

        subtitles: Dict[str, List[Subtitle]] = {}
        for row in rows:
            subtitles.setdefault(str(row['content_id']), []).append(
                Subtitle(language=row['language'], subtitle_url=row['subtitle_url'])
            )
        return subtitles

    def creators_for(self, creator_ids: Iterable[str]) -> Dict[str, CreatorProfile]:
        creator_ids = list(creator_ids)
        if not creator_ids:
            return {}

        query = f"""
        SELECT user_id, nickname, profile_image_url, follower_count
        FROM {self.bq_client.table('user_profiles')}
        WHERE user_id IN UNNEST(@ids)
        AND deleted_at IS NULL
        """
        params = [bigquery.ArrayQueryParameter("ids", "STRING", creator_ids)]
        rows = _run_query(self.bq_client, 'creator lookup', query, params)

        return {
            str(row['user_id']): CreatorProfile(
                user_id=str(row['user_id']),
                nickname=row['nickname'],
                profile_image_url=row.get('profile_image_url'),
                follower_count=int(row.get('follower_count') or 0),
            )
            for row in rows
        }


class BigQueryInteractionHistory:

    def __init__(self, bq_client):
        """
        Args:
            bq_client: client.bigQuery.Client instance
        """
        self.bq_client = bq_client

    def recent_interactions(self, user_id: str, limit: int) -> List[InteractionRecord]:
        query = f"""
        SELECT user_id, content_id, interaction_type, created_at
        FROM {self.bq_client.table('user_content_interactions')}
        WHERE user_id = @user_id
        AND deleted_at IS NULL
        ORDER BY created_at DESC
        LIMIT @limit
        """
        params = [
            bigquery.ScalarQueryParameter("user_id", "STRING", user_id),
            bigquery.ScalarQueryParameter("limit", "INT64", limit),
        ]
        rows = _run_query(self.bq_client, 'user interactions', query, params, user_id=user_id)

        return [
            InteractionRecord(
                user_id=str(row['user_id']),
                content_id=str(row['content_id']),
                kind=InteractionKind(row['interaction_type']),
                timestamp=to_datetime(row['created_at']),
            )
            for row in rows
        ]

    def users_who_interacted(self, content_id: str, kind: Optional[InteractionKind] = None,
                             limit: int = 50) -> List[str]:
        query = f"""
        SELECT DISTINCT user_id
        FROM {self.bq_client.table('user_content_interactions')}
        WHERE content_id = @content_id
        AND deleted_at IS NULL
        """
        params = [
            bigquery.ScalarQueryParameter("content_id", "STRING", content_id),
            bigquery.ScalarQueryParameter("limit", "INT64", limit),
        ]
        if kind is not None:
            query += " AND interaction_type = @kind"
            params.append(bigquery.ScalarQueryParameter("kind", "STRING", kind.value))
        query += " LIMIT @limit"

        rows = _run_query(self.bq_client, 'content interactions', query, params, content_id=content_id)
        return [str(row['user_id']) for row in rows]

    def recently_viewed(self, user_id: str, limit: int) -> List[str]:
        query = f"""
        SELECT content_id
        FROM {self.bq_client.table('user_view_history')}
        WHERE user_id = @user_id
        AND deleted_at IS NULL
        ORDER BY watched_at DESC
        LIMIT @limit
        """
        params = [
            bigquery.ScalarQueryParameter("user_id", "STRING", user_id),
            bigquery.ScalarQueryParameter("limit", "INT64", limit),
        ]
        rows = _run_query(self.bq_client, 'view history', query, params, user_id=user_id)
        return [str(row['content_id']) for row in rows]
