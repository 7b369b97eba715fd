from __future__ import annotations

from datetime import datetime, timezone

import pandas as pd

from feed.config import FeedConfig
from feed.models import ContentSummary, FeedFilter, InteractionCounters, to_datetime


def _row(**overrides):
    row = {
        "id": 101,
        "creator_id": 7,
        "created_at": "2026-03-01T12:30:00Z",
        "content_type": "VIDEO",
        "url": "https://cdn/101.mp4",
        "thumbnail_url": "https://cdn/101.jpg",
        "duration": 42.0,
        "width": 1080,
        "height": 1920,
        "title": "Hello",
        "description": None,
        "category": "MUSIC",
        "tags": '["a", "b"]',
        "view_count": 10,
        "like_count": 3,
        "save_count": None,
        "share_count": 1,
        "comment_count": 0,
    }
    row.update(overrides)
    return row


def test_from_row_normalizes_types():
    summary = ContentSummary.from_row(_row())

    assert summary.content_id == "101"
    assert summary.creator_id == "7"
    assert summary.created_at == datetime(2026, 3, 1, 12, 30, tzinfo=timezone.utc)
    assert summary.counters == InteractionCounters(view=10, like=3, save=0, share=1, comment=0)
    assert summary.display_fields["duration"] == 42
    assert summary.display_fields["tags"] == ["a", "b"]


def test_from_row_handles_missing_numbers():
    summary = ContentSummary.from_row(_row(duration=float("nan"), tags=None))

    assert summary.display_fields["duration"] is None
    assert summary.display_fields["tags"] == []


def test_to_datetime_accepts_pandas_and_naive_values():
    assert to_datetime(pd.Timestamp("2026-01-02 03:04:05", tz="UTC")).tzinfo is not None
    assert to_datetime(datetime(2026, 1, 2)).tzinfo == timezone.utc


def test_popularity_score_uses_weights():
    counters = InteractionCounters(view=10, like=2, comment=1, save=1, share=1)

    # 10*1 + 2*5 + 1*3 + 1*7 + 1*10
    assert counters.popularity_score(FeedConfig().popularity_weights) == 40.0


def test_feed_filter():
    summary = ContentSummary.from_row(_row())

    assert FeedFilter().accepts(summary)
    assert not FeedFilter(exclude_ids=frozenset({"101"})).accepts(summary)
    assert FeedFilter(creator_ids=frozenset({"7"})).accepts(summary)
    assert not FeedFilter(creator_ids=frozenset()).accepts(summary)
