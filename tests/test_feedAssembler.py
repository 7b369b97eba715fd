from __future__ import annotations

import pytest

from feed.errors import UpstreamUnavailable
from feed.feedAssembler import FeedAssembler
from feed.models import Subtitle


@pytest.fixture()
def three_items(catalog):
    catalog.add_content("X", minutes=3)
    catalog.add_content("Y", minutes=2)
    catalog.add_content("Z", minutes=1)
    return catalog


def _ids(page):
    return [item.content_id for item in page.items]


def test_main_feed_first_page(three_items, assembler):
    page = assembler.main_feed("u", None, 2)

    assert _ids(page) == ["X", "Y"]
    assert page.has_next is True
    assert page.next_cursor == "Y"


def test_main_feed_follows_cursor(three_items, assembler):
    page = assembler.main_feed("u", "Y", 2)

    assert _ids(page) == ["Z"]
    assert page.has_next is False
    assert page.next_cursor is None


def test_main_feed_excludes_recently_viewed(three_items, history, assembler):
    history.add_view("u", "X")

    page = assembler.main_feed("u", None, 2)

    assert _ids(page) == ["Y", "Z"]
    assert page.has_next is False


def test_main_feed_skips_unpublished(catalog, assembler):
    catalog.add_content("draft", minutes=5, published=False)
    catalog.add_content("live", minutes=1)

    assert _ids(assembler.main_feed("u", None, 10)) == ["live"]


def test_main_feed_exact_page_has_no_next(three_items, assembler):
    page = assembler.main_feed("u", None, 3)

    assert len(page.items) == 3
    assert page.has_next is False
    assert page.next_cursor is None


def test_unknown_cursor_yields_empty_page(three_items, assembler):
    page = assembler.main_feed("u", "does-not-exist", 5)

    assert page.items == []
    assert page.has_next is False


def test_default_limit_applies(catalog, assembler):
    for i in range(30):
        catalog.add_content(f"c{i:02d}", minutes=i)

    page = assembler.main_feed("u")

    assert len(page.items) == 20
    assert page.has_next is True


@pytest.mark.parametrize("limit", [0, -3, 101])
def test_limit_out_of_range_is_rejected(assembler, limit):
    with pytest.raises(ValueError):
        assembler.main_feed("u", None, limit)
    with pytest.raises(ValueError):
        assembler.following_feed("u", None, limit)


def test_history_failure_propagates(three_items, history, assembler):
    history.failing.add("recently_viewed")

    with pytest.raises(UpstreamUnavailable):
        assembler.main_feed("u", None, 2)
    assert three_items.calls["query_feed"] == 0


def test_catalog_failure_propagates(three_items, assembler):
    three_items.failing.add("query_feed")

    with pytest.raises(UpstreamUnavailable):
        assembler.main_feed("u", None, 2)


def test_hydration_batches_creator_and_subtitle_lookups(catalog, assembler):
    catalog.add_content("a", creator_id="c1", minutes=3)
    catalog.add_content("b", creator_id="c1", minutes=2)
    catalog.add_content("c", creator_id="c2", minutes=1)
    catalog.subtitles["a"] = [Subtitle(language="en", subtitle_url="https://cdn/a.en.vtt")]

    page = assembler.main_feed("u", None, 10)

    assert catalog.calls["subtitles_for"] == 1
    assert catalog.calls["creators_for"] == 1
    first = page.items[0]
    assert first.creator.nickname == "nick-c1"
    assert first.subtitles[0].language == "en"
    assert page.items[2].subtitles == []


def test_page_serialization(three_items, assembler):
    body = assembler.main_feed("u", None, 1).to_dict()

    assert body["nextCursor"] == "X"
    assert body["hasNext"] is True
    item = body["content"][0]
    assert item["contentId"] == "X"
    assert item["creator"]["userId"] == "creator-1"
    assert item["interactions"]["likeCount"] == 0
    assert item["subtitles"] == []


def test_following_feed_only_followed_creators(catalog, assembler):
    catalog.add_content("mine", creator_id="fav", minutes=2)
    catalog.add_content("other", creator_id="stranger", minutes=3)
    catalog.follow("u", "fav")

    page = assembler.following_feed("u", None, 10)

    assert _ids(page) == ["mine"]


def test_following_feed_does_not_exclude_viewed(catalog, history, assembler):
    catalog.add_content("mine", creator_id="fav", minutes=2)
    catalog.follow("u", "fav")
    history.add_view("u", "mine")

    assert _ids(assembler.following_feed("u", None, 10)) == ["mine"]


def test_following_feed_without_follows_is_empty(three_items, assembler):
    page = assembler.following_feed("u", None, 10)

    assert page.items == []
    assert page.has_next is False
    assert three_items.calls["query_feed"] == 0


def test_following_feed_pages(catalog, assembler):
    for i in range(5):
        catalog.add_content(f"f{i}", creator_id="fav", minutes=i)
    catalog.follow("u", "fav")

    first = assembler.following_feed("u", None, 3)
    second = assembler.following_feed("u", first.next_cursor, 3)

    assert _ids(first) == ["f4", "f3", "f2"]
    assert _ids(second) == ["f1", "f0"]
    assert second.has_next is False


def test_recommended_feed_needs_blender_and_cache(catalog, history):
    assembler = FeedAssembler(catalog, history)

    with pytest.raises(RuntimeError):
        assembler.recommended_feed("u")
