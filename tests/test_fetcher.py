import time
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest

from uselessfacts.fetcher import (
    SOURCES,
    FetcherService,
    HackerNewsSource,
    parse_date,
    strip_html,
)
from uselessfacts.schemas import ArticleIngest


# ---------------------------------------------------------------------------
# Mock helpers
# ---------------------------------------------------------------------------

class MockEntry:
    """Simulates a feedparser entry object with controlled field values."""

    def __init__(self, title, link="https://example.com/1", summary="", published_parsed=None, content=None):
        self._data = {
            "link": link,
            "title": title,
            "summary": summary,
            "content": content,
        }
        self.published_parsed = published_parsed or time.gmtime()
        self.updated_parsed = None

    def get(self, key, default=""):
        return self._data.get(key, default)


def make_mock_feed(*entries):
    """Wraps a list of MockEntry objects in a mock feedparser feed."""
    feed = MagicMock()
    feed.entries = list(entries)
    return feed


def make_ingest(n: int) -> ArticleIngest:
    return ArticleIngest(title=f"Article {n}", content="body", url=f"https://example.com/{n}", source="test")


def mock_source(name, articles):
    source = MagicMock()
    source.source_name = name
    source.fetch.return_value = articles
    return source


# ---------------------------------------------------------------------------
# strip_html
# ---------------------------------------------------------------------------

class TestStripHtml:
    def test_removes_tags(self):
        assert strip_html("<p>Hello <b>world</b></p>") == "Hello world"

    def test_plain_text_unchanged(self):
        assert strip_html("Hello world") == "Hello world"

    def test_handles_none(self):
        assert strip_html(None) == ""


# ---------------------------------------------------------------------------
# parse_date
# ---------------------------------------------------------------------------

class TestParseDate:
    def test_uses_published_parsed(self):
        entry = MockEntry(title="x")
        entry.published_parsed = time.strptime("2024-01-15", "%Y-%m-%d")
        assert parse_date(entry) == datetime(2024, 1, 15, tzinfo=timezone.utc)

    def test_falls_back_to_updated_parsed(self):
        entry = MockEntry(title="x")
        entry.published_parsed = None
        entry.updated_parsed = time.strptime("2024-06-01", "%Y-%m-%d")
        result = parse_date(entry)
        assert result.year == 2024 and result.month == 6

    def test_falls_back_to_now_when_no_date(self):
        entry = MockEntry(title="x")
        entry.published_parsed = None
        result = parse_date(entry)
        assert isinstance(result, datetime)
        assert result.tzinfo == timezone.utc


# ---------------------------------------------------------------------------
# RSSSource.fetch()
# ---------------------------------------------------------------------------

class TestRSSSourceFetch:
    def test_returns_articles_with_correct_fields(self):
        entry = MockEntry(title="Octopus dreams", link="https://example.com/octopus", summary="Details here")
        with patch("feedparser.parse", return_value=make_mock_feed(entry)):
            articles = HackerNewsSource().fetch()

        assert len(articles) == 1
        assert articles[0].url == "https://example.com/octopus"
        assert articles[0].source == "Hacker News"
        assert articles[0].title == "Octopus dreams"
        assert articles[0].content == "Details here"

    def test_html_is_stripped_from_content(self):
        entry = MockEntry(title="x", summary="<p>Clean <b>text</b></p>")
        with patch("feedparser.parse", return_value=make_mock_feed(entry)):
            articles = HackerNewsSource().fetch()

        assert articles[0].content == "Clean text"

    def test_content_falls_back_to_nested_content(self):
        entry = MockEntry(title="x", summary="", content=[{"value": "<div>Nested body</div>"}])
        with patch("feedparser.parse", return_value=make_mock_feed(entry)):
            articles = HackerNewsSource().fetch()

        assert articles[0].content == "Nested body"

    def test_title_stands_in_for_empty_content(self):
        entry = MockEntry(title="Only a headline", summary="")
        with patch("feedparser.parse", return_value=make_mock_feed(entry)):
            articles = HackerNewsSource().fetch()

        assert articles[0].content == "Only a headline"

    @pytest.mark.parametrize("title, link", [("No link", None), ("", "https://example.com/x")])
    def test_skips_entry_without_title_or_link(self, title, link):
        entry = MockEntry(title=title, link=link)
        with patch("feedparser.parse", return_value=make_mock_feed(entry)):
            assert HackerNewsSource().fetch() == []

    def test_returns_empty_list_on_fetch_error(self):
        with patch("feedparser.parse", side_effect=Exception("Network error")):
            assert HackerNewsSource().fetch() == []

    def test_multiple_entries_all_returned(self):
        entries = [MockEntry(title=f"Article {i}", link=f"https://example.com/{i}") for i in range(5)]
        with patch("feedparser.parse", return_value=make_mock_feed(*entries)):
            assert len(HackerNewsSource().fetch()) == 5


# ---------------------------------------------------------------------------
# SOURCES registry
# ---------------------------------------------------------------------------

class TestSourcesRegistry:
    def test_all_sources_have_name_and_url(self):
        for source in SOURCES:
            assert source.source_name, f"{type(source).__name__} missing source_name"
            assert source.feed_url, f"{type(source).__name__} missing feed_url"

    def test_source_names_are_unique(self):
        names = [s.source_name for s in SOURCES]
        assert len(names) == len(set(names)), "Duplicate source names detected"

    def test_expected_sources_are_registered(self):
        names = {s.source_name for s in SOURCES}
        assert {"BBC News", "NASA Breaking News", "Hacker News", "Science Daily"} <= names


# ---------------------------------------------------------------------------
# FetcherService._fetch_all()
# ---------------------------------------------------------------------------

class TestFetchAll:
    def test_counts_added_skipped_and_errors(self):
        articles = [make_ingest(i) for i in range(3)]
        extractor = MagicMock()
        extractor.extract_and_save.side_effect = [MagicMock(), None, Exception("disk full")]
        db = MagicMock()

        with patch("uselessfacts.fetcher.SOURCES", [mock_source("A", articles)]):
            results = FetcherService()._fetch_all(lambda: db, extractor)

        assert results == {"added": 1, "skipped": 1, "errors": 1}
        db.rollback.assert_called_once()
        db.close.assert_called_once()

    def test_empty_source_opens_no_session(self):
        factory = MagicMock()

        with patch("uselessfacts.fetcher.SOURCES", [mock_source("A", [])]):
            results = FetcherService()._fetch_all(factory, MagicMock())

        factory.assert_not_called()
        assert results == {"added": 0, "skipped": 0, "errors": 0}

    def test_one_session_per_source(self):
        extractor = MagicMock()
        factory = MagicMock()
        sources = [mock_source("A", [make_ingest(1)]), mock_source("B", [make_ingest(2), make_ingest(3)])]

        with patch("uselessfacts.fetcher.SOURCES", sources):
            results = FetcherService()._fetch_all(factory, extractor)

        assert factory.call_count == 2
        assert extractor.extract_and_save.call_count == 3
        assert results["added"] == 3
