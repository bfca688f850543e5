import asyncio
import logging
import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, List

import feedparser
from sqlalchemy.orm import Session

from uselessfacts.schemas import ArticleIngest

logger = logging.getLogger(__name__)

FETCH_INTERVAL_SECONDS = 1800  # 30 minutes


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def strip_html(text: str) -> str:
    """Remove HTML tags from a string, returning clean plain text."""
    return re.sub(r"<[^>]+>", "", text or "").strip()


def parse_date(entry) -> datetime:
    """
    Extract a UTC datetime from a feedparser entry.
    Falls back to the current time if no date is found.
    """
    parsed = getattr(entry, "published_parsed", None) or getattr(entry, "updated_parsed", None)
    if parsed:
        return datetime(*parsed[:6], tzinfo=timezone.utc)
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Base source
# ---------------------------------------------------------------------------

class BaseSource(ABC):
    """
    Abstract base class for all news sources.
    To add a new source: subclass this, set source_name, and implement fetch().
    """
    source_name: str  # display name stored on each article, e.g. "BBC News"

    @abstractmethod
    def fetch(self) -> List[ArticleIngest]:
        """Fetch articles and return them as a list of ArticleIngest objects."""
        pass


# ---------------------------------------------------------------------------
# RSS source
# ---------------------------------------------------------------------------

class RSSSource(BaseSource):
    """
    Reusable RSS fetcher. Subclasses only need to set source_name and feed_url.
    Entries without a title or link are skipped.
    """
    feed_url: str

    def fetch(self) -> List[ArticleIngest]:
        try:
            feed = feedparser.parse(self.feed_url)
            articles = []

            for entry in feed.entries:
                title = (entry.get("title") or "").strip()
                link = entry.get("link")
                if not title or not link:
                    logger.warning(f"[{self.source_name}] Skipping entry with no title or link")
                    continue

                # Body may be in 'summary' or nested inside 'content'; the title stands in when both are empty
                raw_body = (
                    entry.get("summary")
                    or (entry.get("content") or [{}])[0].get("value")
                    or ""
                )

                articles.append(ArticleIngest(
                    title=title,
                    content=strip_html(raw_body) or title,
                    url=link,
                    source=self.source_name,
                    published_at=parse_date(entry),
                ))

            logger.info(f"[{self.source_name}] Fetched {len(articles)} articles")
            return articles

        except Exception as e:
            # Log the error and return an empty list so other sources are unaffected
            logger.error(f"[{self.source_name}] Failed to fetch: {e}")
            return []


# ---------------------------------------------------------------------------
# Concrete sources
# ---------------------------------------------------------------------------

class BBCNewsSource(RSSSource):
    source_name = "BBC News"
    feed_url = "http://feeds.bbci.co.uk/news/rss.xml"


class ScienceDailySource(RSSSource):
    source_name = "Science Daily"
    feed_url = "https://www.sciencedaily.com/rss/all.xml"


class NASASource(RSSSource):
    source_name = "NASA Breaking News"
    feed_url = "https://www.nasa.gov/rss/dyn/breaking_news.rss"


class TechCrunchSource(RSSSource):
    source_name = "TechCrunch"
    feed_url = "https://techcrunch.com/feed/"


class AtlasObscuraSource(RSSSource):
    source_name = "Atlas Obscura"
    feed_url = "https://www.atlasobscura.com/feeds/latest"


class SmithsonianSource(RSSSource):
    source_name = "Smithsonian Magazine"
    feed_url = "https://www.smithsonianmag.com/rss/latest_articles/"


class LiveScienceSource(RSSSource):
    source_name = "Live Science"
    feed_url = "https://www.livescience.com/feeds/all"


class HackerNewsSource(RSSSource):
    source_name = "Hacker News"
    feed_url = "https://hnrss.org/frontpage"


class GitHubBlogSource(RSSSource):
    source_name = "GitHub Blog"
    feed_url = "https://github.blog/feed/"


class DevToSource(RSSSource):
    source_name = "Dev.to"
    feed_url = "https://dev.to/feed"


# Registry of active sources; add or remove entries here to enable/disable sources
SOURCES: List[BaseSource] = [
    BBCNewsSource(),
    ScienceDailySource(),
    NASASource(),
    TechCrunchSource(),
    AtlasObscuraSource(),
    SmithsonianSource(),
    LiveScienceSource(),
    HackerNewsSource(),
    GitHubBlogSource(),
    DevToSource(),
]


# ---------------------------------------------------------------------------
# Fetcher service: background loop
# ---------------------------------------------------------------------------

class FetcherService:
    """
    Runs a continuous background loop that fetches all sources every N seconds,
    stores new articles and extracts their topics.
    """

    def __init__(self, interval_seconds: int = FETCH_INTERVAL_SECONDS):
        self.interval_seconds = interval_seconds

    async def run(self, db_factory, extractor):
        """
        Entry point for the background task.
        db_factory: callable that returns a new SQLAlchemy Session (e.g. SessionLocal)
        extractor: the TopicExtractor instance used to store articles and topics
        """
        logger.info("FetcherService started, fetching every %ds", self.interval_seconds)
        while True:
            # the cycle does blocking I/O and model inference; keep the event loop free
            await asyncio.to_thread(self._fetch_all, db_factory, extractor)
            await asyncio.sleep(self.interval_seconds)

    def _fetch_all(self, db_factory, extractor) -> Dict[str, int]:
        """Fetch from every registered source and persist new articles. Returns per-cycle counts."""
        logger.info("Starting fetch cycle")
        results = {"added": 0, "skipped": 0, "errors": 0}

        for source in SOURCES:
            articles = source.fetch()  # errors are handled inside fetch()

            if not articles:
                continue

            db: Session = db_factory()
            try:
                for article in articles:
                    try:
                        if extractor.extract_and_save(article, db) is None:
                            results["skipped"] += 1
                        else:
                            results["added"] += 1
                    except Exception as e:
                        db.rollback()
                        logger.error(f"[{source.source_name}] Error processing '{article.url}': {e}")
                        results["errors"] += 1
            finally:
                db.close()

        logger.info(f"Fetch cycle complete: {results}")
        return results
