import logging
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from uselessfacts.articles import (
    TIME_FILTER_HOURS,
    MIN_TEXT_QUERY_LENGTH,
    count_articles,
    get_recent_articles,
    search_articles_by_text,
    search_articles_by_topics,
)
from uselessfacts.database import SessionLocal, get_db
from uselessfacts.extractor import extractor
from uselessfacts.fetcher import FetcherService
from uselessfacts.routes.responses import CACHE_HEADERS, bad_request, server_error, split_csv
from uselessfacts.schemas import ArticleIngest, ArticleSearchResponse, ArticleWithRelevance, SearchMetadata

logger = logging.getLogger(__name__)

router = APIRouter()

ARTICLE_LIMIT = 50
TEXT_SEARCH_LIMIT = 20
SORT_OPTIONS = ("time", "score")

TIME_FILTER_ERROR = f"timeFilter must be one of: {', '.join(TIME_FILTER_HOURS)}"


def sort_articles(articles: List[ArticleWithRelevance], sort_by: str) -> List[ArticleWithRelevance]:
    """Newest first for "time", highest relevance first for "score" (stable)."""
    if sort_by == "time":
        return sorted(
            articles,
            key=lambda a: (a.published_at is not None, a.published_at),
            reverse=True,
        )
    return sorted(articles, key=lambda a: a.relevance_score, reverse=True)


@router.get("/api/articles", response_model=ArticleSearchResponse)
def list_articles(
    response: Response,
    topics: Optional[str] = None,
    time_filter: str = Query("7d", alias="timeFilter"),
    topic_types: Optional[str] = Query(None, alias="topicTypes"),
    sort_by: str = Query("score", alias="sortBy"),
    db: Session = Depends(get_db),
):
    """
    Articles for a comma-separated topic list, ranked by relevance or time.
    Without `topics` the most recent articles are returned instead.
    """
    if time_filter not in TIME_FILTER_HOURS:
        return bad_request(TIME_FILTER_ERROR)
    if sort_by not in SORT_OPTIONS:
        return bad_request("sortBy must be one of: time, score")

    topic_list = split_csv(topics)
    if topics is not None and not topic_list:
        return bad_request("At least one topic is required")
    type_list = split_csv(topic_types)
    time_window = TIME_FILTER_HOURS[time_filter]

    try:
        if topic_list:
            articles, tier = search_articles_by_topics(
                db, topic_list, time_window=time_window, topic_types=type_list, limit=ARTICLE_LIMIT
            )
            search_type = "topic"
        else:
            articles, tier = get_recent_articles(db, time_window=time_window, limit=ARTICLE_LIMIT), None
            search_type = "recent"

        articles = sort_articles(articles, sort_by)
        logger.info(f"[/api/articles] {search_type} search for {topic_list} returned {len(articles)} articles (tier={tier})")
    except Exception as e:
        return server_error("Failed to retrieve articles", e)

    response.headers.update(CACHE_HEADERS)
    return ArticleSearchResponse(
        articles=articles,
        metadata=SearchMetadata(
            total_results=len(articles),
            time_filter=time_filter,
            search_type=search_type,
            match_tier=tier,
            topics=topic_list,
            topic_types=type_list,
            sort_by=sort_by,
            generated_at=datetime.now(timezone.utc),
        ),
    )


@router.get("/api/articles/search", response_model=ArticleSearchResponse)
def search_articles(
    response: Response,
    q: Optional[str] = None,
    time_filter: str = Query("7d", alias="timeFilter"),
    db: Session = Depends(get_db),
):
    """Free-text search over article embeddings."""
    if not q:
        return bad_request("q (query) parameter is required")
    if len(q) < MIN_TEXT_QUERY_LENGTH:
        return bad_request(f"Query must be at least {MIN_TEXT_QUERY_LENGTH} characters long")
    if time_filter not in TIME_FILTER_HOURS:
        return bad_request(TIME_FILTER_ERROR)

    try:
        articles = search_articles_by_text(
            db, q, time_window=TIME_FILTER_HOURS[time_filter], limit=TEXT_SEARCH_LIMIT
        )
        logger.info(f"[/api/articles/search] '{q}' returned {len(articles)} articles")
    except Exception as e:
        return server_error("Failed to search articles", e)

    response.headers.update(CACHE_HEADERS)
    return ArticleSearchResponse(
        articles=articles,
        metadata=SearchMetadata(
            total_results=len(articles),
            time_filter=time_filter,
            search_type="text",
            query=q,
            generated_at=datetime.now(timezone.utc),
        ),
    )


@router.post("/api/ingest", status_code=200)
def ingest(articles: List[ArticleIngest], db: Session = Depends(get_db)):
    """
    Accept a batch of raw articles, store the new ones and extract their topics.
    Articles whose URL is already stored are skipped.
    """
    logger.info(f"[/api/ingest] Received batch of {len(articles)} articles")
    added = 0
    try:
        for article in articles:
            if extractor.extract_and_save(article, db) is not None:
                added += 1
    except Exception as e:
        return server_error("Failed to ingest articles", e)
    logger.info(f"[/api/ingest] Batch processed, {added} new articles")
    return {"status": "ok", "received": len(articles), "added": added}


@router.post("/api/fetch")
def trigger_fetch(db: Session = Depends(get_db)):
    """Run one fetch cycle over every RSS source right now. Blocks until complete."""
    started = datetime.now(timezone.utc)
    try:
        results = FetcherService()._fetch_all(SessionLocal, extractor)
        total = count_articles(db)
    except Exception as e:
        return server_error("Failed to fetch news", e)
    duration_ms = int((datetime.now(timezone.utc) - started).total_seconds() * 1000)
    return {
        "status": "ok",
        "articlesAdded": results["added"],
        "articlesSkipped": results["skipped"],
        "errors": results["errors"],
        "totalArticlesInDatabase": total,
        "duration": f"{duration_ms}ms",
    }
