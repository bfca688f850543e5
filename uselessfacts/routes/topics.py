import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query, Response
from sqlalchemy.orm import Session

from uselessfacts.database import check_connection, get_db
from uselessfacts.diversity import get_diverse_topics
from uselessfacts.routes.responses import CACHE_HEADERS, bad_request, parse_int, server_error, split_csv
from uselessfacts.schemas import TopicResponse, TopicStats
from uselessfacts.topic_search import MIN_SUGGESTION_LENGTH, get_topic_suggestions
from uselessfacts.trending import (
    DEFAULT_TIME_WINDOW_HOURS,
    FALLBACK_TOPICS,
    cleanup_stale_topics,
    get_topic_stats,
    get_trending_topics,
)

logger = logging.getLogger(__name__)

router = APIRouter()

MIN_TIME_WINDOW, MAX_TIME_WINDOW = 1, 168  # one hour to one week
MIN_LIMIT, MAX_LIMIT = 1, 50
DEFAULT_LIMIT = 10


@router.get("/api/topics")
def list_topics(
    response: Response,
    time_window: str = Query(str(DEFAULT_TIME_WINDOW_HOURS), alias="timeWindow"),
    limit: str = Query(str(DEFAULT_LIMIT)),
    entity_type: Optional[str] = Query(None, alias="entityType"),
    topic_types: Optional[str] = Query(None, alias="topicTypes"),
    diverse: str = "false",
    cache_buster: Optional[str] = Query(None, alias="_t"),
    db: Session = Depends(get_db),
):
    """
    Trending topics. `diverse=true` spreads the result across entity types;
    any `_t` value shuffles the candidates first so repeated calls differ.
    """
    hours = parse_int(time_window)
    if hours is None or not MIN_TIME_WINDOW <= hours <= MAX_TIME_WINDOW:
        return bad_request(f"timeWindow must be between {MIN_TIME_WINDOW} and {MAX_TIME_WINDOW} hours")
    count = parse_int(limit)
    if count is None or not MIN_LIMIT <= count <= MAX_LIMIT:
        return bad_request(f"limit must be between {MIN_LIMIT} and {MAX_LIMIT}")

    type_list = split_csv(topic_types) or None
    is_diverse = diverse == "true"
    randomize = cache_buster is not None

    try:
        if is_diverse:
            topics = get_diverse_topics(
                db,
                time_window=hours,
                limit=count,
                entity_type=entity_type,
                topic_types=type_list,
                randomize=randomize,
            )
        else:
            topics = get_trending_topics(
                db, time_window=hours, limit=count, entity_type=entity_type, topic_types=type_list
            )

        if not topics and not check_connection(db):
            logger.warning("[/api/topics] Database unreachable, serving fallback topics")
            topics = FALLBACK_TOPICS[:count]
    except Exception as e:
        return server_error("Failed to retrieve trending topics", e)

    response.headers.update(CACHE_HEADERS)
    return {
        "topics": [TopicResponse.model_validate(topic) for topic in topics],
        "metadata": {
            "timeWindow": hours,
            "limit": count,
            "entityType": entity_type,
            "topicTypes": type_list,
            "diverse": is_diverse,
            "randomize": randomize,
            "totalTopics": len(topics),
            "generatedAt": datetime.now(timezone.utc).isoformat(),
        },
    }


@router.post("/api/topics")
def suggest_topics(payload: dict = Body(...), db: Session = Depends(get_db)):
    """Autocomplete: trending topics containing the query text."""
    query = payload.get("query")
    if not query or not isinstance(query, str):
        return bad_request("query is required and must be a string")
    if len(query) < MIN_SUGGESTION_LENGTH:
        return bad_request(f"query must be at least {MIN_SUGGESTION_LENGTH} characters long")
    limit = parse_int(payload.get("limit", DEFAULT_LIMIT))
    if limit is None or limit < 1:
        return bad_request("limit must be a positive number")

    try:
        suggestions = get_topic_suggestions(db, query, limit)
    except Exception as e:
        return server_error("Failed to get topic suggestions", e)

    return {
        "suggestions": [s.model_dump() for s in suggestions],
        "query": query,
        "total": len(suggestions),
    }


@router.get("/api/topics/stats", response_model=TopicStats)
def topic_stats(response: Response, db: Session = Depends(get_db)):
    """Extraction coverage across stored articles."""
    try:
        stats = get_topic_stats(db)
    except Exception as e:
        return server_error("Failed to get topic statistics", e)
    response.headers.update(CACHE_HEADERS)
    return stats


@router.api_route("/api/cron/cleanup-topics", methods=["GET", "POST"])
def cleanup_topics(db: Session = Depends(get_db)):
    """Drop topics of stale articles and rarely-seen trending rows."""
    logger.info("[/api/cron/cleanup-topics] Starting topic cleanup")
    try:
        results = cleanup_stale_topics(db)
    except Exception as e:
        return server_error("Topic cleanup failed", e)
    logger.info(f"[/api/cron/cleanup-topics] Topic cleanup completed: {results}")
    return {
        "success": True,
        "message": "Topic cleanup completed",
        "results": {
            "deletedTopics": results["deleted_topics"],
            "deletedTrendingTopics": results["deleted_trending_topics"],
            "errors": results["errors"],
        },
    }
