import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Body, Depends, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from uselessfacts.articles import find_similar_article
from uselessfacts.database import get_db
from uselessfacts.embeddings import embedding_client
from uselessfacts.facts import (
    RATING_ERROR,
    create_fact,
    get_all_facts,
    get_bottom_rated_facts,
    get_fact_by_id,
    get_fact_statistics,
    get_random_fact,
    get_random_query_text,
    get_top_rated_facts,
    import_facts,
    rate_fact,
)
from uselessfacts.routes.responses import (
    NO_STORE_HEADERS,
    bad_request,
    client_ip,
    not_found,
    parse_int,
    server_error,
)
from uselessfacts.schemas import FactCreate, FactRatingResponse

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_PAGE_LIMIT = 100
MAX_RANKED_LIMIT = 50
DEFAULT_LIMIT = 10


def _ranked_limit(limit: str) -> Optional[int]:
    count = parse_int(limit)
    if count is None or count < 1:
        return None
    return min(count, MAX_RANKED_LIMIT)


# ---------------------------------------------------------------------------
# Listing and lookup
# ---------------------------------------------------------------------------

@router.get("/api/facts")
def list_facts(
    request: Request,
    response: Response,
    page: str = "1",
    limit: str = str(DEFAULT_LIMIT),
    type: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """Facts newest first, one page at a time. `type=top-rated` ranks by votes instead."""
    page_number = parse_int(page)
    if page_number is None or page_number < 1:
        return bad_request("page must be a positive number")
    count = parse_int(limit)
    if count is None or not 1 <= count <= MAX_PAGE_LIMIT:
        return bad_request(f"limit must be between 1 and {MAX_PAGE_LIMIT}")

    user_ip = client_ip(request)
    try:
        if type == "top-rated":
            facts = get_top_rated_facts(db, limit=count, user_ip=user_ip)
        else:
            facts = get_all_facts(db, page=page_number, limit=count, user_ip=user_ip)
    except Exception as e:
        return server_error("Failed to fetch facts", e)

    response.headers.update(NO_STORE_HEADERS)
    return {
        "success": True,
        "data": facts,
        "pagination": {"page": page_number, "limit": count, "total": len(facts)},
    }


@router.get("/api/facts/random")
def random_fact(
    request: Request,
    response: Response,
    type: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """One fact at random, with the caller's own vote. `type` limits it to static or realtime facts."""
    try:
        fact = get_random_fact(db, user_ip=client_ip(request), fact_type=type)
    except Exception as e:
        return server_error("Failed to fetch random fact", e)
    if fact is None:
        return not_found("No facts available")

    response.headers.update(NO_STORE_HEADERS)
    return {"success": True, "data": fact}


@router.get("/api/facts/top-rated")
def top_rated_facts(
    request: Request,
    response: Response,
    limit: str = str(DEFAULT_LIMIT),
    db: Session = Depends(get_db),
):
    count = _ranked_limit(limit)
    if count is None:
        return bad_request("limit must be a positive number")
    try:
        facts = get_top_rated_facts(db, limit=count, user_ip=client_ip(request))
    except Exception as e:
        return server_error("Failed to fetch top rated facts", e)

    response.headers.update(NO_STORE_HEADERS)
    return {"success": True, "data": facts, "meta": {"limit": count, "count": len(facts)}}


@router.get("/api/facts/bottom-rated")
def bottom_rated_facts(
    request: Request,
    response: Response,
    limit: str = str(DEFAULT_LIMIT),
    db: Session = Depends(get_db),
):
    count = _ranked_limit(limit)
    if count is None:
        return bad_request("limit must be a positive number")
    try:
        facts = get_bottom_rated_facts(db, limit=count, user_ip=client_ip(request))
    except Exception as e:
        return server_error("Failed to fetch bottom rated facts", e)

    response.headers.update(NO_STORE_HEADERS)
    return {"success": True, "data": facts, "meta": {"limit": count, "count": len(facts)}}


@router.get("/api/facts/stats")
def fact_stats(response: Response, db: Session = Depends(get_db)):
    """Vote totals, the most-voted fact and recent voting activity."""
    try:
        stats = get_fact_statistics(db)
    except Exception as e:
        return server_error("Failed to fetch fact statistics", e)

    response.headers.update(NO_STORE_HEADERS)
    return {"success": True, "data": stats, "timestamp": datetime.now(timezone.utc).isoformat()}


# ---------------------------------------------------------------------------
# Real-time facts
# ---------------------------------------------------------------------------

@router.get("/api/facts/real-time")
def real_time_article(response: Response, db: Session = Depends(get_db)):
    """
    Pick a recent news article to base a real-time fact on: a random query
    text is embedded and one of the nearest articles of the last week is chosen.
    """
    query_text = get_random_query_text()
    try:
        article = find_similar_article(db, embedding_client.embed(query_text))
    except Exception as e:
        return server_error("Failed to find a news article", e)
    if article is None:
        logger.info(f"[/api/facts/real-time] No recent article for '{query_text}'")
        return not_found("No news articles available")

    logger.info(f"[/api/facts/real-time] '{query_text}' -> {article.id}")
    response.headers.update(NO_STORE_HEADERS)
    return {
        "success": True,
        "data": {
            "article": {
                "id": article.id,
                "title": article.title,
                "source": article.source,
                "url": article.url,
                "published_at": article.published_at,
            },
            "queryText": query_text,
            "message": "Nearest recent article for the query text",
        },
    }


@router.post("/api/facts/save-realtime")
def save_realtime_fact(payload: dict = Body(...), db: Session = Depends(get_db)):
    """Store a fact written about a news article. Its type is always "realtime"."""
    text = payload.get("text")
    if not text or not isinstance(text, str) or not text.strip():
        return JSONResponse({"success": False, "error": "Fact text is required"}, status_code=400)

    try:
        fact = create_fact(db, FactCreate(
            text=text.strip(),
            source=payload.get("source"),
            source_url=payload.get("source_url"),
            fact_type="realtime",
            why_interesting=payload.get("why_interesting"),
            source_snippet=payload.get("source_snippet"),
            tone=payload.get("tone"),
            article_id=payload.get("article_id"),
        ))
        saved = get_fact_by_id(db, fact.id)
    except Exception as e:
        return server_error("Failed to save fact", e)

    return {"success": True, "data": saved}


@router.post("/api/facts/import")
def import_fact_batch(payload: dict = Body(...), db: Session = Depends(get_db)):
    """Admin bulk import of static facts. Known ids are skipped unless skipDuplicates is false."""
    facts = payload.get("facts")
    if not isinstance(facts, list):
        return bad_request("Facts must be an array")

    try:
        results = import_facts(db, facts, skip_duplicates=payload.get("skipDuplicates", True) is not False)
    except Exception as e:
        return server_error("Failed to import facts", e)

    return {"success": True, "message": "Import completed", "results": results}


# ---------------------------------------------------------------------------
# Single fact
# ---------------------------------------------------------------------------

@router.get("/api/facts/{fact_id}")
def fact_detail(fact_id: str, request: Request, response: Response, db: Session = Depends(get_db)):
    try:
        fact = get_fact_by_id(db, fact_id, user_ip=client_ip(request))
    except Exception as e:
        return server_error("Failed to fetch fact", e)
    if fact is None:
        return not_found("Fact not found")

    response.headers.update(NO_STORE_HEADERS)
    return {"success": True, "data": fact}


@router.post("/api/facts/{fact_id}/rate")
def rate(fact_id: str, request: Request, payload: dict = Body(...), db: Session = Depends(get_db)):
    """Vote -1 ("too useless") or 1 ("useful uselessness"). A repeat vote replaces the earlier one."""
    try:
        rating = rate_fact(db, fact_id, payload.get("rating"), user_ip=client_ip(request))
    except ValueError:
        return bad_request(RATING_ERROR)
    except Exception as e:
        return server_error("Failed to submit rating", e)
    if rating is None:
        return not_found("Fact not found")

    return {
        "success": True,
        "data": FactRatingResponse.model_validate(rating),
        "message": "Rating submitted successfully",
    }
