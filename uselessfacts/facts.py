import logging
import random
import uuid
from typing import Dict, List, Optional, Sequence

from pydantic import ValidationError
from sqlalchemy import Float, case, cast, func, select
from sqlalchemy.orm import Session, aliased

from uselessfacts.models import Fact, FactRating, hours_ago
from uselessfacts.schemas import (
    FactCreate,
    FactImport,
    FactStatistics,
    FactWithRating,
    MostRatedFact,
    RecentRatingActivity,
)

logger = logging.getLogger(__name__)

VALID_RATINGS = (-1, 1)
RATING_ERROR = "Rating must be -1 (too useless) or 1 (useful uselessness)"

# Prompts embedded to pick a news article for a real-time fact
QUERY_TEXTS = [
    "interesting and unusual recent event",
    "surprising and quirky news story",
    "bizarre and unexpected development",
    "weird and fascinating update",
    "curious and remarkable happening",
    "strange and intriguing news",
    "unusual and captivating story",
    "odd and interesting development",
    "peculiar and noteworthy event",
    "eccentric and engaging news",
    "a mind-bending scientific discovery",
    "a major breakthrough in space exploration",
    "an ingenious technological innovation",
    "an amazing story of animal intelligence",
    "a rare and beautiful natural phenomenon",
    "a surprising archaeological find",
    "an unusual world record or human achievement",
]

TOTAL_RATING = func.coalesce(func.sum(FactRating.rating), 0)
RATING_COUNT = func.count(FactRating.id)


def get_random_query_text() -> str:
    return random.choice(QUERY_TEXTS)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _rated_facts(db: Session, user_ip: Optional[str]):
    """Facts joined with their rating totals and the caller's own vote, one row per fact."""
    own = aliased(FactRating)
    user_rating = (
        select(own.rating)
        .where(own.fact_id == Fact.id, own.user_ip == user_ip)
        .limit(1)
        .correlate(Fact)
        .scalar_subquery()
    )
    return (
        db.query(Fact, TOTAL_RATING, RATING_COUNT, user_rating)
        .outerjoin(FactRating, FactRating.fact_id == Fact.id)
        .group_by(Fact.id)
    )


def _to_fact(row) -> FactWithRating:
    fact, total_rating, rating_count, user_rating = row
    return FactWithRating(
        id=fact.id,
        text=fact.text,
        source=fact.source,
        source_url=fact.source_url,
        fact_type=fact.fact_type or "static",
        why_interesting=fact.why_interesting,
        source_snippet=fact.source_snippet,
        tone=fact.tone,
        article_id=fact.article_id,
        created_at=fact.created_at,
        updated_at=fact.updated_at,
        total_rating=total_rating or 0,
        rating_count=rating_count or 0,
        user_rating=user_rating,
    )


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

def create_fact(db: Session, fact: FactCreate) -> Fact:
    row = Fact(
        id=fact.id or f"fact_{uuid.uuid4().hex}",
        text=fact.text,
        source=fact.source or None,
        source_url=fact.source_url or None,
        fact_type=fact.fact_type or "static",
        why_interesting=fact.why_interesting or None,
        source_snippet=fact.source_snippet or None,
        tone=fact.tone or None,
        article_id=fact.article_id or None,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info(f"Saved {row.fact_type} fact {row.id}")
    return row


def rate_fact(db: Session, fact_id: str, rating: int, user_ip: Optional[str] = None) -> Optional[FactRating]:
    """
    Record one vote per (fact, user_ip). Voting again replaces the earlier vote.

    Raises ValueError for anything but -1 or 1. Returns None when the fact does not exist.
    """
    if isinstance(rating, bool) or not isinstance(rating, int) or rating not in VALID_RATINGS:
        raise ValueError(RATING_ERROR)
    if db.get(Fact, fact_id) is None:
        return None

    existing = (
        db.query(FactRating)
        .filter(FactRating.fact_id == fact_id, FactRating.user_ip == user_ip)
        .first()
    )
    if existing is not None:
        existing.rating = rating
    else:
        existing = FactRating(fact_id=fact_id, rating=rating, user_ip=user_ip)
        db.add(existing)
    db.commit()
    db.refresh(existing)
    return existing


def import_facts(db: Session, facts: Sequence[dict], skip_duplicates: bool = True) -> Dict:
    """
    Bulk-load static facts. Each entry is validated on its own; a bad entry is
    counted and reported without stopping the batch.
    """
    results = {"imported": 0, "skipped": 0, "errors": 0, "errors_list": []}

    for entry in facts:
        entry_id = entry.get("id") if isinstance(entry, dict) else None
        try:
            fact = FactImport.model_validate(entry)
            if skip_duplicates and db.get(Fact, fact.id) is not None:
                results["skipped"] += 1
                continue
            create_fact(db, FactCreate(**fact.model_dump()))
            results["imported"] += 1
        except (ValidationError, ValueError) as e:
            results["errors"] += 1
            results["errors_list"].append(f"Fact {entry_id}: {e}")
        except Exception as e:
            db.rollback()
            logger.error(f"Error importing fact {entry_id}: {e}")
            results["errors"] += 1
            results["errors_list"].append(f"Fact {entry_id}: {e}")

    logger.info(f"Fact import finished: {results['imported']} imported, {results['skipped']} skipped, {results['errors']} errors")
    return results


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def get_random_fact(db: Session, user_ip: Optional[str] = None, fact_type: Optional[str] = None) -> Optional[FactWithRating]:
    query = _rated_facts(db, user_ip)
    if fact_type:
        query = query.filter(Fact.fact_type == fact_type)
    row = query.order_by(func.random()).first()
    return _to_fact(row) if row else None


def get_fact_by_id(db: Session, fact_id: str, user_ip: Optional[str] = None) -> Optional[FactWithRating]:
    row = _rated_facts(db, user_ip).filter(Fact.id == fact_id).first()
    return _to_fact(row) if row else None


def get_all_facts(db: Session, page: int = 1, limit: int = 10, user_ip: Optional[str] = None) -> List[FactWithRating]:
    """Newest facts first, one page at a time (pages start at 1)."""
    rows = (
        _rated_facts(db, user_ip)
        .order_by(Fact.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return [_to_fact(row) for row in rows]


def get_top_rated_facts(db: Session, limit: int = 10, user_ip: Optional[str] = None) -> List[FactWithRating]:
    """Rated facts by net score, highest first; ties go to the more-voted fact."""
    rows = (
        _rated_facts(db, user_ip)
        .having(RATING_COUNT > 0)
        .order_by(TOTAL_RATING.desc(), RATING_COUNT.desc())
        .limit(limit)
        .all()
    )
    return [_to_fact(row) for row in rows]


def get_bottom_rated_facts(db: Session, limit: int = 10, user_ip: Optional[str] = None) -> List[FactWithRating]:
    """Rated facts by net score, lowest first ("too useless")."""
    rows = (
        _rated_facts(db, user_ip)
        .having(RATING_COUNT > 0)
        .order_by(TOTAL_RATING.asc(), RATING_COUNT.desc())
        .limit(limit)
        .all()
    )
    return [_to_fact(row) for row in rows]


def get_fact_statistics(db: Session) -> FactStatistics:
    total_facts = db.query(func.count(Fact.id)).scalar() or 0
    total_ratings, positive, negative, average, last_day, last_week = db.query(
        func.count(FactRating.id),
        func.count(case((FactRating.rating == 1, 1))),
        func.count(case((FactRating.rating == -1, 1))),
        func.coalesce(func.avg(cast(FactRating.rating, Float)), 0.0),
        func.count(case((FactRating.created_at >= hours_ago(24), 1))),
        func.count(case((FactRating.created_at >= hours_ago(24 * 7), 1))),
    ).one()

    most_rated = (
        db.query(Fact.id, Fact.text, RATING_COUNT)
        .outerjoin(FactRating, FactRating.fact_id == Fact.id)
        .group_by(Fact.id, Fact.text)
        .order_by(RATING_COUNT.desc())
        .first()
    )

    return FactStatistics(
        total_facts=total_facts,
        total_ratings=total_ratings or 0,
        average_rating=average or 0.0,
        positive_ratings=positive or 0,
        negative_ratings=negative or 0,
        most_rated_fact=MostRatedFact(id=most_rated[0], text=most_rated[1], rating_count=most_rated[2])
        if most_rated else None,
        recent_activity=RecentRatingActivity(ratings_last_24h=last_day or 0, ratings_last_7d=last_week or 0),
    )
