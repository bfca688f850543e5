import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from uselessfacts.models import ArticleTopic, NewsArticle, TrendingTopic, hours_ago, utcnow
from uselessfacts.normalize import normalize_topic_key
from uselessfacts.schemas import ExtractedEntity, TopicStats

logger = logging.getLogger(__name__)

DEFAULT_TIME_WINDOW_HOURS = 48

# Cleanup policy
STALE_ARTICLE_DAYS = 30
MIN_TRENDING_OCCURRENCES = 2


# ---------------------------------------------------------------------------
# Internal topic representation
# ---------------------------------------------------------------------------

@dataclass
class TopicView:
    """The one topic shape handed to the HTTP layer, whatever the source."""
    id: str
    text: str
    type: Optional[str]
    occurrence_count: int
    avg_tfidf_score: float
    last_seen_at: Optional[datetime] = None
    combined_score: float = 0.0

    @classmethod
    def from_trending(cls, row: TrendingTopic) -> "TopicView":
        count = row.occurrence_count or 0
        avg = row.avg_tfidf_score or 0.0
        return cls(
            id=str(row.id),
            text=row.topic_text,
            type=row.entity_type,
            occurrence_count=count,
            avg_tfidf_score=avg,
            last_seen_at=row.last_seen_at,
            combined_score=count * avg,
        )


def _fallback(index: int, text: str, entity_type: str, score: float) -> TopicView:
    return TopicView(
        id=f"fallback_{index}",
        text=text,
        type=entity_type,
        occurrence_count=1,
        avg_tfidf_score=score,
        combined_score=score,
    )


# Served by the topics endpoint when the store is unreachable
FALLBACK_TOPICS: List[TopicView] = [
    _fallback(1, "artificial intelligence", "TECH", 0.5),
    _fallback(2, "climate change", "CONCEPT", 0.4),
    _fallback(3, "space exploration", "CONCEPT", 0.3),
    _fallback(4, "renewable energy", "CONCEPT", 0.2),
    _fallback(5, "quantum computing", "TECH", 0.1),
]


# ---------------------------------------------------------------------------
# Write path
# ---------------------------------------------------------------------------

def store_article_topics(db: Session, article_id: str, entities: Sequence[ExtractedEntity]) -> int:
    """Persist one ArticleTopic row per entity. Raises on storage failure."""
    if not entities:
        return 0

    db.add_all([
        ArticleTopic(
            article_id=article_id,
            entity_text=entity.text,
            entity_type=entity.type,
            tfidf_score=entity.tfidf_score,
            ner_confidence=entity.confidence,
        )
        for entity in entities
    ])
    db.commit()
    logger.info(f"Stored {len(entities)} topics for article {article_id}")
    return len(entities)


def _insert_for(db: Session):
    """Dialect-specific INSERT construct that supports ON CONFLICT."""
    if db.get_bind().dialect.name == "postgresql":
        return postgresql.insert
    return sqlite.insert


def update_trending_topics(db: Session, entities: Sequence[ExtractedEntity]) -> None:
    """
    Fold each entity into the trending aggregate.

    One INSERT ... ON CONFLICT DO UPDATE per entity: the count increment and the
    running-mean reweight happen in the same statement, so concurrent
    extractions of the same topic cannot lose updates.
    """
    insert = _insert_for(db)
    now = utcnow()

    for entity in entities:
        key = normalize_topic_key(entity.text)
        if not key:
            continue
        score = entity.tfidf_score or 0.0

        stmt = insert(TrendingTopic).values(
            topic_text=key,
            entity_type=entity.type,
            occurrence_count=1,
            avg_tfidf_score=score,
            last_seen_at=now,
            created_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[TrendingTopic.topic_text],
            set_={
                # right-hand sides see the row as it was before this update
                "occurrence_count": TrendingTopic.occurrence_count + 1,
                "avg_tfidf_score": (
                    (TrendingTopic.avg_tfidf_score * TrendingTopic.occurrence_count + score)
                    / (TrendingTopic.occurrence_count + 1)
                ),
                "last_seen_at": now,
            },
        )
        db.execute(stmt)

    db.commit()
    logger.info(f"Updated trending topics for {len(entities)} entities")


# ---------------------------------------------------------------------------
# Read path
# ---------------------------------------------------------------------------

def get_trending_topics(
    db: Session,
    time_window: Optional[int] = DEFAULT_TIME_WINDOW_HOURS,
    limit: int = 10,
    entity_type: Optional[str] = None,
    topic_types: Optional[Sequence[str]] = None,
) -> List[TopicView]:
    """Topics seen within the window, ranked by occurrence_count * avg_tfidf_score. Errors yield []."""
    try:
        query = db.query(TrendingTopic)
        if time_window:
            query = query.filter(TrendingTopic.last_seen_at > hours_ago(time_window))
        if entity_type:
            query = query.filter(TrendingTopic.entity_type == entity_type)
        if topic_types:
            query = query.filter(TrendingTopic.entity_type.in_(list(topic_types)))

        rows = (
            query.order_by((TrendingTopic.occurrence_count * TrendingTopic.avg_tfidf_score).desc())
            .limit(limit)
            .all()
        )
        return [TopicView.from_trending(row) for row in rows]
    except Exception as e:
        logger.error(f"Error getting trending topics: {e}")
        return []


def get_topic_stats(db: Session) -> TopicStats:
    """Coverage of topic extraction across stored articles. Errors yield zeros."""
    try:
        total_articles = db.query(func.count(NewsArticle.id)).scalar() or 0
        articles_with_topics = db.query(func.count(func.distinct(ArticleTopic.article_id))).scalar() or 0
        total_topics = db.query(func.count(ArticleTopic.id)).scalar() or 0
        trending_topics = db.query(func.count(TrendingTopic.id)).scalar() or 0
    except Exception as e:
        logger.error(f"Error getting topic stats: {e}")
        return TopicStats(
            total_articles=0,
            articles_with_topics=0,
            total_topics=0,
            trending_topics=0,
            coverage_percentage=0.0,
        )

    coverage = (articles_with_topics / total_articles) * 100 if total_articles else 0.0
    return TopicStats(
        total_articles=total_articles,
        articles_with_topics=articles_with_topics,
        total_topics=total_topics,
        trending_topics=trending_topics,
        coverage_percentage=coverage,
    )


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------

def cleanup_stale_topics(
    db: Session,
    max_age_days: int = STALE_ARTICLE_DAYS,
    min_occurrences: int = MIN_TRENDING_OCCURRENCES,
) -> dict:
    """
    Delete topics of articles older than max_age_days and trending rows seen
    fewer than min_occurrences times. Each step is independent: a failure is
    counted in "errors" and the next step still runs.
    """
    results = {"deleted_topics": 0, "deleted_trending_topics": 0, "errors": 0}

    try:
        stale_articles = select(NewsArticle.id).where(NewsArticle.created_at < hours_ago(max_age_days * 24))
        results["deleted_topics"] = (
            db.query(ArticleTopic)
            .filter(ArticleTopic.article_id.in_(stale_articles))
            .delete(synchronize_session=False)
        )
        db.commit()
        logger.info(f"Deleted {results['deleted_topics']} stale article topics")
    except Exception as e:
        db.rollback()
        logger.error(f"Error deleting stale topics: {e}")
        results["errors"] += 1

    try:
        results["deleted_trending_topics"] = (
            db.query(TrendingTopic)
            .filter(TrendingTopic.occurrence_count < min_occurrences)
            .delete(synchronize_session=False)
        )
        db.commit()
        logger.info(f"Deleted {results['deleted_trending_topics']} low-occurrence trending topics")
    except Exception as e:
        db.rollback()
        logger.error(f"Error deleting low-occurrence trending topics: {e}")
        results["errors"] += 1

    return results
