import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence

from sqlalchemy import and_, case, distinct, func, or_
from sqlalchemy.orm import Session

from uselessfacts.models import ArticleTopic, NewsArticle, TrendingTopic, hours_ago
from uselessfacts.normalize import normalize_match_key
from uselessfacts.schemas import TopicSuggestion
from uselessfacts.scoring import ScoringStrategy, relevance_score

logger = logging.getLogger(__name__)

MATCH_TYPES = ("any", "all")

# Gaming queries also match these generic entity texts.
# A narrow heuristic, not a synonym system.
GAMING_TERMS = ("game", "gaming", "video gaming")

MIN_SUGGESTION_LENGTH = 2

# ---------------------------------------------------------------------------
# Aggregates shared by every exact-key query
# ---------------------------------------------------------------------------

MATCH_COUNT = func.count(distinct(ArticleTopic.match_key))
AVG_WEIGHT = func.avg(ArticleTopic.tfidf_score)
MAX_WEIGHT = func.max(ArticleTopic.tfidf_score)

# (match count desc, avg weight desc, newest first)
BY_COVERAGE = (MATCH_COUNT.desc(), AVG_WEIGHT.desc(), NewsArticle.published_at.desc())
# (max weight desc, newest first)
BY_PEAK_WEIGHT = (MAX_WEIGHT.desc(), NewsArticle.published_at.desc())
# (match count desc, max weight desc, newest first)
BY_COVERAGE_THEN_PEAK = (MATCH_COUNT.desc(), MAX_WEIGHT.desc(), NewsArticle.published_at.desc())


@dataclass
class TopicMatch:
    """One article matched against a topic query, with the aggregates used to rank it."""
    article: NewsArticle
    match_count: int
    avg_weight: float
    max_weight: float
    matched_topics: List[str] = field(default_factory=list)
    relevance_score: float = 0.0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def match_keys(topics: Iterable[str]) -> List[str]:
    """Normalize topics to match keys, dropping blanks and duplicates (order kept)."""
    keys = []
    for topic in topics:
        key = normalize_match_key(topic)
        if key and key not in keys:
            keys.append(key)
    return keys


def _check_match_type(match_type: str):
    if match_type not in MATCH_TYPES:
        raise ValueError(f"match_type must be one of {MATCH_TYPES}, got {match_type!r}")


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def fuzzy_patterns(topic: str) -> List[str]:
    """LIKE patterns for one topic: the literal text, widened for gaming queries."""
    lowered = topic.lower().strip()
    patterns = [f"%{_escape_like(lowered)}%"]
    if "game" in lowered or "gaming" in lowered:
        for term in GAMING_TERMS:
            pattern = f"%{term}%"
            if pattern not in patterns:
                patterns.append(pattern)
    return patterns


def _attach_matched_topics(db: Session, matches: List[TopicMatch], condition) -> None:
    """Fill in matched_topics with the article's entity texts that satisfied the query."""
    if not matches:
        return
    by_id = {m.article.id: m for m in matches}
    rows = (
        db.query(ArticleTopic.article_id, ArticleTopic.entity_text)
        .filter(ArticleTopic.article_id.in_(list(by_id)))
        .filter(condition)
        .order_by(ArticleTopic.id)
        .all()
    )
    for article_id, entity_text in rows:
        matched = by_id[article_id].matched_topics
        if entity_text not in matched:
            matched.append(entity_text)


# ---------------------------------------------------------------------------
# Exact-key matching
# ---------------------------------------------------------------------------

def query_topic_matches(
    db: Session,
    topics: Sequence[str],
    *,
    require_all: bool,
    order_by: tuple,
    limit: int,
    time_window: Optional[int] = None,
    topic_types: Optional[Sequence[str]] = None,
) -> List[TopicMatch]:
    """
    Run one exact-key topic query and return the aggregated rows.

    Articles qualify when at least one of their topics has a match key in the
    requested set (or every key, when require_all). Errors propagate; the
    public entry points decide how to fail.
    """
    keys = match_keys(topics)
    if not keys:
        return []

    condition = ArticleTopic.match_key.in_(keys)
    if topic_types:
        condition = and_(condition, ArticleTopic.entity_type.in_(list(topic_types)))

    query = (
        db.query(NewsArticle, MATCH_COUNT, AVG_WEIGHT, MAX_WEIGHT)
        .join(ArticleTopic, ArticleTopic.article_id == NewsArticle.id)
        .filter(condition)
    )
    if time_window:
        query = query.filter(NewsArticle.created_at > hours_ago(time_window))

    query = query.group_by(NewsArticle.id)
    if require_all:
        query = query.having(MATCH_COUNT == len(keys))

    rows = query.order_by(*order_by).limit(limit).all()

    matches = [
        TopicMatch(
            article=article,
            match_count=count or 0,
            avg_weight=avg_weight or 0.0,
            max_weight=max_weight or 0.0,
        )
        for article, count, avg_weight, max_weight in rows
    ]
    _attach_matched_topics(db, matches, condition)
    return matches


def find_articles_by_topics(
    db: Session,
    topics: Sequence[str],
    match_type: str = "any",
    limit: int = 5,
    time_window: Optional[int] = None,
    topic_types: Optional[Sequence[str]] = None,
) -> List[NewsArticle]:
    """
    Find articles whose extracted topics match the given topic strings.

    "all" requires every requested topic on the article and ranks by coverage,
    then average weight, then recency. "any" accepts a single hit and ranks by
    the strongest matching topic, then recency. Storage errors yield [].
    """
    _check_match_type(match_type)
    if not topics:
        return []

    try:
        matches = query_topic_matches(
            db,
            topics,
            require_all=match_type == "all",
            order_by=BY_COVERAGE if match_type == "all" else BY_PEAK_WEIGHT,
            limit=limit,
            time_window=time_window,
            topic_types=topic_types,
        )
        return [m.article for m in matches]
    except Exception as e:
        logger.error(f"Error finding articles by topics {list(topics)}: {e}")
        return []


def find_articles_by_topics_with_relevance(
    db: Session,
    topics: Sequence[str],
    match_type: str = "any",
    limit: int = 5,
    time_window: Optional[int] = None,
) -> List[TopicMatch]:
    """Exact-key match, each result scored with the topic-weighted formula (always within [0, 1])."""
    _check_match_type(match_type)
    if not topics:
        return []

    try:
        total = len(match_keys(topics))
        matches = query_topic_matches(
            db,
            topics,
            require_all=match_type == "all",
            order_by=BY_COVERAGE,
            limit=limit,
            time_window=time_window,
        )
        for match in matches:
            match.relevance_score = relevance_score(
                ScoringStrategy.TOPIC_WEIGHTED,
                matched=match.match_count,
                total=total,
                avg_weight=match.avg_weight,
            )
        return matches
    except Exception as e:
        logger.error(f"Error finding articles with relevance for {list(topics)}: {e}")
        return []


# ---------------------------------------------------------------------------
# Fuzzy (substring) matching: used only after the exact tier finds nothing
# ---------------------------------------------------------------------------

def find_articles_by_topics_fuzzy(
    db: Session,
    topics: Sequence[str],
    match_type: str = "any",
    limit: int = 5,
    time_window: Optional[int] = None,
    topic_types: Optional[Sequence[str]] = None,
) -> List[TopicMatch]:
    """
    Substring match on raw entity text, case-insensitive.

    A requested topic is satisfied by an article when any of its patterns
    matches one of the article's entity texts. "all" requires every requested
    topic to be satisfied. With topic_types, only entities of those types count.
    Results are ranked by the strongest matching topic, then recency, and
    scored with the topic-weighted formula.
    """
    _check_match_type(match_type)
    topics = [t for t in topics if t and t.strip()]
    if not topics:
        return []

    try:
        lowered = func.lower(ArticleTopic.entity_text)
        per_topic = [
            or_(*[lowered.like(pattern, escape="\\") for pattern in fuzzy_patterns(topic)])
            for topic in topics
        ]
        if topic_types:
            type_condition = ArticleTopic.entity_type.in_(list(topic_types))
            per_topic = [and_(cond, type_condition) for cond in per_topic]
        any_topic = or_(*per_topic)
        satisfied = sum(func.max(case((cond, 1), else_=0)) for cond in per_topic)

        query = (
            db.query(NewsArticle, satisfied, AVG_WEIGHT, MAX_WEIGHT)
            .join(ArticleTopic, ArticleTopic.article_id == NewsArticle.id)
            .filter(any_topic)
        )
        if time_window:
            query = query.filter(NewsArticle.created_at > hours_ago(time_window))

        query = query.group_by(NewsArticle.id)
        if match_type == "all":
            query = query.having(satisfied == len(per_topic))

        rows = query.order_by(*BY_PEAK_WEIGHT).limit(limit).all()

        matches = []
        for article, count, avg_weight, max_weight in rows:
            match = TopicMatch(
                article=article,
                match_count=count or 0,
                avg_weight=avg_weight or 0.0,
                max_weight=max_weight or 0.0,
            )
            match.relevance_score = relevance_score(
                ScoringStrategy.TOPIC_WEIGHTED,
                matched=match.match_count,
                total=len(per_topic),
                avg_weight=match.avg_weight,
            )
            matches.append(match)

        _attach_matched_topics(db, matches, any_topic)
        logger.info(f"Fuzzy topic match for {topics} returned {len(matches)} articles")
        return matches
    except Exception as e:
        logger.error(f"Error finding articles by topics (fuzzy) {topics}: {e}")
        return []


# ---------------------------------------------------------------------------
# Autocomplete
# ---------------------------------------------------------------------------

def get_topic_suggestions(db: Session, partial_text: str, limit: int = 10) -> List[TopicSuggestion]:
    """Trending topics containing the partial text, strongest first."""
    if not partial_text or len(partial_text) < MIN_SUGGESTION_LENGTH:
        return []

    try:
        pattern = f"%{_escape_like(partial_text.lower())}%"
        rows = (
            db.query(TrendingTopic)
            .filter(func.lower(TrendingTopic.topic_text).like(pattern, escape="\\"))
            .order_by((TrendingTopic.occurrence_count * TrendingTopic.avg_tfidf_score).desc())
            .limit(limit)
            .all()
        )
        return [
            TopicSuggestion(text=row.topic_text, type=row.entity_type, count=row.occurrence_count)
            for row in rows
        ]
    except Exception as e:
        logger.error(f"Error getting topic suggestions for '{partial_text}': {e}")
        return []
