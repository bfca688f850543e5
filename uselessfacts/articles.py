import json
import logging
import random
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from uselessfacts.embeddings import embedding_client
from uselessfacts.models import ArticleTopic, NewsArticle, hours_ago
from uselessfacts.schemas import ArticleWithRelevance
from uselessfacts.scoring import ScoringStrategy, relevance_score
from uselessfacts.topic_search import (
    BY_COVERAGE,
    BY_COVERAGE_THEN_PEAK,
    TopicMatch,
    find_articles_by_topics_fuzzy,
    match_keys,
    query_topic_matches,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Query policy
# ---------------------------------------------------------------------------

# timeFilter query value -> window in hours (None = all time)
TIME_FILTER_HOURS = {
    "24h": 24,
    "7d": 168,
    "30d": 720,
    "all": None,
}

# Fewer all-topics hits than this and the any-topic tier is used instead
ANY_MATCH_FALLBACK_THRESHOLD = 3

MIN_TEXT_QUERY_LENGTH = 3

TOPIC_SNIPPET_LENGTH = 600
TEXT_SNIPPET_LENGTH = 350

SIMILAR_ARTICLE_DAYS = 7
# Real-time lookups pick at random among this many nearest articles
SIMILAR_ARTICLE_POOL = 10


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def make_snippet(content: str, length: int) -> str:
    """Prefix of the article content, with an ellipsis when it was cut."""
    content = content or ""
    return content[:length] + ("..." if len(content) > length else "")


def to_result(
    article: NewsArticle,
    snippet_length: int,
    relevance: float,
    matched_topics: Optional[List[str]] = None,
    distance: Optional[float] = None,
) -> ArticleWithRelevance:
    """Build the response view of an article. The embedding is never sent back."""
    return ArticleWithRelevance(
        id=article.id,
        title=article.title,
        content=article.content,
        url=article.url,
        source=article.source,
        published_at=article.published_at,
        created_at=article.created_at,
        snippet=make_snippet(article.content, snippet_length),
        relevance_score=relevance,
        matched_topics=matched_topics or [],
        distance=distance,
    )


def _from_topic_matches(matches: List[TopicMatch], snippet_length: int) -> List[ArticleWithRelevance]:
    return [
        to_result(m.article, snippet_length, m.relevance_score, m.matched_topics)
        for m in matches
    ]


# ---------------------------------------------------------------------------
# Topic search
# ---------------------------------------------------------------------------

def get_articles_by_topics(
    db: Session,
    topics: Sequence[str],
    time_window: Optional[int] = None,
    topic_types: Optional[Sequence[str]] = None,
    limit: int = 20,
) -> List[ArticleWithRelevance]:
    """
    Articles for a set of topics: tries the all-topics tier first and falls back
    to the any-topic tier when that yields fewer than ANY_MATCH_FALLBACK_THRESHOLD
    results. Scored with the topic-match formula. Storage errors yield [].
    """
    if not topics:
        return []

    try:
        total = len(match_keys(topics))
        matches = query_topic_matches(
            db, topics,
            require_all=True,
            order_by=BY_COVERAGE,
            limit=limit,
            time_window=time_window,
            topic_types=topic_types,
        )

        if len(matches) < ANY_MATCH_FALLBACK_THRESHOLD:
            logger.info(
                f"Only {len(matches)} articles matched all of {list(topics)}, falling back to any-topic match"
            )
            matches = query_topic_matches(
                db, topics,
                require_all=False,
                order_by=BY_COVERAGE_THEN_PEAK,
                limit=limit,
                time_window=time_window,
                topic_types=topic_types,
            )

        for match in matches:
            match.relevance_score = relevance_score(
                ScoringStrategy.TOPIC_MATCH,
                matched=match.match_count,
                total=total,
                avg_weight=match.avg_weight,
                max_weight=match.max_weight,
                time_window=time_window,
            )
        return _from_topic_matches(matches, TOPIC_SNIPPET_LENGTH)
    except Exception as e:
        logger.error(f"Error finding articles by topics {list(topics)}: {e}")
        return []


def search_articles_by_topics(
    db: Session,
    topics: Sequence[str],
    time_window: Optional[int] = None,
    topic_types: Optional[Sequence[str]] = None,
    limit: int = 20,
) -> Tuple[List[ArticleWithRelevance], Optional[str]]:
    """
    Full tier chain used by the HTTP layer: exact (all, then any) -> fuzzy -> semantic.
    Each tier runs only when the previous one returned nothing. topic_types
    restricts every tier to articles with a topic of one of those types.

    The semantic tier embeds the topics joined with spaces; it is skipped when
    that text is shorter than MIN_TEXT_QUERY_LENGTH (e.g. a lone "AI").

    Returns the articles and the tier that produced them ("exact", "fuzzy",
    "semantic"), or None when every tier came back empty.
    """
    articles = get_articles_by_topics(db, topics, time_window=time_window, topic_types=topic_types, limit=limit)
    if articles:
        return articles, "exact"

    fuzzy = find_articles_by_topics_fuzzy(
        db, topics, match_type="any", limit=limit, time_window=time_window, topic_types=topic_types
    )
    if fuzzy:
        return _from_topic_matches(fuzzy, TOPIC_SNIPPET_LENGTH), "fuzzy"

    query = " ".join(topics)
    if len(query) < MIN_TEXT_QUERY_LENGTH:
        logger.info(f"Skipping semantic tier for {list(topics)}: query '{query}' is too short to embed")
        return [], None

    semantic = search_articles_by_text(db, query, time_window=time_window, topic_types=topic_types, limit=limit)
    if semantic:
        return semantic, "semantic"

    return [], None


# ---------------------------------------------------------------------------
# Text / embedding search
# ---------------------------------------------------------------------------

def search_articles_by_text(
    db: Session,
    query: str,
    time_window: Optional[int] = None,
    topic_types: Optional[Sequence[str]] = None,
    limit: int = 20,
) -> List[ArticleWithRelevance]:
    """
    Rank articles by cosine distance between their embedding and the query's.
    With topic_types, only articles carrying a topic of one of those types are ranked.

    The relevance score is the rank-based placeholder 1 - rank/n * 0.5; the real
    distance is returned alongside it. Embedding or storage errors yield [].
    """
    if not query or len(query) < MIN_TEXT_QUERY_LENGTH:
        return []

    try:
        query_embedding = json.dumps(embedding_client.embed(query))

        distance = func.vector_distance_cos(NewsArticle.embedding, query_embedding)
        q = db.query(NewsArticle, distance).filter(NewsArticle.embedding.isnot(None), distance.isnot(None))
        if time_window:
            q = q.filter(NewsArticle.created_at > hours_ago(time_window))
        if topic_types:
            typed = select(ArticleTopic.article_id).where(ArticleTopic.entity_type.in_(list(topic_types)))
            q = q.filter(NewsArticle.id.in_(typed))
        rows = q.order_by(distance.asc()).limit(limit).all()

        topic_texts = {article.id: [t.entity_text for t in article.topics] for article, _ in rows}

        return [
            to_result(
                article,
                TEXT_SNIPPET_LENGTH,
                relevance_score(ScoringStrategy.TEXT_RANK, rank=rank, total_results=len(rows)),
                matched_topics=topic_texts[article.id],
                distance=dist,
            )
            for rank, (article, dist) in enumerate(rows)
        ]
    except Exception as e:
        logger.error(f"Error searching articles by text '{query}': {e}")
        return []


def find_similar_articles(
    db: Session,
    query_embedding: List[float],
    limit: int = 5,
    days: int = SIMILAR_ARTICLE_DAYS,
) -> List[NewsArticle]:
    """Nearest recently-published articles to an embedding, most similar first."""
    try:
        distance = func.vector_distance_cos(NewsArticle.embedding, json.dumps(query_embedding))
        return (
            db.query(NewsArticle)
            .filter(NewsArticle.embedding.isnot(None), distance.isnot(None))
            .filter(NewsArticle.published_at >= hours_ago(days * 24))
            .order_by(distance.asc(), NewsArticle.published_at.desc())
            .limit(limit)
            .all()
        )
    except Exception as e:
        logger.error(f"Error finding similar articles: {e}")
        return []


def find_similar_article(db: Session, query_embedding: List[float]) -> Optional[NewsArticle]:
    """One article picked at random from the SIMILAR_ARTICLE_POOL nearest recent ones, or None."""
    candidates = find_similar_articles(db, query_embedding, limit=SIMILAR_ARTICLE_POOL)
    if not candidates:
        return None
    return random.choice(candidates)


# ---------------------------------------------------------------------------
# No-topic mode
# ---------------------------------------------------------------------------

def get_recent_articles(
    db: Session,
    time_window: Optional[int] = None,
    limit: int = 20,
) -> List[ArticleWithRelevance]:
    """Newest articles first, unscored. Used when the caller selected no topics."""
    try:
        q = db.query(NewsArticle)
        if time_window:
            q = q.filter(NewsArticle.created_at > hours_ago(time_window))
        articles = q.order_by(NewsArticle.published_at.desc(), NewsArticle.created_at.desc()).limit(limit).all()
        return [to_result(a, TOPIC_SNIPPET_LENGTH, 0.0) for a in articles]
    except Exception as e:
        logger.error(f"Error getting recent articles: {e}")
        return []


def count_articles(db: Session) -> int:
    try:
        return db.query(func.count(NewsArticle.id)).scalar() or 0
    except Exception as e:
        logger.error(f"Error counting news articles: {e}")
        return 0
