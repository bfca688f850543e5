from sqlalchemy import CheckConstraint, Column, String, Float, Integer, DateTime, Text, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship, validates
from datetime import datetime, timedelta, timezone
from uselessfacts.database import Base
from uselessfacts.normalize import normalize_match_key


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def hours_ago(hours: float) -> datetime:
    """Cutoff timestamp for a time-window filter."""
    return utcnow() - timedelta(hours=hours)


class NewsArticle(Base):
    __tablename__ = "news_articles"

    # ID is generated at ingestion time; URL is the dedup key
    id = Column(String, primary_key=True, index=True)
    title = Column(String, nullable=False)
    content = Column(Text, nullable=False)
    url = Column(String, unique=True, nullable=False, index=True)
    source = Column(String, nullable=False, index=True)   # e.g. "BBC News", "Hacker News"
    published_at = Column(DateTime, nullable=True)         # UTC timestamp from the feed
    created_at = Column(DateTime, default=utcnow, index=True)  # when we ingested it

    # JSON-encoded float array; compared with vector_distance_cos() in SQL
    embedding = Column(Text, nullable=True)

    topics = relationship(
        "ArticleTopic",
        back_populates="article",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class ArticleTopic(Base):
    __tablename__ = "article_topics"

    id = Column(Integer, primary_key=True, autoincrement=True)
    article_id = Column(String, ForeignKey("news_articles.id", ondelete="CASCADE"), nullable=False, index=True)
    entity_text = Column(String, nullable=False)        # raw surface form, e.g. "Space-Exploration"
    match_key = Column(String, nullable=False, index=True)  # always normalize_match_key(entity_text)
    entity_type = Column(String, nullable=True, index=True)  # PERSON, ORG, LOCATION, TECH, ...
    tfidf_score = Column(Float, nullable=True)          # per-article importance weight (0-1)
    ner_confidence = Column(Float, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    article = relationship("NewsArticle", back_populates="topics")

    @validates("entity_text")
    def _derive_match_key(self, key, value):
        self.match_key = normalize_match_key(value)
        return value


class TrendingTopic(Base):
    __tablename__ = "trending_topics"

    id = Column(Integer, primary_key=True, autoincrement=True)
    topic_text = Column(String, unique=True, nullable=False)  # normalize_topic_key(entity text)
    entity_type = Column(String, nullable=True)
    occurrence_count = Column(Integer, nullable=False, default=1)
    avg_tfidf_score = Column(Float, nullable=False, default=0.0)  # running mean of per-event weights
    last_seen_at = Column(DateTime, default=utcnow, index=True)
    created_at = Column(DateTime, default=utcnow)


class Fact(Base):
    __tablename__ = "facts"

    id = Column(String, primary_key=True, index=True)
    text = Column(Text, nullable=False)
    source = Column(String, nullable=True)
    source_url = Column(String, nullable=True)
    fact_type = Column(String, nullable=False, default="static", index=True)  # "static" or "realtime"
    why_interesting = Column(Text, nullable=True)
    source_snippet = Column(Text, nullable=True)
    tone = Column(String, nullable=True)
    # Article a real-time fact was derived from; not a foreign key, articles get purged
    article_id = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    ratings = relationship(
        "FactRating",
        back_populates="fact",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class FactRating(Base):
    __tablename__ = "fact_ratings"
    __table_args__ = (
        UniqueConstraint("fact_id", "user_ip", name="uq_fact_rating_user"),
        CheckConstraint("rating IN (-1, 1)", name="ck_fact_rating_value"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    fact_id = Column(String, ForeignKey("facts.id", ondelete="CASCADE"), nullable=False, index=True)
    rating = Column(Integer, nullable=False)   # -1 "too useless", 1 "useful uselessness"
    user_ip = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow, index=True)

    fact = relationship("Fact", back_populates="ratings")
