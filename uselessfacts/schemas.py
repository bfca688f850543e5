from pydantic import BaseModel, ConfigDict, Field, HttpUrl, TypeAdapter, field_validator
from datetime import datetime
from typing import List, Optional


class ArticleIngest(BaseModel):
    """Shape expected from the /api/ingest endpoint and produced by the RSS fetcher."""
    title: str
    content: str
    url: str
    source: str
    published_at: Optional[datetime] = None


class ExtractedEntity(BaseModel):
    """One named entity pulled out of an article by the extractor."""
    text: str
    type: str
    confidence: float = Field(ge=0.0, le=1.0)
    tfidf_score: float = 0.0


class ArticleWithRelevance(BaseModel):
    """An article annotated for a single query. Never persisted."""
    id: str
    title: str
    content: str
    url: str
    source: str
    published_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    snippet: str
    relevance_score: float = Field(alias="relevanceScore")
    matched_topics: List[str] = Field(default_factory=list, alias="matchedTopics")
    # Cosine distance from the query embedding; only set by text search
    distance: Optional[float] = None

    # Built by field name in code, sent camelCase on the wire
    model_config = ConfigDict(populate_by_name=True)


class SearchMetadata(BaseModel):
    total_results: int = Field(alias="totalResults")
    time_filter: str = Field(alias="timeFilter")
    search_type: str = Field(alias="searchType")
    match_tier: Optional[str] = Field(default=None, alias="matchTier")
    query: Optional[str] = None
    topics: Optional[List[str]] = None
    topic_types: Optional[List[str]] = Field(default=None, alias="topicTypes")
    sort_by: Optional[str] = Field(default=None, alias="sortBy")
    generated_at: datetime = Field(alias="generatedAt")

    model_config = ConfigDict(populate_by_name=True)


class ArticleSearchResponse(BaseModel):
    articles: List[ArticleWithRelevance]
    metadata: SearchMetadata


class TopicResponse(BaseModel):
    """Wire shape of a single trending topic."""
    id: str
    text: str
    type: Optional[str] = None
    occurrence_count: int = Field(alias="occurrenceCount")
    avg_tfidf_score: float = Field(alias="avgTfidfScore")
    last_seen_at: Optional[datetime] = Field(default=None, alias="lastSeenAt")
    combined_score: float = Field(alias="combinedScore")

    # Allows building the response straight from a TopicView dataclass
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class TopicSuggestion(BaseModel):
    text: str
    type: Optional[str] = None
    count: int


class TopicStats(BaseModel):
    total_articles: int = Field(alias="totalArticles")
    articles_with_topics: int = Field(alias="articlesWithTopics")
    total_topics: int = Field(alias="totalTopics")
    trending_topics: int = Field(alias="trendingTopics")
    coverage_percentage: float = Field(alias="coveragePercentage")

    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------------
# Facts (snake_case on the wire)
# ---------------------------------------------------------------------------

class FactCreate(BaseModel):
    """A fact to store. The id is generated when omitted."""
    id: Optional[str] = None
    text: str = Field(min_length=1)
    source: Optional[str] = None
    source_url: Optional[str] = None
    fact_type: str = "static"
    why_interesting: Optional[str] = None
    source_snippet: Optional[str] = None
    tone: Optional[str] = None
    article_id: Optional[str] = None


class FactImport(BaseModel):
    """One entry of an admin import batch."""
    id: str = Field(min_length=1)
    text: str = Field(min_length=10)
    source: Optional[str] = None
    source_url: Optional[str] = None

    @field_validator("source_url")
    @classmethod
    def _check_url(cls, value):
        if value:
            TypeAdapter(HttpUrl).validate_python(value)
        return value or None


class FactWithRating(BaseModel):
    id: str
    text: str
    source: Optional[str] = None
    source_url: Optional[str] = None
    fact_type: str = "static"
    why_interesting: Optional[str] = None
    source_snippet: Optional[str] = None
    tone: Optional[str] = None
    article_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    total_rating: int = 0
    rating_count: int = 0
    # This caller's own vote, if any
    user_rating: Optional[int] = None


class FactRatingResponse(BaseModel):
    id: int
    fact_id: str
    rating: int
    user_ip: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class MostRatedFact(BaseModel):
    id: str
    text: str
    rating_count: int


class RecentRatingActivity(BaseModel):
    ratings_last_24h: int
    ratings_last_7d: int


class FactStatistics(BaseModel):
    total_facts: int
    total_ratings: int
    average_rating: float
    positive_ratings: int
    negative_ratings: int
    most_rated_fact: Optional[MostRatedFact] = None
    recent_activity: RecentRatingActivity
