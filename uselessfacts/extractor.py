import json
import logging
import os
import uuid
from typing import List, Optional

from sqlalchemy.orm import Session

from uselessfacts.embeddings import EmbeddingError, embedding_client
from uselessfacts.models import NewsArticle, utcnow
from uselessfacts.normalize import normalize_topic_key
from uselessfacts.schemas import ArticleIngest, ExtractedEntity
from uselessfacts.trending import store_article_topics, update_trending_topics

logger = logging.getLogger(__name__)

NER_MODEL = os.getenv("NER_MODEL", "dslim/bert-base-NER")

# ---------------------------------------------------------------------------
# Entity labels: model label -> stored entity_type
# ---------------------------------------------------------------------------

LABEL_TYPES: dict[str, str] = {
    "PER":  "PERSON",
    "ORG":  "ORG",
    "LOC":  "LOCATION",
    "MISC": "OTHER",
}

MIN_CONFIDENCE = 0.3  # entities at or below this are dropped
MAX_CONTENT_CHARS = 1500  # keeps title + content inside the model's token window


class TopicExtractor:
    """
    Extracts named entities from articles with a token-classification model.
    The model is loaded lazily on the first extraction call.
    """

    def __init__(self):
        self._pipeline = None  # loaded on first use to keep startup fast

    def _get_pipeline(self):
        """Load and cache the NER pipeline on first call."""
        if self._pipeline is None:
            from transformers import pipeline  # imported here to defer heavy load
            logger.info(f"Loading NER model '{NER_MODEL}' (first use, this may take a moment)...")
            self._pipeline = pipeline(
                "ner",
                model=NER_MODEL,
                aggregation_strategy="simple",
            )
            logger.info("Model loaded successfully")
        return self._pipeline

    def _compute_weights(self, raw_entities: List[dict], text: str) -> List[ExtractedEntity]:
        """
        Turn raw pipeline output into weighted entities.

        Entities are deduped by topic key (highest confidence wins). The weight is
        confidence scaled by how often the entity occurs in the text relative to
        the most frequent entity, so it lands in [0, 1].
        """
        best: dict[str, dict] = {}
        for raw in raw_entities:
            word = (raw.get("word") or "").replace("##", "").strip()
            confidence = float(raw.get("score") or 0.0)
            key = normalize_topic_key(word)
            if len(key) < 2 or confidence <= MIN_CONFIDENCE:
                continue
            if key not in best or confidence > best[key]["confidence"]:
                best[key] = {
                    "text": word,
                    "type": LABEL_TYPES.get(raw.get("entity_group"), "OTHER"),
                    "confidence": confidence,
                }

        lowered = text.lower()
        counts = {key: max(1, lowered.count(item["text"].lower())) for key, item in best.items()}
        max_count = max(counts.values(), default=1)

        return [
            ExtractedEntity(
                text=item["text"],
                type=item["type"],
                confidence=min(item["confidence"], 1.0),
                tfidf_score=round(min(item["confidence"], 1.0) * counts[key] / max_count, 4),
            )
            for key, item in best.items()
        ]

    def extract_entities(self, title: str, content: str) -> List[ExtractedEntity]:
        """Run NER over title + content. Raises if the model fails."""
        text = f"{title}\n\n{(content or '')[:MAX_CONTENT_CHARS]}"
        raw = self._get_pipeline()(text)
        entities = self._compute_weights(raw, text)
        logger.info(f"Extracted {len(entities)} entities from '{title[:60]}'")
        return entities

    def extract_and_save(self, article: ArticleIngest, db: Session) -> Optional[NewsArticle]:
        """
        Store a new article, then extract and store its topics.

        Articles whose URL is already stored are skipped (returns None). When the
        embedding or the extraction fails, the article is still saved so no data
        is lost; it simply has no embedding or no topics.

        Args:
            article: the incoming article
            db: active SQLAlchemy session

        Returns:
            the saved NewsArticle, or None for a duplicate URL
        """
        if db.query(NewsArticle.id).filter(NewsArticle.url == article.url).first():
            logger.debug(f"[{article.source}] Skipping already stored URL {article.url}")
            return None

        embedding = None
        try:
            embedding = json.dumps(embedding_client.embed_article(article.title, article.content))
        except EmbeddingError as e:
            logger.error(f"[{article.source}] Embedding failed for '{article.title[:60]}': {e}")

        db_article = NewsArticle(
            id=f"news_{uuid.uuid4().hex}",
            title=article.title,
            content=article.content,
            url=article.url,
            source=article.source,
            published_at=article.published_at or utcnow(),
            embedding=embedding,
        )
        db.add(db_article)
        db.commit()

        try:
            entities = self.extract_entities(article.title, article.content)
            if entities:
                store_article_topics(db, db_article.id, entities)
                update_trending_topics(db, entities)
            logger.info(
                f"[{article.source}] Stored '{article.title[:60]}' "
                f"(topics={len(entities)}, embedding={'yes' if embedding else 'no'})"
            )
        except Exception as e:
            db.rollback()
            logger.error(f"Topic extraction failed for article '{db_article.id}': {e}")

        return db_article


# Shared singleton, imported by the fetcher and the /api/ingest route
extractor = TopicExtractor()
