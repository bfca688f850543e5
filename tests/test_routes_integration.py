"""
Integration tests for the API routes: real NER and embedding models, in-memory SQLite database.
Tests the full ingest -> extract -> search pipeline end-to-end.

The first run will download the models. Subsequent runs use the cache.

Run with: pytest tests/test_routes_integration.py -v
"""
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from uselessfacts import models  # noqa: F401  (registers the tables on Base)
from uselessfacts.database import Base, get_db
from uselessfacts.routes.articles import router as articles_router
from uselessfacts.routes.topics import router as topics_router

pytestmark = pytest.mark.integration

# Minimal test app: no lifespan, no background fetcher
_app = FastAPI()
_app.include_router(articles_router)
_app.include_router(topics_router)

BATCH = [
    {
        "title": "NASA delays Artemis launch after fuel leak",
        "content": "NASA engineers found a hydrogen leak. NASA said the Artemis rocket will fly next month.",
        "url": "https://example.com/nasa-artemis",
        "source": "test",
    },
    {
        "title": "NASA and SpaceX test new docking system",
        "content": "SpaceX and NASA completed the docking test above Florida.",
        "url": "https://example.com/nasa-spacex",
        "source": "test",
    },
    {
        "title": "Bakers in Paris revive a medieval sourdough recipe",
        "content": "A bakery in Paris recreated bread from a 14th century manuscript.",
        "url": "https://example.com/paris-bread",
        "source": "test",
    },
]


# ---------------------------------------------------------------------------
# Module-scoped fixture: ingests all test data once, models loaded once
# ---------------------------------------------------------------------------

@pytest.fixture(scope="module")
def populated_client():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = Session()

    _app.dependency_overrides[get_db] = lambda: db
    client = TestClient(_app)

    response = client.post("/api/ingest", json=BATCH)
    assert response.status_code == 200, "Ingest during setup failed"
    assert response.json()["added"] == len(BATCH)

    yield client

    db.close()
    _app.dependency_overrides.clear()
    engine.dispose()


class TestIngestIntegration:
    def test_reingest_skips_known_urls(self, populated_client):
        response = populated_client.post("/api/ingest", json=BATCH)
        assert response.json() == {"status": "ok", "received": len(BATCH), "added": 0}

    def test_topics_were_extracted(self, populated_client):
        stats = populated_client.get("/api/topics/stats").json()
        assert stats["totalArticles"] == len(BATCH)
        assert stats["articlesWithTopics"] > 0


class TestSearchIntegration:
    def test_topic_search_finds_nasa_articles(self, populated_client):
        body = populated_client.get("/api/articles", params={"topics": "NASA"}).json()
        urls = {a["url"] for a in body["articles"]}
        assert {"https://example.com/nasa-artemis", "https://example.com/nasa-spacex"} <= urls
        assert body["metadata"]["matchTier"] == "exact"

    def test_text_search_ranks_related_article_first(self, populated_client):
        body = populated_client.get("/api/articles/search", params={"q": "bread baking"}).json()
        assert body["articles"][0]["url"] == "https://example.com/paris-bread"

    def test_trending_includes_repeated_entity(self, populated_client):
        body = populated_client.get("/api/topics").json()
        texts = {t["text"] for t in body["topics"]}
        assert "nasa" in texts
