from datetime import timedelta
from unittest.mock import patch

import pytest

from uselessfacts.facts import (
    QUERY_TEXTS,
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
from uselessfacts.models import Fact, FactRating, utcnow
from uselessfacts.schemas import FactCreate


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def insert_fact(db, id, votes=(), **kwargs) -> Fact:
    """Insert a fact and its (user_ip, rating) votes directly."""
    defaults = {
        "id": id,
        "text": f"Useless fact {id}",
        "fact_type": "static",
        "created_at": utcnow(),
    }
    defaults.update(kwargs)
    fact = Fact(**defaults)
    db.add(fact)
    for user_ip, rating in votes:
        db.add(FactRating(fact_id=id, rating=rating, user_ip=user_ip))
    db.commit()
    return fact


def ids(facts) -> list:
    return [f.id for f in facts]


# ---------------------------------------------------------------------------
# create_fact / query texts
# ---------------------------------------------------------------------------

class TestCreateFact:
    def test_generates_id_and_defaults_to_static(self, db):
        fact = create_fact(db, FactCreate(text="Octopuses have three hearts"))

        assert fact.id.startswith("fact_")
        assert fact.fact_type == "static"
        assert fact.created_at is not None
        assert fact.updated_at is not None

    def test_keeps_given_id_and_blank_fields_become_null(self, db):
        fact = create_fact(db, FactCreate(id="f1", text="Bananas are berries", source="", fact_type="realtime"))

        assert fact.id == "f1"
        assert fact.source is None
        assert fact.fact_type == "realtime"


class TestQueryTexts:
    def test_random_query_text_comes_from_the_list(self):
        assert get_random_query_text() in QUERY_TEXTS

    def test_uses_random_choice(self):
        with patch("uselessfacts.facts.random.choice", return_value="picked") as mock_choice:
            assert get_random_query_text() == "picked"
        mock_choice.assert_called_once_with(QUERY_TEXTS)


# ---------------------------------------------------------------------------
# rate_fact
# ---------------------------------------------------------------------------

class TestRateFact:
    def test_first_vote_is_inserted(self, db):
        insert_fact(db, "f1")

        rating = rate_fact(db, "f1", 1, user_ip="1.2.3.4")

        assert rating.fact_id == "f1"
        assert rating.rating == 1
        assert rating.user_ip == "1.2.3.4"
        assert db.query(FactRating).count() == 1

    def test_second_vote_from_same_ip_replaces_the_first(self, db):
        insert_fact(db, "f1")

        first = rate_fact(db, "f1", 1, user_ip="1.2.3.4")
        second = rate_fact(db, "f1", -1, user_ip="1.2.3.4")

        assert second.id == first.id
        assert second.rating == -1
        assert db.query(FactRating).count() == 1

    def test_votes_from_different_ips_are_kept(self, db):
        insert_fact(db, "f1")

        rate_fact(db, "f1", 1, user_ip="1.1.1.1")
        rate_fact(db, "f1", 1, user_ip="2.2.2.2")

        assert db.query(FactRating).count() == 2

    @pytest.mark.parametrize("value", [0, 2, -2, None, "1", True, 1.0])
    def test_invalid_rating_raises(self, db, value):
        insert_fact(db, "f1")

        with pytest.raises(ValueError):
            rate_fact(db, "f1", value, user_ip="1.2.3.4")
        assert db.query(FactRating).count() == 0

    def test_unknown_fact_returns_none(self, db):
        assert rate_fact(db, "missing", 1, user_ip="1.2.3.4") is None

    def test_ratings_are_deleted_with_their_fact(self, db):
        insert_fact(db, "f1", votes=[("1.1.1.1", 1)])

        db.delete(db.get(Fact, "f1"))
        db.commit()

        assert db.query(FactRating).count() == 0


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

class TestGetFact:
    def test_by_id_carries_totals_and_own_vote(self, db):
        insert_fact(db, "f1", votes=[("1.1.1.1", 1), ("2.2.2.2", 1), ("3.3.3.3", -1)])

        fact = get_fact_by_id(db, "f1", user_ip="3.3.3.3")

        assert fact.text == "Useless fact f1"
        assert fact.total_rating == 1
        assert fact.rating_count == 3
        assert fact.user_rating == -1

    def test_unrated_fact(self, db):
        insert_fact(db, "f1")

        fact = get_fact_by_id(db, "f1", user_ip="1.1.1.1")

        assert fact.total_rating == 0
        assert fact.rating_count == 0
        assert fact.user_rating is None

    def test_missing_fact(self, db):
        assert get_fact_by_id(db, "missing") is None

    def test_random_fact(self, db):
        insert_fact(db, "f1", votes=[("1.1.1.1", 1)])

        fact = get_random_fact(db, user_ip="1.1.1.1")

        assert fact.id == "f1"
        assert fact.user_rating == 1

    def test_random_fact_type_filter(self, db):
        insert_fact(db, "static")
        insert_fact(db, "live", fact_type="realtime")

        assert get_random_fact(db, fact_type="realtime").id == "live"
        assert get_random_fact(db, fact_type="other") is None

    def test_random_fact_on_empty_store(self, db):
        assert get_random_fact(db) is None


class TestGetAllFacts:
    def test_newest_first_with_pages(self, db):
        now = utcnow()
        for i in range(5):
            insert_fact(db, f"f{i}", created_at=now - timedelta(minutes=i))

        assert ids(get_all_facts(db, page=1, limit=2)) == ["f0", "f1"]
        assert ids(get_all_facts(db, page=2, limit=2)) == ["f2", "f3"]
        assert ids(get_all_facts(db, page=3, limit=2)) == ["f4"]
        assert get_all_facts(db, page=4, limit=2) == []


class TestRankedFacts:
    @pytest.fixture
    def rated(self, db):
        insert_fact(db, "loved", votes=[("a", 1), ("b", 1), ("c", 1)])
        insert_fact(db, "liked", votes=[("a", 1)])
        insert_fact(db, "split", votes=[("a", 1), ("b", -1)])
        insert_fact(db, "hated", votes=[("a", -1), ("b", -1)])
        insert_fact(db, "unrated")
        return db

    def test_top_rated(self, rated):
        assert ids(get_top_rated_facts(rated)) == ["loved", "liked", "split", "hated"]

    def test_bottom_rated(self, rated):
        assert ids(get_bottom_rated_facts(rated)) == ["hated", "split", "liked", "loved"]

    def test_ties_go_to_the_more_voted_fact(self, db):
        insert_fact(db, "quiet")
        insert_fact(db, "busy", votes=[("a", 1), ("b", -1)])
        insert_fact(db, "quiet-voted", votes=[("a", 1), ("b", -1), ("c", 1), ("d", -1)])

        assert ids(get_top_rated_facts(db)) == ["quiet-voted", "busy"]

    def test_limit(self, rated):
        assert len(get_top_rated_facts(rated, limit=2)) == 2


# ---------------------------------------------------------------------------
# get_fact_statistics
# ---------------------------------------------------------------------------

class TestFactStatistics:
    def test_empty_store(self, db):
        stats = get_fact_statistics(db)

        assert stats.total_facts == 0
        assert stats.total_ratings == 0
        assert stats.average_rating == 0.0
        assert stats.most_rated_fact is None
        assert stats.recent_activity.ratings_last_24h == 0

    def test_counts(self, db):
        insert_fact(db, "f1", votes=[("a", 1), ("b", 1), ("c", -1)])
        insert_fact(db, "f2", votes=[("a", 1)])
        insert_fact(db, "f3")
        old = db.query(FactRating).filter_by(fact_id="f2").one()
        old.created_at = utcnow() - timedelta(days=3)
        db.commit()

        stats = get_fact_statistics(db)

        assert stats.total_facts == 3
        assert stats.total_ratings == 4
        assert stats.positive_ratings == 3
        assert stats.negative_ratings == 1
        assert stats.average_rating == pytest.approx(0.5)
        assert stats.most_rated_fact.id == "f1"
        assert stats.most_rated_fact.rating_count == 3
        assert stats.recent_activity.ratings_last_24h == 3
        assert stats.recent_activity.ratings_last_7d == 4


# ---------------------------------------------------------------------------
# import_facts
# ---------------------------------------------------------------------------

class TestImportFacts:
    def test_imports_valid_and_reports_invalid(self, db):
        results = import_facts(db, [
            {"id": "f1", "text": "A group of flamingos is a flamboyance", "source_url": "https://example.com/f"},
            {"id": "f2", "text": "too short"},
            {"id": "f3", "text": "Wombat droppings are cube-shaped", "source_url": "not a url"},
        ])

        assert results["imported"] == 1
        assert results["errors"] == 2
        assert [e.split(":")[0] for e in results["errors_list"]] == ["Fact f2", "Fact f3"]
        assert get_fact_by_id(db, "f1").fact_type == "static"

    def test_skips_known_ids(self, db):
        insert_fact(db, "f1")

        results = import_facts(db, [{"id": "f1", "text": "Honey never spoils in a sealed jar"}])

        assert results == {"imported": 0, "skipped": 1, "errors": 0, "errors_list": []}

    def test_known_id_is_an_error_without_skip(self, db):
        insert_fact(db, "f1")

        results = import_facts(db, [{"id": "f1", "text": "Honey never spoils in a sealed jar"}], skip_duplicates=False)

        assert results["errors"] == 1
        assert db.query(Fact).count() == 1
