import pytest

from uselessfacts.normalize import normalize_match_key, normalize_topic_key

SAMPLES = [
    "Artificial Intelligence",
    "  space-exploration ",
    "SpaceX's Starship!!",
    "U.S.  Federal   Reserve",
    "Café Society",
    "",
    "???",
]


# ---------------------------------------------------------------------------
# normalize_topic_key (trending aggregate keys)
# ---------------------------------------------------------------------------

class TestNormalizeTopicKey:
    def test_lowercases_and_strips_punctuation(self):
        assert normalize_topic_key("SpaceX's Starship!!") == "spacexs starship"

    def test_collapses_whitespace_to_single_spaces(self):
        assert normalize_topic_key("U.S.  Federal   Reserve") == "us federal reserve"

    def test_trims_outer_whitespace(self):
        assert normalize_topic_key("  climate change \n") == "climate change"

    def test_hyphen_is_removed_not_spaced(self):
        assert normalize_topic_key("space-exploration") == "spaceexploration"

    def test_empty_string(self):
        assert normalize_topic_key("") == ""

    def test_none_is_treated_as_empty(self):
        assert normalize_topic_key(None) == ""

    @pytest.mark.parametrize("text", SAMPLES)
    def test_idempotent(self, text):
        once = normalize_topic_key(text)
        assert normalize_topic_key(once) == once


# ---------------------------------------------------------------------------
# normalize_match_key (topic-match keys)
# ---------------------------------------------------------------------------

class TestNormalizeMatchKey:
    def test_removes_all_whitespace(self):
        assert normalize_match_key("Artificial Intelligence") == "artificialintelligence"

    def test_keeps_unicode_word_characters(self):
        assert normalize_match_key("Café Society") == "cafésociety"

    def test_punctuation_only_becomes_empty(self):
        assert normalize_match_key("???") == ""

    def test_empty_string(self):
        assert normalize_match_key("") == ""

    @pytest.mark.parametrize("text", SAMPLES)
    def test_idempotent(self, text):
        once = normalize_match_key(text)
        assert normalize_match_key(once) == once

    @pytest.mark.parametrize("query, stored", [
        ("space-exploration", "Space Exploration"),
        ("AI", "ai"),
        ("climate change", "Climate-Change"),
        ("New York", "new york."),
        ("machine learning", "Machine   Learning"),
    ])
    def test_same_topic_gives_same_key(self, query, stored):
        assert normalize_match_key(query) == normalize_match_key(stored)

    def test_differs_from_topic_key_only_in_spacing(self):
        text = "Quantum  Computing!"
        assert normalize_match_key(text) == normalize_topic_key(text).replace(" ", "")
