"""
Topic normalization.

Two keys are derived from a topic string:

- the *topic key* keeps single spaces between words ("space exploration") and
  identifies a row in the trending aggregate;
- the *match key* drops whitespace entirely ("spaceexploration") and is what
  article topics are matched on.

Stored entity texts and caller-supplied topics must go through the same function,
otherwise matching silently fails.
"""
import re

_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize_topic_key(text: str) -> str:
    """Lowercase, strip punctuation, collapse whitespace to single spaces."""
    cleaned = _PUNCTUATION.sub("", (text or "").lower()).strip()
    return _WHITESPACE.sub(" ", cleaned)


def normalize_match_key(text: str) -> str:
    """Lowercase, strip punctuation and remove all whitespace."""
    cleaned = _PUNCTUATION.sub("", (text or "").lower())
    return _WHITESPACE.sub("", cleaned)
