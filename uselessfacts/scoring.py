"""
Relevance scoring.

Three named strategies, one per ranking path:

    TOPIC_MATCH     (matched / total) * (avg_weight or max_weight) * recency
    TOPIC_WEIGHTED  min((matched / total) * 0.7 + avg_weight * 0.3, 1.0)
    TEXT_RANK       1.0 - (rank / total_results) * 0.5

TOPIC_MATCH's recency factor is flat: 1.0 for any finite time window, 0.8 for
"all time". It does not depend on the article's age.
"""
from enum import Enum
from typing import Optional

WINDOWED_RECENCY_FACTOR = 1.0
ALL_TIME_RECENCY_FACTOR = 0.8

MATCH_RATIO_WEIGHT = 0.7
TOPIC_WEIGHT_WEIGHT = 0.3

RANK_DECAY = 0.5


class ScoringStrategy(str, Enum):
    TOPIC_MATCH = "topic-match"
    TOPIC_WEIGHTED = "topic-weighted"
    TEXT_RANK = "text-rank"


def recency_factor(time_window: Optional[int]) -> float:
    return WINDOWED_RECENCY_FACTOR if time_window else ALL_TIME_RECENCY_FACTOR


def _match_ratio(matched: int, total: int) -> float:
    return matched / total if total else 0.0


def relevance_score(
    strategy: ScoringStrategy,
    *,
    matched: int = 0,
    total: int = 0,
    avg_weight: Optional[float] = None,
    max_weight: Optional[float] = None,
    time_window: Optional[int] = None,
    rank: int = 0,
    total_results: int = 0,
) -> float:
    """
    Compute a relevance score with the given strategy.

    Args:
        matched: distinct requested topics found on the article
        total: number of requested topics
        avg_weight / max_weight: mean and max tfidf weight over the matched topics
        time_window: hours requested by the caller, None for all time
        rank / total_results: position of the result in a text-search page
    """
    if strategy is ScoringStrategy.TOPIC_MATCH:
        weight = avg_weight or max_weight or 0.0
        return _match_ratio(matched, total) * weight * recency_factor(time_window)

    if strategy is ScoringStrategy.TOPIC_WEIGHTED:
        score = _match_ratio(matched, total) * MATCH_RATIO_WEIGHT + (avg_weight or 0.0) * TOPIC_WEIGHT_WEIGHT
        return max(0.0, min(score, 1.0))

    if strategy is ScoringStrategy.TEXT_RANK:
        if not total_results:
            return 1.0
        return 1.0 - (rank / total_results) * RANK_DECAY

    raise ValueError(f"Unknown scoring strategy: {strategy!r}")
