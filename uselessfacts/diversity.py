import logging
import math
import random
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from uselessfacts.trending import TopicView, get_trending_topics

logger = logging.getLogger(__name__)

# Share of the output any one entity type may take: ceil(limit / 5)
TYPE_CAP_DIVISOR = 5

# Multi-word topics sharing more than this fraction of the shorter one's words are near-duplicates
WORD_OVERLAP_THRESHOLD = 0.5

# Candidates pulled from the store per requested topic before filtering
CANDIDATE_POOL_FACTOR = 5


def type_cap(limit: int) -> int:
    return math.ceil(limit / TYPE_CAP_DIVISOR)


def are_similar(a: str, b: str) -> bool:
    """Equal, one contains the other, or (both multi-word) heavy word overlap."""
    a, b = a.lower().strip(), b.lower().strip()
    if a == b or a in b or b in a:
        return True

    words_a, words_b = a.split(), b.split()
    if len(words_a) < 2 or len(words_b) < 2:
        return False

    shorter = min(len(words_a), len(words_b))
    overlap = len(set(words_a) & set(words_b))
    return overlap / shorter > WORD_OVERLAP_THRESHOLD


def select_diverse_topics(topics: Sequence[TopicView], limit: int) -> List[TopicView]:
    """
    Greedy pass over topics in the order given. A topic is kept when its type
    has fewer than ceil(limit / 5) kept topics and it is not similar to any kept
    topic. Stops after `limit` topics. No backtracking, so the result depends on
    input order.
    """
    cap = type_cap(limit)
    selected: List[TopicView] = []
    per_type: dict = {}

    for topic in topics:
        if len(selected) >= limit:
            break
        if per_type.get(topic.type, 0) >= cap:
            continue
        if any(are_similar(topic.text, kept.text) for kept in selected):
            continue
        selected.append(topic)
        per_type[topic.type] = per_type.get(topic.type, 0) + 1

    return selected


def get_diverse_topics(
    db: Session,
    time_window: Optional[int] = 48,
    limit: int = 10,
    entity_type: Optional[str] = None,
    topic_types: Optional[Sequence[str]] = None,
    randomize: bool = False,
) -> List[TopicView]:
    """Trending topics spread across entity types, optionally shuffled before selection."""
    pool = get_trending_topics(
        db,
        time_window=time_window,
        limit=limit * CANDIDATE_POOL_FACTOR,
        entity_type=entity_type,
        topic_types=topic_types,
    )
    if randomize:
        random.shuffle(pool)

    selected = select_diverse_topics(pool, limit)
    logger.info(f"Selected {len(selected)} diverse topics from a pool of {len(pool)}")
    return selected
