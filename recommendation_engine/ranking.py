"""
Ranking pipeline — dedup/filter, diversity re-rank, top-K selection.

    candidates → merge_and_filter → apply_diversity → select_top
"""

from __future__ import annotations

from dataclasses import replace
from typing import Iterable, Optional, Sequence

from recommendation_engine.domain import Candidate, Interaction

TYPE_PENALTY = 0.3
TOPIC_PENALTY = 0.2


def _by_score(candidates: Iterable[Candidate]) -> list[Candidate]:
    # sorted() is stable with reverse=True, so ties keep their input order
    return sorted(candidates, key=lambda c: c.score, reverse=True)


def merge_and_filter(
    candidates: Sequence[Candidate],
    user_interactions: Sequence[Interaction],
    content_types: Optional[Sequence[str]] = None,
    topics: Optional[Sequence[str]] = None,
    difficulty: Optional[Sequence[str]] = None,
    recent_item_ids: Iterable[str] = (),
    recent_window: int = 20,
    recency_penalty: float = 0.7,
) -> list[Candidate]:
    """
    Collapse duplicates (highest score wins), drop items the user already
    interacted with, apply caller filters and penalise recently seen items.

    `user_interactions` must be most-recent-first; the first `recent_window`
    of them, plus `recent_item_ids`, count as recently seen.
    """
    best: dict[str, Candidate] = {}
    for candidate in candidates:
        current = best.get(candidate.item_id)
        if current is None or candidate.score > current.score:
            best[candidate.item_id] = candidate

    interacted = {i.item_id for i in user_interactions}
    recent = {i.item_id for i in user_interactions[:recent_window]} | set(recent_item_ids)

    filtered = [c for c in best.values() if c.item_id not in interacted]

    if content_types:
        allowed = set(content_types)
        filtered = [c for c in filtered if c.item_type in allowed]

    if topics:
        wanted = set(topics)
        filtered = [c for c in filtered if wanted.intersection(c.topics)]

    if difficulty:
        levels = set(difficulty)
        filtered = [c for c in filtered if c.difficulty in levels]

    return [
        replace(c, score=c.score * recency_penalty) if c.item_id in recent else c
        for c in filtered
    ]


def diversity_multiplier(
    item_type: str,
    topics: Iterable[str],
    used_types: set[str],
    used_topics: set[str],
    diversity: float,
) -> float:
    multiplier = 1.0
    if item_type in used_types:
        multiplier *= 1 - diversity * TYPE_PENALTY
    overlap = sum(1 for t in set(topics) if t in used_topics)
    if overlap > 0:
        multiplier *= max(0.0, 1 - diversity * TOPIC_PENALTY * overlap)
    return multiplier


def apply_diversity(candidates: Sequence[Candidate], diversity: float) -> list[Candidate]:
    """
    Greedy left-to-right re-rank: each candidate, visited in descending score
    order, is penalised for types/topics already used by higher-ranked ones.
    Earlier candidates are never revisited. The result is re-sorted by the
    adjusted score.
    """
    if len(candidates) <= 1 or diversity <= 0:
        return list(candidates)

    used_types: set[str] = set()
    used_topics: set[str] = set()
    adjusted = []
    for candidate in _by_score(candidates):
        multiplier = diversity_multiplier(
            candidate.item_type, candidate.topics, used_types, used_topics, diversity
        )
        adjusted.append(replace(candidate, score=candidate.score * multiplier))
        used_types.add(candidate.item_type)
        used_topics.update(candidate.topics)

    return _by_score(adjusted)


def select_top(candidates: Sequence[Candidate], max_items: int = 20) -> list[Candidate]:
    return _by_score(candidates)[:max_items]


def diversity_score(candidates: Sequence[Candidate]) -> float:
    """(distinct types / n + distinct topics / n) / 2; 0 for fewer than two items."""
    if len(candidates) <= 1:
        return 0.0
    types = {c.item_type for c in candidates}
    topics = {t for c in candidates for t in c.topics}
    n = len(candidates)
    return (len(types) / n + len(topics) / n) / 2
