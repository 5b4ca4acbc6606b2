"""
Collaborative filtering — neighbourhood recommendations from similar users.

Items that similar users engaged with strongly are scored by the
similarity-weighted mean of their interaction weights.
"""

from __future__ import annotations

import structlog

from recommendation_engine.domain import (
    COLLABORATIVE,
    QUALIFYING_INTERACTIONS,
    Candidate,
    CollaborativeMetadata,
    Interaction,
)
from recommendation_engine.repositories import (
    InteractionRepository,
    UserSimilarityRepository,
    fetching,
)

logger = structlog.get_logger()


class CollaborativeRecommender:
    """User-user collaborative filtering over precomputed similarities."""

    def __init__(
        self,
        interactions: InteractionRepository,
        similarities: UserSimilarityRepository,
        neighbor_interaction_limit: int = 100,
    ):
        self.interactions = interactions
        self.similarities = similarities
        self.neighbor_interaction_limit = neighbor_interaction_limit

    def generate(
        self,
        user_id: str,
        user_interactions: list[Interaction],
        similarity_threshold: float = 0.3,
        max_similar_users: int = 50,
        min_weight: float = 7,
    ) -> list[Candidate]:
        with fetching("user_similarities"):
            similar = self.similarities.similar_to(
                user_id, min_score=similarity_threshold, limit=max_similar_users
            )
        if not similar:
            logger.debug("cf_no_similar_users", user_id=user_id)
            return []

        neighbor_similarity: dict[str, float] = {}
        for record in similar:
            neighbor = record.other(user_id)
            if neighbor == user_id:
                continue
            neighbor_similarity[neighbor] = max(
                record.similarity_score, neighbor_similarity.get(neighbor, 0.0)
            )

        seen = {i.item_id for i in user_interactions}
        with fetching("interactions"):
            neighbor_rows = self.interactions.for_users(
                neighbor_similarity.keys(),
                exclude_item_ids=seen,
                interaction_types=QUALIFYING_INTERACTIONS,
                min_weight=min_weight,
                limit=self.neighbor_interaction_limit,
            )

        # item_id -> [total, count, similarity_sum, first reason, sample row]
        accumulated: dict[str, list] = {}
        for row in neighbor_rows:
            similarity = neighbor_similarity.get(row.user_id)
            if similarity is None or row.item_id in seen:
                continue
            reason = f"Similar user interaction (similarity: {similarity * 100:.1f}%)"
            entry = accumulated.setdefault(row.item_id, [0.0, 0, 0.0, reason, row])
            entry[0] += row.weight * similarity
            entry[1] += 1
            entry[2] += similarity

        results = []
        for item_id, (total, count, similarity_sum, reason, row) in accumulated.items():
            results.append(
                Candidate(
                    item_id=item_id,
                    score=total / count,
                    confidence=min(1.0, count / 10),
                    algorithm=COLLABORATIVE,
                    reason=reason,
                    metadata=CollaborativeMetadata(
                        item_type=row.item_type,
                        topics=row.topics,
                        similar_users=count,
                        avg_similarity=similarity_sum / count,
                    ),
                )
            )

        logger.debug(
            "cf_candidates_generated",
            user_id=user_id,
            neighbors=len(neighbor_similarity),
            candidates=len(results),
        )
        return results
