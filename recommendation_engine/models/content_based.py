"""
Content-based filtering — precomputed item embeddings + cosine similarity.

The user profile is the mean embedding of items the user rated, completed
or bookmarked strongly; unseen items close to that profile are recommended.
"""

from __future__ import annotations

import numpy as np
import structlog

from recommendation_engine.domain import (
    CONTENT_BASED,
    QUALIFYING_INTERACTIONS,
    Candidate,
    ContentMetadata,
    Interaction,
)
from recommendation_engine.repositories import ItemEmbeddingRepository, fetching
from recommendation_engine.similarity import cosine_to_pool, mean_vector

logger = structlog.get_logger()


class ContentBasedRecommender:
    """Embedding-similarity recommender."""

    def __init__(self, embeddings: ItemEmbeddingRepository, min_weight: float = 7):
        self.embeddings = embeddings
        self.min_weight = min_weight

    def liked_item_ids(self, user_interactions: list[Interaction]) -> list[str]:
        liked = [
            i.item_id
            for i in user_interactions
            if i.interaction_type in QUALIFYING_INTERACTIONS
            and i.weight is not None
            and i.weight >= self.min_weight
        ]
        return list(dict.fromkeys(liked))

    def generate(
        self,
        user_id: str,
        user_interactions: list[Interaction],
        similarity_threshold: float = 0.7,
        pool_size: int = 200,
    ) -> list[Candidate]:
        liked_ids = self.liked_item_ids(user_interactions)
        if not liked_ids:
            return []

        with fetching("item_embeddings"):
            liked_embeddings = self.embeddings.by_ids(liked_ids)
        if not liked_embeddings:
            logger.debug("cb_no_liked_embeddings", user_id=user_id, liked=len(liked_ids))
            return []

        profile = mean_vector([e.embedding for e in liked_embeddings])

        seen = {i.item_id for i in user_interactions}
        with fetching("item_embeddings"):
            pool = self.embeddings.excluding(seen, limit=pool_size)

        pool = [e for e in pool if len(e.embedding) == len(profile) and e.item_id not in seen]
        if not pool:
            return []

        similarities = cosine_to_pool(profile, np.asarray([e.embedding for e in pool], dtype=float))

        results = []
        for item, similarity in zip(pool, similarities):
            similarity = float(similarity)
            if similarity < similarity_threshold:
                continue
            results.append(
                Candidate(
                    item_id=item.item_id,
                    score=similarity,
                    confidence=similarity,
                    algorithm=CONTENT_BASED,
                    reason=f"Content similarity: {similarity * 100:.1f}%",
                    metadata=ContentMetadata(
                        item_type=item.item_type,
                        topics=item.topics,
                        similarity=similarity,
                    ),
                )
            )

        logger.debug(
            "cb_candidates_generated",
            user_id=user_id,
            pool=len(pool),
            candidates=len(results),
        )
        return results
