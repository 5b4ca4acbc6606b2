"""
Exploration — surfaces catalog items outside the user's usual types and topics.

Scores are deliberately small and confidence is halved so exploration only
fills gaps left by the personalised algorithms.
"""

from __future__ import annotations

import structlog

from recommendation_engine.domain import (
    EXPLORATION,
    Candidate,
    ExplorationMetadata,
    Interaction,
)
from recommendation_engine.repositories import ContentCatalog, fetching

logger = structlog.get_logger()

SEEN_NOVELTY = 0.3
NEW_NOVELTY = 1.0


class ExplorationRecommender:
    """Novelty-driven recommender over the content catalog."""

    def __init__(self, catalog: ContentCatalog):
        self.catalog = catalog

    def generate(
        self,
        user_id: str,
        user_interactions: list[Interaction],
        exploration_weight: float = 0.3,
        pool_size: int = 50,
    ) -> list[Candidate]:
        usual_types = {i.item_type for i in user_interactions}
        usual_topics = {topic for i in user_interactions for topic in i.topics}
        seen = {i.item_id for i in user_interactions}

        with fetching("content_catalog"):
            items = self.catalog.novel_items(usual_types, usual_topics, limit=pool_size)

        results = []
        for item in items:
            if item.id in seen:
                continue
            type_novelty = SEEN_NOVELTY if item.type in usual_types else NEW_NOVELTY
            topic_novelty = (
                NEW_NOVELTY if any(t not in usual_topics for t in item.topics) else SEEN_NOVELTY
            )
            novelty = (type_novelty + topic_novelty) / 2
            results.append(
                Candidate(
                    item_id=item.id,
                    score=novelty * exploration_weight,
                    confidence=novelty * 0.5,
                    algorithm=EXPLORATION,
                    reason="Exploration: New content type" if type_novelty > 0.5 else "Exploration: New topics",
                    metadata=ExplorationMetadata(
                        item_type=item.type,
                        topics=item.topics,
                        difficulty=item.difficulty,
                        novelty=novelty,
                        type_novelty=type_novelty,
                        topic_novelty=topic_novelty,
                    ),
                )
            )

        logger.debug(
            "exploration_candidates_generated",
            user_id=user_id,
            usual_types=len(usual_types),
            usual_topics=len(usual_topics),
            candidates=len(results),
        )
        return results
