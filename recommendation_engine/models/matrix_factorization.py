"""
Matrix factorization — immutable latent-factor model snapshot and scorer.

The model is learned offline by training_pipeline.trainer and swapped into
the ModelRegistry as a whole; nothing here mutates it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Optional

import numpy as np
import structlog

from recommendation_engine.domain import (
    MATRIX_FACTORIZATION,
    Candidate,
    Interaction,
    MatrixFactorizationMetadata,
)
from recommendation_engine.errors import ModelUnavailable
from recommendation_engine.repositories import ItemEmbeddingRepository, fetching

logger = structlog.get_logger()

EMPTY_VERSION = "empty"


@dataclass(frozen=True)
class Hyperparameters:
    factors: int = 50
    learning_rate: float = 0.01
    regularization: float = 0.02
    iterations: int = 100


@dataclass(frozen=True)
class MatrixFactorizationModel:
    user_factors: dict[str, np.ndarray]
    item_factors: dict[str, np.ndarray]
    global_bias: float
    user_biases: dict[str, float]
    item_biases: dict[str, float]
    hyperparameters: Hyperparameters = field(default_factory=Hyperparameters)
    last_updated: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    version: str = EMPTY_VERSION
    error_history: tuple[float, ...] = ()

    def __post_init__(self):
        for vec in (*self.user_factors.values(), *self.item_factors.values()):
            vec.flags.writeable = False

    def __setstate__(self, state):
        # Unpickled arrays come back writeable
        self.__dict__.update(state)
        self.__post_init__()

    @classmethod
    def empty(cls, hyperparameters: Optional[Hyperparameters] = None) -> "MatrixFactorizationModel":
        return cls(
            user_factors={},
            item_factors={},
            global_bias=0.0,
            user_biases={},
            item_biases={},
            hyperparameters=hyperparameters or Hyperparameters(),
        )

    @property
    def is_trained(self) -> bool:
        return self.version != EMPTY_VERSION

    @property
    def iterations_run(self) -> int:
        return len(self.error_history)

    def predict(self, user_id: str, item_id: str) -> float:
        """Predicted affinity; unseen users/items contribute zero factors and bias."""
        prediction = (
            self.global_bias
            + self.user_biases.get(user_id, 0.0)
            + self.item_biases.get(item_id, 0.0)
        )
        user_vec = self.user_factors.get(user_id)
        item_vec = self.item_factors.get(item_id)
        if user_vec is not None and item_vec is not None:
            prediction += float(np.dot(user_vec, item_vec))
        return prediction


def score(
    model: MatrixFactorizationModel,
    user_id: str,
    candidate_item_ids: Iterable[str],
    exclude_item_ids: Iterable[str] = (),
) -> list[tuple[str, float]]:
    """Score candidates for a user, skipping items they already interacted with."""
    excluded = set(exclude_item_ids)
    return [
        (item_id, model.predict(user_id, item_id))
        for item_id in dict.fromkeys(candidate_item_ids)
        if item_id not in excluded
    ]


class MatrixFactorizationRecommender:
    """Candidate generator backed by the active latent-factor model."""

    def __init__(self, embeddings: ItemEmbeddingRepository):
        self.embeddings = embeddings

    def generate(
        self,
        user_id: str,
        user_interactions: list[Interaction],
        model: MatrixFactorizationModel,
        pool_size: int = 1000,
        max_candidates: int = 20,
    ) -> list[Candidate]:
        if not model.is_trained:
            raise ModelUnavailable("no matrix factorization model has been trained yet")

        if user_id not in model.user_factors:
            logger.info("user_not_in_mf_model", user_id=user_id)
            return []

        seen = {i.item_id for i in user_interactions}
        with fetching("item_embeddings"):
            pool = self.embeddings.excluding(seen, limit=pool_size)

        by_id = {e.item_id: e for e in pool if e.item_id in model.item_factors}
        scored = score(model, user_id, by_id.keys(), exclude_item_ids=seen)
        scored.sort(key=lambda pair: pair[1], reverse=True)

        results = []
        for item_id, prediction in scored[:max_candidates]:
            item = by_id[item_id]
            results.append(
                Candidate(
                    item_id=item_id,
                    score=prediction,
                    confidence=0.8,
                    algorithm=MATRIX_FACTORIZATION,
                    reason=f"Matrix factorization prediction: {prediction:.2f}",
                    metadata=MatrixFactorizationMetadata(
                        item_type=item.item_type,
                        topics=item.topics,
                        prediction=prediction,
                    ),
                )
            )
        return results
