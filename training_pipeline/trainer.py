"""
Matrix factorization trainer — biased latent-factor model fitted with SGD.

    prediction = global_bias + user_bias + item_bias + dot(p_u, q_i)

The learning rate decays linearly over the iterations. Training always
builds a fresh MatrixFactorizationModel; callers swap it in afterwards.
"""

from __future__ import annotations

import threading
import time
from datetime import datetime, timezone
from typing import Iterable, Optional

import numpy as np
import structlog

from recommendation_engine.domain import Interaction
from recommendation_engine.errors import DataError, TrainingCancelled
from recommendation_engine.models.matrix_factorization import (
    Hyperparameters,
    MatrixFactorizationModel,
)

logger = structlog.get_logger()

MIN_TRAINING_WEIGHT = 5.0


def validate_interactions(interactions: Iterable[Interaction]) -> list[Interaction]:
    """Reject the whole batch if any row lacks a user id, item id or weight."""
    rows = list(interactions)
    for position, row in enumerate(rows):
        missing = [
            name
            for name in ("user_id", "item_id", "weight")
            if getattr(row, name, None) in (None, "")
        ]
        if missing:
            raise DataError(f"interaction #{position} is missing {', '.join(missing)}")
        if row.weight < 0:
            raise DataError(f"interaction #{position} has negative weight {row.weight}")
    return rows


def qualifying(interactions: Iterable[Interaction], min_weight: float = MIN_TRAINING_WEIGHT) -> list[Interaction]:
    return [i for i in interactions if i.is_qualifying and i.weight >= min_weight]


def _new_version() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S_%f")


def train(
    interactions: Iterable[Interaction],
    hyperparameters: Optional[Hyperparameters] = None,
    *,
    min_weight: float = MIN_TRAINING_WEIGHT,
    tolerance: float = 0.0,
    seed: Optional[int] = None,
    deadline: Optional[float] = None,
    cancel: Optional[threading.Event] = None,
) -> MatrixFactorizationModel:
    """
    Fit a biased matrix factorization model on qualifying interactions.

    Args:
        interactions: raw interactions; only complete/rate/bookmark rows with
            weight >= min_weight are learned from.
        hyperparameters: factors, learning rate, regularization, iterations.
        tolerance: stop early once the relative drop in squared error between
            iterations falls below this (0 runs every iteration).
        seed: seed for the uniform [-0.5, 0.5) factor initialisation.
        deadline: time.monotonic() value after which training is abandoned.
        cancel: event that abandons training when set.

    Raises:
        DataError: an interaction is missing its user id, item id or weight.
        TrainingCancelled: the deadline passed or `cancel` was set.
    """
    params = hyperparameters or Hyperparameters()
    rows = qualifying(validate_interactions(interactions), min_weight)

    if not rows:
        logger.warning("no_interactions_for_mf_training")
        return MatrixFactorizationModel(
            user_factors={},
            item_factors={},
            global_bias=0.0,
            user_biases={},
            item_biases={},
            hyperparameters=params,
            version=_new_version(),
        )

    logger.info(
        "training_mf_model",
        n_interactions=len(rows),
        factors=params.factors,
        iterations=params.iterations,
    )

    samples = [(str(i.user_id), str(i.item_id), float(i.weight)) for i in rows]
    global_bias = float(np.mean([w for _, _, w in samples]))

    rng = np.random.default_rng(seed)
    user_factors = {u: rng.uniform(-0.5, 0.5, params.factors) for u in dict.fromkeys(u for u, _, _ in samples)}
    item_factors = {i: rng.uniform(-0.5, 0.5, params.factors) for i in dict.fromkeys(i for _, i, _ in samples)}
    user_biases = dict.fromkeys(user_factors, 0.0)
    item_biases = dict.fromkeys(item_factors, 0.0)

    reg = params.regularization
    error_history: list[float] = []

    for iteration in range(params.iterations):
        if cancel is not None and cancel.is_set():
            raise TrainingCancelled(f"cancelled at iteration {iteration}")
        if deadline is not None and time.monotonic() > deadline:
            raise TrainingCancelled(f"deadline passed at iteration {iteration}")

        lr = params.learning_rate * (1 - iteration / params.iterations)
        total_error = 0.0

        for user_id, item_id, weight in samples:
            p_u = user_factors[user_id]
            q_i = item_factors[item_id]
            b_u = user_biases[user_id]
            b_i = item_biases[item_id]

            error = weight - (global_bias + b_u + b_i + float(p_u @ q_i))
            total_error += error * error

            user_biases[user_id] = b_u + lr * (error - reg * b_u)
            item_biases[item_id] = b_i + lr * (error - reg * b_i)

            # Both vectors step from their pre-update values
            p_old = p_u.copy()
            p_u += lr * (error * q_i - reg * p_u)
            q_i += lr * (error * p_old - reg * q_i)

        error_history.append(total_error)

        if iteration % 10 == 0:
            logger.info("mf_training_iteration", iteration=iteration, squared_error=round(total_error, 4))

        if tolerance > 0 and len(error_history) > 1:
            previous = error_history[-2]
            if previous > 0 and (previous - total_error) / previous < tolerance:
                logger.info("mf_training_converged", iteration=iteration, squared_error=round(total_error, 4))
                break

    model = MatrixFactorizationModel(
        user_factors=user_factors,
        item_factors=item_factors,
        global_bias=global_bias,
        user_biases=user_biases,
        item_biases=item_biases,
        hyperparameters=params,
        version=_new_version(),
        error_history=tuple(error_history),
    )

    logger.info(
        "mf_model_trained",
        version=model.version,
        n_users=len(user_factors),
        n_items=len(item_factors),
        iterations_run=model.iterations_run,
        final_squared_error=round(error_history[-1], 4) if error_history else None,
    )
    return model
