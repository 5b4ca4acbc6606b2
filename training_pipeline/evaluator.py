"""
Model evaluator — reconstruction error of a factor model against the
global-bias-only baseline.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np
import structlog

from recommendation_engine.domain import Interaction
from recommendation_engine.models.matrix_factorization import MatrixFactorizationModel

logger = structlog.get_logger()


def mean_squared_error(model: MatrixFactorizationModel, interactions: Sequence[Interaction]) -> float:
    """MSE of the model's predictions over the given interactions."""
    if not interactions:
        return 0.0
    errors = [i.weight - model.predict(str(i.user_id), str(i.item_id)) for i in interactions]
    return float(np.mean(np.square(errors)))


def baseline_mean_squared_error(interactions: Sequence[Interaction]) -> float:
    """MSE of always predicting the mean weight (the global bias)."""
    if not interactions:
        return 0.0
    weights = np.asarray([i.weight for i in interactions], dtype=float)
    return float(np.mean(np.square(weights - weights.mean())))


def evaluate_model(model: MatrixFactorizationModel, interactions: Sequence[Interaction]) -> dict:
    """Aggregate fit metrics for a freshly trained model."""
    mse = mean_squared_error(model, interactions)
    baseline = baseline_mean_squared_error(interactions)
    metrics = {
        "mse": mse,
        "rmse": float(np.sqrt(mse)),
        "baseline_mse": baseline,
        "improvement": (baseline - mse) / baseline if baseline > 0 else 0.0,
        "n_interactions": len(interactions),
        "iterations_run": model.iterations_run,
    }

    logger.info("model_evaluation", **metrics)
    return metrics
