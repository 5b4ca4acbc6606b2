"""
Matrix factorization training task — runs on the Celery worker, never in
the request path.

Steps:
1. Load qualifying interactions
2. Train the factor model
3. Evaluate against the global-bias baseline
4. Save the model artifact
5. Signal the recommendation engine to reload
6. Publish status to Redis
"""

from __future__ import annotations

import json
import threading
import time
from datetime import datetime, timezone
from typing import Optional

import httpx
import structlog

from recommendation_engine.domain import QUALIFYING_INTERACTIONS
from recommendation_engine.errors import DataError, TrainingCancelled, TrainingError
from recommendation_engine.model_store import MF_ARTIFACT, ModelRegistry, ModelStore
from recommendation_engine.models.matrix_factorization import Hyperparameters
from recommendation_engine.repositories import InMemoryStore, InteractionRepository
from training_pipeline.celery_app import celery
from training_pipeline.config import Settings, get_settings
from training_pipeline.evaluator import evaluate_model
from training_pipeline.trainer import qualifying, train

logger = structlog.get_logger()
settings = get_settings()


def run_training(
    interactions: InteractionRepository,
    store: Optional[ModelStore] = None,
    registry: Optional[ModelRegistry] = None,
    *,
    config: Optional[Settings] = None,
    deadline: Optional[float] = None,
    cancel: Optional[threading.Event] = None,
) -> dict:
    """Train, evaluate, persist and (optionally) swap in a new factor model."""
    config = config or settings
    start = time.time()

    rows = interactions.for_training(
        QUALIFYING_INTERACTIONS,
        min_weight=config.training_min_weight,
        limit=config.training_interaction_limit,
    )
    logger.info("training_interactions_loaded", count=len(rows))

    model = train(
        rows,
        Hyperparameters(
            factors=config.mf_factors,
            learning_rate=config.mf_learning_rate,
            regularization=config.mf_regularization,
            iterations=config.mf_iterations,
        ),
        min_weight=config.training_min_weight,
        tolerance=config.mf_tolerance,
        seed=config.mf_seed,
        deadline=deadline,
        cancel=cancel,
    )
    metrics = evaluate_model(model, qualifying(rows, config.training_min_weight))

    if store is not None:
        store.save_artifact(MF_ARTIFACT, model)
    if registry is not None:
        registry.swap(model)

    return {
        "model_version": model.version,
        "trained_at": model.last_updated.isoformat(),
        "training_duration_seconds": round(time.time() - start, 2),
        "n_users": len(model.user_factors),
        "n_items": len(model.item_factors),
        "metrics": metrics,
    }


def _interaction_source() -> InteractionRepository:
    if not settings.data_path:
        raise TrainingError("no interaction data source configured (DATA_PATH)")
    return InMemoryStore.from_json(settings.data_path)


@celery.task(
    name="training_pipeline.tasks.train_matrix_factorization",
    bind=True,
    max_retries=2,
    default_retry_delay=60,
)
def train_matrix_factorization(self):
    """Offline matrix factorization retraining."""
    task_id = self.request.id
    logger.info("retrain_started", task_id=task_id)

    try:
        summary = run_training(
            _interaction_source(),
            store=ModelStore.from_settings(settings),
            deadline=time.monotonic() + settings.training_timeout_seconds,
        )
    except (DataError, TrainingCancelled) as exc:
        # Retrying would hit the same rows / the same deadline
        logger.error("retrain_failed", task_id=task_id, error=str(exc), retry=False)
        _update_status(task_id, {"status": "failed", "reason": str(exc)})
        return {"status": "failed", "reason": str(exc)}
    except Exception as exc:
        logger.error("retrain_failed", task_id=task_id, error=str(exc))
        raise self.retry(exc=exc)

    _signal_reload()
    _update_status(task_id, {"status": "completed", **summary})

    logger.info(
        "retrain_completed",
        task_id=task_id,
        model_version=summary["model_version"],
        duration=summary["training_duration_seconds"],
    )
    return {"status": "completed", **summary}


def _signal_reload():
    """Tell the recommendation engine to swap in the new model."""
    try:
        resp = httpx.post(f"{settings.recommendation_engine_url}/reload", timeout=10)
        logger.info("reload_signal_sent", status=resp.status_code)
    except Exception as e:
        logger.warning("reload_signal_failed", error=str(e))


def _update_status(task_id: str, payload: dict):
    """Update training status in Redis."""
    try:
        import redis

        r = redis.from_url(settings.redis_dsn)
        r.setex(
            "model:retrain:latest",
            86400,
            json.dumps(
                {
                    "task_id": task_id,
                    "completed_at": datetime.now(timezone.utc).isoformat(),
                    **payload,
                },
                default=str,
            ),
        )
    except Exception as e:
        logger.warning("redis_status_update_failed", error=str(e))
