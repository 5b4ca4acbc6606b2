"""
Recommendation engine API.

Endpoints:
- POST /recommend — ranked recommendations for a user
- POST /reload — swap in the latest persisted factor model
- POST /train — queue an offline matrix-factorization training run
"""

from __future__ import annotations

import time

import structlog
from fastapi import APIRouter, HTTPException, Request
from prometheus_client import Histogram

from recommendation_engine.config import get_settings
from recommendation_engine.errors import DataSourceError, DeadlineExceeded, ValidationError
from recommendation_engine.orchestrator import RecommendationOrchestrator
from recommendation_engine.schemas import (
    RecommendationRequest,
    RecommendationResult,
    ReloadResponse,
    TrainResponse,
)

logger = structlog.get_logger()
router = APIRouter()

INFERENCE_LATENCY = Histogram(
    "recommendation_inference_seconds",
    "Time spent computing recommendations",
    ["status"],
)

TRAIN_TASK = "training_pipeline.tasks.train_matrix_factorization"


def _orchestrator(request: Request) -> RecommendationOrchestrator:
    return request.app.state.orchestrator


@router.post("/recommend", response_model=RecommendationResult)
async def recommend(body: RecommendationRequest, request: Request):
    """Generate ranked recommendations for a user."""
    start = time.time()
    status = "ok"
    try:
        return await _orchestrator(request).recommend(body)
    except ValidationError as e:
        status = "invalid"
        raise HTTPException(status_code=422, detail=str(e))
    except DeadlineExceeded as e:
        status = "timeout"
        raise HTTPException(status_code=504, detail=str(e))
    except DataSourceError as e:
        status = "unavailable"
        logger.error("recommendation_history_unavailable", user_id=body.user_id, error=str(e))
        raise HTTPException(status_code=503, detail="Interaction history unavailable")
    finally:
        INFERENCE_LATENCY.labels(status=status).observe(time.time() - start)


@router.post("/reload", response_model=ReloadResponse)
async def reload_model(request: Request):
    """Swap in the persisted model (called by the training worker when it finishes)."""
    registry = _orchestrator(request).registry
    swapped = registry.reload()
    active = registry.active
    return ReloadResponse(
        status="reloaded" if swapped else "not_available",
        model_version=active.version if active.is_trained else None,
        swapped=swapped,
    )


@router.post("/train", response_model=TrainResponse, status_code=202)
async def trigger_training():
    """
    Queue matrix-factorization training on the Celery worker and return
    immediately; serving keeps using the current model until /reload.
    """
    try:
        from celery import Celery

        settings = get_settings()
        celery_app = Celery(broker=settings.celery_broker_url)
        result = celery_app.send_task(TRAIN_TASK)
    except Exception as e:
        logger.error("training_trigger_error", error=str(e))
        raise HTTPException(status_code=500, detail="Failed to queue training")

    logger.info("training_triggered", task_id=result.id)
    return TrainResponse(
        task_id=result.id,
        status="queued",
        message="Matrix factorization training has been queued",
    )
