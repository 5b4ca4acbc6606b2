"""
Recommendation Engine — FastAPI app.

Internal service. Serves hybrid recommendations from the in-process
orchestrator; the factor model is trained elsewhere and swapped in on /reload.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI
from prometheus_client import generate_latest
from starlette.responses import Response

from recommendation_engine.config import get_settings
from recommendation_engine.logging_config import setup_logging
from recommendation_engine.model_store import ModelRegistry, ModelStore
from recommendation_engine.orchestrator import RecommendationOrchestrator
from recommendation_engine.repositories import InMemoryStore
from recommendation_engine.routers import recommend

logger = structlog.get_logger()


def build_orchestrator() -> RecommendationOrchestrator:
    settings = get_settings()
    store = InMemoryStore.from_json(settings.data_path) if settings.data_path else InMemoryStore()
    registry = ModelRegistry(ModelStore.from_settings(settings))
    return RecommendationOrchestrator(
        interactions=store,
        embeddings=store,
        similarities=store,
        catalog=store,
        registry=registry,
        settings=settings,
    )


def create_app(orchestrator: Optional[RecommendationOrchestrator] = None) -> FastAPI:
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Load the persisted model at startup."""
        logger.info("recommendation_engine_starting")
        loaded = app.state.orchestrator.registry.reload()
        logger.info("mf_model_loaded" if loaded else "mf_model_not_available")
        yield
        logger.info("recommendation_engine_shutting_down")

    app = FastAPI(
        title="Hybrid Recommendation Engine",
        description="Internal hybrid recommendation service",
        version="1.0.0",
        docs_url="/docs",
        lifespan=lifespan,
    )
    app.state.orchestrator = orchestrator or build_orchestrator()
    app.include_router(recommend.router)

    @app.get("/health")
    async def health():
        model = app.state.orchestrator.registry.active
        return {
            "status": "healthy",
            "service": "recommendation_engine",
            "model": {
                "status": "ready" if model.is_trained else "cold",
                "version": model.version if model.is_trained else None,
                "last_updated": model.last_updated.isoformat(),
            },
        }

    @app.get("/metrics")
    async def metrics():
        return Response(content=generate_latest(), media_type="text/plain")

    return app
