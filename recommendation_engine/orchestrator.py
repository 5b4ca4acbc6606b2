"""
Recommendation orchestrator — the single entry point for serving.

Fans out to every enabled candidate generator in worker threads, fans in,
and runs the merged candidates through the ranking pipeline. A generator
that fails or times out contributes nothing; its outcome is reported in the
result metadata instead of failing the request.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

import structlog
from prometheus_client import Counter

from recommendation_engine import ranking
from recommendation_engine.config import Settings, get_settings
from recommendation_engine.domain import (
    COLLABORATIVE,
    CONTENT_BASED,
    EXPLORATION,
    HYBRID,
    MATRIX_FACTORIZATION,
    Candidate,
    build_user_profile,
)
from recommendation_engine.errors import (
    DeadlineExceeded,
    ModelUnavailable,
    ValidationError,
)
from recommendation_engine.model_store import ModelRegistry
from recommendation_engine.models.collaborative import CollaborativeRecommender
from recommendation_engine.models.content_based import ContentBasedRecommender
from recommendation_engine.models.exploration import ExplorationRecommender
from recommendation_engine.models.hybrid import HybridRecommender
from recommendation_engine.models.matrix_factorization import MatrixFactorizationRecommender
from recommendation_engine.repositories import (
    ContentCatalog,
    InteractionRepository,
    ItemEmbeddingRepository,
    UserSimilarityRepository,
    fetching,
)
from recommendation_engine.schemas import (
    GeneratorReport,
    RecommendationRequest,
    RecommendationResult,
    RecommendedItem,
    ResultMetadata,
    UserProfileSummary,
)

logger = structlog.get_logger()

GENERATOR_OUTCOMES = Counter(
    "recommendation_generator_outcomes_total",
    "Candidate generator runs by algorithm and outcome",
    ["algorithm", "status"],
)


@dataclass
class GeneratorOutcome:
    algorithm: str
    status: str = "ok"
    candidates: list[Candidate] = field(default_factory=list)
    error: Optional[str] = None
    elapsed_ms: float = 0.0

    def report(self) -> GeneratorReport:
        return GeneratorReport(
            algorithm=self.algorithm,
            status=self.status,
            candidates=len(self.candidates),
            error=self.error,
            elapsed_ms=round(self.elapsed_ms, 2),
        )


class RecommendationOrchestrator:
    def __init__(
        self,
        interactions: InteractionRepository,
        embeddings: ItemEmbeddingRepository,
        similarities: UserSimilarityRepository,
        catalog: ContentCatalog,
        registry: ModelRegistry,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.interactions = interactions
        self.registry = registry
        self.collaborative = CollaborativeRecommender(
            interactions,
            similarities,
            neighbor_interaction_limit=self.settings.cf_neighbor_interaction_limit,
        )
        self.content_based = ContentBasedRecommender(embeddings, min_weight=self.settings.cb_min_weight)
        self.hybrid = HybridRecommender(
            cf_weight=self.settings.hybrid_cf_weight,
            cb_weight=self.settings.hybrid_cb_weight,
        )
        self.exploration = ExplorationRecommender(catalog)
        self.matrix_factorization = MatrixFactorizationRecommender(embeddings)

    def validate_user_id(self, user_id: str) -> None:
        if not user_id or not user_id.strip():
            raise ValidationError("user id is required")
        if len(user_id) > self.settings.max_user_id_length:
            raise ValidationError(
                f"user id exceeds {self.settings.max_user_id_length} characters"
            )

    async def recommend(self, request: RecommendationRequest) -> RecommendationResult:
        self.validate_user_id(request.user_id)
        try:
            return await asyncio.wait_for(
                self._recommend(request), timeout=self.settings.request_timeout_seconds
            )
        except asyncio.TimeoutError as e:
            logger.error("recommendation_deadline_exceeded", user_id=request.user_id)
            raise DeadlineExceeded(
                f"recommendation exceeded {self.settings.request_timeout_seconds}s"
            ) from e

    async def _recommend(self, request: RecommendationRequest) -> RecommendationResult:
        start = time.perf_counter()
        settings = self.settings
        user_id = request.user_id
        toggles = request.algorithms

        def load_user():
            with fetching("interactions"):
                rows = self.interactions.recent_for_user(user_id, limit=settings.history_limit)
            return rows, build_user_profile(user_id, rows)

        (history, profile), model = await asyncio.gather(
            asyncio.to_thread(load_user),
            asyncio.to_thread(self.registry.ensure_loaded),
        )

        jobs: dict[str, Callable[[], list[Candidate]]] = {}
        if toggles.collaborative or toggles.hybrid:
            jobs[COLLABORATIVE] = lambda: self.collaborative.generate(
                user_id,
                history,
                similarity_threshold=settings.cf_similarity_threshold,
                max_similar_users=settings.cf_max_similar_users,
                min_weight=settings.cf_min_weight,
            )
        if toggles.content_based or toggles.hybrid:
            jobs[CONTENT_BASED] = lambda: self.content_based.generate(
                user_id,
                history,
                similarity_threshold=settings.cb_similarity_threshold,
                pool_size=settings.cb_pool_size,
            )
        if toggles.exploration:
            jobs[EXPLORATION] = lambda: self.exploration.generate(
                user_id,
                history,
                exploration_weight=settings.exploration_weight,
                pool_size=settings.exploration_pool_size,
            )
        if toggles.matrix_factorization:
            jobs[MATRIX_FACTORIZATION] = lambda: self.matrix_factorization.generate(
                user_id,
                history,
                model,
                pool_size=settings.mf_pool_size,
                max_candidates=settings.mf_max_candidates,
            )

        results = await asyncio.gather(
            *(self._run_generator(name, job, user_id) for name, job in jobs.items())
        )
        outcomes = {o.algorithm: o for o in results}

        if toggles.hybrid:
            outcomes[HYBRID] = self._combine(outcomes[COLLABORATIVE], outcomes[CONTENT_BASED])

        enabled = [
            name
            for name, on in (
                (COLLABORATIVE, toggles.collaborative),
                (CONTENT_BASED, toggles.content_based),
                (HYBRID, toggles.hybrid),
                (EXPLORATION, toggles.exploration),
                (MATRIX_FACTORIZATION, toggles.matrix_factorization),
            )
            if on
        ]
        for name in enabled:
            GENERATOR_OUTCOMES.labels(algorithm=name, status=outcomes[name].status).inc()

        candidates = [c for name in enabled for c in outcomes[name].candidates]

        filters = request.filters
        filtered = ranking.merge_and_filter(
            candidates,
            history,
            content_types=filters.content_types,
            topics=filters.topics,
            difficulty=filters.difficulty,
            recent_item_ids=request.context.recent_interactions,
            recent_window=settings.recent_window,
            recency_penalty=settings.recency_penalty,
        )
        diversified = ranking.apply_diversity(filtered, filters.diversity)
        top = ranking.select_top(diversified, filters.max_items)

        processing_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "recommendation_generated",
            user_id=user_id,
            history=len(history),
            total_candidates=len(candidates),
            filtered_candidates=len(filtered),
            returned=len(top),
            model_version=model.version,
            latency_ms=round(processing_ms, 2),
        )

        return RecommendationResult(
            items=[
                RecommendedItem(
                    id=c.item_id,
                    type=c.item_type,
                    score=c.score,
                    confidence=c.confidence,
                    reason=c.reason,
                    metadata=c.metadata_dict(),
                    algorithm=c.algorithm,
                )
                for c in top
            ],
            metadata=ResultMetadata(
                total_candidates=len(candidates),
                filtered_candidates=len(filtered),
                algorithms_used=enabled,
                processing_time_ms=round(processing_ms, 2),
                diversity_score=ranking.diversity_score(top),
                model_status="ready" if model.is_trained else "cold",
                model_version=model.version if model.is_trained else None,
                generators=[outcomes[name].report() for name in enabled],
                user_profile=UserProfileSummary(
                    total_interactions=profile.total_interactions,
                    avg_weight=profile.avg_weight,
                    preferred_types=profile.preferred_types,
                ),
            ),
        )

    async def _run_generator(
        self, algorithm: str, job: Callable[[], list[Candidate]], user_id: str
    ) -> GeneratorOutcome:
        start = time.perf_counter()
        outcome = GeneratorOutcome(algorithm=algorithm)
        try:
            outcome.candidates = await asyncio.wait_for(
                asyncio.to_thread(job), timeout=self.settings.generator_timeout_seconds
            )
        except asyncio.TimeoutError:
            outcome.status = "timeout"
            outcome.error = f"no result within {self.settings.generator_timeout_seconds}s"
            logger.warning("generator_timeout", algorithm=algorithm, user_id=user_id)
        except ModelUnavailable as e:
            outcome.status = "model_unavailable"
            outcome.error = str(e)
            logger.info("generator_model_unavailable", algorithm=algorithm, user_id=user_id)
        except Exception as e:
            outcome.status = "failed"
            outcome.error = str(e)
            logger.error("generator_failed", algorithm=algorithm, user_id=user_id, error=str(e))
        outcome.elapsed_ms = (time.perf_counter() - start) * 1000
        return outcome

    def _combine(self, cf: GeneratorOutcome, cb: GeneratorOutcome) -> GeneratorOutcome:
        outcome = GeneratorOutcome(
            algorithm=HYBRID, elapsed_ms=max(cf.elapsed_ms, cb.elapsed_ms)
        )
        try:
            outcome.candidates = self.hybrid.combine(cf.candidates, cb.candidates)
        except Exception as e:
            outcome.status = "failed"
            outcome.error = str(e)
            logger.error("generator_failed", algorithm=HYBRID, error=str(e))
        return outcome
