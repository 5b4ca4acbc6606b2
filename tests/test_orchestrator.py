"""
Tests for the recommendation orchestrator: fan-out, degradation, ranking and metadata.
"""

from __future__ import annotations

import time

import pytest

from recommendation_engine.config import Settings
from recommendation_engine.domain import build_user_profile
from recommendation_engine.errors import DeadlineExceeded, ValidationError
from recommendation_engine.models.matrix_factorization import Hyperparameters
from recommendation_engine.orchestrator import RecommendationOrchestrator
from recommendation_engine.repositories import InMemoryStore
from recommendation_engine.schemas import RecommendationRequest
from training_pipeline.trainer import train


def request(user_id="alice", **kwargs) -> RecommendationRequest:
    return RecommendationRequest.model_validate({"userId": user_id, **kwargs})


class TestRecommend:
    """End-to-end over the in-memory fixture world."""

    @pytest.mark.asyncio
    async def test_default_request(self, orchestrator):
        result = await orchestrator.recommend(request())

        ids = [item.id for item in result.items]
        assert ids == ["c1", "v1", "a2", "p1"]
        assert "a1" not in ids
        assert result.items[0].algorithm == "collaborative_filtering"
        assert result.items[-1].algorithm == "exploration"

        meta = result.metadata
        assert meta.total_candidates == 3 + 2 + 3 + 4
        assert meta.filtered_candidates == 4
        assert meta.algorithms_used == [
            "collaborative_filtering",
            "content_based",
            "hybrid",
            "exploration",
        ]
        assert meta.model_status == "cold"
        assert meta.model_version is None
        assert all(g.status == "ok" for g in meta.generators)
        assert meta.processing_time_ms >= 0

    @pytest.mark.asyncio
    async def test_scores_sorted_and_bounded_by_max_items(self, orchestrator):
        result = await orchestrator.recommend(request(filters={"maxItems": 2}))
        assert len(result.items) == 2
        scores = [item.score for item in result.items]
        assert scores == sorted(scores, reverse=True)

    @pytest.mark.asyncio
    async def test_filters_apply(self, orchestrator):
        result = await orchestrator.recommend(request(filters={"contentTypes": ["video"]}))
        assert [item.id for item in result.items] == ["v1"]
        assert result.items[0].type == "video"

    @pytest.mark.asyncio
    async def test_context_recent_interactions_penalised(self, orchestrator):
        result = await orchestrator.recommend(
            request(
                algorithms={"collaborative": False, "contentBased": False, "hybrid": False},
                context={"recentInteractions": ["p1"]},
            )
        )
        scores = {item.id: item.score for item in result.items}
        assert scores["p1"] == pytest.approx(0.3 * 0.7)
        assert scores["v1"] == pytest.approx(0.3)

    @pytest.mark.asyncio
    async def test_only_exploration_for_new_user(self, orchestrator):
        result = await orchestrator.recommend(request("dave"))

        reports = {g.algorithm: g for g in result.metadata.generators}
        assert reports["collaborative_filtering"].candidates == 0
        assert reports["content_based"].candidates == 0
        assert reports["exploration"].candidates == 5
        assert {item.algorithm for item in result.items} == {"exploration"}

    @pytest.mark.asyncio
    async def test_disabled_algorithms_are_skipped(self, orchestrator):
        result = await orchestrator.recommend(
            request(algorithms={"collaborative": False, "hybrid": False, "exploration": False})
        )
        assert result.metadata.algorithms_used == ["content_based"]
        assert {item.id for item in result.items} == {"a2", "c1"}

    @pytest.mark.asyncio
    async def test_diversity_reported(self, orchestrator):
        result = await orchestrator.recommend(request(filters={"diversity": 1.0}))
        assert 0 < result.metadata.diversity_score <= 1

    @pytest.mark.asyncio
    async def test_serialises_camel_case(self, orchestrator):
        result = await orchestrator.recommend(request())
        payload = result.model_dump(by_alias=True)
        assert {"totalCandidates", "filteredCandidates", "algorithmsUsed", "processingTimeMs", "diversityScore"} <= set(
            payload["metadata"]
        )
        assert payload["items"][0]["metadata"]["item_type"] == "course"


class TestUserProfile:
    """History summary reported alongside the recommendations."""

    @pytest.mark.asyncio
    async def test_profile_in_result(self, orchestrator):
        result = await orchestrator.recommend(request())

        profile = result.metadata.user_profile
        assert profile.total_interactions == 1
        assert profile.avg_weight == pytest.approx(9.0)
        assert profile.preferred_types == {"article": 1.0}

        payload = result.model_dump(by_alias=True)["metadata"]["userProfile"]
        assert set(payload) == {"totalInteractions", "avgWeight", "preferredTypes"}

    @pytest.mark.asyncio
    async def test_new_user_has_empty_profile(self, orchestrator):
        profile = (await orchestrator.recommend(request("dave"))).metadata.user_profile
        assert profile.total_interactions == 0
        assert profile.avg_weight == 0.0
        assert profile.preferred_types == {}

    def test_type_shares_and_mean_weight(self, store):
        profile = build_user_profile("bob", store.recent_for_user("bob"))
        assert profile.total_interactions == 4
        assert profile.avg_weight == pytest.approx((9 + 8 + 7 + 10) / 4)
        assert profile.preferred_types == {
            "article": 0.25,
            "course": 0.25,
            "video": 0.25,
            "podcast": 0.25,
        }

    def test_missing_weights_are_skipped_in_mean(self, interaction):
        rows = [interaction("u", "a", 6), interaction("u", "b", None), interaction("u", "c", 8, item_type="video")]
        profile = build_user_profile("u", rows)
        assert profile.total_interactions == 3
        assert profile.avg_weight == pytest.approx(7.0)
        assert profile.preferred_types == {"article": pytest.approx(2 / 3), "video": pytest.approx(1 / 3)}


class TestValidation:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("user_id", ["", "   ", "x" * 129])
    async def test_invalid_user_id(self, orchestrator, user_id):
        with pytest.raises(ValidationError):
            await orchestrator.recommend(request(user_id))


class TestDegradation:
    """A failing or slow source only removes its own generator's contribution."""

    @pytest.mark.asyncio
    async def test_similarity_source_failure(self, store, registry, settings):
        class BrokenSimilarities(InMemoryStore):
            def similar_to(self, user_id, min_score, limit=50):
                raise ConnectionError("similarity backend down")

        orchestrator = RecommendationOrchestrator(
            interactions=store,
            embeddings=store,
            similarities=BrokenSimilarities(),
            catalog=store,
            registry=registry,
            settings=settings,
        )
        result = await orchestrator.recommend(request())

        reports = {g.algorithm: g for g in result.metadata.generators}
        assert reports["collaborative_filtering"].status == "failed"
        assert "similarity backend down" in reports["collaborative_filtering"].error
        assert reports["content_based"].status == "ok"
        assert reports["hybrid"].candidates == 2
        assert result.items

    @pytest.mark.asyncio
    async def test_slow_catalog_times_out(self, store, registry):
        class SlowCatalog(InMemoryStore):
            def novel_items(self, known_types, known_topics, limit=50):
                time.sleep(1.0)
                return []

        orchestrator = RecommendationOrchestrator(
            interactions=store,
            embeddings=store,
            similarities=store,
            catalog=SlowCatalog(),
            registry=registry,
            settings=Settings(generator_timeout_seconds=0.2),
        )
        result = await orchestrator.recommend(request())

        reports = {g.algorithm: g for g in result.metadata.generators}
        assert reports["exploration"].status == "timeout"
        assert reports["collaborative_filtering"].status == "ok"
        assert [item.id for item in result.items] == ["c1", "v1", "a2"]


class TestDeadline:
    @pytest.mark.asyncio
    async def test_request_deadline(self, store, registry):
        class SlowHistory(InMemoryStore):
            def recent_for_user(self, user_id, limit=1000):
                time.sleep(1.0)
                return []

        orchestrator = RecommendationOrchestrator(
            interactions=SlowHistory(),
            embeddings=store,
            similarities=store,
            catalog=store,
            registry=registry,
            settings=Settings(request_timeout_seconds=0.1),
        )
        with pytest.raises(DeadlineExceeded):
            await orchestrator.recommend(request())


class TestMatrixFactorization:
    @pytest.mark.asyncio
    async def test_cold_model_is_reported(self, orchestrator):
        result = await orchestrator.recommend(request(algorithms={"matrixFactorization": True}))

        reports = {g.algorithm: g for g in result.metadata.generators}
        assert reports["matrix_factorization"].status == "model_unavailable"
        assert result.metadata.model_status == "cold"
        assert "matrix_factorization" in result.metadata.algorithms_used

    @pytest.mark.asyncio
    async def test_trained_model_contributes(self, orchestrator, store, registry):
        model = train(store.interactions, Hyperparameters(factors=2, iterations=5), seed=1)
        registry.swap(model)

        result = await orchestrator.recommend(
            request(
                algorithms={
                    "collaborative": False,
                    "contentBased": False,
                    "hybrid": False,
                    "exploration": False,
                    "matrixFactorization": True,
                }
            )
        )

        assert result.metadata.model_status == "ready"
        assert result.metadata.model_version == model.version
        assert {item.id for item in result.items} == {"a2", "v1", "c1"}
        assert all(item.algorithm == "matrix_factorization" for item in result.items)
