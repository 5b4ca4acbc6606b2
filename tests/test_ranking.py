"""
Tests for the ranking pipeline: dedup/filter, diversity re-rank, top-K.
"""

from __future__ import annotations

import pytest

from recommendation_engine import ranking
from recommendation_engine.domain import Candidate, ContentMetadata, ExplorationMetadata


def candidate(item_id, score, item_type="article", topics=(), algorithm="content_based", difficulty=None):
    return Candidate(
        item_id=item_id,
        score=score,
        confidence=0.5,
        algorithm=algorithm,
        reason="test",
        metadata=ExplorationMetadata(item_type=item_type, topics=tuple(topics), difficulty=difficulty),
    )


class TestMergeAndFilter:
    def test_duplicates_keep_highest_score(self):
        merged = ranking.merge_and_filter(
            [candidate("x", 0.4, algorithm="exploration"), candidate("x", 0.9, algorithm="hybrid")],
            [],
        )
        assert len(merged) == 1
        assert merged[0].algorithm == "hybrid"

    def test_interacted_items_dropped(self, interaction):
        history = [interaction("u", "seen", 9)]
        merged = ranking.merge_and_filter([candidate("seen", 1.0), candidate("new", 0.5)], history)
        assert [c.item_id for c in merged] == ["new"]

    def test_content_type_whitelist(self):
        merged = ranking.merge_and_filter(
            [candidate("a", 1, "article"), candidate("v", 1, "video")],
            [],
            content_types=["video"],
        )
        assert [c.item_id for c in merged] == ["v"]

    def test_missing_type_counts_as_unknown(self):
        bare = Candidate("b", 1.0, 0.5, "content_based", "test", ContentMetadata())
        merged = ranking.merge_and_filter([bare], [], content_types=["unknown"])
        assert [c.item_id for c in merged] == ["b"]

    def test_topic_any_match(self):
        merged = ranking.merge_and_filter(
            [candidate("a", 1, topics=["ml", "stats"]), candidate("b", 1, topics=["art"])],
            [],
            topics=["stats", "history"],
        )
        assert [c.item_id for c in merged] == ["a"]

    def test_difficulty_defaults_to_intermediate(self):
        merged = ranking.merge_and_filter(
            [candidate("a", 1), candidate("b", 1, difficulty="expert")],
            [],
            difficulty=["intermediate"],
        )
        assert [c.item_id for c in merged] == ["a"]

    def test_recently_seen_penalty(self):
        merged = ranking.merge_and_filter(
            [candidate("a", 1.0), candidate("b", 1.0)], [], recent_item_ids=["b"]
        )
        scores = {c.item_id: c.score for c in merged}
        assert scores == {"a": 1.0, "b": pytest.approx(0.7)}


class TestDiversity:
    @pytest.fixture
    def candidates(self):
        return [
            candidate("a", 1.0, "article", ["python"]),
            candidate("b", 0.95, "article", ["python"]),
            candidate("c", 0.9, "video", ["cooking"]),
            candidate("d", 0.85, "article", ["python", "data"]),
        ]

    def test_zero_diversity_keeps_order(self, candidates):
        assert ranking.apply_diversity(candidates, 0.0) == candidates

    def test_penalises_repeats_and_resorts(self, candidates):
        result = ranking.apply_diversity(candidates, 1.0)
        scores = {c.item_id: c.score for c in result}

        assert scores["a"] == pytest.approx(1.0)
        assert scores["b"] == pytest.approx(0.95 * 0.7 * 0.8)
        assert scores["c"] == pytest.approx(0.9)
        assert scores["d"] == pytest.approx(0.85 * 0.7 * 0.8)
        assert [c.item_id for c in result] == ["a", "c", "b", "d"]

    def test_penalty_is_order_dependent(self):
        # The penalty applies to the lower-scored duplicate only
        result = ranking.apply_diversity(
            [candidate("low", 0.5, "video"), candidate("high", 0.6, "video")], 1.0
        )
        scores = {c.item_id: c.score for c in result}
        assert scores["high"] == pytest.approx(0.6)
        assert scores["low"] == pytest.approx(0.35)

    def test_multiplier_non_increasing_in_diversity(self):
        values = [
            ranking.diversity_multiplier("article", ["a", "b"], {"article"}, {"a", "b"}, d / 10)
            for d in range(11)
        ]
        assert all(later <= earlier for earlier, later in zip(values, values[1:]))
        assert min(values) >= 0.0


class TestTopK:
    def test_truncates_sorted(self):
        pool = [candidate(str(k), score) for k, score in enumerate([0.1, 0.9, 0.5, 0.7, 0.3])]
        top = ranking.select_top(pool, 3)
        assert [c.score for c in top] == [0.9, 0.7, 0.5]

    def test_never_exceeds_max_items(self):
        pool = [candidate(str(k), k) for k in range(30)]
        assert len(ranking.select_top(pool, 20)) == 20
        assert len(ranking.select_top(pool[:5], 20)) == 5


class TestDiversityScore:
    def test_single_item_scores_zero(self):
        assert ranking.diversity_score([candidate("a", 1, topics=["x"])]) == 0.0

    def test_formula(self):
        items = [
            candidate("a", 1, "article", ["x", "y"]),
            candidate("b", 1, "video", ["x"]),
            candidate("c", 1, "article", []),
            candidate("d", 1, "article", ["z"]),
        ]
        assert ranking.diversity_score(items) == pytest.approx((2 / 4 + 3 / 4) / 2)
