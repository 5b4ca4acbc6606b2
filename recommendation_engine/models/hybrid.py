"""
Hybrid recommender — weighted blend of collaborative and content-based candidates.
"""

from __future__ import annotations

from recommendation_engine.domain import HYBRID, Candidate, HybridMetadata


class HybridRecommender:
    """Blends collaborative and content-based candidates per item."""

    def __init__(self, cf_weight: float = 0.6, cb_weight: float = 0.4):
        self.cf_weight = cf_weight
        self.cb_weight = cb_weight

    def combine(
        self,
        cf_candidates: list[Candidate],
        cb_candidates: list[Candidate],
        cf_weight: float | None = None,
        cb_weight: float | None = None,
    ) -> list[Candidate]:
        cf_weight = self.cf_weight if cf_weight is None else cf_weight
        cb_weight = self.cb_weight if cb_weight is None else cb_weight

        cf_by_item = {c.item_id: c for c in cf_candidates}
        cb_by_item = {c.item_id: c for c in cb_candidates}

        results = []
        for item_id in dict.fromkeys([*cf_by_item, *cb_by_item]):
            cf = cf_by_item.get(item_id)
            cb = cb_by_item.get(item_id)
            cf_score = cf.score if cf else 0.0
            cb_score = cb.score if cb else 0.0
            final = cf_weight * cf_score + cb_weight * cb_score

            present = [c.score for c in (cf, cb) if c is not None]
            reasons = []
            if cf:
                reasons.append(f"Collaborative: {cf.reason}")
            if cb:
                reasons.append(f"Content-based: {cb.reason}")

            # Prefer embedding metadata over the neighbour's interaction row
            source = cb or cf
            results.append(
                Candidate(
                    item_id=item_id,
                    score=final,
                    confidence=min(1.0, sum(present) / len(present)),
                    algorithm=HYBRID,
                    reason="; ".join(reasons),
                    metadata=HybridMetadata(
                        item_type=source.item_type,
                        topics=source.topics,
                        cf_score=cf_score,
                        cb_score=cb_score,
                        hybrid_score=final,
                    ),
                )
            )
        return results
