"""
Core value types — interactions, embeddings, similarities, catalog items and
per-request candidates.

Candidate metadata is a tagged variant: every algorithm carries its own
metadata dataclass, all of which expose item_type / topics / difficulty for
the ranking filters.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Optional, Union

QUALIFYING_INTERACTIONS = frozenset({"complete", "rate", "bookmark"})

COLLABORATIVE = "collaborative_filtering"
CONTENT_BASED = "content_based"
HYBRID = "hybrid"
EXPLORATION = "exploration"
MATRIX_FACTORIZATION = "matrix_factorization"

UNKNOWN_TYPE = "unknown"
DEFAULT_DIFFICULTY = "intermediate"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Interaction:
    user_id: str
    item_id: str
    item_type: str
    interaction_type: str
    weight: Optional[float]
    timestamp: datetime = field(default_factory=_utcnow)
    topics: tuple[str, ...] = ()

    @property
    def is_qualifying(self) -> bool:
        return self.interaction_type in QUALIFYING_INTERACTIONS

    @classmethod
    def from_dict(cls, data: dict) -> "Interaction":
        context = data.get("context") or {}
        timestamp = data.get("timestamp")
        if isinstance(timestamp, str):
            timestamp = datetime.fromisoformat(timestamp)
        return cls(
            user_id=data.get("user_id"),
            item_id=data.get("item_id"),
            item_type=data.get("item_type", UNKNOWN_TYPE),
            interaction_type=data.get("interaction_type", "view"),
            weight=data.get("weight"),
            timestamp=timestamp or _utcnow(),
            topics=tuple(context.get("topics", ())),
        )


@dataclass(frozen=True)
class ItemEmbedding:
    item_id: str
    item_type: str
    embedding: tuple[float, ...]
    topics: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict) -> "ItemEmbedding":
        return cls(
            item_id=data["item_id"],
            item_type=data.get("item_type", UNKNOWN_TYPE),
            embedding=tuple(float(x) for x in data["embedding"]),
            topics=tuple(data.get("topics", ())),
        )


@dataclass(frozen=True)
class UserSimilarity:
    """Unordered user pair; lookups by either member return this record."""

    user_a: str
    user_b: str
    similarity_score: float

    def involves(self, user_id: str) -> bool:
        return user_id in (self.user_a, self.user_b)

    def other(self, user_id: str) -> str:
        return self.user_b if self.user_a == user_id else self.user_a

    @classmethod
    def from_dict(cls, data: dict) -> "UserSimilarity":
        return cls(data["user_a"], data["user_b"], float(data["similarity_score"]))


@dataclass(frozen=True)
class ContentItem:
    id: str
    type: str
    title: str = ""
    topics: tuple[str, ...] = ()
    difficulty: str = DEFAULT_DIFFICULTY

    @classmethod
    def from_dict(cls, data: dict) -> "ContentItem":
        return cls(
            id=data["id"],
            type=data["type"],
            title=data.get("title", ""),
            topics=tuple(data.get("topics", ())),
            difficulty=data.get("difficulty", DEFAULT_DIFFICULTY),
        )


@dataclass(frozen=True)
class UserProfile:
    user_id: str
    total_interactions: int = 0
    avg_weight: float = 0.0
    preferred_types: dict[str, float] = field(default_factory=dict)
    last_updated: datetime = field(default_factory=_utcnow)


def build_user_profile(user_id: str, interactions: list[Interaction]) -> UserProfile:
    """Summarise a user's history: interaction count, mean weight and share per item type."""
    if not interactions:
        return UserProfile(user_id=user_id)

    weights = [i.weight for i in interactions if i.weight is not None]
    type_counts: dict[str, int] = {}
    for interaction in interactions:
        type_counts[interaction.item_type] = type_counts.get(interaction.item_type, 0) + 1

    return UserProfile(
        user_id=user_id,
        total_interactions=len(interactions),
        avg_weight=sum(weights) / len(weights) if weights else 0.0,
        preferred_types={t: count / len(interactions) for t, count in type_counts.items()},
    )


# ── Candidate metadata variants ──


@dataclass(frozen=True)
class CollaborativeMetadata:
    item_type: str = UNKNOWN_TYPE
    topics: tuple[str, ...] = ()
    difficulty: Optional[str] = None
    similar_users: int = 0
    avg_similarity: float = 0.0


@dataclass(frozen=True)
class ContentMetadata:
    item_type: str = UNKNOWN_TYPE
    topics: tuple[str, ...] = ()
    difficulty: Optional[str] = None
    similarity: float = 0.0


@dataclass(frozen=True)
class HybridMetadata:
    item_type: str = UNKNOWN_TYPE
    topics: tuple[str, ...] = ()
    difficulty: Optional[str] = None
    cf_score: float = 0.0
    cb_score: float = 0.0
    hybrid_score: float = 0.0


@dataclass(frozen=True)
class ExplorationMetadata:
    item_type: str = UNKNOWN_TYPE
    topics: tuple[str, ...] = ()
    difficulty: Optional[str] = None
    novelty: float = 0.0
    type_novelty: float = 0.0
    topic_novelty: float = 0.0


@dataclass(frozen=True)
class MatrixFactorizationMetadata:
    item_type: str = UNKNOWN_TYPE
    topics: tuple[str, ...] = ()
    difficulty: Optional[str] = None
    prediction: float = 0.0


CandidateMetadata = Union[
    CollaborativeMetadata,
    ContentMetadata,
    HybridMetadata,
    ExplorationMetadata,
    MatrixFactorizationMetadata,
]


@dataclass(frozen=True)
class Candidate:
    item_id: str
    score: float
    confidence: float
    algorithm: str
    reason: str
    metadata: CandidateMetadata

    @property
    def item_type(self) -> str:
        return self.metadata.item_type or UNKNOWN_TYPE

    @property
    def topics(self) -> tuple[str, ...]:
        return self.metadata.topics

    @property
    def difficulty(self) -> str:
        return self.metadata.difficulty or DEFAULT_DIFFICULTY

    def metadata_dict(self) -> dict:
        data = asdict(self.metadata)
        data["topics"] = list(data["topics"])
        return data
