"""
Data-access collaborators consumed by the generators.

Persistence lives outside this service; generators only see the protocols
below. `InMemoryStore` implements all four and can be seeded from a JSON
file (settings.data_path) for development and tests.
"""

from __future__ import annotations

import json
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator, Optional, Protocol

import structlog

from recommendation_engine.domain import (
    ContentItem,
    Interaction,
    ItemEmbedding,
    UserSimilarity,
)
from recommendation_engine.errors import DataSourceError

logger = structlog.get_logger()


class InteractionRepository(Protocol):
    def recent_for_user(self, user_id: str, limit: int = 1000) -> list[Interaction]:
        """A user's interactions, most recent first."""

    def for_users(
        self,
        user_ids: Iterable[str],
        exclude_item_ids: Iterable[str],
        interaction_types: Iterable[str],
        min_weight: float,
        limit: int = 100,
    ) -> list[Interaction]:
        ...

    def for_training(
        self, interaction_types: Iterable[str], min_weight: float, limit: int = 10000
    ) -> list[Interaction]:
        ...


class ItemEmbeddingRepository(Protocol):
    def by_ids(self, item_ids: Iterable[str]) -> list[ItemEmbedding]:
        ...

    def excluding(self, item_ids: Iterable[str], limit: int = 200) -> list[ItemEmbedding]:
        ...


class UserSimilarityRepository(Protocol):
    def similar_to(self, user_id: str, min_score: float, limit: int = 50) -> list[UserSimilarity]:
        """Pairs involving user_id with score >= min_score, strongest first."""


class ContentCatalog(Protocol):
    def novel_items(
        self, known_types: Iterable[str], known_topics: Iterable[str], limit: int = 50
    ) -> list[ContentItem]:
        """Items whose type is unknown to the user or that carry an unknown topic."""


@contextmanager
def fetching(source: str) -> Iterator[None]:
    """Re-raise any collaborator failure as a DataSourceError tagged with its source."""
    try:
        yield
    except DataSourceError:
        raise
    except Exception as e:
        raise DataSourceError(source, str(e)) from e


class InMemoryStore:
    """Dictionary-backed implementation of every repository protocol."""

    def __init__(
        self,
        interactions: Optional[Iterable[Interaction]] = None,
        embeddings: Optional[Iterable[ItemEmbedding]] = None,
        similarities: Optional[Iterable[UserSimilarity]] = None,
        catalog: Optional[Iterable[ContentItem]] = None,
    ):
        self.interactions: list[Interaction] = list(interactions or [])
        self.embeddings: dict[str, ItemEmbedding] = {e.item_id: e for e in embeddings or []}
        self.similarities: list[UserSimilarity] = list(similarities or [])
        self.catalog: dict[str, ContentItem] = {c.id: c for c in catalog or []}

    @classmethod
    def from_json(cls, path: str | Path) -> "InMemoryStore":
        with open(path) as f:
            data = json.load(f)
        store = cls(
            interactions=[Interaction.from_dict(d) for d in data.get("interactions", [])],
            embeddings=[ItemEmbedding.from_dict(d) for d in data.get("embeddings", [])],
            similarities=[UserSimilarity.from_dict(d) for d in data.get("similarities", [])],
            catalog=[ContentItem.from_dict(d) for d in data.get("catalog", [])],
        )
        logger.info(
            "in_memory_store_loaded",
            path=str(path),
            interactions=len(store.interactions),
            embeddings=len(store.embeddings),
            similarities=len(store.similarities),
            catalog=len(store.catalog),
        )
        return store

    # ── InteractionRepository ──

    def recent_for_user(self, user_id: str, limit: int = 1000) -> list[Interaction]:
        rows = [i for i in self.interactions if i.user_id == user_id]
        rows.sort(key=lambda i: i.timestamp, reverse=True)
        return rows[:limit]

    def for_users(
        self,
        user_ids: Iterable[str],
        exclude_item_ids: Iterable[str],
        interaction_types: Iterable[str],
        min_weight: float,
        limit: int = 100,
    ) -> list[Interaction]:
        users = set(user_ids)
        excluded = set(exclude_item_ids)
        types = set(interaction_types)
        rows = [
            i
            for i in self.interactions
            if i.user_id in users
            and i.item_id not in excluded
            and i.interaction_type in types
            and i.weight is not None
            and i.weight >= min_weight
        ]
        rows.sort(key=lambda i: i.timestamp, reverse=True)
        return rows[:limit]

    def for_training(
        self, interaction_types: Iterable[str], min_weight: float, limit: int = 10000
    ) -> list[Interaction]:
        types = set(interaction_types)
        rows = [
            i
            for i in self.interactions
            if i.interaction_type in types and (i.weight is None or i.weight >= min_weight)
        ]
        return rows[:limit]

    # ── ItemEmbeddingRepository ──

    def by_ids(self, item_ids: Iterable[str]) -> list[ItemEmbedding]:
        return [self.embeddings[i] for i in dict.fromkeys(item_ids) if i in self.embeddings]

    def excluding(self, item_ids: Iterable[str], limit: int = 200) -> list[ItemEmbedding]:
        excluded = set(item_ids)
        pool = [e for item_id, e in self.embeddings.items() if item_id not in excluded]
        return pool[:limit]

    # ── UserSimilarityRepository ──

    def similar_to(self, user_id: str, min_score: float, limit: int = 50) -> list[UserSimilarity]:
        rows = [
            s for s in self.similarities if s.involves(user_id) and s.similarity_score >= min_score
        ]
        rows.sort(key=lambda s: s.similarity_score, reverse=True)
        return rows[:limit]

    # ── ContentCatalog ──

    def novel_items(
        self, known_types: Iterable[str], known_topics: Iterable[str], limit: int = 50
    ) -> list[ContentItem]:
        types = set(known_types)
        topics = set(known_topics)
        rows = [
            item
            for item in self.catalog.values()
            if item.type not in types or any(t not in topics for t in item.topics)
        ]
        return rows[:limit]
