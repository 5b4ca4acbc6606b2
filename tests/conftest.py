"""Shared test configuration and fixtures."""

from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Ensure the project root is on sys.path so both service packages resolve
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from recommendation_engine.config import Settings  # noqa: E402
from recommendation_engine.domain import (  # noqa: E402
    ContentItem,
    Interaction,
    ItemEmbedding,
    UserSimilarity,
)
from recommendation_engine.model_store import ModelRegistry  # noqa: E402
from recommendation_engine.orchestrator import RecommendationOrchestrator  # noqa: E402
from recommendation_engine.repositories import InMemoryStore  # noqa: E402

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def make_interaction(
    user_id,
    item_id,
    weight,
    interaction_type="rate",
    item_type="article",
    topics=(),
    minutes_ago=0,
):
    return Interaction(
        user_id=user_id,
        item_id=item_id,
        item_type=item_type,
        interaction_type=interaction_type,
        weight=weight,
        timestamp=NOW - timedelta(minutes=minutes_ago),
        topics=tuple(topics),
    )


@pytest.fixture
def interaction():
    return make_interaction


@pytest.fixture
def store() -> InMemoryStore:
    """
    Small learning-content world:

    alice liked a1; bob (similarity 0.9) and carol (0.5) liked other items.
    Embeddings are 4-dimensional; a2 and c1 sit close to a1.
    """
    return InMemoryStore(
        interactions=[
            make_interaction("alice", "a1", 9, "rate", "article", ["python"], minutes_ago=5),
            make_interaction("bob", "a1", 9, "rate", "article", ["python"], minutes_ago=50),
            make_interaction("bob", "c1", 8, "complete", "course", ["python", "data"], minutes_ago=40),
            make_interaction("bob", "v1", 7, "bookmark", "video", ["cooking"], minutes_ago=30),
            make_interaction("bob", "p1", 10, "view", "podcast", ["history"], minutes_ago=20),
            make_interaction("carol", "a2", 10, "rate", "article", ["python", "testing"], minutes_ago=10),
        ],
        embeddings=[
            ItemEmbedding("a1", "article", (1.0, 0.0, 0.0, 0.0), ("python",)),
            ItemEmbedding("a2", "article", (0.9, 0.1, 0.0, 0.0), ("python", "testing")),
            ItemEmbedding("v1", "video", (0.0, 1.0, 0.0, 0.0), ("cooking",)),
            ItemEmbedding("c1", "course", (0.95, 0.0, 0.05, 0.0), ("python", "data")),
            ItemEmbedding("p1", "podcast", (0.0, 0.0, 1.0, 0.0), ("history",)),
        ],
        similarities=[
            UserSimilarity("alice", "bob", 0.9),
            UserSimilarity("carol", "alice", 0.5),
            UserSimilarity("bob", "carol", 0.2),
        ],
        catalog=[
            ContentItem("a1", "article", "Intro to Python", ("python",), "beginner"),
            ContentItem("a2", "article", "Testing Python", ("python", "testing"), "intermediate"),
            ContentItem("v1", "video", "Knife Skills", ("cooking",), "beginner"),
            ContentItem("c1", "course", "Data with Python", ("python", "data"), "advanced"),
            ContentItem("p1", "podcast", "Rome in 10 Episodes", ("history",), "beginner"),
        ],
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(generator_timeout_seconds=2.0, request_timeout_seconds=5.0)


@pytest.fixture
def registry() -> ModelRegistry:
    return ModelRegistry(store=None)


@pytest.fixture
def orchestrator(store, registry, settings) -> RecommendationOrchestrator:
    return RecommendationOrchestrator(
        interactions=store,
        embeddings=store,
        similarities=store,
        catalog=store,
        registry=registry,
        settings=settings,
    )
