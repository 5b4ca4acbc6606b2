"""Recommendation engine configuration."""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    environment: str = "development"
    model_storage_path: str = "./shared/models"
    model_storage_type: str = "local"  # local | s3

    aws_region: str = "us-east-1"
    aws_s3_bucket: str = "recsys-models"
    aws_endpoint_url: Optional[str] = None  # LocalStack: http://localstack:4566

    # JSON seed for the in-memory repositories
    data_path: Optional[str] = None

    celery_broker_url: str = "redis://redis:6379/1"

    log_level: str = "INFO"
    log_format: str = "json"  # json | console

    # ── Request handling ──
    max_user_id_length: int = 128
    history_limit: int = 1000
    recent_window: int = 20
    recency_penalty: float = 0.7
    default_max_items: int = 20
    generator_timeout_seconds: float = 5.0
    request_timeout_seconds: float = 10.0

    # ── Collaborative filtering ──
    cf_similarity_threshold: float = 0.3
    cf_max_similar_users: int = 50
    cf_min_weight: float = 7.0
    cf_neighbor_interaction_limit: int = 100

    # ── Content-based ──
    cb_similarity_threshold: float = 0.7
    cb_pool_size: int = 200
    cb_min_weight: float = 7.0

    # ── Hybrid ──
    hybrid_cf_weight: float = 0.6
    hybrid_cb_weight: float = 0.4

    # ── Exploration ──
    exploration_weight: float = 0.3
    exploration_pool_size: int = 50

    # ── Matrix factorization scoring ──
    mf_pool_size: int = 1000
    mf_max_candidates: int = 20


@lru_cache()
def get_settings() -> Settings:
    return Settings()
