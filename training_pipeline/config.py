"""Training pipeline configuration."""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    environment: str = "development"

    redis_host: str = "redis"
    redis_port: int = 6379
    redis_password: str = "changeme"

    celery_broker_url: str = "redis://redis:6379/1"
    celery_result_backend: str = "redis://redis:6379/2"

    model_storage_path: str = "./shared/models"
    model_storage_type: str = "local"  # local | s3

    aws_region: str = "us-east-1"
    aws_s3_bucket: str = "recsys-models"
    aws_endpoint_url: Optional[str] = None  # LocalStack: http://localstack:4566

    recommendation_engine_url: str = "http://recommendation_engine:8001"

    # JSON seed for the in-memory interaction repository
    data_path: Optional[str] = None

    log_level: str = "INFO"
    log_format: str = "json"

    # Hyperparameters
    mf_factors: int = 50
    mf_learning_rate: float = 0.01
    mf_regularization: float = 0.02
    mf_iterations: int = 100
    mf_tolerance: float = 0.0  # 0 disables early stopping
    mf_seed: Optional[int] = None

    training_min_weight: float = 5.0
    training_interaction_limit: int = 10000
    training_timeout_seconds: float = 3600.0
    retrain_interval_seconds: float = 86400.0

    @property
    def redis_dsn(self) -> str:
        return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}/0"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
