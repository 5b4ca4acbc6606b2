"""Recommendation request/response schemas (camelCase on the wire)."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RequestContext(CamelModel):
    current_time: Optional[datetime] = None
    user_state: Optional[Literal["focused", "exploring", "learning", "casual"]] = None
    recent_interactions: list[str] = []
    constraints: dict[str, Any] = {}


class RequestFilters(CamelModel):
    content_types: list[str] = []
    topics: list[str] = []
    difficulty: list[str] = []
    max_items: int = Field(20, ge=1, le=100)
    diversity: float = Field(0.0, ge=0.0, le=1.0)


class AlgorithmToggles(CamelModel):
    collaborative: bool = True
    content_based: bool = True
    hybrid: bool = True
    exploration: bool = True
    matrix_factorization: bool = False


class RecommendationRequest(CamelModel):
    user_id: str
    type: Literal["content", "feature", "workflow", "social", "learning_path"] = "content"
    context: RequestContext = RequestContext()
    filters: RequestFilters = RequestFilters()
    algorithms: AlgorithmToggles = AlgorithmToggles()


class RecommendedItem(CamelModel):
    id: str
    type: str
    score: float
    confidence: float
    reason: str
    metadata: dict[str, Any]
    algorithm: str


class GeneratorReport(CamelModel):
    algorithm: str
    status: Literal["ok", "failed", "timeout", "model_unavailable"]
    candidates: int = 0
    error: Optional[str] = None
    elapsed_ms: float = 0.0


class UserProfileSummary(CamelModel):
    total_interactions: int = 0
    avg_weight: float = 0.0
    preferred_types: dict[str, float] = {}


class ResultMetadata(CamelModel):
    total_candidates: int
    filtered_candidates: int
    algorithms_used: list[str]
    processing_time_ms: float
    diversity_score: float
    model_status: Literal["ready", "cold"]
    model_version: Optional[str] = None
    generators: list[GeneratorReport] = []
    user_profile: UserProfileSummary = UserProfileSummary()


class RecommendationResult(CamelModel):
    items: list[RecommendedItem]
    metadata: ResultMetadata


class ReloadResponse(BaseModel):
    status: str
    model_version: Optional[str]
    swapped: bool


class TrainResponse(BaseModel):
    task_id: str
    status: str
    message: str
