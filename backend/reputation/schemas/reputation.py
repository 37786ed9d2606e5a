"""Schemas for source reputation endpoints."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class RateSourceRequest(BaseModel):
    # Strict: 3.0 or "3" is not a rating.
    model_config = ConfigDict(strict=True)

    rating: int
    comment: Optional[str] = Field(None, max_length=2000)


class RatingSubmissionResponse(BaseModel):
    id: str
    rating: int
    weight: float
    is_update: bool
    warning: Optional[str] = None


class RatingResponse(BaseModel):
    id: str
    rating: int = Field(ge=1, le=5)
    comment: Optional[str] = None
    weight: float
    user_name: str
    created_at: datetime
    is_flagged: bool


class RatingStatsResponse(BaseModel):
    total_ratings: int
    average_rating: float
    weighted_average_rating: float
    rating_distribution: dict[int, int]


class PaginationResponse(BaseModel):
    limit: int
    offset: int
    has_more: bool


class RatingsPageResponse(BaseModel):
    ratings: list[RatingResponse] = Field(default_factory=list)
    stats: RatingStatsResponse
    pagination: PaginationResponse


class ReputationResponse(BaseModel):
    source_id: str
    reliability_score: float = Field(ge=0, le=100)
    total_ratings: int
    average_rating: float
    weighted_average_rating: float
    accurate_claims: int
    total_claims_verified: int
    accuracy_rate: float = Field(ge=0, le=1)
    is_stale: bool
    last_article_at: Optional[datetime] = None
    recent_ratings: list[RatingResponse] = Field(default_factory=list)


class ReliabilityHistoryEntryResponse(BaseModel):
    id: str
    old_score: float
    new_score: float
    change_reason: str
    change_metadata: dict = Field(default_factory=dict)
    changed_at: datetime


class CrossReferenceRequest(BaseModel):
    content_id: uuid.UUID
    was_accurate: bool
    verification_source: Optional[str] = Field(None, max_length=200)
    confidence: float = Field(0.5, ge=0, le=1)
    claim_id: Optional[uuid.UUID] = None


class AdjudicationRequest(BaseModel):
    accurate: bool


class TrustScoreResponse(BaseModel):
    user_id: str
    trust_score: float
    accurate_ratings: int
    total_ratings_given: int


class UnflagResponse(BaseModel):
    rating_id: str
    source_id: str
    is_flagged: bool
    reliability_score: float


class ResolveAnomalyRequest(BaseModel):
    action: str = Field(min_length=1, max_length=200)


class AnomalyResponse(BaseModel):
    anomaly_id: str
    anomaly_type: str
    resolved: bool
    resolution_action: Optional[str] = None


class DecayDetailResponse(BaseModel):
    source_id: str
    name: str
    old_score: float
    new_score: float
    days_since_last_article: int
    weeks_stale: int


class DecaySummaryResponse(BaseModel):
    processed: int
    decayed: int
    failed: int
    details: list[DecayDetailResponse] = Field(default_factory=list)
