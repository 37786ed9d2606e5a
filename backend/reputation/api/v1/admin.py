"""Review and maintenance endpoints (verifiers and admins)."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from reputation.api.deps import get_db_session, get_reputation_policy, parse_uuid
from reputation.models.rating_anomaly import RatingAnomalyMutationError
from reputation.models.source import Source
from reputation.schemas.reputation import (
    AdjudicationRequest,
    AnomalyResponse,
    DecayDetailResponse,
    DecaySummaryResponse,
    ResolveAnomalyRequest,
    TrustScoreResponse,
    UnflagResponse,
)
from reputation.security.auth import require_roles
from reputation.security.roles import Role
from reputation.services.reputation_service import adjudicate_rating, resolve_anomaly, unflag_rating
from scoring.core.decay import apply_reputation_decay
from scoring.core.policy import ReputationPolicy


router = APIRouter()


@router.post(
    "/users/{user_id}/adjudications",
    response_model=TrustScoreResponse,
    dependencies=[Depends(require_roles(Role.VERIFIER, Role.ADMIN))],
)
async def post_adjudication(
    user_id: str,
    body: AdjudicationRequest,
    db: Session = Depends(get_db_session),
    policy: ReputationPolicy = Depends(get_reputation_policy),
) -> TrustScoreResponse:
    """Record whether one of the user's ratings was adjudicated accurate."""
    user = adjudicate_rating(db, parse_uuid(user_id, "user_id"), body.accurate, policy=policy)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found.")
    return TrustScoreResponse(
        user_id=str(user.id),
        trust_score=user.trust_score,
        accurate_ratings=user.accurate_ratings,
        total_ratings_given=user.total_ratings_given,
    )


@router.post(
    "/ratings/{rating_id}/unflag",
    response_model=UnflagResponse,
    dependencies=[Depends(require_roles(Role.ADMIN))],
)
async def post_unflag_rating(
    rating_id: str,
    db: Session = Depends(get_db_session),
    policy: ReputationPolicy = Depends(get_reputation_policy),
) -> UnflagResponse:
    row = unflag_rating(db, parse_uuid(rating_id, "rating_id"), policy=policy)
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Rating not found.")

    source = db.get(Source, row.source_id, populate_existing=True)
    return UnflagResponse(
        rating_id=str(row.id),
        source_id=str(row.source_id),
        is_flagged=row.is_flagged,
        reliability_score=float(source.reliability_score) if source is not None else 0.0,
    )


@router.post(
    "/anomalies/{anomaly_id}/resolve",
    response_model=AnomalyResponse,
    dependencies=[Depends(require_roles(Role.ADMIN))],
)
async def post_resolve_anomaly(
    anomaly_id: str,
    body: ResolveAnomalyRequest,
    db: Session = Depends(get_db_session),
) -> AnomalyResponse:
    try:
        anomaly = resolve_anomaly(db, parse_uuid(anomaly_id, "anomaly_id"), body.action)
    except RatingAnomalyMutationError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    if anomaly is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Anomaly not found.")
    return AnomalyResponse(
        anomaly_id=str(anomaly.id),
        anomaly_type=anomaly.anomaly_type,
        resolved=anomaly.resolved,
        resolution_action=anomaly.resolution_action,
    )


@router.post(
    "/reputation/decay",
    response_model=DecaySummaryResponse,
    dependencies=[Depends(require_roles(Role.ADMIN))],
)
async def post_reputation_decay(
    db: Session = Depends(get_db_session),
    policy: ReputationPolicy = Depends(get_reputation_policy),
) -> DecaySummaryResponse:
    """Run one decay pass now. Safe to repeat; the weekly gate prevents double steps."""
    summary = apply_reputation_decay(db, policy=policy)
    return DecaySummaryResponse(
        processed=summary.processed,
        decayed=summary.decayed,
        failed=summary.failed,
        details=[
            DecayDetailResponse(
                source_id=str(d.source_id),
                name=d.name,
                old_score=d.old_score,
                new_score=d.new_score,
                days_since_last_article=d.days_since_last_article,
                weeks_stale=d.weeks_stale,
            )
            for d in summary.details
        ],
    )
