"""Source reputation endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from reputation.api.deps import get_db_session, get_reputation_policy, parse_uuid, require_clean_session
from reputation.core.errors import NotFoundError, RatingErrorCode
from reputation.repositories.reputation_repo import RatingDTO, ReputationRepository
from reputation.schemas.reputation import (
    CrossReferenceRequest,
    PaginationResponse,
    RateSourceRequest,
    RatingResponse,
    RatingsPageResponse,
    RatingStatsResponse,
    RatingSubmissionResponse,
    ReliabilityHistoryEntryResponse,
    ReputationResponse,
)
from reputation.security.auth import Principal, require_roles
from reputation.security.roles import READ_ROLES, Role
from reputation.services.reputation_service import record_cross_reference, record_new_article, submit_rating
from scoring.core.policy import ReputationPolicy


router = APIRouter()

_ERROR_STATUS = {
    RatingErrorCode.INVALID_RATING: status.HTTP_400_BAD_REQUEST,
    RatingErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    RatingErrorCode.RATE_LIMIT_EXCEEDED: status.HTTP_429_TOO_MANY_REQUESTS,
}


def _rating_response(r: RatingDTO) -> RatingResponse:
    return RatingResponse(
        id=r.id,
        rating=r.rating,
        comment=r.comment,
        weight=r.weight,
        user_name=r.user_name,
        created_at=r.created_at,
        is_flagged=r.is_flagged,
    )


@router.post("/sources/{source_id}/rate", response_model=RatingSubmissionResponse)
async def rate_source(
    source_id: str,
    body: RateSourceRequest,
    response: Response,
    principal: Principal = Depends(require_roles(Role.RATER, Role.ADMIN)),
    db: Session = Depends(get_db_session),
    policy: ReputationPolicy = Depends(get_reputation_policy),
) -> RatingSubmissionResponse:
    """Submit or update the caller's rating for a source."""
    result = submit_rating(db, source_id, principal.sub, body.rating, body.comment, policy=policy)
    if not result.success:
        assert result.error is not None
        raise HTTPException(status_code=_ERROR_STATUS[result.error], detail=result.message)

    assert result.rating is not None
    response.status_code = status.HTTP_200_OK if result.rating.is_update else status.HTTP_201_CREATED
    return RatingSubmissionResponse(
        id=str(result.rating.id),
        rating=result.rating.rating,
        weight=result.rating.weight,
        is_update=result.rating.is_update,
        warning=result.warning,
    )


@router.get(
    "/sources/{source_id}/ratings",
    response_model=RatingsPageResponse,
    dependencies=[Depends(require_roles(*READ_ROLES))],
)
async def list_source_ratings(
    source_id: str,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db_session),
) -> RatingsPageResponse:
    """Ratings newest first, with stats over non-flagged ratings."""
    sid = parse_uuid(source_id, "source_id")
    repo = ReputationRepository(db)
    if await repo.get_source(sid) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Source not found.")

    # One extra row tells whether another page exists.
    page = await repo.get_ratings(sid, limit=limit + 1, offset=offset)
    require_clean_session(db)

    stats = page.stats
    return RatingsPageResponse(
        ratings=[_rating_response(r) for r in page.ratings[:limit]],
        stats=RatingStatsResponse(
            total_ratings=stats.total_ratings,
            average_rating=stats.average_rating,
            weighted_average_rating=stats.weighted_average_rating,
            rating_distribution=stats.rating_distribution,
        ),
        pagination=PaginationResponse(limit=limit, offset=offset, has_more=len(page.ratings) > limit),
    )


@router.get(
    "/sources/{source_id}/reputation",
    response_model=ReputationResponse,
    dependencies=[Depends(require_roles(*READ_ROLES))],
)
async def get_source_reputation(
    source_id: str,
    db: Session = Depends(get_db_session),
    policy: ReputationPolicy = Depends(get_reputation_policy),
) -> ReputationResponse:
    sid = parse_uuid(source_id, "source_id")
    rep = await ReputationRepository(db).get_reputation(sid, policy=policy)
    require_clean_session(db)
    if rep is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Source not found.")

    return ReputationResponse(
        source_id=rep.source_id,
        reliability_score=rep.reliability_score,
        total_ratings=rep.total_ratings,
        average_rating=rep.average_rating,
        weighted_average_rating=rep.weighted_average_rating,
        accurate_claims=rep.accurate_claims,
        total_claims_verified=rep.total_claims_verified,
        accuracy_rate=rep.accuracy_rate,
        is_stale=rep.is_stale,
        last_article_at=rep.last_article_at,
        recent_ratings=[_rating_response(r) for r in rep.recent_ratings],
    )


@router.get(
    "/sources/{source_id}/reliability-history",
    response_model=list[ReliabilityHistoryEntryResponse],
    dependencies=[Depends(require_roles(*READ_ROLES))],
)
async def get_source_reliability_history(
    source_id: str,
    limit: int = Query(50, ge=1, le=100),
    db: Session = Depends(get_db_session),
) -> list[ReliabilityHistoryEntryResponse]:
    """Score changes, most recent first."""
    sid = parse_uuid(source_id, "source_id")
    repo = ReputationRepository(db)
    if await repo.get_source(sid) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Source not found.")

    entries = await repo.get_reliability_history(sid, limit=limit)
    require_clean_session(db)
    return [
        ReliabilityHistoryEntryResponse(
            id=e.id,
            old_score=e.old_score,
            new_score=e.new_score,
            change_reason=e.change_reason,
            change_metadata=e.change_metadata,
            changed_at=e.changed_at,
        )
        for e in entries
    ]


@router.post(
    "/sources/{source_id}/cross-references",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_roles(Role.VERIFIER, Role.ADMIN))],
)
async def post_cross_reference(
    source_id: str,
    body: CrossReferenceRequest,
    db: Session = Depends(get_db_session),
    policy: ReputationPolicy = Depends(get_reputation_policy),
) -> Response:
    """Append a verification verdict for content published by the source."""
    sid = parse_uuid(source_id, "source_id")
    try:
        record_cross_reference(
            db,
            sid,
            body.content_id,
            body.was_accurate,
            body.verification_source,
            confidence=body.confidence,
            claim_id=body.claim_id,
            policy=policy,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/sources/{source_id}/articles",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_roles(Role.ADMIN))],
)
async def post_new_article(source_id: str, db: Session = Depends(get_db_session)) -> Response:
    """Reset the source's staleness clock."""
    if not record_new_article(db, parse_uuid(source_id, "source_id")):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Source not found.")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
