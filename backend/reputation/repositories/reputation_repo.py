"""Reputation repository (read-only)."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Sequence

from sqlalchemy import Integer, Select, case, func, select

from reputation.core.base import ensure_utc, utc_now
from reputation.models.cross_reference_result import CrossReferenceResult
from reputation.models.reliability_history import ReliabilityHistory
from reputation.models.source import Source
from reputation.models.source_rating import SourceRating
from reputation.models.user import User
from reputation.repositories.base import BaseRepository
from scoring.core.policy import ReputationPolicy, get_policy


ANONYMOUS = "Anonymous"


@dataclass(frozen=True, slots=True)
class RatingDTO:
    id: str
    rating: int
    comment: Optional[str]
    weight: float
    user_name: str
    created_at: datetime
    is_flagged: bool


@dataclass(frozen=True, slots=True)
class RatingStatsDTO:
    total_ratings: int
    average_rating: float
    weighted_average_rating: float
    rating_distribution: dict[int, int]


@dataclass(frozen=True, slots=True)
class RatingsPageDTO:
    ratings: list[RatingDTO]
    stats: RatingStatsDTO


@dataclass(frozen=True, slots=True)
class ReputationDTO:
    source_id: str
    reliability_score: float
    total_ratings: int
    average_rating: float
    weighted_average_rating: float
    accurate_claims: int
    total_claims_verified: int
    accuracy_rate: float
    is_stale: bool
    last_article_at: Optional[datetime]
    recent_ratings: list[RatingDTO]


@dataclass(frozen=True, slots=True)
class HistoryEntryDTO:
    id: str
    old_score: float
    new_score: float
    change_reason: str
    change_metadata: dict
    changed_at: datetime


class ReputationRepository(BaseRepository[Source]):
    """Read-only access to ratings, reputation and the score ledger."""

    async def get_source(self, source_id: uuid.UUID) -> Optional[Source]:
        stmt: Select = select(Source).where(Source.id == source_id)
        return (await self._execute(stmt)).scalars().first()

    async def get_ratings(self, source_id: uuid.UUID, *, limit: int = 20, offset: int = 0) -> RatingsPageDTO:
        """Page of ratings (newest first, flagged included) plus stats over non-flagged ones."""
        stmt: Select = (
            select(SourceRating, User.name)
            .outerjoin(User, SourceRating.user_id == User.id)
            .where(SourceRating.source_id == source_id)
            .order_by(SourceRating.created_at.desc(), SourceRating.id)
            .limit(limit)
            .offset(offset)
        )
        rows = (await self._execute(stmt)).all()
        ratings = [_to_rating_dto(r, name) for r, name in rows]
        return RatingsPageDTO(ratings=ratings, stats=await self.get_rating_stats(source_id))

    async def get_rating_stats(self, source_id: uuid.UUID) -> RatingStatsDTO:
        active = (SourceRating.source_id == source_id, SourceRating.is_flagged.is_(False))

        stats_stmt: Select = select(
            func.count(SourceRating.id),
            func.avg(SourceRating.rating),
            func.sum(SourceRating.rating * SourceRating.weight),
            func.sum(SourceRating.weight),
        ).where(*active)
        total, avg_rating, weighted_sum, weight_sum = (await self._execute(stats_stmt)).one()

        dist_stmt: Select = (
            select(SourceRating.rating, func.count(SourceRating.id))
            .where(*active)
            .group_by(SourceRating.rating)
        )
        distribution = {value: 0 for value in range(1, 6)}
        for value, count in (await self._execute(dist_stmt)).all():
            distribution[int(value)] = int(count)

        weighted_avg = float(weighted_sum) / float(weight_sum) if weight_sum and float(weight_sum) > 0 else 0.0
        return RatingStatsDTO(
            total_ratings=int(total or 0),
            average_rating=float(avg_rating or 0.0),
            weighted_average_rating=weighted_avg,
            rating_distribution=distribution,
        )

    async def get_reputation(
        self,
        source_id: uuid.UUID,
        *,
        now: Optional[datetime] = None,
        policy: Optional[ReputationPolicy] = None,
    ) -> Optional[ReputationDTO]:
        """Full reputation view for a source, or None if the source is unknown."""
        policy = policy or get_policy()
        now = now or utc_now()

        source = await self.get_source(source_id)
        if source is None:
            return None

        page = await self.get_ratings(source_id, limit=policy.reputation.recent_ratings, offset=0)

        accurate = func.sum(case((CrossReferenceResult.was_accurate.is_(True), 1), else_=0), type_=Integer)
        claims_stmt: Select = select(func.count(CrossReferenceResult.id), accurate).where(
            CrossReferenceResult.source_id == source_id
        )
        total_claims, accurate_claims = (await self._execute(claims_stmt)).one()
        total_claims = int(total_claims or 0)
        accurate_claims = int(accurate_claims or 0)

        last_article_at = ensure_utc(source.last_article_at) if source.last_article_at else None
        is_stale = last_article_at is None or (now - last_article_at) > timedelta(days=policy.decay.stale_days)

        return ReputationDTO(
            source_id=str(source.id),
            reliability_score=float(source.reliability_score),
            total_ratings=page.stats.total_ratings,
            average_rating=page.stats.average_rating,
            weighted_average_rating=page.stats.weighted_average_rating,
            accurate_claims=accurate_claims,
            total_claims_verified=total_claims,
            accuracy_rate=accurate_claims / total_claims if total_claims > 0 else 0.0,
            is_stale=is_stale,
            last_article_at=last_article_at,
            recent_ratings=page.ratings,
        )

    async def get_reliability_history(self, source_id: uuid.UUID, *, limit: int = 50) -> Sequence[HistoryEntryDTO]:
        """Most recent score changes first."""
        stmt: Select = (
            select(ReliabilityHistory)
            .where(ReliabilityHistory.source_id == source_id)
            .order_by(ReliabilityHistory.changed_at.desc(), ReliabilityHistory.id)
            .limit(limit)
        )
        rows = (await self._execute(stmt)).scalars().all()
        return [_to_history_dto(r) for r in rows]


def _to_rating_dto(m: SourceRating, user_name: Optional[str]) -> RatingDTO:
    return RatingDTO(
        id=str(m.id),
        rating=int(m.rating),
        comment=m.comment,
        weight=float(m.weight),
        user_name=user_name or ANONYMOUS,
        created_at=ensure_utc(m.created_at),
        is_flagged=bool(m.is_flagged),
    )


def _to_history_dto(m: ReliabilityHistory) -> HistoryEntryDTO:
    return HistoryEntryDTO(
        id=str(m.id),
        old_score=float(m.old_score),
        new_score=float(m.new_score),
        change_reason=m.change_reason,
        change_metadata=dict(m.change_metadata or {}),
        changed_at=ensure_utc(m.changed_at),
    )
