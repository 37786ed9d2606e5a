"""Rating submission errors.

All three are policy/user-facing conditions, detected before any write.
`submit_rating` converts them into a structured result; they never escape the
engine as process failures.
"""

from __future__ import annotations

from enum import Enum


class RatingErrorCode(str, Enum):
    INVALID_RATING = "invalid_rating"
    NOT_FOUND = "not_found"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"


class RatingError(ValueError):
    """Base error for rejected rating submissions."""

    code: RatingErrorCode = RatingErrorCode.INVALID_RATING


class InvalidRatingError(RatingError):
    """Rating is not an integer within the configured range."""

    code = RatingErrorCode.INVALID_RATING


class NotFoundError(RatingError):
    """Unknown source or user."""

    code = RatingErrorCode.NOT_FOUND


class RateLimitExceededError(RatingError):
    """Daily quota of first-time ratings exhausted."""

    code = RatingErrorCode.RATE_LIMIT_EXCEEDED
