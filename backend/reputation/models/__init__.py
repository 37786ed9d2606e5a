"""SQLAlchemy models package.

All ORM classes must be registered deterministically so mapper configuration
cannot fail at runtime depending on import order.
"""

# Import all model modules to register mapped classes in SQLAlchemy's registry.

from reputation.models import (  # noqa: F401
    cross_reference_result,
    rating_anomaly,
    reliability_history,
    source,
    source_rating,
    user,
    user_rating_limit,
)
