"""Reputation engine baseline schema.

Portable across PostgreSQL (production) and SQLite (test suite): UUIDs use
the generic `Uuid` type and JSON documents become JSONB on PostgreSQL only.
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql


# Revision identifiers, used by Alembic.
revision = "0001_reputation_baseline"
down_revision = None
branch_labels = None
depends_on = None


_JSON = sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), "postgresql")


def _uuid() -> sa.Uuid:
    return sa.Uuid(as_uuid=True)


def _tstz() -> sa.DateTime:
    return sa.DateTime(timezone=True)


def upgrade() -> None:
    # -------------------------------------------------------------------------
    # 1. sources
    # -------------------------------------------------------------------------
    op.create_table(
        "sources",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("reliability_score", sa.Double(), nullable=False),
        sa.Column("last_article_at", _tstz(), nullable=True),
        sa.Column("decay_applied_at", _tstz(), nullable=True),
        sa.Column("created_at", _tstz(), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(
            "reliability_score >= 0 AND reliability_score <= 100",
            name="ck_sources_reliability_score_range",
        ),
    )
    op.create_index("ix_sources_last_article_at", "sources", ["last_article_at"])

    # -------------------------------------------------------------------------
    # 2. users
    # -------------------------------------------------------------------------
    op.create_table(
        "users",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column("name", sa.Text(), nullable=True),
        sa.Column("trust_score", sa.Double(), nullable=False),
        sa.Column("total_ratings_given", sa.Integer(), nullable=False),
        sa.Column("accurate_ratings", sa.Integer(), nullable=False),
        sa.Column("created_at", _tstz(), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("trust_score >= 0.1 AND trust_score <= 3.0", name="ck_users_trust_score_range"),
        sa.CheckConstraint("total_ratings_given >= 0", name="ck_users_total_ratings_given_nonneg"),
        sa.CheckConstraint("accurate_ratings >= 0", name="ck_users_accurate_ratings_nonneg"),
    )

    # -------------------------------------------------------------------------
    # 3. source_ratings (one row per source/user pair)
    # -------------------------------------------------------------------------
    op.create_table(
        "source_ratings",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column("source_id", _uuid(), sa.ForeignKey("sources.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", _uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("weight", sa.Double(), nullable=False),
        sa.Column("is_flagged", sa.Boolean(), nullable=False),
        sa.Column("flag_reason", sa.Text(), nullable=True),
        sa.Column("created_at", _tstz(), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", _tstz(), nullable=True),
        sa.UniqueConstraint("source_id", "user_id", name="uq_source_ratings_source_user"),
        sa.CheckConstraint("rating >= 1 AND rating <= 5", name="ck_source_ratings_rating_range"),
    )
    op.create_index("ix_source_ratings_source_id", "source_ratings", ["source_id"])
    op.create_index("ix_source_ratings_user_id", "source_ratings", ["user_id"])
    op.create_index("ix_source_ratings_created_at", "source_ratings", ["created_at"])

    # -------------------------------------------------------------------------
    # 4. user_rating_limits (daily quota counters)
    # -------------------------------------------------------------------------
    op.create_table(
        "user_rating_limits",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column("user_id", _uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("day", sa.Date(), nullable=False),
        sa.Column("rating_count", sa.Integer(), nullable=False),
        sa.UniqueConstraint("user_id", "day", name="uq_user_rating_limits_user_day"),
    )

    # -------------------------------------------------------------------------
    # 5. cross_reference_results (append-only)
    # -------------------------------------------------------------------------
    op.create_table(
        "cross_reference_results",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column("source_id", _uuid(), sa.ForeignKey("sources.id", ondelete="CASCADE"), nullable=False),
        sa.Column("content_id", _uuid(), nullable=False),
        sa.Column("claim_id", _uuid(), nullable=True),
        sa.Column("was_accurate", sa.Boolean(), nullable=False),
        sa.Column("verification_source", sa.Text(), nullable=True),
        sa.Column("confidence", sa.Double(), nullable=False),
        sa.Column("verified_at", _tstz(), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("confidence >= 0 AND confidence <= 1", name="ck_cross_reference_confidence_range"),
    )
    op.create_index("ix_cross_reference_results_source_id", "cross_reference_results", ["source_id"])
    op.create_index("ix_cross_reference_results_content_id", "cross_reference_results", ["content_id"])

    # -------------------------------------------------------------------------
    # 6. reliability_history (append-only score ledger)
    # -------------------------------------------------------------------------
    op.create_table(
        "reliability_history",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column("source_id", _uuid(), sa.ForeignKey("sources.id", ondelete="CASCADE"), nullable=False),
        sa.Column("old_score", sa.Double(), nullable=False),
        sa.Column("new_score", sa.Double(), nullable=False),
        sa.Column("change_reason", sa.Text(), nullable=False),
        sa.Column("change_metadata", _JSON, nullable=False),
        sa.Column("changed_at", _tstz(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_reliability_history_source_id", "reliability_history", ["source_id"])
    op.create_index("ix_reliability_history_changed_at", "reliability_history", ["changed_at"])

    # -------------------------------------------------------------------------
    # 7. rating_anomalies
    # -------------------------------------------------------------------------
    op.create_table(
        "rating_anomalies",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column("source_id", _uuid(), sa.ForeignKey("sources.id", ondelete="CASCADE"), nullable=False),
        sa.Column("anomaly_type", sa.Text(), nullable=False),
        sa.Column("details", _JSON, nullable=False),
        sa.Column("affected_rating_ids", _JSON, nullable=False),
        sa.Column("detected_at", _tstz(), server_default=sa.func.now(), nullable=False),
        sa.Column("resolved", sa.Boolean(), nullable=False),
        sa.Column("resolution_action", sa.Text(), nullable=True),
    )
    op.create_index("ix_rating_anomalies_source_id", "rating_anomalies", ["source_id"])
    op.create_index("ix_rating_anomalies_detected_at", "rating_anomalies", ["detected_at"])


def downgrade() -> None:
    op.drop_table("rating_anomalies")
    op.drop_table("reliability_history")
    op.drop_table("cross_reference_results")
    op.drop_table("user_rating_limits")
    op.drop_table("source_ratings")
    op.drop_table("users")
    op.drop_table("sources")
