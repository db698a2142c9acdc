"""Create matching tables

Revision ID: 0001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create match_preferences and matches."""
    op.execute("CREATE TYPE gender_preference_enum AS ENUM ('male', 'female', 'any')")
    op.execute("CREATE TYPE target_type_enum AS ENUM ('user', 'property')")
    op.execute("CREATE TYPE match_type_enum AS ENUM ('roommate', 'housing', 'mutual')")
    op.execute(
        "CREATE TYPE match_status_enum AS ENUM "
        "('pending', 'matched', 'rejected', 'expired', 'blocked')"
    )
    op.execute(
        "CREATE TYPE match_action_enum AS ENUM "
        "('none', 'liked', 'passed', 'super_liked')"
    )

    op.create_table(
        "match_preferences",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False, unique=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("max_distance", sa.Integer(), nullable=False, server_default="50"),
        sa.Column("age_min", sa.Integer(), nullable=False, server_default="18"),
        sa.Column("age_max", sa.Integer(), nullable=False, server_default="65"),
        sa.Column(
            "gender_preference",
            postgresql.ENUM("male", "female", "any", name="gender_preference_enum", create_type=False),
            nullable=False,
            server_default="any",
        ),
        sa.Column("budget_min", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("budget_max", sa.Numeric(12, 2), nullable=False, server_default="1000000"),
        sa.Column("budget_flexibility", sa.Integer(), nullable=False, server_default="20"),
        sa.Column("preferred_states", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("preferred_cities", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("preferred_areas", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("location_flexibility", sa.Integer(), nullable=False, server_default="50"),
        sa.Column("lifestyle", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.Column("schedule", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.Column("property_preferences", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.Column("roommate_preferences", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.Column("matching_settings", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.Column("deal_breakers", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("last_active_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("max_distance >= 1 AND max_distance <= 1000", name="check_max_distance_range"),
        sa.CheckConstraint("age_min >= 18 AND age_max <= 100 AND age_min < age_max", name="check_age_range"),
        sa.CheckConstraint("budget_min >= 0 AND budget_min < budget_max", name="check_budget_range"),
        sa.CheckConstraint(
            "budget_flexibility >= 0 AND budget_flexibility <= 100",
            name="check_budget_flexibility",
        ),
        sa.CheckConstraint(
            "location_flexibility >= 0 AND location_flexibility <= 100",
            name="check_location_flexibility",
        ),
    )
    op.create_index("idx_match_preferences_is_active", "match_preferences", ["is_active"])

    action_enum = postgresql.ENUM(
        "none", "liked", "passed", "super_liked",
        name="match_action_enum",
        create_type=False,
    )

    op.create_table(
        "matches",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("target_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "target_type",
            postgresql.ENUM("user", "property", name="target_type_enum", create_type=False),
            nullable=False,
        ),
        sa.Column(
            "match_type",
            postgresql.ENUM("roommate", "housing", "mutual", name="match_type_enum", create_type=False),
            nullable=False,
        ),
        sa.Column(
            "status",
            postgresql.ENUM(
                "pending", "matched", "rejected", "expired", "blocked",
                name="match_status_enum",
                create_type=False,
            ),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("user_action", action_enum, nullable=False, server_default="none"),
        sa.Column("target_action", action_enum, nullable=False, server_default="none"),
        sa.Column("compatibility_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("location_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("budget_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("lifestyle_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("preferences_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("schedule_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("cleanliness_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("social_level_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("location_proximity", sa.Numeric(8, 2), nullable=True),
        sa.Column("budget_compatibility", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("state_match", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("match_reasons", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("common_interests", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("shared_preferences", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_interaction_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("matched_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("view_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("viewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("response_time", sa.Integer(), nullable=True),
        sa.Column("conversation_requested", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "compatibility_score >= 0 AND compatibility_score <= 100",
            name="check_compatibility_score_range",
        ),
        sa.UniqueConstraint("user_id", "target_id", "target_type", name="uq_match_user_target"),
    )
    op.create_index("idx_matches_user_status", "matches", ["user_id", "status"])
    op.create_index("idx_matches_target", "matches", ["target_id", "target_type"])
    op.create_index("idx_matches_status_expires", "matches", ["status", "expires_at"])
    op.create_index("idx_matches_user_created", "matches", ["user_id", "created_at"])


def downgrade() -> None:
    """Drop matching tables."""
    op.drop_table("matches")
    op.drop_table("match_preferences")

    op.execute("DROP TYPE IF EXISTS match_action_enum")
    op.execute("DROP TYPE IF EXISTS match_status_enum")
    op.execute("DROP TYPE IF EXISTS match_type_enum")
    op.execute("DROP TYPE IF EXISTS target_type_enum")
    op.execute("DROP TYPE IF EXISTS gender_preference_enum")
