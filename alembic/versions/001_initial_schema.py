"""Initial schema — all 10 Verity match-lifecycle tables.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        server_default=sa.func.now(),
        nullable=False,
    )


def _profile_fk(name: str) -> sa.Column:
    return sa.Column(
        name,
        postgresql.UUID(as_uuid=True),
        sa.ForeignKey("profiles.user_id", ondelete="CASCADE"),
        nullable=False,
    )


def upgrade() -> None:
    # ── 1. profiles ─────────────────────────────────────────────────
    op.create_table(
        "profiles",
        sa.Column("user_id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("display_name", sa.String, nullable=False),
        sa.Column("age", sa.Integer, nullable=False),
        sa.Column("gender", sa.String, nullable=False),
        sa.Column(
            "interested_in",
            postgresql.JSONB,
            nullable=False,
            comment="Genders the user wants to see",
        ),
        sa.Column("bio", sa.Text, nullable=True),
        sa.Column(
            "photos",
            postgresql.JSONB,
            nullable=False,
            comment="Ordered array of photo URLs",
        ),
        sa.Column("intro_video_url", sa.String, nullable=True),
        sa.Column("verification_video_url", sa.String, nullable=True),
        sa.Column("verified", sa.Boolean, server_default=sa.false(), nullable=False),
        sa.Column("latitude", sa.Float, nullable=True),
        sa.Column("longitude", sa.Float, nullable=True),
        sa.Column("height_cm", sa.Integer, nullable=True),
        sa.Column("interests", postgresql.JSONB, nullable=False),
        sa.Column("values", postgresql.JSONB, nullable=False),
        sa.Column("last_active", sa.DateTime(timezone=True), nullable=True),
        sa.Column("boost_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("boost_count", sa.Integer, server_default="0", nullable=False),
        sa.Column(
            "premium_until",
            sa.DateTime(timezone=True),
            nullable=True,
            comment="Cache of billing state; rebuilt from the subscription source",
        ),
        sa.Column("is_active", sa.Boolean, server_default=sa.true(), nullable=False),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_profiles_lat_lon", "profiles", ["latitude", "longitude"])

    # ── 2. interest_events ──────────────────────────────────────────
    op.create_table(
        "interest_events",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        _profile_fk("from_user_id"),
        _profile_fk("to_user_id"),
        _created_at(),
        sa.UniqueConstraint("from_user_id", "to_user_id", name="uq_interest_pair"),
    )
    op.create_index("ix_interest_events_to_user", "interest_events", ["to_user_id"])

    # ── 3. seen_records ─────────────────────────────────────────────
    op.create_table(
        "seen_records",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        _profile_fk("user_id"),
        _profile_fk("seen_user_id"),
        sa.Column("action", sa.String, nullable=False, comment="interest / pass"),
        sa.Column("seen_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("user_id", "seen_user_id", name="uq_seen_pair"),
    )
    op.create_index(
        "ix_seen_records_user_action_seen_at",
        "seen_records",
        ["user_id", "action", "seen_at"],
    )

    # ── 4. matches ──────────────────────────────────────────────────
    op.create_table(
        "matches",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        _profile_fk("user1_id"),
        _profile_fk("user2_id"),
        sa.Column("pair_key", sa.String, nullable=False),
        sa.Column("both_interested", sa.Boolean, server_default=sa.true(), nullable=False),
        sa.Column(
            "chat_unlocked",
            sa.Boolean,
            server_default=sa.false(),
            nullable=False,
            comment="One-way: false -> true after a mutual-yes Verity-Date",
        ),
        _created_at(),
        sa.UniqueConstraint("pair_key", name="uq_match_pair"),
    )

    # ── 5. verity_dates ─────────────────────────────────────────────
    op.create_table(
        "verity_dates",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "match_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("matches.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "room_url",
            sa.String,
            nullable=True,
            comment="Set at most once, on provisioning",
        ),
        sa.Column("room_name", sa.String, nullable=True),
        sa.Column("session_ends_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("session_closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("user1_status", sa.String, server_default="pending", nullable=False),
        sa.Column("user2_status", sa.String, server_default="pending", nullable=False),
        sa.Column("user1_preferred_times", postgresql.JSONB, nullable=True),
        sa.Column("user2_preferred_times", postgresql.JSONB, nullable=True),
        sa.Column(
            "user1_feedback",
            sa.String,
            nullable=True,
            comment="yes / maybe / no, write-once",
        ),
        sa.Column(
            "user2_feedback",
            sa.String,
            nullable=True,
            comment="yes / maybe / no, write-once",
        ),
        sa.Column("completed", sa.Boolean, server_default=sa.false(), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )
    # At most one active (not completed) date per match.
    op.create_index(
        "uq_verity_dates_active_match",
        "verity_dates",
        ["match_id"],
        unique=True,
        postgresql_where=sa.text("NOT completed"),
    )
    op.create_index(
        "ix_verity_dates_session_ends_at", "verity_dates", ["session_ends_at"]
    )

    # ── 6. video_call_errors ────────────────────────────────────────
    op.create_table(
        "video_call_errors",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("verity_date_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("match_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("user1_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("user2_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("error_message", sa.Text, nullable=False),
        sa.Column("attempts", sa.Integer, nullable=True),
        _created_at(),
    )

    # ── 7. messages ─────────────────────────────────────────────────
    op.create_table(
        "messages",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "match_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("matches.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _profile_fk("sender_id"),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )
    op.create_index(
        "ix_messages_match_created", "messages", ["match_id", "created_at"]
    )

    # ── 8. blocked_users ────────────────────────────────────────────
    op.create_table(
        "blocked_users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        _profile_fk("blocker_id"),
        _profile_fk("blocked_id"),
        _created_at(),
        sa.UniqueConstraint("blocker_id", "blocked_id", name="uq_block_pair"),
    )
    op.create_index("ix_blocked_users_blocked_id", "blocked_users", ["blocked_id"])

    # ── 9. reports ──────────────────────────────────────────────────
    op.create_table(
        "reports",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        _profile_fk("reporter_id"),
        _profile_fk("reported_user_id"),
        sa.Column(
            "reason",
            sa.String,
            nullable=False,
            comment="inappropriate / harassment / fake / underage / other",
        ),
        sa.Column("details", sa.Text, nullable=True),
        sa.Column(
            "context",
            sa.String,
            nullable=True,
            comment="Where the report was filed, e.g. verity_date_feedback",
        ),
        sa.Column("status", sa.String, server_default="pending", nullable=False),
        _created_at(),
    )

    # ── 10. notifications ───────────────────────────────────────────
    op.create_table(
        "notifications",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("type", sa.String, nullable=False),
        sa.Column("title", sa.String, nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("related_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("read", sa.Boolean, server_default=sa.false(), nullable=False),
        _created_at(),
    )
    op.create_index(
        "ix_notifications_user_created", "notifications", ["user_id", "created_at"]
    )


def downgrade() -> None:
    # Drop in reverse order (children / dependents first).
    op.drop_index("ix_notifications_user_created", table_name="notifications")
    op.drop_table("notifications")

    op.drop_table("reports")

    op.drop_index("ix_blocked_users_blocked_id", table_name="blocked_users")
    op.drop_table("blocked_users")

    op.drop_index("ix_messages_match_created", table_name="messages")
    op.drop_table("messages")

    op.drop_table("video_call_errors")

    op.drop_index("ix_verity_dates_session_ends_at", table_name="verity_dates")
    op.drop_index("uq_verity_dates_active_match", table_name="verity_dates")
    op.drop_table("verity_dates")

    op.drop_table("matches")

    op.drop_index(
        "ix_seen_records_user_action_seen_at", table_name="seen_records"
    )
    op.drop_table("seen_records")

    op.drop_index("ix_interest_events_to_user", table_name="interest_events")
    op.drop_table("interest_events")

    op.drop_index("ix_profiles_lat_lon", table_name="profiles")
    op.drop_table("profiles")
