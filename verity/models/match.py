"""
Verity — Match and Verity-Date models.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    false,
    func,
    text,
    true,
)
from sqlalchemy.orm import Mapped, mapped_column

from verity.database import Base, JSONType, UTCDateTime, utcnow

FEEDBACK_VERDICTS = ("yes", "maybe", "no")
PARTICIPANT_STATUSES = ("pending", "accepted", "maybe_later")


def pair_key_for(user_a_id: uuid.UUID, user_b_id: uuid.UUID) -> str:
    """Canonical key of an unordered pair; backs the one-match-per-pair constraint."""
    low, high = sorted([str(user_a_id), str(user_b_id)])
    return f"{low}:{high}"


class Match(Base):
    __tablename__ = "matches"
    __table_args__ = (
        UniqueConstraint("pair_key", name="uq_match_pair"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user1_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("profiles.user_id", ondelete="CASCADE"), nullable=False
    )
    user2_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("profiles.user_id", ondelete="CASCADE"), nullable=False
    )
    pair_key: Mapped[str] = mapped_column(String, nullable=False)
    both_interested: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default=true(), nullable=False
    )
    chat_unlocked: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        server_default=false(),
        nullable=False,
        comment="One-way: false -> true after a mutual-yes Verity-Date",
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, server_default=func.now(), nullable=False
    )

    def has_participant(self, user_id: uuid.UUID) -> bool:
        return user_id in (self.user1_id, self.user2_id)

    def role_of(self, user_id: uuid.UUID) -> str:
        """Return ``"user1"`` or ``"user2"``; raises ``ValueError`` for outsiders."""
        if user_id == self.user1_id:
            return "user1"
        if user_id == self.user2_id:
            return "user2"
        raise ValueError(f"User {user_id} is not part of match {self.id}")

    def partner_of(self, user_id: uuid.UUID) -> uuid.UUID:
        return self.user2_id if user_id == self.user1_id else self.user1_id

    def __repr__(self) -> str:
        return (
            f"<Match {self.user1_id} <-> {self.user2_id} "
            f"unlocked={self.chat_unlocked}>"
        )


class VerityDate(Base):
    __tablename__ = "verity_dates"
    __table_args__ = (
        # At most one active (not completed) date per match.
        Index(
            "uq_verity_dates_active_match",
            "match_id",
            unique=True,
            postgresql_where=text("NOT completed"),
            sqlite_where=text("NOT completed"),
        ),
        Index("ix_verity_dates_session_ends_at", "session_ends_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    match_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("matches.id", ondelete="CASCADE"), nullable=False
    )
    scheduled_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    room_url: Mapped[str | None] = mapped_column(
        String, nullable=True, comment="Set at most once, on provisioning"
    )
    room_name: Mapped[str | None] = mapped_column(String, nullable=True)
    session_ends_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    session_closed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    user1_status: Mapped[str] = mapped_column(
        String, default="pending", server_default="pending", nullable=False
    )
    user2_status: Mapped[str] = mapped_column(
        String, default="pending", server_default="pending", nullable=False
    )
    user1_preferred_times: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    user2_preferred_times: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    user1_feedback: Mapped[str | None] = mapped_column(
        String, nullable=True, comment="yes / maybe / no, write-once"
    )
    user2_feedback: Mapped[str | None] = mapped_column(
        String, nullable=True, comment="yes / maybe / no, write-once"
    )
    completed: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=false(), nullable=False
    )
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, server_default=func.now(), nullable=False
    )

    @property
    def both_feedback_present(self) -> bool:
        return self.user1_feedback is not None and self.user2_feedback is not None

    @property
    def is_mutual_yes(self) -> bool:
        return self.user1_feedback == "yes" and self.user2_feedback == "yes"

    def __repr__(self) -> str:
        return (
            f"<VerityDate match={self.match_id} room={self.room_url!r} "
            f"completed={self.completed}>"
        )


class VideoCallError(Base):
    """Remediation log written when room provisioning exhausts its retries."""

    __tablename__ = "video_call_errors"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    verity_date_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    match_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    user1_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    user2_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    error_message: Mapped[str] = mapped_column(Text, nullable=False)
    attempts: Mapped[int | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, server_default=func.now(), nullable=False
    )
