"""
Verity — Interest and Seen models.

``InterestEvent`` is an immutable directional edge; ``SeenRecord`` is the
per-user memory of evaluated candidates (one row per pair, overwritten on
re-evaluation so a pass can be undone).
"""

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from verity.database import Base, UTCDateTime, utcnow

SEEN_ACTIONS = ("interest", "pass")


class InterestEvent(Base):
    __tablename__ = "interest_events"
    __table_args__ = (
        UniqueConstraint("from_user_id", "to_user_id", name="uq_interest_pair"),
        Index("ix_interest_events_to_user", "to_user_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    from_user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("profiles.user_id", ondelete="CASCADE"), nullable=False
    )
    to_user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("profiles.user_id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<InterestEvent {self.from_user_id} -> {self.to_user_id}>"


class SeenRecord(Base):
    __tablename__ = "seen_records"
    __table_args__ = (
        UniqueConstraint("user_id", "seen_user_id", name="uq_seen_pair"),
        Index("ix_seen_records_user_action_seen_at", "user_id", "action", "seen_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("profiles.user_id", ondelete="CASCADE"), nullable=False
    )
    seen_user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("profiles.user_id", ondelete="CASCADE"), nullable=False
    )
    action: Mapped[str] = mapped_column(
        String, nullable=False, comment="interest / pass"
    )
    seen_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<SeenRecord {self.user_id} saw {self.seen_user_id} action={self.action!r}>"
