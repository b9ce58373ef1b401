"""
Verity — Notification model (in-app notification inbox).
"""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Index, String, Text, Uuid, false, func
from sqlalchemy.orm import Mapped, mapped_column

from verity.database import Base, UTCDateTime, utcnow

NOTIFICATION_KINDS = (
    "match",
    "verity_date_request",
    "verity_date_accepted",
    "verity_date_rescheduled",
    "chat_unlocked",
    "verity_date_resolved",
    "message",
    "like",
)


class Notification(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_user_created", "user_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    # No FK: delivery must never fail on a concurrently erased profile.
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    type: Mapped[str] = mapped_column(String, nullable=False)
    title: Mapped[str] = mapped_column(String, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    related_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    read: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=false(), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<Notification user={self.user_id} type={self.type!r}>"
