"""
Verity — Profile model (identity-bearing record consumed by discovery).
"""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Float, Index, Integer, String, Text, Uuid, false, func, true
from sqlalchemy.orm import Mapped, mapped_column

from verity.database import Base, JSONType, UTCDateTime, utcnow


class Profile(Base):
    __tablename__ = "profiles"
    __table_args__ = (
        Index("ix_profiles_lat_lon", "latitude", "longitude"),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    display_name: Mapped[str] = mapped_column(String, nullable=False)
    age: Mapped[int] = mapped_column(Integer, nullable=False)
    gender: Mapped[str] = mapped_column(String, nullable=False)
    interested_in: Mapped[list] = mapped_column(
        JSONType, nullable=False, default=list, comment="Genders the user wants to see"
    )
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    photos: Mapped[list] = mapped_column(
        JSONType, nullable=False, default=list, comment="Ordered array of photo URLs"
    )
    intro_video_url: Mapped[str | None] = mapped_column(String, nullable=True)
    verification_video_url: Mapped[str | None] = mapped_column(String, nullable=True)
    verified: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=false(), nullable=False
    )
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    height_cm: Mapped[int | None] = mapped_column(Integer, nullable=True)
    interests: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    values: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    last_active: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    boost_expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    boost_count: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0", nullable=False
    )
    premium_until: Mapped[datetime | None] = mapped_column(
        UTCDateTime,
        nullable=True,
        comment="Cache of billing state; rebuilt from the subscription source",
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default=true(), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime, onupdate=utcnow, nullable=True
    )

    def is_boosted(self, now: datetime) -> bool:
        return self.boost_expires_at is not None and self.boost_expires_at > now

    def is_premium(self, now: datetime) -> bool:
        return self.premium_until is not None and self.premium_until > now

    def __repr__(self) -> str:
        return f"<Profile {self.display_name!r} id={self.user_id}>"
