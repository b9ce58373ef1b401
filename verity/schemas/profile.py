from pydantic import BaseModel, Field
from uuid import UUID
from datetime import datetime
from typing import Optional


class ProfileCard(BaseModel):
    user_id: UUID
    display_name: str
    age: int
    gender: str
    bio: Optional[str] = None
    photos: list[str] = []
    intro_video_url: Optional[str] = None
    verified: bool = False
    height_cm: Optional[int] = None
    interests: list[str] = []
    values: list[str] = []
    distance_km: Optional[float] = None
    boosted: bool = False


class DiscoverFilters(BaseModel):
    verified_only: bool = False
    active_recently: bool = False
    height_range: Optional[tuple[int, int]] = None
    interests: list[str] = []
    values: list[str] = []


class DiscoverRequest(BaseModel):
    gender_prefs: Optional[list[str]] = None
    age_range: tuple[int, int] = (18, 99)
    distance_km: float = Field(default=50.0, gt=0)
    filters: DiscoverFilters = DiscoverFilters()
    page_size: Optional[int] = Field(default=None, ge=1, le=50)


class DiscoverResponse(BaseModel):
    status: str
    profiles: list[ProfileCard]


class HeartbeatResponse(BaseModel):
    status: str
    last_active: datetime


class BoostResponse(BaseModel):
    status: str
    boost_expires_at: datetime
    boost_count: int
