"""
Verity — Profile presence API

Heartbeat (feeds the "active recently" discovery filter) and boosts.
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from verity.api.deps import get_caller_id, get_profile_service
from verity.database import get_db
from verity.models.profile import Profile
from verity.schemas.profile import BoostResponse, HeartbeatResponse, ProfileCard
from verity.services.profile_service import ProfileService

logger = structlog.get_logger("verity.api.profiles")

router = APIRouter()


def profile_card(
    profile: Profile, distance_km: float | None = None, boosted: bool = False
) -> ProfileCard:
    return ProfileCard(
        user_id=profile.user_id,
        display_name=profile.display_name,
        age=profile.age,
        gender=profile.gender,
        bio=profile.bio,
        photos=profile.photos or [],
        intro_video_url=profile.intro_video_url,
        verified=profile.verified,
        height_cm=profile.height_cm,
        interests=profile.interests or [],
        values=profile.values or [],
        distance_km=distance_km,
        boosted=boosted,
    )


@router.post("/me/heartbeat", response_model=HeartbeatResponse)
async def heartbeat(
    caller_id: uuid.UUID = Depends(get_caller_id),
    db: AsyncSession = Depends(get_db),
    service: ProfileService = Depends(get_profile_service),
) -> HeartbeatResponse:
    last_active = await service.touch_last_active(db, caller_id)
    return HeartbeatResponse(status="ok", last_active=last_active)


@router.post("/me/boost", response_model=BoostResponse)
async def boost(
    caller_id: uuid.UUID = Depends(get_caller_id),
    db: AsyncSession = Depends(get_db),
    service: ProfileService = Depends(get_profile_service),
) -> BoostResponse:
    """Premium: show this profile first in nearby feeds for 30 minutes."""
    profile = await service.boost(db, caller_id)
    return BoostResponse(
        status="boosted",
        boost_expires_at=profile.boost_expires_at,
        boost_count=profile.boost_count,
    )
