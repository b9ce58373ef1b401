"""
Verity — Discovery API

``POST /discover`` returns the next page of the caller's feed.  Clients
keep a ``FeedWindow`` and call again when it runs low.
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from verity.api.deps import get_caller_id, get_feed_service
from verity.api.profiles import profile_card
from verity.database import get_db
from verity.schemas.profile import DiscoverRequest, DiscoverResponse
from verity.services.feed_service import FeedFilters, FeedPreferences, FeedService

logger = structlog.get_logger("verity.api.discovery")

router = APIRouter()


@router.post("", response_model=DiscoverResponse)
async def discover(
    body: DiscoverRequest,
    caller_id: uuid.UUID = Depends(get_caller_id),
    db: AsyncSession = Depends(get_db),
    service: FeedService = Depends(get_feed_service),
) -> DiscoverResponse:
    prefs = FeedPreferences(
        gender_prefs=body.gender_prefs,
        age_min=body.age_range[0],
        age_max=body.age_range[1],
        distance_km=body.distance_km,
    )
    filters = FeedFilters(
        verified_only=body.filters.verified_only,
        active_recently=body.filters.active_recently,
        height_range=body.filters.height_range,
        interests=body.filters.interests,
        values=body.filters.values,
    )
    candidates = await service.build_feed(
        db, caller_id, prefs, filters, page_size=body.page_size
    )
    return DiscoverResponse(
        status="ok" if candidates else "empty",
        profiles=[
            profile_card(c.profile, distance_km=c.distance_km, boosted=c.boosted)
            for c in candidates
        ],
    )
