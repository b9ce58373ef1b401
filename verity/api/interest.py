"""
Verity — Interest API

Interest and pass actions from the discovery feed.  Interest is rate
limited per caller before it reaches the ledger; the target is validated
first so a rejected request does not spend a slot.
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from verity.api.deps import (
    get_caller_id,
    get_interest_service,
    get_profile_service,
    get_rate_limiter,
)
from verity.api.profiles import profile_card
from verity.database import get_db
from verity.schemas.interest import (
    IncomingInterestResponse,
    InterestResponse,
    PassResponse,
    UndoPassResponse,
)
from verity.services.interest_service import InterestService
from verity.services.profile_service import ProfileService
from verity.services.rate_limit_service import RedisRateLimiter

logger = structlog.get_logger("verity.api.interest")

router = APIRouter()


# Literal paths are registered before ``/{target_id}`` so they are not
# captured by it.

@router.post("/undo-pass", response_model=UndoPassResponse)
async def undo_pass(
    caller_id: uuid.UUID = Depends(get_caller_id),
    db: AsyncSession = Depends(get_db),
    service: InterestService = Depends(get_interest_service),
    profiles: ProfileService = Depends(get_profile_service),
) -> UndoPassResponse:
    is_premium = await profiles.is_premium(db, caller_id)
    outcome = await service.undo_last_pass(db, caller_id, is_premium)
    return UndoPassResponse(status=outcome.status, profile_id=outcome.profile_id)


@router.get("/incoming", response_model=IncomingInterestResponse)
async def incoming_interest(
    caller_id: uuid.UUID = Depends(get_caller_id),
    db: AsyncSession = Depends(get_db),
    service: InterestService = Depends(get_interest_service),
    profiles: ProfileService = Depends(get_profile_service),
) -> IncomingInterestResponse:
    """Premium: profiles that already expressed interest in the caller."""
    is_premium = await profiles.is_premium(db, caller_id)
    incoming = await service.list_incoming_interest(db, caller_id, is_premium)
    return IncomingInterestResponse(
        status="ok", profiles=[profile_card(p) for p in incoming]
    )


@router.post("/{target_id}", response_model=InterestResponse)
async def express_interest(
    target_id: uuid.UUID,
    caller_id: uuid.UUID = Depends(get_caller_id),
    db: AsyncSession = Depends(get_db),
    service: InterestService = Depends(get_interest_service),
    limiter: RedisRateLimiter = Depends(get_rate_limiter),
) -> InterestResponse:
    await service.check_target(db, caller_id, target_id)
    decision = await limiter.enforce(caller_id, "interest")
    outcome = await service.express_interest(db, caller_id, target_id)

    if outcome.is_match:
        status = "match"
    elif outcome.already_interested:
        status = "already_interested"
    else:
        status = "interest_recorded"

    return InterestResponse(
        status=status,
        is_match=outcome.is_match,
        already_interested=outcome.already_interested,
        match_id=outcome.match_id,
        verity_date_id=outcome.verity_date_id,
        remaining=decision.remaining,
    )


@router.post("/{target_id}/pass", response_model=PassResponse)
async def express_pass(
    target_id: uuid.UUID,
    caller_id: uuid.UUID = Depends(get_caller_id),
    db: AsyncSession = Depends(get_db),
    service: InterestService = Depends(get_interest_service),
) -> PassResponse:
    await service.express_pass(db, caller_id, target_id)
    return PassResponse(status="passed", profile_id=target_id)
