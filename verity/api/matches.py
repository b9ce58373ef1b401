"""
Verity — Matches API

Lists the caller's matches (blocked counterparts hidden), opens a new
Verity-Date on an existing match and unmatches.
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from verity.api.deps import get_caller_id, get_date_service, get_safety_service
from verity.database import get_db, utcnow
from verity.models.match import Match, VerityDate
from verity.models.profile import Profile
from verity.schemas.match import (
    DateRequestResponse,
    MatchListItem,
    MatchListResponse,
    UnmatchResponse,
    VerityDateSummary,
)
from verity.services.block_lookup import blocked_ids
from verity.services.date_service import DateService
from verity.services.safety_service import SafetyService
from verity.services.state_machine import date_state

logger = structlog.get_logger("verity.api.matches")

router = APIRouter()


def _date_summary(
    verity_date: VerityDate, match: Match, caller_id: uuid.UUID
) -> VerityDateSummary:
    role = match.role_of(caller_id)
    partner_role = "user2" if role == "user1" else "user1"
    return VerityDateSummary(
        verity_date_id=verity_date.id,
        state=date_state(verity_date, utcnow()),
        room_url=verity_date.room_url,
        scheduled_at=verity_date.scheduled_at,
        session_ends_at=verity_date.session_ends_at,
        my_status=getattr(verity_date, f"{role}_status"),
        partner_status=getattr(verity_date, f"{partner_role}_status"),
        partner_preferred_times=getattr(verity_date, f"{partner_role}_preferred_times"),
        my_feedback=getattr(verity_date, f"{role}_feedback"),
    )


@router.get("", response_model=MatchListResponse)
async def list_matches(
    caller_id: uuid.UUID = Depends(get_caller_id),
    db: AsyncSession = Depends(get_db),
    service: DateService = Depends(get_date_service),
) -> MatchListResponse:
    hidden = await blocked_ids(db, caller_id)
    summaries = await service.list_matches(db, caller_id, exclude_ids=hidden)

    partner_ids = [s.partner_id for s in summaries]
    names: dict[uuid.UUID, str] = {}
    if partner_ids:
        rows = await db.execute(
            select(Profile.user_id, Profile.display_name).where(
                Profile.user_id.in_(partner_ids)
            )
        )
        names = {user_id: name for user_id, name in rows.all()}

    return MatchListResponse(
        status="ok",
        matches=[
            MatchListItem(
                match_id=s.match.id,
                partner_id=s.partner_id,
                partner_name=names.get(s.partner_id),
                chat_unlocked=s.match.chat_unlocked,
                created_at=s.match.created_at,
                active_date=(
                    _date_summary(s.active_date, s.match, caller_id)
                    if s.active_date is not None
                    else None
                ),
            )
            for s in summaries
        ],
    )


@router.post("/{match_id}/dates", response_model=DateRequestResponse)
async def request_date(
    match_id: uuid.UUID,
    caller_id: uuid.UUID = Depends(get_caller_id),
    db: AsyncSession = Depends(get_db),
    service: DateService = Depends(get_date_service),
) -> DateRequestResponse:
    outcome = await service.request_date(db, match_id, caller_id)
    return DateRequestResponse(
        status="requested" if outcome.created else "already_requested",
        verity_date_id=outcome.verity_date.id,
    )


@router.delete("/{match_id}", response_model=UnmatchResponse)
async def unmatch(
    match_id: uuid.UUID,
    caller_id: uuid.UUID = Depends(get_caller_id),
    db: AsyncSession = Depends(get_db),
    service: SafetyService = Depends(get_safety_service),
) -> UnmatchResponse:
    outcome = await service.unmatch(db, match_id, caller_id)
    if outcome.room_names:
        # Rooms go only once the delete is durable.
        await db.commit()
        await service.release_rooms(outcome.room_names)
    return UnmatchResponse(status=outcome.status, match_id=match_id)
