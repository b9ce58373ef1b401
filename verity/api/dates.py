"""
Verity — Verity-Date API

Accept (provisions the video room), reschedule ("maybe later"), session
status polling and post-date feedback.
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from verity.api.deps import (
    get_caller_id,
    get_date_service,
    get_feedback_service,
)
from verity.database import get_db
from verity.schemas.match import (
    AcceptResponse,
    FeedbackRequest,
    FeedbackResponse,
    RescheduleRequest,
    RescheduleResponse,
    SessionResponse,
)
from verity.services.date_service import DateService
from verity.services.feedback_service import FeedbackService

logger = structlog.get_logger("verity.api.dates")

router = APIRouter()


@router.post("/{verity_date_id}/accept", response_model=AcceptResponse)
async def accept_date(
    verity_date_id: uuid.UUID,
    caller_id: uuid.UUID = Depends(get_caller_id),
    db: AsyncSession = Depends(get_db),
    service: DateService = Depends(get_date_service),
) -> AcceptResponse:
    """Accept a Verity-Date and get the room URL.

    Safe to repeat: once a room exists every call returns the same URL.
    Responds 503 with ``retryable: true`` when the video provider is down.
    """
    outcome = await service.accept_date(db, verity_date_id, caller_id)
    return AcceptResponse(
        status="already_provisioned" if outcome.already_provisioned else "room_ready",
        verity_date_id=outcome.verity_date_id,
        room_url=outcome.room_url,
        session_ends_at=outcome.session_ends_at,
    )


@router.post("/{verity_date_id}/reschedule", response_model=RescheduleResponse)
async def reschedule_date(
    verity_date_id: uuid.UUID,
    body: RescheduleRequest,
    caller_id: uuid.UUID = Depends(get_caller_id),
    db: AsyncSession = Depends(get_db),
    service: DateService = Depends(get_date_service),
) -> RescheduleResponse:
    outcome = await service.reschedule_date(
        db, verity_date_id, caller_id, body.preferred_times
    )
    return RescheduleResponse(
        status="rescheduled",
        verity_date_id=outcome.verity_date.id,
        preferred_times=outcome.preferred_times,
    )


@router.get("/{verity_date_id}/session", response_model=SessionResponse)
async def get_session(
    verity_date_id: uuid.UUID,
    caller_id: uuid.UUID = Depends(get_caller_id),
    db: AsyncSession = Depends(get_db),
    service: DateService = Depends(get_date_service),
) -> SessionResponse:
    view = await service.get_session(db, verity_date_id, caller_id)
    return SessionResponse(
        status="ok",
        verity_date_id=view.verity_date_id,
        match_id=view.match_id,
        partner_id=view.partner_id,
        state=view.state,
        room_url=view.room_url,
        session_ends_at=view.session_ends_at,
        seconds_remaining=view.seconds_remaining,
        my_feedback=view.my_feedback,
    )


@router.post("/{verity_date_id}/feedback", response_model=FeedbackResponse)
async def submit_feedback(
    verity_date_id: uuid.UUID,
    body: FeedbackRequest,
    caller_id: uuid.UUID = Depends(get_caller_id),
    db: AsyncSession = Depends(get_db),
    service: FeedbackService = Depends(get_feedback_service),
) -> FeedbackResponse:
    result = await service.submit_feedback(db, verity_date_id, caller_id, body.verdict)
    return FeedbackResponse(
        status="already_submitted" if result.already_submitted else "recorded",
        verity_date_id=result.verity_date_id,
        outcome=result.outcome,
        framing=result.framing,
        chat_unlocked=result.chat_unlocked,
    )
