from pydantic import BaseModel
from uuid import UUID
from datetime import datetime
from typing import Optional


class VerityDateSummary(BaseModel):
    verity_date_id: UUID
    state: str
    room_url: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    session_ends_at: Optional[datetime] = None
    my_status: str
    partner_status: str
    partner_preferred_times: Optional[list[str]] = None
    my_feedback: Optional[str] = None


class MatchListItem(BaseModel):
    match_id: UUID
    partner_id: UUID
    partner_name: Optional[str] = None
    chat_unlocked: bool
    created_at: datetime
    active_date: Optional[VerityDateSummary] = None


class MatchListResponse(BaseModel):
    status: str
    matches: list[MatchListItem]


class DateRequestResponse(BaseModel):
    status: str  # requested / already_requested / noop
    verity_date_id: Optional[UUID] = None


class AcceptResponse(BaseModel):
    status: str  # room_ready / already_provisioned / noop
    verity_date_id: UUID
    room_url: Optional[str] = None
    session_ends_at: Optional[datetime] = None


class RescheduleRequest(BaseModel):
    preferred_times: list[datetime]


class RescheduleResponse(BaseModel):
    status: str
    verity_date_id: UUID
    preferred_times: list[str]


class FeedbackRequest(BaseModel):
    verdict: str  # yes / maybe / no


class FeedbackResponse(BaseModel):
    status: str  # recorded / already_submitted
    verity_date_id: UUID
    outcome: str
    framing: str
    chat_unlocked: bool = False


class SessionResponse(BaseModel):
    status: str
    verity_date_id: UUID
    match_id: UUID
    partner_id: UUID
    state: str
    room_url: Optional[str] = None
    session_ends_at: Optional[datetime] = None
    seconds_remaining: int
    my_feedback: Optional[str] = None


class UnmatchResponse(BaseModel):
    status: str  # unmatched / already_unmatched
    match_id: UUID
