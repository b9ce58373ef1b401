from pydantic import BaseModel
from uuid import UUID
from typing import Optional

from verity.schemas.profile import ProfileCard


class InterestResponse(BaseModel):
    status: str  # interest_recorded / already_interested / match
    is_match: bool
    already_interested: bool = False
    match_id: Optional[UUID] = None
    verity_date_id: Optional[UUID] = None
    remaining: Optional[int] = None


class PassResponse(BaseModel):
    status: str
    profile_id: UUID


class UndoPassResponse(BaseModel):
    status: str  # undone / nothing_to_undo / requires_premium
    profile_id: Optional[UUID] = None


class IncomingInterestResponse(BaseModel):
    status: str
    profiles: list[ProfileCard]
