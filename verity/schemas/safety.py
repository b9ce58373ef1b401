from pydantic import BaseModel
from uuid import UUID
from typing import Optional


class BlockResponse(BaseModel):
    status: str  # blocked / already_blocked / unblocked / not_blocked
    user_id: UUID


class ReportCreate(BaseModel):
    reported_user_id: UUID
    reason: str  # inappropriate / harassment / fake / underage / other
    details: Optional[str] = None
    context: Optional[str] = None


class ReportResponse(BaseModel):
    status: str
    report_id: UUID
