from pydantic import BaseModel
from uuid import UUID
from datetime import datetime
from typing import Optional


class MessageCreate(BaseModel):
    content: str


class MessageOut(BaseModel):
    id: UUID
    match_id: UUID
    sender_id: UUID
    content: str
    read_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class MessageResponse(BaseModel):
    status: str
    message: MessageOut
    remaining: Optional[int] = None


class MessageListResponse(BaseModel):
    status: str
    messages: list[MessageOut]
    marked_read: int = 0
