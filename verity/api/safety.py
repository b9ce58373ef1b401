"""
Verity — Safety API (block, unblock, report)
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from verity.api.deps import get_caller_id, get_safety_service
from verity.database import get_db
from verity.schemas.safety import BlockResponse, ReportCreate, ReportResponse
from verity.services.safety_service import SafetyService

logger = structlog.get_logger("verity.api.safety")

router = APIRouter()


@router.post("/block/{user_id}", response_model=BlockResponse)
async def block_user(
    user_id: uuid.UUID,
    caller_id: uuid.UUID = Depends(get_caller_id),
    db: AsyncSession = Depends(get_db),
    service: SafetyService = Depends(get_safety_service),
) -> BlockResponse:
    outcome = await service.block(db, caller_id, user_id)
    return BlockResponse(status=outcome.status, user_id=user_id)


@router.delete("/block/{user_id}", response_model=BlockResponse)
async def unblock_user(
    user_id: uuid.UUID,
    caller_id: uuid.UUID = Depends(get_caller_id),
    db: AsyncSession = Depends(get_db),
    service: SafetyService = Depends(get_safety_service),
) -> BlockResponse:
    outcome = await service.unblock(db, caller_id, user_id)
    return BlockResponse(status=outcome.status, user_id=user_id)


@router.post("/report", response_model=ReportResponse, status_code=status.HTTP_201_CREATED)
async def report_user(
    body: ReportCreate,
    caller_id: uuid.UUID = Depends(get_caller_id),
    db: AsyncSession = Depends(get_db),
    service: SafetyService = Depends(get_safety_service),
) -> ReportResponse:
    report = await service.report(
        db,
        caller_id,
        body.reported_user_id,
        body.reason,
        details=body.details,
        context=body.context,
    )
    return ReportResponse(status="reported", report_id=report.id)
