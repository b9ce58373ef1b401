"""
Verity — Unmatch / Block Guard

Blocks take effect immediately: the feed builder reads ``blocked_ids`` on
every build and the interest ledger re-checks ``is_blocked`` right before a
match is created.  Unmatching hard-deletes the match together with its
dates and messages; its video rooms are released only after that delete
has committed.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any

import structlog
from sqlalchemy import and_, delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from verity.database import insert_for, utcnow
from verity.models.interest import InterestEvent
from verity.models.match import Match, VerityDate
from verity.models.message import Message
from verity.models.profile import Profile
from verity.models.safety import REPORT_REASONS, Block, Report
from verity.services.date_service import load_match_for_participant
from verity.services.errors import NotFoundError, ValidationError
from verity.services.room_provisioner import RoomProviderError

logger = structlog.get_logger("verity.safety_service")

MAX_REPORT_DETAILS = 2000


@dataclass
class SafetyOutcome:
    status: str
    target_id: uuid.UUID
    # Provider rooms to release once the unmatch has committed.
    room_names: list[str] = field(default_factory=list)


class SafetyService:
    def __init__(self, provisioner: Any | None = None) -> None:
        self._provisioner = provisioner

    async def block(
        self, db: AsyncSession, blocker_id: uuid.UUID, blocked_id: uuid.UUID
    ) -> SafetyOutcome:
        if blocker_id == blocked_id:
            raise ValidationError("You cannot block yourself")
        if await db.get(Profile, blocked_id) is None:
            raise NotFoundError("User not found", user_id=str(blocked_id))

        stmt = (
            insert_for(db, Block)
            .values(
                id=uuid.uuid4(),
                blocker_id=blocker_id,
                blocked_id=blocked_id,
                created_at=utcnow(),
            )
            .on_conflict_do_nothing(index_elements=["blocker_id", "blocked_id"])
            .returning(Block.id)
        )
        inserted = (await db.execute(stmt)).scalar_one_or_none()
        status = "blocked" if inserted is not None else "already_blocked"
        logger.info(
            "user_blocked", blocker_id=str(blocker_id), blocked_id=str(blocked_id), status=status
        )
        return SafetyOutcome(status=status, target_id=blocked_id)

    async def unblock(
        self, db: AsyncSession, blocker_id: uuid.UUID, blocked_id: uuid.UUID
    ) -> SafetyOutcome:
        result = await db.execute(
            delete(Block).where(
                Block.blocker_id == blocker_id, Block.blocked_id == blocked_id
            )
        )
        status = "unblocked" if result.rowcount else "not_blocked"
        logger.info(
            "user_unblocked", blocker_id=str(blocker_id), blocked_id=str(blocked_id), status=status
        )
        return SafetyOutcome(status=status, target_id=blocked_id)

    async def unmatch(
        self, db: AsyncSession, match_id: uuid.UUID, caller_id: uuid.UUID
    ) -> SafetyOutcome:
        """Hard-delete a match with its dates, messages and interest edges."""
        if await db.get(Match, match_id) is None:
            return SafetyOutcome(status="already_unmatched", target_id=match_id)
        match = await load_match_for_participant(db, match_id, caller_id)
        user1_id, user2_id = match.user1_id, match.user2_id

        room_names = (
            await db.execute(
                select(VerityDate.room_name).where(
                    VerityDate.match_id == match_id,
                    VerityDate.room_name.is_not(None),
                    VerityDate.completed.is_(False),
                )
            )
        ).scalars().all()

        await db.execute(delete(Message).where(Message.match_id == match_id))
        await db.execute(delete(VerityDate).where(VerityDate.match_id == match_id))
        await db.execute(
            delete(InterestEvent).where(
                or_(
                    and_(InterestEvent.from_user_id == user1_id, InterestEvent.to_user_id == user2_id),
                    and_(InterestEvent.from_user_id == user2_id, InterestEvent.to_user_id == user1_id),
                )
            )
        )
        await db.execute(delete(Match).where(Match.id == match_id))
        db.expunge(match)

        logger.info("match_unmatched", match_id=str(match_id), user_id=str(caller_id))
        return SafetyOutcome(
            status="unmatched", target_id=match_id, room_names=list(room_names)
        )

    async def release_rooms(self, room_names: list[str]) -> int:
        """Delete provider rooms left behind by an unmatch.

        Call only after the unmatch transaction has committed.  Failures are
        logged and skipped; an orphaned room expires on its own.
        """
        if self._provisioner is None:
            return 0
        released = 0
        for name in room_names:
            try:
                if await self._provisioner.delete_room(name):
                    released += 1
            except RoomProviderError as exc:
                logger.warning("room_cleanup_failed", room_name=name, error=str(exc))
        return released

    async def report(
        self,
        db: AsyncSession,
        reporter_id: uuid.UUID,
        reported_user_id: uuid.UUID,
        reason: str,
        details: str | None = None,
        context: str | None = None,
    ) -> Report:
        if reason not in REPORT_REASONS:
            raise ValidationError(
                f"Reason must be one of {', '.join(REPORT_REASONS)}", reason=reason
            )
        if reporter_id == reported_user_id:
            raise ValidationError("You cannot report yourself")
        if details is not None and len(details) > MAX_REPORT_DETAILS:
            raise ValidationError(f"Details must be at most {MAX_REPORT_DETAILS} characters")
        if await db.get(Profile, reported_user_id) is None:
            raise NotFoundError("User not found", user_id=str(reported_user_id))

        report = Report(
            reporter_id=reporter_id,
            reported_user_id=reported_user_id,
            reason=reason,
            details=details,
            context=context,
            status="pending",
        )
        db.add(report)
        await db.flush()
        logger.info(
            "user_reported",
            reporter_id=str(reporter_id),
            reported_user_id=str(reported_user_id),
            reason=reason,
        )
        return report
