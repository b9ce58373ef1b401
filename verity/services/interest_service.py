"""
Verity — Interest Ledger

Records one-directional interest and detects mutual pairs.  Each step of
``express_interest`` is individually idempotent:

  (a) upsert the Seen Record (action=interest)
  (b) insert the Interest Event, treating a duplicate as a no-op
  (c) look up the reverse edge
  (d) if present, re-check blocks and hand off to the orchestrator

A replayed call therefore never duplicates an edge or a match, and a call
that fails half-way can simply be retried.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from verity.database import insert_for, utcnow
from verity.models.interest import InterestEvent, SeenRecord
from verity.models.profile import Profile
from verity.services.block_lookup import blocked_ids, is_blocked
from verity.services.errors import (
    BlockedPairError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)

logger = structlog.get_logger("verity.interest_service")

UNDONE = "undone"
NOTHING_TO_UNDO = "nothing_to_undo"
REQUIRES_PREMIUM = "requires_premium"


@dataclass
class InterestOutcome:
    is_match: bool
    already_interested: bool = False
    match_id: uuid.UUID | None = None
    verity_date_id: uuid.UUID | None = None


@dataclass
class UndoOutcome:
    status: str
    profile_id: uuid.UUID | None = None


class InterestService:
    """Interest / pass bookkeeping.  Match creation is delegated to
    ``DateService.create_match_with_date``.
    """

    def __init__(
        self,
        date_service: Any,
        notifier: Any | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._date_service = date_service
        self._notifier = notifier
        self._clock = clock

    async def express_interest(
        self, db: AsyncSession, from_user_id: uuid.UUID, to_user_id: uuid.UUID
    ) -> InterestOutcome:
        """Record interest from ``from_user_id`` in ``to_user_id``.

        Raises
        ------
        ValidationError
            Interest in yourself.
        NotFoundError
            The target profile does not exist.
        BlockedPairError
            Either user has blocked the other.
        """
        await self.check_target(db, from_user_id, to_user_id)
        log = logger.bind(from_user_id=str(from_user_id), to_user_id=str(to_user_id))

        if await is_blocked(db, from_user_id, to_user_id):
            raise BlockedPairError(
                "Cannot express interest in a blocked user",
                from_user_id=str(from_user_id),
                to_user_id=str(to_user_id),
            )

        await self._upsert_seen(db, from_user_id, to_user_id, "interest")

        stmt = (
            insert_for(db, InterestEvent)
            .values(
                id=uuid.uuid4(),
                from_user_id=from_user_id,
                to_user_id=to_user_id,
                created_at=self._clock(),
            )
            .on_conflict_do_nothing(index_elements=["from_user_id", "to_user_id"])
            .returning(InterestEvent.id)
        )
        inserted = (await db.execute(stmt)).scalar_one_or_none()
        already_interested = inserted is None
        log.info("interest_recorded", already_interested=already_interested)

        reverse = (
            await db.execute(
                select(InterestEvent.id).where(
                    InterestEvent.from_user_id == to_user_id,
                    InterestEvent.to_user_id == from_user_id,
                )
            )
        ).first()

        if reverse is None:
            if not already_interested and self._notifier is not None:
                await self._notifier.notify(
                    to_user_id, "like", "Someone likes you!",
                    "Keep discovering to find out who.", None,
                )
            return InterestOutcome(is_match=False, already_interested=already_interested)

        # A block may have landed between the first check and now.
        if await is_blocked(db, from_user_id, to_user_id):
            raise BlockedPairError(
                "Cannot match with a blocked user",
                from_user_id=str(from_user_id),
                to_user_id=str(to_user_id),
            )

        outcome = await self._date_service.create_match_with_date(
            db, from_user_id, to_user_id
        )
        log.info(
            "mutual_interest_detected",
            match_id=str(outcome.match.id),
            match_created=outcome.created,
        )
        return InterestOutcome(
            is_match=True,
            already_interested=already_interested,
            match_id=outcome.match.id,
            verity_date_id=outcome.verity_date.id if outcome.verity_date else None,
        )

    async def express_pass(
        self, db: AsyncSession, from_user_id: uuid.UUID, to_user_id: uuid.UUID
    ) -> SeenRecord:
        """Hide ``to_user_id`` from future feeds without recording interest."""
        await self.check_target(db, from_user_id, to_user_id)
        record = await self._upsert_seen(db, from_user_id, to_user_id, "pass")
        logger.info("pass_recorded", from_user_id=str(from_user_id), to_user_id=str(to_user_id))
        return record

    async def undo_last_pass(
        self, db: AsyncSession, user_id: uuid.UUID, is_premium: bool
    ) -> UndoOutcome:
        """Restore the most recently passed profile (premium only).

        Only ``pass`` rows are ever removed; an ``interest`` is never undone.
        """
        if not is_premium:
            return UndoOutcome(status=REQUIRES_PREMIUM)

        last_pass = (
            await db.execute(
                select(SeenRecord)
                .where(SeenRecord.user_id == user_id, SeenRecord.action == "pass")
                .order_by(SeenRecord.seen_at.desc(), SeenRecord.id.desc())
                .limit(1)
            )
        ).scalar_one_or_none()

        if last_pass is None:
            return UndoOutcome(status=NOTHING_TO_UNDO)

        profile_id = last_pass.seen_user_id
        await db.execute(
            delete(SeenRecord).where(
                SeenRecord.id == last_pass.id, SeenRecord.action == "pass"
            )
        )
        db.expunge(last_pass)
        logger.info("pass_undone", user_id=str(user_id), profile_id=str(profile_id))
        return UndoOutcome(status=UNDONE, profile_id=profile_id)

    async def list_incoming_interest(
        self, db: AsyncSession, user_id: uuid.UUID, is_premium: bool
    ) -> list[Profile]:
        """Profiles that expressed interest in ``user_id`` and are still
        waiting on an answer ("who liked you").
        """
        if not is_premium:
            raise ForbiddenError("Seeing who liked you requires premium")

        answered = select(SeenRecord.seen_user_id).where(SeenRecord.user_id == user_id)
        stmt = (
            select(Profile)
            .join(InterestEvent, InterestEvent.from_user_id == Profile.user_id)
            .where(
                InterestEvent.to_user_id == user_id,
                Profile.user_id.not_in(answered),
                Profile.is_active.is_(True),
            )
            .order_by(InterestEvent.created_at.desc())
        )
        profiles = (await db.execute(stmt)).scalars().all()
        hidden = await blocked_ids(db, user_id)
        return [p for p in profiles if p.user_id not in hidden]

    async def check_target(
        self, db: AsyncSession, from_user_id: uuid.UUID, to_user_id: uuid.UUID
    ) -> None:
        """Reject a self-target or an unknown profile."""
        if from_user_id == to_user_id:
            raise ValidationError("You cannot express interest in yourself")
        if await db.get(Profile, to_user_id) is None:
            raise NotFoundError("Profile not found", user_id=str(to_user_id))

    async def _upsert_seen(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        seen_user_id: uuid.UUID,
        action: str,
    ) -> SeenRecord:
        now = self._clock()
        stmt = insert_for(db, SeenRecord).values(
            id=uuid.uuid4(),
            user_id=user_id,
            seen_user_id=seen_user_id,
            action=action,
            seen_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "seen_user_id"],
            set_={"action": action, "seen_at": now},
        ).returning(SeenRecord)
        return (
            await db.execute(stmt.execution_options(populate_existing=True))
        ).scalar_one()
