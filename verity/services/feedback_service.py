"""
Verity — Feedback Aggregator

Collects the two post-date verdicts (``yes`` / ``maybe`` / ``no``) and
resolves the date once both are in.  Each participant's slot is write-once,
and the date's completion is a single conditional ``UPDATE`` so that when
both verdicts arrive at the same moment exactly one request observes the
terminal outcome and performs the side effects (chat unlock, notifications).
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

import structlog
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from verity.database import utcnow
from verity.models.match import FEEDBACK_VERDICTS, Match, VerityDate
from verity.services.date_service import load_date_for_participant
from verity.services.errors import InvariantViolation, ValidationError
from verity.services.event_bus import match_channel
from verity.services.state_machine import (
    OUTCOME_MUTUAL_YES,
    OUTCOME_WAITING,
    feedback_outcome,
    outcome_framing,
)

logger = structlog.get_logger("verity.feedback_service")

_RESOLUTION_COPY = {
    "parted-respectfully": ("Verity-Date complete", "You parted ways respectfully."),
    "no-decision": ("Verity-Date complete", "Thanks for your honesty."),
}


@dataclass
class FeedbackResult:
    verity_date_id: uuid.UUID
    outcome: str
    framing: str
    already_submitted: bool = False
    chat_unlocked: bool = False


class FeedbackService:
    def __init__(
        self,
        notifier: Any | None = None,
        event_bus: Any | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._notifier = notifier
        self._event_bus = event_bus
        self._clock = clock

    async def submit_feedback(
        self,
        db: AsyncSession,
        verity_date_id: uuid.UUID,
        caller_id: uuid.UUID,
        verdict: str,
    ) -> FeedbackResult:
        """Record the caller's verdict and resolve the date if it is the second.

        Returns
        -------
        FeedbackResult
            ``outcome`` is ``waiting-on-other`` until this call is the one
            that completed the date.  A repeated submission never overwrites
            the stored verdict and comes back with ``already_submitted``.
        """
        if verdict not in FEEDBACK_VERDICTS:
            raise ValidationError(
                f"Feedback must be one of {', '.join(FEEDBACK_VERDICTS)}",
                verdict=verdict,
            )

        verity_date, match = await load_date_for_participant(db, verity_date_id, caller_id)
        role = match.role_of(caller_id)
        slot = getattr(VerityDate, f"{role}_feedback")
        log = logger.bind(
            verity_date_id=str(verity_date_id),
            match_id=str(match.id),
            user_id=str(caller_id),
            role=role,
        )

        if verity_date.room_url is None:
            raise InvariantViolation(
                "Feedback is only accepted after the Verity-Date took place",
                verity_date_id=str(verity_date_id),
            )

        written = await db.execute(
            update(VerityDate)
            .where(
                VerityDate.id == verity_date.id,
                slot.is_(None),
                VerityDate.completed.is_(False),
            )
            .values(**{f"{role}_feedback": verdict})
            .execution_options(synchronize_session=False)
        )
        await db.refresh(verity_date)

        if written.rowcount == 0:
            log.info("feedback_already_submitted")
            return self._current_result(verity_date, already_submitted=True)

        log.info("feedback_submitted", verdict=verdict)
        await self._publish(
            match.id, "feedback_submitted",
            {"verity_date_id": verity_date.id, "user_id": caller_id},
        )

        now = self._clock()
        completed = await db.execute(
            update(VerityDate)
            .where(
                VerityDate.id == verity_date.id,
                VerityDate.completed.is_(False),
                VerityDate.user1_feedback.is_not(None),
                VerityDate.user2_feedback.is_not(None),
            )
            .values(completed=True, completed_at=now)
            .execution_options(synchronize_session=False)
        )
        await db.refresh(verity_date)

        if completed.rowcount == 0:
            return FeedbackResult(
                verity_date_id=verity_date.id,
                outcome=OUTCOME_WAITING,
                framing="waiting",
            )

        return await self._resolve(db, verity_date, match, log)

    async def _resolve(
        self, db: AsyncSession, verity_date: VerityDate, match: Match, log
    ) -> FeedbackResult:
        outcome = feedback_outcome(verity_date.user1_feedback, verity_date.user2_feedback)
        framing = outcome_framing(verity_date.user1_feedback, verity_date.user2_feedback)
        log.info("verity_date_resolved", outcome=outcome, framing=framing)

        unlocked = False
        if outcome == OUTCOME_MUTUAL_YES:
            result = await db.execute(
                update(Match)
                .where(Match.id == match.id, Match.chat_unlocked.is_(False))
                .values(chat_unlocked=True)
                .execution_options(synchronize_session=False)
            )
            await db.refresh(match)
            unlocked = match.chat_unlocked
            if result.rowcount:
                log.info("chat_unlocked")
            for user_id in (match.user1_id, match.user2_id):
                await self._notify(
                    user_id, "chat_unlocked", "Chat unlocked!",
                    "You both said yes. Say hello!", match.id,
                )
        else:
            title, message = _RESOLUTION_COPY[framing]
            for user_id in (match.user1_id, match.user2_id):
                await self._notify(
                    user_id, "verity_date_resolved", title, message, verity_date.id
                )

        await self._publish(
            match.id, "verity_date_resolved",
            {"verity_date_id": verity_date.id, "outcome": outcome},
        )
        return FeedbackResult(
            verity_date_id=verity_date.id,
            outcome=outcome,
            framing=framing,
            chat_unlocked=unlocked,
        )

    def _current_result(
        self, verity_date: VerityDate, already_submitted: bool
    ) -> FeedbackResult:
        if not verity_date.completed:
            return FeedbackResult(
                verity_date_id=verity_date.id,
                outcome=OUTCOME_WAITING,
                framing="waiting",
                already_submitted=already_submitted,
            )
        return FeedbackResult(
            verity_date_id=verity_date.id,
            outcome=feedback_outcome(verity_date.user1_feedback, verity_date.user2_feedback),
            framing=outcome_framing(verity_date.user1_feedback, verity_date.user2_feedback),
            already_submitted=already_submitted,
            chat_unlocked=verity_date.is_mutual_yes,
        )

    async def _notify(self, user_id, kind, title, message, related_id=None) -> None:
        if self._notifier is not None:
            await self._notifier.notify(user_id, kind, title, message, related_id)

    async def _publish(self, match_id: uuid.UUID, event: str, payload: dict) -> None:
        if self._event_bus is not None:
            await self._event_bus.publish(match_channel(match_id), event, payload)
