"""
Verity — Match & Verity-Date Orchestrator

Owns the transition from a mutual interest to a timed video encounter:

    match created -> date requested -> room provisioned -> in session
    -> session closed (feedback collection) -> resolved

Every state change that two users may race on is decided by the storage
layer rather than by a read-then-write in Python:

- one match per unordered pair: ``INSERT ... ON CONFLICT (pair_key) DO NOTHING``
- one active date per match: partial unique index + ``ON CONFLICT DO NOTHING``
- one room per date: ``UPDATE ... WHERE room_url IS NULL``

Room provisioning talks to an external provider and is retried with
exponential backoff (tenacity).  When the provider stays unavailable the
failure is logged, written to ``video_call_errors`` for manual remediation
and surfaced as a retryable ``RoomProvisioningError``; the date stays
requested so either participant may simply try again.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import structlog
from sqlalchemy import or_, select, text, update
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from verity.config import get_settings
from verity.database import insert_for, utcnow
from verity.models.match import Match, VerityDate, VideoCallError, pair_key_for
from verity.services.block_lookup import is_blocked
from verity.services.errors import (
    BlockedPairError,
    ForbiddenError,
    InvariantViolation,
    NotFoundError,
    RoomProvisioningError,
    ValidationError,
)
from verity.services.event_bus import match_channel
from verity.services.room_provisioner import RoomProviderError, RoomProviderUnavailable
from verity.services.state_machine import DATE_REQUESTED, date_state, seconds_remaining

logger = structlog.get_logger("verity.date_service")


# ──────────────────────────────────────────────────────────────────────────────
# Result types
# ──────────────────────────────────────────────────────────────────────────────

@dataclass
class MatchOutcome:
    match: Match
    verity_date: VerityDate | None
    created: bool


@dataclass
class RequestOutcome:
    verity_date: VerityDate
    created: bool


@dataclass
class AcceptOutcome:
    verity_date_id: uuid.UUID
    room_url: str
    session_ends_at: datetime | None
    already_provisioned: bool


@dataclass
class RescheduleOutcome:
    verity_date: VerityDate
    preferred_times: list[str]


@dataclass
class SessionView:
    verity_date_id: uuid.UUID
    match_id: uuid.UUID
    partner_id: uuid.UUID
    state: str
    room_url: str | None
    session_ends_at: datetime | None
    seconds_remaining: int
    my_feedback: str | None


@dataclass
class MatchSummary:
    match: Match
    partner_id: uuid.UUID
    active_date: VerityDate | None = None


# ──────────────────────────────────────────────────────────────────────────────
# Shared lookups
# ──────────────────────────────────────────────────────────────────────────────

async def load_match_for_participant(
    db: AsyncSession, match_id: uuid.UUID, caller_id: uuid.UUID
) -> Match:
    match = await db.get(Match, match_id)
    if match is None:
        raise NotFoundError("Match not found", match_id=str(match_id))
    if not match.has_participant(caller_id):
        raise ForbiddenError("Not part of this match", match_id=str(match_id))
    return match


async def load_date_for_participant(
    db: AsyncSession, verity_date_id: uuid.UUID, caller_id: uuid.UUID
) -> tuple[VerityDate, Match]:
    """Fetch a date and its match, checking the caller takes part in it."""
    verity_date = await db.get(VerityDate, verity_date_id)
    if verity_date is None:
        raise NotFoundError("Verity-Date not found", verity_date_id=str(verity_date_id))
    match = await db.get(Match, verity_date.match_id)
    if match is None:
        raise NotFoundError("Verity-Date not found", verity_date_id=str(verity_date_id))
    if not match.has_participant(caller_id):
        raise ForbiddenError(
            "Not a participant of this Verity-Date", verity_date_id=str(verity_date_id)
        )
    return verity_date, match


async def ensure_not_blocked(db: AsyncSession, match: Match) -> None:
    """Refuse any date action between two users where either has blocked the other."""
    if await is_blocked(db, match.user1_id, match.user2_id):
        raise BlockedPairError(
            "This match is no longer available", match_id=str(match.id)
        )


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class DateService:
    """Match creation, date requests, room provisioning and session timing.

    The notifier, event bus and room provisioner are injected so the
    service can be exercised against fakes.
    """

    def __init__(
        self,
        provisioner: Any,
        notifier: Any | None = None,
        event_bus: Any | None = None,
        clock: Callable[[], datetime] = utcnow,
        retry_wait: Any | None = None,
    ) -> None:
        settings = get_settings()
        self._provisioner = provisioner
        self._notifier = notifier
        self._event_bus = event_bus
        self._clock = clock
        self._session_length = timedelta(seconds=settings.VERITY_DATE_DURATION_SECONDS)
        self._max_attempts = settings.ROOM_PROVISION_MAX_ATTEMPTS
        self._max_preferred_times = settings.MAX_PREFERRED_TIMES
        self._retry_wait = retry_wait or wait_exponential(multiplier=0.5, min=0.5, max=4)

    # ── Match creation ────────────────────────────────────────────────────

    async def create_match_with_date(
        self,
        db: AsyncSession,
        closer_id: uuid.UUID,
        other_id: uuid.UUID,
    ) -> MatchOutcome:
        """Create the match for a mutual pair and open its first date.

        ``closer_id`` is the user whose interest completed the pair and
        becomes ``user1``.  When a concurrent request already created the
        match, that row is reused and no second match or date appears.
        """
        key = pair_key_for(closer_id, other_id)
        log = logger.bind(pair_key=key)

        stmt = (
            insert_for(db, Match)
            .values(
                id=uuid.uuid4(),
                user1_id=closer_id,
                user2_id=other_id,
                pair_key=key,
                both_interested=True,
                chat_unlocked=False,
                created_at=self._clock(),
            )
            .on_conflict_do_nothing(index_elements=["pair_key"])
            .returning(Match.id)
        )
        inserted_id = (await db.execute(stmt)).scalar_one_or_none()
        created = inserted_id is not None

        match = (
            await db.execute(select(Match).where(Match.pair_key == key))
        ).scalar_one()

        if created:
            log.info("match_created", match_id=str(match.id))
        else:
            log.info("match_reused", match_id=str(match.id))

        verity_date: VerityDate | None
        if created or not await self._has_any_date(db, match.id):
            verity_date, _ = await self.ensure_active_date(db, match)
        else:
            verity_date = await self.get_active_date(db, match.id)

        if created:
            await self._notify(
                closer_id, "match", "It's a match!",
                "You both want to meet. Start a Verity-Date to see each other.", match.id,
            )
            await self._notify(
                other_id, "match", "It's a match!",
                "You both want to meet. Start a Verity-Date to see each other.", match.id,
            )
            if verity_date is not None:
                for user_id in (closer_id, other_id):
                    await self._notify(
                        user_id, "verity_date_request", "Verity-Date requested",
                        "A 10-minute video date is waiting for you.", verity_date.id,
                    )

        return MatchOutcome(match=match, verity_date=verity_date, created=created)

    async def ensure_active_date(
        self, db: AsyncSession, match: Match
    ) -> tuple[VerityDate, bool]:
        """Return the active date of ``match``, opening one if none is open."""
        stmt = (
            insert_for(db, VerityDate)
            .values(
                id=uuid.uuid4(),
                match_id=match.id,
                user1_status="pending",
                user2_status="pending",
                completed=False,
                created_at=self._clock(),
            )
            .on_conflict_do_nothing(
                index_elements=["match_id"], index_where=text("NOT completed")
            )
            .returning(VerityDate.id)
        )
        inserted_id = (await db.execute(stmt)).scalar_one_or_none()

        verity_date = await self.get_active_date(db, match.id)
        if verity_date is None:
            raise InvariantViolation(
                "Active Verity-Date vanished after insert", match_id=str(match.id)
            )
        if inserted_id is not None:
            logger.info(
                "verity_date_requested",
                match_id=str(match.id),
                verity_date_id=str(verity_date.id),
            )
        return verity_date, inserted_id is not None

    async def get_active_date(
        self, db: AsyncSession, match_id: uuid.UUID
    ) -> VerityDate | None:
        stmt = select(VerityDate).where(
            VerityDate.match_id == match_id,
            VerityDate.completed.is_(False),
        )
        return (await db.execute(stmt)).scalar_one_or_none()

    async def _has_any_date(self, db: AsyncSession, match_id: uuid.UUID) -> bool:
        stmt = select(VerityDate.id).where(VerityDate.match_id == match_id).limit(1)
        return (await db.execute(stmt)).first() is not None

    async def request_date(
        self, db: AsyncSession, match_id: uuid.UUID, caller_id: uuid.UUID
    ) -> RequestOutcome:
        """Open another date on a match whose earlier date was not mutual."""
        match = await load_match_for_participant(db, match_id, caller_id)
        await ensure_not_blocked(db, match)
        if match.chat_unlocked:
            raise InvariantViolation(
                "Chat is already unlocked for this match", match_id=str(match_id)
            )

        verity_date, created = await self.ensure_active_date(db, match)
        if created:
            await self._notify(
                match.partner_of(caller_id), "verity_date_request",
                "Verity-Date requested", "Your match wants another Verity-Date.",
                verity_date.id,
            )
        return RequestOutcome(verity_date=verity_date, created=created)

    # ── Acceptance & provisioning ─────────────────────────────────────────

    async def accept_date(
        self, db: AsyncSession, verity_date_id: uuid.UUID, caller_id: uuid.UUID
    ) -> AcceptOutcome:
        """Accept a date, provisioning its video room exactly once.

        Raises
        ------
        RoomProvisioningError
            If the provider is still unavailable after bounded retries.
            The date remains in ``date-requested``.
        """
        verity_date, match = await load_date_for_participant(db, verity_date_id, caller_id)
        await ensure_not_blocked(db, match)
        role = match.role_of(caller_id)
        log = logger.bind(
            verity_date_id=str(verity_date_id),
            match_id=str(match.id),
            user_id=str(caller_id),
        )

        if verity_date.completed:
            raise InvariantViolation(
                "Verity-Date already resolved", verity_date_id=str(verity_date_id)
            )

        if verity_date.room_url is not None:
            await self._mark_accepted(db, verity_date, role)
            log.info("room_already_provisioned")
            return AcceptOutcome(
                verity_date_id=verity_date.id,
                room_url=verity_date.room_url,
                session_ends_at=verity_date.session_ends_at,
                already_provisioned=True,
            )

        try:
            room, attempts = await self._provision_with_retry(verity_date.id)
        except RoomProviderError as exc:
            await self._record_provisioning_failure(db, verity_date, match, exc)
            raise RoomProvisioningError(
                "Video call service temporarily unavailable. Please try again in a moment.",
                verity_date_id=str(verity_date_id),
            ) from exc

        now = self._clock()
        result = await db.execute(
            update(VerityDate)
            .where(
                VerityDate.id == verity_date.id,
                VerityDate.room_url.is_(None),
                VerityDate.completed.is_(False),
            )
            .values(
                room_url=room.url,
                room_name=room.name,
                scheduled_at=now,
                session_ends_at=now + self._session_length,
                **{f"{role}_status": "accepted"},
            )
            .execution_options(synchronize_session=False)
        )
        await db.refresh(verity_date)

        if result.rowcount == 0:
            if verity_date.room_url is None:
                raise InvariantViolation(
                    "Verity-Date resolved while provisioning",
                    verity_date_id=str(verity_date_id),
                )
            # A concurrent accept provisioned first; its room wins.
            await self._mark_accepted(db, verity_date, role)
            log.info("room_provision_race_lost")
            return AcceptOutcome(
                verity_date_id=verity_date.id,
                room_url=verity_date.room_url,
                session_ends_at=verity_date.session_ends_at,
                already_provisioned=True,
            )

        log.info("room_provisioned", room_name=room.name, attempts=attempts)

        await self._notify(
            match.partner_of(caller_id), "verity_date_accepted",
            "Verity-Date accepted", "Your match is ready. Join the video room now.",
            verity_date.id,
        )
        await self._publish(
            match.id, "verity_date_accepted",
            {
                "verity_date_id": verity_date.id,
                "room_url": room.url,
                "session_ends_at": verity_date.session_ends_at,
            },
        )
        return AcceptOutcome(
            verity_date_id=verity_date.id,
            room_url=room.url,
            session_ends_at=verity_date.session_ends_at,
            already_provisioned=False,
        )

    async def _provision_with_retry(self, verity_date_id: uuid.UUID):
        attempts = 0
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(RoomProviderUnavailable),
            stop=stop_after_attempt(self._max_attempts),
            wait=self._retry_wait,
            reraise=True,
        ):
            with attempt:
                attempts = attempt.retry_state.attempt_number
                logger.debug(
                    "room_provision_attempt",
                    verity_date_id=str(verity_date_id),
                    attempt_number=attempts,
                )
                room = await self._provisioner.create_room(str(verity_date_id))
                return room, attempts
        raise RoomProviderUnavailable("Room provisioning was not attempted")

    async def _record_provisioning_failure(
        self,
        db: AsyncSession,
        verity_date: VerityDate,
        match: Match,
        exc: Exception,
    ) -> None:
        logger.error(
            "room_provisioning_failed",
            verity_date_id=str(verity_date.id),
            match_id=str(match.id),
            user1_id=str(match.user1_id),
            user2_id=str(match.user2_id),
            error=str(exc),
            timestamp=self._clock().isoformat(),
        )
        db.add(
            VideoCallError(
                verity_date_id=verity_date.id,
                match_id=match.id,
                user1_id=match.user1_id,
                user2_id=match.user2_id,
                error_message=str(exc),
                attempts=self._max_attempts,
                created_at=self._clock(),
            )
        )
        # The caller's request fails after this, so persist the log now.
        await db.commit()

    async def _mark_accepted(
        self, db: AsyncSession, verity_date: VerityDate, role: str
    ) -> None:
        if getattr(verity_date, f"{role}_status") == "accepted":
            return
        await db.execute(
            update(VerityDate)
            .where(VerityDate.id == verity_date.id)
            .values(**{f"{role}_status": "accepted"})
            .execution_options(synchronize_session=False)
        )
        await db.refresh(verity_date)

    # ── Rescheduling ──────────────────────────────────────────────────────

    async def reschedule_date(
        self,
        db: AsyncSession,
        verity_date_id: uuid.UUID,
        caller_id: uuid.UUID,
        preferred_times: list[datetime],
    ) -> RescheduleOutcome:
        """Answer "maybe later" with up to three proposed slots."""
        if not preferred_times:
            raise ValidationError("Propose at least one preferred time")
        if len(preferred_times) > self._max_preferred_times:
            raise ValidationError(
                f"Propose at most {self._max_preferred_times} preferred times"
            )

        verity_date, match = await load_date_for_participant(db, verity_date_id, caller_id)
        await ensure_not_blocked(db, match)
        state = date_state(verity_date, self._clock())
        if state != DATE_REQUESTED:
            raise InvariantViolation(
                "Only a requested Verity-Date can be rescheduled",
                verity_date_id=str(verity_date_id),
                state=state,
            )

        role = match.role_of(caller_id)
        slots = sorted(_as_utc(t).isoformat() for t in preferred_times)
        await db.execute(
            update(VerityDate)
            .where(VerityDate.id == verity_date.id, VerityDate.room_url.is_(None))
            .values(
                **{
                    f"{role}_status": "maybe_later",
                    f"{role}_preferred_times": slots,
                }
            )
            .execution_options(synchronize_session=False)
        )
        await db.refresh(verity_date)

        logger.info(
            "verity_date_rescheduled",
            verity_date_id=str(verity_date_id),
            user_id=str(caller_id),
            slots=len(slots),
        )
        await self._notify(
            match.partner_of(caller_id), "verity_date_rescheduled",
            "Maybe later", "Your match proposed other times for your Verity-Date.",
            verity_date.id,
        )
        return RescheduleOutcome(verity_date=verity_date, preferred_times=slots)

    # ── Session timing ────────────────────────────────────────────────────

    async def close_elapsed_sessions(
        self, db: AsyncSession, now: datetime | None = None
    ) -> int:
        """Close every session whose ten minutes are up.

        Runs from the application's background sweep, so sessions end on
        time even when neither participant's client is connected.
        """
        now = now or self._clock()
        rows = (
            await db.execute(
                select(VerityDate.id, VerityDate.match_id).where(
                    VerityDate.session_ends_at.is_not(None),
                    VerityDate.session_ends_at <= now,
                    VerityDate.session_closed_at.is_(None),
                    VerityDate.completed.is_(False),
                )
            )
        ).all()
        if not rows:
            return 0

        await db.execute(
            update(VerityDate)
            .where(
                VerityDate.id.in_([row.id for row in rows]),
                VerityDate.session_closed_at.is_(None),
            )
            .values(session_closed_at=now)
            .execution_options(synchronize_session=False)
        )

        for row in rows:
            await self._publish(
                row.match_id, "session_ended", {"verity_date_id": row.id}
            )
        logger.info("sessions_closed", count=len(rows))
        return len(rows)

    async def get_session(
        self, db: AsyncSession, verity_date_id: uuid.UUID, caller_id: uuid.UUID
    ) -> SessionView:
        verity_date, match = await load_date_for_participant(db, verity_date_id, caller_id)
        now = self._clock()
        role = match.role_of(caller_id)
        return SessionView(
            verity_date_id=verity_date.id,
            match_id=match.id,
            partner_id=match.partner_of(caller_id),
            state=date_state(verity_date, now),
            room_url=verity_date.room_url,
            session_ends_at=verity_date.session_ends_at,
            seconds_remaining=seconds_remaining(verity_date, now),
            my_feedback=getattr(verity_date, f"{role}_feedback"),
        )

    # ── Listing ───────────────────────────────────────────────────────────

    async def list_matches(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        exclude_ids: set[uuid.UUID] | None = None,
    ) -> list[MatchSummary]:
        """Matches of ``user_id``, newest first, minus excluded counterparts."""
        exclude_ids = exclude_ids or set()
        matches = (
            await db.execute(
                select(Match)
                .where(or_(Match.user1_id == user_id, Match.user2_id == user_id))
                .order_by(Match.created_at.desc())
            )
        ).scalars().all()

        summaries = [
            MatchSummary(match=m, partner_id=m.partner_of(user_id))
            for m in matches
            if m.partner_of(user_id) not in exclude_ids
        ]
        if not summaries:
            return []

        active = (
            await db.execute(
                select(VerityDate).where(
                    VerityDate.match_id.in_([s.match.id for s in summaries]),
                    VerityDate.completed.is_(False),
                )
            )
        ).scalars().all()
        by_match = {vd.match_id: vd for vd in active}
        for summary in summaries:
            summary.active_date = by_match.get(summary.match.id)
        return summaries

    # ── Side channels ─────────────────────────────────────────────────────

    async def _notify(
        self,
        user_id: uuid.UUID,
        kind: str,
        title: str,
        message: str,
        related_id: uuid.UUID | None = None,
    ) -> None:
        if self._notifier is not None:
            await self._notifier.notify(user_id, kind, title, message, related_id)

    async def _publish(self, match_id: uuid.UUID, event: str, payload: dict) -> None:
        if self._event_bus is not None:
            await self._event_bus.publish(match_channel(match_id), event, payload)
