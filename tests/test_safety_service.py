"""Tests for SafetyService: blocks, unmatching and reports."""
import uuid

import pytest
from sqlalchemy import func, select

from verity.models.interest import InterestEvent, SeenRecord
from verity.models.match import Match, VerityDate
from verity.models.message import Message
from verity.services.block_lookup import blocked_ids, is_blocked
from verity.services.errors import ForbiddenError, NotFoundError, ValidationError
from verity.services.safety_service import SafetyService


@pytest.fixture
def safety_service(provisioner):
    return SafetyService(provisioner=provisioner)


async def _count(db, model):
    return (await db.execute(select(func.count()).select_from(model))).scalar_one()


class TestBlocking:
    """Tests for block / unblock."""

    @pytest.mark.asyncio
    async def test_block_is_idempotent_and_symmetric(self, db, pair, safety_service):
        a, b = pair
        first = await safety_service.block(db, a.user_id, b.user_id)
        second = await safety_service.block(db, a.user_id, b.user_id)

        assert first.status == "blocked"
        assert second.status == "already_blocked"
        assert await is_blocked(db, a.user_id, b.user_id)
        assert await is_blocked(db, b.user_id, a.user_id)
        assert await blocked_ids(db, b.user_id) == {a.user_id}

    @pytest.mark.asyncio
    async def test_unblock(self, db, pair, safety_service):
        a, b = pair
        await safety_service.block(db, a.user_id, b.user_id)

        assert (await safety_service.unblock(db, a.user_id, b.user_id)).status == "unblocked"
        assert (await safety_service.unblock(db, a.user_id, b.user_id)).status == "not_blocked"
        assert not await is_blocked(db, a.user_id, b.user_id)

    @pytest.mark.asyncio
    async def test_cannot_block_self(self, db, pair, safety_service):
        a, _ = pair
        with pytest.raises(ValidationError):
            await safety_service.block(db, a.user_id, a.user_id)


class TestUnmatch:
    """Tests for hard-deleting a match."""

    @pytest.mark.asyncio
    async def test_unmatch_removes_match_and_dependents(
        self, db, pair, make_match, date_service, safety_service, provisioner
    ):
        a, b = pair
        outcome = await make_match(a, b)
        accepted = await date_service.accept_date(db, outcome.verity_date_id, a.user_id)
        match = await db.get(Match, outcome.match_id)
        match.chat_unlocked = True
        db.add(Message(match_id=match.id, sender_id=a.user_id, content="hi"))
        await db.flush()

        result = await safety_service.unmatch(db, outcome.match_id, b.user_id)

        assert result.status == "unmatched"
        assert await _count(db, Match) == 0
        assert await _count(db, VerityDate) == 0
        assert await _count(db, Message) == 0
        assert await _count(db, InterestEvent) == 0
        # Both stay out of each other's feed.
        assert await _count(db, SeenRecord) == 2
        room_name = accepted.room_url.rsplit("/", 1)[-1]
        assert result.room_names == [room_name]
        # Nothing is released before the caller commits.
        assert provisioner.deleted == []

        await db.commit()
        assert await safety_service.release_rooms(result.room_names) == 1
        assert provisioner.deleted == [room_name]

    @pytest.mark.asyncio
    async def test_unmatch_without_room_releases_nothing(
        self, db, pair, make_match, safety_service, provisioner
    ):
        a, b = pair
        outcome = await make_match(a, b)

        result = await safety_service.unmatch(db, outcome.match_id, a.user_id)

        assert result.room_names == []
        assert await safety_service.release_rooms(result.room_names) == 0
        assert provisioner.deleted == []

    @pytest.mark.asyncio
    async def test_unmatch_twice_is_a_noop(self, db, pair, make_match, safety_service):
        a, b = pair
        outcome = await make_match(a, b)
        await safety_service.unmatch(db, outcome.match_id, a.user_id)

        again = await safety_service.unmatch(db, outcome.match_id, a.user_id)
        assert again.status == "already_unmatched"

    @pytest.mark.asyncio
    async def test_outsider_cannot_unmatch(self, db, pair, make_profile, make_match, safety_service):
        a, b = pair
        outcome = await make_match(a, b)
        stranger = await make_profile(display_name="Stranger")

        with pytest.raises(ForbiddenError):
            await safety_service.unmatch(db, outcome.match_id, stranger.user_id)
        assert await _count(db, Match) == 1


class TestReports:
    """Tests for filing reports."""

    @pytest.mark.asyncio
    async def test_report_is_recorded_pending(self, db, pair, safety_service):
        a, b = pair
        report = await safety_service.report(
            db, a.user_id, b.user_id, "harassment", details="Rude on the call",
            context="verity_date_feedback",
        )
        assert report.id is not None
        assert report.status == "pending"
        assert report.context == "verity_date_feedback"

    @pytest.mark.asyncio
    async def test_report_validation(self, db, pair, safety_service):
        a, b = pair
        with pytest.raises(ValidationError):
            await safety_service.report(db, a.user_id, b.user_id, "boring")
        with pytest.raises(ValidationError):
            await safety_service.report(db, a.user_id, a.user_id, "fake")
        with pytest.raises(ValidationError):
            await safety_service.report(db, a.user_id, b.user_id, "other", details="x" * 2001)
        with pytest.raises(NotFoundError):
            await safety_service.report(db, a.user_id, uuid.uuid4(), "fake")
