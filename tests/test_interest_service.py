"""Tests for InterestService: the interest ledger and mutual-pair detection."""
import uuid

import pytest
from sqlalchemy import func, select

from verity.models.interest import InterestEvent, SeenRecord
from verity.models.match import Match, VerityDate
from verity.models.safety import Block
from verity.services.errors import (
    BlockedPairError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from verity.services.interest_service import NOTHING_TO_UNDO, REQUIRES_PREMIUM, UNDONE


async def _count(db, model, *criteria):
    stmt = select(func.count()).select_from(model)
    if criteria:
        stmt = stmt.where(*criteria)
    return (await db.execute(stmt)).scalar_one()


class TestExpressInterest:
    """Tests for one-directional interest."""

    @pytest.mark.asyncio
    async def test_one_sided_interest_is_not_a_match(self, db, pair, interest_service, notifier):
        a, b = pair
        outcome = await interest_service.express_interest(db, a.user_id, b.user_id)

        assert outcome.is_match is False
        assert outcome.already_interested is False
        assert await _count(db, InterestEvent) == 1
        assert await _count(db, Match) == 0
        assert notifier.kinds_for(b.user_id) == ["like"]

    @pytest.mark.asyncio
    async def test_repeat_interest_is_idempotent(self, db, pair, interest_service, notifier):
        a, b = pair
        await interest_service.express_interest(db, a.user_id, b.user_id)
        outcome = await interest_service.express_interest(db, a.user_id, b.user_id)

        assert outcome.already_interested is True
        assert await _count(db, InterestEvent) == 1
        assert await _count(db, SeenRecord) == 1
        # The target is told once.
        assert notifier.kinds_for(b.user_id) == ["like"]

    @pytest.mark.asyncio
    async def test_self_interest_rejected(self, db, pair, interest_service):
        a, _ = pair
        with pytest.raises(ValidationError):
            await interest_service.express_interest(db, a.user_id, a.user_id)

    @pytest.mark.asyncio
    async def test_unknown_target(self, db, pair, interest_service):
        a, _ = pair
        with pytest.raises(NotFoundError):
            await interest_service.express_interest(db, a.user_id, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_blocked_pair_rejected_either_direction(self, db, pair, interest_service):
        a, b = pair
        db.add(Block(blocker_id=b.user_id, blocked_id=a.user_id))
        await db.flush()

        with pytest.raises(BlockedPairError):
            await interest_service.express_interest(db, a.user_id, b.user_id)
        with pytest.raises(BlockedPairError):
            await interest_service.express_interest(db, b.user_id, a.user_id)
        assert await _count(db, InterestEvent) == 0


class TestMutualInterest:
    """Tests for the hand-off from mutual interest to match creation."""

    @pytest.mark.asyncio
    async def test_reciprocal_interest_creates_match_and_date(
        self, db, pair, interest_service, notifier
    ):
        a, b = pair
        await interest_service.express_interest(db, a.user_id, b.user_id)
        outcome = await interest_service.express_interest(db, b.user_id, a.user_id)

        assert outcome.is_match is True
        assert outcome.match_id is not None
        assert outcome.verity_date_id is not None

        match = (await db.execute(select(Match))).scalar_one()
        assert match.user1_id == b.user_id
        assert match.user2_id == a.user_id
        assert match.chat_unlocked is False

        verity_date = (await db.execute(select(VerityDate))).scalar_one()
        assert verity_date.id == outcome.verity_date_id
        assert verity_date.room_url is None
        assert verity_date.completed is False

        for user in (a, b):
            kinds = notifier.kinds_for(user.user_id)
            assert "match" in kinds
            assert "verity_date_request" in kinds

    @pytest.mark.asyncio
    async def test_replaying_the_closing_interest_creates_nothing_new(
        self, db, pair, interest_service
    ):
        a, b = pair
        await interest_service.express_interest(db, a.user_id, b.user_id)
        first = await interest_service.express_interest(db, b.user_id, a.user_id)
        again = await interest_service.express_interest(db, b.user_id, a.user_id)
        other_side = await interest_service.express_interest(db, a.user_id, b.user_id)

        assert again.is_match and other_side.is_match
        assert again.match_id == first.match_id == other_side.match_id
        assert again.verity_date_id == first.verity_date_id
        assert await _count(db, Match) == 1
        assert await _count(db, VerityDate) == 1

    @pytest.mark.asyncio
    async def test_order_does_not_matter(self, db, make_profile, interest_service):
        a = await make_profile(display_name="A")
        b = await make_profile(display_name="B")
        c = await make_profile(display_name="C")

        await interest_service.express_interest(db, a.user_id, b.user_id)
        await interest_service.express_interest(db, b.user_id, a.user_id)
        await interest_service.express_interest(db, c.user_id, a.user_id)
        await interest_service.express_interest(db, a.user_id, c.user_id)

        assert await _count(db, Match) == 2
        assert await _count(db, VerityDate) == 2


class TestPassAndUndo:
    """Tests for passing and the premium undo."""

    @pytest.mark.asyncio
    async def test_pass_records_seen(self, db, pair, interest_service):
        a, b = pair
        record = await interest_service.express_pass(db, a.user_id, b.user_id)
        assert record.action == "pass"
        assert await _count(db, InterestEvent) == 0

    @pytest.mark.asyncio
    async def test_undo_requires_premium(self, db, pair, interest_service):
        a, b = pair
        await interest_service.express_pass(db, a.user_id, b.user_id)
        outcome = await interest_service.undo_last_pass(db, a.user_id, is_premium=False)
        assert outcome.status == REQUIRES_PREMIUM
        assert await _count(db, SeenRecord) == 1

    @pytest.mark.asyncio
    async def test_undo_restores_most_recent_pass(
        self, db, make_profile, interest_service, clock
    ):
        me = await make_profile(display_name="Me")
        first = await make_profile(display_name="First")
        second = await make_profile(display_name="Second")

        await interest_service.express_pass(db, me.user_id, first.user_id)
        clock.advance(seconds=5)
        await interest_service.express_pass(db, me.user_id, second.user_id)

        outcome = await interest_service.undo_last_pass(db, me.user_id, is_premium=True)
        assert outcome.status == UNDONE
        assert outcome.profile_id == second.user_id

        remaining = (await db.execute(select(SeenRecord.seen_user_id))).scalars().all()
        assert remaining == [first.user_id]

    @pytest.mark.asyncio
    async def test_undo_never_removes_interest(self, db, pair, interest_service):
        a, b = pair
        await interest_service.express_interest(db, a.user_id, b.user_id)
        outcome = await interest_service.undo_last_pass(db, a.user_id, is_premium=True)
        assert outcome.status == NOTHING_TO_UNDO
        assert await _count(db, SeenRecord) == 1

    @pytest.mark.asyncio
    async def test_pass_then_interest_overwrites_seen_action(self, db, pair, interest_service):
        a, b = pair
        await interest_service.express_pass(db, a.user_id, b.user_id)
        await interest_service.express_interest(db, a.user_id, b.user_id)

        record = (await db.execute(select(SeenRecord))).scalar_one()
        assert record.action == "interest"
        outcome = await interest_service.undo_last_pass(db, a.user_id, is_premium=True)
        assert outcome.status == NOTHING_TO_UNDO


class TestIncomingInterest:
    """Tests for the premium "who liked you" list."""

    @pytest.mark.asyncio
    async def test_requires_premium(self, db, pair, interest_service):
        _, b = pair
        with pytest.raises(ForbiddenError):
            await interest_service.list_incoming_interest(db, b.user_id, is_premium=False)

    @pytest.mark.asyncio
    async def test_lists_unanswered_admirers(self, db, make_profile, interest_service):
        me = await make_profile(display_name="Me")
        waiting = await make_profile(display_name="Waiting")
        answered = await make_profile(display_name="Answered")
        blocked = await make_profile(display_name="Blocked")

        for admirer in (waiting, answered, blocked):
            await interest_service.express_interest(db, admirer.user_id, me.user_id)
        await interest_service.express_pass(db, me.user_id, answered.user_id)
        db.add(Block(blocker_id=me.user_id, blocked_id=blocked.user_id))
        await db.flush()

        profiles = await interest_service.list_incoming_interest(db, me.user_id, is_premium=True)
        assert [p.user_id for p in profiles] == [waiting.user_id]
