"""Tests for the discovery feed builder and the client-side feed window."""
import uuid
from datetime import timedelta
from types import SimpleNamespace

import pytest

from verity.models.safety import Block
from verity.services.errors import NotFoundError, ValidationError
from verity.services.feed_service import (
    FeedFilters,
    FeedPreferences,
    FeedService,
    FeedWindow,
    bounding_box,
    haversine_km,
)

LONDON = (51.5074, -0.1278)
# Roughly 5 km and 30 km north of central London.
NEAR = (51.5524, -0.1278)
FAR = (51.7774, -0.1278)


@pytest.fixture
def feed_service(clock):
    return FeedService(clock=clock)


@pytest.fixture
def seeker(make_profile):
    async def _seeker(**overrides):
        fields = dict(display_name="Seeker", gender="man", interested_in=["woman"])
        fields.update(overrides)
        return await make_profile(**fields)

    return _seeker


class TestGeometry:
    """Tests for distance helpers."""

    def test_haversine_known_distance(self):
        # London to Paris is about 344 km.
        assert haversine_km(51.5074, -0.1278, 48.8566, 2.3522) == pytest.approx(344, abs=3)

    def test_bounding_box_contains_radius(self):
        min_lat, max_lat, min_lon, max_lon = bounding_box(*LONDON, 10)
        assert min_lat < LONDON[0] < max_lat
        assert min_lon < LONDON[1] < max_lon

    def test_bounding_box_near_pole_drops_longitude(self):
        _, _, min_lon, max_lon = bounding_box(89.95, 10.0, 50)
        assert min_lon is None and max_lon is None


class TestBuildFeed:
    """Tests for candidate selection and ordering."""

    @pytest.mark.asyncio
    async def test_excludes_self_seen_and_blocked(
        self, db, make_profile, seeker, feed_service, interest_service
    ):
        me = await seeker()
        liked = await make_profile(display_name="Liked", latitude=NEAR[0], longitude=NEAR[1])
        passed = await make_profile(display_name="Passed", latitude=NEAR[0], longitude=NEAR[1])
        blocked_me = await make_profile(display_name="BlockedMe", latitude=NEAR[0], longitude=NEAR[1])
        i_blocked = await make_profile(display_name="IBlocked", latitude=NEAR[0], longitude=NEAR[1])
        fresh = await make_profile(display_name="Fresh", latitude=NEAR[0], longitude=NEAR[1])

        await interest_service.express_interest(db, me.user_id, liked.user_id)
        await interest_service.express_pass(db, me.user_id, passed.user_id)
        db.add(Block(blocker_id=blocked_me.user_id, blocked_id=me.user_id))
        db.add(Block(blocker_id=me.user_id, blocked_id=i_blocked.user_id))
        await db.flush()

        feed = await feed_service.build_feed(db, me.user_id, FeedPreferences())
        assert [c.profile.user_id for c in feed] == [fresh.user_id]

    @pytest.mark.asyncio
    async def test_radius_gender_and_age(self, db, make_profile, seeker, feed_service):
        me = await seeker()
        inside = await make_profile(display_name="Inside", latitude=NEAR[0], longitude=NEAR[1])
        await make_profile(display_name="Outside", latitude=FAR[0], longitude=FAR[1])
        await make_profile(display_name="Man", gender="man", latitude=NEAR[0], longitude=NEAR[1])
        await make_profile(display_name="Older", age=60, latitude=NEAR[0], longitude=NEAR[1])

        prefs = FeedPreferences(age_min=25, age_max=40, distance_km=10)
        feed = await feed_service.build_feed(db, me.user_id, prefs)

        assert [c.profile.user_id for c in feed] == [inside.user_id]
        assert feed[0].distance_km == pytest.approx(5.0, abs=0.3)

    @pytest.mark.asyncio
    async def test_boosted_first_then_nearest(self, db, make_profile, seeker, feed_service, clock):
        me = await seeker()
        nearest = await make_profile(display_name="Nearest", latitude=51.51, longitude=-0.1278)
        middle = await make_profile(display_name="Middle", latitude=NEAR[0], longitude=NEAR[1])
        boosted = await make_profile(
            display_name="Boosted",
            latitude=51.60,
            longitude=-0.1278,
            boost_expires_at=clock.now + timedelta(minutes=10),
        )
        await make_profile(
            display_name="ExpiredBoost",
            latitude=51.58,
            longitude=-0.1278,
            boost_expires_at=clock.now - timedelta(minutes=1),
        )

        feed = await feed_service.build_feed(db, me.user_id, FeedPreferences(), page_size=3)

        assert [c.profile.user_id for c in feed] == [
            boosted.user_id,
            nearest.user_id,
            middle.user_id,
        ]
        assert feed[0].boosted is True

    @pytest.mark.asyncio
    async def test_filters_exclude_missing_attributes(
        self, db, make_profile, seeker, feed_service, clock
    ):
        me = await seeker()
        match_all = await make_profile(
            display_name="All",
            verified=True,
            height_cm=170,
            interests=["hiking", "film"],
            values=["honesty"],
            last_active=clock.now - timedelta(hours=2),
        )
        await make_profile(
            display_name="NoHeight",
            verified=True,
            height_cm=None,
            interests=["hiking"],
            values=["honesty"],
            last_active=clock.now,
        )
        await make_profile(
            display_name="Stale",
            verified=True,
            height_cm=170,
            interests=["hiking"],
            values=["honesty"],
            last_active=clock.now - timedelta(days=3),
        )
        await make_profile(
            display_name="Unverified",
            verified=False,
            height_cm=170,
            interests=["hiking"],
            values=["honesty"],
            last_active=clock.now,
        )

        filters = FeedFilters(
            verified_only=True,
            active_recently=True,
            height_range=(160, 180),
            interests=["hiking"],
            values=["honesty", "family"],
        )
        feed = await feed_service.build_feed(db, me.user_id, FeedPreferences(), filters)
        assert [c.profile.user_id for c in feed] == [match_all.user_id]

    @pytest.mark.asyncio
    async def test_requires_location(self, db, seeker, feed_service):
        me = await seeker(latitude=None, longitude=None)
        with pytest.raises(ValidationError, match="User location not found"):
            await feed_service.build_feed(db, me.user_id, FeedPreferences())

    @pytest.mark.asyncio
    async def test_unknown_user(self, db, feed_service):
        with pytest.raises(NotFoundError):
            await feed_service.build_feed(db, uuid.uuid4(), FeedPreferences())

    @pytest.mark.asyncio
    async def test_inverted_age_range(self, db, seeker, feed_service):
        me = await seeker()
        with pytest.raises(ValidationError):
            await feed_service.build_feed(db, me.user_id, FeedPreferences(age_min=40, age_max=30))


class TestFeedWindow:
    """Tests for the client-side de-duplicating buffer."""

    @staticmethod
    def _candidates(*ids):
        return [SimpleNamespace(profile=SimpleNamespace(user_id=i)) for i in ids]

    def test_deduplicates_across_pages(self):
        window = FeedWindow(refill_threshold=2)
        assert window.extend(self._candidates(1, 2, 3), requested=3) == 3
        assert window.extend(self._candidates(3, 4), requested=3) == 1
        assert [window.pop().profile.user_id for _ in range(4)] == [1, 2, 3, 4]
        assert window.pop() is None

    def test_needs_more_below_threshold(self):
        window = FeedWindow(refill_threshold=2)
        window.extend(self._candidates(1, 2, 3), requested=3)
        assert not window.needs_more()
        window.pop()
        window.pop()
        assert window.needs_more()

    def test_short_page_marks_exhausted(self):
        window = FeedWindow(refill_threshold=5)
        window.extend(self._candidates(1), requested=10)
        assert window.exhausted
        assert not window.needs_more()

        window.reset()
        assert len(window) == 0
        assert window.needs_more()
