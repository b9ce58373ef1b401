"""
Verity — Discovery Feed Builder

Produces a page of candidate profiles for a user:

1. Resolve the requester's location (required).
2. Build the exclusion set: self, everyone already seen (interest or pass),
   and everyone blocked in either direction.
3. Query active profiles inside a lat/lon bounding box around the requester
   that match the gender and age preferences, then compute the exact
   great-circle distance and drop anything beyond the radius.
4. Order boosted profiles first, then by distance (stable).
5. Apply the optional post-hoc filters; a profile missing the filtered
   attribute never passes that filter.
6. Truncate to the page size.

``FeedWindow`` is the client-side buffer over successive pages: it
de-duplicates across pages and signals when it is time to fetch more.
"""

from __future__ import annotations

import math
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Iterable

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from verity.config import get_settings
from verity.database import utcnow
from verity.models.interest import SeenRecord
from verity.models.profile import Profile
from verity.services.block_lookup import blocked_ids
from verity.services.errors import NotFoundError, ValidationError

logger = structlog.get_logger("verity.feed_service")

EARTH_RADIUS_KM = 6371.0
KM_PER_DEGREE_LAT = 111.32


@dataclass
class FeedPreferences:
    gender_prefs: list[str] | None = None
    age_min: int = 18
    age_max: int = 99
    distance_km: float = 50.0


@dataclass
class FeedFilters:
    verified_only: bool = False
    active_recently: bool = False
    height_range: tuple[int, int] | None = None
    interests: list[str] = field(default_factory=list)
    values: list[str] = field(default_factory=list)


@dataclass
class FeedCandidate:
    profile: Profile
    distance_km: float
    boosted: bool


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometres."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(a)))


def bounding_box(
    lat: float, lon: float, distance_km: float
) -> tuple[float, float, float | None, float | None]:
    """Return ``(min_lat, max_lat, min_lon, max_lon)`` enclosing the radius.

    The longitude bounds are ``None`` when the box would wrap the
    antimeridian or reach a pole; the haversine pass still enforces the
    radius in that case.
    """
    d_lat = distance_km / KM_PER_DEGREE_LAT
    min_lat, max_lat = lat - d_lat, lat + d_lat

    cos_lat = math.cos(math.radians(lat))
    if cos_lat < 1e-6 or max_lat >= 90 or min_lat <= -90:
        return max(min_lat, -90.0), min(max_lat, 90.0), None, None

    d_lon = distance_km / (KM_PER_DEGREE_LAT * cos_lat)
    min_lon, max_lon = lon - d_lon, lon + d_lon
    if min_lon < -180 or max_lon > 180:
        return min_lat, max_lat, None, None
    return min_lat, max_lat, min_lon, max_lon


# ──────────────────────────────────────────────────────────────────────────────
# Post-hoc filters
# ──────────────────────────────────────────────────────────────────────────────

def _overlaps(wanted: Iterable[str], have: Iterable[str] | None) -> bool:
    return bool(set(wanted) & set(have or ()))


def passes_filters(
    profile: Profile,
    filters: FeedFilters,
    now: datetime,
    active_window: timedelta,
) -> bool:
    if filters.verified_only and not profile.verified:
        return False

    if filters.active_recently:
        if profile.last_active is None or profile.last_active <= now - active_window:
            return False

    if filters.height_range and filters.height_range[0] > 0:
        low, high = filters.height_range
        if profile.height_cm is None or not (low <= profile.height_cm <= high):
            return False

    if filters.interests and not _overlaps(filters.interests, profile.interests):
        return False

    if filters.values and not _overlaps(filters.values, profile.values):
        return False

    return True


class FeedService:
    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        settings = get_settings()
        self._clock = clock
        self._default_page_size = settings.FEED_DEFAULT_PAGE_SIZE
        self._active_window = timedelta(hours=settings.ACTIVE_RECENTLY_HOURS)

    async def build_feed(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        prefs: FeedPreferences,
        filters: FeedFilters | None = None,
        page_size: int | None = None,
    ) -> list[FeedCandidate]:
        """Return up to ``page_size`` candidates for ``user_id``."""
        filters = filters or FeedFilters()
        page_size = page_size or self._default_page_size
        if page_size < 1:
            raise ValidationError("page_size must be positive")
        if prefs.age_min > prefs.age_max:
            raise ValidationError("age_min must not exceed age_max")
        if prefs.distance_km <= 0:
            raise ValidationError("distance_km must be positive")

        me = await db.get(Profile, user_id)
        if me is None:
            raise NotFoundError("Profile not found", user_id=str(user_id))
        if me.latitude is None or me.longitude is None:
            raise ValidationError("User location not found")

        log = logger.bind(user_id=str(user_id))
        excluded = await self.exclusion_set(db, user_id)

        min_lat, max_lat, min_lon, max_lon = bounding_box(
            me.latitude, me.longitude, prefs.distance_km
        )
        stmt = select(Profile).where(
            Profile.is_active.is_(True),
            Profile.latitude.is_not(None),
            Profile.longitude.is_not(None),
            Profile.latitude.between(min_lat, max_lat),
            Profile.age.between(prefs.age_min, prefs.age_max),
            Profile.user_id.not_in(list(excluded)),
        )
        if min_lon is not None:
            stmt = stmt.where(Profile.longitude.between(min_lon, max_lon))

        gender_prefs = prefs.gender_prefs or me.interested_in
        if gender_prefs:
            stmt = stmt.where(Profile.gender.in_(gender_prefs))

        now = self._clock()
        candidates: list[FeedCandidate] = []
        for profile in (await db.execute(stmt)).scalars():
            distance = haversine_km(
                me.latitude, me.longitude, profile.latitude, profile.longitude
            )
            if distance > prefs.distance_km:
                continue
            candidates.append(
                FeedCandidate(
                    profile=profile,
                    distance_km=round(distance, 2),
                    boosted=profile.is_boosted(now),
                )
            )

        candidates.sort(key=lambda c: (not c.boosted, c.distance_km))
        page = [
            c for c in candidates
            if passes_filters(c.profile, filters, now, self._active_window)
        ][:page_size]

        log.info(
            "feed_built",
            nearby=len(candidates),
            returned=len(page),
            excluded=len(excluded),
        )
        return page

    async def exclusion_set(self, db: AsyncSession, user_id: uuid.UUID) -> set[uuid.UUID]:
        seen = (
            await db.execute(
                select(SeenRecord.seen_user_id).where(SeenRecord.user_id == user_id)
            )
        ).scalars().all()
        return {user_id, *seen, *(await blocked_ids(db, user_id))}


class FeedWindow:
    """Client-side buffer over feed pages.

    ``needs_more`` turns true once fewer than ``refill_threshold``
    unconsumed candidates remain, so the next page can be requested before
    the user runs out.  A page shorter than requested marks the feed
    exhausted.
    """

    def __init__(
        self,
        refill_threshold: int | None = None,
        key: Callable[[object], object] = lambda c: c.profile.user_id,
    ) -> None:
        self.refill_threshold = refill_threshold or get_settings().FEED_REFILL_THRESHOLD
        self._key = key
        self._queue: deque = deque()
        self._known: set = set()
        self.exhausted = False

    def extend(self, page: list, requested: int | None = None) -> int:
        """Append unseen candidates from ``page``; returns how many were new."""
        added = 0
        for candidate in page:
            k = self._key(candidate)
            if k in self._known:
                continue
            self._known.add(k)
            self._queue.append(candidate)
            added += 1
        if requested is not None and len(page) < requested:
            self.exhausted = True
        return added

    def pop(self):
        """Consume the next candidate, or ``None`` when the buffer is empty."""
        if not self._queue:
            return None
        return self._queue.popleft()

    def needs_more(self) -> bool:
        return not self.exhausted and len(self._queue) < self.refill_threshold

    def reset(self) -> None:
        self._queue.clear()
        self._known.clear()
        self.exhausted = False

    def __len__(self) -> int:
        return len(self._queue)
