"""Shared pytest fixtures for Verity tests.

Every test gets a fresh in-memory SQLite database (via aiosqlite) with the
full schema, plus in-process fakes for Redis, the room provider, the
notifier and the event bus.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")

import uuid
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy import event
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from tenacity import wait_none

import verity.models  # noqa: F401  (registers every table on Base.metadata)
from verity.database import Base
from verity.models.profile import Profile
from verity.services.date_service import DateService
from verity.services.feedback_service import FeedbackService
from verity.services.interest_service import InterestService
from verity.services.room_provisioner import Room, RoomProviderUnavailable


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------

class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 3, 14, 19, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def timestamp(self) -> float:
        return self.now.timestamp()


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class _FakePipeline:
    def __init__(self, redis: "FakeRedis") -> None:
        self._redis = redis
        self._ops: list = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def __getattr__(self, name):
        def _queue(*args, **kwargs):
            self._ops.append((name, args, kwargs))
            return self
        return _queue

    async def execute(self):
        if self._redis.fail:
            raise RedisConnectionError("connection refused")
        results = []
        for name, args, kwargs in self._ops:
            results.append(await getattr(self._redis, name)(*args, **kwargs))
        self._ops.clear()
        return results


class FakeRedis:
    """The sorted-set and pub/sub subset of ``redis.asyncio.Redis``."""

    def __init__(self) -> None:
        self.zsets: dict[str, dict[str, float]] = {}
        self.published: list[tuple[str, str]] = []
        self.expiries: dict[str, int] = {}
        self.fail = False

    def _check(self) -> None:
        if self.fail:
            raise RedisConnectionError("connection refused")

    def pipeline(self, transaction: bool = True) -> _FakePipeline:
        return _FakePipeline(self)

    async def zremrangebyscore(self, key, min_score, max_score):
        self._check()
        zset = self.zsets.setdefault(key, {})
        doomed = [m for m, s in zset.items() if min_score <= s <= max_score]
        for member in doomed:
            del zset[member]
        return len(doomed)

    async def zadd(self, key, mapping):
        self._check()
        zset = self.zsets.setdefault(key, {})
        added = sum(1 for m in mapping if m not in zset)
        zset.update(mapping)
        return added

    async def zcard(self, key):
        self._check()
        return len(self.zsets.get(key, {}))

    async def zrem(self, key, *members):
        self._check()
        zset = self.zsets.get(key, {})
        return sum(1 for m in members if zset.pop(m, None) is not None)

    async def zrange(self, key, start, end, withscores=False):
        self._check()
        items = sorted(self.zsets.get(key, {}).items(), key=lambda kv: kv[1])
        stop = None if end == -1 else end + 1
        selected = items[start:stop]
        if withscores:
            return selected
        return [m for m, _ in selected]

    async def expire(self, key, seconds):
        self._check()
        self.expiries[key] = seconds
        return True

    async def publish(self, channel, message):
        self._check()
        self.published.append((channel, message))
        return 1


class FakeNotifier:
    def __init__(self) -> None:
        self.sent: list[dict] = []

    async def notify(self, user_id, kind, title, message, related_id=None) -> bool:
        self.sent.append(
            {
                "user_id": user_id,
                "kind": kind,
                "title": title,
                "message": message,
                "related_id": related_id,
            }
        )
        return True

    def kinds_for(self, user_id) -> list[str]:
        return [n["kind"] for n in self.sent if n["user_id"] == user_id]


class FakeEventBus:
    def __init__(self) -> None:
        self.events: list[tuple[str, str, dict]] = []

    async def publish(self, channel, event, payload=None) -> bool:
        self.events.append((channel, event, payload or {}))
        return True

    def names(self) -> list[str]:
        return [e for _, e, _ in self.events]


class FakeProvisioner:
    """Room provider that can be told to fail a number of times first."""

    def __init__(self, fail_times: int = 0, error: type[Exception] = RoomProviderUnavailable):
        self.fail_times = fail_times
        self.error = error
        self.create_calls: list[str] = []
        self.deleted: list[str] = []

    async def create_room(self, verity_date_id: str) -> Room:
        self.create_calls.append(verity_date_id)
        if len(self.create_calls) <= self.fail_times:
            raise self.error("provider down")
        name = f"verity-{verity_date_id}"
        return Room(url=f"https://verity.daily.co/{name}", name=name)

    async def delete_room(self, name: str) -> bool:
        self.deleted.append(name)
        return True


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_profile(db):
    """Async factory: ``await make_profile(gender="woman", age=29)``."""

    async def _make(**overrides) -> Profile:
        fields = {
            "user_id": uuid.uuid4(),
            "display_name": "Test User",
            "age": 30,
            "gender": "woman",
            "interested_in": ["man"],
            "photos": ["https://cdn.example.com/p/1.jpg"],
            "verified": True,
            "latitude": 51.5074,
            "longitude": -0.1278,
            "interests": [],
            "values": [],
        }
        fields.update(overrides)
        profile = Profile(**fields)
        db.add(profile)
        await db.flush()
        return profile

    return _make


# ---------------------------------------------------------------------------
# Collaborators and services
# ---------------------------------------------------------------------------

@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def event_bus():
    return FakeEventBus()


@pytest.fixture
def provisioner():
    return FakeProvisioner()


@pytest.fixture
def date_service(provisioner, notifier, event_bus, clock):
    return DateService(
        provisioner=provisioner,
        notifier=notifier,
        event_bus=event_bus,
        clock=clock,
        retry_wait=wait_none(),
    )


@pytest.fixture
def interest_service(date_service, notifier, clock):
    return InterestService(date_service=date_service, notifier=notifier, clock=clock)


@pytest.fixture
def feedback_service(notifier, event_bus, clock):
    return FeedbackService(notifier=notifier, event_bus=event_bus, clock=clock)


@pytest_asyncio.fixture
async def pair(make_profile):
    """A man and a woman interested in each other, both in London."""
    a = await make_profile(display_name="Alex", gender="man", interested_in=["woman"])
    b = await make_profile(display_name="Blair", gender="woman", interested_in=["man"])
    return a, b


@pytest.fixture
def make_match(db, interest_service):
    """Async helper: mutual interest between two profiles, returns the outcome."""

    async def _match(a: Profile, b: Profile):
        await interest_service.express_interest(db, a.user_id, b.user_id)
        return await interest_service.express_interest(db, b.user_id, a.user_id)

    return _match

