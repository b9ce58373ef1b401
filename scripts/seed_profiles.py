"""Seed demo profiles around a city centre for local development.

Usage: python -m scripts.seed_profiles [--count 40] [--lat 51.5074] [--lon -0.1278]
"""
import argparse
import asyncio
import random
import sys
import uuid
from datetime import timedelta
sys.path.insert(0, ".")

from verity.database import async_session_factory, utcnow
from verity.models.profile import Profile


FIRST_NAMES = [
    "Alex", "Sam", "Jordan", "Taylor", "Morgan", "Riley", "Casey", "Jamie",
    "Avery", "Quinn", "Rowan", "Harper", "Emerson", "Sage", "Robin", "Charlie",
]
INTERESTS = [
    "hiking", "cooking", "climbing", "film", "live music", "board games",
    "running", "travel", "photography", "yoga", "reading", "coffee",
]
VALUES = ["honesty", "ambition", "family", "adventure", "kindness", "humour", "faith"]
GENDERS = ["woman", "man", "non-binary"]


def random_profile(lat: float, lon: float, radius_km: float = 25.0) -> Profile:
    """One plausible profile within ``radius_km`` of (lat, lon)."""
    gender = random.choice(GENDERS)
    now = utcnow()
    return Profile(
        user_id=uuid.uuid4(),
        display_name=random.choice(FIRST_NAMES),
        age=random.randint(21, 45),
        gender=gender,
        interested_in=random.sample(GENDERS, k=random.randint(1, 2)),
        bio="Seeded for local development.",
        photos=[f"https://picsum.photos/seed/{uuid.uuid4().hex[:8]}/600/800"],
        verified=random.random() < 0.6,
        latitude=lat + random.uniform(-1, 1) * radius_km / 111.32,
        longitude=lon + random.uniform(-1, 1) * radius_km / 111.32,
        height_cm=random.choice([None, *range(155, 196, 5)]),
        interests=random.sample(INTERESTS, k=3),
        values=random.sample(VALUES, k=2),
        last_active=now - timedelta(hours=random.randint(0, 72)),
        premium_until=now + timedelta(days=30) if random.random() < 0.2 else None,
    )


async def seed(count: int, lat: float, lon: float) -> list[uuid.UUID]:
    ids = []
    async with async_session_factory() as session:
        for _ in range(count):
            profile = random_profile(lat, lon)
            session.add(profile)
            ids.append(profile.user_id)
            print(f"  Seeded {profile.display_name:<10} {profile.gender:<11} {profile.user_id}")
        await session.commit()
    print(f"Done seeding {count} profiles.")
    return ids


def main():
    parser = argparse.ArgumentParser(description="Seed Verity demo profiles")
    parser.add_argument("--count", type=int, default=40)
    parser.add_argument("--lat", type=float, default=51.5074)
    parser.add_argument("--lon", type=float, default=-0.1278)
    args = parser.parse_args()
    asyncio.run(seed(args.count, args.lat, args.lon))


if __name__ == "__main__":
    main()
