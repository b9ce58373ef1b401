"""
Verity — Block lookups.

Read-only queries over ``blocks`` shared by every service that must honour
a block: the feed builder, the interest ledger, the date orchestrator and
messaging.  Kept free of service imports so any of them can use it.
"""

from __future__ import annotations

import uuid

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from verity.models.safety import Block


async def is_blocked(db: AsyncSession, user_a: uuid.UUID, user_b: uuid.UUID) -> bool:
    """True if either user has blocked the other."""
    stmt = select(Block.id).where(
        or_(
            and_(Block.blocker_id == user_a, Block.blocked_id == user_b),
            and_(Block.blocker_id == user_b, Block.blocked_id == user_a),
        )
    ).limit(1)
    return (await db.execute(stmt)).first() is not None


async def blocked_ids(db: AsyncSession, user_id: uuid.UUID) -> set[uuid.UUID]:
    """Everyone ``user_id`` blocked plus everyone who blocked ``user_id``."""
    rows = (
        await db.execute(
            select(Block.blocker_id, Block.blocked_id).where(
                or_(Block.blocker_id == user_id, Block.blocked_id == user_id)
            )
        )
    ).all()
    ids: set[uuid.UUID] = set()
    for blocker_id, blocked in rows:
        ids.add(blocked if blocker_id == user_id else blocker_id)
    return ids
