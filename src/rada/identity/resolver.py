"""Translate between the internal sequential user id and the public UUID.

This is the only module allowed to map one key space to the other. Write
paths call ``resolve`` once at their boundary, then work on the internal key
and copy the public key onto the rows they write.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rada.db.models import User
from rada.exceptions import UnknownUser

UserKey = int | str

# Internal keys are positive BIGINTs.
MAX_INTERNAL_ID = 2**63 - 1


@dataclass(frozen=True)
class ResolvedUser:
    internal_id: int
    public_id: str


def _parse_key(key: UserKey) -> tuple[str, int | str] | None:
    """Classify a key as ('internal', int) or ('public', str)."""
    if isinstance(key, bool):
        return None
    if isinstance(key, int):
        return ("internal", key) if 0 < key <= MAX_INTERNAL_ID else None
    value = str(key).strip()
    if value.isascii() and value.isdigit():
        number = int(value)
        return ("internal", number) if 0 < number <= MAX_INTERNAL_ID else None
    try:
        return ("public", str(uuid.UUID(value)))
    except ValueError:
        return None


async def resolve_internal(db: AsyncSession, internal_id: int) -> ResolvedUser | None:
    result = await db.execute(select(User.id, User.public_id).where(User.id == internal_id))
    row = result.one_or_none()
    return ResolvedUser(row.id, row.public_id) if row else None


async def resolve_public(db: AsyncSession, public_id: str) -> ResolvedUser | None:
    result = await db.execute(select(User.id, User.public_id).where(User.public_id == public_id))
    row = result.one_or_none()
    return ResolvedUser(row.id, row.public_id) if row else None


async def resolve(db: AsyncSession, key: UserKey) -> ResolvedUser:
    """Resolve either key form to the full pair. Raises UnknownUser on a miss."""
    parsed = _parse_key(key)
    if parsed is None:
        raise UnknownUser(key)

    kind, value = parsed
    if kind == "internal":
        resolved = await resolve_internal(db, int(value))
    else:
        resolved = await resolve_public(db, str(value))

    if resolved is None:
        raise UnknownUser(key)
    return resolved
