"""Identity resolver tests: either key resolves to the same pair."""

import uuid

import pytest

from rada.exceptions import UnknownUser
from rada.identity.resolver import ResolvedUser, resolve, resolve_internal, resolve_public


class TestResolve:
    @pytest.mark.asyncio
    async def test_internal_key(self, db_session, user_factory):
        user = await user_factory(db_session, "wanjiku")
        assert await resolve(db_session, user.id) == ResolvedUser(user.id, user.public_id)

    @pytest.mark.asyncio
    async def test_internal_key_as_string(self, db_session, user_factory):
        user = await user_factory(db_session)
        resolved = await resolve(db_session, str(user.id))
        assert resolved.internal_id == user.id

    @pytest.mark.asyncio
    async def test_public_key(self, db_session, user_factory):
        user = await user_factory(db_session)
        resolved = await resolve(db_session, user.public_id)
        assert resolved == ResolvedUser(user.id, user.public_id)

    @pytest.mark.asyncio
    async def test_public_key_is_case_insensitive(self, db_session, user_factory):
        user = await user_factory(db_session)
        resolved = await resolve(db_session, user.public_id.upper())
        assert resolved.internal_id == user.id

    @pytest.mark.asyncio
    async def test_unknown_internal_key(self, db_session):
        with pytest.raises(UnknownUser):
            await resolve(db_session, 999999)

    @pytest.mark.asyncio
    async def test_unknown_public_key(self, db_session):
        with pytest.raises(UnknownUser):
            await resolve(db_session, str(uuid.uuid4()))

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "key",
        ["", "not-a-key", True, "0", 0, -5, "99999999999999999999999", 2**63, "\u00b2"],
    )
    async def test_garbage_key(self, db_session, key):
        with pytest.raises(UnknownUser):
            await resolve(db_session, key)


class TestNonRaisingLookups:
    @pytest.mark.asyncio
    async def test_misses_return_none(self, db_session):
        assert await resolve_internal(db_session, 424242) is None
        assert await resolve_public(db_session, str(uuid.uuid4())) is None
