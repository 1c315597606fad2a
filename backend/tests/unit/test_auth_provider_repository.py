"""Tests for AuthProviderRepository.

Covers the (provider, provider_id) upsert, expiry filtering in
list_active(), hard removal, and the expiry predicates.
"""

import uuid
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from adinsights.models.auth_provider import AuthProvider
from adinsights.models.user import User
from adinsights.repositories.auth_provider_repository import (
    AuthProviderInput,
    AuthProviderRepository,
)

_NOW = datetime(2026, 5, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
async def owner(db_session: AsyncSession) -> User:
    user = User(email="owner@example.com", username="owner")
    db_session.add(user)
    await db_session.flush()
    await db_session.refresh(user)
    return user


@pytest.fixture
async def other_owner(db_session: AsyncSession) -> User:
    user = User(email="other@example.com")
    db_session.add(user)
    await db_session.flush()
    await db_session.refresh(user)
    return user


def _input(
    provider: str = "facebook",
    provider_id: str = "fb-1",
    *,
    access_token: str = "token-1",
    expires_at: datetime | None = None,
    **kwargs,
) -> AuthProviderInput:
    return AuthProviderInput(
        provider=provider,
        provider_id=provider_id,
        access_token=access_token,
        expires_at=expires_at,
        **kwargs,
    )


class TestUpsert:
    """upsert() keyed by (provider, provider_id)."""

    async def test_creates_record(self, db_session: AsyncSession, owner: User):
        record = await AuthProviderRepository.upsert(
            db_session,
            owner.id,
            _input(
                expires_at=_NOW + timedelta(hours=1),
                username="Ada",
                email="ada@example.com",
                advertising_account_id="act_1",
                business_accounts=[{"id": "b1"}],
                ad_accounts=[{"id": "act_1", "account_status": 1}],
                config_id="cfg",
            ),
        )

        assert record.id is not None
        assert record.user_id == owner.id
        assert record.access_token == "token-1"
        assert record.business_accounts == [{"id": "b1"}]
        assert record.config_id == "cfg"

    async def test_second_upsert_updates_in_place(
        self, db_session: AsyncSession, owner: User
    ):
        """Reconnecting replaces the token without creating a second row."""
        first = await AuthProviderRepository.upsert(
            db_session, owner.id, _input(access_token="old")
        )

        second = await AuthProviderRepository.upsert(
            db_session,
            owner.id,
            _input(access_token="new", expires_at=_NOW, username="Renamed"),
        )

        assert second.id == first.id
        assert second.access_token == "new"
        assert second.username == "Renamed"
        rows = await AuthProviderRepository.list_for_user(db_session, owner.id)
        assert len(rows) == 1

    async def test_update_never_moves_owner(
        self, db_session: AsyncSession, owner: User, other_owner: User
    ):
        """An existing link stays with its user even if another user upserts."""
        await AuthProviderRepository.upsert(db_session, owner.id, _input())

        record = await AuthProviderRepository.upsert(
            db_session, other_owner.id, _input(access_token="t2")
        )

        assert record.user_id == owner.id
        assert record.access_token == "t2"

    async def test_concurrent_insert_is_recovered(
        self,
        db_session: AsyncSession,
        owner: User,
        other_owner: User,
        monkeypatch,
    ):
        """Losing the insert race updates the winner's row in place."""
        original = AuthProviderRepository.find_by_provider
        lookups = 0

        async def racing_lookup(db, provider, provider_id):
            nonlocal lookups
            lookups += 1
            if lookups == 1:
                # Another callback commits the same account between the
                # lookup and the insert
                db.add(
                    AuthProvider(
                        user_id=owner.id,
                        provider=provider,
                        provider_id=provider_id,
                        access_token="winner-token",
                    )
                )
                await db.flush()
                return None
            return await original(db, provider, provider_id)

        monkeypatch.setattr(
            AuthProviderRepository, "find_by_provider", staticmethod(racing_lookup)
        )

        record = await AuthProviderRepository.upsert(
            db_session, other_owner.id, _input(access_token="t2")
        )

        rows = await AuthProviderRepository.list_for_user(db_session, owner.id)
        assert lookups == 2
        assert [row.id for row in rows] == [record.id]
        assert record.user_id == owner.id
        assert record.access_token == "t2"
        assert (
            await AuthProviderRepository.list_for_user(db_session, other_owner.id)
            == []
        )

    async def test_same_provider_id_on_other_provider_is_distinct(
        self, db_session: AsyncSession, owner: User
    ):
        await AuthProviderRepository.upsert(db_session, owner.id, _input())
        await AuthProviderRepository.upsert(
            db_session, owner.id, _input(provider="instagram")
        )

        rows = await AuthProviderRepository.list_for_user(db_session, owner.id)

        assert sorted(r.provider for r in rows) == ["facebook", "instagram"]


class TestListActive:
    """list_active() excludes expired rows without deleting them."""

    async def test_expiry_boundary_one_millisecond(
        self, db_session: AsyncSession, owner: User
    ):
        """now + 1ms is active; now - 1ms and never-expiring behave as expected."""
        await AuthProviderRepository.upsert(
            db_session,
            owner.id,
            _input("facebook", "fb", expires_at=_NOW + timedelta(milliseconds=1)),
        )
        await AuthProviderRepository.upsert(
            db_session,
            owner.id,
            _input("instagram", "ig", expires_at=_NOW - timedelta(milliseconds=1)),
        )
        await AuthProviderRepository.upsert(
            db_session, owner.id, _input("twitter", "tw", expires_at=None)
        )

        active = await AuthProviderRepository.list_active(
            db_session, owner.id, now=_NOW
        )

        assert sorted(r.provider for r in active) == ["facebook", "twitter"]
        everything = await AuthProviderRepository.list_for_user(db_session, owner.id)
        assert len(everything) == 3

    async def test_exact_expiry_is_inactive(
        self, db_session: AsyncSession, owner: User
    ):
        await AuthProviderRepository.upsert(
            db_session, owner.id, _input(expires_at=_NOW)
        )

        active = await AuthProviderRepository.list_active(
            db_session, owner.id, now=_NOW
        )

        assert active == []

    async def test_scoped_to_user(
        self, db_session: AsyncSession, owner: User, other_owner: User
    ):
        await AuthProviderRepository.upsert(db_session, other_owner.id, _input())

        assert await AuthProviderRepository.list_active(db_session, owner.id) == []


class TestRemove:
    """remove() hard-deletes by natural key."""

    async def test_removes_existing(self, db_session: AsyncSession, owner: User):
        await AuthProviderRepository.upsert(db_session, owner.id, _input())

        removed = await AuthProviderRepository.remove(db_session, "facebook", "fb-1")

        assert removed is True
        assert (
            await AuthProviderRepository.find_by_provider(
                db_session, "facebook", "fb-1"
            )
            is None
        )

    async def test_missing_row_returns_false(self, db_session: AsyncSession):
        assert await AuthProviderRepository.remove(db_session, "twitter", "x") is False


class TestLookups:
    """get_for_user() and provider_counts()."""

    async def test_get_for_user(self, db_session: AsyncSession, owner: User):
        await AuthProviderRepository.upsert(
            db_session, owner.id, _input("twitter", "tw-9")
        )

        record = await AuthProviderRepository.get_for_user(
            db_session, owner.id, "twitter"
        )

        assert record is not None
        assert record.provider_id == "tw-9"
        assert (
            await AuthProviderRepository.get_for_user(
                db_session, uuid.uuid4(), "twitter"
            )
            is None
        )

    async def test_provider_counts(
        self, db_session: AsyncSession, owner: User, other_owner: User
    ):
        await AuthProviderRepository.upsert(
            db_session, owner.id, _input("facebook", "a")
        )
        await AuthProviderRepository.upsert(
            db_session, other_owner.id, _input("facebook", "b")
        )
        await AuthProviderRepository.upsert(
            db_session, owner.id, _input("twitter", "c")
        )

        counts = await AuthProviderRepository.provider_counts(db_session)

        assert counts == {"facebook": 2, "twitter": 1}


class TestExpiryPredicates:
    """is_token_expired() and needs_refresh() are pure."""

    def _record(self, expires_at: datetime | None) -> AuthProvider:
        return AuthProvider(
            provider="twitter",
            provider_id="tw",
            access_token="t",
            expires_at=expires_at,
        )

    def test_never_expiring(self):
        record = self._record(None)
        assert AuthProviderRepository.is_token_expired(record, now=_NOW) is False
        assert AuthProviderRepository.needs_refresh(record, now=_NOW) is False

    def test_expired(self):
        record = self._record(_NOW - timedelta(seconds=1))
        assert AuthProviderRepository.is_token_expired(record, now=_NOW) is True

    def test_within_refresh_threshold(self):
        record = self._record(_NOW + timedelta(minutes=4))
        assert AuthProviderRepository.is_token_expired(record, now=_NOW) is False
        assert AuthProviderRepository.needs_refresh(record, now=_NOW) is True

    def test_outside_refresh_threshold(self):
        record = self._record(_NOW + timedelta(minutes=6))
        assert AuthProviderRepository.needs_refresh(record, now=_NOW) is False

    def test_naive_stored_value_is_treated_as_utc(self):
        record = self._record(datetime(2026, 5, 1, 11, 0))
        assert AuthProviderRepository.is_token_expired(record, now=_NOW) is True
