"""Tests for the server-side session store."""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from garden_auth.auth.session import SessionStore
from garden_auth.errors import StorageError


class TestCreate:
    """Tests for session creation."""

    async def test_create_returns_retrievable_session(self, session_store, approved_user, clock):
        """Test that a created session can be read back."""
        session_id = await session_store.create(
            approved_user.id, "google", user_agent="pytest", ip_address="10.0.0.1"
        )

        session = await session_store.get(session_id)
        assert session is not None
        assert session.user_id == approved_user.id
        assert session.provider == "google"
        assert session.user_agent == "pytest"
        assert session.ip_address == "10.0.0.1"
        assert session.created_at == clock.now
        assert session.last_accessed_at == clock.now

    async def test_expiry_is_created_plus_ttl(self, session_store, approved_user, clock):
        """Test that sessions expire 24 hours after creation."""
        session_id = await session_store.create(approved_user.id, "google")

        session = await session_store.get(session_id)
        assert session.expires_at == clock.now + timedelta(hours=24)

    async def test_tokens_are_unique_and_long(self, session_store, approved_user, clock):
        """Test that tokens are distinct opaque strings with enough entropy."""
        ids = set()
        for _ in range(5):
            ids.add(await session_store.create(approved_user.id, "google"))
            clock.advance(seconds=1)

        assert len(ids) == 5
        # 32 random bytes, base64url encoded
        assert all(len(session_id) >= 43 for session_id in ids)

    async def test_optional_metadata(self, session_store, approved_user):
        """Test that user agent and IP address may be omitted."""
        session_id = await session_store.create(approved_user.id, "apple")

        session = await session_store.get(session_id)
        assert session.user_agent is None
        assert session.ip_address is None

    def test_rejects_zero_cap(self):
        """Test that the per-user cap must be positive."""
        with pytest.raises(ValueError):
            SessionStore(object(), max_sessions_per_user=0)


class TestEviction:
    """Tests for the per-user concurrent session cap."""

    async def test_sixth_session_evicts_least_recently_accessed(
        self, session_store, approved_user, clock
    ):
        """Test LRU eviction rather than FIFO by creation time."""
        ids = []
        for _ in range(5):
            ids.append(await session_store.create(approved_user.id, "google"))
            clock.advance(minutes=1)

        # The oldest session is the most recently used one
        await session_store.touch(ids[0])
        clock.advance(minutes=1)

        new_id = await session_store.create(approved_user.id, "google")

        remaining = {s.id for s in await session_store.list_for_user(approved_user.id)}
        assert len(remaining) == 5
        assert new_id in remaining
        assert ids[0] in remaining
        assert ids[1] not in remaining
        assert await session_store.get(ids[1]) is None

    async def test_other_users_are_unaffected(
        self, session_store, identity_store, approved_user, clock
    ):
        """Test that eviction only considers the creating user's sessions."""
        bob = await identity_store.create_user("Bob", "bob@example.com")
        bob_session = await session_store.create(bob.id, "google")

        for _ in range(6):
            clock.advance(seconds=1)
            await session_store.create(approved_user.id, "google")

        assert await session_store.get(bob_session) is not None
        assert len(await session_store.list_for_user(approved_user.id)) == 5

    async def test_expired_sessions_do_not_count(self, session_store, approved_user, clock):
        """Test that only valid sessions count toward the cap."""
        for _ in range(5):
            await session_store.create(approved_user.id, "google")
            clock.advance(seconds=1)

        clock.advance(hours=25)
        fresh = [await session_store.create(approved_user.id, "google") for _ in range(3)]

        valid = await session_store.list_for_user(approved_user.id)
        assert {s.id for s in valid} == set(fresh)

    async def test_custom_cap(self, database, approved_user, clock):
        """Test a store configured with a smaller cap."""
        store = SessionStore(database, max_sessions_per_user=2, clock=clock)
        first = await store.create(approved_user.id, "google")
        clock.advance(seconds=1)
        second = await store.create(approved_user.id, "google")
        clock.advance(seconds=1)
        third = await store.create(approved_user.id, "google")

        remaining = {s.id for s in await store.list_for_user(approved_user.id)}
        assert remaining == {second, third}
        assert first not in remaining

    async def test_concurrent_logins_respect_cap(self, session_store, approved_user):
        """Test that simultaneous logins in one process never exceed the cap."""
        await asyncio.gather(
            *(session_store.create(approved_user.id, "google") for _ in range(8))
        )

        assert len(await session_store.list_for_user(approved_user.id)) == 5


class TestExpiry:
    """Tests for lazy expiry."""

    async def test_get_returns_none_at_expiry(self, session_store, approved_user, clock):
        """Test that a session is absent once now == expires_at, without a sweep."""
        session_id = await session_store.create(approved_user.id, "google")

        clock.advance(hours=24)
        assert await session_store.get(session_id) is None

    async def test_valid_just_before_expiry(self, session_store, approved_user, clock):
        """Test that a session is still valid one second before expiry."""
        session_id = await session_store.create(approved_user.id, "google")

        clock.advance(hours=23, minutes=59, seconds=59)
        assert await session_store.get(session_id) is not None

    async def test_touch_does_not_extend_expiry(self, session_store, approved_user, clock):
        """Test that activity never pushes expires_at forward."""
        session_id = await session_store.create(approved_user.id, "google")
        original = (await session_store.get(session_id)).expires_at

        clock.advance(hours=12)
        await session_store.touch(session_id)

        session = await session_store.get(session_id)
        assert session.expires_at == original
        assert session.last_accessed_at == clock.now

    async def test_sweep_removes_only_expired(self, session_store, identity_store, approved_user, clock):
        """Test the periodic sweep."""
        old = await session_store.create(approved_user.id, "google")
        clock.advance(hours=20)
        recent = await session_store.create(approved_user.id, "google")
        clock.advance(hours=5)

        removed = await session_store.sweep_expired()

        assert removed == 1
        assert await session_store.get(old) is None
        assert await session_store.get(recent) is not None

    async def test_sweep_with_nothing_expired(self, session_store, approved_user):
        """Test that sweeping an empty store is harmless."""
        assert await session_store.sweep_expired() == 0


class TestTouchAndDelete:
    """Tests for touch, delete and delete_all_for_user."""

    async def test_touch_unknown_session_is_noop(self, session_store, approved_user):
        """Test that touch never creates a session and never raises."""
        await session_store.touch("does-not-exist")

        assert await session_store.get("does-not-exist") is None
        assert await session_store.list_for_user(approved_user.id) == []

    async def test_touch_swallows_storage_errors(self, session_store, monkeypatch):
        """Test that a failing touch does not fail the caller."""

        def broken_session():
            raise OperationalError("UPDATE", {}, Exception("database is locked"))

        monkeypatch.setattr(session_store._db, "session", broken_session)

        assert await session_store.touch("any-session") is None

    async def test_delete_is_idempotent(self, session_store, approved_user):
        """Test that deleting twice is fine."""
        session_id = await session_store.create(approved_user.id, "google")

        await session_store.delete(session_id)
        await session_store.delete(session_id)

        assert await session_store.get(session_id) is None

    async def test_delete_all_for_user(self, session_store, identity_store, approved_user, clock):
        """Test full logout of one user."""
        bob = await identity_store.create_user("Bob", "bob@example.com")
        bob_session = await session_store.create(bob.id, "google")
        for _ in range(3):
            await session_store.create(approved_user.id, "google")
            clock.advance(seconds=1)

        removed = await session_store.delete_all_for_user(approved_user.id)

        assert removed == 3
        assert await session_store.list_for_user(approved_user.id) == []
        assert await session_store.get(bob_session) is not None

    async def test_list_orders_by_recent_access(self, session_store, approved_user, clock):
        """Test that listings put the most recently used session first."""
        first = await session_store.create(approved_user.id, "google")
        clock.advance(minutes=1)
        second = await session_store.create(approved_user.id, "apple")
        clock.advance(minutes=1)
        await session_store.touch(first)

        sessions = await session_store.list_for_user(approved_user.id)
        assert [s.id for s in sessions] == [first, second]


class TestStorageErrors:
    """Tests for storage failure mapping."""

    async def test_get_raises_storage_error(self, session_store, monkeypatch):
        """Test that database faults surface as StorageError."""

        def broken_session():
            raise OperationalError("SELECT", {}, Exception("connection refused"))

        monkeypatch.setattr(session_store._db, "session", broken_session)

        with pytest.raises(StorageError):
            await session_store.get("any-session")

    async def test_create_raises_storage_error_when_tables_missing(
        self, session_store, database, approved_user
    ):
        """Test that a broken schema is reported as StorageError."""
        await database.drop_tables()

        with pytest.raises(StorageError):
            await session_store.create(approved_user.id, "google")
