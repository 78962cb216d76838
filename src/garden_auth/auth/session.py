"""Server-side session storage.

Sessions are rows in the ``sessions`` table keyed by an opaque random token.
The browser only ever holds the token, in an HTTP-only cookie.

## Lifecycle

- Created on a successful OAuth callback
- ``last_accessed_at`` updated on every authenticated request
- Deleted on logout, on eviction, or by the periodic sweep

## Expiry

``expires_at`` is fixed at ``created_at + ttl`` and is never extended.
Reads treat expired rows as absent whether or not the sweep has removed them
yet (lazy expiry), so validity never depends on the sweep having run.

## Concurrent Session Cap

A user holds at most ``max_sessions_per_user`` valid sessions. Creating one
more evicts the least recently accessed session, not the oldest created.
The count-evict-insert sequence runs under a per-user ``asyncio.Lock``, which
makes the cap exact within one process. Separate worker processes do not
share the lock, so across processes the cap is a soft limit: two logins that
race in different workers can briefly leave one extra session until the next
login trims it.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import weakref
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Callable

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from garden_auth.database.connection import Database
from garden_auth.database.models import Session
from garden_auth.errors import StorageError

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TTL = timedelta(hours=24)
DEFAULT_MAX_SESSIONS_PER_USER = 5
SESSION_TOKEN_BYTES = 32  # 256 bits of entropy

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def generate_session_id() -> str:
    """Generate an opaque, URL-safe session token."""
    return secrets.token_urlsafe(SESSION_TOKEN_BYTES)


class SessionStore:
    """Durable mapping from session token to session row.

    Example:
        ```python
        store = SessionStore(db)

        session_id = await store.create(user.id, "google", user_agent=ua)
        session = await store.get(session_id)  # None once expired
        await store.touch(session_id)
        await store.delete(session_id)
        ```
    """

    def __init__(
        self,
        db: Database,
        ttl: timedelta = DEFAULT_SESSION_TTL,
        max_sessions_per_user: int = DEFAULT_MAX_SESSIONS_PER_USER,
        timeout: float | None = 5.0,
        clock: Clock | None = None,
    ):
        """Initialize the store.

        Args:
            db: Database handle
            ttl: Fixed session lifetime
            max_sessions_per_user: Concurrent valid sessions allowed per user
            timeout: Upper bound in seconds for each storage operation
            clock: Returns the current UTC time (for tests)
        """
        if max_sessions_per_user < 1:
            raise ValueError("max_sessions_per_user must be at least 1")

        self._db = db
        self.ttl = ttl
        self.max_sessions_per_user = max_sessions_per_user
        self.timeout = timeout
        self._clock = clock or utc_now
        self._user_locks: weakref.WeakValueDictionary[int, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def now(self) -> datetime:
        return self._clock()

    def _lock_for(self, user_id: int) -> asyncio.Lock:
        lock = self._user_locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._user_locks[user_id] = lock
        return lock

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncGenerator[AsyncSession, None]:
        """Open a bounded database session, mapping failures to StorageError."""
        try:
            async with asyncio.timeout(self.timeout):
                async with self._db.session() as db:
                    yield db
        except TimeoutError as e:
            logger.error(f"Session store {operation} timed out")
            raise StorageError(f"Session store {operation} timed out") from e
        except SQLAlchemyError as e:
            logger.error(f"Session store {operation} failed: {e.__class__.__name__}")
            raise StorageError(f"Session store {operation} failed") from e

    async def create(
        self,
        user_id: int,
        provider: str,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> str:
        """Create a session for a user and return its token.

        Evicts the user's least recently accessed sessions first so that the
        new session leaves the user at no more than the cap.

        Raises:
            StorageError: If the session cannot be persisted
        """
        session_id = generate_session_id()

        async with self._lock_for(user_id):
            now = self.now()
            async with self._transaction("create") as db:
                existing = await self._valid_sessions(db, user_id, now)

                evicted = existing[self.max_sessions_per_user - 1 :]
                if evicted:
                    await db.execute(
                        delete(Session).where(
                            Session.id.in_([s.id for s in evicted])
                        )
                    )
                    logger.info(
                        f"Evicted {len(evicted)} session(s) for user {user_id}"
                    )

                db.add(
                    Session(
                        id=session_id,
                        user_id=user_id,
                        provider=provider,
                        created_at=now,
                        last_accessed_at=now,
                        expires_at=now + self.ttl,
                        user_agent=user_agent[:512] if user_agent else None,
                        ip_address=ip_address[:64] if ip_address else None,
                    )
                )
                await db.commit()

        logger.debug(f"Session created for user {user_id} via {provider}")
        return session_id

    async def get(self, session_id: str) -> Session | None:
        """Get a session if it exists and has not expired."""
        if not session_id:
            return None

        async with self._transaction("get") as db:
            result = await db.execute(
                select(Session).where(
                    Session.id == session_id,
                    Session.expires_at > self.now(),
                )
            )
            return result.scalar_one_or_none()

    async def touch(self, session_id: str) -> datetime | None:
        """Record activity on a session.

        Unknown or deleted sessions are ignored. Storage failures are logged
        and swallowed so that bookkeeping never fails the request.

        Returns:
            The recorded access time, or None if it could not be stored
        """
        now = self.now()
        try:
            async with self._transaction("touch") as db:
                await db.execute(
                    update(Session)
                    .where(Session.id == session_id)
                    .values(last_accessed_at=now)
                )
                await db.commit()
        except StorageError as e:
            logger.warning(f"Could not update session last access: {e}")
            return None
        return now

    async def delete(self, session_id: str) -> None:
        """Delete a session. Deleting an unknown session is not an error."""
        async with self._transaction("delete") as db:
            await db.execute(delete(Session).where(Session.id == session_id))
            await db.commit()

    async def delete_all_for_user(self, user_id: int) -> int:
        """Delete every session of a user.

        Returns:
            Number of sessions removed
        """
        async with self._lock_for(user_id):
            async with self._transaction("delete_all_for_user") as db:
                result = await db.execute(
                    delete(Session).where(Session.user_id == user_id)
                )
                await db.commit()

        logger.info(f"Deleted {result.rowcount} session(s) for user {user_id}")
        return result.rowcount

    async def list_for_user(self, user_id: int) -> list[Session]:
        """List a user's valid sessions, most recently accessed first."""
        async with self._transaction("list_for_user") as db:
            return await self._valid_sessions(db, user_id, self.now())

    async def sweep_expired(self) -> int:
        """Delete all expired sessions.

        Returns:
            Number of sessions removed
        """
        async with self._transaction("sweep_expired") as db:
            result = await db.execute(
                delete(Session).where(Session.expires_at <= self.now())
            )
            await db.commit()

        if result.rowcount:
            logger.info(f"Swept {result.rowcount} expired session(s)")
        return result.rowcount

    async def _valid_sessions(
        self,
        db: AsyncSession,
        user_id: int,
        now: datetime,
    ) -> list[Session]:
        result = await db.execute(
            select(Session)
            .where(Session.user_id == user_id, Session.expires_at > now)
            .order_by(Session.last_accessed_at.desc(), Session.created_at.desc())
        )
        return list(result.scalars().all())
