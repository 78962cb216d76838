"""User identity storage.

The surrounding application owns user records. The authentication core only
needs to look users up and create them on first login, through this narrow
interface.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from garden_auth.database.connection import Database
from garden_auth.database.models import HostStatus, Role, User
from garden_auth.errors import StorageError

logger = logging.getLogger(__name__)


class IdentityStore:
    """Reads and creates users keyed by email."""

    def __init__(self, db: Database, timeout: float | None = 5.0):
        self._db = db
        self.timeout = timeout

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncGenerator[AsyncSession, None]:
        try:
            async with asyncio.timeout(self.timeout):
                async with self._db.session() as db:
                    yield db
        except TimeoutError as e:
            logger.error(f"Identity store {operation} timed out")
            raise StorageError(f"Identity store {operation} timed out") from e
        except IntegrityError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Identity store {operation} failed: {e.__class__.__name__}")
            raise StorageError(f"Identity store {operation} failed") from e

    async def get_user_by_id(self, user_id: int) -> User | None:
        async with self._transaction("get_user_by_id") as db:
            return await db.get(User, user_id)

    async def get_user_by_email(self, email: str) -> User | None:
        async with self._transaction("get_user_by_email") as db:
            result = await db.execute(select(User).where(User.email == email.lower()))
            return result.scalar_one_or_none()

    async def create_user(
        self,
        name: str,
        email: str,
        status: HostStatus | str = HostStatus.PENDING,
        role: Role | str = Role.USER,
    ) -> User:
        """Create a user.

        ``confirmed_at`` is set when the user starts out approved.

        Raises:
            IntegrityError: If the email is already taken
            StorageError: If the store is unavailable
        """
        status = HostStatus(status)
        now = datetime.now(timezone.utc)
        user = User(
            name=name,
            email=email.lower(),
            host_status=status.value,
            role=Role(role).value,
            confirmed_at=now if status is HostStatus.APPROVED else None,
        )

        async with self._transaction("create_user") as db:
            db.add(user)
            await db.commit()

        logger.info(f"Created user {user.email} ({status.value})")
        return user

    async def list_users(self, skip: int = 0, limit: int = 50) -> list[User]:
        async with self._transaction("list_users") as db:
            result = await db.execute(
                select(User).order_by(User.id).offset(skip).limit(limit)
            )
            return list(result.scalars().all())

    async def get_or_create(
        self,
        name: str,
        email: str,
        status: HostStatus | str = HostStatus.APPROVED,
    ) -> tuple[User, bool]:
        """Find a user by email, creating it if absent.

        Returns:
            The user and whether it was created
        """
        user = await self.get_user_by_email(email)
        if user is not None:
            return user, False

        try:
            return await self.create_user(name, email, status), True
        except IntegrityError:
            # Another request created the same email first
            user = await self.get_user_by_email(email)
            if user is None:
                raise StorageError("User vanished after concurrent creation")
            return user, False
