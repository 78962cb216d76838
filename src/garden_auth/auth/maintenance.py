"""Background session maintenance.

Expired sessions are removed on a fixed interval rather than on every
request. Reads already ignore expired rows, so the sweep only reclaims
space.
"""

from __future__ import annotations

import asyncio
import logging

from garden_auth.auth.session import SessionStore
from garden_auth.errors import StorageError

logger = logging.getLogger(__name__)


async def run_session_sweeper(store: SessionStore, interval_seconds: float) -> None:
    """Sweep expired sessions forever, every ``interval_seconds``.

    Storage failures are logged and the next sweep is attempted on schedule.
    Stops when the task is cancelled.
    """
    logger.info(f"Session sweeper started (every {interval_seconds}s)")
    try:
        while True:
            try:
                await store.sweep_expired()
            except StorageError as e:
                logger.warning(f"Session sweep failed: {e}")
            await asyncio.sleep(interval_seconds)
    finally:
        logger.info("Session sweeper stopped")


def start_session_sweeper(store: SessionStore, interval_seconds: float) -> asyncio.Task[None]:
    return asyncio.create_task(
        run_session_sweeper(store, interval_seconds),
        name="session-sweeper",
    )
