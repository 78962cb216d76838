"""Tests for the background session sweeper."""

import asyncio

from garden_auth.auth.maintenance import run_session_sweeper, start_session_sweeper
from garden_auth.errors import StorageError


class TestSessionSweeper:
    """Tests for the periodic sweep task."""

    async def test_sweeps_expired_sessions(self, session_store, approved_user, clock):
        """Test that the sweeper removes expired rows."""
        await session_store.create(approved_user.id, "google")
        clock.advance(hours=25)

        task = start_session_sweeper(session_store, interval_seconds=3600)
        await asyncio.sleep(0.5)
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

        assert task.get_name() == "session-sweeper"
        assert task.cancelled()
        # Bypass lazy expiry: nothing left even if the clock is rewound
        clock.advance(hours=-25)
        assert await session_store.list_for_user(approved_user.id) == []

    async def test_keeps_running_after_storage_error(self, session_store, monkeypatch):
        """Test that a failed sweep does not stop the loop."""
        calls = []

        async def flaky_sweep():
            calls.append(1)
            if len(calls) == 1:
                raise StorageError("database is locked")
            return 0

        monkeypatch.setattr(session_store, "sweep_expired", flaky_sweep)

        task = asyncio.create_task(run_session_sweeper(session_store, interval_seconds=0.01))
        await asyncio.sleep(0.1)
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

        assert len(calls) >= 2
