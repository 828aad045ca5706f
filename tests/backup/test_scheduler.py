"""Tests for chatdiary.backup.scheduler."""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from chatdiary.backup.gist import AUTO_SYNC_KEY, LAST_SYNC_KEY, TOKEN_KEY
from chatdiary.backup.scheduler import JOB_ID, AutoSyncScheduler
from chatdiary.core.exceptions import SyncError


class FakeTransport:
    def __init__(self, fail: Exception | None = None):
        self.calls = []
        self.fail = fail
        self.busy = False

    async def sync(self, token, gist_id=None):
        self.calls.append((token, gist_id))
        if self.fail:
            raise self.fail
        return "ok"


NOW = datetime(2025, 3, 14, 12, 0, tzinfo=UTC)


@pytest.fixture
async def enabled_flat(flat):
    await flat.set(AUTO_SYNC_KEY, "true")
    await flat.set(TOKEN_KEY, "tok")
    return flat


@pytest.mark.smoke
class TestIsDue:
    def test_never_synced(self, flat):
        assert AutoSyncScheduler(FakeTransport(), flat).is_due(None, NOW)

    def test_recent_sync_not_due(self, flat):
        last = (NOW - timedelta(minutes=59)).isoformat()
        assert not AutoSyncScheduler(FakeTransport(), flat).is_due(last, NOW)

    def test_old_sync_due(self, flat):
        last = (NOW - timedelta(minutes=61)).isoformat().replace("+00:00", "Z")
        assert AutoSyncScheduler(FakeTransport(), flat).is_due(last, NOW)

    def test_unreadable_timestamp_is_due(self, flat):
        assert AutoSyncScheduler(FakeTransport(), flat).is_due("yesterday-ish", NOW)


class TestCheckAndSync:
    async def test_syncs_when_enabled_and_due(self, enabled_flat):
        transport = FakeTransport()
        await enabled_flat.set("backup_github_gist_id", "g1")
        result = await AutoSyncScheduler(transport, enabled_flat).check_and_sync(NOW)
        assert result == "ok"
        assert transport.calls == [("tok", "g1")]

    async def test_skips_when_disabled(self, enabled_flat):
        await enabled_flat.set(AUTO_SYNC_KEY, "false")
        transport = FakeTransport()
        assert await AutoSyncScheduler(transport, enabled_flat).check_and_sync(NOW) is None
        assert transport.calls == []

    async def test_skips_without_token(self, enabled_flat):
        await enabled_flat.delete(TOKEN_KEY)
        transport = FakeTransport()
        assert await AutoSyncScheduler(transport, enabled_flat).check_and_sync(NOW) is None
        assert transport.calls == []

    async def test_skips_when_recently_synced(self, enabled_flat):
        await enabled_flat.set(LAST_SYNC_KEY, (NOW - timedelta(minutes=10)).isoformat())
        transport = FakeTransport()
        assert await AutoSyncScheduler(transport, enabled_flat).check_and_sync(NOW) is None
        assert transport.calls == []

    async def test_skips_while_manual_sync_running(self, enabled_flat):
        transport = FakeTransport()
        transport.busy = True
        assert await AutoSyncScheduler(transport, enabled_flat).check_and_sync(NOW) is None

    async def test_tick_swallows_failures(self, enabled_flat):
        transport = FakeTransport(fail=SyncError("Bad gateway"))
        scheduler = AutoSyncScheduler(transport, enabled_flat)
        await scheduler._tick()
        await scheduler._tick()
        assert len(transport.calls) == 2


class TestLifecycle:
    async def test_start_checks_immediately_and_shuts_down(self, enabled_flat):
        transport = FakeTransport()
        scheduler = AutoSyncScheduler(transport, enabled_flat, interval_minutes=30)
        scheduler.start()
        assert scheduler.running

        job = scheduler.apscheduler.get_job(JOB_ID)
        assert job.max_instances == 1
        assert job.coalesce is True

        for _ in range(50):
            if transport.calls:
                break
            await asyncio.sleep(0.02)
        assert transport.calls == [("tok", None)]

        scheduler.shutdown()
        await asyncio.sleep(0)
        assert not scheduler.running

    def test_shutdown_without_start(self, flat):
        AutoSyncScheduler(FakeTransport(), flat).shutdown()
