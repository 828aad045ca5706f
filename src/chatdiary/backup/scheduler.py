"""Periodic Gist auto-sync via APScheduler.

APScheduler is imported lazily (only in :meth:`AutoSyncScheduler.start`) so
the module can be imported without it.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

from loguru import logger

from chatdiary.storage.flat import ConfigPort

from .gist import GistSyncResult, GistTransport, SyncSettings

JOB_ID = "gist_auto_sync"


def _parse_timestamp(value: str) -> datetime | None:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


class AutoSyncScheduler:
    """Checks every ``interval_minutes`` whether a Gist sync is due.

    A sync runs when auto-sync is enabled, a token is stored, and the last
    successful sync is missing or older than ``min_age_minutes``. The first
    check happens as soon as the scheduler starts.

    Args:
        transport: Gist transport used for the sync.
        flat: Flat store holding the sync settings.
        interval_minutes: How often to check.
        min_age_minutes: Minimum time between syncs.
        timezone: Scheduler timezone.
    """

    def __init__(
        self,
        transport: GistTransport,
        flat: ConfigPort,
        interval_minutes: int = 30,
        min_age_minutes: int = 60,
        timezone: str = "UTC",
    ):
        self.transport = transport
        self.flat = flat
        self.interval_minutes = interval_minutes
        self.min_age = timedelta(minutes=min_age_minutes)
        self._timezone = timezone
        self._scheduler: Any = None  # AsyncIOScheduler, lazily created

    def is_due(self, last_sync: str | None, now: datetime | None = None) -> bool:
        if not last_sync:
            return True
        last = _parse_timestamp(last_sync)
        if last is None:
            logger.warning(f"Unreadable last sync time {last_sync!r}, syncing now")
            return True
        now = now or datetime.now(UTC)
        return now - last > self.min_age

    async def check_and_sync(self, now: datetime | None = None) -> GistSyncResult | None:
        """Run one check. Returns the sync result, or ``None`` when skipped."""
        settings = await SyncSettings.load(self.flat)
        if not settings.auto_enabled:
            logger.debug("Auto-sync disabled, skipping")
            return None
        if not settings.token:
            logger.debug("Auto-sync enabled but no GitHub token stored, skipping")
            return None
        if not self.is_due(settings.last_sync, now):
            logger.debug(f"Last sync at {settings.last_sync}, not due yet")
            return None
        if self.transport.busy:
            logger.debug("Sync already in progress, skipping")
            return None

        logger.info("Auto-sync triggered")
        return await self.transport.sync(settings.token, settings.gist_id)

    async def _tick(self) -> None:
        try:
            await self.check_and_sync()
        except Exception as e:
            logger.error(f"Auto-sync failed: {e}")

    # ── Lifecycle ──────────────────────────────────────────────────

    def start(self) -> None:
        """Create the APScheduler instance and start checking.

        Must be called from a running asyncio event loop.
        """
        if self.running:
            return

        from apscheduler.schedulers.asyncio import AsyncIOScheduler
        from apscheduler.triggers.interval import IntervalTrigger

        self._scheduler = AsyncIOScheduler(timezone=self._timezone)
        self._scheduler.add_job(
            self._tick,
            trigger=IntervalTrigger(minutes=self.interval_minutes, timezone=self._timezone),
            id=JOB_ID,
            next_run_time=datetime.now(UTC),
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info(f"Auto-sync scheduler started: every {self.interval_minutes}m")

    def shutdown(self) -> None:
        """Stop the APScheduler instance. Safe to call when not started."""
        if self.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Auto-sync scheduler shut down")

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    @property
    def apscheduler(self) -> Any:
        return self._scheduler
