"""
Periodic Google Drive sync sweeps.

Each tick lists every file modified after the committed watermark and
feeds one SyncJob per page into the job queue. Pages are processed one
at a time; the checkpoint is saved after each page's job completes, and
the watermark is committed only once the whole sweep has been processed.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from syncer import metrics
from syncer.config import SyncerSettings
from syncer.logic.batch_processor import BatchResult
from syncer.logic.exceptions import (
    ProviderAuthorizationError,
    ProviderError,
    SchedulerNotReadyError,
)
from syncer.logic.job_queue import JobQueue
from syncer.logic.providers import GoogleDriveClient
from syncer.logic.providers.google_utils import GoogleOAuthClient
from syncer.logic.sync_state import SyncState, SyncStateStore
from syncer.logic.validation import parse_timestamp

logger = logging.getLogger("drivesync-syncer.scheduler")

SYNC_JOB_ID = "google_drive_sync"

# Drive answers an expired or foreign page token with 400
STALE_CURSOR_STATUS = 400

AuthorizationErrorHandler = Callable[[BaseException], Awaitable[Any]]


@dataclass
class SweepResult:
    """Outcome of one sync sweep."""

    status: str = "success"
    pages: int = 0
    files: int = 0
    success: int = 0
    failed: int = 0
    error: str | None = None

    def add(self, batch: BatchResult) -> None:
        """Fold a batch report into the sweep totals."""
        self.files += batch.total
        self.success += batch.success
        self.failed += batch.failed


def page_high_water(files: list[dict[str, Any]]) -> datetime | None:
    """
    Return the newest modifiedTime on a page.

    Args:
        files: Raw records.

    Returns:
        Latest parseable modifiedTime, or None.
    """
    latest: datetime | None = None
    for raw in files:
        if not isinstance(raw, dict):
            continue
        try:
            modified = parse_timestamp(raw.get("modifiedTime"))
        except ValueError:
            continue
        if modified is not None and (latest is None or modified > latest):
            latest = modified
    return latest


class SyncScheduler:
    """
    Runs sync sweeps on a fixed interval once an auth handle is set.

    Usage:
        scheduler = SyncScheduler(drive_client, job_queue, state_store, settings)
        scheduler.set_auth(session.client)
        scheduler.start_periodic_sync()
    """

    def __init__(
        self,
        drive_client: GoogleDriveClient,
        job_queue: JobQueue,
        state_store: SyncStateStore,
        settings: SyncerSettings,
        on_authorization_error: AuthorizationErrorHandler | None = None,
    ) -> None:
        """
        Initialize the scheduler.

        Args:
            drive_client: Provider client used for listing.
            job_queue: Queue receiving one job per page.
            state_store: Checkpoint persistence.
            settings: Interval, page size and listing filter.
            on_authorization_error: Called when the provider rejects the token.
        """
        self._drive = drive_client
        self._queue = job_queue
        self._state_store = state_store
        self._settings = settings
        self._on_authorization_error = on_authorization_error

        self._auth: GoogleOAuthClient | None = None
        self._scheduler: AsyncIOScheduler | None = None
        self._cycle_lock = asyncio.Lock()
        self._stop_requested = False

    @property
    def running(self) -> bool:
        """Whether the periodic trigger is active."""
        return self._scheduler is not None and self._scheduler.running

    def set_auth(self, auth: GoogleOAuthClient) -> None:
        """
        Mark the scheduler ready with an authenticated handle.

        Args:
            auth: Authenticated OAuth handle.
        """
        self._auth = auth
        self._drive.set_auth(auth)

    def clear_auth(self) -> None:
        """Drop the auth handle and stop the periodic trigger."""
        self._auth = None
        self._drive.set_auth(None)
        self.stop()

    def start_periodic_sync(self) -> None:
        """
        Start the interval trigger; the first sweep runs immediately.

        Raises:
            SchedulerNotReadyError: If no auth handle has been set.
        """
        if self._auth is None:
            raise SchedulerNotReadyError()
        if self.running:
            logger.debug("🔁 Periodic sync already running")
            return

        self._stop_requested = False

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self._run_scheduled,
            trigger=IntervalTrigger(seconds=self._settings.sync_interval_seconds),
            id=SYNC_JOB_ID,
            name="Google Drive sync",
            replace_existing=True,
            coalesce=True,
            max_instances=1,
            next_run_time=datetime.now(timezone.utc),
        )
        self._scheduler.start()
        logger.info(
            f"⏰ Periodic sync started (every {self._settings.sync_interval_seconds}s)"
        )

    def stop(self) -> None:
        """
        Cancel the interval trigger.

        A sweep already running finishes its current page, saves the
        checkpoint and returns; await wait_until_idle() for that.
        """
        self._stop_requested = True
        if self._scheduler is None:
            return
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("🛑 Periodic sync stopped")
        self._scheduler = None

    async def wait_until_idle(self) -> None:
        """Wait for an in-flight sweep to return."""
        async with self._cycle_lock:
            pass

    async def _run_scheduled(self) -> None:
        try:
            await self.run_sync_cycle()
        except asyncio.CancelledError:
            raise
        except Exception:
            metrics.sync_cycles_total.labels(status="error").inc()
            logger.exception("❌ Sync cycle crashed")

    async def run_sync_cycle(self) -> SweepResult:
        """
        Run one full pagination sweep.

        Returns:
            SweepResult; status is "success", "skipped", "interrupted",
            "auth_error" or "error".
        """
        if self._auth is None:
            logger.debug("⏭️ Skipping sync cycle: not authenticated")
            return SweepResult(status="skipped")
        if self._stop_requested:
            logger.debug("⏭️ Skipping sync cycle: scheduler stopped")
            return SweepResult(status="skipped")
        if self._cycle_lock.locked():
            logger.debug("⏭️ Skipping sync cycle: previous cycle still running")
            return SweepResult(status="skipped")

        async with self._cycle_lock:
            result = await self._sweep()

        metrics.sync_cycles_total.labels(status=result.status).inc()
        if result.status == "success":
            logger.info(
                f"✅ Sync cycle completed: {result.pages} pages, {result.files} files "
                f"({result.success} ok, {result.failed} failed)"
            )
        return result

    async def _sweep(self) -> SweepResult:
        state = await self._state_store.load()
        start_cursor = state.cursor
        result = SweepResult()

        if start_cursor:
            logger.info("↩️ Resuming interrupted sync sweep")
        logger.info(
            f"🔄 Starting sync sweep (modified since: "
            f"{state.watermark.isoformat() if state.watermark else 'beginning'})"
        )

        try:
            pages = self._drive.iterate_pages(
                page_size=self._settings.page_size,
                modified_since=state.watermark,
                query=self._settings.list_query,
                start_cursor=start_cursor,
            )
            async for page in pages:
                result.pages += 1
                if page.files:
                    batch = await self._queue.enqueue(page.files)
                    if isinstance(batch, BatchResult):
                        result.add(batch)

                state = state.advance(page.next_cursor, page_high_water(page.files))
                if page.has_more:
                    await self._state_store.save(state)
                    if self._stop_requested:
                        logger.info("🛑 Sync sweep interrupted, will resume from checkpoint")
                        result.status = "interrupted"
                        return result

            state = state.commit()
            await self._state_store.save(state)
            return result

        except ProviderAuthorizationError as e:
            logger.warning(f"⚠️ Sync cycle stopped, authorization rejected: {e.message}")
            result.status = "auth_error"
            result.error = e.message
            if self._on_authorization_error is not None:
                await self._on_authorization_error(e)
            return result

        except ProviderError as e:
            result.status = "error"
            result.error = e.message
            if (
                start_cursor
                and result.pages == 0
                and e.status_code == STALE_CURSOR_STATUS
            ):
                logger.warning("⚠️ Stale resume cursor, restarting from watermark")
                await self._state_store.save(state.reset_cursor())
            else:
                logger.error(f"❌ Sync cycle failed: {e.message}")
            return result

        except asyncio.CancelledError:
            raise

        except Exception as e:
            logger.exception("❌ Sync batch failed, sweep will resume from checkpoint")
            result.status = "error"
            result.error = str(e)
            return result

    async def get_state(self) -> SyncState:
        """Return the persisted checkpoint."""
        return await self._state_store.load()
