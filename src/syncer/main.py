"""
DriveSync Syncer Service Entry Point.

Keeps PostgreSQL in sync with a Google Drive account: waits for OAuth
client settings, authenticates, then runs periodic sync sweeps.

Usage:
    python -m syncer.main

Environment Variables:
    SYNCER_DATABASE_URL: PostgreSQL connection URL
    SYNCER_SYNC_INTERVAL_SECONDS: Seconds between sweeps (default: 300)
    SYNCER_PAGE_SIZE: Files per listing page (default: 1000)
    SYNCER_METRICS_PORT: Prometheus port (default: 9090)
    SYNCER_LOG_LEVEL: Logging level (default: INFO)
"""

import asyncio
import logging
import os
import signal
import sys
from collections.abc import Callable
from urllib.parse import urlparse, urlunparse

import httpx

from drivesync_lib.db import DatabaseManager, close_db, init_db

from syncer.config import SyncerSettings, get_settings
from syncer.logic.auth_manager import (
    AuthEvent,
    Authenticated,
    AuthenticationFailed,
    AuthenticationRequired,
    AuthLifecycleManager,
    TokensUpdated,
)
from syncer.logic.batch_processor import BatchProcessor
from syncer.logic.credential_store import CredentialStore
from syncer.logic.exceptions import ConfigurationMissingError, DatabaseConnectionError
from syncer.logic.job_queue import JobQueue
from syncer.logic.providers import GoogleDriveClient
from syncer.logic.scheduler import SyncScheduler
from syncer.logic.sync_state import SyncStateStore
from syncer.metrics import start_metrics_server

# Configure logging
logging.basicConfig(
    level=os.getenv("SYNCER_LOG_LEVEL", "INFO"),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("drivesync-syncer")


class SyncService:
    """
    Wires the sync components together and owns their lifecycle.

    Components are created once at startup and connected through
    constructor arguments and auth event subscriptions.
    """

    def __init__(self, settings: SyncerSettings | None = None):
        """
        Initialize the service.

        Args:
            settings: Service settings, loaded from the environment if omitted.
        """
        self._settings = settings or get_settings()
        self._running = False
        self._shutdown = asyncio.Event()

        self._db: DatabaseManager | None = None
        self._http_client: httpx.AsyncClient | None = None
        self._auth: AuthLifecycleManager | None = None
        self._queue: JobQueue | None = None
        self._scheduler: SyncScheduler | None = None
        self._unsubscribe: Callable[[], None] | None = None
        self._tasks: list[asyncio.Task[None]] = []

    @staticmethod
    def _mask_url(url: str) -> str:
        """Hide the password in a connection URL for logging."""
        parsed = urlparse(url)
        if parsed.password:
            netloc = parsed.netloc.replace(f":{parsed.password}@", ":***@")
            return urlunparse(parsed._replace(netloc=netloc))
        return url

    async def _init_db_with_retry(self) -> DatabaseManager:
        """
        Connect to the database, retrying a fixed number of times.

        Raises:
            DatabaseConnectionError: If every attempt fails.
        """
        attempts = self._settings.db_retry_count
        delay = self._settings.db_retry_delay
        for attempt in range(1, attempts + 1):
            try:
                return await init_db(
                    self._settings.database_url,
                    echo=self._settings.database_echo,
                    create_schema=self._settings.create_schema,
                )
            except Exception as e:
                if attempt < attempts:
                    logger.warning(
                        f"⚠️ Database connection attempt {attempt}/{attempts} failed: {e}"
                    )
                    logger.info(f"🔄 Retrying in {delay}s...")
                    await asyncio.sleep(delay)
                else:
                    raise DatabaseConnectionError(str(e)) from e
        raise DatabaseConnectionError("No connection attempts configured")

    def _build_components(self, db: DatabaseManager, http_client: httpx.AsyncClient) -> None:
        settings = self._settings
        session_factory = db.session_factory

        self._auth = AuthLifecycleManager(
            CredentialStore(session_factory),
            http_client,
            config_poll_seconds=settings.config_poll_seconds,
        )
        processor = BatchProcessor(
            session_factory,
            chunk_size=settings.batch_chunk_size,
            max_concurrency=settings.batch_max_concurrency,
        )
        self._queue = JobQueue(processor.process)
        self._scheduler = SyncScheduler(
            GoogleDriveClient(http_client),
            self._queue,
            SyncStateStore(session_factory),
            settings,
            on_authorization_error=self._auth.handle_authorization_error,
        )
        self._unsubscribe = self._auth.subscribe(self._on_auth_event)

    async def start(self) -> None:
        """
        Connect to the database and start waiting for Google configuration.

        Raises:
            DatabaseConnectionError: If the database stays unreachable.
        """
        settings = self._settings
        logger.info("🚀 DriveSync Syncer starting...")
        logger.info("📋 Configuration:")
        logger.info(f"   Database: {self._mask_url(settings.database_url)}")
        logger.info(f"   Sync interval: {settings.sync_interval_seconds}s")
        logger.info(f"   Page size: {settings.page_size}")
        logger.info(f"   Batch chunk size: {settings.batch_chunk_size}")

        if settings.metrics_enabled:
            start_metrics_server(settings.metrics_port)
            logger.info(f"📊 Metrics server started on port {settings.metrics_port}")

        self._db = await self._init_db_with_retry()
        self._http_client = httpx.AsyncClient(timeout=settings.http_timeout)
        self._build_components(self._db, self._http_client)

        if self._queue is None:
            raise RuntimeError("Job queue was not built")
        self._queue.start_monitoring()
        self._running = True

        self._tasks.append(asyncio.create_task(self._heartbeat()))
        self._tasks.append(asyncio.create_task(self._await_configuration()))
        logger.info("✅ Syncer started")

    async def _await_configuration(self) -> None:
        if self._auth is None:
            raise RuntimeError("Syncer not started")
        logger.info("⏳ Waiting for Google client configuration...")
        await self._auth.wait_for_configuration()
        logger.info("⚙️ Google client configuration loaded")

    async def _on_auth_event(self, event: AuthEvent) -> None:
        """Route auth lifecycle events to the queue and scheduler."""
        if self._scheduler is None or self._queue is None:
            raise RuntimeError("Syncer not started")

        if isinstance(event, Authenticated):
            if event.session.client is None:
                return
            self._scheduler.set_auth(event.session.client)
            self._queue.set_initialized(True)
            self._scheduler.start_periodic_sync()

        elif isinstance(event, AuthenticationRequired):
            self._scheduler.clear_auth()
            await self._log_consent_url()

        elif isinstance(event, AuthenticationFailed):
            logger.error(f"❌ Google authentication failed: {event.error}")

        elif isinstance(event, TokensUpdated):
            logger.debug("🔑 Google tokens updated")

    async def _log_consent_url(self) -> None:
        if self._auth is None:
            raise RuntimeError("Syncer not started")
        try:
            url = await self._auth.get_auth_url()
        except ConfigurationMissingError:
            return
        logger.warning(f"🔑 Google authorization required, visit: {url}")

    async def _heartbeat(self) -> None:
        if self._auth is None or self._queue is None:
            raise RuntimeError("Syncer not started")
        while self._running:
            await asyncio.sleep(self._settings.heartbeat_seconds)
            logger.info(
                f"💓 Heartbeat: auth={self._auth.state.value}, "
                f"sync={'on' if self._scheduler and self._scheduler.running else 'off'}, "
                f"queue={self._queue.pending} pending"
            )

    def request_stop(self) -> None:
        """Signal handler target: ask the run loop to shut down."""
        logger.info("🛑 Shutdown requested")
        self._shutdown.set()

    async def stop(self) -> None:
        """Stop timers, drain the queue and release connections."""
        self._running = False

        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []

        if self._scheduler is not None:
            self._scheduler.stop()
            await self._scheduler.wait_until_idle()
        if self._auth is not None:
            await self._auth.stop()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._queue is not None:
            await self._queue.stop_monitoring()

        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
        await close_db(self._db)
        self._db = None
        logger.info("👋 Syncer stopped")

    async def run(self) -> None:
        """Start, run until SIGTERM or SIGINT, then stop."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self.request_stop)

        try:
            await self.start()
            await self._shutdown.wait()
        finally:
            await self.stop()


def main() -> None:
    """Run the syncer until interrupted."""
    service = SyncService()
    try:
        asyncio.run(service.run())
    except DatabaseConnectionError as e:
        logger.error(f"❌ {e.message}")
        sys.exit(1)


if __name__ == "__main__":
    main()
