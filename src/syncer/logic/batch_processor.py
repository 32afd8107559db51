"""
Batch processor that persists one page of Drive file records.

Each record succeeds or fails on its own. A failed record is still written
as a degraded row, so every id that was ever observed has a row in the
store. The batch itself never fails as a whole; its outcome is a report.
"""

import asyncio
import hashlib
import json
import logging
import time
import traceback
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from drivesync_lib.db.crud import drive_file_crud, drive_user_crud
from drivesync_lib.db.models import DriveUser, utcnow

from syncer import metrics
from syncer.logic.exceptions import PersistenceError, RecordValidationError, SyncError
from syncer.logic.job_queue import SyncJob
from syncer.logic.validation import Invalid, validate_file_record

logger = logging.getLogger("drivesync-syncer.batch_processor")

DEFAULT_CHUNK_SIZE = 500
DEFAULT_MAX_CONCURRENCY = 10

SYNTHETIC_ID_PREFIX = "unidentified-"

SessionFactory = Callable[[], Any]


@dataclass
class BatchError:
    """Failure of a single record."""

    file_id: str
    error: str


@dataclass
class BatchResult:
    """Report for one processed batch."""

    success: int = 0
    failed: int = 0
    errors: list[BatchError] = field(default_factory=list)
    users_processed: int = 0
    warnings: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        """Records processed."""
        return self.success + self.failed


def record_id(raw: Any) -> str:
    """
    Return the id a record is stored under.

    Records without a usable id get a deterministic synthetic id derived
    from their payload.

    Args:
        raw: Raw record.

    Returns:
        Provider id as a string, or "unidentified-<sha256>".
    """
    file_id = raw.get("id") if isinstance(raw, dict) else None
    if file_id:
        return str(file_id)
    payload = json.dumps(raw, sort_keys=True, default=str).encode("utf-8")
    return f"{SYNTHETIC_ID_PREFIX}{hashlib.sha256(payload).hexdigest()}"


def extract_owner(raw: dict[str, Any]) -> dict[str, Any] | None:
    """
    Pick the owner descriptor from a raw record.

    Args:
        raw: Raw record.

    Returns:
        First entry of "owners", else "owner", else None.
    """
    owners = raw.get("owners")
    if isinstance(owners, list) and owners and isinstance(owners[0], dict):
        return owners[0]
    owner = raw.get("owner")
    return owner if isinstance(owner, dict) else None


class BatchProcessor:
    """
    Persists SyncJobs with bounded per-item concurrency.

    Usage:
        processor = BatchProcessor(db.session_factory)
        queue.set_processor(processor.process)
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ) -> None:
        """
        Initialize the batch processor.

        Args:
            session_factory: Callable returning an AsyncSession context manager.
            chunk_size: Records per concurrently processed sub-batch.
            max_concurrency: Records in flight at once.
        """
        if chunk_size < 1 or max_concurrency < 1:
            raise ValueError("chunk_size and max_concurrency must be positive")
        self._session_factory = session_factory
        self._chunk_size = chunk_size
        self._max_concurrency = max_concurrency

    async def process(self, job: SyncJob) -> BatchResult:
        """
        Process every record in a job.

        Args:
            job: Job holding one page of raw records.

        Returns:
            BatchResult with per-record outcomes.
        """
        result = BatchResult()
        semaphore = asyncio.Semaphore(self._max_concurrency)
        records = job.file_records
        start_time = time.time()

        for offset in range(0, len(records), self._chunk_size):
            chunk = records[offset : offset + self._chunk_size]
            await asyncio.gather(
                *(self._process_item(raw, result, semaphore) for raw in chunk)
            )

        metrics.batch_duration.observe(time.time() - start_time)

        if result.failed:
            logger.warning(
                f"⚠️ Batch {job.batch_id} completed: {result.total} processed, "
                f"{result.success} succeeded, {result.failed} failed, "
                f"{result.users_processed} users"
            )
            for error in result.errors:
                logger.warning(f"   ❌ {error.file_id}: {error.error}")
        else:
            logger.info(
                f"✅ Batch {job.batch_id} completed: {result.success} files, "
                f"{result.users_processed} users"
            )
        return result

    async def _process_item(
        self,
        raw: dict[str, Any],
        result: BatchResult,
        semaphore: asyncio.Semaphore,
    ) -> None:
        async with semaphore:
            file_id = record_id(raw)
            try:
                await self._persist(file_id, raw, result)
            except Exception as e:
                message = e.message if isinstance(e, SyncError) else str(e)
                result.failed += 1
                result.errors.append(BatchError(file_id=file_id, error=message))
                metrics.files_processed_total.labels(status="error").inc()
                await self._record_failure(file_id, raw, e)
            else:
                result.success += 1
                metrics.files_processed_total.labels(status="success").inc()

    async def _persist(
        self,
        file_id: str,
        raw: dict[str, Any],
        result: BatchResult,
    ) -> None:
        """Resolve the owner, validate, and upsert one record."""
        if not isinstance(raw, dict):
            raise RecordValidationError(file_id, ["Record is not an object"])

        async with self._session_factory() as session:
            user = await self._resolve_owner(session, raw)
            if user is not None:
                result.users_processed += 1
                metrics.users_processed_total.inc()

            outcome = validate_file_record(raw)
            result.warnings.extend(f"{file_id}: {w}" for w in outcome.warnings)
            if isinstance(outcome, Invalid):
                raise RecordValidationError(file_id, outcome.errors)

            values = dict(outcome.sanitized)
            values["owner_user_id"] = user.id if user is not None else None

            try:
                await drive_file_crud.upsert(session, values)
                if user is not None:
                    await drive_user_crud.refresh_stats(session, user.id)
                await session.commit()
            except Exception as e:
                raise PersistenceError(file_id, str(e)) from e

    async def _resolve_owner(
        self,
        session: AsyncSession,
        raw: dict[str, Any],
    ) -> DriveUser | None:
        """
        Find or create the owning user and sync its profile.

        The user row is committed on its own, so it survives a later
        failure of the file record.

        Returns:
            The user, or None if the record has no resolvable owner.
        """
        owner = extract_owner(raw)
        if not owner:
            return None
        email = owner.get("emailAddress")
        permission_id = owner.get("permissionId")
        if not email or not permission_id:
            return None

        display_name = owner.get("displayName") or None
        photo_link = owner.get("photoLink") or None
        try:
            user, created = await drive_user_crud.find_or_create(
                session,
                permission_id=permission_id,
                email=email,
                display_name=display_name,
                photo_link=photo_link,
            )
            if created:
                logger.debug(f"👤 Created user {permission_id}")
            elif await drive_user_crud.update_profile(
                session, user, email, display_name, photo_link
            ):
                logger.debug(f"👤 Updated user {permission_id}")
            await session.commit()
            return user
        except Exception as e:
            logger.warning(f"⚠️ Could not resolve owner {permission_id}: {e}")
            await session.rollback()
            return None

    async def _record_failure(
        self,
        file_id: str,
        raw: Any,
        error: Exception,
    ) -> None:
        """Upsert a degraded row for a failed record in a fresh session."""
        now = utcnow()
        error_log = {
            "error": error.message if isinstance(error, SyncError) else str(error),
            "timestamp": now.isoformat(),
            "details": "".join(
                traceback.format_exception(type(error), error, error.__traceback__)
            ),
        }
        try:
            async with self._session_factory() as session:
                await drive_file_crud.upsert_error(
                    session, file_id, raw, error_log, attempted_at=now
                )
                await session.commit()
        except Exception:
            logger.exception(f"❌ Failed to record sync error for {file_id}")
