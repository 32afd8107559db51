"""CRUD operations for canonical Drive file records."""

from typing import Any

from sqlalchemy import case, or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from drivesync_lib.db.models import DriveFile, SyncStatus, utcnow

# Bookkeeping columns that do not count as a content change.
UNTRACKED_COLUMNS = frozenset({"last_sync_attempt"})


class DriveFileCRUD:
    """Idempotent upserts keyed by Drive file id."""

    async def get_by_id(self, session: AsyncSession, file_id: str) -> DriveFile | None:
        """
        Load a file row.

        Args:
            session: Database session.
            file_id: Drive file id.

        Returns:
            The row or None.
        """
        result = await session.execute(select(DriveFile).where(DriveFile.id == file_id))
        return result.scalar_one_or_none()

    async def upsert(self, session: AsyncSession, values: dict[str, Any]) -> None:
        """
        Insert or update a file record.

        Only the supplied columns are overwritten on conflict. last_update
        moves only when one of them actually changed; last_sync_attempt
        alone never counts as a change.

        Args:
            session: Database session.
            values: Column values keyed by ORM attribute name; must include "id".
        """
        now = utcnow()
        row = {_column_name(key): value for key, value in values.items()}
        table = DriveFile.__table__
        stmt = pg_insert(table).values(creation_date=now, **row)
        update_columns = {name: stmt.excluded[name] for name in row if name != "id"}
        compared = [name for name in update_columns if name not in UNTRACKED_COLUMNS]
        if compared:
            changed = or_(
                *(table.c[name].is_distinct_from(stmt.excluded[name]) for name in compared)
            )
            update_columns["last_update"] = case((changed, now), else_=table.c.last_update)
        else:
            update_columns["last_update"] = now
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.id],
            set_=update_columns,
        )
        await session.execute(stmt)

    async def upsert_error(
        self,
        session: AsyncSession,
        file_id: str,
        raw: Any,
        error_log: dict[str, Any],
        attempted_at: Any | None = None,
    ) -> None:
        """
        Record a failed sync attempt as a degraded row.

        Args:
            session: Database session.
            file_id: Drive file id (or synthetic id).
            raw: Original provider payload.
            error_log: {"error", "timestamp", "details"} mapping.
            attempted_at: Attempt timestamp, defaults to now.
        """
        values = {
            "id": file_id,
            "file_metadata": raw,
            "sync_status": SyncStatus.ERROR.value,
            "last_sync_attempt": attempted_at or utcnow(),
            "error_log": error_log,
        }
        await self.upsert(session, values)


def _column_name(attribute: str) -> str:
    """Map an ORM attribute name to its table column name."""
    return DriveFile.__mapper__.attrs[attribute].columns[0].name


drive_file_crud = DriveFileCRUD()
