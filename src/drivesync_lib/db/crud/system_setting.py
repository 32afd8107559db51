"""CRUD operations for the key/value settings table."""

from typing import Any

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from drivesync_lib.db.models import SystemSetting, utcnow


class SystemSettingCRUD:
    """Get/update access to system settings by key."""

    async def get(self, session: AsyncSession, key: str) -> SystemSetting | None:
        """
        Load a setting row.

        Args:
            session: Database session.
            key: Setting key.

        Returns:
            The row, or None if the key was never written.
        """
        result = await session.execute(
            select(SystemSetting).where(SystemSetting.key == key)
        )
        return result.scalar_one_or_none()

    async def get_value(self, session: AsyncSession, key: str) -> Any | None:
        """
        Load a setting value.

        Args:
            session: Database session.
            key: Setting key.

        Returns:
            Stored JSON value, or None if missing or null.
        """
        setting = await self.get(session, key)
        return setting.value if setting else None

    async def update(self, session: AsyncSession, key: str, value: Any | None) -> None:
        """
        Insert or replace a setting value.

        Writing None keeps the row and stores a JSON null.

        Args:
            session: Database session.
            key: Setting key.
            value: JSON-serializable value.
        """
        now = utcnow()
        stmt = pg_insert(SystemSetting).values(
            key=key,
            value=value,
            creation_date=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[SystemSetting.key],
            set_={"value": stmt.excluded.value, "last_update": now},
        )
        await session.execute(stmt)


system_setting_crud = SystemSettingCRUD()
