"""CRUD operations for Drive file owners."""

from sqlalchemy import Numeric, cast, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from drivesync_lib.db.models import DriveFile, DriveUser, SyncStatus, utcnow


class DriveUserCRUD:
    """Find-or-create and profile maintenance for DriveUser rows."""

    async def get_by_permission_id(
        self,
        session: AsyncSession,
        permission_id: str,
    ) -> DriveUser | None:
        """
        Look up a user by provider permission id.

        Args:
            session: Database session.
            permission_id: Stable provider identifier.

        Returns:
            Matching user or None.
        """
        result = await session.execute(
            select(DriveUser).where(DriveUser.permission_id == permission_id)
        )
        return result.scalar_one_or_none()

    async def find_or_create(
        self,
        session: AsyncSession,
        permission_id: str,
        email: str,
        display_name: str | None = None,
        photo_link: str | None = None,
    ) -> tuple[DriveUser, bool]:
        """
        Return the user for a permission id, inserting it if absent.

        Concurrent callers converge on one row through the unique
        constraint on permission_id.

        Args:
            session: Database session.
            permission_id: Stable provider identifier.
            email: Owner email address.
            display_name: Optional display name.
            photo_link: Optional avatar URL.

        Returns:
            Tuple of (user, created).
        """
        stmt = (
            pg_insert(DriveUser)
            .values(
                permission_id=permission_id,
                email=email,
                display_name=display_name,
                photo_link=photo_link,
                file_count=0,
                total_size=0,
                creation_date=utcnow(),
            )
            .on_conflict_do_nothing(index_elements=[DriveUser.permission_id])
            .returning(DriveUser.id)
        )
        result = await session.execute(stmt)
        created = result.scalar_one_or_none() is not None

        user = await self.get_by_permission_id(session, permission_id)
        if user is None:
            raise LookupError(f"User {permission_id} vanished after insert")
        return user, created

    async def update_profile(
        self,
        session: AsyncSession,
        user: DriveUser,
        email: str,
        display_name: str | None,
        photo_link: str | None,
    ) -> bool:
        """
        Update profile fields in place when any of them differ.

        Args:
            session: Database session.
            user: Loaded user row.
            email: Incoming email.
            display_name: Incoming display name.
            photo_link: Incoming avatar URL.

        Returns:
            True if the row was changed.
        """
        if (
            user.email == email
            and user.display_name == display_name
            and user.photo_link == photo_link
        ):
            return False

        user.email = email
        user.display_name = display_name
        user.photo_link = photo_link
        user.last_update = utcnow()
        await session.flush()
        return True

    async def refresh_stats(self, session: AsyncSession, user_id: int) -> None:
        """
        Recompute aggregate statistics from the user's synced files.

        Args:
            session: Database session.
            user_id: DriveUser primary key.
        """
        result = await session.execute(
            select(
                func.count(DriveFile.id),
                func.coalesce(func.sum(cast(DriveFile.size, Numeric)), 0),
            ).where(
                DriveFile.owner_user_id == user_id,
                DriveFile.sync_status == SyncStatus.SUCCESS.value,
            )
        )
        file_count, total_size = result.one()

        user = await session.get(DriveUser, user_id)
        if user is None:
            return
        user.file_count = int(file_count)
        user.total_size = int(total_size)
        user.last_synced_at = utcnow()
        await session.flush()


drive_user_crud = DriveUserCRUD()
