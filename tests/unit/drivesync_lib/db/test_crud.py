"""Unit tests for DriveSync CRUD modules."""

from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql

from drivesync_lib.db.crud.drive_file import DriveFileCRUD
from drivesync_lib.db.crud.drive_user import DriveUserCRUD
from drivesync_lib.db.crud.system_setting import SystemSettingCRUD


def _sql(session: MagicMock, call: int = 0) -> str:
    """Compile the statement passed to session.execute for PostgreSQL."""
    stmt = session.execute.call_args_list[call].args[0]
    return str(stmt.compile(dialect=postgresql.dialect()))


def _result(**methods: object) -> MagicMock:
    """Create a mock Result with fixed return values."""
    result = MagicMock()
    for name, value in methods.items():
        getattr(result, name).return_value = value
    return result


class TestDriveFileCRUD:
    """Tests for DriveFileCRUD."""

    @pytest.mark.asyncio
    async def test_upsert_conflicts_on_id(self, mock_session: MagicMock) -> None:
        """Upsert inserts or updates the supplied columns by id."""
        crud = DriveFileCRUD()

        await crud.upsert(
            mock_session,
            {"id": "f1", "name": "a.txt", "file_metadata": {"id": "f1"}},
        )

        sql = _sql(mock_session)
        assert sql.startswith("INSERT INTO drive_files")
        assert "ON CONFLICT (id) DO UPDATE SET" in sql
        assert "metadata = excluded.metadata" in sql
        assert "name = excluded.name" in sql
        assert "last_update" in sql
        assert "CASE WHEN" in sql
        assert "name IS DISTINCT FROM excluded.name" in sql
        assert "last_update END" in sql
        assert "file_metadata" not in sql
        assert "id = excluded.id" not in sql

    @pytest.mark.asyncio
    async def test_sync_attempt_alone_is_not_a_change(
        self,
        mock_session: MagicMock,
    ) -> None:
        """A newer last_sync_attempt does not bump last_update."""
        crud = DriveFileCRUD()

        await crud.upsert(
            mock_session,
            {"id": "f1", "name": "a.txt", "last_sync_attempt": None},
        )

        sql = _sql(mock_session)
        assert "last_sync_attempt = excluded.last_sync_attempt" in sql
        assert "last_sync_attempt IS DISTINCT FROM" not in sql

    @pytest.mark.asyncio
    async def test_upsert_with_only_bookkeeping_touches_last_update(
        self,
        mock_session: MagicMock,
    ) -> None:
        """With nothing to compare, last_update is simply set."""
        crud = DriveFileCRUD()

        await crud.upsert(mock_session, {"id": "f1", "last_sync_attempt": None})

        sql = _sql(mock_session)
        assert "CASE WHEN" not in sql
        assert "last_update = " in sql

    @pytest.mark.asyncio
    async def test_upsert_error_touches_only_error_columns(
        self,
        mock_session: MagicMock,
    ) -> None:
        """A degraded upsert leaves name and other columns alone."""
        crud = DriveFileCRUD()

        await crud.upsert_error(
            mock_session,
            "f1",
            {"id": "f1"},
            {"error": "x", "timestamp": "t", "details": "d"},
        )

        sql = _sql(mock_session)
        assert "sync_status = excluded.sync_status" in sql
        assert "error_log = excluded.error_log" in sql
        assert "name = excluded.name" not in sql
        stmt = mock_session.execute.call_args.args[0]
        params = stmt.compile(dialect=postgresql.dialect()).params
        assert params["sync_status"] == "error"

    @pytest.mark.asyncio
    async def test_get_by_id(self, mock_session: MagicMock) -> None:
        """get_by_id returns the scalar result."""
        row = MagicMock()
        mock_session.execute.return_value = _result(scalar_one_or_none=row)

        assert await DriveFileCRUD().get_by_id(mock_session, "f1") is row


class TestDriveUserCRUD:
    """Tests for DriveUserCRUD."""

    @pytest.mark.asyncio
    async def test_find_or_create_new_user(self, mock_session: MagicMock) -> None:
        """An inserted row reports created=True."""
        user = SimpleNamespace(id=7)
        mock_session.execute = AsyncMock(
            side_effect=[
                _result(scalar_one_or_none=7),
                _result(scalar_one_or_none=user),
            ]
        )

        found, created = await DriveUserCRUD().find_or_create(
            mock_session, "p1", "a@example.com", "Alice"
        )

        assert found is user
        assert created is True
        sql = _sql(mock_session)
        assert "ON CONFLICT (permission_id) DO NOTHING" in sql
        assert "RETURNING drive_users.id" in sql

    @pytest.mark.asyncio
    async def test_find_or_create_existing_user(self, mock_session: MagicMock) -> None:
        """A conflicting insert reports created=False."""
        user = SimpleNamespace(id=7)
        mock_session.execute = AsyncMock(
            side_effect=[
                _result(scalar_one_or_none=None),
                _result(scalar_one_or_none=user),
            ]
        )

        found, created = await DriveUserCRUD().find_or_create(
            mock_session, "p1", "a@example.com"
        )

        assert found is user
        assert created is False

    @pytest.mark.asyncio
    async def test_find_or_create_missing_row(self, mock_session: MagicMock) -> None:
        """A row that cannot be read back is an error."""
        mock_session.execute = AsyncMock(
            side_effect=[
                _result(scalar_one_or_none=None),
                _result(scalar_one_or_none=None),
            ]
        )

        with pytest.raises(LookupError):
            await DriveUserCRUD().find_or_create(mock_session, "p1", "a@example.com")

    @pytest.mark.asyncio
    async def test_update_profile_unchanged(self, mock_session: MagicMock) -> None:
        """Identical profiles are not written."""
        user = SimpleNamespace(email="a@x", display_name="A", photo_link=None)

        changed = await DriveUserCRUD().update_profile(mock_session, user, "a@x", "A", None)

        assert changed is False
        mock_session.flush.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_update_profile_changed(self, mock_session: MagicMock) -> None:
        """A changed field updates the row in place."""
        user = SimpleNamespace(
            email="a@x", display_name="A", photo_link=None, last_update=None
        )

        changed = await DriveUserCRUD().update_profile(
            mock_session, user, "a@x", "A B", "https://photo"
        )

        assert changed is True
        assert user.display_name == "A B"
        assert user.photo_link == "https://photo"
        assert user.last_update.tzinfo is not None
        mock_session.flush.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_refresh_stats(self, mock_session: MagicMock) -> None:
        """Stats are recomputed from successful files."""
        user = SimpleNamespace(file_count=0, total_size=0, last_synced_at=None)
        mock_session.execute.return_value = _result(one=(3, Decimal("4096")))
        mock_session.get.return_value = user

        await DriveUserCRUD().refresh_stats(mock_session, 7)

        assert user.file_count == 3
        assert user.total_size == 4096
        assert user.last_synced_at.tzinfo is not None
        sql = _sql(mock_session)
        assert "count(drive_files.id)" in sql
        assert "drive_files.sync_status" in sql


class TestSystemSettingCRUD:
    """Tests for SystemSettingCRUD."""

    @pytest.mark.asyncio
    async def test_update_upserts_by_key(self, mock_session: MagicMock) -> None:
        """Updating a key replaces its value."""
        await SystemSettingCRUD().update(mock_session, "google_tokens", {"a": 1})

        sql = _sql(mock_session)
        assert sql.startswith("INSERT INTO system_settings")
        assert "ON CONFLICT (key) DO UPDATE SET value = excluded.value" in sql

    @pytest.mark.asyncio
    async def test_get_value_missing(self, mock_session: MagicMock) -> None:
        """A missing key has no value."""
        mock_session.execute.return_value = _result(scalar_one_or_none=None)

        assert await SystemSettingCRUD().get_value(mock_session, "google") is None

    @pytest.mark.asyncio
    async def test_get_value_present(self, mock_session: MagicMock) -> None:
        """A stored key returns its JSON value."""
        setting = SimpleNamespace(value={"clientId": "id"})
        mock_session.execute.return_value = _result(scalar_one_or_none=setting)

        assert await SystemSettingCRUD().get_value(mock_session, "google") == {
            "clientId": "id"
        }
