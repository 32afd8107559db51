"""
Unit tests for utcnow() helper and the DriveSync ORM models.

Verifies:
- utcnow() returns timezone-aware UTC datetimes
- TIMESTAMP column type is TIMESTAMPTZ (timezone=True)
- creation_date defaults use utcnow
- The file metadata attribute maps to the "metadata" column
"""

from datetime import datetime, timezone

import pytest
from sqlalchemy.dialects.postgresql import TIMESTAMP as PG_TIMESTAMP

from drivesync_lib.db.connection import Base
from drivesync_lib.db.models import DriveFile, DriveUser, SyncStatus, SystemSetting
from drivesync_lib.db.models.base import TIMESTAMP, utcnow


class TestUtcnow:
    """Tests for the utcnow() helper function."""

    def test_returns_utc_timezone(self) -> None:
        """utcnow() returns a datetime in UTC timezone specifically."""
        result = utcnow()
        assert isinstance(result, datetime)
        assert result.tzinfo == timezone.utc

    def test_returns_current_time(self) -> None:
        """utcnow() returns approximately the current UTC time."""
        before = datetime.now(timezone.utc)
        result = utcnow()
        after = datetime.now(timezone.utc)
        assert before <= result <= after

    def test_cannot_subtract_naive_from_utcnow(self) -> None:
        """Subtracting a naive datetime from utcnow() raises TypeError."""
        naive = datetime(2026, 1, 1, 0, 0, 0)
        with pytest.raises(TypeError, match="can't subtract offset-naive and offset-aware"):
            _ = utcnow() - naive


class TestTimestampColumns:
    """Tests for timestamp column definitions."""

    def test_timestamp_is_timezone_aware(self) -> None:
        """TIMESTAMP column type has timezone=True (TIMESTAMPTZ)."""
        assert TIMESTAMP.timezone is True

    def test_all_timestamp_columns_are_timestamptz(self) -> None:
        """Every TIMESTAMP column across all models uses timezone=True."""
        errors: list[str] = []
        for table_name, table in Base.metadata.tables.items():
            for col in table.columns:
                if isinstance(col.type, PG_TIMESTAMP) and not col.type.timezone:
                    errors.append(f"{table_name}.{col.name}")

        assert not errors, f"Naive TIMESTAMP columns: {errors}"

    @pytest.mark.parametrize(
        "model",
        [DriveFile, DriveUser, SystemSetting],
        ids=["DriveFile", "DriveUser", "SystemSetting"],
    )
    def test_creation_date_default_is_utcnow(self, model: type) -> None:
        """Model.creation_date default is the utcnow function."""
        col = model.__table__.columns["creation_date"]
        assert col.default is not None
        assert col.default.arg.__name__ == "utcnow"

    @pytest.mark.parametrize("model", [DriveFile, DriveUser, SystemSetting])
    def test_last_update_is_nullable(self, model: type) -> None:
        """last_update stays NULL until the row is first updated."""
        col = model.__table__.columns["last_update"]
        assert col.nullable is True
        assert col.default is None


class TestDriveFileModel:
    """Tests for the DriveFile table layout."""

    def test_table_name(self) -> None:
        """Files live in drive_files."""
        assert DriveFile.__tablename__ == "drive_files"

    def test_metadata_column_name(self) -> None:
        """file_metadata is stored in the metadata column."""
        columns = DriveFile.__table__.columns
        assert "metadata" in columns
        assert "file_metadata" not in columns

    def test_degraded_rows_allowed(self) -> None:
        """Name and MIME type are nullable for error rows."""
        columns = DriveFile.__table__.columns
        assert columns["name"].nullable is True
        assert columns["mime_type"].nullable is True

    def test_owner_foreign_key(self) -> None:
        """owner_user_id references drive_users.id."""
        fk = next(iter(DriveFile.__table__.columns["owner_user_id"].foreign_keys))
        assert fk.target_fullname == "drive_users.id"

    def test_sync_status_values(self) -> None:
        """Sync status is success or error."""
        assert {s.value for s in SyncStatus} == {"success", "error"}


class TestDriveUserModel:
    """Tests for the DriveUser table layout."""

    def test_permission_id_unique(self) -> None:
        """Users are unique by permission id."""
        assert DriveUser.__table__.columns["permission_id"].unique is True
