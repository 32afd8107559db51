"""ORM models for DriveSync."""

from drivesync_lib.db.models.base import Base, utcnow
from drivesync_lib.db.models.drive_file import DriveFile, SyncStatus
from drivesync_lib.db.models.drive_user import DriveUser
from drivesync_lib.db.models.system_setting import SystemSetting

__all__ = [
    "Base",
    "DriveFile",
    "DriveUser",
    "SyncStatus",
    "SystemSetting",
    "utcnow",
]
