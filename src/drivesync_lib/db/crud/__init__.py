"""CRUD modules for DriveSync tables."""

from drivesync_lib.db.crud.drive_file import drive_file_crud
from drivesync_lib.db.crud.drive_user import drive_user_crud
from drivesync_lib.db.crud.system_setting import system_setting_crud

__all__ = [
    "drive_file_crud",
    "drive_user_crud",
    "system_setting_crud",
]
