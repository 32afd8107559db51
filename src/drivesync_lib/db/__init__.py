"""Database access for DriveSync services."""

from drivesync_lib.db.connection import Base, DatabaseManager, close_db, init_db

__all__ = [
    "Base",
    "DatabaseManager",
    "close_db",
    "init_db",
]
