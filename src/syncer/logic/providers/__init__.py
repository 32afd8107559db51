"""External storage providers for the Syncer Service."""

from syncer.logic.providers.google_drive import GoogleDriveClient

__all__ = [
    "GoogleDriveClient",
]
