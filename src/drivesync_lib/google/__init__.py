"""Google Workspace utilities shared across services."""

from drivesync_lib.google.scopes import GOOGLE_SCOPES, scopes_for_service

__all__ = [
    "GOOGLE_SCOPES",
    "scopes_for_service",
]
