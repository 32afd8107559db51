"""Shared Google API utilities for the Drive provider."""

from syncer.logic.providers.google_utils.auth import GoogleOAuthClient
from syncer.logic.providers.google_utils.pagination import (
    FileListPage,
    google_paginate,
)
from syncer.logic.providers.google_utils.rate_limiter import (
    handle_rate_limit,
    request_with_rate_limit,
)

__all__ = [
    "FileListPage",
    "GoogleOAuthClient",
    "google_paginate",
    "handle_rate_limit",
    "request_with_rate_limit",
]
