"""
Google Drive provider for listing and reading file metadata.

Supports:
- OAuth2 bearer authentication through a GoogleOAuthClient handle
- Filtered listing by modification watermark and free-text query
- Cursor pagination, newest modification first
- Single-file metadata and plain-text export
"""

import logging
from collections.abc import AsyncIterator
from datetime import datetime, timezone
from typing import Any

import httpx

from syncer.logic.exceptions import ProviderAuthorizationError
from syncer.logic.providers.google_utils import (
    FileListPage,
    GoogleOAuthClient,
    google_paginate,
    request_with_rate_limit,
)

logger = logging.getLogger("drivesync-syncer.google_drive")

DRIVE_API = "https://www.googleapis.com/drive/v3"

# Every RawFileRecord attribute the batch processor understands
FILE_FIELDS = (
    "id, name, mimeType, size, createdTime, modifiedTime, owners, "
    "lastModifyingUser, permissions, capabilities, shared, trashed, "
    "iconLink, webViewLink, version"
)
LIST_FIELDS = f"nextPageToken, files({FILE_FIELDS})"

DEFAULT_PAGE_SIZE = 1000


class GoogleDriveClient:
    """
    Thin adapter over the Drive v3 files endpoints.

    Callers must only list once an authenticated handle has been set;
    readiness is the caller's concern.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        auth: GoogleOAuthClient | None = None,
    ) -> None:
        """
        Initialize Drive client.

        Args:
            http_client: Shared httpx client.
            auth: Authenticated OAuth handle, may be set later.
        """
        self._client = http_client
        self._auth = auth

    @property
    def provider_name(self) -> str:
        """Return provider name."""
        return "google_drive"

    def set_auth(self, auth: GoogleOAuthClient | None) -> None:
        """
        Swap the OAuth handle used for requests.

        Args:
            auth: Authenticated handle, or None to detach.
        """
        self._auth = auth

    def _headers(self) -> dict[str, str]:
        if self._auth is None or not self._auth.access_token:
            raise ProviderAuthorizationError("No authenticated Google session")
        return self._auth.auth_headers()

    @staticmethod
    def build_query(
        modified_since: datetime | None = None,
        query: str | None = None,
    ) -> str | None:
        """
        Compose the Drive filter expression.

        Args:
            modified_since: Only list files modified strictly after this time.
            query: Free-text Drive query clause.

        Returns:
            Conjunction of the present clauses, or None if neither is given.
        """
        clauses: list[str] = []
        if modified_since is not None:
            if modified_since.tzinfo is None:
                modified_since = modified_since.replace(tzinfo=timezone.utc)
            iso = (
                modified_since.astimezone(timezone.utc)
                .isoformat(timespec="milliseconds")
                .replace("+00:00", "Z")
            )
            clauses.append(f"modifiedTime > '{iso}'")
        if query:
            clauses.append(query)
        return " and ".join(clauses) or None

    async def list_files(
        self,
        page_size: int = DEFAULT_PAGE_SIZE,
        page_cursor: str | None = None,
        modified_since: datetime | None = None,
        query: str | None = None,
    ) -> FileListPage:
        """
        Fetch one page of files, newest modification first.

        Args:
            page_size: Maximum files per page.
            page_cursor: Page token from a previous call.
            modified_since: Lower bound (exclusive) on modifiedTime.
            query: Extra Drive query clause.

        Returns:
            FileListPage with files and the next cursor.

        Raises:
            ProviderAuthorizationError: If no session is set or the token is rejected.
            ProviderError: On any other API failure.
        """
        params: dict[str, Any] = {
            "pageSize": page_size,
            "fields": LIST_FIELDS,
            "orderBy": "modifiedTime desc",
        }
        if page_cursor:
            params["pageToken"] = page_cursor
        q = self.build_query(modified_since, query)
        if q:
            params["q"] = q

        response = await request_with_rate_limit(
            self._client,
            f"{DRIVE_API}/files",
            headers=self._headers(),
            params=params,
        )
        data = response.json()
        page = FileListPage(
            files=list(data.get("files", [])),
            next_cursor=data.get("nextPageToken") or None,
        )
        logger.debug(
            f"📄 Listed {len(page.files)} files (more: {page.has_more})"
        )
        return page

    def iterate_pages(
        self,
        page_size: int = DEFAULT_PAGE_SIZE,
        modified_since: datetime | None = None,
        query: str | None = None,
        start_cursor: str | None = None,
    ) -> AsyncIterator[FileListPage]:
        """
        Iterate over every page of a listing.

        Args:
            page_size: Maximum files per page.
            modified_since: Lower bound (exclusive) on modifiedTime.
            query: Extra Drive query clause.
            start_cursor: Resume from this page token.

        Returns:
            Async iterator of FileListPage.
        """

        async def fetch(cursor: str | None) -> FileListPage:
            return await self.list_files(
                page_size=page_size,
                page_cursor=cursor,
                modified_since=modified_since,
                query=query,
            )

        return google_paginate(fetch, start_cursor=start_cursor)

    async def get_file(self, file_id: str) -> dict[str, Any]:
        """
        Fetch metadata for a single file.

        Args:
            file_id: Drive file id.

        Returns:
            Raw file resource.

        Raises:
            ProviderError: Propagated unchanged from the API call.
        """
        response = await request_with_rate_limit(
            self._client,
            f"{DRIVE_API}/files/{file_id}",
            headers=self._headers(),
            params={"fields": FILE_FIELDS},
        )
        return response.json()

    async def get_file_content(
        self,
        file_id: str,
        mime_type: str = "text/plain",
    ) -> str:
        """
        Export a Google Workspace document.

        Args:
            file_id: Drive file id.
            mime_type: Target export MIME type.

        Returns:
            Exported content as text.

        Raises:
            ProviderError: Propagated unchanged from the API call.
        """
        response = await request_with_rate_limit(
            self._client,
            f"{DRIVE_API}/files/{file_id}/export",
            headers=self._headers(),
            params={"mimeType": mime_type},
        )
        return response.text

    async def check_connection(self) -> bool:
        """
        Verify the Drive API accepts the current token.

        Returns:
            True if a one-file listing succeeds, False otherwise.
        """
        if self._auth is None or not self._auth.access_token:
            return False

        try:
            await self.list_files(page_size=1)
            return True
        except Exception as e:
            logger.debug(f"🔌 Google Drive connection check failed: {e}")
            return False
