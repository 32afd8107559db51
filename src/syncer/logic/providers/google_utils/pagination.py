"""Cursor-following pagination over Google list endpoints."""

from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any


@dataclass
class FileListPage:
    """One page of a Drive listing."""

    files: list[dict[str, Any]] = field(default_factory=list)
    next_cursor: str | None = None

    @property
    def has_more(self) -> bool:
        """True iff the provider returned a non-empty next page token."""
        return bool(self.next_cursor)


PageFetcher = Callable[[str | None], Awaitable[FileListPage]]


async def google_paginate(
    fetch_page: PageFetcher,
    start_cursor: str | None = None,
    max_pages: int | None = None,
) -> AsyncIterator[FileListPage]:
    """Follow page tokens until the provider reports no more pages.

    The number of pages is not known up front; the loop ends on the first
    page whose next cursor is empty.

    Args:
        fetch_page: Coroutine function taking the cursor to request.
        start_cursor: Cursor to resume from, None for the first page.
        max_pages: Maximum number of pages to fetch. None for unlimited.

    Yields:
        Each FileListPage in provider order.

    Raises:
        ProviderError: Propagated from fetch_page.
    """
    cursor = start_cursor
    page_count = 0

    while True:
        if max_pages is not None and page_count >= max_pages:
            return

        page = await fetch_page(cursor)
        page_count += 1
        yield page

        if not page.has_more:
            return
        cursor = page.next_cursor
