"""Persisted sync checkpoint stored under the "google_sync_state" setting."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any

from drivesync_lib.db.crud import system_setting_crud

from syncer.logic.validation import parse_timestamp

logger = logging.getLogger("drivesync-syncer.sync_state")

SYNC_STATE_KEY = "google_sync_state"

SessionFactory = Callable[[], Any]


@dataclass(frozen=True)
class SyncState:
    """
    Sweep checkpoint.

    Attributes:
        watermark: modifiedTime bound of the last completed sweep.
        cursor: Page token of the first unprocessed page of an
            interrupted sweep, None when no sweep is in progress.
        pending_watermark: Highest modifiedTime seen by the sweep in
            progress; promoted to watermark when the sweep completes.
    """

    watermark: datetime | None = None
    cursor: str | None = None
    pending_watermark: datetime | None = None

    @property
    def in_progress(self) -> bool:
        """True if an interrupted sweep can be resumed."""
        return self.cursor is not None

    def advance(self, cursor: str | None, high_water: datetime | None) -> "SyncState":
        """
        Record a completed page.

        Args:
            cursor: Token of the next page.
            high_water: Highest modifiedTime on the completed page.

        Returns:
            Updated state.
        """
        pending = self.pending_watermark
        if high_water is not None and (pending is None or high_water > pending):
            pending = high_water
        return replace(self, cursor=cursor, pending_watermark=pending)

    def commit(self) -> "SyncState":
        """Promote the pending watermark at the end of a sweep."""
        watermark = self.watermark
        if self.pending_watermark is not None and (
            watermark is None or self.pending_watermark > watermark
        ):
            watermark = self.pending_watermark
        return SyncState(watermark=watermark)

    def reset_cursor(self) -> "SyncState":
        """Forget an interrupted sweep, keeping the committed watermark."""
        return SyncState(watermark=self.watermark)

    def to_dict(self) -> dict[str, Any]:
        return {
            "watermark": self.watermark.isoformat() if self.watermark else None,
            "cursor": self.cursor,
            "pending_watermark": (
                self.pending_watermark.isoformat() if self.pending_watermark else None
            ),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "SyncState":
        if not data:
            return cls()
        try:
            return cls(
                watermark=parse_timestamp(data.get("watermark")),
                cursor=data.get("cursor") or None,
                pending_watermark=parse_timestamp(data.get("pending_watermark")),
            )
        except ValueError as e:
            logger.warning(f"⚠️ Discarding unreadable sync checkpoint: {e}")
            return cls()


class SyncStateStore:
    """Load and save the sync checkpoint."""

    def __init__(self, session_factory: SessionFactory):
        self._session_factory = session_factory

    async def load(self) -> SyncState:
        """
        Load the checkpoint.

        Returns:
            Stored state, or an empty state if none was saved.
        """
        async with self._session_factory() as session:
            value = await system_setting_crud.get_value(session, SYNC_STATE_KEY)
        return SyncState.from_dict(value)

    async def save(self, state: SyncState) -> None:
        """
        Persist the checkpoint.

        Args:
            state: State to store.
        """
        async with self._session_factory() as session:
            await system_setting_crud.update(session, SYNC_STATE_KEY, state.to_dict())
            await session.commit()
