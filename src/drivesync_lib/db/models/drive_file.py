"""DriveFile ORM model: the canonical record of a synced Drive file."""

from enum import Enum
from typing import Any

from drivesync_lib.db.models.base import (
    JSONB,
    TIMESTAMP,
    TYPE_CHECKING,
    AuditMixin,
    Base,
    Boolean,
    ForeignKey,
    Integer,
    JSONObject,
    Mapped,
    String,
    Text,
    datetime,
    mapped_column,
    relationship,
)

if TYPE_CHECKING:
    from drivesync_lib.db.models.drive_user import DriveUser


class SyncStatus(str, Enum):
    """Outcome of the last sync attempt for a file."""

    SUCCESS = "success"
    ERROR = "error"


class DriveFile(AuditMixin, Base):
    """Sanitized Drive file metadata.

    Rows with sync_status="error" are degraded records: only id, metadata,
    last_sync_attempt and error_log are guaranteed to be set.
    """

    __tablename__ = "drive_files"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    name: Mapped[str | None] = mapped_column(Text)
    mime_type: Mapped[str | None] = mapped_column(Text)
    icon_link: Mapped[str | None] = mapped_column(Text)
    web_view_link: Mapped[str | None] = mapped_column(Text)
    size: Mapped[str | None] = mapped_column(Text)
    shared: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    trashed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_time: Mapped[datetime | None] = mapped_column(TIMESTAMP)
    modified_time: Mapped[datetime | None] = mapped_column(TIMESTAMP)
    version: Mapped[str | None] = mapped_column(Text)
    owner_user_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("drive_users.id", ondelete="SET NULL")
    )
    last_modifying_user: Mapped[JSONObject | None] = mapped_column(JSONB)
    permissions: Mapped[list[Any]] = mapped_column(JSONB, nullable=False, default=list)
    capabilities: Mapped[JSONObject | None] = mapped_column(JSONB)
    # "metadata" is reserved on declarative classes
    file_metadata: Mapped[JSONObject | None] = mapped_column("metadata", JSONB)
    sync_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SyncStatus.SUCCESS.value
    )
    last_sync_attempt: Mapped[datetime | None] = mapped_column(TIMESTAMP)
    error_log: Mapped[JSONObject | None] = mapped_column(JSONB)

    owner_user: Mapped["DriveUser | None"] = relationship(back_populates="files")
