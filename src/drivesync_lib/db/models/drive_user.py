"""DriveUser ORM model for Google Drive file owners."""

from drivesync_lib.db.models.base import (
    TIMESTAMP,
    TYPE_CHECKING,
    AuditMixin,
    Base,
    BigInteger,
    Integer,
    Mapped,
    Text,
    datetime,
    mapped_column,
    relationship,
)

if TYPE_CHECKING:
    from drivesync_lib.db.models.drive_file import DriveFile


class DriveUser(AuditMixin, Base):
    """A Drive account seen as the owner of at least one synced file.

    Keyed by the provider's stable permission id. Created on first sight,
    updated in place when the profile changes, never deleted by sync.
    """

    __tablename__ = "drive_users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    permission_id: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    email: Mapped[str] = mapped_column(Text, nullable=False)
    display_name: Mapped[str | None] = mapped_column(Text)
    photo_link: Mapped[str | None] = mapped_column(Text)
    file_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_size: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    last_synced_at: Mapped[datetime | None] = mapped_column(TIMESTAMP)

    files: Mapped[list["DriveFile"]] = relationship(back_populates="owner_user")
