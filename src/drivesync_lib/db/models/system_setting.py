"""SystemSetting ORM model for key/value service configuration."""

from typing import Any

from drivesync_lib.db.models.base import JSONB, AuditMixin, Base, Mapped, Text, mapped_column


class SystemSetting(AuditMixin, Base):
    """Key/value settings shared with the rest of the application.

    Holds the Google client configuration ("google"), the persisted token
    record ("google_tokens"), the sync checkpoint ("google_sync_state") and
    third-party API keys ("openai").
    """

    __tablename__ = "system_settings"

    key: Mapped[str] = mapped_column(Text, primary_key=True)
    value: Mapped[Any | None] = mapped_column(JSONB)
