"""
Shared column types and mixins for the DriveSync ORM models.

Model modules import their SQLAlchemy names from here so they never
import each other at runtime. Timestamps are always TIMESTAMPTZ.
"""

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from sqlalchemy import BigInteger, Boolean, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import TIMESTAMP as _PG_TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column, relationship

from drivesync_lib.db.connection import Base

TIMESTAMP = _PG_TIMESTAMP(timezone=True)

# Arbitrary JSON object as stored in a JSONB column
JSONObject = dict[str, Any]


def utcnow() -> datetime:
    """Return current UTC time as timezone-aware datetime.

    Returns:
        Timezone-aware UTC datetime.
    """
    return datetime.now(timezone.utc)


class AuditMixin:
    """Row bookkeeping columns present on every DriveSync table.

    creation_date is set on insert. last_update is written explicitly by
    the upserts, which bypass ORM onupdate hooks.
    """

    creation_date: Mapped[datetime] = mapped_column(
        TIMESTAMP, nullable=False, default=utcnow
    )
    last_update: Mapped[datetime | None] = mapped_column(TIMESTAMP, onupdate=utcnow)


__all__ = [
    "AuditMixin",
    "Base",
    "BigInteger",
    "Boolean",
    "ForeignKey",
    "Integer",
    "JSONB",
    "JSONObject",
    "Mapped",
    "String",
    "TIMESTAMP",
    "TYPE_CHECKING",
    "Text",
    "datetime",
    "mapped_column",
    "relationship",
    "utcnow",
]
