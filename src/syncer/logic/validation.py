"""
Validation and sanitization of raw Drive file records.

validate_file_record returns a tagged result instead of raising, so the
batch processor decides how an invalid record is recorded.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from drivesync_lib.db.models import SyncStatus, utcnow

REQUIRED_FIELDS = ("id", "name", "mimeType")
OPTIONAL_FIELDS = ("iconLink", "webViewLink", "size", "version")
DATE_FIELDS = ("createdTime", "modifiedTime")
BOOLEAN_FIELDS = ("shared", "trashed")
URL_FIELDS = ("iconLink", "webViewLink")


@dataclass(frozen=True)
class Valid:
    """Record passed validation; sanitized holds column values."""

    sanitized: dict[str, Any]
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class Invalid:
    """Record failed validation."""

    errors: list[str]
    warnings: list[str] = field(default_factory=list)


ValidationResult = Valid | Invalid


def parse_timestamp(value: Any) -> datetime | None:
    """
    Parse an RFC 3339 timestamp as returned by Drive.

    Args:
        value: Timestamp string or datetime.

    Returns:
        Timezone-aware datetime, or None if value is empty.

    Raises:
        ValueError: If the value cannot be parsed.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        raise ValueError(f"unsupported timestamp type {type(value).__name__}")
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _type_name(value: Any) -> str:
    return type(value).__name__


def validate_file_record(raw: dict[str, Any]) -> ValidationResult:
    """
    Check a raw record against the file rules.

    Args:
        raw: Record as listed by the provider.

    Returns:
        Valid with the sanitized row, or Invalid with every error found.
    """
    errors: list[str] = []
    warnings: list[str] = []

    for name in REQUIRED_FIELDS:
        if not raw.get(name):
            errors.append(f"Missing required field: {name}")

    file_id = raw.get("id")
    if file_id and not isinstance(file_id, str):
        errors.append(f"Invalid id type: expected string, got {_type_name(file_id)}")

    size = raw.get("size")
    if size:
        try:
            numeric = float(size)
        except (TypeError, ValueError):
            numeric = math.nan
        if not math.isfinite(numeric):
            errors.append(f"Invalid size format: {size}")

    for name in DATE_FIELDS:
        if raw.get(name):
            try:
                parse_timestamp(raw[name])
            except ValueError:
                errors.append(f"Invalid {name} format: {raw[name]}")

    for name in BOOLEAN_FIELDS:
        if name in raw and not isinstance(raw[name], bool):
            errors.append(
                f"Invalid {name} type: expected boolean, got {_type_name(raw[name])}"
            )

    for name in URL_FIELDS:
        if raw.get(name) and not isinstance(raw[name], str):
            errors.append(
                f"Invalid {name} type: expected string URL, got {_type_name(raw[name])}"
            )

    for name in ("owner", "lastModifyingUser"):
        if raw.get(name) and not isinstance(raw[name], dict):
            errors.append(f"Invalid {name} format: expected object")

    owners = raw.get("owners")
    if owners and (
        not isinstance(owners, list) or not all(isinstance(o, dict) for o in owners)
    ):
        errors.append("Invalid owners format: expected array of objects")

    if raw.get("permissions") and not isinstance(raw["permissions"], list):
        errors.append("Invalid permissions format: expected array")

    for name in OPTIONAL_FIELDS:
        if not raw.get(name):
            warnings.append(f"Missing optional field: {name}")

    if errors:
        return Invalid(errors=errors, warnings=warnings)
    return Valid(sanitized=sanitize_file_record(raw), warnings=warnings)


def sanitize_file_record(raw: dict[str, Any]) -> dict[str, Any]:
    """
    Map a validated raw record to DriveFile column values.

    The raw record is kept verbatim in file_metadata.

    Args:
        raw: Record that passed validation.

    Returns:
        Values keyed by DriveFile attribute name.
    """
    permissions = raw.get("permissions")
    return {
        "id": str(raw["id"]),
        "name": str(raw["name"]),
        "mime_type": str(raw["mimeType"]),
        "icon_link": str(raw["iconLink"]) if raw.get("iconLink") else None,
        "web_view_link": str(raw["webViewLink"]) if raw.get("webViewLink") else None,
        "size": str(raw["size"]) if raw.get("size") else None,
        "shared": bool(raw.get("shared")),
        "trashed": bool(raw.get("trashed")),
        "created_time": parse_timestamp(raw.get("createdTime")),
        "modified_time": parse_timestamp(raw.get("modifiedTime")),
        "version": str(raw["version"]) if raw.get("version") else None,
        "last_modifying_user": raw.get("lastModifyingUser") or None,
        "permissions": permissions if isinstance(permissions, list) else [],
        "capabilities": raw.get("capabilities") or None,
        "file_metadata": raw,
        "sync_status": SyncStatus.SUCCESS.value,
        "last_sync_attempt": utcnow(),
        "error_log": None,
    }
