"""
Durable storage for Google client settings and OAuth tokens.

Pure persistence over the system settings table: no network calls and no
state machine. Token merges never drop a refresh token that was already
known.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from drivesync_lib.db.crud import system_setting_crud

logger = logging.getLogger("drivesync-syncer.credential_store")

PROVIDER_SETTINGS_KEY = "google"
TOKENS_KEY = "google_tokens"
OPENAI_SETTINGS_KEY = "openai"

DEFAULT_REDIRECT_URI = "http://localhost:3000/auth/google/callback"

SessionFactory = Callable[[], Any]


@dataclass(frozen=True)
class ProviderSettings:
    """OAuth client configuration stored under the "google" key."""

    client_id: str
    client_secret: str
    redirect_uri: str = DEFAULT_REDIRECT_URI

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ProviderSettings | None":
        """Build settings from the stored value; None if incomplete."""
        if not data:
            return None
        client_id = data.get("clientId") or data.get("client_id")
        client_secret = data.get("clientSecret") or data.get("client_secret")
        if not client_id or not client_secret:
            return None
        redirect_uri = (
            data.get("redirectUri") or data.get("redirect_uri") or DEFAULT_REDIRECT_URI
        )
        return cls(
            client_id=client_id,
            client_secret=client_secret,
            redirect_uri=redirect_uri,
        )


@dataclass(frozen=True)
class TokenRecord:
    """OAuth token record stored under the "google_tokens" key."""

    access_token: str | None = None
    refresh_token: str | None = None
    expiry_date: datetime | None = None
    token_type: str | None = None
    scope: str | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        """
        Check whether the access token has expired.

        A record without an expiry is treated as still valid.

        Args:
            now: Reference time, defaults to the current UTC time.

        Returns:
            True if now >= expiry_date.
        """
        if self.expiry_date is None:
            return False
        now = now or datetime.now(timezone.utc)
        return now >= self.expiry_date

    def merge(self, delta: "TokenRecord | dict[str, Any]") -> "TokenRecord":
        """
        Overlay a token delta on this record.

        Empty values in the delta never replace known ones.

        Args:
            delta: Token response or record to apply.

        Returns:
            New merged record.
        """
        incoming = delta if isinstance(delta, TokenRecord) else TokenRecord.from_dict(delta)
        return TokenRecord(
            access_token=incoming.access_token or self.access_token,
            refresh_token=incoming.refresh_token or self.refresh_token,
            expiry_date=incoming.expiry_date or self.expiry_date,
            token_type=incoming.token_type or self.token_type,
            scope=incoming.scope or self.scope,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize with expiry_date as epoch milliseconds."""
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expiry_date": (
                int(self.expiry_date.timestamp() * 1000) if self.expiry_date else None
            ),
            "token_type": self.token_type,
            "scope": self.scope,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TokenRecord":
        """Parse a stored record or raw token response."""
        return cls(
            access_token=data.get("access_token") or None,
            refresh_token=data.get("refresh_token") or None,
            expiry_date=parse_expiry(data.get("expiry_date")),
            token_type=data.get("token_type") or None,
            scope=data.get("scope") or None,
        )


def parse_expiry(value: Any) -> datetime | None:
    """
    Parse a token expiry in any of the stored shapes.

    Args:
        value: Epoch milliseconds, ISO-8601 string, datetime, or None.

    Returns:
        Timezone-aware UTC datetime, or None if absent or unparseable.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if isinstance(value, str):
        if value.isdigit():
            return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            logger.warning(f"⚠️ Ignoring unparseable token expiry: {value!r}")
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


class CredentialStore:
    """
    Key/value persistence for provider credentials.

    Usage:
        store = CredentialStore(db.session_factory)
        settings = await store.get_provider_settings()
        tokens = await store.load_tokens()
    """

    def __init__(self, session_factory: SessionFactory):
        """
        Initialize credential store.

        Args:
            session_factory: Callable returning an AsyncSession context manager.
        """
        self._session_factory = session_factory

    async def _get(self, key: str) -> Any | None:
        async with self._session_factory() as session:
            return await system_setting_crud.get_value(session, key)

    async def _put(self, key: str, value: Any | None) -> None:
        async with self._session_factory() as session:
            await system_setting_crud.update(session, key, value)
            await session.commit()

    async def get_provider_settings(self) -> ProviderSettings | None:
        """
        Load the Google OAuth client configuration.

        Returns:
            ProviderSettings, or None if not configured yet.
        """
        return ProviderSettings.from_dict(await self._get(PROVIDER_SETTINGS_KEY))

    async def load_tokens(self) -> TokenRecord | None:
        """
        Load the persisted token record.

        Returns:
            TokenRecord, or None if no tokens are stored.
        """
        value = await self._get(TOKENS_KEY)
        if not value:
            return None
        return TokenRecord.from_dict(value)

    async def save_tokens(self, tokens: TokenRecord) -> None:
        """
        Persist a token record as-is.

        Args:
            tokens: Record to store.
        """
        await self._put(TOKENS_KEY, tokens.to_dict())

    async def merge_tokens(self, delta: TokenRecord | dict[str, Any]) -> TokenRecord:
        """
        Merge a token delta into the stored record and persist the result.

        Args:
            delta: Token response or record to apply.

        Returns:
            The merged record that was stored.
        """
        current = await self.load_tokens() or TokenRecord()
        merged = current.merge(delta)
        await self.save_tokens(merged)
        return merged

    async def clear_tokens(self) -> None:
        """Invalidate stored tokens after an irrecoverable auth failure."""
        await self._put(TOKENS_KEY, None)
        logger.warning("🗑️ Stored Google tokens invalidated")

    async def get_openai_keys(self) -> dict[str, Any]:
        """
        Load the completion API key map consumed by other components.

        Returns:
            Key map, empty if not configured.
        """
        value = await self._get(OPENAI_SETTINGS_KEY)
        return value if isinstance(value, dict) else {}
