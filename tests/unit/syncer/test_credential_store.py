"""Unit tests for the credential store and token records."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from syncer.logic.credential_store import (
    DEFAULT_REDIRECT_URI,
    TOKENS_KEY,
    CredentialStore,
    ProviderSettings,
    TokenRecord,
    parse_expiry,
)


class TestProviderSettings:
    """Tests for ProviderSettings.from_dict."""

    def test_camel_case_keys(self) -> None:
        """Test settings stored with camelCase keys."""
        settings = ProviderSettings.from_dict(
            {"clientId": "id", "clientSecret": "secret", "redirectUri": "https://x/cb"}
        )
        assert settings == ProviderSettings("id", "secret", "https://x/cb")

    def test_snake_case_keys_and_default_redirect(self) -> None:
        """Test snake_case keys with the redirect URI omitted."""
        settings = ProviderSettings.from_dict({"client_id": "id", "client_secret": "s"})
        assert settings is not None
        assert settings.redirect_uri == DEFAULT_REDIRECT_URI

    @pytest.mark.parametrize("data", [None, {}, {"clientId": "id"}])
    def test_incomplete_returns_none(self, data: dict | None) -> None:
        """Test that incomplete settings are treated as not configured."""
        assert ProviderSettings.from_dict(data) is None


class TestParseExpiry:
    """Tests for parse_expiry()."""

    def test_epoch_milliseconds(self) -> None:
        """Test integer epoch milliseconds."""
        assert parse_expiry(1_700_000_000_000) == datetime(
            2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc
        )

    def test_digit_string(self) -> None:
        """Test epoch milliseconds stored as a string."""
        assert parse_expiry("1700000000000") == parse_expiry(1_700_000_000_000)

    def test_iso_string(self) -> None:
        """Test ISO-8601 with a Z suffix."""
        assert parse_expiry("2024-01-01T00:00:00Z") == datetime(
            2024, 1, 1, tzinfo=timezone.utc
        )

    def test_naive_datetime_assumed_utc(self) -> None:
        """Test that naive datetimes are treated as UTC."""
        assert parse_expiry(datetime(2024, 1, 1)).tzinfo == timezone.utc

    @pytest.mark.parametrize("value", [None, "", "not a date"])
    def test_empty_or_invalid(self, value: object) -> None:
        """Test that missing or unreadable expiries parse to None."""
        assert parse_expiry(value) is None


class TestTokenRecord:
    """Tests for TokenRecord."""

    def test_no_expiry_is_not_expired(self) -> None:
        """A record without expiry is treated as valid."""
        assert TokenRecord(access_token="a").is_expired() is False

    def test_expiry_boundary_is_expired(self) -> None:
        """now == expiry counts as expired."""
        expiry = datetime(2024, 1, 1, tzinfo=timezone.utc)
        record = TokenRecord(access_token="a", expiry_date=expiry)
        assert record.is_expired(now=expiry) is True
        assert record.is_expired(now=expiry - timedelta(milliseconds=1)) is False

    def test_merge_preserves_refresh_token(self) -> None:
        """A refresh response without refresh_token keeps the stored one."""
        current = TokenRecord(access_token="old", refresh_token="refresh", scope="s")
        merged = current.merge({"access_token": "new", "expiry_date": 1_700_000_000_000})

        assert merged.access_token == "new"
        assert merged.refresh_token == "refresh"
        assert merged.scope == "s"
        assert merged.expiry_date == parse_expiry(1_700_000_000_000)

    def test_merge_empty_values_do_not_override(self) -> None:
        """Empty strings in the delta never replace known values."""
        current = TokenRecord(access_token="a", refresh_token="r")
        merged = current.merge({"access_token": "", "refresh_token": None})
        assert merged == current

    def test_dict_round_trip(self) -> None:
        """to_dict stores expiry as epoch milliseconds."""
        record = TokenRecord(
            access_token="a",
            refresh_token="r",
            expiry_date=datetime(2024, 1, 1, tzinfo=timezone.utc),
            token_type="Bearer",
        )
        data = record.to_dict()
        assert data["expiry_date"] == 1_704_067_200_000
        assert TokenRecord.from_dict(data) == record


class TestCredentialStore:
    """Tests for CredentialStore persistence."""

    @pytest.fixture
    def store(self, session_factory: MagicMock) -> CredentialStore:
        """Create a store over the mock session factory."""
        return CredentialStore(session_factory)

    @pytest.mark.asyncio
    async def test_get_provider_settings(self, store: CredentialStore) -> None:
        """Test loading settings from the google key."""
        with patch(
            "syncer.logic.credential_store.system_setting_crud"
        ) as mock_crud:
            mock_crud.get_value = AsyncMock(
                return_value={"clientId": "id", "clientSecret": "secret"}
            )
            settings = await store.get_provider_settings()

        assert settings is not None
        assert settings.client_id == "id"
        assert mock_crud.get_value.call_args.args[1] == "google"

    @pytest.mark.asyncio
    async def test_load_tokens_missing(self, store: CredentialStore) -> None:
        """Test that no stored record yields None."""
        with patch(
            "syncer.logic.credential_store.system_setting_crud"
        ) as mock_crud:
            mock_crud.get_value = AsyncMock(return_value=None)
            assert await store.load_tokens() is None

    @pytest.mark.asyncio
    async def test_save_tokens_commits(
        self,
        store: CredentialStore,
        mock_session: MagicMock,
    ) -> None:
        """Test that saving writes the serialized record and commits."""
        record = TokenRecord(access_token="a", refresh_token="r")
        with patch(
            "syncer.logic.credential_store.system_setting_crud"
        ) as mock_crud:
            mock_crud.update = AsyncMock()
            await store.save_tokens(record)

        mock_crud.update.assert_awaited_once_with(
            mock_session, TOKENS_KEY, record.to_dict()
        )
        mock_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_merge_tokens_keeps_refresh_token(self, store: CredentialStore) -> None:
        """Test merge against the stored record."""
        with patch(
            "syncer.logic.credential_store.system_setting_crud"
        ) as mock_crud:
            mock_crud.get_value = AsyncMock(
                return_value={"access_token": "old", "refresh_token": "keep"}
            )
            mock_crud.update = AsyncMock()
            merged = await store.merge_tokens({"access_token": "new"})

        assert merged.access_token == "new"
        assert merged.refresh_token == "keep"
        stored = mock_crud.update.call_args.args[2]
        assert stored["refresh_token"] == "keep"

    @pytest.mark.asyncio
    async def test_clear_tokens_writes_null(
        self,
        store: CredentialStore,
        mock_session: MagicMock,
    ) -> None:
        """Test that invalidation stores a null token record."""
        with patch(
            "syncer.logic.credential_store.system_setting_crud"
        ) as mock_crud:
            mock_crud.update = AsyncMock()
            await store.clear_tokens()

        mock_crud.update.assert_awaited_once_with(mock_session, TOKENS_KEY, None)

    @pytest.mark.asyncio
    async def test_get_openai_keys_non_dict(self, store: CredentialStore) -> None:
        """Test that a malformed key map yields an empty dict."""
        with patch(
            "syncer.logic.credential_store.system_setting_crud"
        ) as mock_crud:
            mock_crud.get_value = AsyncMock(return_value="nope")
            assert await store.get_openai_keys() == {}
