"""Google OAuth2 client used as the opaque authentication handle."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import urlencode

import httpx

from drivesync_lib.google import scopes_for_service
from syncer.logic.credential_store import ProviderSettings, TokenRecord
from syncer.logic.exceptions import AuthenticationFailedError, ProviderError

logger = logging.getLogger("drivesync-syncer.google_auth")

AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"


class GoogleOAuthClient:
    """Google OAuth2 authorization-code client for one set of app credentials.

    Holds the current token record and produces request headers for the
    Drive API. Token endpoint rejections raise AuthenticationFailedError;
    transport failures raise ProviderError so callers can tell a revoked
    grant from a network blip.
    """

    def __init__(
        self,
        settings: ProviderSettings,
        http_client: httpx.AsyncClient,
        scopes: list[str] | None = None,
    ) -> None:
        """Initialize OAuth client.

        Args:
            settings: Client id, secret and redirect URI.
            http_client: httpx client for token endpoint requests.
            scopes: OAuth scopes to request, defaults to the Drive scopes.
        """
        self._settings = settings
        self._client = http_client
        self._scopes = scopes or scopes_for_service("drive")
        self._credentials: TokenRecord | None = None

    @property
    def settings(self) -> ProviderSettings:
        """Client configuration."""
        return self._settings

    @property
    def credentials(self) -> TokenRecord | None:
        """Token record currently applied to requests."""
        return self._credentials

    @property
    def access_token(self) -> str | None:
        """Current access token."""
        return self._credentials.access_token if self._credentials else None

    def set_credentials(self, tokens: TokenRecord) -> None:
        """Apply a token record to subsequent requests.

        Args:
            tokens: Token record to use.
        """
        self._credentials = tokens

    def generate_auth_url(self, state: str | None = None) -> str:
        """Build the consent URL for the authorization-code flow.

        Offline access with forced consent makes Google return a refresh token.

        Args:
            state: Optional CSRF state token.

        Returns:
            Authorization URL.
        """
        params = {
            "client_id": self._settings.client_id,
            "redirect_uri": self._settings.redirect_uri,
            "response_type": "code",
            "scope": " ".join(self._scopes),
            "access_type": "offline",
            "prompt": "consent",
        }
        if state:
            params["state"] = state
        return f"{AUTH_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> dict[str, Any]:
        """Exchange an authorization code for tokens.

        Args:
            code: Authorization code from the consent redirect.

        Returns:
            Raw token delta with expiry_date in epoch milliseconds.

        Raises:
            AuthenticationFailedError: If Google rejects the code.
            ProviderError: If the token endpoint is unreachable.
        """
        return await self._token_request(
            {
                "client_id": self._settings.client_id,
                "client_secret": self._settings.client_secret,
                "code": code,
                "grant_type": "authorization_code",
                "redirect_uri": self._settings.redirect_uri,
            }
        )

    async def refresh_access_token(self, refresh_token: str) -> dict[str, Any]:
        """Obtain a new access token from a refresh token.

        Args:
            refresh_token: Long-lived refresh token.

        Returns:
            Raw token delta; refresh_token is usually absent.

        Raises:
            AuthenticationFailedError: If Google rejects the refresh token.
            ProviderError: If the token endpoint is unreachable.
        """
        delta = await self._token_request(
            {
                "client_id": self._settings.client_id,
                "client_secret": self._settings.client_secret,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            }
        )
        logger.info("🔄 Refreshed Google access token")
        return delta

    async def _token_request(self, data: dict[str, str]) -> dict[str, Any]:
        """POST to the token endpoint and normalize the response.

        Args:
            data: Form fields.

        Returns:
            Token delta with expiry_date computed from expires_in.
        """
        try:
            response = await self._client.post(TOKEN_URL, data=data)
        except httpx.HTTPError as e:
            raise ProviderError(f"Token endpoint unreachable: {e}") from e

        if response.status_code != 200:
            raise AuthenticationFailedError(
                f"Token request rejected: {response.text}",
                status_code=response.status_code,
            )

        payload = response.json()
        delta = dict(payload)
        expires_in = payload.get("expires_in")
        if expires_in is not None:
            expiry = datetime.now(timezone.utc) + timedelta(seconds=int(expires_in))
            delta["expiry_date"] = int(expiry.timestamp() * 1000)
        return delta

    def auth_headers(self) -> dict[str, str]:
        """Return Authorization: Bearer header dict.

        Returns:
            Dict with Authorization header.

        Raises:
            AuthenticationFailedError: If no access token is set.
        """
        if not self.access_token:
            raise AuthenticationFailedError("Not authenticated")
        return {"Authorization": f"Bearer {self.access_token}"}
