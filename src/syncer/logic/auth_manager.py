"""
Authentication lifecycle for the Google Drive connection.

Owns the OAuth handle, refreshes tokens, and drives an explicit state
machine:

    UNCONFIGURED -> AWAITING_CREDENTIALS -> AUTHENTICATED
    AUTHENTICATED -> TOKEN_EXPIRED -> REFRESHING -> AUTHENTICATED
                                               \\-> AUTHENTICATION_FAILED -> AWAITING_CREDENTIALS

Consumers subscribe to typed events instead of polling internal state.
Failures during background verification or refresh are turned into
transitions and events; only calls a user awaits directly raise.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import httpx

from syncer import metrics
from syncer.logic.credential_store import CredentialStore, ProviderSettings, TokenRecord
from syncer.logic.exceptions import (
    AuthenticationExpiredError,
    AuthenticationFailedError,
    ConfigurationMissingError,
    InvalidAuthTransitionError,
)
from syncer.logic.providers.google_utils import GoogleOAuthClient

logger = logging.getLogger("drivesync-syncer.auth")


class AuthState(str, Enum):
    """States of the authentication lifecycle."""

    UNCONFIGURED = "unconfigured"
    AWAITING_CREDENTIALS = "awaiting_credentials"
    AUTHENTICATED = "authenticated"
    TOKEN_EXPIRED = "token_expired"
    REFRESHING = "refreshing"
    AUTHENTICATION_FAILED = "authentication_failed"


_TRANSITIONS: dict[AuthState, frozenset[AuthState]] = {
    AuthState.UNCONFIGURED: frozenset(
        {
            AuthState.AWAITING_CREDENTIALS,
            AuthState.AUTHENTICATED,
            AuthState.TOKEN_EXPIRED,
            AuthState.AUTHENTICATION_FAILED,
        }
    ),
    AuthState.AWAITING_CREDENTIALS: frozenset(
        {
            AuthState.UNCONFIGURED,
            AuthState.AUTHENTICATED,
            AuthState.TOKEN_EXPIRED,
            AuthState.AUTHENTICATION_FAILED,
        }
    ),
    AuthState.AUTHENTICATED: frozenset(
        {
            AuthState.UNCONFIGURED,
            AuthState.AWAITING_CREDENTIALS,
            AuthState.TOKEN_EXPIRED,
            AuthState.AUTHENTICATION_FAILED,
        }
    ),
    AuthState.TOKEN_EXPIRED: frozenset(
        {AuthState.REFRESHING, AuthState.AUTHENTICATION_FAILED}
    ),
    AuthState.REFRESHING: frozenset(
        {AuthState.AUTHENTICATED, AuthState.AUTHENTICATION_FAILED}
    ),
    AuthState.AUTHENTICATION_FAILED: frozenset({AuthState.AWAITING_CREDENTIALS}),
}


class AuthStateMachine:
    """Current auth state plus the table of legal transitions."""

    def __init__(self, initial: AuthState = AuthState.UNCONFIGURED) -> None:
        self._state = initial

    @property
    def state(self) -> AuthState:
        """Current state."""
        return self._state

    def can_transition(self, target: AuthState) -> bool:
        """Return True if moving to target is legal (or a no-op)."""
        return target == self._state or target in _TRANSITIONS[self._state]

    def transition(self, target: AuthState) -> bool:
        """
        Move to a new state.

        Args:
            target: State to enter.

        Returns:
            True if the state changed, False for a self-transition.

        Raises:
            InvalidAuthTransitionError: If the transition is not allowed.
        """
        if target == self._state:
            return False
        if target not in _TRANSITIONS[self._state]:
            raise InvalidAuthTransitionError(self._state.value, target.value)
        self._state = target
        return True

    def reset(self) -> bool:
        """
        Return to UNCONFIGURED from any state.

        Returns:
            True if the state changed.
        """
        changed = self._state != AuthState.UNCONFIGURED
        self._state = AuthState.UNCONFIGURED
        return changed


@dataclass(frozen=True)
class AuthSession:
    """In-memory view of the current authentication."""

    is_authenticated: bool = False
    client: GoogleOAuthClient | None = None


class AuthEvent:
    """Base class for lifecycle events delivered to subscribers."""


@dataclass(frozen=True)
class Authenticated(AuthEvent):
    """A valid session is available."""

    session: AuthSession


@dataclass(frozen=True)
class AuthenticationRequired(AuthEvent):
    """The user must complete the consent flow again."""


@dataclass(frozen=True)
class AuthenticationFailed(AuthEvent):
    """Verification, refresh or code exchange failed."""

    error: BaseException | None = None


@dataclass(frozen=True)
class TokensUpdated(AuthEvent):
    """The provider returned new token material."""

    tokens: dict[str, Any] = field(default_factory=dict)


AuthEventHandler = Callable[[AuthEvent], Awaitable[None]]
ClientFactory = Callable[[ProviderSettings, httpx.AsyncClient], GoogleOAuthClient]


class AuthLifecycleManager:
    """
    Authentication state machine for the Drive connection.

    Usage:
        auth = AuthLifecycleManager(credential_store, http_client)
        auth.subscribe(on_auth_event)
        await auth.wait_for_configuration()
    """

    def __init__(
        self,
        credential_store: CredentialStore,
        http_client: httpx.AsyncClient,
        config_poll_seconds: float = 10.0,
        client_factory: ClientFactory = GoogleOAuthClient,
    ) -> None:
        """
        Initialize the auth manager.

        Args:
            credential_store: Persistence for settings and tokens.
            http_client: httpx client shared with the OAuth handle.
            config_poll_seconds: Delay between configuration checks.
            client_factory: Builds the OAuth handle from settings.
        """
        self._store = credential_store
        self._http_client = http_client
        self._poll_seconds = config_poll_seconds
        self._client_factory = client_factory

        self._machine = AuthStateMachine()
        self._client: GoogleOAuthClient | None = None
        self._session = AuthSession()
        self._handlers: list[AuthEventHandler] = []
        self._pending_events: list[AuthEvent] = []
        self._lock = asyncio.Lock()

        self._configured: asyncio.Future[bool] | None = None
        self._poll_task: asyncio.Task[None] | None = None

    @property
    def state(self) -> AuthState:
        """Current lifecycle state."""
        return self._machine.state

    @property
    def session(self) -> AuthSession:
        """Current auth session."""
        return self._session

    @property
    def is_authenticated(self) -> bool:
        """One-shot readiness check."""
        return self._session.is_authenticated

    @property
    def client(self) -> GoogleOAuthClient | None:
        """OAuth handle, None until configured."""
        return self._client

    def subscribe(self, handler: AuthEventHandler) -> Callable[[], None]:
        """
        Register an async handler for lifecycle events.

        Args:
            handler: Coroutine function receiving each AuthEvent.

        Returns:
            Callable that removes the handler.
        """
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    def _queue_event(self, event: AuthEvent) -> None:
        self._pending_events.append(event)

    async def _flush_events(self) -> None:
        """Deliver queued events outside the lock so handlers may call back in."""
        events, self._pending_events = self._pending_events, []
        for event in events:
            for handler in list(self._handlers):
                try:
                    await handler(event)
                except Exception:
                    logger.exception(
                        f"❌ Auth event handler failed for {type(event).__name__}"
                    )

    def _transition(self, target: AuthState) -> bool:
        previous = self._machine.state
        if not self._machine.transition(target):
            return False
        metrics.auth_transitions_total.labels(state=target.value).inc()
        logger.info(f"🔐 Auth state: {previous.value} → {target.value}")
        return True

    def _ensure_client(self, settings: ProviderSettings) -> GoogleOAuthClient:
        if self._client is None or self._client.settings != settings:
            self._client = self._client_factory(settings, self._http_client)
        return self._client

    def _require_client(self) -> GoogleOAuthClient:
        if self._client is None:
            raise ConfigurationMissingError()
        return self._client

    async def _load_client(self) -> GoogleOAuthClient:
        """Return the OAuth handle, building it from stored settings if needed."""
        if self._client is not None:
            return self._client
        settings = await self._store.get_provider_settings()
        if settings is None:
            raise ConfigurationMissingError()
        return self._ensure_client(settings)

    async def initialize(self) -> bool:
        """
        Load provider settings and verify stored authentication.

        Returns:
            False if settings are absent (state stays UNCONFIGURED),
            True once the OAuth handle is built and verification has run.
        """
        try:
            settings = await self._store.get_provider_settings()
        except Exception as e:
            logger.error(f"❌ Failed to load Google settings: {e}")
            return False

        if settings is None:
            logger.debug("⏳ Google settings not configured yet")
            return False

        self._ensure_client(settings)
        await self.verify_and_initialize_auth()
        self._mark_configured()
        return True

    async def verify_and_initialize_auth(self) -> bool:
        """
        Validate the persisted token, refreshing it once if expired.

        Returns:
            True if the session ended AUTHENTICATED.

        Raises:
            ConfigurationMissingError: If called before settings were loaded.
        """
        if self._client is None:
            raise ConfigurationMissingError()

        try:
            async with self._lock:
                return await self._verify_locked()
        finally:
            await self._flush_events()

    async def _verify_locked(self) -> bool:
        try:
            tokens = await self._store.load_tokens()
        except Exception as e:
            logger.error(f"❌ Failed to load stored tokens: {e}")
            self._queue_event(AuthenticationFailed(e))
            return False

        if tokens is None or not (tokens.access_token or tokens.refresh_token):
            self._session = AuthSession(False, self._client)
            if self._transition(AuthState.AWAITING_CREDENTIALS):
                logger.info("🔑 No stored Google credentials, authentication required")
                self._queue_event(AuthenticationRequired())
            return False

        if tokens.access_token and not tokens.is_expired():
            return self._activate(tokens)

        self._session = AuthSession(False, self._client)
        self._transition(AuthState.TOKEN_EXPIRED)
        return await self._refresh(tokens)

    async def _refresh(self, tokens: TokenRecord) -> bool:
        """Attempt exactly one refresh of an expired token record."""
        client = self._require_client()

        if not tokens.refresh_token:
            return await self._fail(
                AuthenticationExpiredError(
                    "Access token expired and no refresh token is stored"
                ),
                invalidate=True,
            )

        self._transition(AuthState.REFRESHING)
        try:
            delta = await client.refresh_access_token(tokens.refresh_token)
        except AuthenticationFailedError as e:
            logger.error(f"❌ Token refresh rejected: {e.message}")
            return await self._fail(e, invalidate=True)
        except Exception as e:
            logger.error(f"❌ Token refresh failed: {e}")
            return await self._fail(e, invalidate=False)

        merged = tokens.merge(delta)
        try:
            await self._store.save_tokens(merged)
        except Exception:
            logger.exception("❌ Failed to persist refreshed tokens")
        self._queue_event(TokensUpdated(delta))
        return self._activate(merged)

    def _activate(self, tokens: TokenRecord) -> bool:
        client = self._require_client()
        client.set_credentials(tokens)
        self._session = AuthSession(True, client)
        self._transition(AuthState.AUTHENTICATED)
        self._queue_event(Authenticated(self._session))
        return True

    async def _fail(self, error: BaseException, invalidate: bool) -> bool:
        """Move through AUTHENTICATION_FAILED to AWAITING_CREDENTIALS."""
        self._session = AuthSession(False, self._client)
        self._transition(AuthState.AUTHENTICATION_FAILED)
        if invalidate:
            try:
                await self._store.clear_tokens()
            except Exception:
                logger.exception("❌ Failed to invalidate stored tokens")
        self._queue_event(AuthenticationFailed(error))
        self._transition(AuthState.AWAITING_CREDENTIALS)
        self._queue_event(AuthenticationRequired())
        return False

    async def exchange_authorization_code(self, code: str) -> TokenRecord:
        """
        Complete the consent flow with a one-time authorization code.

        Args:
            code: Authorization code from the redirect.

        Returns:
            The merged token record that was persisted.

        Raises:
            ConfigurationMissingError: If no client settings are stored.
            AuthenticationFailedError: If Google rejects the code.
            ProviderError: If the token endpoint is unreachable.
        """
        client = await self._load_client()

        try:
            async with self._lock:
                try:
                    delta = await client.exchange_code(code)
                except Exception as e:
                    logger.error(f"❌ Authorization code exchange failed: {e}")
                    await self._fail(
                        e, invalidate=isinstance(e, AuthenticationFailedError)
                    )
                    raise

                existing = await self._store.load_tokens() or TokenRecord()
                merged = existing.merge(delta)
                await self._store.save_tokens(merged)
                self._queue_event(TokensUpdated(delta))
                self._activate(merged)
        finally:
            await self._flush_events()

        self._mark_configured()
        logger.info("✅ Google Drive authorization completed")
        return merged

    async def handle_authorization_error(self, error: BaseException | None = None) -> bool:
        """
        React to a provider call rejected with an authorization error.

        Args:
            error: The provider error, for logging.

        Returns:
            True if a valid session is available afterwards.
        """
        stale_token = self._client.access_token if self._client else None

        try:
            async with self._lock:
                if self._client is None:
                    return False
                if self._client.access_token != stale_token:
                    # Another caller already refreshed
                    return self._session.is_authenticated
                if self._machine.state != AuthState.AUTHENTICATED:
                    return self._session.is_authenticated

                logger.warning(f"⚠️ Provider rejected access token: {error}")
                self._session = AuthSession(False, self._client)
                self._transition(AuthState.TOKEN_EXPIRED)
                tokens = self._client.credentials or await self._store.load_tokens()
                if tokens is None:
                    return await self._fail(
                        AuthenticationExpiredError("No token record to refresh"),
                        invalidate=True,
                    )
                return await self._refresh(tokens)
        finally:
            await self._flush_events()

    async def get_auth_url(self, state: str | None = None) -> str:
        """
        Build the Google consent URL.

        Args:
            state: Optional CSRF state token.

        Returns:
            Authorization URL.

        Raises:
            ConfigurationMissingError: If no client settings are stored.
        """
        client = await self._load_client()
        return client.generate_auth_url(state)

    def requires_setup(self) -> str | None:
        """
        Report what the operator still has to do.

        Returns:
            "configuration", "authentication", or None when ready.
        """
        if self._client is None:
            return "configuration"
        if not self._session.is_authenticated:
            return "authentication"
        return None

    def _mark_configured(self) -> None:
        if self._configured is None or self._configured.cancelled():
            self._configured = asyncio.get_running_loop().create_future()
        if not self._configured.done():
            self._configured.set_result(True)

    def _ensure_monitor(self) -> None:
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.create_task(
                self._monitor(), name="drivesync-auth-monitor"
            )

    async def wait_for_configuration(self) -> bool:
        """
        Wait until provider settings exist and the handle is built.

        Concurrent callers share one pending future. The first call also
        starts the background monitor, which keeps checking for settings
        and, while AWAITING_CREDENTIALS, for tokens stored by the consent
        flow, until stop().

        Returns:
            True once configured.

        Raises:
            asyncio.CancelledError: If the manager is stopped while waiting.
        """
        if self._configured is None or self._configured.cancelled():
            self._configured = asyncio.get_running_loop().create_future()
        self._ensure_monitor()
        if self._configured.done():
            return self._configured.result()

        return await asyncio.shield(self._configured)

    async def _monitor(self) -> None:
        """Poll every config_poll_seconds for settings, then for credentials."""
        while True:
            try:
                if self._client is None or self.state == AuthState.UNCONFIGURED:
                    await self.initialize()
                elif self.state == AuthState.AWAITING_CREDENTIALS:
                    await self.verify_and_initialize_auth()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("❌ Authentication check failed")
            await asyncio.sleep(self._poll_seconds)

    async def invalidate_configuration(self) -> None:
        """
        Drop the OAuth handle and re-arm the configuration signal.

        Pending waiters keep their future and are released once settings
        are loaded again.
        """
        try:
            async with self._lock:
                self._client = None
                self._session = AuthSession()
                if self._machine.reset():
                    metrics.auth_transitions_total.labels(
                        state=AuthState.UNCONFIGURED.value
                    ).inc()
                    self._queue_event(AuthenticationRequired())
                if self._configured is not None and self._configured.done():
                    self._configured = None
                if self._configured is not None:
                    self._ensure_monitor()
        finally:
            await self._flush_events()
        logger.warning("⚠️ Google configuration invalidated")

    async def stop(self) -> None:
        """Cancel the monitor and release waiters."""
        if self._poll_task is not None and not self._poll_task.done():
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
        self._poll_task = None
        if self._configured is not None and not self._configured.done():
            self._configured.cancel()
