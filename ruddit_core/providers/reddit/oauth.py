"""Reddit OAuth integration (Credential Manager).

Obtains and caches short-lived bearer tokens:
1. Service tokens via the client-credentials grant
2. User tokens via the password grant
3. User tokens via the interactive authorization-code grant
4. Refresh of user tokens with the stored refresh token

Cached tokens are reused while they are more than 60 seconds away from
expiry. Concurrent refreshes on one service are serialized so only one
token exchange is in flight at a time.

Usage:
    service = RedditOAuthService(
        client_id="...",
        client_secret="...",
        user_agent="Ruddit/0.1",
        token_cache=TokenCache(session_factory, crypto),
    )

    token = await service.get_cached_or_refreshed_token()

    # Interactive flow
    url, state = service.generate_auth_url()
    # ... user authorizes, callback receives code and state ...
    if service.validate_state(state):
        await service.exchange_code(code)
"""

import asyncio
import secrets
import time
from datetime import datetime, timezone
from typing import Any, Callable, Optional
from urllib.parse import urlencode

import httpx

from ruddit_core.config import Settings
from ruddit_core.domain.services.credentials import (
    SERVICE_ACCESS_TOKEN,
    SERVICE_TOKEN_EXPIRES_AT,
    USER_ACCESS_TOKEN,
    USER_REFRESH_TOKEN,
    USER_TOKEN_EXPIRES_AT,
    TokenCache,
)
from ruddit_core.errors import AuthRejected, CredentialError, ParseError, TransportError
from ruddit_core.infrastructure.crypto import DecryptionError
from ruddit_core.observability import get_collector, get_logger
from ruddit_core.observability.metrics import TOKEN_REQUESTS

logger = get_logger(__name__)


# Cached tokens this close to expiry are never handed out
REFRESH_MARGIN_SECONDS = 60

# Assumed lifetime when the token response omits expires_in
DEFAULT_EXPIRES_IN = 3600

UNAUTHORIZED_CLIENT = "unauthorized_client"


class RedditOAuthService:
    """Token lifecycle for the Reddit API."""

    # Reddit OAuth endpoints
    AUTHORIZE_URL = "https://www.reddit.com/api/v1/authorize"
    TOKEN_URL = "https://www.reddit.com/api/v1/access_token"

    DEFAULT_SCOPES = [
        "identity",
        "read",
        "submit",          # Post replies
        "privatemessages",
        "history",
    ]

    def __init__(
        self,
        client_id: Optional[str],
        client_secret: Optional[str],
        user_agent: str,
        token_cache: Optional[TokenCache] = None,
        redirect_uri: str = "http://localhost:8080",
        username: Optional[str] = None,
        password: Optional[str] = None,
        timeout: float = 30.0,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the OAuth service.

        Args:
            client_id: Reddit app client ID (None when not configured).
            client_secret: Reddit app client secret (None when not configured).
            user_agent: User-Agent for token requests.
            token_cache: Where tokens and expiry instants are kept.
            redirect_uri: Callback URL of the interactive flow.
            username: Account name for the password grant.
            password: Account password for the password grant.
            timeout: Per-request timeout in seconds.
            clock: Returns the current epoch time in seconds.
        """
        self.client_id = client_id
        self.client_secret = client_secret
        self.user_agent = user_agent
        self.token_cache = token_cache if token_cache is not None else TokenCache()
        self.redirect_uri = redirect_uri
        self.username = username
        self.password = password
        self.timeout = timeout
        self._clock = clock
        self._metrics = get_collector()

        self._service_lock = asyncio.Lock()
        self._user_lock = asyncio.Lock()

        # One-time states of pending interactive authorizations
        self._pending_states: dict[str, datetime] = {}

    @classmethod
    def from_settings(
        cls, settings: Settings, token_cache: Optional[TokenCache] = None
    ) -> "RedditOAuthService":
        return cls(
            client_id=settings.reddit_client_id,
            client_secret=settings.reddit_client_secret,
            user_agent=settings.reddit_user_agent,
            token_cache=token_cache,
            redirect_uri=settings.reddit_redirect_uri,
            username=settings.reddit_username,
            password=settings.reddit_password,
            timeout=settings.request_timeout_seconds,
        )

    # =========================================================================
    # SERVICE TOKENS (client credentials)
    # =========================================================================

    async def get_service_token(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
    ) -> tuple[str, int]:
        """Request a new application-only token.

        Args:
            client_id: Overrides the configured client ID.
            client_secret: Overrides the configured client secret.

        Returns:
            Tuple of (access_token, expires_in_seconds).

        Raises:
            CredentialError: If the client ID or secret is not configured.
            AuthRejected: If Reddit refuses the client credentials.
            TransportError: On network failure or an unexpected HTTP status.
            ParseError: If the response carries no access token.
        """
        client_id, client_secret = self._client_credentials(client_id, client_secret)

        payload = await self._request_token(
            grant="client_credentials",
            data={"grant_type": "client_credentials"},
            client_id=client_id,
            client_secret=client_secret,
        )
        return payload["access_token"], self._expires_in(payload)

    async def get_cached_or_refreshed_token(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
    ) -> str:
        """Get a service token, reusing the cached one while it is fresh.

        A cached token is returned without a network call only when it
        expires more than 60 seconds from now. Otherwise a new token is
        requested and stored together with its absolute expiry.
        """
        cached = self._fresh_token(SERVICE_ACCESS_TOKEN, SERVICE_TOKEN_EXPIRES_AT, disposable=True)
        if cached:
            return cached

        async with self._service_lock:
            # Another caller may have refreshed while we waited
            cached = self._fresh_token(SERVICE_ACCESS_TOKEN, SERVICE_TOKEN_EXPIRES_AT, disposable=True)
            if cached:
                return cached

            token, expires_in = await self.get_service_token(client_id, client_secret)
            self.token_cache.put_many({
                SERVICE_ACCESS_TOKEN: token,
                SERVICE_TOKEN_EXPIRES_AT: str(self._now() + expires_in),
            })
            logger.info("Service token refreshed", expires_in=expires_in)
            return token

    # =========================================================================
    # USER TOKENS
    # =========================================================================

    async def get_user_token(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
    ) -> str:
        """Request a user token with the password grant.

        The token is stored in the cache with its expiry.

        Raises:
            CredentialError: If any of the four inputs is not configured.
            AuthRejected: If Reddit refuses the credentials;
                ``unauthorized_client`` is set when the app itself is not
                allowed to use this grant.
        """
        client_id, client_secret = self._client_credentials(client_id, client_secret)
        username = username or self.username
        password = password or self.password
        if not username or not password:
            raise CredentialError("Reddit username and password are not configured")

        payload = await self._request_token(
            grant="password",
            data={
                "grant_type": "password",
                "username": username,
                "password": password,
            },
            client_id=client_id,
            client_secret=client_secret,
        )
        self._store_user_tokens(payload)
        return payload["access_token"]

    async def get_cached_or_refreshed_user_token(self) -> str:
        """Get a user token for write operations such as replies.

        Uses the cached user token while fresh, then the refresh token,
        then the password grant.

        Raises:
            CredentialError: If no way to obtain a user token is configured.
        """
        cached = self._fresh_token(USER_ACCESS_TOKEN, USER_TOKEN_EXPIRES_AT)
        if cached:
            return cached

        async with self._user_lock:
            cached = self._fresh_token(USER_ACCESS_TOKEN, USER_TOKEN_EXPIRES_AT)
            if cached:
                return cached

            if self.token_cache.get(USER_REFRESH_TOKEN):
                return await self._refresh_user_token()
            if self.username and self.password:
                return await self.get_user_token()

        raise CredentialError(
            "No user authorization available; authorize the app or configure a username and password"
        )

    def generate_auth_url(self, scopes: Optional[list[str]] = None) -> tuple[str, str]:
        """Generate the Reddit authorization URL.

        Args:
            scopes: OAuth scopes to request. Defaults to DEFAULT_SCOPES.

        Returns:
            Tuple of (authorization_url, state).

        Raises:
            CredentialError: If the client ID is not configured.
        """
        if not self.client_id:
            raise CredentialError("Reddit client ID is not configured")

        if scopes is None:
            scopes = self.DEFAULT_SCOPES

        state = secrets.token_urlsafe(32)
        self._pending_states[state] = datetime.now(timezone.utc)

        params = {
            "client_id": self.client_id,
            "response_type": "code",
            "state": state,
            "redirect_uri": self.redirect_uri,
            "duration": "permanent",  # Get refresh token
            "scope": " ".join(scopes),
        }

        url = f"{self.AUTHORIZE_URL}?{urlencode(params)}"
        return url, state

    def validate_state(self, state: str) -> bool:
        """Validate and consume an authorization state.

        Returns:
            True if the state was issued by this service and not used yet.
        """
        if state not in self._pending_states:
            return False

        del self._pending_states[state]
        return True

    async def exchange_code(self, code: str) -> dict[str, Any]:
        """Exchange an authorization code for user tokens.

        The access token, its expiry and the refresh token are stored.

        Returns:
            The token response.
        """
        client_id, client_secret = self._client_credentials(None, None)

        payload = await self._request_token(
            grant="authorization_code",
            data={
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.redirect_uri,
            },
            client_id=client_id,
            client_secret=client_secret,
        )
        self._store_user_tokens(payload)
        logger.info("User authorization completed", scope=payload.get("scope"))
        return payload

    async def refresh_user_token(self) -> str:
        """Get a new user access token with the stored refresh token.

        Raises:
            CredentialError: If no refresh token is stored.
        """
        async with self._user_lock:
            return await self._refresh_user_token()

    async def _refresh_user_token(self) -> str:
        refresh_token = self.token_cache.get(USER_REFRESH_TOKEN)
        if not refresh_token:
            raise CredentialError("No refresh token stored; authorize the app first")

        client_id, client_secret = self._client_credentials(None, None)

        payload = await self._request_token(
            grant="refresh_token",
            data={
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
            },
            client_id=client_id,
            client_secret=client_secret,
        )
        self._store_user_tokens(payload)
        return payload["access_token"]

    def clear_tokens(self) -> None:
        """Forget every cached token, including the refresh token."""
        self.token_cache.delete(
            SERVICE_ACCESS_TOKEN,
            SERVICE_TOKEN_EXPIRES_AT,
            USER_ACCESS_TOKEN,
            USER_TOKEN_EXPIRES_AT,
            USER_REFRESH_TOKEN,
        )

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _now(self) -> int:
        return int(self._clock())

    def _client_credentials(
        self, client_id: Optional[str], client_secret: Optional[str]
    ) -> tuple[str, str]:
        client_id = client_id or self.client_id
        client_secret = client_secret or self.client_secret
        if not client_id or not client_secret:
            raise CredentialError("Reddit client ID and secret are not configured")
        return client_id, client_secret

    def _fresh_token(
        self, token_key: str, expires_key: str, disposable: bool = False
    ) -> Optional[str]:
        """Cached token if it is still fresh, None otherwise.

        A ``disposable`` token that cannot be decrypted (the encryption key
        changed) counts as a miss; the next refresh overwrites its row.
        """
        try:
            token = self.token_cache.get(token_key)
            expires_at = self.token_cache.get_int(expires_key)
        except DecryptionError:
            if not disposable:
                raise
            logger.warning("Cached token is unreadable with the configured key", key=token_key)
            return None
        if not token or expires_at is None:
            return None
        if expires_at - self._now() <= REFRESH_MARGIN_SECONDS:
            return None
        return token

    def _expires_in(self, payload: dict[str, Any]) -> int:
        try:
            return int(payload.get("expires_in", DEFAULT_EXPIRES_IN))
        except (TypeError, ValueError):
            return DEFAULT_EXPIRES_IN

    def _store_user_tokens(self, payload: dict[str, Any]) -> None:
        values = {
            USER_ACCESS_TOKEN: payload["access_token"],
            USER_TOKEN_EXPIRES_AT: str(self._now() + self._expires_in(payload)),
        }
        # Reddit only sometimes rotates the refresh token
        if payload.get("refresh_token"):
            values[USER_REFRESH_TOKEN] = payload["refresh_token"]
        self.token_cache.put_many(values)

    async def _request_token(
        self,
        grant: str,
        data: dict[str, str],
        client_id: str,
        client_secret: str,
    ) -> dict[str, Any]:
        """POST to the token endpoint and validate the response.

        Returns:
            The decoded response, guaranteed to contain ``access_token``.
        """
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    self.TOKEN_URL,
                    data=data,
                    auth=(client_id, client_secret),
                    headers={"User-Agent": self.user_agent},
                )
        except httpx.HTTPError as e:
            self._count(grant, "error")
            raise TransportError(f"Token request failed: {e}") from e

        try:
            payload = response.json()
        except ValueError as e:
            self._count(grant, "error")
            if response.status_code >= 400:
                raise TransportError(
                    f"Token request failed with HTTP {response.status_code}",
                    status_code=response.status_code,
                ) from e
            raise ParseError("Token response is not JSON", payload=response.text) from e

        error = payload.get("error") if isinstance(payload, dict) else None

        if error == UNAUTHORIZED_CLIENT:
            self._count(grant, "rejected")
            raise AuthRejected(
                f"Reddit app is not authorized for the {grant} grant; check the app type",
                status_code=response.status_code,
                unauthorized_client=True,
            )

        if response.status_code in (401, 403):
            self._count(grant, "rejected")
            raise AuthRejected(
                f"Token request rejected: {error or response.status_code}",
                status_code=response.status_code,
            )

        status = response.status_code
        if status == 429 or status >= 500 or (status >= 400 and not error):
            self._count(grant, "error")
            raise TransportError(
                f"Token request failed with HTTP {response.status_code}",
                status_code=response.status_code,
            )

        if error:
            self._count(grant, "rejected")
            raise AuthRejected(f"Token request rejected: {error}", status_code=response.status_code)

        if not isinstance(payload, dict) or not payload.get("access_token"):
            self._count(grant, "error")
            raise ParseError("Token response has no access_token", payload=payload)

        self._count(grant, "ok")
        return payload

    def _count(self, grant: str, outcome: str) -> None:
        self._metrics.increment(TOKEN_REQUESTS, labels={"grant": grant, "outcome": outcome})
        if outcome != "ok":
            logger.warning("Token request failed", grant=grant, outcome=outcome)
