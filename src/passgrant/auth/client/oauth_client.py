"""High-level OAuth2 password grant session.

Wires the password client and the bearer authenticator to an API client so
callers can log in once and then issue authenticated requests.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from passgrant.auth.client.authenticator import OAuth2PasswordAuth
from passgrant.auth.client.hooks import TokenExchangeHooks
from passgrant.auth.client.services.tokens import OAuth2PasswordClient
from passgrant.auth.models.config import PasswordClientConfiguration
from passgrant.auth.models.errors import OAuth2Error
from passgrant.auth.models.tokens import Credentials, TokenState
from passgrant.auth.models.userinfo import UserInfo

logger = logging.getLogger(__name__)


class AuthenticatedSession:
    """Represents an authenticated session with a provider.

    Manages token lifecycle including refresh when needed.
    """

    def __init__(self, token_client: OAuth2PasswordClient):
        self._token_client = token_client

    @property
    def token_state(self) -> TokenState:
        return self._token_client.token_state

    @property
    def access_token(self) -> str:
        """Get current access token."""
        return self.token_state.access_token

    @property
    def refresh_token(self) -> str | None:
        return self.token_state.refresh_token

    @property
    def is_valid(self) -> bool:
        """Check if session has an access token that is not about to expire."""
        return not self._token_client.needs_refresh()

    async def refresh_if_needed(self) -> bool:
        """Refresh access token if needed and possible.

        Returns:
            True if token was refreshed or is still valid, False if the token
            is stale and there is no refresh token

        Raises:
            OAuth2Error: If the refresh exchange itself fails
        """
        if self.is_valid:
            return True

        if not self.token_state.can_refresh():
            logger.warning("Token expired and cannot be refreshed")
            return False

        try:
            await self._token_client.get_current_token()
        except OAuth2Error as e:
            logger.error(f"Token refresh error: {e}")
            raise

        logger.info("Successfully refreshed access token")
        return True


class OAuth2PasswordSession:
    """Password grant client with an authenticated API client attached.

    Requests issued through request() carry the current bearer token and are
    retried once after a token refresh when the API answers 401.
    """

    def __init__(
        self,
        configuration: PasswordClientConfiguration,
        hooks: TokenExchangeHooks | None = None,
        api_base_url: str | None = None,
        token_client: OAuth2PasswordClient | None = None,
        api_client: httpx.AsyncClient | None = None,
    ):
        """Initialize the session.

        Args:
            configuration: Endpoints and client credentials
            hooks: Provider-specific extension points
            api_base_url: Base URL of the protected API
            token_client: Pre-built password client, mostly for tests;
                carries its own hooks, so it cannot be combined with hooks
            api_client: Pre-built API HTTP client, mostly for tests

        Raises:
            ValueError: If both hooks and token_client are given
        """
        if token_client is not None and hooks is not None:
            raise ValueError("Pass hooks to the token client, not alongside it")

        self.configuration = configuration
        self.token_client = token_client or OAuth2PasswordClient(configuration, hooks)
        self.auth = OAuth2PasswordAuth(self.token_client)

        if api_client is None:
            api_client = httpx.AsyncClient(
                base_url=api_base_url or "", timeout=configuration.timeout
            )
        self._api_client = api_client

    async def login(self, username: str, password: str) -> AuthenticatedSession:
        """Authenticate with a username and password.

        Raises:
            OAuth2Error: If the exchange fails
        """
        logger.info(f"Logging in to {self.token_client.provider_name}")
        await self.token_client.exchange(Credentials.from_password(username, password))
        return AuthenticatedSession(self.token_client)

    async def resume(self, refresh_token: str) -> AuthenticatedSession:
        """Authenticate from a previously stored refresh token.

        Raises:
            OAuth2Error: If the exchange fails
        """
        logger.info(f"Resuming session with {self.token_client.provider_name}")
        await self.token_client.exchange(Credentials.from_refresh_token(refresh_token))
        return AuthenticatedSession(self.token_client)

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send an authenticated request to the API.

        A 401 that survives the single retry is returned to the caller as-is.

        Raises:
            OAuth2Error: If a token cannot be obtained or refreshed
            httpx.HTTPError: If the API request fails at the HTTP level
        """
        return await self._api_client.request(method, url, auth=self.auth, **kwargs)

    async def fetch_user_info(self) -> UserInfo:
        return await self.token_client.fetch_user_info()

    async def close(self) -> None:
        """Close all HTTP connections."""
        await self._api_client.aclose()
        await self.token_client.close()

    async def __aenter__(self) -> OAuth2PasswordSession:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
