"""OAuth2 password grant token exchange and lifecycle service.

Implements RFC 6749 Section 4.3 (Resource Owner Password Credentials Grant)
and Section 6 (Refreshing an Access Token), and hands out an access token
that is refreshed on demand.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import replace

import httpx
from pydantic import ValidationError

from passgrant.auth.client.hooks import (
    DefaultTokenExchangeHooks,
    TokenExchangeHooks,
    TokenRequestContext,
    UserInfoRequestContext,
)
from passgrant.auth.client.primitives.parsing import (
    extract_error,
    parse_optional_string,
    parse_string_response,
)
from passgrant.auth.models.config import PasswordClientConfiguration
from passgrant.auth.models.errors import (
    MalformedResponseError,
    NoRefreshTokenAvailableError,
    ProviderError,
    TransportError,
)
from passgrant.auth.models.tokens import (
    Credentials,
    GrantType,
    TokenExchangeRequest,
    TokenResponse,
    TokenState,
)
from passgrant.auth.models.userinfo import UserInfo

logger = logging.getLogger(__name__)


def _is_success(status_code: int) -> bool:
    return 200 <= status_code < 300


class OAuth2PasswordClient:
    """Manages the password grant token lifecycle for one provider.

    Handles the token endpoint interactions including:
    - Username/password to access token exchange (RFC 6749 Section 4.3)
    - Access token refresh (RFC 6749 Section 6)
    - Expiry tracking with a safety margin
    - Optional user-info lookup with the current access token

    Token state has a single writer: exchanges are serialized per client, and
    concurrent refreshes share one in-flight exchange.
    """

    def __init__(
        self,
        configuration: PasswordClientConfiguration,
        hooks: TokenExchangeHooks | None = None,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the password grant client.

        Args:
            configuration: Endpoints and client credentials
            hooks: Provider-specific extension points
            http_client: HTTP client to use; one is created when omitted
            clock: Source of the current unix time
        """
        self.configuration = configuration
        self.hooks = hooks or DefaultTokenExchangeHooks()
        self._http_client = http_client or httpx.AsyncClient(
            timeout=configuration.timeout
        )
        self._clock = clock
        self._state = TokenState(
            expiration_safety_margin=configuration.expiration_safety_margin
        )
        self._exchange_lock = asyncio.Lock()
        self._refresh_task: asyncio.Task[TokenState] | None = None

    @property
    def provider_name(self) -> str:
        return self.hooks.provider_name

    @property
    def token_state(self) -> TokenState:
        """Snapshot of the current token state. Only this client writes to it."""
        return replace(self._state)

    @property
    def access_token(self) -> str:
        return self._state.access_token

    @property
    def refresh_token(self) -> str | None:
        return self._state.refresh_token

    @property
    def token_type(self) -> str:
        return self._state.token_type or self.configuration.default_token_type

    @property
    def expires_at(self) -> float | None:
        return self._state.expires_at

    def needs_refresh(self, safety_margin: float | None = None) -> bool:
        """Check whether the stored access token is missing or about to expire."""
        return self._state.needs_refresh(self._clock(), safety_margin)

    async def exchange(
        self, credentials: Credentials, grant_type: GrantType | None = None
    ) -> TokenState:
        """Exchange credentials for tokens at the token endpoint.

        Args:
            credentials: Username/password pair or refresh token
            grant_type: Grant to use; inferred from credentials when omitted

        Returns:
            TokenState: Snapshot of the updated token state

        Raises:
            MissingFieldError: If a field required by the grant is blank
            TransportError: If the request fails at the HTTP level
            ProviderError: If the provider returns an error
            MalformedResponseError: If the response lacks a usable access_token
        """
        request = TokenExchangeRequest(
            token_endpoint=self.configuration.token_endpoint,
            grant_type=grant_type or credentials.grant_type,
            credentials=credentials,
            client_id=self.configuration.client_id,
            client_secret=self.configuration.client_secret,
        )
        form_data = request.to_form_data()

        async with self._exchange_lock:
            await self._query_access_token(request, form_data)
            return replace(self._state)

    async def get_token(self, credentials: Credentials) -> str:
        """Exchange credentials and return the resulting access token."""
        state = await self.exchange(credentials)
        return state.access_token

    async def get_current_token(
        self,
        refresh_token: str | None = None,
        force_update: bool = False,
        safety_margin: float | None = None,
    ) -> str:
        """Get the current access token, refreshing it when required.

        A refresh happens when forced, when no access token has been
        obtained yet, or when the token expires within the safety margin.

        Args:
            refresh_token: Refresh token to use instead of the stored one
            force_update: Refresh even if the current token looks valid
            safety_margin: Seconds before expiry at which to refresh

        Returns:
            The (possibly refreshed) access token

        Raises:
            NoRefreshTokenAvailableError: If a refresh is required but no
                refresh token is known
        """
        if not force_update and not self.needs_refresh(safety_margin):
            return self._state.access_token

        refresh_token_value = refresh_token or self._state.refresh_token
        if not refresh_token_value:
            raise NoRefreshTokenAvailableError()

        await self._refresh(refresh_token_value)
        return self._state.access_token

    async def fetch_user_info(self, credentials: Credentials | None = None) -> UserInfo:
        """Fetch information about the authenticated user.

        The request carries the current bearer token; a 401 triggers one
        forced refresh and a single retry.

        Args:
            credentials: Credentials to exchange first if not yet authenticated

        Returns:
            UserInfo with provider_name set

        Raises:
            ValueError: If no user-info endpoint is configured
            ProviderError: If the user-info endpoint returns a failed status
        """
        from passgrant.auth.client.authenticator import OAuth2PasswordAuth

        endpoint = self.configuration.userinfo_endpoint
        if not endpoint:
            raise ValueError("No user-info endpoint configured")

        if credentials is not None and not self._state.is_authenticated:
            await self.exchange(credentials)

        access_token = await self.get_current_token()

        context = UserInfoRequestContext(
            url=endpoint,
            headers={
                "Authorization": f"{self.token_type} {access_token}",
                "Accept": "application/json",
            },
            configuration=self.configuration,
        )
        self.hooks.before_user_info_request(context)

        logger.debug(f"Fetching user info from {context.url}")

        try:
            response = await self._http_client.get(
                context.url,
                headers=context.headers,
                params=context.params or None,
                auth=OAuth2PasswordAuth(self),
            )
        except httpx.HTTPError as e:
            raise TransportError(f"HTTP error during user info request: {e}") from e

        if not _is_success(response.status_code):
            logger.warning(f"User info request failed with {response.status_code}")
            raise ProviderError(
                f"User info request failed with HTTP {response.status_code}",
                status_code=response.status_code,
            )

        user_info = self.hooks.parse_user_info(response.text)
        user_info.provider_name = self.provider_name
        return user_info

    async def _refresh(self, refresh_token: str) -> None:
        """Run a refresh exchange, joining one already in flight.

        The exchange runs in its own task and callers wait on it through
        asyncio.shield, so a cancelled caller stops waiting while the
        exchange still completes and updates the token state.
        """
        task = self._refresh_task
        if task is None or task.done():
            logger.debug("Starting token refresh")
            task = asyncio.create_task(
                self.exchange(
                    Credentials.from_refresh_token(refresh_token),
                    GrantType.REFRESH_TOKEN,
                )
            )
            task.add_done_callback(self._on_refresh_done)
            self._refresh_task = task
        else:
            logger.debug("Joining in-flight token refresh")

        await asyncio.shield(task)

    @staticmethod
    def _on_refresh_done(task: asyncio.Task[TokenState]) -> None:
        # Callers may have been cancelled; record the outcome here as well
        if task.cancelled():
            logger.debug("Token refresh cancelled")
            return
        error = task.exception()
        if error is not None:
            logger.warning(f"Token refresh failed: {error}")

    async def _query_access_token(
        self, request: TokenExchangeRequest, form_data: dict[str, str]
    ) -> None:
        """Send the token request and apply the response to the token state."""
        context = TokenRequestContext(
            grant_type=request.grant_type,
            form_data=form_data,
            headers={
                "Content-Type": "application/x-www-form-urlencoded",
                "Accept": "application/json",
            },
            configuration=self.configuration,
        )
        self.hooks.before_token_request(context)

        # Log request details (without sensitive data)
        logger.debug(
            f"Token request to {request.token_endpoint}: "
            f"grant_type={context.form_data.get('grant_type')}, "
            f"client_id={context.form_data.get('client_id', 'none')}"
        )

        try:
            response = await self._http_client.post(
                request.token_endpoint,
                data=context.form_data,
                headers=context.headers,
            )
        except httpx.HTTPError as e:
            raise TransportError(f"HTTP error during token exchange: {e}") from e

        token_response = self._parse_token_response(response)
        self.hooks.after_token_response(context, response)

        used_refresh_token = (
            request.credentials.refresh_token
            if request.grant_type is GrantType.REFRESH_TOKEN
            else None
        )
        self._state.update_from_response(
            token_response,
            now=self._clock(),
            fallback_token_type=self.configuration.default_token_type,
            used_refresh_token=used_refresh_token,
        )

        logger.info(f"Token exchange successful ({request.grant_type.value} grant)")

    def _parse_token_response(self, response: httpx.Response) -> TokenResponse:
        """Parse a token endpoint response body.

        Accepts JSON and query-string encoded bodies. Error payloads are
        checked before the status code so the provider's message is kept.

        Raises:
            ProviderError: If the body carries an error or the status failed
            MalformedResponseError: If access_token is missing or a field
                has an invalid value
        """
        content = response.text

        error = extract_error(content)
        if error:
            logger.warning(
                f"Token exchange failed with {response.status_code}: {error}"
            )
            raise ProviderError(error, status_code=response.status_code)

        if not _is_success(response.status_code):
            logger.warning(f"Token exchange failed with {response.status_code}")
            raise ProviderError(
                f"Token endpoint returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            return TokenResponse(
                access_token=parse_string_response(content, "access_token"),
                refresh_token=parse_optional_string(content, "refresh_token"),
                token_type=parse_optional_string(content, "token_type"),
                expires_in=parse_optional_string(content, "expires_in"),
            )
        except ValidationError as e:
            errors = e.errors()
            key = str(errors[0]["loc"][0]) if errors and errors[0]["loc"] else "token"
            raise MalformedResponseError(key, str(e)) from e

    async def close(self) -> None:
        """Cancel any in-flight refresh and close the HTTP client."""
        if self._refresh_task is not None and not self._refresh_task.done():
            self._refresh_task.cancel()
        await self._http_client.aclose()

    async def __aenter__(self) -> OAuth2PasswordClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
