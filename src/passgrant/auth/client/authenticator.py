"""httpx authentication that attaches the current bearer token.

Adds the ``Authorization`` header to outgoing requests and recovers from a
single authentication failure: on a 401 the token is force-refreshed and the
request is retried exactly once.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator, Generator
from enum import Enum

import httpx

from passgrant.auth.client.services.tokens import OAuth2PasswordClient

logger = logging.getLogger(__name__)


class AuthFlowState(Enum):
    """Per-request retry state."""

    ARMED = "armed"  # No failure observed yet
    RETRYING = "retrying"  # A 401 was just handled


class OAuth2PasswordAuth(httpx.Auth):
    """Authorization request header authentication for password grant tokens.

    The retry state lives in each request's auth flow, so one instance can
    be shared by concurrent requests on the same httpx.AsyncClient.
    """

    def __init__(self, client: OAuth2PasswordClient, token_type: str | None = None):
        """Initialize the authenticator.

        Args:
            client: Password client that owns the token state
            token_type: Fixed token type for the header; defaults to the
                type returned by the provider
        """
        self._client = client
        self._token_type = token_type

    @property
    def client(self) -> OAuth2PasswordClient:
        return self._client

    def sync_auth_flow(
        self, request: httpx.Request
    ) -> Generator[httpx.Request, httpx.Response, None]:
        raise RuntimeError("OAuth2PasswordAuth requires an httpx.AsyncClient")

    async def async_auth_flow(
        self, request: httpx.Request
    ) -> AsyncGenerator[httpx.Request, httpx.Response]:
        await self._authenticate(request, AuthFlowState.ARMED)
        response = yield request

        if response.status_code != 401:
            return

        if not self._client.token_state.can_refresh():
            logger.warning(
                f"Received 401 from {request.url} and no refresh token is available"
            )
            return

        logger.info(f"Received 401 from {request.url}, forcing token refresh")
        await self._client.get_current_token(force_update=True)
        await self._authenticate(request, AuthFlowState.RETRYING)
        # Whatever the retry returns is handed back to the caller
        yield request

    async def _authenticate(
        self, request: httpx.Request, state: AuthFlowState
    ) -> None:
        """Attach the Authorization header for the given flow state.

        While armed an existing header is left as-is. After a failure the
        header is always replaced with the refreshed token.
        """
        if state is AuthFlowState.ARMED and "Authorization" in request.headers:
            return

        access_token = await self._client.get_current_token()
        token_type = self._token_type or self._client.token_type
        request.headers["Authorization"] = f"{token_type} {access_token}"
