"""Provider extension points for the password grant client.

Providers differ in small ways: extra form parameters, extra headers, and
the shape of their user-info payload. Those differences are expressed by a
TokenExchangeHooks implementation injected into the client, so the core
exchange algorithm never changes per provider.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Protocol

import httpx
from pydantic import ValidationError

from passgrant.auth.models.config import PasswordClientConfiguration
from passgrant.auth.models.errors import MalformedResponseError
from passgrant.auth.models.tokens import GrantType
from passgrant.auth.models.userinfo import UserInfo


@dataclass
class TokenRequestContext:
    """Outgoing token request, mutable by hooks before it is sent."""

    grant_type: GrantType
    form_data: dict[str, str]
    headers: dict[str, str]
    configuration: PasswordClientConfiguration


@dataclass
class UserInfoRequestContext:
    """Outgoing user-info request, mutable by hooks before it is sent."""

    url: str
    headers: dict[str, str]
    configuration: PasswordClientConfiguration
    params: dict[str, str] = field(default_factory=dict)


class TokenExchangeHooks(Protocol):
    """Protocol for provider-specific behaviour around token exchange."""

    @property
    def provider_name(self) -> str:
        """Friendly name of the provider."""
        ...

    def before_token_request(self, context: TokenRequestContext) -> None:
        """Called once the token request is built, just before it is sent.

        May add, change or remove form parameters and headers.
        """
        ...

    def after_token_response(
        self, context: TokenRequestContext, response: httpx.Response
    ) -> None:
        """Called after a successful token response has been parsed.

        Allows reading extra data returned along with the access token.
        """
        ...

    def before_user_info_request(self, context: UserInfoRequestContext) -> None:
        """Called just before the user-info request is sent."""
        ...

    def parse_user_info(self, content: str) -> UserInfo:
        """Parse the user-info response body.

        Args:
            content: Raw response body from the user-info endpoint

        Returns:
            Parsed user information
        """
        ...


class DefaultTokenExchangeHooks:
    """No-op hooks that parse user info as a flat JSON object."""

    provider_name = "OAuth2"

    def before_token_request(self, context: TokenRequestContext) -> None:
        pass

    def after_token_response(
        self, context: TokenRequestContext, response: httpx.Response
    ) -> None:
        pass

    def before_user_info_request(self, context: UserInfoRequestContext) -> None:
        pass

    def parse_user_info(self, content: str) -> UserInfo:
        try:
            data = json.loads(content)
        except ValueError as e:
            raise MalformedResponseError("user_info", "body is not JSON") from e

        if not isinstance(data, dict):
            raise MalformedResponseError("user_info", "expected a JSON object")

        try:
            return UserInfo.model_validate(data)
        except ValidationError as e:
            raise MalformedResponseError("user_info", str(e)) from e
