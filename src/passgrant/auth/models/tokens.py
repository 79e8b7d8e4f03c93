"""Token state and exchange models for the OAuth2 password grant.

Contains the credential inputs, the outgoing token request, the parsed
token response and the mutable token state owned by the client.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, field_validator

from passgrant.auth.models.errors import MissingFieldError


class GrantType(str, Enum):
    """Grant types supported by the token endpoint (RFC 6749 Sections 4.3, 6)."""

    PASSWORD = "password"
    REFRESH_TOKEN = "refresh_token"


@dataclass(frozen=True)
class Credentials:
    """Caller-owned credentials for a single token exchange.

    Either a username/password pair or a refresh token. Never stored by
    the client.
    """

    username: str | None = None
    password: str | None = None
    refresh_token: str | None = None

    @classmethod
    def from_password(cls, username: str, password: str) -> Credentials:
        return cls(username=username, password=password)

    @classmethod
    def from_refresh_token(cls, refresh_token: str) -> Credentials:
        return cls(refresh_token=refresh_token)

    @property
    def grant_type(self) -> GrantType:
        """Infer the grant type from the fields that are set."""
        if self.refresh_token and not (self.username or self.password):
            return GrantType.REFRESH_TOKEN
        return GrantType.PASSWORD

    def __repr__(self) -> str:
        # Keep secrets out of logs and tracebacks
        return (
            f"Credentials(username={self.username!r}, "
            f"password={'***' if self.password else None}, "
            f"refresh_token={'***' if self.refresh_token else None})"
        )


def _is_blank(value: str | None) -> bool:
    return value is None or not value.strip()


@dataclass(frozen=True)
class TokenExchangeRequest:
    """Token endpoint request parameters (RFC 6749 Sections 4.3.2 and 6).

    Immutable parameters for exchanging either a username/password pair or
    a refresh token for an access token.
    """

    token_endpoint: str
    grant_type: GrantType
    credentials: Credentials
    client_id: str | None = None
    client_secret: str | None = None

    def to_form_data(self) -> dict[str, str]:
        """Convert to form data for application/x-www-form-urlencoded request.

        Returns:
            Dictionary suitable for httpx data parameter

        Raises:
            MissingFieldError: If a field required by the grant type is blank
        """
        data = {"grant_type": self.grant_type.value}

        if self.grant_type is GrantType.REFRESH_TOKEN:
            if _is_blank(self.credentials.refresh_token):
                raise MissingFieldError("refresh_token")
            data["refresh_token"] = self.credentials.refresh_token
        else:
            if _is_blank(self.credentials.username):
                raise MissingFieldError("username")
            if _is_blank(self.credentials.password):
                raise MissingFieldError("password")
            data["username"] = self.credentials.username
            data["password"] = self.credentials.password

        # Client authentication is optional for public clients
        if not _is_blank(self.client_id):
            data["client_id"] = self.client_id
        if not _is_blank(self.client_secret):
            data["client_secret"] = self.client_secret

        return data


class TokenResponse(BaseModel):
    """Parsed successful token endpoint response (RFC 6749 Section 5.1)."""

    access_token: str
    token_type: str | None = None
    expires_in: int | None = None
    refresh_token: str | None = None

    @field_validator("access_token")
    @classmethod
    def validate_access_token(cls, v: str) -> str:
        if not v:
            raise ValueError("access_token must not be empty")
        return v

    @field_validator("expires_in")
    @classmethod
    def validate_expires_in(cls, v: int | None) -> int | None:
        if v is not None and v < 0:
            raise ValueError("expires_in must not be negative")
        return v

    def calculate_expires_at(self, now: float) -> float | None:
        """Calculate absolute expiry timestamp from expires_in.

        A missing or zero expires_in means the token has no known expiry.
        """
        if not self.expires_in:
            return None
        return now + self.expires_in


@dataclass
class TokenState:
    """Mutable token state owned by a single password client.

    The staleness rule lives here and nowhere else. Updates happen in one
    synchronous step so no coroutine can observe a half-written state.
    """

    access_token: str = ""
    refresh_token: str | None = None
    token_type: str | None = None
    expires_at: float | None = None  # Unix timestamp
    expiration_safety_margin: float = 5.0

    @property
    def is_authenticated(self) -> bool:
        return bool(self.access_token)

    def needs_refresh(self, now: float, safety_margin: float | None = None) -> bool:
        """Check whether the access token must be refreshed before use.

        Args:
            now: Current unix timestamp
            safety_margin: Override for expiration_safety_margin, in seconds
        """
        if not self.access_token:
            return True

        if self.expires_at is None:
            return False  # No expiry means only a forced update refreshes

        margin = (
            self.expiration_safety_margin if safety_margin is None else safety_margin
        )
        return now >= self.expires_at - margin

    def can_refresh(self) -> bool:
        """Check if token can be refreshed."""
        return bool(self.refresh_token)

    def update_from_response(
        self,
        token_response: TokenResponse,
        now: float,
        fallback_token_type: str,
        used_refresh_token: str | None = None,
    ) -> None:
        """Replace token state from a successful token response.

        The refresh token is carried over when the response omits one:
        the returned token wins, then the one just used, then the stored one.
        """
        self.access_token = token_response.access_token
        self.token_type = token_response.token_type or fallback_token_type
        self.refresh_token = (
            token_response.refresh_token or used_refresh_token or self.refresh_token
        )
        self.expires_at = token_response.calculate_expires_at(now)
