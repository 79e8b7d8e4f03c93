"""Client configuration for the OAuth2 password grant."""

from __future__ import annotations

from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator


class PasswordClientConfiguration(BaseModel):
    """Static configuration of a password grant client.

    Passed explicitly to the client; nothing is read from the environment.
    """

    token_endpoint: str
    userinfo_endpoint: str | None = None

    # Client authentication, sent only when non-blank
    client_id: str | None = None
    client_secret: str | None = None

    default_token_type: str = "Bearer"
    expiration_safety_margin: float = Field(default=5.0, ge=0)
    timeout: float = Field(default=30.0, gt=0)

    @field_validator("token_endpoint", "userinfo_endpoint")
    @classmethod
    def validate_endpoint(cls, v: str | None) -> str | None:
        """Validate endpoints are absolute HTTP(S) URLs."""
        if v is None:
            return v
        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"Endpoint must be an absolute HTTP(S) URL: {v}")
        return v

    def __repr__(self) -> str:
        return (
            f"PasswordClientConfiguration(token_endpoint={self.token_endpoint!r}, "
            f"client_id={self.client_id!r})"
        )
