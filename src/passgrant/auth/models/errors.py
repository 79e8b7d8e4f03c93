"""Exception hierarchy for OAuth2 password grant authentication errors.

Each failure mode of the token lifecycle has its own exception type so
callers can decide which ones are worth retrying.
"""

from __future__ import annotations


class OAuth2Error(Exception):
    """Base exception for all OAuth2 password grant errors."""

    pass


class MissingFieldError(OAuth2Error):
    """Raised when a required credential field is blank.

    This is a caller error and is never retried.
    """

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Required field '{field}' is missing or blank")


class TransportError(OAuth2Error):
    """Raised when the HTTP client reports a network or transport failure."""

    pass


class ProviderError(OAuth2Error):
    """Raised when the provider returns an error payload or a failed status."""

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class MalformedResponseError(OAuth2Error):
    """Raised when a mandatory field is missing from a provider response."""

    def __init__(self, key: str, detail: str | None = None):
        self.key = key
        message = f"Provider response missing or invalid '{key}'"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class NoRefreshTokenAvailableError(OAuth2Error):
    """Raised when a refresh is required but no refresh token is known."""

    def __init__(self):
        super().__init__("Token never fetched and no refresh token provided")
