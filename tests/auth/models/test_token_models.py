"""Tests for token state and token request models.

Covers the staleness rule, state updates from token responses, and the
grant-specific form data sent to the token endpoint.
"""

import pytest

from passgrant.auth.models.errors import MissingFieldError
from passgrant.auth.models.tokens import (
    Credentials,
    GrantType,
    TokenExchangeRequest,
    TokenResponse,
    TokenState,
)

NOW = 1_700_000_000.0


class TestTokenStateStaleness:
    """Test TokenState.needs_refresh."""

    def test_empty_state_needs_refresh(self):
        # Arrange
        state = TokenState()

        # Act & Assert
        assert state.needs_refresh(NOW)
        assert not state.is_authenticated

    def test_token_without_expiry_never_goes_stale(self):
        # Arrange
        state = TokenState(access_token="abc", expires_at=None)

        # Act & Assert
        assert not state.needs_refresh(NOW)
        assert not state.needs_refresh(NOW + 10 * 365 * 24 * 3600)

    def test_default_safety_margin_triggers_early_refresh(self):
        # Arrange
        state = TokenState(access_token="abc", expires_at=NOW + 100)

        # Act & Assert
        assert not state.needs_refresh(NOW + 94)
        assert state.needs_refresh(NOW + 95)
        assert state.needs_refresh(NOW + 101)

    def test_custom_safety_margin_overrides_default(self):
        # Arrange
        state = TokenState(access_token="abc", expires_at=NOW + 100)

        # Act & Assert
        assert state.needs_refresh(NOW + 50, safety_margin=60)
        assert not state.needs_refresh(NOW + 99, safety_margin=0)


class TestTokenStateUpdate:
    """Test TokenState.update_from_response."""

    def test_update_sets_expiry_from_expires_in(self):
        # Arrange
        state = TokenState()
        response = TokenResponse(
            access_token="abc", token_type="Bearer", expires_in=3600
        )

        # Act
        state.update_from_response(response, now=NOW, fallback_token_type="OAuth")

        # Assert
        assert state.access_token == "abc"
        assert state.token_type == "Bearer"
        assert state.expires_at == NOW + 3600

    def test_missing_token_type_uses_fallback(self):
        # Arrange
        state = TokenState()
        response = TokenResponse(access_token="abc")

        # Act
        state.update_from_response(response, now=NOW, fallback_token_type="OAuth")

        # Assert
        assert state.token_type == "OAuth"
        assert state.expires_at is None

    def test_zero_expires_in_means_no_expiry(self):
        # Arrange
        state = TokenState()
        response = TokenResponse(access_token="abc", expires_in=0)

        # Act
        state.update_from_response(response, now=NOW, fallback_token_type="Bearer")

        # Assert
        assert state.expires_at is None

    def test_refresh_token_carried_over_when_response_omits_it(self):
        # Arrange
        state = TokenState(access_token="old", refresh_token="stored-refresh")
        response = TokenResponse(access_token="new")

        # Act
        state.update_from_response(response, now=NOW, fallback_token_type="Bearer")

        # Assert
        assert state.access_token == "new"
        assert state.refresh_token == "stored-refresh"

    def test_used_refresh_token_preferred_over_stored_one(self):
        # Arrange
        state = TokenState(refresh_token="stored-refresh")
        response = TokenResponse(access_token="new")

        # Act
        state.update_from_response(
            response,
            now=NOW,
            fallback_token_type="Bearer",
            used_refresh_token="external-refresh",
        )

        # Assert
        assert state.refresh_token == "external-refresh"

    def test_returned_refresh_token_wins(self):
        # Arrange
        state = TokenState(refresh_token="stored-refresh")
        response = TokenResponse(access_token="new", refresh_token="rotated")

        # Act
        state.update_from_response(
            response,
            now=NOW,
            fallback_token_type="Bearer",
            used_refresh_token="stored-refresh",
        )

        # Assert
        assert state.refresh_token == "rotated"


class TestTokenResponseValidation:
    """Test TokenResponse field validation."""

    def test_empty_access_token_rejected(self):
        with pytest.raises(ValueError):
            TokenResponse(access_token="")

    def test_expires_in_string_is_coerced(self):
        # Act
        response = TokenResponse(access_token="abc", expires_in="120")

        # Assert
        assert response.expires_in == 120

    def test_negative_expires_in_rejected(self):
        with pytest.raises(ValueError):
            TokenResponse(access_token="abc", expires_in=-60)


class TestCredentials:
    """Test credential construction and grant type inference."""

    def test_password_credentials_use_password_grant(self):
        credentials = Credentials.from_password("alice", "s3cret")
        assert credentials.grant_type is GrantType.PASSWORD

    def test_refresh_credentials_use_refresh_grant(self):
        credentials = Credentials.from_refresh_token("refresh-abc")
        assert credentials.grant_type is GrantType.REFRESH_TOKEN

    def test_repr_hides_secrets(self):
        # Arrange
        credentials = Credentials(
            username="alice", password="s3cret", refresh_token="refresh-abc"
        )

        # Act
        text = repr(credentials)

        # Assert
        assert "alice" in text
        assert "s3cret" not in text
        assert "refresh-abc" not in text


class TestTokenExchangeRequest:
    """Test grant-specific form data."""

    ENDPOINT = "https://auth.example.com/token"

    def test_password_grant_form_data(self):
        # Arrange
        request = TokenExchangeRequest(
            token_endpoint=self.ENDPOINT,
            grant_type=GrantType.PASSWORD,
            credentials=Credentials.from_password("alice", "s3cret"),
            client_id="client-456",
            client_secret="secret-789",
        )

        # Act
        form_data = request.to_form_data()

        # Assert
        assert form_data == {
            "grant_type": "password",
            "username": "alice",
            "password": "s3cret",
            "client_id": "client-456",
            "client_secret": "secret-789",
        }

    def test_refresh_grant_excludes_username_and_password(self):
        # Arrange
        request = TokenExchangeRequest(
            token_endpoint=self.ENDPOINT,
            grant_type=GrantType.REFRESH_TOKEN,
            credentials=Credentials.from_refresh_token("refresh-abc"),
        )

        # Act
        form_data = request.to_form_data()

        # Assert
        assert form_data == {
            "grant_type": "refresh_token",
            "refresh_token": "refresh-abc",
        }

    def test_blank_client_credentials_are_omitted(self):
        # Arrange
        request = TokenExchangeRequest(
            token_endpoint=self.ENDPOINT,
            grant_type=GrantType.PASSWORD,
            credentials=Credentials.from_password("alice", "s3cret"),
            client_id="   ",
            client_secret="",
        )

        # Act
        form_data = request.to_form_data()

        # Assert
        assert "client_id" not in form_data
        assert "client_secret" not in form_data

    @pytest.mark.parametrize(
        "credentials, missing",
        [
            (Credentials(username="", password="s3cret"), "username"),
            (Credentials(username="alice", password=None), "password"),
            (Credentials(username="alice", password="  "), "password"),
        ],
    )
    def test_password_grant_blank_fields_raise(self, credentials, missing):
        # Arrange
        request = TokenExchangeRequest(
            token_endpoint=self.ENDPOINT,
            grant_type=GrantType.PASSWORD,
            credentials=credentials,
        )

        # Act & Assert
        with pytest.raises(MissingFieldError) as exc_info:
            request.to_form_data()

        assert exc_info.value.field == missing

    def test_refresh_grant_blank_refresh_token_raises(self):
        # Arrange
        request = TokenExchangeRequest(
            token_endpoint=self.ENDPOINT,
            grant_type=GrantType.REFRESH_TOKEN,
            credentials=Credentials(refresh_token=""),
        )

        # Act & Assert
        with pytest.raises(MissingFieldError) as exc_info:
            request.to_form_data()

        assert exc_info.value.field == "refresh_token"
