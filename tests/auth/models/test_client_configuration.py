"""Tests for password client configuration validation."""

import pytest
from pydantic import ValidationError

from passgrant.auth.models.config import PasswordClientConfiguration


class TestClientConfiguration:
    def test_defaults(self):
        # Act
        config = PasswordClientConfiguration(
            token_endpoint="https://auth.example.com/token"
        )

        # Assert
        assert config.default_token_type == "Bearer"
        assert config.expiration_safety_margin == 5.0
        assert config.userinfo_endpoint is None
        assert config.client_id is None

    @pytest.mark.parametrize(
        "endpoint", ["auth.example.com/token", "ftp://auth.example.com", "https://"]
    )
    def test_invalid_token_endpoint_rejected(self, endpoint):
        with pytest.raises(ValidationError):
            PasswordClientConfiguration(token_endpoint=endpoint)

    def test_zero_timeout_rejected(self):
        with pytest.raises(ValidationError):
            PasswordClientConfiguration(
                token_endpoint="https://auth.example.com/token", timeout=0
            )

    def test_negative_safety_margin_rejected(self):
        with pytest.raises(ValidationError):
            PasswordClientConfiguration(
                token_endpoint="https://auth.example.com/token",
                expiration_safety_margin=-1,
            )

    def test_repr_hides_client_secret(self):
        # Arrange
        config = PasswordClientConfiguration(
            token_endpoint="https://auth.example.com/token",
            client_id="client-456",
            client_secret="secret-789",
        )

        # Act & Assert
        assert "secret-789" not in repr(config)
