"""JWTTokenProvider against the testing app's flask-jwt-extended settings."""

from __future__ import annotations

from datetime import timedelta

import pytest

from authcore.infra.jwt.flask_jwt_token_provider import JWTTokenProvider
from authcore.services._shared.errors import (
    TokenExpiredError,
    TokenTypeMismatchError,
    TokenVerificationError,
)
from authcore.services._shared.ports import ACCESS_TOKEN_TYPE, REFRESH_TOKEN_TYPE


@pytest.fixture()
def provider() -> JWTTokenProvider:
    return JWTTokenProvider()


class TestJWTTokenProvider:
    def test_access_token_round_trip(self, provider):
        token = provider.create_access_token(identity=42, additional_claims={"role": "admin"})

        claims = provider.verify(token, expected_type=ACCESS_TOKEN_TYPE)

        assert claims["sub"] == "42"
        assert claims["role"] == "admin"
        assert claims["type"] == ACCESS_TOKEN_TYPE

    def test_refresh_token_is_not_an_access_token(self, provider):
        token = provider.create_refresh_token(identity="7")

        assert provider.verify(token, expected_type=REFRESH_TOKEN_TYPE)["sub"] == "7"
        with pytest.raises(TokenTypeMismatchError):
            provider.verify(token, expected_type=ACCESS_TOKEN_TYPE)

    def test_purpose_token_carries_its_purpose_as_type(self, provider):
        token = provider.create_purpose_token(
            identity=5, purpose="email_verification", expires_delta=timedelta(hours=1)
        )

        claims = provider.verify(token, expected_type="email_verification")

        assert claims["type"] == "email_verification"
        with pytest.raises(TokenTypeMismatchError):
            provider.verify(token, expected_type=ACCESS_TOKEN_TYPE)

    def test_expired_token(self, provider):
        token = provider.create_access_token(identity=1, expires_delta=timedelta(seconds=-30))

        with pytest.raises(TokenExpiredError):
            provider.verify(token, expected_type=ACCESS_TOKEN_TYPE)

    def test_garbage_and_tampered_tokens(self, provider):
        token = provider.create_access_token(identity=1)
        tampered = token[:-2] + ("AA" if not token.endswith("AA") else "BB")

        with pytest.raises(TokenVerificationError):
            provider.verify("not.a.jwt", expected_type=ACCESS_TOKEN_TYPE)
        with pytest.raises(TokenVerificationError):
            provider.verify(tampered, expected_type=ACCESS_TOKEN_TYPE)
