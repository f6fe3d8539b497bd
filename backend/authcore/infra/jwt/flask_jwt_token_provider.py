# authcore/infra/jwt/flask_jwt_token_provider.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Any, cast

import jwt
from flask_jwt_extended import create_access_token as _create_access
from flask_jwt_extended import create_refresh_token as _create_refresh
from flask_jwt_extended import decode_token as _decode

from authcore.services._shared.errors import TokenExpiredError, TokenVerificationError
from authcore.services._shared.ports import TokenProvider
from authcore.services._shared.ports.token_provider import check_token_type


@dataclass(slots=True)
class JWTTokenProvider(TokenProvider):
    """
    Adapter for Flask-JWT-Extended.

    Identities are always encoded as strings. Purpose-scoped tokens are
    access-shaped tokens whose ``type`` claim is overridden with the purpose.

    .. note::
       Requires an active Flask app context with proper JWT settings.
    """

    def create_access_token(
        self,
        *,
        identity: str | int,
        additional_claims: dict[str, Any] | None = None,
        expires_delta: timedelta | None = None,
    ) -> str:
        return cast(
            str,
            _create_access(
                identity=str(identity),
                additional_claims=additional_claims or {},
                expires_delta=expires_delta,
            ),
        )

    def create_refresh_token(
        self,
        *,
        identity: str | int,
        additional_claims: dict[str, Any] | None = None,
        expires_delta: timedelta | None = None,
    ) -> str:
        return cast(
            str,
            _create_refresh(
                identity=str(identity),
                additional_claims=additional_claims or {},
                expires_delta=expires_delta,
            ),
        )

    def create_purpose_token(
        self,
        *,
        identity: str | int,
        purpose: str,
        expires_delta: timedelta,
        additional_claims: dict[str, Any] | None = None,
    ) -> str:
        # flask-jwt-extended applies additional claims last, so "type" wins.
        claims = dict(additional_claims or {})
        claims["type"] = purpose
        return self.create_access_token(
            identity=identity, additional_claims=claims, expires_delta=expires_delta
        )

    def decode(self, token: str) -> dict[str, Any]:
        try:
            return cast(dict[str, Any], _decode(token))
        except jwt.ExpiredSignatureError as exc:
            raise TokenExpiredError("Token has expired") from exc
        except jwt.InvalidTokenError as exc:
            raise TokenVerificationError("Invalid token") from exc

    def verify(self, token: str, *, expected_type: str) -> dict[str, Any]:
        return check_token_type(self.decode(token), expected_type)
