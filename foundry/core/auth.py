"""Bearer token decoding.

Tokens are issued elsewhere; this module only verifies the signature and
expiry and turns the claims into an ``AuthUser``.
"""
from __future__ import annotations

from dataclasses import dataclass

import jwt

from foundry.core.errors import TokenExpiredError, UnauthorizedError


@dataclass(frozen=True, slots=True)
class AuthUser:
    user_id: int
    organization_id: int
    role: str = "user"


def decode_token(token: str, secret: str, algorithm: str = "HS256") -> AuthUser:
    try:
        payload = jwt.decode(token, secret, algorithms=[algorithm])
    except jwt.ExpiredSignatureError as exc:
        raise TokenExpiredError() from exc
    except jwt.InvalidTokenError as exc:
        raise UnauthorizedError("Invalid authentication token") from exc

    try:
        return AuthUser(
            user_id=int(payload["userId"]),
            organization_id=int(payload["organizationId"]),
            role=str(payload.get("role", "user")),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise UnauthorizedError("Invalid authentication token") from exc
