"""Password hashing and access tokens."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta
from typing import Any

import bcrypt
from jose import JWTError, jwt

from fastapi_paqueteria.config import PaqueteriaConfig
from fastapi_paqueteria.identity import (
    AuthenticatedIdentity,
    provider_of,
    resolve_user_id,
)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return bcrypt.checkpw(
        plain_password.encode("utf-8"),
        hashed_password.encode("utf-8"),
    )


def get_password_hash(password: str) -> str:
    return bcrypt.hashpw(
        password.encode("utf-8"),
        bcrypt.gensalt(),
    ).decode("utf-8")


def create_access_token(
    identity: AuthenticatedIdentity,
    config: PaqueteriaConfig,
    expires_delta: timedelta | None = None,
) -> str:
    """Issue a signed access token for ``identity``.

    The ``provider`` claim lets
    :func:`~fastapi_paqueteria.identity.identity_from_claims` rebuild the
    same identity variant on the way back in.
    """
    now = datetime.now(UTC)
    expire = now + (
        expires_delta or timedelta(minutes=config.access_token_expire_minutes)
    )
    claims = {
        "sub": resolve_user_id(identity),
        "provider": provider_of(identity),
        "type": "access",
        "jti": str(uuid.uuid4()),
        "iat": now,
        "exp": expire,
    }
    return jwt.encode(
        claims, config.jwt_secret_key, algorithm=config.jwt_algorithm
    )


def decode_token(
    token: str, config: PaqueteriaConfig
) -> dict[str, Any] | None:
    """Return the verified claims, or ``None`` for a bad or expired token."""
    try:
        return jwt.decode(
            token,
            config.jwt_secret_key,
            algorithms=[config.jwt_algorithm],
        )
    except JWTError:
        return None
