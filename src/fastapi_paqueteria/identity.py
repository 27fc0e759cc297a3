"""Authenticated identities and the user id each one resolves to."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from fastapi_paqueteria.exceptions import AuthenticationError


@dataclass(frozen=True)
class LocalIdentity:
    """Email/password login."""

    user_id: str


@dataclass(frozen=True)
class GoogleIdentity:
    """Google OAuth login linked to a local user row."""

    user_id: str


@dataclass(frozen=True)
class LegacyOidcIdentity:
    """Legacy OIDC session; the user id lives in the ``sub`` claim."""

    claims: dict[str, Any] = field(default_factory=dict)


AuthenticatedIdentity = LocalIdentity | GoogleIdentity | LegacyOidcIdentity


def resolve_user_id(identity: AuthenticatedIdentity) -> str:
    match identity:
        case LocalIdentity(user_id=user_id) | GoogleIdentity(user_id=user_id):
            return user_id
        case LegacyOidcIdentity(claims=claims):
            sub = claims.get("sub")
            if not sub:
                raise AuthenticationError("Sesión inválida")
            return str(sub)
    raise AuthenticationError("Sesión inválida")


def identity_from_claims(claims: dict[str, Any]) -> AuthenticatedIdentity:
    """Build an identity from decoded access-token claims."""
    provider = claims.get("provider", "local")
    sub = claims.get("sub")
    if provider == "oidc":
        return LegacyOidcIdentity(claims=dict(claims))
    if not sub:
        raise AuthenticationError("Sesión inválida")
    if provider == "google":
        return GoogleIdentity(user_id=str(sub))
    if provider == "local":
        return LocalIdentity(user_id=str(sub))
    raise AuthenticationError("Proveedor de sesión desconocido")


def provider_of(identity: AuthenticatedIdentity) -> str:
    match identity:
        case GoogleIdentity():
            return "google"
        case LegacyOidcIdentity():
            return "oidc"
    return "local"
