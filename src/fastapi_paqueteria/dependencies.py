"""Dependency providers for request handlers."""

from __future__ import annotations

from typing import Any

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from fastapi_paqueteria.config import PaqueteriaConfig
from fastapi_paqueteria.exceptions import AuthenticationError, ForbiddenError
from fastapi_paqueteria.identity import (
    AuthenticatedIdentity,
    identity_from_claims,
    resolve_user_id,
)
from fastapi_paqueteria.lifecycle import ShipmentLifecycle
from fastapi_paqueteria.margin import MarginPolicy
from fastapi_paqueteria.protocols import RateGateway, Storage
from fastapi_paqueteria.recharge import RechargeWorkflow
from fastapi_paqueteria.security import decode_token
from fastapi_paqueteria.tracking import TrackingLog
from fastapi_paqueteria.wallet import WalletLedger

bearer_scheme = HTTPBearer(auto_error=False)


def get_config(request: Request) -> PaqueteriaConfig:
    """Read config from FastAPI app state."""
    return request.app.state.paqueteria_config


def get_storage(request: Request) -> Storage:
    """Read storage from FastAPI app state."""
    return request.app.state.paqueteria_storage


def get_gateway(request: Request) -> RateGateway:
    """Read carrier gateway from FastAPI app state."""
    return request.app.state.paqueteria_gateway


def get_margin(request: Request) -> MarginPolicy:
    config = get_config(request)
    return MarginPolicy(
        get_storage(request), default=config.default_margin_percentage
    )


def get_ledger(request: Request) -> WalletLedger:
    return WalletLedger(get_storage(request))


def get_tracking_log(request: Request) -> TrackingLog:
    return TrackingLog(get_storage(request))


def get_recharge_workflow(request: Request) -> RechargeWorkflow:
    return RechargeWorkflow(get_storage(request), get_ledger(request))


def get_lifecycle(request: Request) -> ShipmentLifecycle:
    """Create ShipmentLifecycle for the current request."""
    config = get_config(request)
    storage = get_storage(request)
    return ShipmentLifecycle(
        storage=storage,
        gateway=get_gateway(request),
        ledger=WalletLedger(storage),
        margin=get_margin(request),
        tracking=get_tracking_log(request),
        country_code=config.country_code,
        currency=config.currency,
    )


def get_current_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    config: PaqueteriaConfig = Depends(get_config),
) -> AuthenticatedIdentity:
    if credentials is None:
        raise AuthenticationError()
    claims = decode_token(credentials.credentials, config)
    if not claims or claims.get("type") != "access":
        raise AuthenticationError("Sesión inválida o expirada")
    return identity_from_claims(claims)


def get_current_user_id(
    identity: AuthenticatedIdentity = Depends(get_current_identity),
) -> str:
    return resolve_user_id(identity)


async def get_current_user(
    user_id: str = Depends(get_current_user_id),
    storage: Storage = Depends(get_storage),
) -> Any:
    user = await storage.get_user(user_id)
    if user is None:
        raise AuthenticationError("Usuario no encontrado")
    return user


async def require_admin(user: Any = Depends(get_current_user)) -> Any:
    if not user.is_admin:
        raise ForbiddenError("Se requieren permisos de administrador")
    return user
