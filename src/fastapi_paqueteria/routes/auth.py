"""Local email/password authentication endpoints."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends

from fastapi_paqueteria.config import PaqueteriaConfig
from fastapi_paqueteria.dependencies import (
    get_config,
    get_current_user,
    get_storage,
)
from fastapi_paqueteria.exceptions import AuthenticationError, ConflictError
from fastapi_paqueteria.identity import LocalIdentity
from fastapi_paqueteria.protocols import Storage
from fastapi_paqueteria.schemas import (
    ApiResponse,
    AuthResponse,
    LoginRequest,
    RegisterRequest,
    UserResponse,
)
from fastapi_paqueteria.security import (
    create_access_token,
    get_password_hash,
    verify_password,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])


def _auth_response(user: Any, config: PaqueteriaConfig) -> AuthResponse:
    token = create_access_token(LocalIdentity(user_id=user.id), config)
    return AuthResponse(
        access_token=token, user=UserResponse.model_validate(user)
    )


@router.post("/register", response_model=ApiResponse[AuthResponse])
async def register(
    body: RegisterRequest,
    storage: Storage = Depends(get_storage),
    config: PaqueteriaConfig = Depends(get_config),
) -> ApiResponse[AuthResponse]:
    email = body.email.lower()
    if await storage.get_user_by_email(email) is not None:
        raise ConflictError("Este email ya está registrado")
    user = await storage.create_user(
        email=email,
        password_hash=get_password_hash(body.password),
        first_name=body.first_name,
        last_name=body.last_name,
        balance=config.initial_balance,
    )
    logger.info("User %s registered", user.id)
    return ApiResponse(data=_auth_response(user, config))


@router.post("/login", response_model=ApiResponse[AuthResponse])
async def login(
    body: LoginRequest,
    storage: Storage = Depends(get_storage),
    config: PaqueteriaConfig = Depends(get_config),
) -> ApiResponse[AuthResponse]:
    user = await storage.get_user_by_email(body.email.lower())
    if (
        user is None
        or not user.password_hash
        or not verify_password(body.password, user.password_hash)
    ):
        raise AuthenticationError("Email o contraseña incorrectos")
    return ApiResponse(data=_auth_response(user, config))


@router.get("/auth/user", response_model=ApiResponse[UserResponse])
async def current_user(
    user: Any = Depends(get_current_user),
) -> ApiResponse[UserResponse]:
    return ApiResponse(data=UserResponse.model_validate(user))
