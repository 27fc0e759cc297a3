"""Router factory for fastapi-paqueteria."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI

from fastapi_paqueteria.config import PaqueteriaConfig
from fastapi_paqueteria.exceptions import register_exception_handlers
from fastapi_paqueteria.gateway import build_gateway
from fastapi_paqueteria.protocols import RateGateway, Storage
from fastapi_paqueteria.routes.admin import router as admin_router
from fastapi_paqueteria.routes.auth import router as auth_router
from fastapi_paqueteria.routes.quotes import router as quotes_router
from fastapi_paqueteria.routes.shipments import router as shipments_router
from fastapi_paqueteria.routes.tracking import router as tracking_router
from fastapi_paqueteria.routes.wallet import router as wallet_router


def create_brokerage_router(
    *,
    config: PaqueteriaConfig,
    storage: Storage,
    gateway: RateGateway | None = None,
) -> APIRouter:
    """Create a configured API router."""
    actual_gateway = gateway or build_gateway(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
        app.state.paqueteria_config = config
        app.state.paqueteria_storage = storage
        app.state.paqueteria_gateway = actual_gateway
        register_exception_handlers(app)
        yield

    router = APIRouter(prefix="/api", lifespan=lifespan)
    router.include_router(auth_router)
    router.include_router(quotes_router)
    router.include_router(shipments_router)
    router.include_router(tracking_router)
    router.include_router(wallet_router)
    router.include_router(admin_router)
    return router
