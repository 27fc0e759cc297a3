"""Runnable brokerage service."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from fastapi_paqueteria.config import PaqueteriaConfig
from fastapi_paqueteria.contrib.sqlalchemy.models import Base
from fastapi_paqueteria.contrib.sqlalchemy.repository import (
    SQLAlchemyStorage,
)
from fastapi_paqueteria.exceptions import register_exception_handlers
from fastapi_paqueteria.gateway import build_gateway
from fastapi_paqueteria.protocols import RateGateway
from fastapi_paqueteria.router import create_brokerage_router

logger = logging.getLogger(__name__)


def create_app(
    config: PaqueteriaConfig | None = None,
    *,
    gateway: RateGateway | None = None,
) -> FastAPI:
    """Wire SQLAlchemy storage, the carrier gateway and all routes."""
    config = config or PaqueteriaConfig()
    engine = create_async_engine(config.database_url, echo=False)
    session_factory = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )
    storage = SQLAlchemyStorage(session_factory)
    gateway = gateway or build_gateway(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database ready at %s", engine.url.render_as_string())
        yield
        close = getattr(getattr(gateway, "client", None), "aclose", None)
        if close is not None:
            await close()
        await engine.dispose()

    app = FastAPI(title="Paquetería", lifespan=lifespan)
    register_exception_handlers(app)
    app.include_router(
        create_brokerage_router(
            config=config, storage=storage, gateway=gateway
        )
    )

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app
