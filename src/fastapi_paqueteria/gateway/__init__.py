"""Carrier gateway implementations."""

from __future__ import annotations

import logging

import httpx

from fastapi_paqueteria.config import PaqueteriaConfig
from fastapi_paqueteria.gateway.mock import MockGateway
from fastapi_paqueteria.gateway.skydropx import SkydropxGateway
from fastapi_paqueteria.gateway.token import BearerTokenProvider
from fastapi_paqueteria.protocols import RateGateway

logger = logging.getLogger(__name__)

__all__ = [
    "BearerTokenProvider",
    "MockGateway",
    "SkydropxGateway",
    "build_gateway",
]


def build_gateway(
    config: PaqueteriaConfig, client: httpx.AsyncClient | None = None
) -> RateGateway:
    """Pick the live gateway when credentials exist, the mock otherwise."""
    if not config.gateway_configured:
        logger.warning("Gateway credentials missing, using mock gateway")
        return MockGateway()

    client = client or httpx.AsyncClient(
        base_url=config.gateway_base_url,
        timeout=config.gateway_timeout_seconds,
    )
    token_provider = BearerTokenProvider(
        client,
        api_key=config.gateway_api_key,
        api_secret=config.gateway_api_secret,
        refresh_margin_seconds=config.token_refresh_margin_seconds,
        default_ttl_seconds=config.default_token_ttl_seconds,
    )
    return SkydropxGateway(client, token_provider)
