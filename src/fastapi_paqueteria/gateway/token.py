"""Bearer token acquisition for the carrier gateway."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

import httpx

from fastapi_paqueteria.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)


class BearerTokenProvider:
    """Client-credentials token cache with single-flight refresh.

    The token is renewed ``refresh_margin_seconds`` before the expiry the
    gateway reports. Concurrent callers that find the cache stale wait on
    one shared refresh instead of each requesting a token.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        api_key: str,
        api_secret: str,
        token_path: str = "/oauth/token",
        refresh_margin_seconds: int = 300,
        default_ttl_seconds: int = 7200,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.client = client
        self.api_key = api_key
        self.api_secret = api_secret
        self.token_path = token_path
        self.refresh_margin_seconds = refresh_margin_seconds
        self.default_ttl_seconds = default_ttl_seconds
        self.clock = clock
        self._token: str | None = None
        self._expires_at = 0.0
        self._lock = asyncio.Lock()

    def _valid(self) -> bool:
        return self._token is not None and self.clock() < self._expires_at

    def invalidate(self) -> None:
        self._token = None
        self._expires_at = 0.0

    async def get_token(self) -> str:
        if self._valid():
            return self._token
        async with self._lock:
            if self._valid():
                return self._token
            return await self._refresh()

    async def _refresh(self) -> str:
        try:
            response = await self.client.post(
                self.token_path,
                auth=(self.api_key, self.api_secret),
                json={"grant_type": "client_credentials"},
            )
        except httpx.HTTPError as exc:
            logger.error("Gateway token request failed: %s", exc)
            raise ExternalServiceError(
                f"Error de autenticación con la paquetería: {exc}"
            ) from exc

        if response.is_error:
            logger.error(
                "Gateway token request returned %s: %s",
                response.status_code,
                response.text,
            )
            raise ExternalServiceError(
                "Error de autenticación con la paquetería: "
                f"{response.reason_phrase}"
            )

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        token = payload.get("token") or payload.get("access_token")
        if not token:
            logger.error("Gateway token response without token: %s", payload)
            raise ExternalServiceError(
                "Respuesta de autenticación inválida de la paquetería"
            )
        ttl = int(payload.get("expires_in") or self.default_ttl_seconds)
        self._token = token
        self._expires_at = self.clock() + max(
            ttl - self.refresh_margin_seconds, 0
        )
        logger.info("Gateway bearer token refreshed, valid for %ss", ttl)
        return token
