"""Skydropx REST client."""

from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import datetime
from collections.abc import Callable
from typing import Any, TypeVar

import httpx

from fastapi_paqueteria.exceptions import ExternalServiceError
from fastapi_paqueteria.protocols import TokenProvider
from fastapi_paqueteria.types import (
    Parcel,
    PurchaseRequest,
    PurchaseResult,
    QuoteParams,
    RateQuote,
    TrackingCheckpoint,
    TrackingResult,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def parcel_payload(parcel: Parcel) -> dict[str, float]:
    payload = {"weight": float(parcel.weight)}
    for dimension in ("length", "width", "height"):
        value = getattr(parcel, dimension)
        if value is not None:
            payload[dimension] = float(value)
    return payload


def _rate_from_payload(item: dict[str, Any]) -> RateQuote:
    if not item.get("id"):
        raise KeyError("id")
    return RateQuote(
        id=str(item["id"]),
        provider=str(item.get("provider", "")),
        service_level_name=str(item.get("service_level_name", "")),
        total_pricing=item.get("total_pricing"),
        currency=item.get("currency") or "MXN",
        days=item.get("days"),
        available_for_pickup=bool(item.get("available_for_pickup", False)),
    )


def _purchase_from_payload(data: dict[str, Any]) -> PurchaseResult:
    if not data.get("id"):
        raise KeyError("id")
    return PurchaseResult(
        external_id=str(data["id"]),
        workflow_status=str(data.get("workflow_status") or "completed"),
        tracking_number=data.get("tracking_number") or None,
        label_url=data.get("label_url") or None,
        raw=data,
    )


class SkydropxGateway:
    """Carrier gateway backed by the Skydropx API.

    Failures surface as ``ExternalServiceError``. Nothing is retried.
    """

    def __init__(
        self, client: httpx.AsyncClient, token_provider: TokenProvider
    ) -> None:
        self.client = client
        self.token_provider = token_provider

    async def _request(
        self,
        method: str,
        path: str,
        *,
        action: str,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        token = await self.token_provider.get_token()
        try:
            response = await self.client.request(
                method,
                path,
                json=json,
                params=params,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as exc:
            logger.error(
                "Gateway %s %s failed (request=%r): %s",
                method,
                path,
                json,
                exc,
            )
            raise ExternalServiceError(f"Error al {action}: {exc}") from exc

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.is_error:
            logger.error(
                "Gateway %s %s returned %s (request=%r, response=%s)",
                method,
                path,
                response.status_code,
                json,
                response.text,
            )
            if response.status_code == 401:
                invalidate = getattr(self.token_provider, "invalidate", None)
                if invalidate is not None:
                    invalidate()
            message = (
                body.get("message") if isinstance(body, dict) else None
            ) or response.reason_phrase
            raise ExternalServiceError(f"Error al {action}: {message}")

        if not isinstance(body, dict) or "data" not in body:
            logger.warning(
                "Unexpected gateway response for %s %s: %r",
                method,
                path,
                body,
            )
            raise ExternalServiceError(
                f"Error al {action}: respuesta inválida de la paquetería"
            )
        return body["data"]

    def _parse(self, action: str, data: Any, parser: Callable[[Any], T]) -> T:
        """Run ``parser`` on a response payload of unexpected shape safely."""
        try:
            return parser(data)
        except (KeyError, TypeError, AttributeError, ValueError) as exc:
            logger.error(
                "Invalid gateway payload while trying to %s: %r (%s)",
                action,
                data,
                exc,
            )
            raise ExternalServiceError(
                f"Error al {action}: respuesta inválida de la paquetería"
            ) from exc

    async def get_quotes(self, params: QuoteParams) -> list[RateQuote]:
        payload: dict[str, Any] = {
            "zip_from": params.origin_zip,
            "zip_to": params.dest_zip,
            "parcel": parcel_payload(params.parcel),
        }
        if params.origin_colonia:
            payload["colonia_from"] = params.origin_colonia
        if params.dest_colonia:
            payload["colonia_to"] = params.dest_colonia
        action = "obtener cotizaciones"
        data = await self._request(
            "POST", "/quotations", action=action, json=payload
        )
        return self._parse(action, data, _rates_from_payload)

    async def purchase_label(self, request: PurchaseRequest) -> PurchaseResult:
        payload = {
            "rate_id": request.rate_id,
            "address_from": _address_payload(request.address_from),
            "address_to": _address_payload(request.address_to),
            "parcels": [parcel_payload(p) for p in request.packages],
        }
        action = "crear guía"
        data = await self._request(
            "POST", "/shipments", action=action, json=payload
        )
        return self._parse(action, data, _purchase_from_payload)

    async def fetch_label(self, external_id: str) -> PurchaseResult:
        action = "consultar guía"
        data = await self._request(
            "GET", f"/shipments/{external_id}", action=action
        )
        return self._parse(action, data, _purchase_from_payload)

    async def cancel_label(self, external_id: str, reason: str) -> bool:
        await self._request(
            "POST",
            f"/shipments/{external_id}/cancellations",
            action="cancelar guía",
            json={"reason": reason},
        )
        return True

    async def track_label(
        self, tracking_number: str, carrier: str | None = None
    ) -> TrackingResult:
        action = "rastrear paquete"
        data = await self._request(
            "GET",
            f"/trackings/{tracking_number}",
            action=action,
            params={"carrier": carrier} if carrier else None,
        )
        return self._parse(
            action,
            data,
            lambda payload: _tracking_from_payload(payload, tracking_number),
        )


def _rates_from_payload(data: Any) -> list[RateQuote]:
    if not isinstance(data, list):
        raise TypeError("quotations payload is not a list")
    return [_rate_from_payload(item) for item in data]


def _tracking_from_payload(
    data: dict[str, Any], tracking_number: str
) -> TrackingResult:
    history = []
    for item in data.get("tracking_history") or []:
        try:
            timestamp = datetime.fromisoformat(str(item["timestamp"]))
        except (KeyError, TypeError, ValueError):
            logger.warning("Skipping tracking entry %r", item)
            continue
        history.append(
            TrackingCheckpoint(
                status=str(item.get("status", "")),
                description=item.get("description"),
                location=item.get("location"),
                timestamp=timestamp,
            )
        )
    return TrackingResult(
        tracking_number=str(data.get("tracking_number", tracking_number)),
        status=str(data.get("tracking_status", "")),
        history=history,
    )


def _address_payload(address) -> dict[str, Any]:
    return {k: v for k, v in asdict(address).items() if v is not None}
