"""Deterministic offline carrier gateway."""

from __future__ import annotations

import itertools
import logging
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any

from fastapi_paqueteria.exceptions import ExternalServiceError
from fastapi_paqueteria.types import (
    PurchaseRequest,
    PurchaseResult,
    QuoteParams,
    RateQuote,
    TrackingCheckpoint,
    TrackingResult,
    WorkflowStatus,
)

logger = logging.getLogger(__name__)

# (rate id, provider, service level, surcharge, days, pickup)
MOCK_SERVICES = [
    ("rate_dhl_express", "DHL", "Express", 150, 1, True),
    ("rate_fedex_standard", "FedEx", "Standard", 120, 2, True),
    ("rate_ups_ground", "UPS", "Ground", 100, 3, True),
    ("rate_redpack_express", "Redpack", "Express", 90, 2, False),
    ("rate_estafeta_terrestre", "Estafeta", "Terrestre", 80, 3, False),
]


def _zip_prefix(zip_code: str) -> int:
    try:
        return int(zip_code[:2])
    except ValueError:
        return 0


def mock_rates(params: QuoteParams) -> list[RateQuote]:
    """Rates as a function of weight and zip-prefix distance."""
    base = Decimal(params.parcel.weight) * 50
    distance = (
        abs(_zip_prefix(params.origin_zip) - _zip_prefix(params.dest_zip))
        * 10
    )
    rates = [
        RateQuote(
            id=rate_id,
            provider=provider,
            service_level_name=service,
            total_pricing=base + distance + surcharge,
            currency="MXN",
            days=days,
            available_for_pickup=pickup,
        )
        for rate_id, provider, service, surcharge, days, pickup in (
            MOCK_SERVICES
        )
    ]
    return sorted(rates, key=lambda rate: rate.total_pricing)


class MockGateway:
    """In-process gateway used when no API credentials are configured.

    Labels are remembered per instance so that cancellation, polling and
    tracking behave consistently with earlier purchases.
    """

    def __init__(self) -> None:
        self._counter = itertools.count(1)
        self.labels: dict[str, dict[str, Any]] = {}

    async def get_quotes(self, params: QuoteParams) -> list[RateQuote]:
        return mock_rates(params)

    async def purchase_label(self, request: PurchaseRequest) -> PurchaseResult:
        number = next(self._counter)
        external_id = f"mock_shipment_{number}"
        tracking_number = f"MOCK{number:09d}MX"
        parts = request.rate_id.split("_")
        provider = request.carrier or (
            parts[1].upper() if len(parts) > 1 else "ESTAFETA"
        )
        label = {
            "id": external_id,
            "rate_id": request.rate_id,
            "provider": provider,
            "tracking_number": tracking_number,
            "label_url": f"https://labels.example.invalid/{tracking_number}.pdf",
            "workflow_status": str(WorkflowStatus.COMPLETED),
            "created_at": datetime.now(tz=UTC),
        }
        self.labels[external_id] = label
        logger.info("Mock label %s purchased", external_id)
        return self._result(label)

    async def fetch_label(self, external_id: str) -> PurchaseResult:
        return self._result(self._label(external_id))

    async def cancel_label(self, external_id: str, reason: str) -> bool:
        label = self._label(external_id)
        label["workflow_status"] = str(WorkflowStatus.CANCELLED)
        label["cancel_reason"] = reason
        return True

    async def track_label(
        self, tracking_number: str, carrier: str | None = None
    ) -> TrackingResult:
        label = next(
            (
                item
                for item in self.labels.values()
                if item["tracking_number"] == tracking_number
            ),
            None,
        )
        created_at = (
            label["created_at"]
            if label is not None
            else datetime.now(tz=UTC) - timedelta(days=2)
        )
        history = [
            TrackingCheckpoint(
                status="in_transit",
                description="El paquete llegó al centro de distribución",
                location="Centro de Distribución CDMX",
                timestamp=created_at + timedelta(days=1),
            ),
            TrackingCheckpoint(
                status="pickup",
                description="Paquete recolectado",
                location="Sucursal Roma Norte, CDMX",
                timestamp=created_at + timedelta(hours=2),
            ),
        ]
        status = "in_transit"
        if label is not None and (
            label["workflow_status"] == WorkflowStatus.CANCELLED
        ):
            status = "cancelled"
        return TrackingResult(
            tracking_number=tracking_number, status=status, history=history
        )

    def _label(self, external_id: str) -> dict[str, Any]:
        label = self.labels.get(external_id)
        if label is None:
            raise ExternalServiceError(
                f"Guía {external_id} desconocida para la paquetería"
            )
        return label

    @staticmethod
    def _result(label: dict[str, Any]) -> PurchaseResult:
        return PurchaseResult(
            external_id=label["id"],
            workflow_status=label["workflow_status"],
            tracking_number=label["tracking_number"],
            label_url=label["label_url"],
            raw={
                key: value
                for key, value in label.items()
                if key != "created_at"
            },
        )
