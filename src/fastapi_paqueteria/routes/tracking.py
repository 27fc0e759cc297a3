"""Tracking endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from fastapi_paqueteria.dependencies import get_lifecycle
from fastapi_paqueteria.lifecycle import ShipmentLifecycle
from fastapi_paqueteria.schemas import (
    ApiResponse,
    ShipmentResponse,
    TrackingDetails,
    TrackingEventResponse,
    TrackingResponse,
)

router = APIRouter(tags=["tracking"])


@router.get(
    "/tracking/{tracking_number}",
    response_model=ApiResponse[TrackingResponse],
)
async def track_package(
    tracking_number: str,
    lifecycle: ShipmentLifecycle = Depends(get_lifecycle),
) -> ApiResponse[TrackingResponse]:
    """Merge the carrier history into the log and return it."""
    shipment, status, history = await lifecycle.track(tracking_number)
    return ApiResponse(
        data=TrackingResponse(
            shipment=ShipmentResponse.from_shipment(shipment),
            tracking=TrackingDetails(
                status=status,
                history=[
                    TrackingEventResponse.model_validate(event)
                    for event in history
                ],
            ),
        )
    )
