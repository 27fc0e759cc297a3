"""Shipment endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from fastapi_paqueteria.dependencies import get_current_user_id, get_lifecycle
from fastapi_paqueteria.lifecycle import ShipmentLifecycle
from fastapi_paqueteria.schemas import (
    ApiResponse,
    CancelShipmentRequest,
    ShipmentCancelledResponse,
    ShipmentCreatedResponse,
    ShipmentRequest,
    ShipmentResponse,
)

router = APIRouter(tags=["shipments"])


@router.post(
    "/shipments", response_model=ApiResponse[ShipmentCreatedResponse]
)
async def create_shipment(
    body: ShipmentRequest,
    user_id: str = Depends(get_current_user_id),
    lifecycle: ShipmentLifecycle = Depends(get_lifecycle),
) -> ApiResponse[ShipmentCreatedResponse]:
    """Buy a label and charge it to the caller's wallet."""
    created = await lifecycle.create_shipment(body, user_id)
    return ApiResponse(
        data=ShipmentCreatedResponse(
            shipment=ShipmentResponse.from_shipment(created.shipment),
            new_balance=created.new_balance,
            message=created.message,
        )
    )


@router.get("/shipments", response_model=ApiResponse[list[ShipmentResponse]])
async def list_shipments(
    user_id: str = Depends(get_current_user_id),
    lifecycle: ShipmentLifecycle = Depends(get_lifecycle),
) -> ApiResponse[list[ShipmentResponse]]:
    shipments = await lifecycle.list_shipments(user_id)
    return ApiResponse(
        data=[ShipmentResponse.from_shipment(s) for s in shipments]
    )


@router.get(
    "/shipments/{shipment_id}", response_model=ApiResponse[ShipmentResponse]
)
async def get_shipment(
    shipment_id: str,
    user_id: str = Depends(get_current_user_id),
    lifecycle: ShipmentLifecycle = Depends(get_lifecycle),
) -> ApiResponse[ShipmentResponse]:
    shipment = await lifecycle.get_shipment(shipment_id, user_id)
    return ApiResponse(data=ShipmentResponse.from_shipment(shipment))


@router.post(
    "/shipments/{shipment_id}/sync",
    response_model=ApiResponse[ShipmentResponse],
)
async def sync_shipment(
    shipment_id: str,
    user_id: str = Depends(get_current_user_id),
    lifecycle: ShipmentLifecycle = Depends(get_lifecycle),
) -> ApiResponse[ShipmentResponse]:
    """Fetch and persist the latest gateway state of a label."""
    shipment = await lifecycle.sync_shipment(shipment_id, user_id)
    return ApiResponse(data=ShipmentResponse.from_shipment(shipment))


@router.post(
    "/shipments/{shipment_id}/cancel",
    response_model=ApiResponse[ShipmentCancelledResponse],
)
async def cancel_shipment(
    shipment_id: str,
    body: CancelShipmentRequest | None = None,
    user_id: str = Depends(get_current_user_id),
    lifecycle: ShipmentLifecycle = Depends(get_lifecycle),
) -> ApiResponse[ShipmentCancelledResponse]:
    """Cancel a label upstream and refund its amount."""
    reason = (body or CancelShipmentRequest()).reason
    cancelled = await lifecycle.cancel_shipment(shipment_id, user_id, reason)
    return ApiResponse(
        data=ShipmentCancelledResponse(
            shipment=ShipmentResponse.from_shipment(cancelled.shipment),
            refunded_amount=cancelled.refunded_amount,
            new_balance=cancelled.new_balance,
            message=cancelled.message,
        )
    )
