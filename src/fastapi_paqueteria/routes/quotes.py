"""Rate quote endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from fastapi_paqueteria.dependencies import get_lifecycle
from fastapi_paqueteria.lifecycle import ShipmentLifecycle
from fastapi_paqueteria.schemas import (
    ApiResponse,
    QuoteRequest,
    QuoteResponse,
    RateResponse,
)
from fastapi_paqueteria.types import Parcel, QuoteParams

router = APIRouter(tags=["quotes"])


@router.post("/quotes", response_model=ApiResponse[QuoteResponse])
async def create_quote(
    body: QuoteRequest,
    lifecycle: ShipmentLifecycle = Depends(get_lifecycle),
) -> ApiResponse[QuoteResponse]:
    """Quote every carrier with the current margin applied."""
    params = QuoteParams(
        origin_zip=body.from_zip_code,
        dest_zip=body.to_zip_code,
        origin_colonia=body.from_colonia,
        dest_colonia=body.to_colonia,
        parcel=Parcel(
            weight=body.weight,
            length=body.length,
            width=body.width,
            height=body.height,
        ),
    )
    quote, rates = await lifecycle.quote(params)
    return ApiResponse(
        data=QuoteResponse(
            quote_id=quote.id,
            rates=[RateResponse.from_rate(rate) for rate in rates],
        )
    )
