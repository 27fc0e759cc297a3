"""Request and response schemas for the brokerage endpoints."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator
from pydantic.alias_generators import to_camel

from fastapi_paqueteria.types import RateQuote

T = TypeVar("T")

ZipCode = Annotated[str, Field(min_length=5, max_length=10)]


class CamelModel(BaseModel):
    """Base model speaking camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ApiResponse(BaseModel, Generic[T]):
    """``{success, data}`` envelope shared by every endpoint."""

    success: bool = True
    data: T | None = None


# Requests


class QuoteRequest(CamelModel):
    from_zip_code: ZipCode
    to_zip_code: ZipCode
    from_colonia: str | None = None
    to_colonia: str | None = None
    weight: Decimal = Field(gt=0)
    length: Decimal | None = Field(default=None, gt=0)
    width: Decimal | None = Field(default=None, gt=0)
    height: Decimal | None = Field(default=None, gt=0)


class ShipmentRequest(CamelModel):
    """Label purchase request.

    Each party needs either a flat ``address`` or at least its ``street``;
    the granular fields win when both are present.
    """

    sender_name: str = Field(min_length=1)
    sender_phone: str = Field(min_length=10)
    sender_email: str | None = None
    sender_address: str | None = None
    sender_street: str | None = None
    sender_number: str | None = None
    sender_colonia: str | None = None
    sender_city: str | None = None
    sender_state: str | None = None
    sender_zip_code: ZipCode

    receiver_name: str = Field(min_length=1)
    receiver_phone: str = Field(min_length=10)
    receiver_email: str | None = None
    receiver_address: str | None = None
    receiver_street: str | None = None
    receiver_number: str | None = None
    receiver_colonia: str | None = None
    receiver_city: str | None = None
    receiver_state: str | None = None
    receiver_zip_code: ZipCode

    weight: Decimal = Field(gt=0)
    length: Decimal | None = Field(default=None, gt=0)
    width: Decimal | None = Field(default=None, gt=0)
    height: Decimal | None = Field(default=None, gt=0)
    description: str | None = None

    carrier: str = Field(min_length=1)
    service_level_name: str | None = None
    rate_id: str | None = None
    expected_amount: Decimal = Field(gt=0)

    @model_validator(mode="after")
    def _require_addresses(self) -> ShipmentRequest:
        for party in ("sender", "receiver"):
            flat = getattr(self, f"{party}_address")
            street = getattr(self, f"{party}_street")
            if not (flat and flat.strip()) and not (street and street.strip()):
                raise ValueError(f"Dirección requerida ({party})")
        return self


class CancelShipmentRequest(CamelModel):
    reason: str = Field(
        default="Cancelado por el usuario", min_length=1, max_length=255
    )


class RechargeSubmitRequest(CamelModel):
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    payment_method: str | None = None
    payment_reference: str | None = None
    notes: str | None = None


class RechargeDecisionRequest(CamelModel):
    notes: str | None = None


class MarginUpdateRequest(CamelModel):
    value: Decimal = Field(ge=0, le=100)


class RegisterRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=6)
    first_name: str = Field(min_length=1)
    last_name: str | None = None


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=1)


# Responses


class RateResponse(CamelModel):
    id: str
    provider: str
    service_level_name: str
    total_pricing: Decimal | str
    currency: str
    days: int | None = None
    available_for_pickup: bool = False

    @classmethod
    def from_rate(cls, rate: RateQuote) -> RateResponse:
        pricing = rate.total_pricing
        if not isinstance(pricing, Decimal):
            pricing = str(pricing)
        return cls(
            id=rate.id,
            provider=rate.provider,
            service_level_name=rate.service_level_name,
            total_pricing=pricing,
            currency=rate.currency,
            days=rate.days,
            available_for_pickup=rate.available_for_pickup,
        )


class QuoteResponse(CamelModel):
    quote_id: str
    rates: list[RateResponse]


class ShipmentResponse(CamelModel):
    id: str
    user_id: str
    tracking_number: str | None = None
    carrier: str
    service_level_name: str | None = None
    sender_name: str
    sender_phone: str
    sender_address: str
    sender_zip_code: str
    receiver_name: str
    receiver_phone: str
    receiver_address: str
    receiver_zip_code: str
    weight: Decimal
    length: Decimal | None = None
    width: Decimal | None = None
    height: Decimal | None = None
    description: str | None = None
    amount: Decimal
    currency: str
    status: str
    label_url: str | None = None
    external_shipment_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_shipment(cls, shipment: Any) -> ShipmentResponse:
        return cls.model_validate(shipment)


class ShipmentCreatedResponse(CamelModel):
    shipment: ShipmentResponse
    new_balance: Decimal
    message: str


class ShipmentCancelledResponse(CamelModel):
    shipment: ShipmentResponse
    refunded_amount: Decimal
    new_balance: Decimal
    message: str


class TrackingEventResponse(CamelModel):
    id: str
    tracking_number: str
    status: str
    description: str | None = None
    location: str | None = None
    event_date: datetime | None = None


class TrackingDetails(CamelModel):
    status: str
    history: list[TrackingEventResponse]


class TrackingResponse(CamelModel):
    shipment: ShipmentResponse
    tracking: TrackingDetails


class TransactionResponse(CamelModel):
    id: str
    type: str
    amount: Decimal
    balance_after: Decimal
    description: str
    reference_id: str | None = None
    reference_type: str | None = None
    status: str
    created_at: datetime | None = None


class BalanceResponse(CamelModel):
    balance: Decimal
    currency: str


class RechargeRequestResponse(CamelModel):
    id: str
    user_id: str
    amount: Decimal
    payment_method: str | None = None
    payment_reference: str | None = None
    notes: str | None = None
    status: str
    admin_id: str | None = None
    admin_notes: str | None = None
    processed_at: datetime | None = None
    created_at: datetime | None = None


class RechargeApprovedResponse(CamelModel):
    request: RechargeRequestResponse
    new_balance: Decimal


class UserResponse(CamelModel):
    id: str
    email: str
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None
    is_admin: bool = False
    balance: Decimal
    created_at: datetime | None = None


class AuthResponse(CamelModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


class MarginResponse(CamelModel):
    value: Decimal
