"""Value types exchanged with the carrier gateway and between services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import StrEnum
from typing import Any


class ShipmentStatus(StrEnum):
    PENDING = "pending"
    CREATED = "created"
    CANCELLED = "cancelled"


class TransactionType(StrEnum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"


class RechargeStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class WorkflowStatus(StrEnum):
    """Label workflow states reported by the carrier gateway."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Parcel:
    weight: Decimal
    length: Decimal | None = None
    width: Decimal | None = None
    height: Decimal | None = None


@dataclass(frozen=True)
class QuoteParams:
    origin_zip: str
    dest_zip: str
    parcel: Parcel
    origin_colonia: str | None = None
    dest_colonia: str | None = None


@dataclass(frozen=True)
class RateQuote:
    """One priced option; ``total_pricing`` is raw until margin applies."""

    id: str
    provider: str
    service_level_name: str
    total_pricing: Any
    currency: str = "MXN"
    days: int | None = None
    available_for_pickup: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "provider": self.provider,
            "serviceLevelName": self.service_level_name,
            "totalPricing": str(self.total_pricing),
            "currency": self.currency,
            "days": self.days,
            "availableForPickup": self.available_for_pickup,
        }


@dataclass(frozen=True)
class GatewayAddress:
    name: str
    phone: str
    street1: str
    zip: str
    country: str
    email: str | None = None
    city: str | None = None
    province: str | None = None
    area_level3: str | None = None


@dataclass(frozen=True)
class PurchaseRequest:
    rate_id: str
    address_from: GatewayAddress
    address_to: GatewayAddress
    packages: list[Parcel]
    carrier: str | None = None


@dataclass(frozen=True)
class PurchaseResult:
    external_id: str
    workflow_status: str
    tracking_number: str | None = None
    label_url: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TrackingCheckpoint:
    status: str
    description: str | None
    location: str | None
    timestamp: datetime


@dataclass(frozen=True)
class TrackingResult:
    tracking_number: str
    status: str
    history: list[TrackingCheckpoint] = field(default_factory=list)
