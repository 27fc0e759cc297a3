"""SQLAlchemy models for users, shipments and the wallet ledger."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

MONEY = Numeric(12, 2)
MEASURE = Numeric(10, 2)


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(tz=UTC)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base."""


class UserModel(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=_uuid
    )
    email: Mapped[str] = mapped_column(String(255), unique=True)
    password_hash: Mapped[str | None] = mapped_column(
        String(255), nullable=True
    )
    google_id: Mapped[str | None] = mapped_column(
        String(255), nullable=True
    )
    first_name: Mapped[str | None] = mapped_column(
        String(128), nullable=True
    )
    last_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False)
    balance: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0.00"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_now, onupdate=_now
    )


class ShipmentModel(Base):
    """One purchased label."""

    __tablename__ = "shipments"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=_uuid
    )
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id"), index=True
    )
    tracking_number: Mapped[str | None] = mapped_column(
        String(128), nullable=True, index=True
    )
    carrier: Mapped[str] = mapped_column(String(64))
    service_level_name: Mapped[str | None] = mapped_column(
        String(128), nullable=True
    )

    sender_name: Mapped[str] = mapped_column(String(255))
    sender_phone: Mapped[str] = mapped_column(String(32))
    sender_email: Mapped[str | None] = mapped_column(
        String(255), nullable=True
    )
    sender_address: Mapped[str] = mapped_column(Text)
    sender_zip_code: Mapped[str] = mapped_column(String(16))
    sender_colonia: Mapped[str | None] = mapped_column(
        String(128), nullable=True
    )
    sender_city: Mapped[str | None] = mapped_column(
        String(128), nullable=True
    )
    sender_state: Mapped[str | None] = mapped_column(
        String(128), nullable=True
    )

    receiver_name: Mapped[str] = mapped_column(String(255))
    receiver_phone: Mapped[str] = mapped_column(String(32))
    receiver_email: Mapped[str | None] = mapped_column(
        String(255), nullable=True
    )
    receiver_address: Mapped[str] = mapped_column(Text)
    receiver_zip_code: Mapped[str] = mapped_column(String(16))
    receiver_colonia: Mapped[str | None] = mapped_column(
        String(128), nullable=True
    )
    receiver_city: Mapped[str | None] = mapped_column(
        String(128), nullable=True
    )
    receiver_state: Mapped[str | None] = mapped_column(
        String(128), nullable=True
    )

    weight: Mapped[Decimal] = mapped_column(MEASURE)
    length: Mapped[Decimal | None] = mapped_column(MEASURE, nullable=True)
    width: Mapped[Decimal | None] = mapped_column(MEASURE, nullable=True)
    height: Mapped[Decimal | None] = mapped_column(MEASURE, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    amount: Mapped[Decimal] = mapped_column(MONEY)
    currency: Mapped[str] = mapped_column(String(3), default="MXN")
    status: Mapped[str] = mapped_column(String(32), default="pending")
    label_url: Mapped[str | None] = mapped_column(
        String(512), nullable=True
    )
    external_shipment_id: Mapped[str | None] = mapped_column(
        String(128), nullable=True
    )
    external_data: Mapped[dict[str, Any] | None] = mapped_column(
        JSON, nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_now, onupdate=_now
    )


class TransactionModel(Base):
    """Append-only wallet ledger entry."""

    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=_uuid
    )
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id"), index=True
    )
    type: Mapped[str] = mapped_column(String(16))
    amount: Mapped[Decimal] = mapped_column(MONEY)
    balance_after: Mapped[Decimal] = mapped_column(MONEY)
    description: Mapped[str] = mapped_column(Text)
    reference_id: Mapped[str | None] = mapped_column(
        String(36), nullable=True
    )
    reference_type: Mapped[str | None] = mapped_column(
        String(32), nullable=True
    )
    status: Mapped[str] = mapped_column(String(16), default="completed")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_now
    )


class QuoteModel(Base):
    __tablename__ = "quotes"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=_uuid
    )
    user_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    from_zip_code: Mapped[str] = mapped_column(String(16))
    to_zip_code: Mapped[str] = mapped_column(String(16))
    weight: Mapped[Decimal] = mapped_column(MEASURE)
    length: Mapped[Decimal | None] = mapped_column(MEASURE, nullable=True)
    width: Mapped[Decimal | None] = mapped_column(MEASURE, nullable=True)
    height: Mapped[Decimal | None] = mapped_column(MEASURE, nullable=True)
    quotes_data: Mapped[list[dict[str, Any]]] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_now
    )


class TrackingEventModel(Base):
    __tablename__ = "tracking_events"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=_uuid
    )
    shipment_id: Mapped[str | None] = mapped_column(
        ForeignKey("shipments.id"), nullable=True
    )
    tracking_number: Mapped[str] = mapped_column(String(128), index=True)
    status: Mapped[str] = mapped_column(String(64))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    location: Mapped[str | None] = mapped_column(
        String(255), nullable=True
    )
    event_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_now
    )


class RechargeRequestModel(Base):
    __tablename__ = "recharge_requests"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=_uuid
    )
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id"), index=True
    )
    amount: Mapped[Decimal] = mapped_column(MONEY)
    payment_method: Mapped[str | None] = mapped_column(
        String(64), nullable=True
    )
    payment_reference: Mapped[str | None] = mapped_column(
        String(255), nullable=True
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(16), default="pending")
    admin_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_now
    )


class SettingModel(Base):
    __tablename__ = "settings"

    key: Mapped[str] = mapped_column(String(128), primary_key=True)
    value: Mapped[str] = mapped_column(Text)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_now, onupdate=_now
    )
