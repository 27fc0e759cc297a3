"""Shared fixtures for fastapi-paqueteria tests."""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from types import SimpleNamespace
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from fastapi_paqueteria.config import PaqueteriaConfig
from fastapi_paqueteria.exceptions import (
    ExternalServiceError,
    InsufficientFundsError,
    NotFoundError,
    register_exception_handlers,
)
from fastapi_paqueteria.identity import LocalIdentity
from fastapi_paqueteria.lifecycle import ShipmentLifecycle
from fastapi_paqueteria.margin import MarginPolicy
from fastapi_paqueteria.recharge import RechargeWorkflow
from fastapi_paqueteria.router import create_brokerage_router
from fastapi_paqueteria.security import create_access_token
from fastapi_paqueteria.tracking import TrackingLog
from fastapi_paqueteria.types import (
    PurchaseResult,
    RateQuote,
    TrackingCheckpoint,
    TrackingResult,
)
from fastapi_paqueteria.wallet import WalletLedger

CENT = Decimal("0.01")


def _now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class DemoUser:
    id: str
    email: str
    password_hash: str | None = None
    google_id: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None
    is_admin: bool = False
    balance: Decimal = Decimal("0.00")
    created_at: datetime = field(default_factory=_now)


class InMemoryStorage:
    def __init__(self) -> None:
        self.users: dict[str, DemoUser] = {}
        self.shipments: dict[str, SimpleNamespace] = {}
        self.transactions: list[SimpleNamespace] = []
        self.quotes: list[SimpleNamespace] = []
        self.tracking_events: list[SimpleNamespace] = []
        self.recharges: dict[str, SimpleNamespace] = {}
        self.settings: dict[str, SimpleNamespace] = {}
        self._counter = itertools.count(1)

    def _id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._counter)}"

    async def create_user(self, **fields: Any) -> DemoUser:
        balance = Decimal(fields.pop("balance", None) or 0).quantize(CENT)
        user = DemoUser(
            id=fields.pop("id", None) or self._id("u"),
            balance=balance,
            **fields,
        )
        self.users[user.id] = user
        return user

    async def get_user(self, user_id: str) -> DemoUser | None:
        return self.users.get(user_id)

    async def get_user_by_email(self, email: str) -> DemoUser | None:
        return next(
            (u for u in self.users.values() if u.email == email), None
        )

    async def list_users(self) -> list[DemoUser]:
        return list(self.users.values())

    async def apply_balance_change(
        self,
        user_id: str,
        amount: Decimal,
        *,
        type,
        description: str,
        reference_id: str | None = None,
        reference_type: str | None = None,
    ) -> tuple[DemoUser, SimpleNamespace]:
        user = self.users.get(user_id)
        if user is None:
            raise NotFoundError("Usuario no encontrado")
        new_balance = (user.balance + amount).quantize(CENT)
        if new_balance < 0:
            raise InsufficientFundsError(
                required=-amount, available=user.balance
            )
        user.balance = new_balance
        transaction = SimpleNamespace(
            id=self._id("t"),
            user_id=user_id,
            type=str(type),
            amount=amount,
            balance_after=new_balance,
            description=description,
            reference_id=reference_id,
            reference_type=reference_type,
            status="completed",
            created_at=_now(),
        )
        self.transactions.append(transaction)
        return user, transaction

    async def list_transactions(self, user_id: str) -> list[SimpleNamespace]:
        return [t for t in reversed(self.transactions) if t.user_id == user_id]

    async def create_shipment(self, **fields: Any) -> SimpleNamespace:
        shipment = SimpleNamespace(
            id=self._id("s"), created_at=_now(), updated_at=_now(), **fields
        )
        self.shipments[shipment.id] = shipment
        return shipment

    async def get_shipment(self, shipment_id: str) -> SimpleNamespace | None:
        return self.shipments.get(shipment_id)

    async def get_shipment_by_tracking(
        self, tracking_number: str
    ) -> SimpleNamespace | None:
        return next(
            (
                s
                for s in self.shipments.values()
                if s.tracking_number == tracking_number
            ),
            None,
        )

    async def list_shipments(self, user_id: str) -> list[SimpleNamespace]:
        return [
            s for s in reversed(self.shipments.values()) if s.user_id == user_id
        ]

    async def update_shipment(
        self, shipment_id: str, **fields: Any
    ) -> SimpleNamespace:
        shipment = self.shipments.get(shipment_id)
        if shipment is None:
            raise NotFoundError("Envío no encontrado")
        for key, value in fields.items():
            setattr(shipment, key, value)
        shipment.updated_at = _now()
        return shipment

    async def claim_shipment_cancellation(
        self, shipment_id: str
    ) -> SimpleNamespace | None:
        shipment = self.shipments.get(shipment_id)
        if shipment is None or shipment.status == "cancelled":
            return None
        shipment.status = "cancelled"
        shipment.updated_at = _now()
        return shipment

    async def create_quote(self, **fields: Any) -> SimpleNamespace:
        quote = SimpleNamespace(id=self._id("q"), created_at=_now(), **fields)
        self.quotes.append(quote)
        return quote

    async def create_tracking_event(self, **fields: Any) -> SimpleNamespace:
        event = SimpleNamespace(id=self._id("e"), created_at=_now(), **fields)
        self.tracking_events.append(event)
        return event

    async def list_tracking_events(
        self, tracking_number: str
    ) -> list[SimpleNamespace]:
        events = [
            e
            for e in self.tracking_events
            if e.tracking_number == tracking_number
        ]
        return sorted(events, key=lambda e: e.event_date, reverse=True)

    async def create_recharge_request(self, **fields: Any) -> SimpleNamespace:
        request = SimpleNamespace(
            id=self._id("r"),
            admin_id=None,
            admin_notes=None,
            processed_at=None,
            created_at=_now(),
            **fields,
        )
        self.recharges[request.id] = request
        return request

    async def get_recharge_request(
        self, request_id: str
    ) -> SimpleNamespace | None:
        return self.recharges.get(request_id)

    async def list_recharge_requests(
        self, *, user_id: str | None = None, status: str | None = None
    ) -> list[SimpleNamespace]:
        return [
            r
            for r in self.recharges.values()
            if (user_id is None or r.user_id == user_id)
            and (status is None or r.status == status)
        ]

    async def claim_recharge_request(
        self,
        request_id: str,
        *,
        status: str,
        admin_id: str,
        notes: str | None,
    ) -> SimpleNamespace | None:
        request = self.recharges.get(request_id)
        if request is None or request.status != "pending":
            return None
        request.status = status
        request.admin_id = admin_id
        request.admin_notes = notes
        request.processed_at = _now()
        return request

    async def get_setting(self, key: str) -> SimpleNamespace | None:
        return self.settings.get(key)

    async def upsert_setting(
        self, key: str, value: str, description: str | None = None
    ) -> SimpleNamespace:
        setting = SimpleNamespace(key=key, value=value, description=description)
        self.settings[key] = setting
        return setting


class StubGateway:
    """Deterministic gateway that records every call."""

    def __init__(
        self,
        rates: list[RateQuote] | None = None,
        *,
        workflow_status: str = "completed",
        tracking_number: str | None = "TRK-0001",
    ) -> None:
        self.rates = rates or [
            RateQuote(
                id="rate_fedex_standard",
                provider="FedEx",
                service_level_name="Standard",
                total_pricing=Decimal("100.00"),
                days=2,
            )
        ]
        self.workflow_status = workflow_status
        self.tracking_number = tracking_number
        self.calls: list[str] = []
        self.purchases: list[Any] = []
        self.cancellations: list[tuple[str, str]] = []
        self.fail_purchase = False
        self.fail_cancel = False
        self.fetch_result: PurchaseResult | None = None
        self.history: list[TrackingCheckpoint] = []
        self._counter = itertools.count(1)

    async def get_quotes(self, params) -> list[RateQuote]:
        self.calls.append("get_quotes")
        return list(self.rates)

    async def purchase_label(self, request) -> PurchaseResult:
        self.calls.append("purchase_label")
        if self.fail_purchase:
            raise ExternalServiceError("Error al crear guía: timeout")
        self.purchases.append(request)
        return PurchaseResult(
            external_id=f"ext-{next(self._counter)}",
            workflow_status=self.workflow_status,
            tracking_number=self.tracking_number,
            label_url=(
                f"https://labels.test/{self.tracking_number}.pdf"
                if self.tracking_number
                else None
            ),
            raw={"rate_id": request.rate_id},
        )

    async def fetch_label(self, external_id: str) -> PurchaseResult:
        self.calls.append("fetch_label")
        return self.fetch_result or PurchaseResult(
            external_id=external_id,
            workflow_status=self.workflow_status,
            tracking_number=self.tracking_number,
        )

    async def cancel_label(self, external_id: str, reason: str) -> bool:
        self.calls.append("cancel_label")
        if self.fail_cancel:
            raise ExternalServiceError("Error al cancelar guía: rechazado")
        self.cancellations.append((external_id, reason))
        return True

    async def track_label(
        self, tracking_number: str, carrier: str | None = None
    ) -> TrackingResult:
        self.calls.append("track_label")
        return TrackingResult(
            tracking_number=tracking_number,
            status="in_transit",
            history=list(self.history),
        )


def shipment_payload(**overrides: Any) -> dict[str, Any]:
    payload = {
        "senderName": "Ana López",
        "senderPhone": "5512345678",
        "senderStreet": "Av. Reforma",
        "senderNumber": "222",
        "senderColonia": "Juárez",
        "senderZipCode": "06600",
        "receiverName": "Luis Pérez",
        "receiverPhone": "8187654321",
        "receiverAddress": "Calle Morelos 15, Centro",
        "receiverZipCode": "64000",
        "weight": "1",
        "carrier": "FedEx",
        "rateId": "rate_fedex_standard",
        "expectedAmount": "115.00",
    }
    payload.update(overrides)
    return payload


@pytest.fixture()
def config() -> PaqueteriaConfig:
    return PaqueteriaConfig(jwt_secret_key="test-secret")


@pytest.fixture()
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture()
def gateway() -> StubGateway:
    return StubGateway()


@pytest.fixture()
def ledger(storage) -> WalletLedger:
    return WalletLedger(storage)


@pytest.fixture()
def tracking_log(storage) -> TrackingLog:
    return TrackingLog(storage)


@pytest.fixture()
def lifecycle(storage, gateway, ledger, tracking_log) -> ShipmentLifecycle:
    return ShipmentLifecycle(
        storage=storage,
        gateway=gateway,
        ledger=ledger,
        margin=MarginPolicy(storage),
        tracking=tracking_log,
    )


@pytest.fixture()
def recharge_workflow(storage, ledger) -> RechargeWorkflow:
    return RechargeWorkflow(storage, ledger)


def add_user(
    storage: InMemoryStorage,
    user_id: str,
    *,
    balance: str = "0.00",
    **fields: Any,
) -> DemoUser:
    user = DemoUser(
        id=user_id,
        email=fields.pop("email", f"{user_id}@example.com"),
        balance=Decimal(balance),
        **fields,
    )
    storage.users[user.id] = user
    return user


@pytest.fixture()
def user(storage) -> DemoUser:
    return add_user(
        storage, "user-1", email="ana@example.com", balance="500.00"
    )


@pytest.fixture()
def admin(storage) -> DemoUser:
    return add_user(
        storage, "admin-1", email="admin@example.com", is_admin=True
    )


def auth_headers(user_id: str, config: PaqueteriaConfig) -> dict[str, str]:
    token = create_access_token(LocalIdentity(user_id=user_id), config)
    return {"Authorization": f"Bearer {token}"}


def create_client(storage, gateway, config) -> TestClient:
    app = FastAPI()
    register_exception_handlers(app)
    app.include_router(
        create_brokerage_router(
            config=config, storage=storage, gateway=gateway
        )
    )
    return TestClient(app)


@pytest.fixture()
async def async_engine():
    """Create an in-memory aiosqlite async engine."""
    from sqlalchemy.ext.asyncio import create_async_engine

    from fastapi_paqueteria.contrib.sqlalchemy.models import Base

    engine = create_async_engine("sqlite+aiosqlite://", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture()
async def async_session_factory(async_engine):
    """Create an async session factory bound to the in-memory engine."""
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    factory = async_sessionmaker(
        async_engine, class_=AsyncSession, expire_on_commit=False
    )
    yield factory


@pytest.fixture()
def sqlalchemy_storage(async_session_factory):
    """Create an SQLAlchemyStorage."""
    from fastapi_paqueteria.contrib.sqlalchemy.repository import (
        SQLAlchemyStorage,
    )

    return SQLAlchemyStorage(async_session_factory)
