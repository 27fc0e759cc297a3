"""Shipment lifecycle tests."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from decimal import Decimal

import pytest
from conftest import add_user, shipment_payload

from fastapi_paqueteria.exceptions import (
    ConflictError,
    ExternalServiceError,
    ForbiddenError,
    InsufficientFundsError,
    NotFoundError,
    ValidationError,
)
from fastapi_paqueteria.lifecycle import (
    compose_address,
    map_workflow_status,
    select_fresh_rate,
)
from fastapi_paqueteria.types import (
    Parcel,
    PurchaseResult,
    QuoteParams,
    RateQuote,
    TrackingCheckpoint,
)


def _rate(rate_id, provider, service, price) -> RateQuote:
    return RateQuote(
        id=rate_id,
        provider=provider,
        service_level_name=service,
        total_pricing=Decimal(price),
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def test_map_workflow_status() -> None:
    assert map_workflow_status(
        PurchaseResult("e", "completed", tracking_number="T1")
    ) == "created"
    assert map_workflow_status(PurchaseResult("e", "completed")) == "pending"
    assert map_workflow_status(PurchaseResult("e", "in_progress")) == (
        "pending"
    )
    assert map_workflow_status(PurchaseResult("e", "CANCELLED")) == (
        "cancelled"
    )
    assert map_workflow_status(PurchaseResult("e", "weird")) == "pending"


def test_compose_address_prefers_granular_parts() -> None:
    assert compose_address(
        street="Av. Reforma", number="222", colonia="Juárez", flat="ignored"
    ) == "Av. Reforma 222, Juárez"
    assert compose_address(
        street=None, number=None, colonia=None, flat=" Calle 5 "
    ) == "Calle 5"
    with pytest.raises(ValidationError):
        compose_address(street=" ", number=None, colonia=None, flat=None)


def test_select_fresh_rate_matching_rules() -> None:
    rates = [
        _rate("r1", "FedEx", "Express", "200"),
        _rate("r2", "FedEx", "Standard", "150"),
        _rate("r3", "FedEx", "Standard", "140"),
        _rate("r4", "DHL", "Express", "90"),
    ]
    assert select_fresh_rate(
        rates, rate_id="r1", carrier="FedEx", service_level_name="Standard"
    ).id == "r1"
    assert select_fresh_rate(
        rates, rate_id="gone", carrier="fedex", service_level_name="Standard"
    ).id == "r3"
    assert select_fresh_rate(
        rates, rate_id="gone", carrier="FedEx", service_level_name="Ground"
    ).id == "r3"
    assert select_fresh_rate(
        rates, rate_id="gone", carrier="UPS", service_level_name=None
    ) is None


# ---------------------------------------------------------------------------
# Quotes
# ---------------------------------------------------------------------------


async def test_quote_applies_margin_and_stores(lifecycle, storage) -> None:
    params = QuoteParams(
        origin_zip="06600", dest_zip="64000", parcel=Parcel(Decimal("1"))
    )

    quote, rates = await lifecycle.quote(params, user_id="user-1")

    assert rates[0].total_pricing == Decimal("115.00")
    assert storage.quotes == [quote]
    assert quote.quotes_data[0]["totalPricing"] == "115.00"
    assert quote.from_zip_code == "06600"


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


async def test_create_charges_wallet(
    lifecycle, storage, gateway, user
) -> None:
    created = await lifecycle.create_shipment(shipment_payload(), user.id)

    shipment = created.shipment
    assert shipment.status == "created"
    assert shipment.amount == Decimal("115.00")
    assert shipment.tracking_number == "TRK-0001"
    assert shipment.external_shipment_id == "ext-1"
    assert created.new_balance == Decimal("385.00")
    assert user.balance == Decimal("385.00")
    assert "385.00" in created.message

    [transaction] = storage.transactions
    assert transaction.type == "withdrawal"
    assert transaction.amount == Decimal("-115.00")
    assert transaction.balance_after == Decimal("385.00")
    assert transaction.reference_id == shipment.id
    assert transaction.reference_type == "shipment"

    [event] = storage.tracking_events
    assert event.status == "created"
    assert event.location == "Sistema"

    assert gateway.calls == ["get_quotes", "purchase_label"]


async def test_create_sends_composed_addresses(lifecycle, gateway, user) -> None:
    await lifecycle.create_shipment(shipment_payload(), user.id)

    [purchase] = gateway.purchases
    assert purchase.address_from.street1 == "Av. Reforma 222, Juárez"
    assert purchase.address_from.country == "MX"
    assert purchase.address_to.street1 == "Calle Morelos 15, Centro"
    assert purchase.packages[0].weight == Decimal("1")


async def test_insufficient_funds_blocks_before_gateway(
    lifecycle, storage, gateway
) -> None:
    add_user(storage, "poor", balance="50.00")

    with pytest.raises(InsufficientFundsError) as exc_info:
        await lifecycle.create_shipment(shipment_payload(), "poor")

    assert exc_info.value.details == {
        "required": "115.00",
        "available": "50.00",
    }
    assert gateway.calls == []
    assert storage.shipments == {}
    assert storage.transactions == []


async def test_missing_rate_id_rejected(lifecycle, gateway, user) -> None:
    with pytest.raises(ValidationError):
        await lifecycle.create_shipment(
            shipment_payload(rateId=None), user.id
        )
    assert gateway.calls == []


async def test_invalid_payload_reports_details(lifecycle, user) -> None:
    with pytest.raises(ValidationError) as exc_info:
        await lifecycle.create_shipment(
            shipment_payload(senderPhone="123"), user.id
        )
    assert exc_info.value.details


async def test_unknown_user(lifecycle) -> None:
    with pytest.raises(NotFoundError):
        await lifecycle.create_shipment(shipment_payload(), "ghost")


async def test_price_change_requires_requote(
    lifecycle, storage, gateway, user
) -> None:
    gateway.rates = [_rate("rate_fedex_standard", "FedEx", "Standard", "120")]

    with pytest.raises(ConflictError) as exc_info:
        await lifecycle.create_shipment(shipment_payload(), user.id)

    assert exc_info.value.details == {"expected": "115.00", "current": "138.00"}
    assert "purchase_label" not in gateway.calls
    assert user.balance == Decimal("500.00")


async def test_one_cent_difference_is_tolerated(
    lifecycle, gateway, user
) -> None:
    created = await lifecycle.create_shipment(
        shipment_payload(expectedAmount="115.01"), user.id
    )
    assert created.shipment.amount == Decimal("115.01")


async def test_replaced_rate_falls_back_to_same_carrier(
    lifecycle, gateway, user
) -> None:
    gateway.rates = [
        _rate("rate_fedex_express_v2", "FedEx", "Express", "90"),
        _rate("rate_fedex_standard_v2", "FedEx", "Standard", "100"),
        _rate("rate_dhl", "DHL", "Standard", "80"),
    ]

    created = await lifecycle.create_shipment(
        shipment_payload(serviceLevelName="Standard"), user.id
    )

    assert gateway.purchases[0].rate_id == "rate_fedex_standard_v2"
    assert created.shipment.service_level_name == "Standard"


async def test_carrier_no_longer_available(lifecycle, gateway, user) -> None:
    gateway.rates = [_rate("rate_dhl", "DHL", "Express", "100")]

    with pytest.raises(ConflictError):
        await lifecycle.create_shipment(shipment_payload(), user.id)
    assert "purchase_label" not in gateway.calls


async def test_gateway_failure_charges_nothing(
    lifecycle, storage, gateway, user
) -> None:
    gateway.fail_purchase = True

    with pytest.raises(ExternalServiceError):
        await lifecycle.create_shipment(shipment_payload(), user.id)

    assert storage.shipments == {}
    assert user.balance == Decimal("500.00")


async def test_unexpected_gateway_exception_is_wrapped(
    lifecycle, gateway, user
) -> None:
    async def explode(request):
        raise RuntimeError("socket closed")

    gateway.purchase_label = explode

    with pytest.raises(ExternalServiceError, match="socket closed"):
        await lifecycle.create_shipment(shipment_payload(), user.id)


async def test_label_cancelled_at_purchase_charges_nothing(
    lifecycle, storage, gateway, user
) -> None:
    gateway.workflow_status = "cancelled"

    with pytest.raises(ExternalServiceError, match="canceló la guía"):
        await lifecycle.create_shipment(shipment_payload(), user.id)

    assert storage.shipments == {}
    assert storage.transactions == []
    assert user.balance == Decimal("500.00")


async def test_pending_label_without_tracking(
    lifecycle, storage, gateway, user
) -> None:
    gateway.workflow_status = "in_progress"
    gateway.tracking_number = None

    created = await lifecycle.create_shipment(shipment_payload(), user.id)

    assert created.shipment.status == "pending"
    assert created.new_balance == Decimal("385.00")
    assert storage.tracking_events == []


async def test_lost_debit_race_voids_label(
    lifecycle, storage, gateway, user
) -> None:
    create_shipment = storage.create_shipment

    async def create_then_drain(**fields):
        shipment = await create_shipment(**fields)
        # A concurrent charge empties the wallet.
        user.balance = Decimal("0.00")
        return shipment

    storage.create_shipment = create_then_drain

    with pytest.raises(InsufficientFundsError):
        await lifecycle.create_shipment(shipment_payload(), user.id)

    [shipment] = storage.shipments.values()
    assert shipment.status == "cancelled"
    assert gateway.cancellations == [("ext-1", "Saldo insuficiente")]
    assert storage.transactions == []


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


async def test_cancel_refunds(lifecycle, storage, gateway, user) -> None:
    created = await lifecycle.create_shipment(shipment_payload(), user.id)

    cancelled = await lifecycle.cancel_shipment(
        created.shipment.id, user.id, "Ya no se necesita"
    )

    assert cancelled.shipment.status == "cancelled"
    assert cancelled.refunded_amount == Decimal("115.00")
    assert cancelled.new_balance == Decimal("500.00")
    assert user.balance == Decimal("500.00")
    assert gateway.cancellations == [("ext-1", "Ya no se necesita")]

    deposit = storage.transactions[-1]
    assert deposit.type == "deposit"
    assert deposit.amount == Decimal("115.00")
    assert deposit.reference_id == created.shipment.id
    assert [e.status for e in storage.tracking_events] == [
        "created",
        "cancelled",
    ]


async def test_double_cancel_refunds_once(lifecycle, storage, user) -> None:
    created = await lifecycle.create_shipment(shipment_payload(), user.id)
    await lifecycle.cancel_shipment(created.shipment.id, user.id, "x")

    with pytest.raises(ConflictError):
        await lifecycle.cancel_shipment(created.shipment.id, user.id, "x")

    assert user.balance == Decimal("500.00")
    assert [t.type for t in storage.transactions] == ["withdrawal", "deposit"]


async def test_concurrent_cancels_refund_once(
    lifecycle, storage, gateway, user
) -> None:
    created = await lifecycle.create_shipment(shipment_payload(), user.id)
    cancel_label = gateway.cancel_label

    async def slow_cancel(external_id, reason):
        await asyncio.sleep(0)
        return await cancel_label(external_id, reason)

    gateway.cancel_label = slow_cancel

    results = await asyncio.gather(
        lifecycle.cancel_shipment(created.shipment.id, user.id, "a"),
        lifecycle.cancel_shipment(created.shipment.id, user.id, "b"),
        return_exceptions=True,
    )

    assert sum(isinstance(r, ConflictError) for r in results) == 1
    assert user.balance == Decimal("500.00")
    assert [t.type for t in storage.transactions] == ["withdrawal", "deposit"]


async def test_cancel_requires_ownership(lifecycle, storage, user) -> None:
    created = await lifecycle.create_shipment(shipment_payload(), user.id)
    add_user(storage, "intruder")

    with pytest.raises(ForbiddenError):
        await lifecycle.cancel_shipment(created.shipment.id, "intruder", "x")
    with pytest.raises(NotFoundError):
        await lifecycle.cancel_shipment("missing", user.id, "x")


async def test_rejected_cancellation_keeps_charge(
    lifecycle, gateway, user
) -> None:
    created = await lifecycle.create_shipment(shipment_payload(), user.id)
    gateway.fail_cancel = True

    with pytest.raises(ExternalServiceError):
        await lifecycle.cancel_shipment(created.shipment.id, user.id, "x")

    assert created.shipment.status == "created"
    assert user.balance == Decimal("385.00")


async def test_cancel_without_gateway_reference(
    lifecycle, storage, user
) -> None:
    shipment = await storage.create_shipment(
        user_id=user.id,
        status="pending",
        external_shipment_id=None,
        tracking_number=None,
        amount=Decimal("50.00"),
    )

    with pytest.raises(ValidationError):
        await lifecycle.cancel_shipment(shipment.id, user.id, "x")


# ---------------------------------------------------------------------------
# Sync and tracking
# ---------------------------------------------------------------------------


async def test_sync_promotes_pending_once(
    lifecycle, storage, gateway, user
) -> None:
    gateway.workflow_status = "in_progress"
    gateway.tracking_number = None
    created = await lifecycle.create_shipment(shipment_payload(), user.id)
    gateway.fetch_result = PurchaseResult(
        external_id="ext-1",
        workflow_status="completed",
        tracking_number="TRK-LATE",
        label_url="https://labels.test/late.pdf",
    )

    synced = await lifecycle.sync_shipment(created.shipment.id, user.id)
    await lifecycle.sync_shipment(created.shipment.id, user.id)

    assert synced.status == "created"
    assert synced.tracking_number == "TRK-LATE"
    assert synced.label_url == "https://labels.test/late.pdf"
    assert [e.status for e in storage.tracking_events] == ["created"]


async def test_sync_never_downgrades_created(lifecycle, gateway, user) -> None:
    created = await lifecycle.create_shipment(shipment_payload(), user.id)
    gateway.fetch_result = PurchaseResult(
        external_id="ext-1", workflow_status="in_progress"
    )

    synced = await lifecycle.sync_shipment(created.shipment.id, user.id)

    assert synced.status == "created"
    assert synced.tracking_number == "TRK-0001"


async def test_sync_refunds_upstream_cancellation(
    lifecycle, storage, gateway, user
) -> None:
    created = await lifecycle.create_shipment(shipment_payload(), user.id)
    gateway.fetch_result = PurchaseResult(
        external_id="ext-1", workflow_status="cancelled"
    )

    synced = await lifecycle.sync_shipment(created.shipment.id, user.id)
    again = await lifecycle.sync_shipment(created.shipment.id, user.id)

    assert synced.status == "cancelled"
    assert again.status == "cancelled"
    assert user.balance == Decimal("500.00")
    assert [t.type for t in storage.transactions] == ["withdrawal", "deposit"]


async def test_sync_after_concurrent_cancel_does_not_refund_again(
    lifecycle, storage, gateway, user
) -> None:
    created = await lifecycle.create_shipment(shipment_payload(), user.id)
    gateway.fetch_result = PurchaseResult(
        external_id="ext-1", workflow_status="cancelled"
    )
    fetch_label = gateway.fetch_label

    async def fetch_then_cancel(external_id):
        result = await fetch_label(external_id)
        await lifecycle.cancel_shipment(created.shipment.id, user.id, "x")
        return result

    gateway.fetch_label = fetch_then_cancel

    synced = await lifecycle.sync_shipment(created.shipment.id, user.id)

    assert synced.status == "cancelled"
    assert user.balance == Decimal("500.00")
    assert [t.type for t in storage.transactions] == ["withdrawal", "deposit"]


async def test_track_merges_carrier_history(
    lifecycle, storage, gateway, user
) -> None:
    created = await lifecycle.create_shipment(shipment_payload(), user.id)
    gateway.history = [
        TrackingCheckpoint(
            "in_transit",
            "En tránsito",
            "Monterrey",
            datetime(2030, 1, 2, tzinfo=UTC),
        )
    ]

    shipment, status, history = await lifecycle.track("TRK-0001")
    await lifecycle.track("TRK-0001")

    assert status == "in_transit"
    assert shipment.status == created.shipment.status == "created"
    assert [e.status for e in history] == ["in_transit", "created"]
    assert len(storage.tracking_events) == 2


async def test_track_unknown_number(lifecycle) -> None:
    with pytest.raises(NotFoundError):
        await lifecycle.track("NOPE")


async def test_get_and_list_are_owner_scoped(
    lifecycle, storage, user
) -> None:
    created = await lifecycle.create_shipment(shipment_payload(), user.id)
    add_user(storage, "other")

    assert await lifecycle.get_shipment(created.shipment.id, user.id) is (
        created.shipment
    )
    assert await lifecycle.list_shipments(user.id) == [created.shipment]
    assert await lifecycle.list_shipments("other") == []
    with pytest.raises(ForbiddenError):
        await lifecycle.get_shipment(created.shipment.id, "other")
