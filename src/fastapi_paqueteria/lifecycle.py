"""Wallet-funded shipment lifecycle.

``pending -> created | cancelled`` and ``created -> cancelled``;
``cancelled`` is terminal. A shipment is ``pending`` while the gateway has
accepted the purchase but not yet assigned a tracking number.

Money moves only through :class:`~fastapi_paqueteria.wallet.WalletLedger`.
The affordability check runs before any gateway call, and a refund is
only issued after the gateway confirms the cancellation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from fastapi_paqueteria.exceptions import (
    ConflictError,
    ExternalServiceError,
    ForbiddenError,
    InsufficientFundsError,
    NotFoundError,
    PaqueteriaError,
    ValidationError,
)
from fastapi_paqueteria.margin import CENT, MarginPolicy, to_money
from fastapi_paqueteria.protocols import RateGateway, Storage
from fastapi_paqueteria.schemas import ShipmentRequest
from fastapi_paqueteria.tracking import TrackingLog
from fastapi_paqueteria.types import (
    GatewayAddress,
    Parcel,
    PurchaseRequest,
    PurchaseResult,
    QuoteParams,
    RateQuote,
    ShipmentStatus,
    WorkflowStatus,
)
from fastapi_paqueteria.wallet import WalletLedger

logger = logging.getLogger(__name__)

REFERENCE_TYPE = "shipment"


@dataclass(frozen=True)
class ShipmentCreated:
    shipment: Any
    new_balance: Decimal
    message: str


@dataclass(frozen=True)
class ShipmentCancelled:
    shipment: Any
    refunded_amount: Decimal
    new_balance: Decimal
    message: str


def map_workflow_status(result: PurchaseResult) -> ShipmentStatus:
    """Translate a gateway workflow status into a lifecycle state."""
    status = str(result.workflow_status).lower()
    if status == WorkflowStatus.CANCELLED:
        return ShipmentStatus.CANCELLED
    if status == WorkflowStatus.COMPLETED and result.tracking_number:
        return ShipmentStatus.CREATED
    if status not in (WorkflowStatus.COMPLETED, WorkflowStatus.IN_PROGRESS):
        logger.warning(
            "Unknown workflow status %r for %s, treating as pending",
            result.workflow_status,
            result.external_id,
        )
    return ShipmentStatus.PENDING


def compose_address(
    *,
    street: str | None,
    number: str | None,
    colonia: str | None,
    flat: str | None,
) -> str:
    """Join granular address parts, falling back to the flat string."""
    if street and street.strip():
        line = street.strip()
        if number and number.strip():
            line = f"{line} {number.strip()}"
        if colonia and colonia.strip():
            line = f"{line}, {colonia.strip()}"
        return line
    if flat and flat.strip():
        return flat.strip()
    raise ValidationError("Dirección requerida")


def parse_shipment_request(
    payload: ShipmentRequest | dict[str, Any],
) -> ShipmentRequest:
    if isinstance(payload, ShipmentRequest):
        return payload
    try:
        return ShipmentRequest.model_validate(payload)
    except PydanticValidationError as exc:
        raise ValidationError(
            details=exc.errors(include_url=False, include_context=False)
        ) from exc


def select_fresh_rate(
    rates: list[RateQuote],
    *,
    rate_id: str,
    carrier: str,
    service_level_name: str | None,
) -> RateQuote | None:
    """Find the fresh counterpart of a previously displayed rate.

    Same rate id first; otherwise the cheapest rate of the same carrier,
    preferring the same service level.
    """
    for rate in rates:
        if rate.id == rate_id:
            return rate

    same_carrier = [
        rate
        for rate in rates
        if rate.provider.casefold() == carrier.casefold()
        and isinstance(rate.total_pricing, Decimal)
    ]
    if service_level_name:
        same_service = [
            rate
            for rate in same_carrier
            if rate.service_level_name.casefold()
            == service_level_name.casefold()
        ]
        same_carrier = same_service or same_carrier
    if not same_carrier:
        return None
    return min(same_carrier, key=lambda rate: rate.total_pricing)


class ShipmentLifecycle:
    def __init__(
        self,
        *,
        storage: Storage,
        gateway: RateGateway,
        ledger: WalletLedger,
        margin: MarginPolicy,
        tracking: TrackingLog,
        country_code: str = "MX",
        currency: str = "MXN",
    ) -> None:
        self.storage = storage
        self.gateway = gateway
        self.ledger = ledger
        self.margin = margin
        self.tracking = tracking
        self.country_code = country_code
        self.currency = currency

    async def quote(
        self, params: QuoteParams, *, user_id: str | None = None
    ) -> tuple[Any, list[RateQuote]]:
        """Fetch carrier rates, apply the margin and store the quote."""
        raw_rates = await self.gateway.get_quotes(params)
        rates = await self.margin.apply(raw_rates)
        parcel = params.parcel
        quote = await self.storage.create_quote(
            user_id=user_id,
            from_zip_code=params.origin_zip,
            to_zip_code=params.dest_zip,
            weight=parcel.weight,
            length=parcel.length,
            width=parcel.width,
            height=parcel.height,
            quotes_data=[rate.to_dict() for rate in rates],
        )
        return quote, rates

    async def _get_owned(self, shipment_id: str, user_id: str) -> Any:
        shipment = await self.storage.get_shipment(shipment_id)
        if shipment is None:
            raise NotFoundError("Envío no encontrado")
        if shipment.user_id != user_id:
            raise ForbiddenError("No tienes acceso a este envío")
        return shipment

    async def get_shipment(self, shipment_id: str, user_id: str) -> Any:
        return await self._get_owned(shipment_id, user_id)

    async def list_shipments(self, user_id: str) -> list[Any]:
        return await self.storage.list_shipments(user_id)

    async def create_shipment(
        self,
        payload: ShipmentRequest | dict[str, Any],
        user_id: str,
    ) -> ShipmentCreated:
        request = parse_shipment_request(payload)

        user = await self.storage.get_user(user_id)
        if user is None:
            raise NotFoundError("Usuario no encontrado")

        expected_amount = to_money(request.expected_amount)
        balance = to_money(user.balance)
        if balance < expected_amount:
            raise InsufficientFundsError(
                required=expected_amount, available=balance
            )

        if not request.rate_id:
            raise ValidationError(
                "Selecciona una tarifa antes de crear la guía"
            )

        sender_address = compose_address(
            street=request.sender_street,
            number=request.sender_number,
            colonia=request.sender_colonia,
            flat=request.sender_address,
        )
        receiver_address = compose_address(
            street=request.receiver_street,
            number=request.receiver_number,
            colonia=request.receiver_colonia,
            flat=request.receiver_address,
        )
        parcel = Parcel(
            weight=request.weight,
            length=request.length,
            width=request.width,
            height=request.height,
        )

        rate = await self._requote(request, parcel)
        actual_amount = to_money(rate.total_pricing)
        if abs(actual_amount - expected_amount) > CENT:
            raise ConflictError(
                "El precio de la tarifa cambió. Vuelve a cotizar.",
                details={
                    "expected": f"{expected_amount:.2f}",
                    "current": f"{actual_amount:.2f}",
                },
            )
        actual_amount = expected_amount

        purchase = PurchaseRequest(
            rate_id=rate.id,
            carrier=rate.provider,
            address_from=GatewayAddress(
                name=request.sender_name,
                phone=request.sender_phone,
                email=request.sender_email,
                street1=sender_address,
                zip=request.sender_zip_code,
                city=request.sender_city,
                province=request.sender_state,
                area_level3=request.sender_colonia,
                country=self.country_code,
            ),
            address_to=GatewayAddress(
                name=request.receiver_name,
                phone=request.receiver_phone,
                email=request.receiver_email,
                street1=receiver_address,
                zip=request.receiver_zip_code,
                city=request.receiver_city,
                province=request.receiver_state,
                area_level3=request.receiver_colonia,
                country=self.country_code,
            ),
            packages=[parcel],
        )
        result = await self._purchase(purchase)
        status = map_workflow_status(result)
        if status == ShipmentStatus.CANCELLED:
            logger.error(
                "Label %s came back cancelled, nothing charged to user %s",
                result.external_id,
                user_id,
            )
            raise ExternalServiceError("La paquetería canceló la guía")

        # Best-effort re-check; the ledger debit below is the real guard.
        user = await self.storage.get_user(user_id)
        if user is None or to_money(user.balance) < actual_amount:
            await self._void_label(result, "Saldo insuficiente")
            raise InsufficientFundsError(
                required=actual_amount,
                available=to_money(user.balance) if user else Decimal("0"),
            )

        shipment = await self.storage.create_shipment(
            user_id=user_id,
            tracking_number=result.tracking_number,
            carrier=rate.provider or request.carrier,
            service_level_name=rate.service_level_name,
            sender_name=request.sender_name,
            sender_phone=request.sender_phone,
            sender_email=request.sender_email,
            sender_address=sender_address,
            sender_zip_code=request.sender_zip_code,
            sender_colonia=request.sender_colonia,
            sender_city=request.sender_city,
            sender_state=request.sender_state,
            receiver_name=request.receiver_name,
            receiver_phone=request.receiver_phone,
            receiver_email=request.receiver_email,
            receiver_address=receiver_address,
            receiver_zip_code=request.receiver_zip_code,
            receiver_colonia=request.receiver_colonia,
            receiver_city=request.receiver_city,
            receiver_state=request.receiver_state,
            weight=request.weight,
            length=request.length,
            width=request.width,
            height=request.height,
            description=request.description,
            amount=actual_amount,
            currency=rate.currency or self.currency,
            status=str(status),
            label_url=result.label_url,
            external_shipment_id=result.external_id,
            external_data=result.raw,
        )

        try:
            _, transaction = await self.ledger.debit(
                user_id,
                actual_amount,
                f"Guía de envío {rate.provider} - "
                f"{result.tracking_number or shipment.id}",
                reference_id=shipment.id,
                reference_type=REFERENCE_TYPE,
            )
        except InsufficientFundsError:
            # A concurrent charge won the race after the purchase.
            await self._void_label(result, "Saldo insuficiente")
            await self.storage.update_shipment(
                shipment.id, status=str(ShipmentStatus.CANCELLED)
            )
            raise

        if result.tracking_number:
            await self.tracking.record(
                tracking_number=result.tracking_number,
                shipment_id=shipment.id,
                status=str(ShipmentStatus.CREATED),
                description="Guía de envío creada",
                location="Sistema",
            )

        new_balance = to_money(transaction.balance_after)
        logger.info(
            "Shipment %s created for user %s (%s, %s)",
            shipment.id,
            user_id,
            rate.provider,
            actual_amount,
        )
        return ShipmentCreated(
            shipment=shipment,
            new_balance=new_balance,
            message=(
                f"Guía creada exitosamente. Se descontaron "
                f"${actual_amount:.2f} MXN. Saldo actual: "
                f"${new_balance:.2f} MXN"
            ),
        )

    async def _requote(
        self, request: ShipmentRequest, parcel: Parcel
    ) -> RateQuote:
        """Price the selected rate again instead of trusting the client."""
        rates = await self.margin.apply(
            await self.gateway.get_quotes(
                QuoteParams(
                    origin_zip=request.sender_zip_code,
                    dest_zip=request.receiver_zip_code,
                    origin_colonia=request.sender_colonia,
                    dest_colonia=request.receiver_colonia,
                    parcel=parcel,
                )
            )
        )
        rate = select_fresh_rate(
            rates,
            rate_id=request.rate_id,
            carrier=request.carrier,
            service_level_name=request.service_level_name,
        )
        if rate is None or not isinstance(rate.total_pricing, Decimal):
            raise ConflictError(
                f"La tarifa de {request.carrier} ya no está disponible. "
                "Selecciona otra tarifa."
            )
        return rate

    async def _purchase(self, purchase: PurchaseRequest) -> PurchaseResult:
        try:
            return await self.gateway.purchase_label(purchase)
        except PaqueteriaError:
            raise
        except Exception as exc:
            logger.exception("Label purchase failed for %s", purchase.rate_id)
            raise ExternalServiceError(f"Error al crear guía: {exc}") from exc

    async def _void_label(self, result: PurchaseResult, reason: str) -> None:
        try:
            await self.gateway.cancel_label(result.external_id, reason)
        except PaqueteriaError:
            logger.exception(
                "Could not void label %s after failed debit",
                result.external_id,
            )

    async def cancel_shipment(
        self, shipment_id: str, user_id: str, reason: str
    ) -> ShipmentCancelled:
        shipment = await self._get_owned(shipment_id, user_id)
        if shipment.status == ShipmentStatus.CANCELLED:
            raise ConflictError("El envío ya está cancelado")
        if not shipment.external_shipment_id:
            raise ValidationError(
                "Este envío no se puede cancelar con la paquetería"
            )

        try:
            confirmed = await self.gateway.cancel_label(
                shipment.external_shipment_id, reason
            )
        except PaqueteriaError:
            raise
        except Exception as exc:
            logger.exception("Cancellation failed for %s", shipment_id)
            raise ExternalServiceError(
                f"Error al cancelar guía: {exc}"
            ) from exc
        if not confirmed:
            raise ExternalServiceError(
                "La paquetería no confirmó la cancelación"
            )

        claimed = await self.storage.claim_shipment_cancellation(shipment_id)
        if claimed is None:
            raise ConflictError("El envío ya está cancelado")
        shipment = claimed
        transaction = await self._refund(shipment, reason)
        amount = to_money(shipment.amount)
        new_balance = to_money(transaction.balance_after)
        logger.info(
            "Shipment %s cancelled, refunded %s to user %s",
            shipment_id,
            amount,
            user_id,
        )
        return ShipmentCancelled(
            shipment=shipment,
            refunded_amount=amount,
            new_balance=new_balance,
            message=(
                f"Envío cancelado. Se reembolsaron ${amount:.2f} MXN. "
                f"Saldo actual: ${new_balance:.2f} MXN"
            ),
        )

    async def _refund(self, shipment: Any, reason: str) -> Any:
        """Credit back a cancelled shipment and log the cancellation."""
        _, transaction = await self.ledger.credit(
            shipment.user_id,
            to_money(shipment.amount),
            f"Reembolso por cancelación de guía "
            f"{shipment.tracking_number or shipment.id} - {reason}",
            reference_id=shipment.id,
            reference_type=REFERENCE_TYPE,
        )
        if shipment.tracking_number:
            await self.tracking.record(
                tracking_number=shipment.tracking_number,
                shipment_id=shipment.id,
                status=str(ShipmentStatus.CANCELLED),
                description=f"Envío cancelado: {reason}",
                location="Sistema",
            )
        return transaction

    async def sync_shipment(
        self, shipment_id: str, user_id: str | None = None
    ) -> Any:
        """Refresh a shipment from the gateway.

        Idempotent: the ``created`` tracking event is only emitted the
        first time a tracking number shows up.
        """
        if user_id is not None:
            shipment = await self._get_owned(shipment_id, user_id)
        else:
            shipment = await self.storage.get_shipment(shipment_id)
            if shipment is None:
                raise NotFoundError("Envío no encontrado")

        if shipment.status == ShipmentStatus.CANCELLED:
            return shipment
        if not shipment.external_shipment_id:
            raise ValidationError(
                "Este envío no tiene referencia en la paquetería"
            )

        result = await self.gateway.fetch_label(shipment.external_shipment_id)
        had_tracking = bool(shipment.tracking_number)
        tracking_number = result.tracking_number or shipment.tracking_number
        status = map_workflow_status(
            PurchaseResult(
                external_id=result.external_id,
                workflow_status=result.workflow_status,
                tracking_number=tracking_number,
            )
        )
        if (
            status == ShipmentStatus.PENDING
            and shipment.status == ShipmentStatus.CREATED
        ):
            status = ShipmentStatus.CREATED

        # Cancellation goes through the claim below, never a plain update.
        fields: dict[str, Any] = {
            "tracking_number": tracking_number,
            "label_url": result.label_url or shipment.label_url,
            "external_data": result.raw or shipment.external_data,
        }
        if status != ShipmentStatus.CANCELLED:
            fields["status"] = str(status)
        shipment = await self.storage.update_shipment(shipment_id, **fields)

        if tracking_number and not had_tracking:
            await self.tracking.record(
                tracking_number=tracking_number,
                shipment_id=shipment.id,
                status=str(ShipmentStatus.CREATED),
                description="Guía de envío creada",
                location="Sistema",
            )
        if status == ShipmentStatus.CANCELLED:
            claimed = await self.storage.claim_shipment_cancellation(
                shipment_id
            )
            if claimed is None:
                # A concurrent cancel already refunded it.
                return await self.storage.get_shipment(shipment_id)
            logger.warning(
                "Shipment %s was cancelled upstream, refunding", shipment_id
            )
            shipment = claimed
            await self._refund(shipment, "Cancelado por la paquetería")
        return shipment

    async def track(
        self, tracking_number: str
    ) -> tuple[Any, str, list[Any]]:
        """Pull the carrier history into the tracking log.

        Returns the shipment, the carrier status and the stored history.
        Carrier statuses never change ``Shipment.status``.
        """
        shipment = await self.storage.get_shipment_by_tracking(
            tracking_number
        )
        if shipment is None:
            raise NotFoundError("Número de guía no encontrado")
        result = await self.gateway.track_label(
            tracking_number, shipment.carrier
        )
        await self.tracking.record_history(
            tracking_number=tracking_number,
            shipment_id=shipment.id,
            history=result.history,
        )
        history = await self.tracking.history(tracking_number)
        return shipment, result.status, history
