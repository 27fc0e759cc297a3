"""Admin-approved wallet recharge requests."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from fastapi_paqueteria.exceptions import (
    ConflictError,
    NotFoundError,
    ValidationError,
)
from fastapi_paqueteria.margin import to_money
from fastapi_paqueteria.protocols import Storage
from fastapi_paqueteria.types import RechargeStatus
from fastapi_paqueteria.wallet import WalletLedger

logger = logging.getLogger(__name__)

REFERENCE_TYPE = "recharge_request"


class RechargeWorkflow:
    """``pending -> approved | rejected``; approval credits the wallet."""

    def __init__(self, storage: Storage, ledger: WalletLedger) -> None:
        self.storage = storage
        self.ledger = ledger

    async def submit(
        self,
        user_id: str,
        amount: Decimal,
        *,
        payment_method: str | None = None,
        payment_reference: str | None = None,
        notes: str | None = None,
    ) -> Any:
        if await self.storage.get_user(user_id) is None:
            raise NotFoundError("Usuario no encontrado")
        value = to_money(amount)
        if value <= 0:
            raise ValidationError("El monto debe ser mayor a 0")
        request = await self.storage.create_recharge_request(
            user_id=user_id,
            amount=value,
            payment_method=payment_method,
            payment_reference=payment_reference,
            notes=notes,
            status=str(RechargeStatus.PENDING),
        )
        logger.info(
            "Recharge request %s for %s submitted by user %s",
            request.id,
            value,
            user_id,
        )
        return request

    async def _load_pending(self, request_id: str) -> Any:
        request = await self.storage.get_recharge_request(request_id)
        if request is None:
            raise NotFoundError("Solicitud de recarga no encontrada")
        if request.status != RechargeStatus.PENDING:
            raise ConflictError(
                f"La solicitud ya fue procesada ({request.status})"
            )
        return request

    async def approve(
        self, request_id: str, admin_id: str, notes: str | None = None
    ) -> tuple[Any, Decimal]:
        """Approve a pending request and credit the user's wallet.

        Returns the processed request and the user's new balance.
        """
        request = await self._load_pending(request_id)
        if await self.storage.get_user(request.user_id) is None:
            raise NotFoundError("Usuario no encontrado")

        claimed = await self.storage.claim_recharge_request(
            request_id,
            status=str(RechargeStatus.APPROVED),
            admin_id=admin_id,
            notes=notes,
        )
        if claimed is None:
            raise ConflictError("La solicitud ya fue procesada")

        _, transaction = await self.ledger.credit(
            request.user_id,
            request.amount,
            f"Recarga aprobada - Solicitud #{request_id}",
            reference_id=request_id,
            reference_type=REFERENCE_TYPE,
        )
        logger.info(
            "Recharge %s approved by admin %s", request_id, admin_id
        )
        return claimed, to_money(transaction.balance_after)

    async def reject(
        self, request_id: str, admin_id: str, notes: str | None = None
    ) -> Any:
        await self._load_pending(request_id)
        claimed = await self.storage.claim_recharge_request(
            request_id,
            status=str(RechargeStatus.REJECTED),
            admin_id=admin_id,
            notes=notes,
        )
        if claimed is None:
            raise ConflictError("La solicitud ya fue procesada")
        logger.info(
            "Recharge %s rejected by admin %s", request_id, admin_id
        )
        return claimed

    async def list_for_user(self, user_id: str) -> list[Any]:
        return await self.storage.list_recharge_requests(user_id=user_id)

    async def list_all(self, status: str | None = None) -> list[Any]:
        return await self.storage.list_recharge_requests(status=status)
