"""Wallet ledger: paired balance mutation and transaction append."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from fastapi_paqueteria.exceptions import (
    InsufficientFundsError,
    NotFoundError,
    ValidationError,
)
from fastapi_paqueteria.margin import to_money
from fastapi_paqueteria.protocols import Storage
from fastapi_paqueteria.types import TransactionType

logger = logging.getLogger(__name__)


class WalletLedger:
    """The only writer of ``User.balance``.

    Every balance change goes through ``Storage.apply_balance_change``,
    which commits the new balance together with exactly one Transaction
    whose ``balance_after`` equals it.
    """

    def __init__(self, storage: Storage) -> None:
        self.storage = storage

    async def get_balance(self, user_id: str) -> Decimal:
        user = await self.storage.get_user(user_id)
        if user is None:
            raise NotFoundError("Usuario no encontrado")
        return to_money(user.balance)

    async def debit(
        self,
        user_id: str,
        amount: Decimal,
        description: str,
        *,
        reference_id: str | None = None,
        reference_type: str | None = None,
    ) -> tuple[Any, Any]:
        amount = self._positive(amount)
        try:
            user, transaction = await self.storage.apply_balance_change(
                user_id,
                -amount,
                type=TransactionType.WITHDRAWAL,
                description=description,
                reference_id=reference_id,
                reference_type=reference_type,
            )
        except InsufficientFundsError:
            logger.info(
                "Debit of %s rejected for user %s: insufficient funds",
                amount,
                user_id,
            )
            raise
        logger.info(
            "Debited %s from user %s, balance now %s",
            amount,
            user_id,
            transaction.balance_after,
        )
        return user, transaction

    async def credit(
        self,
        user_id: str,
        amount: Decimal,
        description: str,
        *,
        reference_id: str | None = None,
        reference_type: str | None = None,
    ) -> tuple[Any, Any]:
        amount = self._positive(amount)
        user, transaction = await self.storage.apply_balance_change(
            user_id,
            amount,
            type=TransactionType.DEPOSIT,
            description=description,
            reference_id=reference_id,
            reference_type=reference_type,
        )
        logger.info(
            "Credited %s to user %s, balance now %s",
            amount,
            user_id,
            transaction.balance_after,
        )
        return user, transaction

    async def list_transactions(self, user_id: str) -> list[Any]:
        return await self.storage.list_transactions(user_id)

    @staticmethod
    def _positive(amount: Decimal) -> Decimal:
        try:
            value = to_money(amount)
        except (ArithmeticError, ValueError) as exc:
            raise ValidationError("Monto inválido") from exc
        if value <= 0:
            raise ValidationError("El monto debe ser mayor a 0")
        return value
