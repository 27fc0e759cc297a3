"""SQLAlchemy storage implementation."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fastapi_paqueteria.contrib.sqlalchemy.models import (
    QuoteModel,
    RechargeRequestModel,
    SettingModel,
    ShipmentModel,
    TrackingEventModel,
    TransactionModel,
    UserModel,
)
from fastapi_paqueteria.exceptions import (
    InsufficientFundsError,
    NotFoundError,
)
from fastapi_paqueteria.types import (
    RechargeStatus,
    ShipmentStatus,
    TransactionType,
)

logger = logging.getLogger(__name__)


class SQLAlchemyStorage:
    """Storage backed by SQLAlchemy async sessions."""

    def __init__(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        self.session_factory = session_factory

    async def _add(self, instance: Any) -> Any:
        async with self.session_factory() as session:
            session.add(instance)
            await session.commit()
            await session.refresh(instance)
        return instance

    async def _get(self, model: type, key: str) -> Any | None:
        async with self.session_factory() as session:
            return await session.get(model, key)

    async def _all(self, stmt) -> list[Any]:
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    # Users

    async def create_user(self, **fields: Any) -> UserModel:
        return await self._add(UserModel(**fields))

    async def get_user(self, user_id: str) -> UserModel | None:
        return await self._get(UserModel, user_id)

    async def get_user_by_email(self, email: str) -> UserModel | None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(UserModel).where(UserModel.email == email)
            )
            return result.scalar_one_or_none()

    async def list_users(self) -> list[UserModel]:
        return await self._all(
            select(UserModel).order_by(UserModel.created_at.desc())
        )

    async def apply_balance_change(
        self,
        user_id: str,
        amount: Decimal,
        *,
        type: TransactionType,
        description: str,
        reference_id: str | None = None,
        reference_type: str | None = None,
    ) -> tuple[UserModel, TransactionModel]:
        async with self.session_factory() as session:
            # Conditional update: the row only changes if it stays >= 0.
            result = await session.execute(
                update(UserModel)
                .where(
                    UserModel.id == user_id,
                    UserModel.balance + amount >= 0,
                )
                .values(balance=UserModel.balance + amount)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                user = await session.get(UserModel, user_id)
                if user is None:
                    raise NotFoundError("Usuario no encontrado")
                raise InsufficientFundsError(
                    required=-amount, available=user.balance
                )

            user = await session.get(
                UserModel, user_id, populate_existing=True
            )
            transaction = TransactionModel(
                user_id=user_id,
                type=str(type),
                amount=amount,
                balance_after=user.balance,
                description=description,
                reference_id=reference_id,
                reference_type=reference_type,
                status="completed",
            )
            session.add(transaction)
            await session.commit()
            await session.refresh(user)
            await session.refresh(transaction)
            return user, transaction

    async def list_transactions(self, user_id: str) -> list[TransactionModel]:
        return await self._all(
            select(TransactionModel)
            .where(TransactionModel.user_id == user_id)
            .order_by(TransactionModel.created_at.desc())
        )

    # Shipments

    async def create_shipment(self, **fields: Any) -> ShipmentModel:
        return await self._add(ShipmentModel(**fields))

    async def get_shipment(self, shipment_id: str) -> ShipmentModel | None:
        return await self._get(ShipmentModel, shipment_id)

    async def get_shipment_by_tracking(
        self, tracking_number: str
    ) -> ShipmentModel | None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(ShipmentModel)
                .where(ShipmentModel.tracking_number == tracking_number)
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def list_shipments(self, user_id: str) -> list[ShipmentModel]:
        return await self._all(
            select(ShipmentModel)
            .where(ShipmentModel.user_id == user_id)
            .order_by(ShipmentModel.created_at.desc())
        )

    async def update_shipment(
        self, shipment_id: str, **fields: Any
    ) -> ShipmentModel:
        async with self.session_factory() as session:
            shipment = await session.get(ShipmentModel, shipment_id)
            if shipment is None:
                raise NotFoundError("Envío no encontrado")
            for key, value in fields.items():
                if hasattr(shipment, key):
                    setattr(shipment, key, value)
            await session.commit()
            await session.refresh(shipment)
            return shipment

    async def claim_shipment_cancellation(
        self, shipment_id: str
    ) -> ShipmentModel | None:
        async with self.session_factory() as session:
            result = await session.execute(
                update(ShipmentModel)
                .where(
                    ShipmentModel.id == shipment_id,
                    ShipmentModel.status != ShipmentStatus.CANCELLED,
                )
                .values(
                    status=str(ShipmentStatus.CANCELLED),
                    updated_at=datetime.now(tz=UTC),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await session.rollback()
                return None
            await session.commit()
            return await session.get(
                ShipmentModel, shipment_id, populate_existing=True
            )

    # Quotes and tracking

    async def create_quote(self, **fields: Any) -> QuoteModel:
        return await self._add(QuoteModel(**fields))

    async def create_tracking_event(self, **fields: Any) -> TrackingEventModel:
        return await self._add(TrackingEventModel(**fields))

    async def list_tracking_events(
        self, tracking_number: str
    ) -> list[TrackingEventModel]:
        return await self._all(
            select(TrackingEventModel)
            .where(TrackingEventModel.tracking_number == tracking_number)
            .order_by(TrackingEventModel.event_date.desc())
        )

    # Recharge requests

    async def create_recharge_request(
        self, **fields: Any
    ) -> RechargeRequestModel:
        return await self._add(RechargeRequestModel(**fields))

    async def get_recharge_request(
        self, request_id: str
    ) -> RechargeRequestModel | None:
        return await self._get(RechargeRequestModel, request_id)

    async def list_recharge_requests(
        self, *, user_id: str | None = None, status: str | None = None
    ) -> list[RechargeRequestModel]:
        stmt = select(RechargeRequestModel)
        if user_id is not None:
            stmt = stmt.where(RechargeRequestModel.user_id == user_id)
        if status is not None:
            stmt = stmt.where(RechargeRequestModel.status == status)
        return await self._all(
            stmt.order_by(RechargeRequestModel.created_at.desc())
        )

    async def claim_recharge_request(
        self,
        request_id: str,
        *,
        status: str,
        admin_id: str,
        notes: str | None,
    ) -> RechargeRequestModel | None:
        async with self.session_factory() as session:
            result = await session.execute(
                update(RechargeRequestModel)
                .where(
                    RechargeRequestModel.id == request_id,
                    RechargeRequestModel.status == RechargeStatus.PENDING,
                )
                .values(
                    status=status,
                    admin_id=admin_id,
                    admin_notes=notes,
                    processed_at=datetime.now(tz=UTC),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await session.rollback()
                return None
            await session.commit()
            return await session.get(
                RechargeRequestModel, request_id, populate_existing=True
            )

    # Settings

    async def get_setting(self, key: str) -> SettingModel | None:
        return await self._get(SettingModel, key)

    async def upsert_setting(
        self, key: str, value: str, description: str | None = None
    ) -> SettingModel:
        async with self.session_factory() as session:
            setting = await session.get(SettingModel, key)
            if setting is None:
                setting = SettingModel(
                    key=key, value=value, description=description
                )
                session.add(setting)
            else:
                setting.value = value
                if description is not None:
                    setting.description = description
            await session.commit()
            await session.refresh(setting)
            logger.info("Setting %s updated to %s", key, value)
            return setting
