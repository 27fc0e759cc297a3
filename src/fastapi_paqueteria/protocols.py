"""Collaborator protocols consumed by the brokerage services."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Protocol, runtime_checkable

from fastapi_paqueteria.types import (
    PurchaseRequest,
    PurchaseResult,
    QuoteParams,
    RateQuote,
    TrackingResult,
    TransactionType,
)


@runtime_checkable
class RateGateway(Protocol):
    """External carrier gateway."""

    async def get_quotes(self, params: QuoteParams) -> list[RateQuote]: ...

    async def purchase_label(
        self, request: PurchaseRequest
    ) -> PurchaseResult: ...

    async def fetch_label(self, external_id: str) -> PurchaseResult: ...

    async def cancel_label(self, external_id: str, reason: str) -> bool: ...

    async def track_label(
        self, tracking_number: str, carrier: str | None = None
    ) -> TrackingResult: ...


@runtime_checkable
class TokenProvider(Protocol):
    """Supplies bearer tokens for the carrier gateway."""

    async def get_token(self) -> str: ...


@runtime_checkable
class Storage(Protocol):
    """Persistence collaborator.

    Returned records expose the attribute names of the SQLAlchemy models
    in ``fastapi_paqueteria.contrib.sqlalchemy.models``. ``get_*``
    methods return ``None`` for unknown ids.
    """

    async def create_user(self, **fields: Any) -> Any: ...

    async def get_user(self, user_id: str) -> Any | None: ...

    async def get_user_by_email(self, email: str) -> Any | None: ...

    async def list_users(self) -> list[Any]: ...

    async def apply_balance_change(
        self,
        user_id: str,
        amount: Decimal,
        *,
        type: TransactionType,
        description: str,
        reference_id: str | None = None,
        reference_type: str | None = None,
    ) -> tuple[Any, Any]:
        """Add signed ``amount`` to the balance and append a Transaction.

        Both writes commit together. Raises ``NotFoundError`` for an
        unknown user and ``InsufficientFundsError`` when the result would
        be negative, leaving the balance untouched.
        """
        ...

    async def list_transactions(self, user_id: str) -> list[Any]: ...

    async def create_shipment(self, **fields: Any) -> Any: ...

    async def get_shipment(self, shipment_id: str) -> Any | None: ...

    async def get_shipment_by_tracking(
        self, tracking_number: str
    ) -> Any | None: ...

    async def list_shipments(self, user_id: str) -> list[Any]: ...

    async def update_shipment(self, shipment_id: str, **fields: Any) -> Any: ...

    async def claim_shipment_cancellation(
        self, shipment_id: str
    ) -> Any | None:
        """Mark a shipment ``cancelled``; ``None`` if it already was."""
        ...

    async def create_quote(self, **fields: Any) -> Any: ...

    async def create_tracking_event(self, **fields: Any) -> Any: ...

    async def list_tracking_events(self, tracking_number: str) -> list[Any]: ...

    async def create_recharge_request(self, **fields: Any) -> Any: ...

    async def get_recharge_request(self, request_id: str) -> Any | None: ...

    async def list_recharge_requests(
        self, *, user_id: str | None = None, status: str | None = None
    ) -> list[Any]: ...

    async def claim_recharge_request(
        self, request_id: str, *, status: str, admin_id: str, notes: str | None
    ) -> Any | None:
        """Move a ``pending`` request to ``status``; ``None`` if not pending."""
        ...

    async def get_setting(self, key: str) -> Any | None: ...

    async def upsert_setting(
        self, key: str, value: str, description: str | None = None
    ) -> Any: ...
