"""Append-only per-shipment tracking history."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from fastapi_paqueteria.protocols import Storage
from fastapi_paqueteria.types import TrackingCheckpoint

logger = logging.getLogger(__name__)

DEDUP_TOLERANCE = timedelta(seconds=1)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (e.g. read back from SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def is_duplicate(
    existing: list[Any], status: str, event_date: datetime
) -> bool:
    when = as_utc(event_date)
    return any(
        event.event_date is not None
        and event.status == status
        and abs(as_utc(event.event_date) - when) < DEDUP_TOLERANCE
        for event in existing
    )


class TrackingLog:
    def __init__(self, storage: Storage) -> None:
        self.storage = storage

    async def record(
        self,
        *,
        tracking_number: str,
        status: str,
        shipment_id: str | None = None,
        description: str | None = None,
        location: str | None = None,
        event_date: datetime | None = None,
    ) -> Any | None:
        """Append one event unless an equivalent one is already stored.

        Returns the new event, or ``None`` when it was a duplicate.
        """
        event_date = as_utc(event_date or datetime.now(tz=UTC))
        existing = await self.storage.list_tracking_events(tracking_number)
        if is_duplicate(existing, status, event_date):
            logger.debug(
                "Skipping duplicate %s event for %s at %s",
                status,
                tracking_number,
                event_date.isoformat(),
            )
            return None
        return await self.storage.create_tracking_event(
            shipment_id=shipment_id,
            tracking_number=tracking_number,
            status=status,
            description=description,
            location=location,
            event_date=event_date,
        )

    async def record_history(
        self,
        *,
        tracking_number: str,
        shipment_id: str | None,
        history: list[TrackingCheckpoint],
    ) -> int:
        """Append carrier checkpoints; returns how many were new."""
        added = 0
        for checkpoint in history:
            event = await self.record(
                tracking_number=tracking_number,
                shipment_id=shipment_id,
                status=checkpoint.status,
                description=checkpoint.description,
                location=checkpoint.location,
                event_date=checkpoint.timestamp,
            )
            if event is not None:
                added += 1
        return added

    async def history(self, tracking_number: str) -> list[Any]:
        return await self.storage.list_tracking_events(tracking_number)
