"""Profit margin applied to carrier rates."""

from __future__ import annotations

import dataclasses
import logging
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from fastapi_paqueteria.exceptions import ValidationError
from fastapi_paqueteria.protocols import Storage
from fastapi_paqueteria.types import RateQuote

logger = logging.getLogger(__name__)

MARGIN_SETTING_KEY = "profit_margin_percentage"
DEFAULT_MARGIN_PERCENTAGE = Decimal("15")
CENT = Decimal("0.01")


def to_money(value: Any) -> Decimal:
    """Coerce ``value`` to a Decimal rounded to cents.

    Raises ``InvalidOperation`` or ``ValueError`` for non-numeric input.
    """
    amount = Decimal(str(value))
    if not amount.is_finite():
        raise InvalidOperation(f"{value!r} is not a finite number")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def parse_margin(
    raw: Any, default: Decimal = DEFAULT_MARGIN_PERCENTAGE
) -> Decimal:
    """Parse a stored margin, falling back to ``default`` when invalid."""
    if raw is None or raw == "":
        return default
    try:
        value = Decimal(str(raw))
    except (InvalidOperation, ValueError):
        logger.warning("Invalid margin %r, using %s%%", raw, default)
        return default
    if not value.is_finite() or value < 0 or value > 100:
        logger.warning("Margin %s out of range, using %s%%", value, default)
        return default
    return value


def apply_margin(
    raw_rates: list[RateQuote], margin_percent: Decimal
) -> list[RateQuote]:
    """Return new rates priced at ``base * (1 + margin / 100)``.

    Rates whose base price does not parse are returned unchanged.
    """
    factor = Decimal(1) + Decimal(margin_percent) / Decimal(100)
    margined = []
    for rate in raw_rates:
        try:
            base = Decimal(str(rate.total_pricing))
            if not base.is_finite():
                raise InvalidOperation
        except (InvalidOperation, ValueError):
            logger.warning(
                "Rate %s has non-numeric price %r, passing through",
                rate.id,
                rate.total_pricing,
            )
            margined.append(rate)
            continue
        price = (base * factor).quantize(CENT, rounding=ROUND_HALF_UP)
        margined.append(dataclasses.replace(rate, total_pricing=price))
    return margined


class MarginPolicy:
    """Reads the margin setting and prices rates with it."""

    def __init__(
        self,
        storage: Storage,
        default: Decimal = DEFAULT_MARGIN_PERCENTAGE,
    ) -> None:
        self.storage = storage
        self.default = default

    async def get_percentage(self) -> Decimal:
        setting = await self.storage.get_setting(MARGIN_SETTING_KEY)
        return parse_margin(
            setting.value if setting is not None else None, self.default
        )

    async def set_percentage(self, value: Decimal) -> Decimal:
        value = Decimal(value)
        if not value.is_finite() or not 0 <= value <= 100:
            raise ValidationError(
                "El margen debe estar entre 0 y 100",
                details={"value": str(value)},
            )
        await self.storage.upsert_setting(
            MARGIN_SETTING_KEY,
            str(value),
            "Porcentaje de ganancia aplicado a las tarifas",
        )
        return value

    async def apply(self, raw_rates: list[RateQuote]) -> list[RateQuote]:
        return apply_margin(raw_rates, await self.get_percentage())
