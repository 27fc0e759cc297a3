"""Shipping brokerage public API."""

from typing import TYPE_CHECKING

__version__ = "0.1.0"

__all__ = [
    "PaqueteriaConfig",
    "PaqueteriaError",
    "RateGateway",
    "ShipmentLifecycle",
    "Storage",
    "WalletLedger",
    "__version__",
    "create_brokerage_router",
    "register_exception_handlers",
]

if TYPE_CHECKING:
    from fastapi_paqueteria.config import PaqueteriaConfig
    from fastapi_paqueteria.exceptions import (
        PaqueteriaError,
        register_exception_handlers,
    )
    from fastapi_paqueteria.lifecycle import ShipmentLifecycle
    from fastapi_paqueteria.protocols import RateGateway, Storage
    from fastapi_paqueteria.router import create_brokerage_router
    from fastapi_paqueteria.wallet import WalletLedger


def __getattr__(name: str):
    # Lazy imports to avoid loading all submodules on package import.
    if name == "PaqueteriaConfig":
        from fastapi_paqueteria.config import PaqueteriaConfig

        return PaqueteriaConfig
    if name == "create_brokerage_router":
        from fastapi_paqueteria.router import create_brokerage_router

        return create_brokerage_router
    if name in ("PaqueteriaError", "register_exception_handlers"):
        from fastapi_paqueteria import exceptions

        return getattr(exceptions, name)
    if name in ("RateGateway", "Storage"):
        from fastapi_paqueteria import protocols

        return getattr(protocols, name)
    if name == "ShipmentLifecycle":
        from fastapi_paqueteria.lifecycle import ShipmentLifecycle

        return ShipmentLifecycle
    if name == "WalletLedger":
        from fastapi_paqueteria.wallet import WalletLedger

        return WalletLedger
    raise AttributeError(
        f"module 'fastapi_paqueteria' has no attribute {name!r}"
    )
