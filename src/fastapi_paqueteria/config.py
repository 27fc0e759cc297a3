"""Brokerage service configuration."""

from decimal import Decimal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class PaqueteriaConfig(BaseSettings):
    """Runtime config for the brokerage service."""

    model_config = SettingsConfigDict(env_prefix="PAQUETERIA_")

    database_url: str = "sqlite+aiosqlite:///./paqueteria.db"

    gateway_base_url: str = "https://api.skydropx.com/v1"
    gateway_api_key: str | None = None
    gateway_api_secret: str | None = None
    gateway_timeout_seconds: float = 30.0
    token_refresh_margin_seconds: int = 300
    default_token_ttl_seconds: int = 7200

    default_margin_percentage: Decimal = Field(
        default=Decimal("15"), ge=0, le=100
    )
    currency: str = "MXN"
    country_code: str = "MX"
    initial_balance: Decimal = Field(default=Decimal("0"), ge=0)

    jwt_secret_key: str = "dev-secret-change-me"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24 * 7

    @property
    def gateway_configured(self) -> bool:
        return bool(self.gateway_api_key and self.gateway_api_secret)
