"""
Application settings.

Values come from environment variables (or a local .env file) and fall back
to defaults suitable for running against the bundled JSON fixtures.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_states(value: str) -> list[str]:
    return [s.strip().upper() for s in value.split(",") if s.strip()]


class Settings(BaseSettings):
    """Storefront configuration."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # Store identity
    STORE_NAME: str = "Green Acres Nursery"
    FROM_EMAIL: str = "orders@greenacres-nursery.com"

    # Data / logging
    DATA_DIR: Optional[Path] = None
    LOG_LEVEL: str = "INFO"

    # Inventory
    LOW_STOCK_THRESHOLD: int = 10

    # Tax
    TAX_ENABLED: bool = True
    TAX_RATE: float = 0.07
    TAX_NEXUS_STATES: str = "GA"
    TAX_LABEL: str = "Sales Tax"

    # Forced shipping service per state
    FORCED_SERVICE_DEFAULT: Optional[str] = "ups_ground"
    FORCED_SERVICE_OVERRIDE: Optional[str] = "ups_3_day_select"
    FORCED_SERVICE_OVERRIDE_STATES: str = "OR,CA,NV,UT,NE,WY,ID,ND,SD,WA,MT"

    # Pickup
    PICKUP_LOOKAHEAD_DAYS: int = 14
    PICKUP_MAX_RANGE_DAYS: int = 92

    def get_tax_nexus_states(self) -> list[str]:
        return _split_states(self.TAX_NEXUS_STATES)

    def get_override_states(self) -> list[str]:
        return _split_states(self.FORCED_SERVICE_OVERRIDE_STATES)

    def forced_service_for(self, state_code: str) -> Optional[str]:
        """Service code customers in this state are restricted to, if any."""
        if self.FORCED_SERVICE_OVERRIDE and state_code.upper() in self.get_override_states():
            return self.FORCED_SERVICE_OVERRIDE
        return self.FORCED_SERVICE_DEFAULT


@lru_cache
def get_settings() -> Settings:
    """Get the process-wide settings instance."""
    return Settings()
