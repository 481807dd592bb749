from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class TrainyConfig(BaseSettings):
    """Configuration for provider access and journey storage.

    Automatically loads from environment variables and .env file.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # NS (Netherlands) Reisinformatie API
    ns_api_key: str | None = Field(default=None, alias="NS_API_KEY")
    ns_base_url: str = Field(
        default="https://gateway.apiportal.ns.nl/reisinformatie-api/api",
        alias="NS_BASE_URL",
    )

    # SBB (Switzerland) via transport.opendata.ch, no key required
    sbb_base_url: str = Field(default="https://transport.opendata.ch/v1", alias="SBB_BASE_URL")

    # DB (Germany) API Marketplace: Timetables for search, RIS::Journeys for details
    db_client_id: str | None = Field(default=None, alias="DB_CLIENT_ID")
    db_api_key: str | None = Field(default=None, alias="DB_API_KEY")
    db_timetables_url: str = Field(
        default="https://apis.deutschebahn.com/db-api-marketplace/apis/timetables/v1",
        alias="DB_TIMETABLES_URL",
    )
    db_journeys_url: str = Field(
        default="https://apis.deutschebahn.com/db-api-marketplace/apis/ris-journeys-transporteure/v2",
        alias="DB_JOURNEYS_URL",
    )

    # Per-provider call timeout used by the fan-out
    provider_timeout_seconds: float = Field(default=30.0, alias="TRAINY_PROVIDER_TIMEOUT")

    db_path: Path = Field(default=Path("data/journeys.db"), alias="TRAINY_DB_PATH")


@lru_cache
def get_config() -> TrainyConfig:
    """Get the Trainy configuration (cached singleton).

    Returns:
        TrainyConfig with values from .env file or environment variables.
    """
    return TrainyConfig()
