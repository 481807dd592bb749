"""Provider adapter contract and the registry of active adapters."""

import logging
from datetime import datetime
from typing import Protocol, runtime_checkable

from trainy_mcp.models.journeys import RawJourneyCandidate
from trainy_mcp.models.providers import ProviderId, authoritative_provider_for
from trainy_mcp.models.stations import RawStation, Station

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """Raised by an adapter when its upstream API call fails."""

    def __init__(self, provider: ProviderId, message: str):
        super().__init__(f"[{provider.value}] {message}")
        self.provider = provider


@runtime_checkable
class TrainProvider(Protocol):
    """Capability contract every per-country adapter implements."""

    id: ProviderId
    country: str
    name: str
    supports_name_query: bool

    async def search_stations(self, query: str) -> list[RawStation]: ...

    async def search_journeys(
        self, from_station: str, to_station: str, when: datetime
    ) -> list[RawJourneyCandidate]: ...

    async def get_journey_details(self, native_id: str) -> RawJourneyCandidate | None: ...

    def station_id_for(self, station: Station) -> str | None: ...


class ProviderRegistry:
    """Active adapters, looked up by id or by the country they are authoritative for."""

    def __init__(self, providers: list[TrainProvider] | None = None):
        self._providers: dict[ProviderId, TrainProvider] = {}
        for provider in providers or []:
            self.register(provider)

    def register(self, provider: TrainProvider) -> None:
        self._providers[provider.id] = provider
        logger.debug(f"Registered provider {provider.id.value} ({provider.name})")

    def get(self, provider_id: ProviderId) -> TrainProvider | None:
        return self._providers.get(provider_id)

    def for_country(self, country: str) -> TrainProvider | None:
        """Get the active adapter authoritative for a country, if one is registered."""
        provider_id = authoritative_provider_for(country)
        if provider_id is None:
            return None
        return self._providers.get(provider_id)

    def active(self) -> list[TrainProvider]:
        return list(self._providers.values())

    def __contains__(self, provider_id: object) -> bool:
        return provider_id in self._providers

    def __len__(self) -> int:
        return len(self._providers)
