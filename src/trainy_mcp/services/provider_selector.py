"""Decide which providers to query for an origin/destination pair."""

import logging
from dataclasses import dataclass, field

from trainy_mcp.models.providers import ProviderId, authoritative_provider_for
from trainy_mcp.models.stations import Station
from trainy_mcp.providers.base import ProviderRegistry, TrainProvider

logger = logging.getLogger(__name__)


@dataclass
class ProviderSelection:
    """Providers to query, origin authority first, and why others were left out."""

    selected: list[TrainProvider] = field(default_factory=list)
    skipped: dict[ProviderId, str] = field(default_factory=dict)

    @property
    def ids(self) -> list[ProviderId]:
        return [provider.id for provider in self.selected]


def select_providers(
    origin: Station, destination: Station, registry: ProviderRegistry
) -> ProviderSelection:
    """Select the providers authoritative for either endpoint.

    A provider is only selected when it knows a native id for both stations.
    Every skip is logged with its reason: a missing cross-provider station
    mapping is the usual cause of a provider being left out.
    """
    selection = ProviderSelection()
    # authority -> the first endpoint country it was wanted for
    wanted: dict[ProviderId, str] = {}
    for station in (origin, destination):
        provider_id = authoritative_provider_for(station.country)
        if provider_id is None:
            logger.info(f"No provider is authoritative for {station.country} ({station.id})")
            continue
        wanted.setdefault(provider_id, station.country)

    for provider_id, country in wanted.items():
        provider = registry.for_country(country)
        if provider is None:
            reason = "no adapter registered"
        elif provider.station_id_for(origin) is None:
            reason = f"no station id for origin {origin.id}"
        elif provider.station_id_for(destination) is None:
            reason = f"no station id for destination {destination.id}"
        else:
            selection.selected.append(provider)
            continue

        selection.skipped[provider_id] = reason
        logger.info(f"Skipping provider {provider_id.value}: {reason}")

    return selection
