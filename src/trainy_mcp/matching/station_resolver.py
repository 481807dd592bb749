"""Canonical station registry and free-text station resolution.

The registry has two tiers: the durable registered stations shipped with the
package and the discovered stations synthesized from raw provider search hits.
Both live in one store; writes go through a single lock, reads do not.
"""

import asyncio
import logging

from rapidfuzz import fuzz

from trainy_mcp.data.station_registry import STATION_ALIASES, registered_stations
from trainy_mcp.matching.normalizers import (
    compact_name,
    fuzzy_names_overlap,
    normalize_text,
    slugify,
    strip_parenthetical,
)
from trainy_mcp.models.providers import ProviderId, normalize_country
from trainy_mcp.models.stations import Coordinates, RawStation, Station, StationKind
from trainy_mcp.providers.base import ProviderRegistry, TrainProvider

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 2

# token_set_ratio threshold for the typo fallback over registered names
FUZZY_NAME_THRESHOLD = 85.0


class StationRegistry:
    """Cross-provider station store with lazy provider-id discovery.

    Usage:
        registry = StationRegistry(providers)
        stations = await registry.resolve("zurich")
    """

    def __init__(
        self,
        providers: ProviderRegistry | None = None,
        stations: list[Station] | None = None,
        aliases: dict[str, str] | None = None,
    ) -> None:
        self._providers = providers or ProviderRegistry()
        initial = stations if stations is not None else registered_stations()
        self._stations: dict[str, Station] = {station.id: station for station in initial}
        self._aliases = aliases if aliases is not None else STATION_ALIASES
        self._lock = asyncio.Lock()

    @property
    def stations(self) -> list[Station]:
        return list(self._stations.values())

    def get(self, station_id: str) -> Station | None:
        return self._stations.get(station_id)

    def find_by_provider_id(self, provider: ProviderId, code: str) -> Station | None:
        """Find a station by a provider's native code.

        An exact (provider, code) mapping wins; otherwise any station that
        records the same code for another provider is returned, since UIC
        numbers are shared between providers.
        """
        if not code:
            return None
        for station in self._stations.values():
            if station.provider_ids.get(provider) == code:
                return station
        for station in self._stations.values():
            if code in station.provider_ids.values():
                return station
        return None

    def find_by_name(self, name: str) -> Station | None:
        """Find a station by a provider's display name.

        Example: "Zurich HB" -> zurich-hb, "Frankfurt(Main)Hbf" -> frankfurt-hbf
        """
        if not name:
            return None
        target = compact_name(name)
        stripped = compact_name(strip_parenthetical(name))
        for station in self._stations.values():
            if compact_name(station.display_name) == target:
                return station
            if any(compact_name(code) == target for code in station.provider_ids.values()):
                return station

        alias_id = self._aliases.get(normalize_text(name)) or self._aliases.get(
            normalize_text(strip_parenthetical(name))
        )
        if alias_id and alias_id in self._stations:
            return self._stations[alias_id]

        for station in self._stations.values():
            if stripped and compact_name(strip_parenthetical(station.display_name)) == stripped:
                return station
        return None

    async def add_provider_id(self, station_id: str, provider: ProviderId, code: str) -> bool:
        """Record a provider's native code for a station if none is known yet.

        Existing mappings are never overwritten. Returns True if the map grew.
        """
        async with self._lock:
            station = self._stations.get(station_id)
            if station is None or provider in station.provider_ids:
                return False
            station.provider_ids[provider] = code
            return True

    async def resolve(self, query: str) -> list[Station]:
        """Resolve a free-text query to canonical stations.

        Resolution strategy (in order, results accumulate):
        1. Alias table hit on the normalized query
        2. Display-name substring scan over known stations
           (typo-tolerant fuzzy fallback when neither step hits)
        3. Concurrent provider station search, folding each raw hit into an
           already-collected station or synthesizing a discovered one

        Sorted by number of provider ids, then prefix matches, then name.
        """
        query = query.strip()
        if len(query) < MIN_QUERY_LENGTH:
            return []

        normalized = normalize_text(query)
        collected: dict[str, Station] = {}

        alias_id = self._aliases.get(normalized)
        if alias_id and alias_id in self._stations:
            collected[alias_id] = self._stations[alias_id]

        for station in self.stations:
            if normalized in normalize_text(station.display_name):
                collected.setdefault(station.id, station)

        if not collected:
            for station in self._fuzzy_matches(normalized):
                collected.setdefault(station.id, station)

        providers = self._providers.active()
        if providers:
            results = await asyncio.gather(
                *(self._search_provider(provider, query) for provider in providers)
            )
            async with self._lock:
                for provider, hits in zip(providers, results, strict=True):
                    for raw in hits:
                        station = self._fold_in(provider, raw, collected)
                        collected.setdefault(station.id, station)

        ordered = sorted(
            collected.values(),
            key=lambda s: (
                -len(s.provider_ids),
                not normalize_text(s.display_name).startswith(normalized),
                s.display_name.lower(),
            ),
        )
        return [station.model_copy(deep=True) for station in ordered]

    def _fuzzy_matches(self, normalized: str) -> list[Station]:
        matches = []
        for station in self.stations:
            if station.kind != StationKind.REGISTERED:
                continue
            score = fuzz.token_set_ratio(normalized, normalize_text(station.display_name))
            if score >= FUZZY_NAME_THRESHOLD:
                matches.append(station)
        return matches

    async def _search_provider(self, provider: TrainProvider, query: str) -> list[RawStation]:
        try:
            return await provider.search_stations(query)
        except Exception as e:
            logger.warning(f"Station search failed for {provider.id.value}: {e}")
            return []

    def _fold_in(
        self, provider: TrainProvider, raw: RawStation, collected: dict[str, Station]
    ) -> Station:
        """Merge a raw hit into a known station or register a discovered one.

        Must be called with the write lock held.
        """
        target = self._find_fold_target(raw, list(collected.values()))
        if target is None:
            target = self._find_fold_target(raw, self.stations, names=False)

        if target is not None:
            if provider.id not in target.provider_ids:
                target.provider_ids[provider.id] = raw.code
                logger.debug(f"Learned {provider.id.value} id {raw.code} for {target.id}")
            return target

        station_id = f"{provider.id.value.lower()}-{slugify(raw.code or raw.name)}"
        existing = self._stations.get(station_id)
        if existing is not None:
            return existing

        coordinates = None
        if raw.lat is not None and raw.lng is not None:
            coordinates = Coordinates(lat=raw.lat, lng=raw.lng)
        station = Station(
            id=station_id,
            display_name=raw.name,
            country=normalize_country(raw.country) or provider.country,
            coordinates=coordinates,
            provider_ids={provider.id: raw.code},
            kind=StationKind.DISCOVERED,
        )
        self._stations[station_id] = station
        logger.debug(f"Discovered station {station_id} ({raw.name})")
        return station

    def _find_fold_target(
        self, raw: RawStation, stations: list[Station], names: bool = True
    ) -> Station | None:
        raw_codes = {code for code in (raw.code, raw.uic_code) if code}

        if names:
            raw_name = normalize_text(raw.name)
            for station in stations:
                if normalize_text(station.display_name) == raw_name:
                    return station

        for station in stations:
            if raw_codes & set(station.provider_ids.values()):
                return station

        if names:
            for station in stations:
                if fuzzy_names_overlap(station.display_name, raw.name):
                    return station
        return None
