"""Journey search, details and realtime refresh.

Pipeline of a search: select providers -> fan out -> match -> merge ->
enrich -> sort by departure -> persist. Provider, enrichment and storage
failures are caught here and degrade the result; callers never see them.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime

from trainy_mcp.data.config import TrainyConfig, get_config
from trainy_mcp.data.journey_store import JourneyStore
from trainy_mcp.matching.journey_matcher import match_journeys
from trainy_mcp.matching.normalizers import names_overlap
from trainy_mcp.matching.station_resolver import StationRegistry
from trainy_mcp.models.journeys import (
    JourneyStatus,
    MergedJourney,
    MergedStop,
    RawJourneyCandidate,
    RawStop,
    StopPatch,
    StoredJourney,
)
from trainy_mcp.models.providers import ProviderId
from trainy_mcp.models.stations import Station
from trainy_mcp.providers.base import ProviderRegistry, TrainProvider
from trainy_mcp.providers.db import DBProvider
from trainy_mcp.providers.ns import NSProvider
from trainy_mcp.providers.sbb import SBBProvider
from trainy_mcp.services.enrichment import enrich_journey
from trainy_mcp.services.fan_out import FanOutResult, collect_candidates, fan_out
from trainy_mcp.services.merge_engine import merge_match_set, normalize_delays
from trainy_mcp.services.provider_selector import ProviderSelection, select_providers
from trainy_mcp.services.time_utils import as_utc

logger = logging.getLogger(__name__)

FAR_FUTURE = datetime.max.replace(tzinfo=UTC)


def build_default_providers(config: TrainyConfig) -> ProviderRegistry:
    """Register the adapters shipped with the package."""
    return ProviderRegistry([NSProvider(config), DBProvider(config), SBBProvider(config)])


def to_unpersisted(journey: MergedJourney) -> StoredJourney:
    """Wrap a merged journey that could not be stored, under a temporary id."""
    return StoredJourney(
        **journey.model_dump(),
        id=f"temp-{uuid.uuid4()}",
        journey_key=journey.make_key(),
        persisted=False,
    )


def _departure_sort_key(journey: MergedJourney) -> datetime:
    return as_utc(journey.scheduled_departure) if journey.scheduled_departure else FAR_FUTURE


def _find_stop_index(stops: list[MergedStop], raw: RawStop) -> int | None:
    for index, stop in enumerate(stops):
        if raw.station_code and stop.station_code == raw.station_code:
            return index
        if raw.station_name and stop.station_name.casefold() == raw.station_name.casefold():
            return index
    for index, stop in enumerate(stops):
        if names_overlap(stop.station_name, raw.station_name):
            return index
    return None


@dataclass
class JourneySearchResult:
    """Journeys of one search plus how each provider took part."""

    journeys: list[StoredJourney] = field(default_factory=list)
    selection: ProviderSelection = field(default_factory=ProviderSelection)
    results: list[FanOutResult] = field(default_factory=list)

    @property
    def failed(self) -> list[ProviderId]:
        return [result.source for result in self.results if not result.ok]


class JourneyService:
    """Public entry points consumed by the MCP tools and the CLI."""

    def __init__(
        self,
        providers: ProviderRegistry,
        stations: StationRegistry | None = None,
        store: JourneyStore | None = None,
        config: TrainyConfig | None = None,
    ):
        self.config = config or get_config()
        self.providers = providers
        self.stations = stations or StationRegistry(providers)
        self.store = store or JourneyStore(self.config.db_path)

    async def search_stations(self, query: str) -> list[Station]:
        return await self.stations.resolve(query)

    async def search_journeys(
        self, origin: Station, destination: Station, when: datetime
    ) -> list[StoredJourney]:
        """Find journeys between two stations around a departure time.

        Returns:
            Merged journeys sorted by departure, persisted when storage works
            and otherwise under temporary ids. Empty when nothing is found.
        """
        result = await self.search(origin, destination, when)
        return result.journeys

    async def search(
        self, origin: Station, destination: Station, when: datetime
    ) -> JourneySearchResult:
        selection = select_providers(origin, destination, self.providers)
        if not selection.selected:
            logger.info(f"No provider can serve {origin.id} -> {destination.id}")
            return JourneySearchResult(selection=selection)

        results = await fan_out(
            selection.selected,
            origin,
            destination,
            when,
            timeout=self.config.provider_timeout_seconds,
        )
        match_sets = match_journeys(collect_candidates(results))
        merged = [merge_match_set(match_set, origin, destination) for match_set in match_sets]

        enriched = await asyncio.gather(
            *(
                enrich_journey(
                    journey,
                    origin,
                    destination,
                    selection.ids,
                    self.providers,
                    self.stations,
                    timeout=self.config.provider_timeout_seconds,
                )
                for journey in merged
            )
        )
        ordered = sorted(enriched, key=_departure_sort_key)
        logger.info(
            f"{origin.id} -> {destination.id}: {len(ordered)} journeys "
            f"from {sum(len(r.candidates) for r in results)} candidates"
        )

        return JourneySearchResult(
            journeys=await self._persist(ordered),
            selection=selection,
            results=results,
        )

    async def get_journey_details(
        self, journey_id: str, refresh: bool = False
    ) -> StoredJourney | None:
        """Get a stored journey, optionally refreshed from its providers.

        Returns:
            The journey, or None if the id is unknown or storage is down.
        """
        try:
            stored = await self.store.get_by_id(journey_id)
        except Exception as e:
            logger.warning(f"Failed to load journey {journey_id}: {e}")
            return None

        if stored is None or not refresh:
            return stored
        return await self.refresh(stored)

    async def refresh(self, stored: StoredJourney) -> StoredJourney:
        """Re-query each contributing provider and patch the stored journey.

        A non-scheduled status escalates a still-scheduled journey; returned
        stops overwrite delay, platform and cancelled fields of the stored
        stop with the same station name or code.
        """
        lookups = [
            (provider, native_id)
            for provider_id, native_id in stored.raw_ids.items()
            if (provider := self.providers.get(provider_id)) is not None
        ]
        if not lookups:
            return stored

        details = await asyncio.gather(
            *(self._journey_details(provider, native_id) for provider, native_id in lookups)
        )

        status: JourneyStatus | None = None
        patches: dict[int, StopPatch] = {}
        for detail in details:
            if detail is None:
                continue
            if (
                status is None
                and stored.status == JourneyStatus.SCHEDULED
                and detail.status != JourneyStatus.SCHEDULED
            ):
                status = detail.status

            for raw in (detail.departure, *detail.stops, detail.arrival):
                index = _find_stop_index(stored.stops, raw)
                if index is None:
                    continue
                stop = normalize_delays(raw)
                patches[index] = StopPatch(
                    sequence=index,
                    arrival_delay=stop.arrival_delay,
                    departure_delay=stop.departure_delay,
                    actual_platform=stop.actual_platform,
                    cancelled=stop.cancelled,
                )

        if status is None and not patches:
            return stored

        try:
            updated = await self.store.apply_realtime_update(
                stored.id, status, sorted(patches.values(), key=lambda p: p.sequence)
            )
        except Exception as e:
            logger.warning(f"Failed to store realtime update for {stored.id}: {e}")
            return stored
        return updated or stored

    async def _journey_details(
        self, provider: TrainProvider, native_id: str
    ) -> RawJourneyCandidate | None:
        try:
            return await asyncio.wait_for(
                provider.get_journey_details(native_id),
                timeout=self.config.provider_timeout_seconds,
            )
        except Exception as e:
            logger.warning(f"Detail lookup via {provider.id.value} failed for {native_id}: {e}")
            return None

    async def _persist(self, journeys: list[MergedJourney]) -> list[StoredJourney]:
        if not journeys:
            return []
        try:
            return await self.store.upsert_many(journeys)
        except Exception as e:
            logger.warning(f"Persistence unavailable, returning unsaved journeys: {e}")
            return [to_unpersisted(journey) for journey in journeys]


# Module-level service (lazy-initialized)
_service: JourneyService | None = None


def get_journey_service() -> JourneyService:
    """Get or create the journey service singleton."""
    global _service
    if _service is None:
        config = get_config()
        _service = JourneyService(build_default_providers(config), config=config)
    return _service


def reset_service() -> None:
    """Drop the service singleton so the next call rebuilds it.

    Useful for testing or after configuration changes.
    """
    global _service
    _service = None
