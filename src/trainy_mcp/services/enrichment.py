"""Opportunistic refinement of a merged journey from a non-selected provider.

Example: a Dutch-origin journey to a Swiss station passing through a country
whose provider was not needed to find the train. That provider may still
report the arrival platform, so it is queried once for the leg from its stop
to the destination and the platform is spliced in. Enrichment is best-effort:
any failure leaves the journey untouched.
"""

import asyncio
import logging

from trainy_mcp.data.config import get_config
from trainy_mcp.matching.journey_matcher import ARRIVAL_TOLERANCE_MINUTES, arrival_time
from trainy_mcp.matching.normalizers import names_overlap
from trainy_mcp.matching.station_resolver import StationRegistry
from trainy_mcp.models.journeys import MergedJourney, MergedStop, RawJourneyCandidate
from trainy_mcp.models.providers import ProviderId, authoritative_provider_for, normalize_country
from trainy_mcp.models.stations import Station
from trainy_mcp.providers.base import ProviderRegistry, TrainProvider
from trainy_mcp.services.time_utils import minutes_apart

logger = logging.getLogger(__name__)


def _stop_country(stop: MergedStop, registry: StationRegistry) -> str | None:
    if stop.country:
        return normalize_country(stop.country)
    station = registry.find_by_provider_id(stop.source, stop.station_code) or registry.find_by_name(
        stop.station_name
    )
    return station.country if station else None


def _stop_station(stop: MergedStop, registry: StationRegistry) -> Station | None:
    return registry.find_by_provider_id(stop.source, stop.station_code) or registry.find_by_name(
        stop.station_name
    )


def _find_cross_reference(
    candidates: list[RawJourneyCandidate],
    journey: MergedJourney,
    destination: Station,
    destination_code: str,
) -> RawJourneyCandidate | None:
    """Pick the candidate arriving with the merged journey at the same station."""
    target_time = arrival_time(journey.arrival) or journey.scheduled_arrival
    target_name = journey.arrival.station_name or destination.display_name

    for candidate in candidates:
        arrival = arrival_time(candidate.arrival)
        if target_time is None or arrival is None:
            continue
        if minutes_apart(arrival, target_time) > ARRIVAL_TOLERANCE_MINUTES:
            continue
        code = candidate.arrival.station_code
        if (code and code == destination_code) or names_overlap(
            candidate.arrival.station_name, target_name
        ):
            return candidate
    return None


def _splice_platform(
    journey: MergedJourney, donor: RawJourneyCandidate, source: ProviderId
) -> MergedJourney:
    enriched = journey.model_copy(deep=True)
    platforms = {
        "planned_platform": donor.arrival.planned_platform,
        "actual_platform": donor.arrival.actual_platform,
        "source": source,
    }
    enriched.arrival = enriched.arrival.model_copy(update=platforms)

    code = donor.arrival.station_code
    enriched.stops = [
        stop.model_copy(update=platforms)
        if (code and stop.station_code == code)
        or names_overlap(stop.station_name, donor.arrival.station_name)
        or names_overlap(stop.station_name, journey.arrival.station_name)
        else stop
        for stop in enriched.stops
    ]
    return enriched


async def _enrich_with(
    provider: TrainProvider,
    journey: MergedJourney,
    destination: Station,
    registry: StationRegistry,
    timeout: float,
) -> MergedJourney | None:
    destination_code = provider.station_id_for(destination)
    if destination_code is None:
        return None

    stop = next(
        (s for s in journey.stops if _stop_country(s, registry) == provider.country), None
    )
    if stop is None:
        return None

    stop_station = _stop_station(stop, registry)
    from_code = provider.station_id_for(stop_station) if stop_station else None
    if from_code is None and provider.supports_name_query:
        from_code = stop.station_name
    if not from_code:
        logger.debug(f"No {provider.id.value} id for stop {stop.station_name}")
        return None

    when = stop.scheduled_departure or stop.scheduled_arrival or journey.scheduled_departure
    if when is None:
        return None

    candidates = await asyncio.wait_for(
        provider.search_journeys(from_code, destination_code, when), timeout=timeout
    )
    donor = _find_cross_reference(candidates, journey, destination, destination_code)
    if donor is None or not donor.arrival.has_platform:
        return None

    is_destination_authority = authoritative_provider_for(destination.country) == provider.id
    if journey.arrival.has_platform and not is_destination_authority:
        return None

    logger.info(
        f"Enriched {journey.train_type}{journey.train_number} arrival platform "
        f"from {provider.id.value}"
    )
    return _splice_platform(journey, donor, provider.id)


async def enrich_journey(
    journey: MergedJourney,
    origin: Station,
    destination: Station,
    selected_ids: list[ProviderId],
    providers: ProviderRegistry,
    registry: StationRegistry,
    timeout: float | None = None,
) -> MergedJourney:
    """Refine a merged journey from a provider the selector did not pick.

    Applies only when the origin's authoritative provider produced the base
    journey, a third provider knows the destination, and a stop lies in that
    provider's country. The enriched stops get the enriching provider as
    their `source`; the journey-level `sources` list is left as is.

    Returns:
        An enriched copy, or the very same `journey` object when nothing applies.
    """
    if not journey.sources or journey.sources[0] != authoritative_provider_for(origin.country):
        return journey
    if timeout is None:
        timeout = get_config().provider_timeout_seconds

    for provider in providers.active():
        if provider.id in selected_ids or provider.id in journey.sources:
            continue
        try:
            enriched = await _enrich_with(provider, journey, destination, registry, timeout)
        except Exception as e:
            logger.debug(f"Enrichment via {provider.id.value} failed: {e}")
            continue
        if enriched is not None:
            return enriched
    return journey
