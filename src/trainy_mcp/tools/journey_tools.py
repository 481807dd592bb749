"""MCP tools for journey search and details."""

from datetime import UTC, datetime

from trainy_mcp.app import mcp
from trainy_mcp.models.responses import JourneyDetailsResponse, SearchJourneysResponse
from trainy_mcp.models.stations import Station
from trainy_mcp.services.journey_service import JourneyService, get_journey_service
from trainy_mcp.services.time_utils import parse_datetime


async def resolve_endpoint(service: JourneyService, value: str) -> Station:
    """Look up a station by registry id, falling back to name resolution.

    Raises:
        ValueError: If no station matches.
    """
    station = service.stations.get(value.strip())
    if station is not None:
        return station
    matches = await service.search_stations(value)
    if not matches:
        raise ValueError(f"Unknown station: {value!r}. Use search_stations to find a station id.")
    return matches[0]


def parse_departure_time(value: str | None) -> datetime:
    """Parse the requested departure time, defaulting to now (UTC).

    Raises:
        ValueError: If the value is not an ISO 8601 datetime.
    """
    if value is None or not value.strip():
        return datetime.now(UTC).replace(second=0, microsecond=0)
    parsed = parse_datetime(value)
    if parsed is None:
        raise ValueError(f"Invalid departure time: {value!r}. Expected ISO 8601.")
    return parsed


@mcp.tool()
async def search_journeys(
    origin: str,
    destination: str,
    departure_time: str | None = None,
) -> SearchJourneysResponse:
    """Find train journeys between two stations, merged across national providers.

    Each journey is reconciled from every provider that knows the train. The
    provider authoritative for a stop's country wins for that stop, so a Swiss
    arrival platform comes from SBB even when NS found the train.

    Examples:
        search_journeys("amsterdam-centraal", "zurich-hb", "2026-01-17T10:00")
        search_journeys("Amsterdam", "Köln")  # names are resolved first

    Args:
        origin: Origin station id (from search_stations) or name.
        destination: Destination station id or name.
        departure_time: ISO 8601 departure time (default: now).

    Returns:
        SearchJourneysResponse with journeys sorted by departure, plus which
        providers were queried, which failed and which were skipped (with reason).
        Journeys have `persisted=false` and a "temp-" id if storage was unavailable.
    """
    service = get_journey_service()
    when = parse_departure_time(departure_time)
    origin_station = await resolve_endpoint(service, origin)
    destination_station = await resolve_endpoint(service, destination)

    result = await service.search(origin_station, destination_station, when)
    return SearchJourneysResponse(
        origin=origin_station,
        destination=destination_station,
        requested_at=when.isoformat(),
        journeys=result.journeys,
        count=len(result.journeys),
        providers_queried=result.selection.ids,
        providers_failed=result.failed,
        providers_skipped=result.selection.skipped,
    )


@mcp.tool()
async def get_journey_details(journey_id: str, refresh: bool = False) -> JourneyDetailsResponse:
    """Get a stored journey by id, optionally refreshed with realtime data.

    Args:
        journey_id: Journey id returned by search_journeys.
        refresh: Re-query the contributing providers for delays, platform
                 changes and cancellations before returning.

    Returns:
        JourneyDetailsResponse with the journey (found=false if unknown).
    """
    journey = await get_journey_service().get_journey_details(journey_id, refresh=refresh)
    return JourneyDetailsResponse(journey=journey, found=journey is not None, refreshed=refresh)
