import argparse
import asyncio
import logging
from datetime import UTC, datetime

from pydantic import BaseModel

from trainy_mcp.app import mcp
from trainy_mcp.tools import journey_tools, station_tools  # noqa: F401  (registers tools)


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    timestamp: str
    providers: list[str]


@mcp.tool()
def health() -> HealthResponse:
    """Check if the Trainy MCP server is running and healthy.

    Returns the server status, version, current timestamp and active providers.
    """
    from trainy_mcp import __version__
    from trainy_mcp.services.journey_service import get_journey_service

    return HealthResponse(
        status="ok",
        version=__version__,
        timestamp=datetime.now(UTC).isoformat(),
        providers=[provider.id.value for provider in get_journey_service().providers.active()],
    )


async def run_stations(query: str) -> None:
    """Print stations matching a query."""
    from trainy_mcp.services.journey_service import get_journey_service

    stations = await get_journey_service().search_stations(query)
    if not stations:
        print(f"No stations found for {query!r}")
        return
    for station in stations:
        ids = ", ".join(f"{p.value}={code}" for p, code in station.provider_ids.items())
        print(f"  {station.id:<24} {station.display_name} ({station.country})  [{ids}]")


async def run_search(origin: str, destination: str, at: str | None) -> None:
    """Print merged journeys between two stations."""
    from trainy_mcp.services.journey_service import get_journey_service
    from trainy_mcp.tools.journey_tools import parse_departure_time, resolve_endpoint

    service = get_journey_service()
    when = parse_departure_time(at)
    origin_station = await resolve_endpoint(service, origin)
    destination_station = await resolve_endpoint(service, destination)

    result = await service.search(origin_station, destination_station, when)
    for provider_id, reason in result.selection.skipped.items():
        print(f"  skipped {provider_id.value}: {reason}")

    print(f"\n{origin_station.display_name} -> {destination_station.display_name}, {when:%Y-%m-%d %H:%M}")
    if not result.journeys:
        print("  No journeys found")
    for journey in result.journeys:
        departure = journey.scheduled_departure.strftime("%H:%M") if journey.scheduled_departure else "--:--"
        arrival = journey.scheduled_arrival.strftime("%H:%M") if journey.scheduled_arrival else "--:--"
        platform = journey.arrival.platform or "-"
        sources = "+".join(s.value for s in journey.sources)
        print(
            f"  {departure} -> {arrival}  {journey.train_type}{journey.train_number:<8} "
            f"{journey.status.value:<9} arr. platform {platform:<4} [{sources}]  {journey.id}"
        )


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="trainy-mcp",
        description="Trainy cross-border train journey MCP server",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("serve", help="Run the MCP server (default)")

    stations_parser = subparsers.add_parser("stations", help="Resolve a station name")
    stations_parser.add_argument("query", help="Station name or alias")

    search_parser = subparsers.add_parser("search", help="Search journeys between two stations")
    search_parser.add_argument("origin", help="Origin station id or name")
    search_parser.add_argument("destination", help="Destination station id or name")
    search_parser.add_argument(
        "--at",
        default=None,
        help="Departure time in ISO 8601 (default: now)",
    )

    args = parser.parse_args()

    log_level = logging.DEBUG if args.verbose else logging.INFO
    if args.command in ("stations", "search"):
        logging.basicConfig(
            level=log_level,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )

    if args.command == "stations":
        asyncio.run(run_stations(args.query))
    elif args.command == "search":
        try:
            asyncio.run(run_search(args.origin, args.destination, args.at))
        except ValueError as e:
            parser.error(str(e))
    else:
        # Default: run MCP server
        mcp.run()


if __name__ == "__main__":
    main()
