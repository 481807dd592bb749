"""MCP tools for resolving stations."""

from trainy_mcp.app import mcp
from trainy_mcp.models.responses import SearchStationsResponse
from trainy_mcp.services.journey_service import get_journey_service


@mcp.tool()
async def search_stations(query: str, limit: int = 10) -> SearchStationsResponse:
    """Resolve a station name to canonical cross-border stations.

    Handles accents, common English names and typos, and asks every active
    provider for matches. Stations known to more providers come first.

    Examples:
        search_stations("zurich")  # Zürich HB
        search_stations("Amsterdam")  # Amsterdam Centraal first
        search_stations("Frankfurt Main")  # Frankfurt (Main) Hbf

    Args:
        query: Station name or common alias (at least 2 characters).
        limit: Maximum number of stations to return (default 10, max 50).

    Returns:
        SearchStationsResponse with matching stations and their per-provider ids.
        Use a station's `id` for search_journeys.
    """
    if limit < 1:
        limit = 1
    elif limit > 50:
        limit = 50

    stations = await get_journey_service().search_stations(query)
    stations = stations[:limit]
    return SearchStationsResponse(query=query, stations=stations, count=len(stations))
