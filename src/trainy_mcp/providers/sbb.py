"""SBB (Switzerland) adapter over the transport.opendata.ch API."""

import logging
import re
from datetime import datetime
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field

from trainy_mcp.data.config import TrainyConfig
from trainy_mcp.models.journeys import JourneyStatus, RawJourneyCandidate, RawStop
from trainy_mcp.models.providers import ProviderId, country_from_uic
from trainy_mcp.models.stations import RawStation, Station
from trainy_mcp.providers.base import ProviderError
from trainy_mcp.services.time_utils import delay_minutes, parse_datetime, positive_minutes

logger = logging.getLogger(__name__)

# "00d04:56:00" -> 4h56m
DURATION_PATTERN = re.compile(r"(\d+)d(\d+):(\d+):(\d+)")


class SBBCoordinate(BaseModel):
    x: float | None = None
    y: float | None = None


class SBBLocation(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    name: str | None = None
    coordinate: SBBCoordinate | None = None


class SBBPrognosis(BaseModel):
    model_config = ConfigDict(extra="ignore")

    platform: str | None = None
    arrival: str | None = None
    departure: str | None = None


class SBBStop(BaseModel):
    model_config = ConfigDict(extra="ignore")

    station: SBBLocation | None = None
    arrival: str | None = None
    departure: str | None = None
    delay: int | None = None
    platform: str | None = None
    prognosis: SBBPrognosis | None = None


class SBBJourney(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    category: str | None = None
    category_code: str | int | None = Field(default=None, alias="categoryCode")
    number: str | int | None = None
    operator: str | None = None
    pass_list: list[SBBStop] = Field(default_factory=list, alias="passList")


class SBBSection(BaseModel):
    model_config = ConfigDict(extra="ignore")

    journey: SBBJourney | None = None
    departure: SBBStop | None = None
    arrival: SBBStop | None = None


class SBBConnection(BaseModel):
    model_config = ConfigDict(extra="ignore")

    from_stop: SBBStop = Field(alias="from")
    to_stop: SBBStop = Field(alias="to")
    duration: str | None = None
    products: list[str] = Field(default_factory=list)
    sections: list[SBBSection] = Field(default_factory=list)


class SBBLocationsResponse(BaseModel):
    stations: list[SBBLocation] = Field(default_factory=list)


class SBBConnectionsResponse(BaseModel):
    connections: list[SBBConnection] = Field(default_factory=list)


def parse_duration_minutes(duration: str | None) -> int:
    """Parse an SBB duration string.

    Example: "00d04:56:00" -> 296
    """
    if not duration:
        return 0
    match = DURATION_PATTERN.search(duration)
    if not match:
        return 0
    days, hours, minutes, _ = (int(part) for part in match.groups())
    return days * 24 * 60 + hours * 60 + minutes


def map_stop(raw: SBBStop) -> RawStop:
    """Convert an SBB stop into a RawStop."""
    station = raw.station or SBBLocation()
    prognosis = raw.prognosis or SBBPrognosis()

    scheduled_arrival = parse_datetime(raw.arrival)
    scheduled_departure = parse_datetime(raw.departure)
    actual_arrival = parse_datetime(prognosis.arrival)
    actual_departure = parse_datetime(prognosis.departure)

    return RawStop(
        station_code=station.id or "",
        station_name=station.name or "",
        country=country_from_uic(station.id),
        scheduled_arrival=scheduled_arrival,
        scheduled_departure=scheduled_departure,
        actual_arrival=actual_arrival,
        actual_departure=actual_departure,
        planned_platform=raw.platform or None,
        actual_platform=prognosis.platform or None,
        arrival_delay=(
            delay_minutes(scheduled_arrival, actual_arrival)
            if actual_arrival
            else positive_minutes(raw.delay) if scheduled_arrival else None
        ),
        departure_delay=(
            delay_minutes(scheduled_departure, actual_departure)
            if actual_departure
            else positive_minutes(raw.delay) if scheduled_departure else None
        ),
    )


def _same_call(end: SBBStop, raw: SBBStop) -> bool:
    """Check whether a section endpoint and a pass list entry are one call.

    A train can serve a station twice, so the station alone is not enough.
    """
    if end.station is None or raw.station is None:
        return False
    same_station = bool(end.station.id) and end.station.id == raw.station.id
    same_name = bool(end.station.name and raw.station.name) and (
        end.station.name.casefold() == raw.station.name.casefold()
    )
    if not (same_station or same_name):
        return False
    scheduled = parse_datetime(end.arrival or end.departure)
    return scheduled is not None and scheduled == parse_datetime(raw.arrival or raw.departure)


def _collect_stops(connection: SBBConnection) -> list[RawStop]:
    """Collect the ordered stops of a connection.

    Prefers the first section's pass list; pass list entries without a
    platform borrow it from the section endpoint that is the same call,
    i.e. the same station at the same scheduled time.
    """
    section_ends = [
        stop
        for section in connection.sections
        for stop in (section.departure, section.arrival)
        if stop is not None
    ]
    pass_list = next(
        (s.journey.pass_list for s in connection.sections if s.journey and s.journey.pass_list),
        [],
    )

    if pass_list:
        stops = []
        for raw in pass_list:
            if not raw.platform:
                match = next((end for end in section_ends if _same_call(end, raw)), None)
                if match is not None:
                    raw = raw.model_copy(
                        update={"platform": match.platform, "prognosis": match.prognosis}
                    )
            stops.append(map_stop(raw))
        return stops

    if section_ends:
        return [map_stop(stop) for stop in section_ends]

    return [map_stop(connection.from_stop), map_stop(connection.to_stop)]


def map_connection(connection: SBBConnection) -> RawJourneyCandidate:
    """Convert an SBB connection into a journey candidate."""
    journey = next((s.journey for s in connection.sections if s.journey), None) or SBBJourney()
    products = connection.products
    train_type = journey.category or (str(journey.category_code) if journey.category_code else "")
    if not train_type:
        train_type = products[0] if products else "SBB"
    train_number = str(journey.number) if journey.number is not None else (journey.name or "")
    if not train_number:
        train_number = products[0] if products else "unknown"

    stops = _collect_stops(connection)
    departure = stops[0]
    arrival = stops[-1]

    delayed = any((stop.arrival_delay or 0) > 0 or (stop.departure_delay or 0) > 0 for stop in stops)
    departure_iso = departure.scheduled_departure.isoformat() if departure.scheduled_departure else ""

    return RawJourneyCandidate(
        source=ProviderId.SBB,
        native_id=f"{train_type}{train_number}-{departure_iso}",
        train_number=train_number,
        train_type=train_type,
        operator=journey.operator or "SBB",
        departure=departure,
        arrival=arrival,
        stops=stops,
        duration_minutes=parse_duration_minutes(connection.duration),
        status=JourneyStatus.DELAYED if delayed else JourneyStatus.SCHEDULED,
    )


class SBBProvider:
    """Adapter for Swiss journeys.

    transport.opendata.ch accepts station names as well as UIC numbers and
    needs no API key.
    """

    id = ProviderId.SBB
    country = "CH"
    name = "Schweizerische Bundesbahnen"
    supports_name_query = True

    def __init__(self, config: TrainyConfig):
        self._config = config

    async def _get_json(self, path: str, params: dict[str, str]) -> Any:
        client = httpx.AsyncClient(
            base_url=self._config.sbb_base_url,
            timeout=self._config.provider_timeout_seconds,
        )
        try:
            response = await client.get(path, params=params)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as e:
            raise ProviderError(self.id, f"GET {path} failed: {e}") from e
        finally:
            await client.aclose()

    async def search_stations(self, query: str) -> list[RawStation]:
        data = await self._get_json("/locations", {"query": query, "type": "station"})
        response = SBBLocationsResponse.model_validate(data)

        stations = []
        for location in response.stations:
            if not location.id or not location.name:
                continue
            coordinate = location.coordinate or SBBCoordinate()
            stations.append(
                RawStation(
                    code=location.id,
                    name=location.name,
                    country=country_from_uic(location.id) or self.country,
                    uic_code=location.id,
                    lat=coordinate.x,
                    lng=coordinate.y,
                )
            )
        logger.debug(f"SBB returned {len(stations)} stations for {query!r}")
        return stations

    async def search_journeys(
        self, from_station: str, to_station: str, when: datetime
    ) -> list[RawJourneyCandidate]:
        params = {
            "from": from_station,
            "to": to_station,
            "date": when.strftime("%Y-%m-%d"),
            "time": when.strftime("%H:%M"),
        }
        data = await self._get_json("/connections", params)
        response = SBBConnectionsResponse.model_validate(data)
        return [map_connection(connection) for connection in response.connections]

    async def get_journey_details(self, native_id: str) -> RawJourneyCandidate | None:
        # transport.opendata.ch has no journey detail endpoint
        logger.debug(f"SBB detail lookup not supported, skipping {native_id}")
        return None

    def station_id_for(self, station: Station) -> str | None:
        return station.provider_id(self.id)
