"""DB (Germany) adapter over the DB API Marketplace.

Search uses the Timetables API, which only knows station boards: departures
at the origin are paired with arrivals at the destination by train number.
Details come from RIS::Journeys, looked up by train number and date.
"""

import asyncio
import logging
import xml.etree.ElementTree as ET
from datetime import datetime, timedelta
from typing import Any
from zoneinfo import ZoneInfo

import httpx
from pydantic import BaseModel, ConfigDict, Field

from trainy_mcp.data.config import TrainyConfig
from trainy_mcp.matching.normalizers import names_overlap
from trainy_mcp.models.journeys import JourneyStatus, RawJourneyCandidate, RawStop
from trainy_mcp.models.providers import ProviderId, country_from_uic
from trainy_mcp.models.stations import RawStation, Station
from trainy_mcp.providers.base import ProviderError
from trainy_mcp.services.time_utils import (
    as_utc,
    delay_minutes,
    minutes_apart,
    parse_datetime,
    round_half_up,
)

logger = logging.getLogger(__name__)

# Timetables speaks German local time
BERLIN = ZoneInfo("Europe/Berlin")

# Destination boards fetched after the departure hour
ARRIVAL_HOURS = 4
MAX_DURATION_MINUTES = 24 * 60
# Head start an origin match gets when picking a RIS::Journeys candidate
ORIGIN_MATCH_BONUS_MINUTES = 10


class DBLine(BaseModel):
    """The <tl> trip label of a timetable stop."""

    model_config = ConfigDict(extra="ignore")

    type: str | None = Field(default=None, alias="t")
    operator: str | None = Field(default=None, alias="o")
    category: str | None = Field(default=None, alias="c")
    number: str | None = Field(default=None, alias="n")


class DBTimetableEvent(BaseModel):
    """An <ar> or <dp> element: planned and changed time, platform and path."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    planned_time: str | None = Field(default=None, alias="pt")
    changed_time: str | None = Field(default=None, alias="ct")
    planned_platform: str | None = Field(default=None, alias="pp")
    changed_platform: str | None = Field(default=None, alias="cp")
    changed_status: str | None = Field(default=None, alias="cs")
    planned_path: str | None = Field(default=None, alias="ppth")

    @property
    def cancelled(self) -> bool:
        return self.changed_status == "c"

    @property
    def path(self) -> list[str]:
        return [name for name in (self.planned_path or "").split("|") if name]


class DBTimetableStop(BaseModel):
    """An <s> element of a plan or change board."""

    id: str | None = None
    line: DBLine = Field(default_factory=DBLine)
    arrival: DBTimetableEvent | None = None
    departure: DBTimetableEvent | None = None

    @property
    def train_type(self) -> str:
        return self.line.category or self.line.type or ""

    @property
    def train_key(self) -> str:
        return f"{self.train_type}{self.line.number or ''}"


class DBTimetable(BaseModel):
    station: str = ""
    eva: str | None = None
    stops: list[DBTimetableStop] = Field(default_factory=list)


class DBPosition(BaseModel):
    latitude: float | None = None
    longitude: float | None = None


class DBStopPlace(BaseModel):
    model_config = ConfigDict(extra="ignore")

    eva_number: str | None = Field(default=None, alias="evaNumber")
    name: str | None = None
    position: DBPosition | None = None


class DBEvent(BaseModel):
    """A RIS::Journeys arrival or departure event."""

    model_config = ConfigDict(extra="ignore")

    type: str | None = None
    station: DBStopPlace | None = None
    time_schedule: str | None = Field(default=None, alias="timeSchedule")
    time_predicted: str | None = Field(default=None, alias="timePredicted")
    platform_schedule: str | None = Field(default=None, alias="platformSchedule")
    platform_predicted: str | None = Field(default=None, alias="platformPredicted")
    cancelled: bool = False


class DBOperator(BaseModel):
    name: str | None = None


class DBTrain(BaseModel):
    model_config = ConfigDict(extra="ignore")

    journey_number: str | int | None = Field(default=None, alias="journeyNumber")
    type: str | None = None
    category: str | None = None
    operator: DBOperator | None = None


class DBJourney(BaseModel):
    model_config = ConfigDict(extra="ignore")

    journey_id: str | None = Field(default=None, alias="journeyID")
    train: DBTrain | None = None
    departure: DBEvent | None = None
    arrival: DBEvent | None = None
    events: list[DBEvent] = Field(default_factory=list)
    cancelled: bool = False

    @property
    def first_departure(self) -> DBEvent | None:
        return self.departure or next(iter(self.events), None)


def parse_timetable_time(value: str | None) -> datetime | None:
    """Parse a Timetables YYMMDDHHMM timestamp as Berlin local time.

    Example: "2601171002" -> 2026-01-17 10:02+01:00
    """
    if not value or len(value) != 10:
        return None
    try:
        return datetime.strptime(value, "%y%m%d%H%M").replace(tzinfo=BERLIN)
    except ValueError:
        return None


def parse_timetable(root: ET.Element, eva: str) -> DBTimetable:
    """Convert a <timetable> document into models."""
    stops = []
    for element in root.findall("s"):
        line = element.find("tl")
        arrival = element.find("ar")
        departure = element.find("dp")
        stops.append(
            DBTimetableStop(
                id=element.get("id"),
                line=DBLine.model_validate(dict(line.attrib)) if line is not None else DBLine(),
                arrival=(
                    DBTimetableEvent.model_validate(dict(arrival.attrib))
                    if arrival is not None
                    else None
                ),
                departure=(
                    DBTimetableEvent.model_validate(dict(departure.attrib))
                    if departure is not None
                    else None
                ),
            )
        )
    return DBTimetable(station=root.get("station", ""), eva=root.get("eva") or eva, stops=stops)


def apply_changes(plan: DBTimetable, changes: DBTimetable) -> DBTimetable:
    """Overlay realtime changes onto planned stops, matched by stop id."""
    by_id = {stop.id: stop for stop in changes.stops if stop.id}
    merged = []
    for stop in plan.stops:
        change = by_id.get(stop.id) if stop.id else None
        if change is None:
            merged.append(stop)
            continue
        merged.append(
            stop.model_copy(
                update={
                    "arrival": _overlay(stop.arrival, change.arrival),
                    "departure": _overlay(stop.departure, change.departure),
                }
            )
        )
    return plan.model_copy(update={"stops": merged})


def _overlay(
    planned: DBTimetableEvent | None, changed: DBTimetableEvent | None
) -> DBTimetableEvent | None:
    if planned is None or changed is None:
        return planned
    update = {
        field: value
        for field in ("changed_time", "changed_platform", "changed_status")
        if (value := getattr(changed, field)) is not None
    }
    return planned.model_copy(update=update)


def map_timetable_stop(
    event: DBTimetableEvent | None,
    code: str,
    name: str,
    departing: bool,
) -> RawStop:
    """Convert one side of a station board entry into a RawStop."""
    event = event or DBTimetableEvent()
    scheduled = parse_timetable_time(event.planned_time)
    actual = parse_timetable_time(event.changed_time)
    times = {
        "scheduled_departure" if departing else "scheduled_arrival": scheduled,
        "actual_departure" if departing else "actual_arrival": actual,
        "departure_delay" if departing else "arrival_delay": delay_minutes(scheduled, actual),
    }
    return RawStop(
        station_code=code,
        station_name=name,
        country=country_from_uic(code) or "DE",
        planned_platform=event.planned_platform or None,
        actual_platform=event.changed_platform or None,
        cancelled=event.cancelled,
        **times,
    )


def build_route(
    departure: RawStop, arrival: RawStop, path: list[str]
) -> list[RawStop]:
    """Build origin -> destination stops from a departure's planned path.

    Path entries carry names only; the path is cut where it reaches the
    destination, which replaces that entry.
    """
    stops = [departure]
    for name in path:
        if names_overlap(name, arrival.station_name):
            break
        stops.append(RawStop(station_name=name))
    stops.append(arrival)
    return stops


def map_departure(
    stop: DBTimetableStop,
    origin: DBTimetable,
    arrival: RawStop,
) -> RawJourneyCandidate:
    """Pair an origin board departure with its destination arrival."""
    origin_eva = origin.eva or ""
    departure = map_timetable_stop(stop.departure, origin_eva, origin.station, departing=True)
    path = stop.departure.path if stop.departure else []
    stops = build_route(departure, arrival, path)

    duration = 0
    if departure.scheduled_departure and arrival.scheduled_arrival:
        duration = signed_minutes(departure.scheduled_departure, arrival.scheduled_arrival)

    if departure.cancelled or arrival.cancelled:
        status = JourneyStatus.CANCELLED
    elif departure.departure_delay or arrival.arrival_delay:
        status = JourneyStatus.DELAYED
    else:
        status = JourneyStatus.SCHEDULED

    number = stop.line.number or ""
    departure_iso = (
        departure.scheduled_departure.isoformat() if departure.scheduled_departure else ""
    )
    return RawJourneyCandidate(
        source=ProviderId.DB,
        native_id=f"{stop.train_type}_{number}_{departure_iso}_{origin_eva}",
        train_number=number,
        train_type=stop.train_type,
        operator=stop.line.operator or "DB",
        departure=departure,
        arrival=arrival,
        stops=stops,
        duration_minutes=duration,
        status=status,
    )


def signed_minutes(start: datetime, end: datetime) -> int:
    """Whole minutes from start to end, negative when end is earlier."""
    return round_half_up((as_utc(end) - as_utc(start)).total_seconds() / 60)


def match_arrival(
    stop: DBTimetableStop, arrivals: dict[str, RawStop]
) -> RawStop | None:
    """Find the destination arrival of a departure.

    Tries the exact type + number key first, then any key ending with the
    number since boards can label the same train differently.
    """
    arrival = arrivals.get(stop.train_key)
    if arrival is None and stop.line.number:
        arrival = next(
            (value for key, value in arrivals.items() if key.endswith(stop.line.number)),
            None,
        )
    return arrival


def map_event(event: DBEvent) -> RawStop:
    """Convert a RIS::Journeys event into a RawStop."""
    station = event.station or DBStopPlace()
    scheduled = parse_datetime(event.time_schedule)
    actual = parse_datetime(event.time_predicted)
    delay = delay_minutes(scheduled, actual)
    arriving = event.type != "DEPARTURE"
    departing = event.type != "ARRIVAL"
    return RawStop(
        station_code=station.eva_number or "",
        station_name=station.name or "",
        country=country_from_uic(station.eva_number) or "DE",
        scheduled_arrival=scheduled if arriving else None,
        scheduled_departure=scheduled if departing else None,
        actual_arrival=actual if arriving else None,
        actual_departure=actual if departing else None,
        planned_platform=event.platform_schedule or None,
        actual_platform=event.platform_predicted or None,
        arrival_delay=delay if arriving else None,
        departure_delay=delay if departing else None,
        cancelled=event.cancelled,
    )


def collapse_events(events: list[DBEvent]) -> list[RawStop]:
    """Merge consecutive arrival and departure events at one station into a stop."""
    stops: list[RawStop] = []
    for event in events:
        stop = map_event(event)
        previous = stops[-1] if stops else None
        if previous is not None and stop.station_code and previous.station_code == stop.station_code:
            stops[-1] = previous.model_copy(
                update={
                    field: value
                    for field, value in stop.model_dump().items()
                    if value is not None and getattr(previous, field) is None
                }
                | {"cancelled": previous.cancelled or stop.cancelled}
            )
        else:
            stops.append(stop)
    return stops


def map_journey(journey: DBJourney) -> RawJourneyCandidate:
    """Convert a RIS::Journeys journey into a journey candidate."""
    train = journey.train or DBTrain()
    stops = collapse_events(journey.events)
    departure = stops[0] if stops else map_event(journey.departure or DBEvent())
    arrival = stops[-1] if stops else map_event(journey.arrival or DBEvent())

    duration = 0
    scheduled_departure = parse_datetime((journey.departure or DBEvent()).time_schedule)
    scheduled_arrival = parse_datetime((journey.arrival or DBEvent()).time_schedule)
    if scheduled_departure and scheduled_arrival:
        duration = max(signed_minutes(scheduled_departure, scheduled_arrival), 0)

    if journey.cancelled:
        status = JourneyStatus.CANCELLED
    elif any((stop.arrival_delay or 0) > 0 or (stop.departure_delay or 0) > 0 for stop in stops):
        status = JourneyStatus.DELAYED
    else:
        status = JourneyStatus.SCHEDULED

    return RawJourneyCandidate(
        source=ProviderId.DB,
        native_id=journey.journey_id,
        train_number=str(train.journey_number) if train.journey_number is not None else "",
        train_type=train.type or train.category or "",
        operator=(train.operator.name if train.operator else None) or "DB",
        departure=departure,
        arrival=arrival,
        stops=stops,
        duration_minutes=duration,
        status=status,
    )


class DBProvider:
    """Adapter for German journeys.

    Timetables boards are addressed by EVA number, so queries by name are
    not supported. Both APIs need a DB API Marketplace client id and key.
    """

    id = ProviderId.DB
    country = "DE"
    name = "Deutsche Bahn"
    supports_name_query = False

    def __init__(self, config: TrainyConfig):
        self._config = config

    def _client(self, base_url: str, accept: str) -> httpx.AsyncClient:
        if not self._config.db_client_id or not self._config.db_api_key:
            raise ProviderError(self.id, "DB_CLIENT_ID and DB_API_KEY must be configured")
        return httpx.AsyncClient(
            base_url=base_url,
            headers={
                "DB-Client-Id": self._config.db_client_id,
                "DB-Api-Key": self._config.db_api_key,
                "Accept": accept,
            },
            timeout=self._config.provider_timeout_seconds,
        )

    async def _get_xml(self, path: str) -> ET.Element:
        client = self._client(self._config.db_timetables_url, "application/xml")
        try:
            response = await client.get(path)
            response.raise_for_status()
            return ET.fromstring(response.content)
        except httpx.HTTPError as e:
            raise ProviderError(self.id, f"GET {path} failed: {e}") from e
        except ET.ParseError as e:
            raise ProviderError(self.id, f"GET {path} returned invalid XML: {e}") from e
        finally:
            await client.aclose()

    async def _get_json(self, path: str, params: dict[str, str] | None = None) -> Any:
        client = self._client(self._config.db_journeys_url, "application/json")
        try:
            response = await client.get(path, params=params)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as e:
            raise ProviderError(self.id, f"GET {path} failed: {e}") from e
        finally:
            await client.aclose()

    async def _plan(self, eva: str, when: datetime) -> DBTimetable:
        local = when.astimezone(BERLIN)
        root = await self._get_xml(f"/plan/{eva}/{local:%y%m%d}/{local:%H}")
        return parse_timetable(root, eva)

    async def _arrivals(self, eva: str, when: datetime) -> dict[str, RawStop]:
        """Map train key -> arrival at a station over the next few hours."""
        boards = await asyncio.gather(
            *(
                self._plan(eva, when + timedelta(hours=offset))
                for offset in range(ARRIVAL_HOURS + 1)
            ),
            return_exceptions=True,
        )
        arrivals: dict[str, RawStop] = {}
        for board in boards:
            if isinstance(board, ProviderError):
                logger.warning(f"Skipping DB arrival board: {board}")
                continue
            if isinstance(board, BaseException):
                raise board
            for stop in board.stops:
                if stop.arrival is None or not stop.arrival.planned_time or not stop.line.number:
                    continue
                # earliest board wins
                arrivals.setdefault(
                    stop.train_key,
                    map_timetable_stop(stop.arrival, eva, board.station, departing=False),
                )
        return arrivals

    async def search_stations(self, query: str) -> list[RawStation]:
        root = await self._get_xml(f"/station/{query}")

        stations = []
        for element in root.findall(".//station"):
            eva = element.get("eva") or element.get("evaNo")
            name = element.get("name")
            if not eva or not name:
                continue
            stations.append(
                RawStation(
                    code=eva,
                    name=name,
                    country=country_from_uic(eva) or self.country,
                    uic_code=eva,
                )
            )
        logger.debug(f"DB returned {len(stations)} stations for {query!r}")
        return stations

    async def search_journeys(
        self, from_station: str, to_station: str, when: datetime
    ) -> list[RawJourneyCandidate]:
        """Search by pairing origin departures with destination arrivals.

        Only trains seen arriving at the destination within the board window
        are returned.
        """
        origin, arrivals = await asyncio.gather(
            self._plan(from_station, when), self._arrivals(to_station, when)
        )

        try:
            changes = parse_timetable(await self._get_xml(f"/fchg/{from_station}"), from_station)
            origin = apply_changes(origin, changes)
        except ProviderError as e:
            logger.warning(f"DB realtime changes unavailable for {from_station}: {e}")

        journeys = []
        for stop in origin.stops:
            if stop.departure is None or not stop.line.number:
                continue
            arrival = match_arrival(stop, arrivals)
            if arrival is None:
                continue
            candidate = map_departure(stop, origin, arrival)
            if 0 < candidate.duration_minutes < MAX_DURATION_MINUTES:
                journeys.append(candidate)

        logger.debug(
            f"DB paired {len(journeys)} of {len(origin.stops)} departures "
            f"{from_station} -> {to_station}"
        )
        return journeys

    async def _journey(self, journey_id: str) -> RawJourneyCandidate | None:
        data = await self._get_json(f"/{journey_id}")
        if not data:
            return None
        return map_journey(DBJourney.model_validate(data))

    async def get_journey_details(self, native_id: str) -> RawJourneyCandidate | None:
        """Fetch a journey by RIS::Journeys id or by a search result id.

        Search result ids ("ICE_123_<departure>_<origin eva>") are resolved
        with a find by number and date, picking the candidate closest in time.
        """
        parts = native_id.split("_")
        if len(parts) != 4:
            return await self._journey(native_id)

        train_type, number, departure_iso, origin_eva = parts
        departure = parse_datetime(departure_iso)
        if not number or departure is None:
            logger.debug(f"Malformed DB native id {native_id}")
            return None

        data = await self._get_json(
            "/find",
            {"journeyNumber": number, "date": departure.astimezone(BERLIN).date().isoformat()},
        )
        candidates = [DBJourney.model_validate(j) for j in (data or {}).get("journeys", [])]
        if not candidates:
            logger.info(f"DB found no journey for {train_type} {number}")
            return None

        def score(journey: DBJourney) -> float:
            event = journey.first_departure
            scheduled = parse_datetime(event.time_schedule) if event else None
            if scheduled is None:
                return float("inf")
            minutes = minutes_apart(scheduled, departure)
            station = event.station if event else None
            if station and station.eva_number == origin_eva:
                minutes -= ORIGIN_MATCH_BONUS_MINUTES
            return minutes

        best = min(candidates, key=score)
        if score(best) > ORIGIN_MATCH_BONUS_MINUTES:
            logger.warning(
                f"Best DB match for {train_type} {number} is {score(best):.0f} min off"
            )

        if best.journey_id:
            detail = await self._journey(best.journey_id)
            if detail is not None:
                return detail
        return map_journey(best)

    def station_id_for(self, station: Station) -> str | None:
        return station.provider_id(self.id)
