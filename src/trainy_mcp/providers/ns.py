"""NS (Netherlands) adapter over the NS Reisinformatie API.

NS covers international trains from the Netherlands and accepts station
names for foreign stations it has no short code for.
"""

import logging
from datetime import datetime
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field

from trainy_mcp.data.config import TrainyConfig
from trainy_mcp.models.journeys import JourneyStatus, RawJourneyCandidate, RawStop
from trainy_mcp.models.providers import ProviderId, country_from_uic, normalize_country
from trainy_mcp.models.stations import RawStation, Station
from trainy_mcp.providers.base import ProviderError
from trainy_mcp.services.time_utils import delay_minutes, parse_datetime, positive_minutes

logger = logging.getLogger(__name__)

NS_STATUSES: dict[str, JourneyStatus] = {
    "delayed": JourneyStatus.DELAYED,
    "cancelled": JourneyStatus.CANCELLED,
    "departed": JourneyStatus.DEPARTED,
    "arrived": JourneyStatus.ARRIVED,
}


class NSNames(BaseModel):
    model_config = ConfigDict(extra="ignore")

    lang: str | None = None
    middel: str | None = None
    kort: str | None = None


class NSStation(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    code: str | None = None
    station_code: str | None = Field(default=None, alias="stationCode")
    uic_code: str | None = Field(default=None, alias="UICCode")
    uic_code_lower: str | None = Field(default=None, alias="uicCode")
    name: str | None = None
    namen: NSNames | None = None
    land: str | None = None
    country_code: str | None = Field(default=None, alias="countryCode")
    lat: float | None = None
    lng: float | None = None

    @property
    def best_code(self) -> str:
        return self.code or self.station_code or self.uic or ""

    @property
    def uic(self) -> str | None:
        return self.uic_code or self.uic_code_lower

    @property
    def best_name(self) -> str:
        if self.name:
            return self.name
        if self.namen:
            return self.namen.lang or self.namen.middel or self.namen.kort or ""
        return ""

    @property
    def country(self) -> str | None:
        return normalize_country(self.land or self.country_code) or country_from_uic(self.uic)


class NSStop(NSStation):
    station: NSStation | None = None
    planned_date_time: str | None = Field(default=None, alias="plannedDateTime")
    actual_date_time: str | None = Field(default=None, alias="actualDateTime")
    planned_arrival: str | None = Field(default=None, alias="plannedArrivalDateTime")
    actual_arrival: str | None = Field(default=None, alias="actualArrivalDateTime")
    planned_departure: str | None = Field(default=None, alias="plannedDepartureDateTime")
    actual_departure: str | None = Field(default=None, alias="actualDepartureDateTime")
    planned_track: str | None = Field(default=None, alias="plannedTrack")
    actual_track: str | None = Field(default=None, alias="actualTrack")
    track: str | None = None
    planned_arrival_track: str | None = Field(default=None, alias="plannedArrivalTrack")
    planned_departure_track: str | None = Field(default=None, alias="plannedDepartureTrack")
    actual_arrival_track: str | None = Field(default=None, alias="actualArrivalTrack")
    actual_departure_track: str | None = Field(default=None, alias="actualDepartureTrack")
    departure_delay_seconds: int | None = Field(default=None, alias="departureDelayInSeconds")
    arrival_delay_seconds: int | None = Field(default=None, alias="arrivalDelayInSeconds")
    cancelled: bool = False
    is_cancelled: bool = Field(default=False, alias="isCancelled")

    @property
    def planned_platform(self) -> str | None:
        return (
            self.planned_track
            or self.planned_departure_track
            or self.planned_arrival_track
            or self.track
        )

    @property
    def actual_platform(self) -> str | None:
        return self.actual_track or self.actual_departure_track or self.actual_arrival_track


class NSProduct(BaseModel):
    model_config = ConfigDict(extra="ignore")

    number: str | int | None = None
    short_category_name: str | None = Field(default=None, alias="shortCategoryName")
    category_code: str | None = Field(default=None, alias="categoryCode")
    operator_name: str | None = Field(default=None, alias="operatorName")


class NSLeg(BaseModel):
    model_config = ConfigDict(extra="ignore")

    origin: NSStop | None = None
    destination: NSStop | None = None
    stops: list[NSStop] = Field(default_factory=list)
    product: NSProduct | None = None


class NSTrip(BaseModel):
    model_config = ConfigDict(extra="ignore")

    uid: str | None = None
    planned_duration: int | None = Field(default=None, alias="plannedDurationInMinutes")
    status: str | None = None
    cancelled: bool = False
    stops: list[NSStop] = Field(default_factory=list)
    legs: list[NSLeg] = Field(default_factory=list)


def map_stop(raw: NSStop) -> RawStop:
    """Convert an NS stop (trip leg endpoint or pass-through stop) into a RawStop."""
    station = raw.station or raw

    scheduled_arrival = parse_datetime(raw.planned_arrival or raw.planned_date_time)
    scheduled_departure = parse_datetime(raw.planned_departure or raw.planned_date_time)
    actual_arrival = parse_datetime(raw.actual_arrival or raw.actual_date_time)
    actual_departure = parse_datetime(raw.actual_departure or raw.actual_date_time)

    arrival_delay = delay_minutes(scheduled_arrival, actual_arrival)
    if arrival_delay is None and raw.arrival_delay_seconds is not None:
        arrival_delay = positive_minutes(raw.arrival_delay_seconds / 60)
    departure_delay = delay_minutes(scheduled_departure, actual_departure)
    if departure_delay is None and raw.departure_delay_seconds is not None:
        departure_delay = positive_minutes(raw.departure_delay_seconds / 60)

    return RawStop(
        station_code=station.best_code,
        station_name=station.best_name,
        country=station.country,
        scheduled_arrival=scheduled_arrival,
        scheduled_departure=scheduled_departure,
        actual_arrival=actual_arrival,
        actual_departure=actual_departure,
        planned_platform=raw.planned_platform,
        actual_platform=raw.actual_platform,
        arrival_delay=arrival_delay,
        departure_delay=departure_delay,
        cancelled=raw.cancelled or raw.is_cancelled,
    )


def map_trip(trip: NSTrip) -> RawJourneyCandidate:
    """Convert an NS trip into a journey candidate.

    Multi-leg trips are flattened; the first leg's product identifies the train.
    """
    first_leg = trip.legs[0] if trip.legs else NSLeg()
    last_leg = trip.legs[-1] if trip.legs else NSLeg()
    product = first_leg.product or NSProduct()

    raw_stops = trip.stops or [stop for leg in trip.legs for stop in leg.stops]
    if not raw_stops:
        raw_stops = [s for s in (first_leg.origin, last_leg.destination) if s is not None]
    stops = [map_stop(stop) for stop in raw_stops]

    departure = map_stop(first_leg.origin) if first_leg.origin else (stops[0] if stops else RawStop())
    arrival = map_stop(last_leg.destination) if last_leg.destination else (stops[-1] if stops else RawStop())

    status = NS_STATUSES.get((trip.status or "").lower(), JourneyStatus.SCHEDULED)
    if trip.cancelled:
        status = JourneyStatus.CANCELLED
    elif status == JourneyStatus.SCHEDULED and any(
        stop.arrival_delay or stop.departure_delay for stop in stops
    ):
        status = JourneyStatus.DELAYED

    train_number = str(product.number) if product.number is not None else ""
    departure_iso = departure.scheduled_departure.isoformat() if departure.scheduled_departure else ""

    return RawJourneyCandidate(
        source=ProviderId.NS,
        native_id=f"{train_number}_{departure_iso}" if train_number else trip.uid,
        train_number=train_number,
        train_type=product.short_category_name or product.category_code or "",
        operator=product.operator_name or "NS",
        departure=departure,
        arrival=arrival,
        stops=stops,
        duration_minutes=trip.planned_duration or 0,
        status=status,
    )


class NSProvider:
    """Adapter for Dutch (and Belgian) journeys."""

    id = ProviderId.NS
    country = "NL"
    name = "Nederlandse Spoorwegen"
    supports_name_query = True

    def __init__(self, config: TrainyConfig):
        self._config = config

    async def _get_json(self, path: str, params: dict[str, str]) -> Any:
        if not self._config.ns_api_key:
            raise ProviderError(self.id, "NS_API_KEY is not configured")

        client = httpx.AsyncClient(
            base_url=self._config.ns_base_url,
            headers={
                "Ocp-Apim-Subscription-Key": self._config.ns_api_key,
                "Accept": "application/json",
            },
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
        data = await self._get_json("/v2/stations", {"q": query})
        payload = data if isinstance(data, list) else data.get("payload", [])

        stations = []
        for item in payload:
            raw = NSStation.model_validate(item)
            if not raw.best_code or not raw.best_name:
                continue
            stations.append(
                RawStation(
                    code=raw.best_code,
                    name=raw.best_name,
                    country=raw.country,
                    uic_code=raw.uic,
                    lat=raw.lat,
                    lng=raw.lng,
                )
            )
        logger.debug(f"NS returned {len(stations)} stations for {query!r}")
        return stations

    async def search_journeys(
        self, from_station: str, to_station: str, when: datetime
    ) -> list[RawJourneyCandidate]:
        params = {
            "fromStation": from_station,
            "toStation": to_station,
            "dateTime": when.isoformat(),
        }
        data = await self._get_json("/v3/trips", params)
        trips = data.get("trips") or data.get("payload", {}).get("trips") or []
        return [map_trip(NSTrip.model_validate(trip)) for trip in trips]

    async def get_journey_details(self, native_id: str) -> RawJourneyCandidate | None:
        train_number, _, date_time = native_id.partition("_")
        if not train_number or not date_time:
            logger.warning(f"Invalid NS journey id: {native_id!r}")
            return None

        data = await self._get_json("/v2/journey", {"train": train_number, "dateTime": date_time})
        journey = data.get("journey") or data.get("payload", {}).get("journey")
        if not journey:
            return None
        return map_trip(NSTrip.model_validate(journey))

    def station_id_for(self, station: Station) -> str | None:
        return station.provider_id(self.id)
