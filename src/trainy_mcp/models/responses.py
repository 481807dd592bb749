from pydantic import BaseModel, Field

from trainy_mcp.models.journeys import StoredJourney
from trainy_mcp.models.providers import ProviderId
from trainy_mcp.models.stations import Station


class SearchStationsResponse(BaseModel):
    query: str
    stations: list[Station]
    count: int = Field(description="Number of stations returned")


class SearchJourneysResponse(BaseModel):
    origin: Station
    destination: Station
    requested_at: str = Field(description="Requested departure time (ISO 8601)")
    journeys: list[StoredJourney]
    count: int = Field(description="Number of journeys returned")
    providers_queried: list[ProviderId] = Field(default_factory=list)
    providers_failed: list[ProviderId] = Field(
        default_factory=list, description="Queried providers that errored or timed out"
    )
    providers_skipped: dict[ProviderId, str] = Field(
        default_factory=dict, description="Provider -> reason it was not queried"
    )


class JourneyDetailsResponse(BaseModel):
    journey: StoredJourney | None = None
    found: bool
    refreshed: bool = Field(default=False, description="True if a realtime refresh was requested")
