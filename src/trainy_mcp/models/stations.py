from enum import Enum

from pydantic import BaseModel, Field

from trainy_mcp.models.providers import ProviderId


class StationKind(str, Enum):
    """Which tier of the station registry a station belongs to."""

    REGISTERED = "registered"  # durable canonical registry entry
    DISCOVERED = "discovered"  # synthesized from a raw provider search hit


class Coordinates(BaseModel):
    lat: float
    lng: float


class Station(BaseModel):
    """Canonical cross-provider station with one native id per provider."""

    id: str = Field(description="Stable registry id, e.g. 'amsterdam-centraal'")
    display_name: str
    country: str = Field(description="Two-letter country code, e.g. 'NL'")
    coordinates: Coordinates | None = None
    provider_ids: dict[ProviderId, str] = Field(
        default_factory=dict, description="Provider -> native station code"
    )
    kind: StationKind = StationKind.REGISTERED

    def provider_id(self, provider: ProviderId) -> str | None:
        """Get this station's native code for a provider, if known."""
        return self.provider_ids.get(provider)


class RawStation(BaseModel):
    """A station as returned by one provider's station search."""

    code: str = Field(description="Provider-native station code")
    name: str
    country: str | None = None
    uic_code: str | None = None
    lat: float | None = None
    lng: float | None = None
