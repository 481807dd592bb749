"""Pydantic models for raw provider journeys and merged journeys.

A RawJourneyCandidate is what exactly one provider says about a train. A
MergedJourney is the reconciled record built from one or more candidates.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from trainy_mcp.models.providers import ProviderId


class JourneyStatus(str, Enum):
    SCHEDULED = "scheduled"
    DELAYED = "delayed"
    CANCELLED = "cancelled"
    DEPARTED = "departed"
    ARRIVED = "arrived"


class RawStop(BaseModel):
    """A single stop of a journey as reported by one provider."""

    station_code: str = ""
    station_name: str = ""
    country: str | None = None

    scheduled_arrival: datetime | None = None
    scheduled_departure: datetime | None = None
    actual_arrival: datetime | None = None
    actual_departure: datetime | None = None

    planned_platform: str | None = None
    actual_platform: str | None = None

    arrival_delay: int | None = Field(default=None, description="Minutes late, None if on time")
    departure_delay: int | None = Field(default=None, description="Minutes late, None if on time")
    cancelled: bool = False

    @property
    def platform(self) -> str | None:
        """Actual platform if announced, otherwise the planned one."""
        return self.actual_platform or self.planned_platform

    @property
    def has_platform(self) -> bool:
        return bool(self.planned_platform or self.actual_platform)


class RawJourneyCandidate(BaseModel):
    """A journey as returned by exactly one provider."""

    source: ProviderId
    native_id: str | None = Field(
        default=None, description="Provider-specific id usable for a detail lookup"
    )
    train_number: str
    train_type: str = ""
    operator: str = ""
    departure: RawStop
    arrival: RawStop
    stops: list[RawStop] = []
    duration_minutes: int = 0
    status: JourneyStatus = JourneyStatus.SCHEDULED


class MatchSet(BaseModel):
    """Candidates from different providers believed to be the same physical train."""

    key: str
    candidates: list[RawJourneyCandidate] = []
    sources: list[ProviderId] = []
    raw_ids: dict[ProviderId, str] = {}

    def add(self, candidate: RawJourneyCandidate) -> None:
        self.candidates.append(candidate)
        if candidate.source not in self.sources:
            self.sources.append(candidate.source)
        if candidate.native_id and candidate.source not in self.raw_ids:
            self.raw_ids[candidate.source] = candidate.native_id

    @property
    def first(self) -> RawJourneyCandidate:
        return self.candidates[0]


class MergedStop(RawStop):
    """A stop of a merged journey, tagged with the provider authoritative for it."""

    source: ProviderId

    @classmethod
    def from_raw(cls, stop: RawStop, source: ProviderId) -> "MergedStop":
        data = stop.model_dump()
        data["source"] = source
        return cls(**data)


class MergedJourney(BaseModel):
    """Canonical journey reconciled from one or more providers."""

    train_number: str
    train_type: str = ""
    operator: str = ""

    origin_station_id: str
    origin_station_name: str
    destination_station_id: str
    destination_station_name: str

    scheduled_departure: datetime | None = None
    scheduled_arrival: datetime | None = None
    duration_minutes: int = 0
    status: JourneyStatus = JourneyStatus.SCHEDULED

    sources: list[ProviderId] = Field(
        default_factory=list, description="Providers that contributed, in merge order"
    )
    raw_ids: dict[ProviderId, str] = Field(
        default_factory=dict, description="Native journey id per contributing provider"
    )

    departure: MergedStop
    arrival: MergedStop
    stops: list[MergedStop] = []

    def make_key(self) -> str:
        """Durable key for this journey, see build_journey_key."""
        return build_journey_key(
            self.train_type, self.train_number, self.origin_station_id, self.scheduled_departure
        )


class StoredJourney(MergedJourney):
    """A merged journey as returned to callers, with its storage identity."""

    id: str
    journey_key: str
    persisted: bool = Field(
        default=True, description="False when storage was unavailable (temporary id)"
    )
    created_at: datetime | None = None
    updated_at: datetime | None = None


class StopPatch(BaseModel):
    """Realtime changes for one stored stop, addressed by its sequence."""

    sequence: int
    arrival_delay: int | None = None
    departure_delay: int | None = None
    actual_platform: str | None = None
    cancelled: bool = False


def build_journey_key(
    train_type: str,
    train_number: str,
    origin_station_id: str,
    scheduled_departure: datetime | None,
) -> str:
    """Build the durable idempotency key used by persistence.

    Example: ("IC", "123", "amsterdam-centraal", 2026-01-17 10:02:00+01:00)
        -> "IC123_amsterdam-centraal_2026-01-17T10:02:00+01:00"
    """
    departure = (
        scheduled_departure.replace(microsecond=0).isoformat() if scheduled_departure else ""
    )
    return f"{train_type}{train_number}_{origin_station_id}_{departure}"
