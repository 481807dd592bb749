"""Reduce a match set into one merged journey under field-authority rules.

The first candidate of the set is the starting state. Each further candidate
from provider p is applied in order:

- p joins `sources` and its native id is recorded for later refresh.
- If p is authoritative for the origin country and the merged departure stop
  has no platform while p's has one, p's departure stop replaces it wholesale.
  Same for the arrival stop and the destination country.
- A strictly longer stop list from p replaces the merged one wholesale;
  otherwise missing platforms are filled from p's stop of the same name.
- A non-scheduled status from p replaces a still-scheduled merged status,
  so status never goes back to scheduled.
"""

import logging

from trainy_mcp.matching.normalizers import names_overlap
from trainy_mcp.models.journeys import (
    JourneyStatus,
    MatchSet,
    MergedJourney,
    MergedStop,
    RawJourneyCandidate,
    RawStop,
)
from trainy_mcp.models.providers import authoritative_provider_for
from trainy_mcp.models.stations import Station
from trainy_mcp.services.time_utils import delay_minutes, positive_minutes

logger = logging.getLogger(__name__)


def normalize_delays(stop: RawStop) -> RawStop:
    """Recompute delays from scheduled and actual times where both are known.

    Non-positive delays are reported as None, never negative.
    """
    arrival_delay = delay_minutes(stop.scheduled_arrival, stop.actual_arrival)
    if arrival_delay is None and not (stop.scheduled_arrival and stop.actual_arrival):
        arrival_delay = positive_minutes(stop.arrival_delay)
    departure_delay = delay_minutes(stop.scheduled_departure, stop.actual_departure)
    if departure_delay is None and not (stop.scheduled_departure and stop.actual_departure):
        departure_delay = positive_minutes(stop.departure_delay)

    if arrival_delay == stop.arrival_delay and departure_delay == stop.departure_delay:
        return stop
    return stop.model_copy(
        update={"arrival_delay": arrival_delay, "departure_delay": departure_delay}
    )


def to_merged_stop(stop: RawStop, candidate: RawJourneyCandidate) -> MergedStop:
    return MergedStop.from_raw(normalize_delays(stop), candidate.source)


def same_station(a: RawStop, b: RawStop) -> bool:
    if a.station_code and a.station_code == b.station_code:
        return True
    return names_overlap(a.station_name, b.station_name)


def _fill_platforms(stops: list[MergedStop], candidate: RawJourneyCandidate) -> list[MergedStop]:
    by_name = {stop.station_name.casefold(): stop for stop in candidate.stops if stop.has_platform}
    filled = []
    for stop in stops:
        donor = by_name.get(stop.station_name.casefold())
        if not stop.has_platform and donor is not None:
            stop = stop.model_copy(
                update={
                    "planned_platform": donor.planned_platform,
                    "actual_platform": donor.actual_platform,
                }
            )
        filled.append(stop)
    return filled


class _MergeState:
    """Mutable working copy of a journey while candidates are applied."""

    def __init__(self, base: RawJourneyCandidate):
        self.base = base
        self.departure = to_merged_stop(base.departure, base)
        self.arrival = to_merged_stop(base.arrival, base)
        self.stops = [to_merged_stop(stop, base) for stop in base.stops]
        self.status = base.status
        self.sources = [base.source]
        self.raw_ids = {base.source: base.native_id} if base.native_id else {}

    def apply(
        self, candidate: RawJourneyCandidate, origin: Station, destination: Station
    ) -> None:
        source = candidate.source
        if source not in self.sources:
            self.sources.append(source)
        if candidate.native_id and source not in self.raw_ids:
            self.raw_ids[source] = candidate.native_id

        adopted_departure = (
            authoritative_provider_for(origin.country) == source
            and not self.departure.has_platform
            and candidate.departure.has_platform
        )
        if adopted_departure:
            self.departure = to_merged_stop(candidate.departure, candidate)

        adopted_arrival = (
            authoritative_provider_for(destination.country) == source
            and not self.arrival.has_platform
            and candidate.arrival.has_platform
        )
        if adopted_arrival:
            self.arrival = to_merged_stop(candidate.arrival, candidate)

        if len(candidate.stops) > len(self.stops):
            self.stops = [to_merged_stop(stop, candidate) for stop in candidate.stops]
        else:
            self.stops = _fill_platforms(self.stops, candidate)

        # Keep the stop list in agreement with adopted endpoint stops
        if self.stops and adopted_departure and same_station(self.stops[0], self.departure):
            self.stops[0] = self.departure
        if self.stops and adopted_arrival and same_station(self.stops[-1], self.arrival):
            self.stops[-1] = self.arrival

        if candidate.status != JourneyStatus.SCHEDULED and self.status == JourneyStatus.SCHEDULED:
            self.status = candidate.status


def merge_match_set(match_set: MatchSet, origin: Station, destination: Station) -> MergedJourney:
    """Merge a match set into one canonical journey.

    Args:
        match_set: Candidates believed to be the same train (at least one).
        origin: Canonical origin station of the search.
        destination: Canonical destination station of the search.

    Returns:
        The merged journey, with stop-level `source` provenance.
    """
    if not match_set.candidates:
        raise ValueError(f"Cannot merge empty match set {match_set.key}")

    base = match_set.first
    state = _MergeState(base)
    for candidate in match_set.candidates[1:]:
        state.apply(candidate, origin, destination)

    scheduled_departure = state.departure.scheduled_departure or base.departure.scheduled_departure
    scheduled_arrival = state.arrival.scheduled_arrival or base.arrival.scheduled_arrival
    duration = base.duration_minutes
    if not duration and scheduled_departure and scheduled_arrival:
        duration = int((scheduled_arrival - scheduled_departure).total_seconds() // 60)

    if len(state.sources) > 1:
        logger.debug(f"Merged {match_set.key} from {[s.value for s in state.sources]}")

    return MergedJourney(
        train_number=base.train_number,
        train_type=base.train_type,
        operator=base.operator,
        origin_station_id=origin.id,
        origin_station_name=origin.display_name,
        destination_station_id=destination.id,
        destination_station_name=destination.display_name,
        scheduled_departure=scheduled_departure,
        scheduled_arrival=scheduled_arrival,
        duration_minutes=duration,
        status=state.status,
        sources=state.sources,
        raw_ids=state.raw_ids,
        departure=state.departure,
        arrival=state.arrival,
        stops=state.stops,
    )


def merge_all(
    match_sets: list[MatchSet], origin: Station, destination: Station
) -> list[MergedJourney]:
    return [merge_match_set(match_set, origin, destination) for match_set in match_sets]
