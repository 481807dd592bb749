"""Group journey candidates from different providers into match sets.

There is no identifier shared between providers, so "same train" is inferred:

- Primary key: normalized train type + number, plus the scheduled departure
  rounded to the nearest 5 minutes (UTC).
- Secondary key: same train number, scheduled arrival within 20 minutes of the
  set's recorded arrival, and a compatible destination (names equal or one
  containing the other, or equal station codes).

When several sets satisfy the secondary key the first one found wins; no
scoring is applied between them.
"""

import logging
from datetime import datetime

from trainy_mcp.matching.normalizers import (
    names_overlap,
    normalize_train_id,
    normalize_train_number,
)
from trainy_mcp.models.journeys import MatchSet, RawJourneyCandidate, RawStop
from trainy_mcp.services.time_utils import minutes_apart, round_to_bucket

logger = logging.getLogger(__name__)

DEPARTURE_BUCKET_MINUTES = 5
ARRIVAL_TOLERANCE_MINUTES = 20


def departure_time(stop: RawStop) -> datetime | None:
    return stop.scheduled_departure or stop.scheduled_arrival


def arrival_time(stop: RawStop) -> datetime | None:
    return stop.scheduled_arrival or stop.scheduled_departure


def primary_key(candidate: RawJourneyCandidate) -> str:
    """Build the in-memory match key of a candidate.

    Example: ICE 456 departing 09:02Z -> "ice456@2026-01-17T09:00"
    """
    train_id = normalize_train_id(candidate.train_type, candidate.train_number)
    departure = departure_time(candidate.departure)
    if departure is None:
        return train_id
    bucket = round_to_bucket(departure, DEPARTURE_BUCKET_MINUTES)
    return f"{train_id}@{bucket.strftime('%Y-%m-%dT%H:%M')}"


def destinations_match(candidate: RawJourneyCandidate, existing: RawJourneyCandidate) -> bool:
    """Check whether two candidates end at the same station."""
    ours = candidate.arrival
    theirs = existing.arrival
    if ours.station_code and ours.station_code == theirs.station_code:
        return True
    return names_overlap(ours.station_name, theirs.station_name)


def is_secondary_match(candidate: RawJourneyCandidate, match_set: MatchSet) -> bool:
    """Check the fuzzy secondary key against a set's first (recorded) candidate."""
    recorded = match_set.first
    number = normalize_train_number(candidate.train_number)
    if not number or number != normalize_train_number(recorded.train_number):
        return False

    ours = arrival_time(candidate.arrival)
    theirs = arrival_time(recorded.arrival)
    if ours is None or theirs is None:
        return False
    if minutes_apart(ours, theirs) > ARRIVAL_TOLERANCE_MINUTES:
        return False

    return destinations_match(candidate, recorded)


def match_journeys(candidates: list[RawJourneyCandidate]) -> list[MatchSet]:
    """Group candidates believed to be the same physical train.

    Args:
        candidates: Raw candidates from all providers. A candidate that joins a
            set by the secondary key also maps its own primary key to that
            set, so the grouping can depend on input order.

    Returns:
        Match sets in order of first appearance; unmatched candidates
        form singleton sets.
    """
    sets: list[MatchSet] = []
    by_key: dict[str, MatchSet] = {}

    for candidate in candidates:
        key = primary_key(candidate)
        match_set = by_key.get(key)

        if match_set is None:
            match_set = next((s for s in sets if is_secondary_match(candidate, s)), None)
            if match_set is not None:
                logger.debug(
                    f"Secondary match: {candidate.source.value} {key} joins {match_set.key}"
                )

        if match_set is None:
            match_set = MatchSet(key=key)
            sets.append(match_set)

        by_key.setdefault(key, match_set)
        match_set.add(candidate)

    return sets
