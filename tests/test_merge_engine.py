"""Tests for merging match sets under field-authority rules."""

import pytest

from tests.fakes import at, candidate, stop
from trainy_mcp.data.station_registry import registered_stations
from trainy_mcp.models.journeys import JourneyStatus, MatchSet
from trainy_mcp.models.providers import ProviderId
from trainy_mcp.services.merge_engine import merge_match_set, normalize_delays

NS = ProviderId.NS
DB = ProviderId.DB
SBB = ProviderId.SBB

STATIONS = {station.id: station for station in registered_stations()}
AMSTERDAM = STATIONS["amsterdam-centraal"]
ZURICH = STATIONS["zurich-hb"]


def make_set(*candidates) -> MatchSet:
    match_set = MatchSet(key="test")
    for c in candidates:
        match_set.add(c)
    return match_set


def ns_ic123(**arrival_extra):
    return candidate(
        NS,
        "123",
        [
            stop("Amsterdam Centraal", "ASD", "NL", departure=at(10, 2), platform="15b"),
            stop("Utrecht Centraal", "UT", "NL", arrival=at(10, 29), departure=at(10, 31)),
            stop("Zürich HB", "ZUE", "CH", arrival=at(14, 58), **arrival_extra),
        ],
        native_id="123_2026-01-17T10:02:00+01:00",
    )


def sbb_ic123(stops=None, status=JourneyStatus.SCHEDULED):
    return candidate(
        SBB,
        "123",
        stops
        or [
            stop("Amsterdam Centraal", "8400058", "NL", departure=at(10, 2)),
            stop("Zürich HB", "8503000", "CH", arrival=at(14, 58), platform="31"),
        ],
        status=status,
        native_id="IC123-2026-01-17T10:02:00+01:00",
    )


class TestFieldAuthority:
    """Endpoint stops come from the provider authoritative for their country."""

    def test_destination_authority_fills_arrival(self) -> None:
        merged = merge_match_set(make_set(ns_ic123(), sbb_ic123()), AMSTERDAM, ZURICH)

        assert merged.sources == [NS, SBB]
        assert merged.arrival.planned_platform == "31"
        assert merged.arrival.source == SBB
        assert merged.stops[-1].source == SBB
        assert merged.stops[-1].planned_platform == "31"

    def test_arrival_adopted_wholesale(self) -> None:
        merged = merge_match_set(make_set(ns_ic123(), sbb_ic123()), AMSTERDAM, ZURICH)
        assert merged.arrival.station_code == "8503000"

    def test_origin_authority_departure_platform(self) -> None:
        """The origin provider's platform survives a non-authoritative merge partner."""
        merged = merge_match_set(make_set(sbb_ic123(), ns_ic123()), AMSTERDAM, ZURICH)

        assert merged.departure.planned_platform == "15b"
        assert merged.departure.source == NS
        assert merged.sources == [SBB, NS]

    def test_existing_platform_not_replaced(self) -> None:
        ns = ns_ic123(platform="7")
        merged = merge_match_set(make_set(ns, sbb_ic123()), AMSTERDAM, ZURICH)
        assert merged.arrival.planned_platform == "7"
        assert merged.arrival.source == NS

    def test_non_authoritative_provider_never_adopted(self) -> None:
        db = candidate(
            DB,
            "123",
            [
                stop("Amsterdam Centraal", "8400058", departure=at(10, 2)),
                stop("Zürich HB", "8503000", arrival=at(14, 58), platform="9"),
            ],
        )
        merged = merge_match_set(make_set(ns_ic123(), db), AMSTERDAM, ZURICH)
        assert merged.arrival.source == NS
        assert merged.arrival.planned_platform is None

    def test_raw_ids_recorded(self) -> None:
        merged = merge_match_set(make_set(ns_ic123(), sbb_ic123()), AMSTERDAM, ZURICH)
        assert merged.raw_ids == {
            NS: "123_2026-01-17T10:02:00+01:00",
            SBB: "IC123-2026-01-17T10:02:00+01:00",
        }


class TestStopList:
    """Stop list completeness rules."""

    def test_longer_list_replaces_wholesale(self) -> None:
        sbb = sbb_ic123(
            stops=[
                stop("Amsterdam Centraal", "8400058", departure=at(10, 2)),
                stop("Utrecht Centraal", "8400621", arrival=at(10, 29)),
                stop("Köln Hbf", "8000207", arrival=at(12, 40)),
                stop("Basel SBB", "8500010", arrival=at(14, 0)),
                stop("Zürich HB", "8503000", arrival=at(14, 58), platform="31"),
            ]
        )
        merged = merge_match_set(make_set(ns_ic123(), sbb), AMSTERDAM, ZURICH)

        assert [s.station_name for s in merged.stops] == [
            "Amsterdam Centraal",
            "Utrecht Centraal",
            "Köln Hbf",
            "Basel SBB",
            "Zürich HB",
        ]
        assert all(s.source == SBB for s in merged.stops)

    def test_shorter_list_fills_platforms_by_name(self) -> None:
        ns = ns_ic123()
        sbb = sbb_ic123(
            stops=[
                stop("Amsterdam Centraal", "8400058", departure=at(10, 2)),
                stop("utrecht centraal", "8400621", arrival=at(10, 29), platform="5"),
                stop("Zürich HB", "8503000", arrival=at(14, 58)),
            ]
        )
        merged = merge_match_set(make_set(ns, sbb), AMSTERDAM, ZURICH)

        assert len(merged.stops) == 3
        assert merged.stops[1].planned_platform == "5"
        assert merged.stops[1].source == NS


class TestStatus:
    """Monotonic status escalation."""

    def test_escalates_from_scheduled(self) -> None:
        merged = merge_match_set(
            make_set(ns_ic123(), sbb_ic123(status=JourneyStatus.DELAYED)), AMSTERDAM, ZURICH
        )
        assert merged.status == JourneyStatus.DELAYED

    def test_never_reverts_to_scheduled(self) -> None:
        delayed = sbb_ic123(status=JourneyStatus.DELAYED)
        later = candidate(DB, "123", [stop("Amsterdam Centraal", departure=at(10, 2)), stop("Zürich HB", arrival=at(14, 58))])
        merged = merge_match_set(make_set(ns_ic123(), delayed, later), AMSTERDAM, ZURICH)
        assert merged.status == JourneyStatus.DELAYED

    def test_first_escalation_wins(self) -> None:
        delayed = sbb_ic123(status=JourneyStatus.DELAYED)
        cancelled = candidate(DB, "123", [stop("A", departure=at(10, 2)), stop("B", arrival=at(14, 58))], status=JourneyStatus.CANCELLED)
        merged = merge_match_set(make_set(ns_ic123(), delayed, cancelled), AMSTERDAM, ZURICH)
        assert merged.status == JourneyStatus.DELAYED


class TestJourneyFields:
    """Identity, times and key of the merged journey."""

    def test_identity_from_base_and_stations(self) -> None:
        merged = merge_match_set(make_set(ns_ic123(), sbb_ic123()), AMSTERDAM, ZURICH)

        assert merged.train_type == "IC"
        assert merged.train_number == "123"
        assert merged.origin_station_id == "amsterdam-centraal"
        assert merged.destination_station_name == "Zürich HB"
        assert merged.scheduled_departure == at(10, 2)
        assert merged.scheduled_arrival == at(14, 58)
        assert merged.duration_minutes == 296

    def test_journey_key(self) -> None:
        merged = merge_match_set(make_set(ns_ic123()), AMSTERDAM, ZURICH)
        assert merged.make_key() == "IC123_amsterdam-centraal_2026-01-17T10:02:00+01:00"

    def test_empty_set_rejected(self) -> None:
        with pytest.raises(ValueError):
            merge_match_set(MatchSet(key="empty"), AMSTERDAM, ZURICH)


class TestDelays:
    """Delay minutes derived from scheduled and actual times."""

    def test_negative_delay_dropped(self) -> None:
        early = stop("Zürich HB", arrival=at(14, 58), actual_arrival=at(14, 55), arrival_delay=-3)
        assert normalize_delays(early).arrival_delay is None

    def test_delay_recomputed_from_times(self) -> None:
        late = stop("Zürich HB", arrival=at(14, 58), actual_arrival=at(15, 4))
        assert normalize_delays(late).arrival_delay == 6

    def test_provider_delay_kept_without_actual_time(self) -> None:
        late = stop("Zürich HB", arrival=at(14, 58), arrival_delay=4)
        assert normalize_delays(late).arrival_delay == 4
