"""Tests for grouping candidates into match sets."""

from itertools import permutations

from tests.fakes import at, candidate, stop
from trainy_mcp.matching.journey_matcher import match_journeys, primary_key
from trainy_mcp.models.providers import ProviderId

NS = ProviderId.NS
DB = ProviderId.DB
SBB = ProviderId.SBB


def grouping(match_sets) -> set[frozenset[tuple[str, str]]]:
    """Order-free view of a matching: sets of (source, native_id)."""
    return {
        frozenset((c.source.value, c.native_id) for c in match_set.candidates)
        for match_set in match_sets
    }


class TestPrimaryKey:
    """Tests for the train + departure bucket key."""

    def test_key_normalizes_train_identity(self) -> None:
        a = candidate(NS, " 123", [stop("A", departure=at(10, 2)), stop("B", arrival=at(12))])
        b = candidate(SBB, "123", [stop("A", departure=at(10, 1)), stop("B", arrival=at(12))])
        b = b.model_copy(update={"train_type": "ic "})
        assert primary_key(a) == primary_key(b)

    def test_key_buckets_departure(self) -> None:
        early = candidate(NS, "1", [stop("A", departure=at(10, 2)), stop("B")])
        late = candidate(NS, "1", [stop("A", departure=at(10, 3)), stop("B")])
        assert primary_key(early) != primary_key(late)


class TestMatchJourneys:
    """Tests for match set construction."""

    def test_same_primary_key_merges(self) -> None:
        ns = candidate(NS, "123", [stop("Amsterdam Centraal", departure=at(10, 2)), stop("Zürich HB", arrival=at(14, 58))])
        sbb = candidate(SBB, "123", [stop("Amsterdam Centraal", departure=at(10, 2)), stop("Zürich HB", arrival=at(14, 58))])

        match_sets = match_journeys([ns, sbb])

        assert len(match_sets) == 1
        assert match_sets[0].sources == [NS, SBB]
        assert match_sets[0].raw_ids == {NS: "NS-IC123", SBB: "SBB-IC123"}

    def test_different_trains_stay_apart(self) -> None:
        a = candidate(NS, "123", [stop("A", departure=at(10)), stop("B", arrival=at(12))])
        b = candidate(NS, "125", [stop("A", departure=at(11)), stop("B", arrival=at(13))])
        assert len(match_journeys([a, b])) == 2

    def test_same_number_different_day_stays_apart(self) -> None:
        a = candidate(NS, "123", [stop("A", departure=at(10)), stop("B", arrival=at(12))])
        b = candidate(SBB, "123", [stop("A", departure=at(10, day=18)), stop("B", arrival=at(12, day=18))])
        assert len(match_journeys([a, b])) == 2

    def test_ice456_frankfurt_naming(self) -> None:
        """Departure skew breaks the primary key; the secondary key still folds them."""
        first = candidate(
            NS,
            "456",
            [stop("Amsterdam Centraal", departure=at(9, 2)), stop("Frankfurt(Main)Hbf", arrival=at(13, 0))],
            train_type="ICE",
        )
        second = candidate(
            DB,
            "456",
            [stop("Amsterdam Centraal", departure=at(9, 3)), stop("Frankfurt (Main) Hbf", arrival=at(13, 2))],
            train_type="ICE",
        )
        assert primary_key(first) != primary_key(second)

        match_sets = match_journeys([first, second])

        assert len(match_sets) == 1
        assert match_sets[0].sources == [NS, DB]

    def test_secondary_key_requires_close_arrival(self) -> None:
        first = candidate(NS, "456", [stop("A", departure=at(9, 2)), stop("Frankfurt Hbf", arrival=at(13))])
        second = candidate(DB, "456", [stop("A", departure=at(9, 3)), stop("Frankfurt Hbf", arrival=at(13, 21))])
        assert len(match_journeys([first, second])) == 2

    def test_secondary_key_requires_matching_destination(self) -> None:
        first = candidate(NS, "456", [stop("A", departure=at(9, 2)), stop("Frankfurt Hbf", arrival=at(13))])
        second = candidate(DB, "456", [stop("A", departure=at(9, 3)), stop("Köln Hbf", arrival=at(13, 5))])
        assert len(match_journeys([first, second])) == 2

    def test_secondary_key_matches_on_station_code(self) -> None:
        first = candidate(NS, "456", [stop("A", departure=at(9, 2)), stop("Frankfurt", code="8000105", arrival=at(13))])
        second = candidate(DB, "456", [stop("A", departure=at(9, 3)), stop("Ffm Hbf", code="8000105", arrival=at(13, 1))])
        assert len(match_journeys([first, second])) == 1

    def test_first_plausible_set_wins(self) -> None:
        """With two plausible sets the candidate joins the first, without scoring."""
        a = candidate(NS, "456", [stop("A", departure=at(9, 0)), stop("Basel SBB", arrival=at(13, 0))], native_id="a")
        b = candidate(NS, "456", [stop("A", departure=at(9, 30)), stop("Basel SBB", arrival=at(13, 30))], native_id="b")
        c = candidate(SBB, "456", [stop("A", departure=at(9, 15)), stop("Basel SBB", arrival=at(13, 15))], native_id="c")

        match_sets = match_journeys([a, b, c])

        assert len(match_sets) == 2
        assert [x.native_id for x in match_sets[0].candidates] == ["a", "c"]
        assert [x.native_id for x in match_sets[1].candidates] == ["b"]

    def test_unmatched_candidates_are_singletons(self) -> None:
        only = candidate(SBB, "999", [stop("A", departure=at(8)), stop("B", arrival=at(9))])
        match_sets = match_journeys([only])
        assert len(match_sets) == 1
        assert match_sets[0].candidates == [only]

    def test_empty(self) -> None:
        assert match_journeys([]) == []

    def test_order_independence(self) -> None:
        """Every permutation of the same candidates yields the same grouping."""
        candidates = [
            candidate(NS, "123", [stop("Amsterdam Centraal", departure=at(10, 2)), stop("Zürich HB", arrival=at(14, 58))]),
            candidate(SBB, "123", [stop("Amsterdam Centraal", departure=at(10, 2)), stop("Zürich HB", arrival=at(14, 58))]),
            candidate(NS, "456", [stop("Amsterdam Centraal", departure=at(9, 2)), stop("Frankfurt(Main)Hbf", arrival=at(13))], train_type="ICE"),
            candidate(DB, "456", [stop("Amsterdam Centraal", departure=at(9, 3)), stop("Frankfurt (Main) Hbf", arrival=at(13, 2))], train_type="ICE"),
            candidate(NS, "140", [stop("Amsterdam Centraal", departure=at(12)), stop("Berlin Hbf", arrival=at(18))]),
        ]
        expected = grouping(match_journeys(candidates))
        assert len(expected) == 3

        for ordering in permutations(candidates):
            assert grouping(match_journeys(list(ordering))) == expected

    def test_primary_key_reuses_secondary_set(self) -> None:
        """A candidate that joined a set by the secondary key also maps its
        primary key to that set, so grouping can depend on input order."""
        x = candidate(NS, "456", [stop("A", departure=at(9, 2)), stop("Frankfurt (Main) Hbf", arrival=at(13, 0))], native_id="x", train_type="ICE")
        y = candidate(DB, "456", [stop("A", departure=at(9, 3)), stop("Frankfurt (Main) Hbf", arrival=at(13, 15))], native_id="y", train_type="ICE")
        z = candidate(SBB, "456", [stop("A", departure=at(9, 4)), stop("Frankfurt (Main) Hbf", arrival=at(13, 40))], native_id="z", train_type="ICE")
        assert primary_key(y) == primary_key(z) != primary_key(x)

        in_order = match_journeys([x, y, z])
        assert [[c.native_id for c in s.candidates] for s in in_order] == [["x", "y", "z"]]

        reordered = match_journeys([z, x, y])
        assert [[c.native_id for c in s.candidates] for s in reordered] == [["z", "y"], ["x"]]
