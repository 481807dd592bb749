"""Tests for the canonical station registry and resolution."""

import asyncio

import pytest

from tests.fakes import FakeProvider
from trainy_mcp.matching.station_resolver import StationRegistry
from trainy_mcp.models.providers import ProviderId
from trainy_mcp.models.stations import RawStation, StationKind
from trainy_mcp.providers.base import ProviderError, ProviderRegistry


def make_registry(*providers: FakeProvider) -> StationRegistry:
    return StationRegistry(ProviderRegistry(list(providers)))


class TestStaticResolution:
    """Alias table, substring scan and typo fallback without providers."""

    async def test_alias_hit(self) -> None:
        stations = await make_registry().resolve("Amsterdam")
        assert stations[0].id == "amsterdam-centraal"

    async def test_accent_insensitive(self) -> None:
        stations = await make_registry().resolve("zurich")
        assert [s.id for s in stations][0] == "zurich-hb"

    async def test_substring_scan(self) -> None:
        stations = await make_registry().resolve("Hbf")
        ids = {s.id for s in stations}
        assert {"frankfurt-hbf", "koln-hbf", "berlin-hbf"} <= ids

    async def test_typo_fallback(self) -> None:
        stations = await make_registry().resolve("Amsterdm Centraal")
        assert stations and stations[0].id == "amsterdam-centraal"

    async def test_short_query_returns_nothing(self) -> None:
        provider = FakeProvider(ProviderId.SBB, "CH")
        assert await make_registry(provider).resolve("a") == []
        assert await make_registry(provider).resolve("   ") == []
        assert provider.station_calls == []

    async def test_sorted_by_provider_coverage(self) -> None:
        """Stations known to more providers come first."""
        stations = await make_registry().resolve("amsterdam")
        assert stations[0].id == "amsterdam-centraal"
        counts = [len(s.provider_ids) for s in stations]
        assert counts == sorted(counts, reverse=True)


class TestProviderFoldIn:
    """Folding raw provider hits into canonical stations."""

    async def test_fold_by_normalized_name_fills_missing_id(self) -> None:
        provider = FakeProvider(
            ProviderId.SBB,
            "CH",
            stations=[RawStation(code="8400070", name="Utrecht Centraal", country="NL")],
        )
        registry = make_registry(provider)
        stations = await registry.resolve("Utrecht")

        utrecht = next(s for s in stations if s.id == "utrecht-centraal")
        assert utrecht.provider_ids[ProviderId.SBB] == "8400070"
        assert registry.get("utrecht-centraal").provider_ids[ProviderId.SBB] == "8400070"

    async def test_fold_by_identifier(self) -> None:
        """A hit sharing a numeric code with another provider folds in, whatever its name."""
        provider = FakeProvider(
            ProviderId.SBB,
            "CH",
            stations=[RawStation(code="8000207", name="Koeln Hauptbahnhof")],
        )
        registry = make_registry(provider)
        stations = await registry.resolve("Köln")

        assert [s.id for s in stations] == ["koln-hbf"]

    async def test_fold_by_parenthetical_containment(self) -> None:
        provider = FakeProvider(
            ProviderId.SBB,
            "CH",
            stations=[RawStation(code="8099999", name="Frankfurt (M) Hbf")],
        )
        stations = await make_registry(provider).resolve("Frankfurt")
        assert [s.id for s in stations] == ["frankfurt-hbf"]

    async def test_existing_mapping_never_overwritten(self) -> None:
        provider = FakeProvider(
            ProviderId.SBB,
            "CH",
            stations=[RawStation(code="9999999", name="Zürich HB")],
        )
        registry = make_registry(provider)
        await registry.resolve("Zürich")
        assert registry.get("zurich-hb").provider_ids[ProviderId.SBB] == "8503000"

    async def test_unknown_hit_becomes_discovered_station(self) -> None:
        provider = FakeProvider(
            ProviderId.SBB,
            "CH",
            stations=[RawStation(code="8508005", name="Burgdorf", lat=47.06, lng=7.62)],
        )
        registry = make_registry(provider)
        stations = await registry.resolve("Burgdorf")

        assert len(stations) == 1
        discovered = stations[0]
        assert discovered.id == "sbb-8508005"
        assert discovered.kind == StationKind.DISCOVERED
        assert discovered.country == "CH"
        assert discovered.provider_ids == {ProviderId.SBB: "8508005"}
        assert registry.get("sbb-8508005") is not None

    async def test_repeated_resolution_reuses_discovered_station(self) -> None:
        provider = FakeProvider(
            ProviderId.SBB, "CH", stations=[RawStation(code="8508005", name="Burgdorf")]
        )
        registry = make_registry(provider)
        await registry.resolve("Burgdorf")
        await registry.resolve("Burgdorf")
        assert len([s for s in registry.stations if s.kind == StationKind.DISCOVERED]) == 1

    async def test_provider_failure_is_partial_result(self) -> None:
        failing = FakeProvider(ProviderId.NS, "NL", error=ProviderError(ProviderId.NS, "boom"))
        working = FakeProvider(
            ProviderId.SBB, "CH", stations=[RawStation(code="8508005", name="Burgdorf")]
        )
        stations = await make_registry(failing, working).resolve("Burgdorf")
        assert [s.id for s in stations] == ["sbb-8508005"]

    async def test_concurrent_resolution_is_consistent(self) -> None:
        provider = FakeProvider(
            ProviderId.SBB,
            "CH",
            stations=[RawStation(code="8508005", name="Burgdorf")],
            delay=0.01,
        )
        registry = make_registry(provider)
        results = await asyncio.gather(*(registry.resolve("Burgdorf") for _ in range(5)))

        assert all([s.id for s in result] == ["sbb-8508005"] for result in results)
        assert len([s for s in registry.stations if s.kind == StationKind.DISCOVERED]) == 1

    async def test_results_are_copies(self) -> None:
        registry = make_registry()
        stations = await registry.resolve("Bern")
        stations[0].provider_ids[ProviderId.NS] = "BERN"
        assert ProviderId.NS not in registry.get("bern").provider_ids


class TestLookups:
    """Direct lookups used by enrichment and the tools."""

    def test_find_by_provider_id(self) -> None:
        registry = make_registry()
        assert registry.find_by_provider_id(ProviderId.NS, "ASD").id == "amsterdam-centraal"

    def test_find_by_shared_uic(self) -> None:
        registry = make_registry()
        station = registry.find_by_provider_id(ProviderId.OBB, "8503000")
        assert station is not None and station.id == "zurich-hb"

    def test_find_by_name(self) -> None:
        registry = make_registry()
        assert registry.find_by_name("Frankfurt(Main)Hbf").id == "frankfurt-hbf"
        assert registry.find_by_name("Zurich HB").id == "zurich-hb"

    def test_find_by_name_unknown(self) -> None:
        assert make_registry().find_by_name("Nowhere") is None

    @pytest.mark.asyncio
    async def test_add_provider_id_is_additive(self) -> None:
        registry = make_registry()
        assert await registry.add_provider_id("bern", ProviderId.NS, "BERN")
        assert not await registry.add_provider_id("bern", ProviderId.NS, "OTHER")
        assert registry.get("bern").provider_ids[ProviderId.NS] == "BERN"
